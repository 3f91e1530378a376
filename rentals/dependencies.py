from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from rentals.config import Settings
from rentals.services.rental_service import RentalService
from rentals.utils.security import verify_access_token
from rentals.utils.exceptions import UnauthorizedException

# Bearer token extractor
bearer_scheme = HTTPBearer(auto_error=False)


# ─── Wiring ───────────────────────────────────────────────────────────────────
def get_settings(request: Request) -> Settings:
    return request.app.state.container.settings


def get_rental_service(request: Request) -> RentalService:
    return request.app.state.container.service


# ─── Get Current User ─────────────────────────────────────────────────────────
def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> str:
    """
    Validate the JWT Bearer token and return the caller's user id (sub).
    Users live in an external identity service; only the token is checked here.
    """
    if not credentials:
        raise UnauthorizedException("No authentication token provided")

    payload = verify_access_token(credentials.credentials, settings.SECRET_KEY, settings.ALGORITHM)
    user_id: str | None = payload.get("sub")
    if not user_id:
        raise UnauthorizedException("Invalid token payload")
    return user_id
