from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from sqlalchemy.pool import QueuePool, StaticPool
from rentals.config import Settings
import logging

logger = logging.getLogger(__name__)


# ─── Base Model ────────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.
    All models in rentals/models/ should inherit from this class.
    """
    pass


# ─── Engine ────────────────────────────────────────────────────────────────────
def build_engine(settings: Settings) -> Engine:
    """
    Create the engine for settings.DATABASE_URL.
    SQLite gets a thread-shareable connection; in-memory SQLite a single
    static connection so every session sees the same database.
    """
    url = settings.DATABASE_URL
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}, "echo": settings.DATABASE_ECHO}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)

    return create_engine(
        url,
        poolclass=QueuePool,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_timeout=settings.DATABASE_POOL_TIMEOUT,
        pool_pre_ping=True,          # Detect stale connections before using them
        echo=settings.DATABASE_ECHO,
    )


# ─── Session Factory ───────────────────────────────────────────────────────────
def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,      # Avoid DetachedInstanceError after commit
    )


def init_db(engine: Engine) -> None:
    """Create missing tables. Production schemas are managed by Alembic."""
    import rentals.models  # noqa: F401  registers models on Base.metadata
    Base.metadata.create_all(bind=engine)


# ─── Health Check ──────────────────────────────────────────────────────────────
def check_db_connection(engine: Engine) -> bool:
    """Verify database is reachable. Used at startup."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False
