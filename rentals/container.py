import logging
from dataclasses import dataclass

from sqlalchemy.engine import Engine

from rentals.config import Settings
from rentals.database import build_engine, build_session_factory
from rentals.repositories import InMemoryStore, SqlUnitOfWork
from rentals.repositories.base import UnitOfWorkFactory
from rentals.services.availability_service import AvailabilityResolver
from rentals.services.rental_service import RentalService
from rentals.services.transaction_service import RentalTransactionOrchestrator
from rentals.utils.events import EventPublisher, LoggingEventPublisher
from rentals.utils.locks import KeyedLock
from rentals.utils.payments import HttpPaymentGateway, PaymentGateway

logger = logging.getLogger(__name__)


@dataclass
class Container:
    settings:     Settings
    uow_factory:  UnitOfWorkFactory
    resolver:     AvailabilityResolver
    orchestrator: RentalTransactionOrchestrator
    service:      RentalService
    engine:       Engine | None = None
    memory_store: InMemoryStore | None = None


def build_container(
    settings: Settings,
    uow_factory: UnitOfWorkFactory | None = None,
    payments: PaymentGateway | None = None,
    events: EventPublisher | None = None,
) -> Container:
    """
    Wire stores, locks and services from settings.
    Pass uow_factory to run on a store built elsewhere (tests).
    """
    engine = None
    memory_store = None
    if uow_factory is None:
        if settings.STORE_BACKEND == "memory":
            memory_store = InMemoryStore()
            uow_factory = memory_store.unit_of_work
        else:
            engine = build_engine(settings)
            session_factory = build_session_factory(engine)
            uow_factory = lambda: SqlUnitOfWork(session_factory)  # noqa: E731

    if settings.RESERVATION_LOCK_MODE == "process":
        vehicle_locks, rental_locks = KeyedLock("vehicle"), KeyedLock("rental")
    else:
        vehicle_locks = rental_locks = None

    resolver = AvailabilityResolver(uow_factory)
    orchestrator = RentalTransactionOrchestrator(
        uow_factory,
        resolver=resolver,
        vehicle_locks=vehicle_locks,
        rental_locks=rental_locks,
        lock_timeout=settings.LOCK_TIMEOUT_SECONDS,
    )
    service = RentalService(
        orchestrator,
        resolver,
        uow_factory,
        payments=payments or HttpPaymentGateway(
            settings.PAYMENT_GATEWAY_BASE_URL,
            api_key=settings.PAYMENT_GATEWAY_API_KEY,
            timeout=settings.PAYMENT_TIMEOUT_SECONDS,
            retry_attempts=settings.PAYMENT_RETRY_ATTEMPTS,
        ),
        publisher=events or LoggingEventPublisher(),
        conflict_retries=settings.CONFLICT_RETRY_ATTEMPTS,
    )

    logger.info(f"Container ready: store={settings.STORE_BACKEND if engine or memory_store else 'external'}, "
                f"locks={settings.RESERVATION_LOCK_MODE}")
    return Container(
        settings=settings,
        uow_factory=uow_factory,
        resolver=resolver,
        orchestrator=orchestrator,
        service=service,
        engine=engine,
        memory_store=memory_store,
    )
