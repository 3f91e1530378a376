import logging
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)

RENTAL_STARTED   = "rental.started"
RENTAL_ACTIVATED = "rental.activated"
RENTAL_RENEWED   = "rental.renewed"
RENTAL_ENDED     = "rental.ended"
RENTAL_RETURNED  = "rental.returned"
RENTAL_CANCELED  = "rental.canceled"


class EventPublisher(ABC):

    @abstractmethod
    def publish(self, event_name: str, payload: dict) -> None:
        pass


class LoggingEventPublisher(EventPublisher):
    """
    Writes events to the log. Used until a broker-backed publisher exists.
    """

    def publish(self, event_name: str, payload: dict) -> None:
        logger.info(f"[EVENT] {event_name} | rental={payload.get('rentalId')} | status={payload.get('status')}")
