# sacn_receiver/events.py
import enum
import logging
from typing import Callable, Dict, List

log = logging.getLogger(__name__)


class ServerEvent(enum.Enum):
    """Notifications émises par le Server (valeur = nom historique de l'événement)."""
    LISTENING = "listening"              # ()
    PACKET = "packet"                    # (packet,)
    PACKET_OUT_OF_ORDER = "packet-out-of-order"  # (packet,)
    PACKET_ERROR = "packet-error"        # (packet, reason)
    ERROR = "error"                      # (exc,)
    CLOSE = "close"                      # ()


class EventBus:
    """
    Registre de callbacks par événement.

    emit() appelle les callbacks dans l'ordre d'abonnement ; un callback qui
    lève est journalisé et n'empêche pas les suivants.
    """
    def __init__(self):
        self._handlers: Dict[ServerEvent, List[Callable]] = {ev: [] for ev in ServerEvent}

    def on(self, event, callback: Callable) -> Callable[[], None]:
        event = ServerEvent(event)
        self._handlers[event].append(callback)

        def unsubscribe():
            try:
                self._handlers[event].remove(callback)
            except ValueError:
                pass
        return unsubscribe

    def emit(self, event: ServerEvent, *payload):
        for callback in list(self._handlers[event]):
            try:
                callback(*payload)
            except Exception:
                log.exception("%s handler %r failed", event.value, callback)
