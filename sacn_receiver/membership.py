# sacn_receiver/membership.py
import logging
import socket
import struct
from typing import List, Optional, Set, Tuple

from e131.e131 import get_multicast_group

log = logging.getLogger(__name__)


def _mreq(group: str, interface: Optional[str]) -> bytes:
    # struct ip_mreq : groupe + interface locale (INADDR_ANY si absente)
    iface = socket.inet_aton(interface) if interface else struct.pack("!I", socket.INADDR_ANY)
    return socket.inet_aton(group) + iface


class MembershipManager:
    """
    Adhésions multicast (IP_ADD_MEMBERSHIP / IP_DROP_MEMBERSHIP) d'une socket,
    indexées par univers.

    Tant qu'aucune socket n'est attachée, les join/leave sont mémorisés et
    rejoués par attach(). Les erreurs OSError de la socket remontent à l'appelant.
    """
    def __init__(self, interface: Optional[str] = None):
        self.interface = interface
        self._sock = None
        self._joined: Set[int] = set()
        self._pending: Set[int] = set()

    @property
    def attached(self) -> bool:
        return self._sock is not None

    @property
    def joined(self) -> Set[int]:
        return set(self._joined)

    @property
    def pending(self) -> Set[int]:
        return set(self._pending)

    def is_member(self, universe: int) -> bool:
        return universe in self._joined or universe in self._pending

    def attach(self, sock) -> List[Tuple[int, OSError]]:
        """
        Associe la socket liée et rejoue les adhésions en attente (ordre croissant).
        Retourne les (univers, erreur) des adhésions refusées par la pile réseau.
        """
        self._sock = sock
        pending = sorted(self._pending)
        self._pending.clear()
        failures = []
        for universe in pending:
            try:
                self.join(universe)
            except OSError as exc:
                failures.append((universe, exc))
        return failures

    def detach(self):
        self._sock = None
        self._pending.clear()
        self._joined.clear()

    def join(self, universe: int):
        if self.is_member(universe):
            return
        if self._sock is None:
            self._pending.add(universe)
            return
        group = get_multicast_group(universe)
        self._sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP,
                              _mreq(group, self.interface))
        self._joined.add(universe)
        log.info("joined %s for universe %d", group, universe)

    def leave(self, universe: int):
        if universe in self._pending:
            self._pending.discard(universe)
            return
        if universe not in self._joined:
            return
        self._joined.discard(universe)
        group = get_multicast_group(universe)
        self._sock.setsockopt(socket.IPPROTO_IP, socket.IP_DROP_MEMBERSHIP,
                              _mreq(group, self.interface))
        log.info("left %s for universe %d", group, universe)
