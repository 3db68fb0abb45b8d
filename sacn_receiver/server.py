# sacn_receiver/server.py
import asyncio
import logging
import socket
from typing import Callable, Dict, Iterable, Optional, Tuple

from e131.e131 import Packet
from sacn_receiver.config_yaml import ServerConfig, normalize_universes
from sacn_receiver.events import EventBus, ServerEvent
from sacn_receiver.membership import MembershipManager
from sacn_receiver.sequence import OUT_OF_ORDER, SequenceTracker

log = logging.getLogger(__name__)

UNBOUND = "unbound"
BINDING = "binding"
LISTENING = "listening"
CLOSED = "closed"


class _E131Protocol(asyncio.DatagramProtocol):
    def __init__(self, server: "Server"):
        self.server = server

    def connection_made(self, transport):
        self.server._on_listening(transport)

    def datagram_received(self, data: bytes, addr: Tuple[str, int]):
        self.server._on_datagram(data, addr)

    def error_received(self, exc: Exception):
        self.server._on_socket_error(exc)

    def connection_lost(self, exc: Optional[Exception]):
        self.server._on_closed(exc)


class Server:
    """
    Récepteur E1.31 (sACN) sur une socket UDP IPv4.

    Le bind est lancé à la construction et se termine sur la boucle asyncio
    (événement LISTENING). Un univers est membre de son groupe multicast si et
    seulement s'il a un état de séquence ; add_universes()/drop_universes()
    maintiennent les deux ensemble, y compris avant la fin du bind (les
    adhésions sont alors rejouées quand la socket est prête).

    Toutes les méthodes et tous les callbacks s'exécutent sur la boucle
    asyncio du serveur : aucun verrou. Depuis un autre thread, passer par
    loop.call_soon_threadsafe().

        server = Server(ServerConfig(universes=[1, 2]))
        server.on(ServerEvent.PACKET, lambda packet: ...)
        server.on("packet-error", lambda packet, reason: ...)
    """

    def __init__(self, config: Optional[ServerConfig] = None,
                 loop: Optional[asyncio.AbstractEventLoop] = None):
        self.config = config if config is not None else ServerConfig()
        self._loop = loop or asyncio.get_running_loop()
        self._events = EventBus()
        self._sequences = SequenceTracker()
        self._membership = MembershipManager(self.config.multicast_interface)
        self._sock: Optional[socket.socket] = None
        self._transport: Optional[asyncio.DatagramTransport] = None
        self._closed = self._loop.create_future()
        self.state = UNBOUND

        for universe in self.config.universes:
            self._sequences.track(universe)
            self._membership.join(universe)

        self.state = BINDING
        self._bind_task = self._loop.create_task(self._bind())

    @classmethod
    def from_universes(cls, universes=1, port: Optional[int] = None,
                       loop: Optional[asyncio.AbstractEventLoop] = None) -> "Server":
        """Forme historique Server(universes, port) : univers 1 par défaut."""
        return cls(ServerConfig.legacy(universes, port), loop=loop)

    # ---------- API publique ----------
    def on(self, event, callback: Callable) -> Callable[[], None]:
        """Abonne callback à un événement ; retourne la fonction de désabonnement."""
        return self._events.on(event, callback)

    @property
    def universes(self) -> Tuple[int, ...]:
        return tuple(sorted(self._sequences))

    @property
    def last_sequence_numbers(self) -> Dict[int, int]:
        return self._sequences.snapshot()

    @property
    def port(self) -> int:
        return self.config.port

    @property
    def address(self) -> Optional[Tuple[str, int]]:
        if self.state != LISTENING or self._sock is None:
            return None
        return self._sock.getsockname()

    @property
    def closed(self) -> bool:
        return self.state == CLOSED

    def add_universes(self, universes: Iterable[int]):
        universes = normalize_universes(universes)
        if self.closed:
            return
        for universe in universes:
            if universe in self._sequences:
                continue
            self._sequences.track(universe)
            try:
                self._membership.join(universe)
            except OSError as exc:
                self._sequences.forget(universe)
                log.warning("cannot join universe %d: %s", universe, exc)
                self._events.emit(ServerEvent.ERROR, exc)

    def drop_universes(self, universes: Iterable[int]):
        if isinstance(universes, int):
            universes = [universes]
        if self.closed:
            return
        for universe in list(universes):
            if universe not in self._sequences:
                continue
            self._sequences.forget(universe)
            try:
                self._membership.leave(universe)
            except OSError as exc:
                log.warning("cannot leave universe %d: %s", universe, exc)
                self._events.emit(ServerEvent.ERROR, exc)

    def close(self):
        if self.closed:
            return
        self.state = CLOSED
        log.info("closing sACN server on port %d", self.config.port)
        if self._transport is not None:
            # connection_lost() émettra CLOSE
            self._transport.close()
        # sinon le bind est en cours : _on_listening() ou _bind() termineront

    async def wait_closed(self):
        await asyncio.shield(self._closed)

    # ---------- Socket ----------
    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            if self.config.reuse_address:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.config.bind_address or "", self.config.port))
            sock.setblocking(False)
        except OSError:
            sock.close()
            raise
        return sock

    async def _bind(self):
        if self.closed:
            self._finish_close()
            return
        try:
            self._sock = self._create_socket()
            await self._loop.create_datagram_endpoint(
                lambda: _E131Protocol(self), sock=self._sock)
        except OSError as exc:
            log.error("cannot bind sACN server on %s:%d: %s",
                      self.config.bind_address or "*", self.config.port, exc)
            if self._sock is not None:
                self._sock.close()
            if not self.closed:
                self.state = CLOSED
                self._events.emit(ServerEvent.ERROR, exc)
            self._finish_close()

    def _apply_multicast_options(self, sock):
        if self.config.multicast_interface:
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_IF,
                            socket.inet_aton(self.config.multicast_interface))
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_LOOP,
                        1 if self.config.loopback else 0)

    # ---------- Callbacks du protocole ----------
    def _on_listening(self, transport):
        self._transport = transport
        if self.closed:
            transport.close()
            return

        try:
            self._apply_multicast_options(self._sock)
        except OSError as exc:
            log.warning("cannot apply multicast options: %s", exc)
            self._events.emit(ServerEvent.ERROR, exc)

        for universe, exc in self._membership.attach(self._sock):
            self._sequences.forget(universe)
            log.warning("cannot join universe %d: %s", universe, exc)
            self._events.emit(ServerEvent.ERROR, exc)

        self.state = LISTENING
        host, port = self._sock.getsockname()
        log.info("sACN server listening on %s:%d, universes=%s", host, port, list(self.universes))
        self._events.emit(ServerEvent.LISTENING)

    def _on_datagram(self, data: bytes, addr: Tuple[str, int]):
        if self.closed:
            return
        packet = Packet(data, addr)
        reason = packet.validate()
        if reason is not None:
            log.debug("invalid packet from %s (%s, len=%d)", addr, reason, len(data))
            self._events.emit(ServerEvent.PACKET_ERROR, packet, reason)
            return

        universe = packet.universe
        if universe not in self._sequences:
            # unicast vers un univers non suivi : pas d'état de séquence
            self._events.emit(ServerEvent.PACKET, packet)
            return

        verdict = self._sequences.check_and_update(
            universe, packet.sequence_number, packet.discard)
        if verdict == OUT_OF_ORDER:
            log.debug("out of order packet u=%d seq=%d last=%d", universe,
                      packet.sequence_number, self._sequences.last(universe))
            self._events.emit(ServerEvent.PACKET_OUT_OF_ORDER, packet)
        else:
            self._events.emit(ServerEvent.PACKET, packet)

    def _on_socket_error(self, exc: Exception):
        if self.closed:
            return
        log.warning("sACN socket error: %s", exc)
        self._events.emit(ServerEvent.ERROR, exc)

    def _on_closed(self, exc: Optional[Exception]):
        if not self.closed:
            # fermeture non demandée
            self.state = CLOSED
            if exc is not None:
                self._events.emit(ServerEvent.ERROR, exc)
        self._finish_close()

    def _finish_close(self):
        if self._closed.done():
            return
        self._membership.detach()
        self._transport = None
        log.info("sACN server closed")
        self._events.emit(ServerEvent.CLOSE)
        self._closed.set_result(None)
