# sacn_receiver/monitor.py
import asyncio
import threading
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Optional

from e131.e131 import Packet
from sacn_receiver.config_yaml import ServerConfig
from sacn_receiver.events import ServerEvent
from sacn_receiver.server import Server


@dataclass
class UniverseCounters:
    packets: int = 0
    out_of_order: int = 0
    last_sequence: Optional[int] = None
    source_name: str = ""
    source_ip: Optional[str] = None


class UniverseStats:
    """
    Compteurs par univers alimentés par les événements d'un Server.
    snapshot() peut être lu depuis un autre thread (web UI).
    """
    def __init__(self, server: Optional[Server] = None):
        self.universes: Dict[int, UniverseCounters] = {}
        self.errors: Dict[str, int] = {}
        self.socket_errors = 0
        self._lock = threading.Lock()
        self._unsubscribes: List[Callable[[], None]] = []
        if server is not None:
            self.attach(server)

    def attach(self, server: Server):
        self._unsubscribes += [
            server.on(ServerEvent.PACKET, self.on_packet),
            server.on(ServerEvent.PACKET_OUT_OF_ORDER, self.on_out_of_order),
            server.on(ServerEvent.PACKET_ERROR, self.on_packet_error),
            server.on(ServerEvent.ERROR, self.on_error),
        ]

    def detach(self):
        for unsubscribe in self._unsubscribes:
            unsubscribe()
        self._unsubscribes.clear()

    def _counters(self, packet: Packet) -> UniverseCounters:
        c = self.universes.get(packet.universe)
        if c is None:
            c = self.universes[packet.universe] = UniverseCounters()
        c.source_name = packet.source_name
        if packet.address:
            c.source_ip = packet.address[0]
        return c

    def on_packet(self, packet: Packet):
        with self._lock:
            c = self._counters(packet)
            c.packets += 1
            c.last_sequence = packet.sequence_number

    def on_out_of_order(self, packet: Packet):
        with self._lock:
            self._counters(packet).out_of_order += 1

    def on_packet_error(self, packet: Packet, reason: str):
        with self._lock:
            self.errors[reason] = self.errors.get(reason, 0) + 1

    def on_error(self, exc: Exception):
        with self._lock:
            self.socket_errors += 1

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "universes": {str(u): asdict(c) for u, c in sorted(self.universes.items())},
                "packet_errors": dict(self.errors),
                "socket_errors": self.socket_errors,
            }


def format_packet_line(packet: Packet, channels: int = 12) -> str:
    n = max(1, min(channels, packet.slots_count)) if packet.slots_count else 0
    preview = " ".join(f"{v:3d}" for v in packet.slots[:n])
    src = packet.address[0] if packet.address else "-"
    return (f"u{packet.universe:03d} seq={packet.sequence_number:03d} from {src} "
            f"'{packet.source_name}' prio={packet.priority} len={packet.slots_count}  "
            f"ch1..{n}: {preview}")


def _start_webui(server: Server, stats: UniverseStats, loop, http_port: int):
    # import local : Flask n'est chargé que si la web UI est demandée
    from sacn_receiver.webui import create_app

    app = create_app(server, stats, loop)
    t = threading.Thread(
        target=lambda: app.run(host="127.0.0.1", port=http_port, debug=False, use_reloader=False),
        daemon=True,
    )
    t.start()
    print(f"🌐 web UI on http://127.0.0.1:{http_port}")
    return t


async def monitor(config: ServerConfig, channels: int = 12, every: int = 1,
                  http_port: Optional[int] = None):
    loop = asyncio.get_running_loop()
    server = Server(config)
    stats = UniverseStats(server)
    every = max(1, int(every))

    def on_listening():
        host, port = server.address
        print(f"🛰️ sACN listening on {host or '0.0.0.0'}:{port} "
              f"universes={list(server.universes) or 'none (unicast only)'}")

    def on_packet(packet: Packet):
        c = stats.universes.get(packet.universe)
        if c is None or c.packets % every == 0:
            print(format_packet_line(packet, channels))

    server.on(ServerEvent.LISTENING, on_listening)
    server.on(ServerEvent.PACKET, on_packet)
    server.on(ServerEvent.PACKET_OUT_OF_ORDER,
              lambda p: print(f"🔀 u{p.universe:03d} out of order seq={p.sequence_number:03d}"))
    server.on(ServerEvent.PACKET_ERROR,
              lambda p, reason: print(f"⚠️ from {p.address[0] if p.address else '-'} : "
                                      f"{reason} (len={len(p)})"))
    server.on(ServerEvent.ERROR, lambda exc: print(f"❌ socket error: {exc}"))
    server.on(ServerEvent.CLOSE, lambda: print("✅ closed"))

    if http_port:
        _start_webui(server, stats, loop, http_port)

    try:
        await server.wait_closed()
    finally:
        server.close()
    return stats


def run_monitor(config: ServerConfig, channels: int = 12, every: int = 1,
                http_port: Optional[int] = None):
    try:
        asyncio.run(monitor(config, channels, every, http_port))
    except KeyboardInterrupt:
        print("👋 stopped")
