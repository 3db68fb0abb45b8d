# e131/sender.py
import argparse
import socket
import struct
import time
import uuid
from typing import Dict, Optional

from e131.e131 import (
    ACN_PACKET_IDENTIFIER,
    DEFAULT_PORT,
    DMP_ADDRESS_TYPE_DATA_TYPE,
    MAX_SLOTS,
    VECTOR_DMP_SET_PROPERTY,
    VECTOR_E131_DATA_PACKET,
    VECTOR_ROOT_E131_DATA,
    get_multicast_group,
)


def build_data_packet(universe: int, sequence: int, slots: bytes = b"",
                      source_name: str = "sacn-receiver faker", priority: int = 100,
                      cid: Optional[bytes] = None, options: int = 0,
                      start_code: int = 0, sync_address: int = 0) -> bytes:
    """
    Construit un paquet de données E1.31 complet (root + framing + DMP).
    Les longueurs des trois couches sont codées avec les flags 0x7.
    """
    if len(slots) > MAX_SLOTS:
        raise ValueError(f"at most {MAX_SLOTS} slots, got {len(slots)}")
    if cid is None:
        cid = uuid.uuid4().bytes
    if len(cid) != 16:
        raise ValueError("CID must be 16 bytes")

    dmp_len = 11 + len(slots)
    framing_len = 77 + dmp_len
    root_len = 22 + framing_len

    name = source_name.encode("utf-8")[:63]

    pkt = bytearray()
    # root layer
    pkt += struct.pack(">HH", 0x0010, 0x0000)
    pkt += ACN_PACKET_IDENTIFIER
    pkt += struct.pack(">HI", 0x7000 | root_len, VECTOR_ROOT_E131_DATA)
    pkt += cid
    # framing layer
    pkt += struct.pack(">HI", 0x7000 | framing_len, VECTOR_E131_DATA_PACKET)
    pkt += name + b"\x00" * (64 - len(name))
    pkt += struct.pack(">BHBBH", priority & 0xFF, sync_address, sequence & 0xFF,
                       options & 0xFF, universe)
    # DMP layer
    pkt += struct.pack(">HBBHHH", 0x7000 | dmp_len, VECTOR_DMP_SET_PROPERTY,
                       DMP_ADDRESS_TYPE_DATA_TYPE, 0x0000, 0x0001, len(slots) + 1)
    pkt += bytes([start_code & 0xFF])
    pkt += bytes(slots)
    return bytes(pkt)


class E131Sender:
    """
    Émetteur sACN minimal : un numéro de séquence par univers, envoi vers le
    groupe multicast de l'univers ou vers une IP unicast.
    """
    def __init__(self, target_ip: Optional[str] = None, port: int = DEFAULT_PORT,
                 source_name: str = "sacn-receiver faker", priority: int = 100,
                 ttl: int = 1):
        self.target_ip = target_ip
        self.port = port
        self.source_name = source_name
        self.priority = priority
        self.cid = uuid.uuid4().bytes
        self.sequences: Dict[int, int] = {}
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, ttl)

    def _destination(self, universe: int):
        if self.target_ip:
            return (self.target_ip, self.port)
        return (get_multicast_group(universe), self.port)

    def send_dmx(self, universe: int, slots: bytes, options: int = 0) -> int:
        """Envoie les slots sur l'univers, retourne le numéro de séquence utilisé."""
        # un récepteur neuf part de 0 : une première trame à 0 serait vue comme un doublon
        seq = self.sequences.get(universe, 1)
        pkt = build_data_packet(universe, seq, slots, source_name=self.source_name,
                                priority=self.priority, cid=self.cid, options=options)
        self.sock.sendto(pkt, self._destination(universe))
        self.sequences[universe] = (seq + 1) % 256
        return seq

    def close(self):
        self.sock.close()


def parse_levels(s: str):
    parts = [int(x) for x in s.split(",") if x.strip()]
    if not parts:
        raise ValueError("use L1,L2,... (ex: 255,0,0)")
    return bytes(max(0, min(255, v)) for v in parts)


def main(argv=None):
    ap = argparse.ArgumentParser(
        description="Send test E1.31 (sACN) frames on one universe"
    )
    ap.add_argument("--universe", type=int, default=1)
    ap.add_argument("--ip", default=None,
                    help="Unicast target (default: universe multicast group)")
    ap.add_argument("--port", type=int, default=DEFAULT_PORT)
    ap.add_argument("--levels", default="255,0,0",
                    help="First channel levels, comma separated (ex: 255,0,0)")
    ap.add_argument("--slots", type=int, default=MAX_SLOTS,
                    help="Number of DMX slots per frame")
    ap.add_argument("--seconds", type=float, default=3.0)
    ap.add_argument("--fps", type=float, default=30.0)
    args = ap.parse_args(argv)

    levels = parse_levels(args.levels)
    frame = bytearray(max(len(levels), min(MAX_SLOTS, args.slots)))
    frame[:len(levels)] = levels

    sender = E131Sender(args.ip, args.port)
    dt = 1.0 / max(args.fps, 1e-3)
    t_end = time.time() + max(0.1, args.seconds)
    dest = args.ip or get_multicast_group(args.universe)

    print(f"🎯 sending {len(frame)} slots → {dest}:{args.port} universe {args.universe} "
          f"for {args.seconds}s @ {args.fps} fps")
    try:
        while time.time() < t_end:
            sender.send_dmx(args.universe, bytes(frame))
            time.sleep(dt)
    except KeyboardInterrupt:
        pass
    finally:
        sender.close()
        print("✅ done")


if __name__ == "__main__":
    main()
