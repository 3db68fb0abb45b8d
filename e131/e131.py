# e131/e131.py
import struct
from typing import Optional, Tuple

DEFAULT_PORT = 5568

ACN_PACKET_IDENTIFIER = b"ASC-E1.17\x00\x00\x00"
VECTOR_ROOT_E131_DATA = 0x00000004
VECTOR_E131_DATA_PACKET = 0x00000002
VECTOR_DMP_SET_PROPERTY = 0x02
DMP_ADDRESS_TYPE_DATA_TYPE = 0xA1

MIN_UNIVERSE = 1
MAX_UNIVERSE = 63999

# root (38) + framing (77) + entête DMP (10) + START code (1)
HEADER_SIZE = 126
MAX_SLOTS = 512

OPT_PREVIEW = 0x80
OPT_STREAM_TERMINATED = 0x40
OPT_FORCE_SYNC = 0x20

# Raisons de rejet renvoyées par Packet.validate() (None = paquet OK)
ERR_NONE = None
ERR_TOO_SHORT = "too_short"
ERR_ACN_ID = "bad_acn_identifier"
ERR_ROOT_VECTOR = "bad_root_vector"
ERR_FRAME_VECTOR = "bad_framing_vector"
ERR_DMP_VECTOR = "bad_dmp_vector"
ERR_UNIVERSE = "universe_out_of_range"
ERR_LENGTH = "bad_property_count"

# Fenêtre de rejet des numéros de séquence (ANSI E1.31 §6.7.2)
SEQUENCE_DISCARD_WINDOW = 20


def is_valid_universe(universe) -> bool:
    return (isinstance(universe, int) and not isinstance(universe, bool)
            and MIN_UNIVERSE <= universe <= MAX_UNIVERSE)


def get_multicast_group(universe: int) -> str:
    """
    Adresse multicast sACN d'un univers : 239.255.<octet haut>.<octet bas>.
    """
    if not is_valid_universe(universe):
        raise ValueError(f"universe must be {MIN_UNIVERSE}..{MAX_UNIVERSE}, got {universe!r}")
    return f"239.255.{(universe >> 8) & 0xFF}.{universe & 0xFF}"


def sequence_delta(new: int, last: int) -> int:
    """Différence new - last lue comme un entier signé sur 8 bits (-128..127)."""
    d = (new - last) & 0xFF
    return d - 256 if d >= 128 else d


class Packet:
    """
    Datagramme E1.31 (sACN) de données DMX.

    Le buffer n'est pas décodé à la construction : appeler validate() avant
    d'utiliser les accesseurs, un buffer tronqué lève struct.error.
      0..15   : préambule, postambule, identifiant ACN
     16..37   : root layer (flags/len, vector, CID)
     38..114  : framing layer (vector, source, priorité, sync, séquence, options, univers)
    115..125  : DMP layer (vector, type, adresse, incrément, nb de valeurs, START code)
    126..     : slots DMX
    """

    def __init__(self, data: bytes, address: Optional[Tuple[str, int]] = None):
        self.data = bytes(data)
        # (ip, port) de l'émetteur quand le paquet vient du réseau
        self.address = address

    def __len__(self):
        return len(self.data)

    def __repr__(self):
        if self.validate() is not None:
            return f"<Packet invalid len={len(self.data)}>"
        return f"<Packet u={self.universe} seq={self.sequence_number} slots={self.slots_count}>"

    # ---------- Validation ----------
    def validate(self) -> Optional[str]:
        data = self.data
        if len(data) < HEADER_SIZE:
            return ERR_TOO_SHORT
        if data[4:16] != ACN_PACKET_IDENTIFIER:
            return ERR_ACN_ID
        if struct.unpack_from(">I", data, 18)[0] != VECTOR_ROOT_E131_DATA:
            return ERR_ROOT_VECTOR
        if struct.unpack_from(">I", data, 40)[0] != VECTOR_E131_DATA_PACKET:
            return ERR_FRAME_VECTOR
        if data[117] != VECTOR_DMP_SET_PROPERTY:
            return ERR_DMP_VECTOR
        if not is_valid_universe(struct.unpack_from(">H", data, 113)[0]):
            return ERR_UNIVERSE
        count = struct.unpack_from(">H", data, 123)[0]
        if count < 1 or count > MAX_SLOTS + 1 or len(data) < HEADER_SIZE - 1 + count:
            return ERR_LENGTH
        return ERR_NONE

    def discard(self, last_sequence_number: int) -> bool:
        """
        True si le paquet est périmé ou dupliqué par rapport au dernier numéro vu.
        """
        delta = sequence_delta(self.sequence_number, last_sequence_number)
        return -SEQUENCE_DISCARD_WINDOW < delta <= 0

    # ---------- Accesseurs ----------
    @property
    def cid(self) -> bytes:
        return self.data[22:38]

    @property
    def source_name(self) -> str:
        raw = self.data[44:108]
        end = raw.find(b"\x00")
        if end != -1:
            raw = raw[:end]
        return raw.decode("utf-8", errors="replace")

    @property
    def priority(self) -> int:
        return self.data[108]

    @property
    def sync_address(self) -> int:
        return struct.unpack_from(">H", self.data, 109)[0]

    @property
    def sequence_number(self) -> int:
        return self.data[111]

    @property
    def options(self) -> int:
        return self.data[112]

    @property
    def is_preview(self) -> bool:
        return bool(self.options & OPT_PREVIEW)

    @property
    def is_stream_terminated(self) -> bool:
        return bool(self.options & OPT_STREAM_TERMINATED)

    @property
    def is_force_sync(self) -> bool:
        return bool(self.options & OPT_FORCE_SYNC)

    @property
    def universe(self) -> int:
        return struct.unpack_from(">H", self.data, 113)[0]

    @property
    def start_code(self) -> int:
        return self.data[125]

    @property
    def slots_count(self) -> int:
        return struct.unpack_from(">H", self.data, 123)[0] - 1

    @property
    def slots(self) -> bytes:
        return self.data[HEADER_SIZE:HEADER_SIZE + self.slots_count]

    # noms de l'API historique
    def get_universe(self) -> int:
        return self.universe

    def get_sequence_number(self) -> int:
        return self.sequence_number
