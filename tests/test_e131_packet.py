import pytest

from e131.e131 import (
    ERR_ACN_ID,
    ERR_DMP_VECTOR,
    ERR_FRAME_VECTOR,
    ERR_LENGTH,
    ERR_ROOT_VECTOR,
    ERR_TOO_SHORT,
    ERR_UNIVERSE,
    HEADER_SIZE,
    OPT_PREVIEW,
    OPT_STREAM_TERMINATED,
    Packet,
    get_multicast_group,
    sequence_delta,
)
from e131.sender import build_data_packet


def test_valid_packet_accessors():
    cid = bytes(range(16))
    data = build_data_packet(7, 42, b"\x01\x02\x03", source_name="desk",
                             priority=150, cid=cid, options=OPT_PREVIEW)
    p = Packet(data, ("10.0.0.5", 5568))

    assert len(data) == HEADER_SIZE + 3
    assert p.validate() is None
    assert p.universe == 7 and p.get_universe() == 7
    assert p.sequence_number == 42 and p.get_sequence_number() == 42
    assert p.source_name == "desk"
    assert p.priority == 150
    assert p.cid == cid
    assert p.start_code == 0
    assert p.slots == b"\x01\x02\x03"
    assert p.slots_count == 3
    assert p.is_preview and not p.is_stream_terminated and not p.is_force_sync
    assert p.address == ("10.0.0.5", 5568)


def test_full_universe_frame():
    p = Packet(build_data_packet(63999, 255, bytes(512), options=OPT_STREAM_TERMINATED))
    assert p.validate() is None
    assert p.universe == 63999
    assert p.slots_count == 512
    assert p.is_stream_terminated


def _corrupt(offset, value):
    data = bytearray(build_data_packet(1, 1, b"\xff" * 3))
    data[offset] = value
    return bytes(data)


@pytest.mark.parametrize("data, reason", [
    (b"\x00" * 10, ERR_TOO_SHORT),
    (_corrupt(4, 0x00), ERR_ACN_ID),
    (_corrupt(21, 0x08), ERR_ROOT_VECTOR),
    (_corrupt(43, 0x01), ERR_FRAME_VECTOR),
    (_corrupt(117, 0x03), ERR_DMP_VECTOR),
    (build_data_packet(0, 1), ERR_UNIVERSE),
    (build_data_packet(64000, 1), ERR_UNIVERSE),
    (build_data_packet(1, 1, b"\x01\x02\x03")[:-1], ERR_LENGTH),
    (_corrupt(124, 0x00), ERR_LENGTH),
])
def test_validate_reasons(data, reason):
    assert Packet(data).validate() == reason


@pytest.mark.parametrize("new, last, expected", [
    (11, 10, 1),
    (10, 10, 0),
    (9, 10, -1),
    (0, 255, 1),
    (255, 0, -1),
    (250, 5, -11),
    (127, 0, 127),
    (128, 0, -128),
])
def test_sequence_delta(new, last, expected):
    assert sequence_delta(new, last) == expected


@pytest.mark.parametrize("seq, last, discarded", [
    (11, 10, False),
    (10, 10, True),    # doublon
    (9, 10, True),     # en retard
    (0, 255, False),   # rebouclage
    (250, 5, True),    # en retard à travers le rebouclage
    (237, 0, True),    # delta -19
    (236, 0, False),   # delta -20 : hors fenêtre, la source a redémarré
])
def test_discard_rule(seq, last, discarded):
    assert Packet(build_data_packet(1, seq)).discard(last) is discarded


@pytest.mark.parametrize("universe, group", [
    (1, "239.255.0.1"),
    (256, "239.255.1.0"),
    (4660, "239.255.18.52"),
    (63999, "239.255.249.255"),
])
def test_multicast_group(universe, group):
    assert get_multicast_group(universe) == group


@pytest.mark.parametrize("universe", [0, 64000, -1, True, "1", None])
def test_multicast_group_rejects_invalid_universe(universe):
    with pytest.raises(ValueError):
        get_multicast_group(universe)


def test_repr_does_not_fail_on_garbage():
    assert "invalid" in repr(Packet(b"junk"))
    assert "u=3" in repr(Packet(build_data_packet(3, 9)))
