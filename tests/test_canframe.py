import struct

import pytest

from cantoolkit.canframe import (
    CAN_EFF_FLAG,
    CAN_MTU,
    CAN_RTR_FLAG,
    CANFD_MAX_DLC,
    CanFrame,
    bit,
    can_dlc2len,
    field_get,
    genmask,
    get_canfd_dlc,
    unpack_frame,
)


def test_pack_has_mtu_length_and_layout():
    frame = CanFrame(can_id=0x123, data=b"\x11\x22\x33")
    raw = frame.pack()
    assert len(raw) == CAN_MTU
    assert struct.unpack_from("=I", raw)[0] == 0x123
    assert raw[4] == 3
    assert raw[8:11] == b"\x11\x22\x33"
    assert raw[11:] == bytes(5)


@pytest.mark.parametrize(
    "frame",
    [
        CanFrame(),
        CanFrame(can_id=0x7FF, data=b"\x01"),
        CanFrame(can_id=0x1ABCDEF | CAN_EFF_FLAG, data=bytes(range(8))),
        CanFrame(can_id=0x10 | CAN_RTR_FLAG, data=b"", len8_dlc=0),
        CanFrame(can_id=0x55, data=bytes(8), len8_dlc=12),
    ],
)
def test_round_trip(frame):
    assert unpack_frame(frame.pack()) == frame


def test_flags_and_arbitration_id():
    frame = CanFrame(can_id=0x12345 | CAN_EFF_FLAG | CAN_RTR_FLAG)
    assert frame.is_extended
    assert frame.is_remote
    assert not frame.is_error
    assert frame.arbitration_id == 0x12345


def test_payload_too_long_rejected():
    with pytest.raises(ValueError):
        CanFrame(data=bytes(9))


def test_can_id_out_of_range_rejected():
    with pytest.raises(ValueError):
        CanFrame(can_id=1 << 32)


def test_unpack_wrong_size_rejected():
    with pytest.raises(ValueError):
        unpack_frame(bytes(15))


def test_unpack_invalid_length_rejected():
    raw = bytearray(CanFrame().pack())
    raw[4] = 9
    with pytest.raises(ValueError):
        unpack_frame(bytes(raw))


def test_genmask_is_union_of_bits():
    for high in range(0, 32):
        for low in range(0, high + 1):
            expected = 0
            for n in range(low, high + 1):
                expected |= bit(n)
            assert genmask(high, low) == expected


def test_genmask_invalid_range():
    with pytest.raises(ValueError):
        genmask(2, 5)


@pytest.mark.parametrize("high,low", [(31, 28), (26, 24), (6, 0), (15, 9)])
def test_field_get_round_trip(high, low):
    mask = genmask(high, low)
    width = high - low + 1
    for value in (0, 1, (1 << width) - 1):
        assert field_get(mask, (value << low) | ~mask & 0xFFFFFFFF) == value


def test_field_get_zero_mask_rejected():
    with pytest.raises(ValueError):
        field_get(0, 5)


def test_get_canfd_dlc_clamps():
    assert get_canfd_dlc(3) == 3
    assert get_canfd_dlc(200) == CANFD_MAX_DLC


def test_can_dlc2len_table():
    assert [can_dlc2len(d) for d in range(16)] == [
        0, 1, 2, 3, 4, 5, 6, 7, 8, 12, 16, 20, 24, 32, 48, 64,
    ]
    assert can_dlc2len(0x1F) == can_dlc2len(0x0F)