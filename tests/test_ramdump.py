import struct

import pytest

from cantoolkit.mcp251xfd import registers as R
from cantoolkit.mcp251xfd.loader import ChipState
from cantoolkit.mcp251xfd.ramdump import (
    RAM_DUMP_HEADER,
    dump,
    dump_ram,
    fifo_obj_num,
    fifo_payload_size,
    format_data,
)
from cantoolkit.mcp251xfd.regdump import DUMP_END, REGISTER_DUMP_HEADER


def _set_reg(state, addr, val):
    struct.pack_into("<I", state.mem, addr, val)


def _plsize(code):
    return code << 29


@pytest.mark.parametrize(
    "code,size",
    [
        (R.REG_FIFOCON_PLSIZE_8, 8),
        (R.REG_FIFOCON_PLSIZE_12, 12),
        (R.REG_FIFOCON_PLSIZE_16, 16),
        (R.REG_FIFOCON_PLSIZE_20, 20),
        (R.REG_FIFOCON_PLSIZE_24, 24),
        (R.REG_FIFOCON_PLSIZE_32, 32),
        (R.REG_FIFOCON_PLSIZE_48, 48),
        (R.REG_FIFOCON_PLSIZE_64, 64),
    ],
)
def test_fifo_payload_size(code, size):
    assert fifo_payload_size(_plsize(code)) == size


def test_fifo_obj_num_is_fsize_plus_one():
    for fsize in range(32):
        assert fifo_obj_num(fsize << 24) == fsize + 1


def test_fifo_obj_num_ignores_other_bits():
    assert fifo_obj_num((3 << 24) | 0xE0FFFFFF & ~R.REG_FIFOCON_FSIZE_MASK) == 4


def test_format_data_empty():
    text = format_data(b"", 0)
    assert text.strip() == "data = -none-"
    assert text.endswith("\n")


def test_format_data_eight_bytes():
    text = format_data(bytes(range(8)), 8)
    assert text == f"{'data':>16} = 00 01 02 03  04 05 06 07\n"


def test_format_data_twelve_bytes_wraps():
    text = format_data(bytes(range(64)), 9)
    lines = text.splitlines()
    assert len(lines) == 2
    assert lines[1] == " " * 19 + "08 09 0a 0b"


def test_format_data_clamps_dlc():
    assert format_data(bytes(64), 15) == format_data(bytes(64), 200)
    assert len(format_data(bytes(64), 15).splitlines()) == 8


def test_format_data_short_payload():
    with pytest.raises(ValueError):
        format_data(b"\x01\x02", 8)


def test_dump_ram_object_counts():
    state = ChipState()
    _set_reg(state, R.REG_TEFCON, 3 << 24)
    _set_reg(state, R.fifocon(1), 1 << 24)
    _set_reg(state, R.fifocon(2), 5 << 24)
    text = dump_ram(state)
    assert text.startswith(RAM_DUMP_HEADER)
    assert text.endswith(DUMP_END)
    assert text.count("TEF Object:") == 4
    assert text.count("TX Object:") == 2
    assert text.count("RX Object:") == 6


def test_dump_ram_first_tef_object_at_ram_start():
    state = ChipState()
    text = dump_ram(state)
    line = next(l for l in text.splitlines() if l.startswith("TEF Object: 0x00"))
    assert "(0x400)" in line
    assert "priv-HEAD" in line
    assert "chip-TAIL" in line
    assert "priv-FIFO-empty" in line
    assert "chip-FIFO-empty" in line


def test_dump_ram_tef_object_contents():
    state = ChipState()
    struct.pack_into("<3I", state.mem, R.RAM_START, 0x123, 0x45, 0x6789)
    text = dump_ram(state)
    assert f"{'id':>16} = 0x00000123\n" in text
    assert f"{'flags':>16} = 0x00000045\n" in text
    assert f"{'ts':>16} = 0x00006789\n" in text


def test_dump_ram_priv_head_follows_ring():
    state = ChipState()
    _set_reg(state, R.REG_TEFCON, 3 << 24)
    state.tef.obj_num = 4
    state.tef.head = 6
    state.tef.tail = 1
    lines = dump_ram(state).splitlines()
    obj2 = next(l for l in lines if l.startswith("TEF Object: 0x02"))
    obj1 = next(l for l in lines if l.startswith("TEF Object: 0x01"))
    assert "priv-HEAD" in obj2
    assert "priv-TAIL" in obj1
    assert "priv-FIFO" not in obj1 + obj2


def test_dump_ram_priv_fifo_full():
    state = ChipState()
    _set_reg(state, R.REG_TEFCON, 3 << 24)
    state.tef.obj_num = 4
    state.tef.head = 4
    state.tef.tail = 0
    obj0 = next(l for l in dump_ram(state).splitlines() if l.startswith("TEF Object: 0x00"))
    assert obj0.endswith("priv-FIFO-full")


def test_dump_combines_registers_and_ram():
    state = ChipState()
    text = dump(state)
    assert text.startswith(REGISTER_DUMP_HEADER)
    assert RAM_DUMP_HEADER in text
    assert text.index(RAM_DUMP_HEADER) > text.index("RX_FIFO")
    assert text.endswith(DUMP_END)