import struct

import pytest

from cantoolkit.mcp251xfd.loader import (
    DUMP_MAGIC,
    MEM_SIZE,
    ChipState,
    DumpFormatError,
    DumpObjectType,
    Ring,
    RingKey,
    load,
    parse_dev_coredump,
    parse_regmap,
    read_dev_coredump,
    read_regmap,
)


def build_dump(sections, end=True):
    """Lay out headers followed by the object payloads."""
    count = len(sections) + (1 if end else 0)
    offset = 16 * count
    headers = b""
    body = b""
    for object_type, pairs in sections:
        payload = b"".join(struct.pack("<II", k, v) for k, v in pairs)
        headers += struct.pack("<4I", DUMP_MAGIC, object_type, offset, len(payload))
        body += payload
        offset += len(payload)
    if end:
        headers += struct.pack("<4I", DUMP_MAGIC, DumpObjectType.END, 0, 0)
    return headers + body


def read_u32(state, addr):
    return struct.unpack_from("<I", state.mem, addr)[0]


def test_register_objects_are_stored():
    state = ChipState()
    parse_dev_coredump(
        state, build_dump([(DumpObjectType.REG, [(0x10, 0xCAFEBABE), (0x400, 7)])])
    )
    assert read_u32(state, 0x10) == 0xCAFEBABE
    assert read_u32(state, 0x400) == 7
    assert len(state.mem) == MEM_SIZE


def test_ring_objects_fill_matching_ring():
    state = ChipState()
    pairs = [
        (RingKey.HEAD, 5),
        (RingKey.TAIL, 3),
        (RingKey.BASE, 0x400),
        (RingKey.NR, 0),
        (RingKey.FIFO_NR, 1),
        (RingKey.OBJ_NUM, 8),
        (RingKey.OBJ_SIZE, 16),
    ]
    parse_dev_coredump(state, build_dump([(DumpObjectType.TEF, pairs)]))
    assert state.tef == Ring(head=5, tail=3, base=0x400, nr=0, fifo_nr=1, obj_num=8, obj_size=16)
    assert state.rx == Ring()
    assert state.tx == Ring()


def test_rx_and_tx_go_to_their_rings():
    state = ChipState()
    parse_dev_coredump(
        state,
        build_dump(
            [
                (DumpObjectType.RX, [(RingKey.HEAD, 11)]),
                (DumpObjectType.TX, [(RingKey.TAIL, 22)]),
            ]
        ),
    )
    assert state.rx.head == 11
    assert state.tx.tail == 22
    assert state.tef.head == 0


def test_ring_fields_are_truncated():
    state = ChipState()
    parse_dev_coredump(state, build_dump([(DumpObjectType.RX, [(RingKey.BASE, 0x12345)])]))
    assert state.rx.base == 0x2345


def test_objects_after_end_are_ignored():
    state = ChipState()
    dump = struct.pack("<4I", DUMP_MAGIC, DumpObjectType.END, 0, 0) + struct.pack(
        "<4I", DUMP_MAGIC, DumpObjectType.REG, 32, 8
    ) + struct.pack("<II", 0, 0xFFFFFFFF)
    parse_dev_coredump(state, dump)
    assert read_u32(state, 0) == 0


def test_partial_trailing_object_is_ignored():
    state = ChipState()
    payload = struct.pack("<II", 0x20, 9) + b"\x01\x02\x03\x04"
    dump = (
        struct.pack("<4I", DUMP_MAGIC, DumpObjectType.REG, 32, len(payload))
        + struct.pack("<4I", DUMP_MAGIC, DumpObjectType.END, 0, 0)
        + payload
    )
    parse_dev_coredump(state, dump)
    assert read_u32(state, 0x20) == 9


def test_missing_end_marker():
    with pytest.raises(DumpFormatError):
        parse_dev_coredump(ChipState(), build_dump([(DumpObjectType.REG, [(0, 1)])], end=False))


@pytest.mark.parametrize("data", [b"", b"000: 00000000\n", bytes(64)])
def test_not_a_coredump(data):
    with pytest.raises(DumpFormatError):
        parse_dev_coredump(ChipState(), data)


def test_object_beyond_dump():
    dump = struct.pack("<4I", DUMP_MAGIC, DumpObjectType.REG, 16, 64)
    with pytest.raises(DumpFormatError):
        parse_dev_coredump(ChipState(), dump)


def test_unknown_ring_key():
    with pytest.raises(DumpFormatError):
        parse_dev_coredump(ChipState(), build_dump([(DumpObjectType.TEF, [(7, 1)])]))


def test_unknown_object_type():
    with pytest.raises(DumpFormatError):
        parse_dev_coredump(ChipState(), build_dump([(4, [])]))


def test_register_outside_memory():
    with pytest.raises(DumpFormatError):
        parse_dev_coredump(ChipState(), build_dump([(DumpObjectType.REG, [(MEM_SIZE, 1)])]))


@pytest.mark.parametrize("head, tail, obj_num", [(10, 3, 8), (33, 32, 32), (1, 0, 1), (255, 17, 16)])
def test_ring_index_wraps_for_power_of_two(head, tail, obj_num):
    ring = Ring(head=head, tail=tail, obj_num=obj_num)
    assert ring.head_index() == head % obj_num
    assert ring.tail_index() == tail % obj_num


def test_ring_index_with_zero_objects():
    assert Ring(head=0x1234, obj_num=0).head_index() == 0x34


def test_parse_regmap_lines():
    state = ChipState()
    parse_regmap(state, "000: 12345678\n004: deadbeef\n")
    assert read_u32(state, 0) == 0x12345678
    assert read_u32(state, 4) == 0xDEADBEEF


def test_parse_regmap_stops_at_garbage():
    state = ChipState()
    parse_regmap(state, "000: 00000001\nnot a register\n008: 00000002\n")
    assert read_u32(state, 0) == 1
    assert read_u32(state, 8) == 0


def test_parse_regmap_register_out_of_range():
    with pytest.raises(DumpFormatError):
        parse_regmap(ChipState(), "1000: 00000001\n")


def test_read_regmap_file(tmp_path):
    path = tmp_path / "registers"
    path.write_text("010: 000000aa\n")
    state = ChipState()
    read_regmap(state, path)
    assert read_u32(state, 0x10) == 0xAA


def test_read_regmap_missing_path_with_slash(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_regmap(ChipState(), tmp_path / "missing")


def test_read_regmap_bad_file_with_slash(tmp_path):
    path = tmp_path / "registers"
    path.write_text("2000: 00000001\n")
    with pytest.raises(FileNotFoundError):
        read_regmap(ChipState(), path)


def test_read_regmap_unknown_device_name():
    with pytest.raises(OSError):
        read_regmap(ChipState(), "cantoolkit-no-such-device")


def test_read_dev_coredump_file(tmp_path):
    path = tmp_path / "devcoredump.dump"
    path.write_bytes(build_dump([(DumpObjectType.REG, [(0x40, 0x1F000000)])]))
    state = ChipState()
    read_dev_coredump(state, path)
    assert read_u32(state, 0x40) == 0x1F000000


def test_load_coredump(tmp_path):
    path = tmp_path / "devcoredump.dump"
    path.write_bytes(
        build_dump(
            [
                (DumpObjectType.REG, [(0x50, 0x11223344)]),
                (DumpObjectType.TX, [(RingKey.OBJ_NUM, 4)]),
            ]
        )
    )
    state = load(path)
    assert read_u32(state, 0x50) == 0x11223344
    assert state.tx.obj_num == 4


def test_load_falls_back_to_regmap(tmp_path):
    path = tmp_path / "registers"
    path.write_text("000: 00000010\n004: 00000020\n")
    state = load(path)
    assert read_u32(state, 0) == 0x10
    assert read_u32(state, 4) == 0x20


def test_load_missing_file(tmp_path):
    with pytest.raises(OSError):
        load(tmp_path / "nothing-here")