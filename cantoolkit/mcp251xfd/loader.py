"""Load MCP251xFD chip and driver state from a dev coredump or a regmap file."""

from __future__ import annotations

import errno
import os
import re
import struct
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Union

DUMP_MAGIC = 0x1825434D
MEM_SIZE = 0x1000

TX_FIFO = 1
RX_FIFO_0 = TX_FIFO + 1

REGMAP_DEBUGFS = "/sys/kernel/debug/regmap"

_HEADER = struct.Struct("<4I")
_OBJECT = struct.Struct("<2I")
_U32 = struct.Struct("<I")

_REGMAP_LINE = re.compile(
    r"\s*(?:0[xX])?([0-9a-fA-F]+):\s*(?:0[xX])?([0-9a-fA-F]+)\s*"
)

PathLike = Union[str, "os.PathLike[str]"]


class DumpObjectType(IntEnum):
    """Kinds of object in a dev coredump."""

    REG = 0
    TEF = 1
    RX = 2
    TX = 3
    END = 0xFFFFFFFF


class RingKey(IntEnum):
    """Ring attributes stored in a dev coredump."""

    HEAD = 0
    TAIL = 1
    BASE = 2
    NR = 3
    FIFO_NR = 4
    OBJ_NUM = 5
    OBJ_SIZE = 6


class DumpFormatError(ValueError):
    """The dump is malformed or refers to memory outside the chip."""


@dataclass
class Ring:
    """Driver view of one FIFO ring."""

    head: int = 0
    tail: int = 0
    base: int = 0
    nr: int = 0
    fifo_nr: int = 0
    obj_num: int = 0
    obj_size: int = 0

    def head_index(self) -> int:
        """Head position within the ring."""
        return (self.head & (self.obj_num - 1)) & 0xFF

    def tail_index(self) -> int:
        """Tail position within the ring."""
        return (self.tail & (self.obj_num - 1)) & 0xFF


# Field and width each ring key is stored into.
_RING_FIELDS = {
    RingKey.HEAD: ("head", 0xFFFFFFFF),
    RingKey.TAIL: ("tail", 0xFFFFFFFF),
    RingKey.BASE: ("base", 0xFFFF),
    RingKey.NR: ("nr", 0xFF),
    RingKey.FIFO_NR: ("fifo_nr", 0xFF),
    RingKey.OBJ_NUM: ("obj_num", 0xFF),
    RingKey.OBJ_SIZE: ("obj_size", 0xFF),
}


@dataclass
class ChipState:
    """Register and RAM image of the chip plus the driver's ring state."""

    mem: bytearray = field(default_factory=lambda: bytearray(MEM_SIZE))
    tef: Ring = field(default_factory=Ring)
    tx: Ring = field(default_factory=Ring)
    rx: Ring = field(default_factory=Ring)
    rx_ring_num: int = 0


def _store(mem: bytearray, reg: int, val: int) -> None:
    if reg < 0 or reg + _U32.size > len(mem):
        raise DumpFormatError(f"register 0x{reg:04x} outside of chip memory")
    _U32.pack_into(mem, reg, val & 0xFFFFFFFF)


def _read_ring(ring: Ring, objects) -> None:
    for key, val in objects:
        try:
            name, width = _RING_FIELDS[RingKey(key)]
        except ValueError:
            raise DumpFormatError(f"unknown ring key 0x{key:02x}") from None
        setattr(ring, name, val & width)


def parse_dev_coredump(state: ChipState, data: bytes) -> None:
    """Fill ``state`` from the contents of a dev coredump."""
    data = bytes(data)
    size = len(data)
    rings = {
        DumpObjectType.TEF: state.tef,
        DumpObjectType.RX: state.rx,
        DumpObjectType.TX: state.tx,
    }

    for hdr_offset in range(0, size - _HEADER.size + 1, _HEADER.size):
        magic, object_type, offset, length = _HEADER.unpack_from(data, hdr_offset)
        if magic != DUMP_MAGIC:
            break
        if offset + length > size:
            raise DumpFormatError(
                f"object at 0x{offset:04x} with length 0x{length:04x} exceeds dump"
            )

        usable = length - length % _OBJECT.size
        objects = _OBJECT.iter_unpack(data[offset:offset + usable])

        try:
            kind = DumpObjectType(object_type)
        except ValueError:
            raise DumpFormatError(f"unknown object type 0x{object_type:08x}") from None

        if kind == DumpObjectType.END:
            return
        if kind == DumpObjectType.REG:
            for reg, val in objects:
                _store(state.mem, reg, val)
        else:
            _read_ring(rings[kind], objects)

    raise DumpFormatError("dump has no end marker")


def read_dev_coredump(state: ChipState, path: PathLike) -> None:
    """Fill ``state`` from a dev coredump file."""
    parse_dev_coredump(state, Path(path).read_bytes())


def parse_regmap(state: ChipState, text: str) -> None:
    """Fill ``state`` from "reg: value" lines, stopping at the first other line."""
    pos = 0
    while (match := _REGMAP_LINE.match(text, pos)) is not None:
        reg = int(match.group(1), 16) & 0xFFFF
        if reg >= len(state.mem):
            raise DumpFormatError(f"register 0x{reg:04x} outside of chip memory")
        _store(state.mem, reg, int(match.group(2), 16))
        pos = match.end()


def _read_regmap_file(state: ChipState, path: str) -> None:
    with open(path, encoding="latin-1") as reg_file:
        parse_regmap(state, reg_file.read())


def read_regmap(state: ChipState, path: PathLike) -> None:
    """Fill ``state`` from a regmap register file or a regmap device name."""
    path = os.fspath(path)
    try:
        _read_regmap_file(state, path)
        return
    except (OSError, DumpFormatError):
        if "/" in path:
            raise FileNotFoundError(
                errno.ENOENT, os.strerror(errno.ENOENT), path
            ) from None

    try:
        _read_regmap_file(state, f"{REGMAP_DEBUGFS}/{path}/registers")
        return
    except (OSError, DumpFormatError):
        pass
    _read_regmap_file(state, f"{REGMAP_DEBUGFS}/{path}-crc/registers")


def load(path: PathLike) -> ChipState:
    """Read a dev coredump, falling back to a regmap file.

    Raises OSError or DumpFormatError if neither can be read.
    """
    state = ChipState()
    try:
        read_dev_coredump(state, path)
    except (OSError, DumpFormatError):
        read_regmap(state, path)
    return state