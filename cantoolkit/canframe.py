"""Classic CAN frame layout, identifier flags and small bit-field helpers."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum

# Special address description flags for the CAN identifier.
CAN_EFF_FLAG = 0x80000000  # extended frame format
CAN_RTR_FLAG = 0x40000000  # remote transmission request
CAN_ERR_FLAG = 0x20000000  # error message frame

# Valid bits in a CAN identifier for the frame formats.
CAN_SFF_MASK = 0x000007FF
CAN_EFF_MASK = 0x1FFFFFFF
CAN_ERR_MASK = 0x1FFFFFFF

CAN_SFF_ID_BITS = 11
CAN_EFF_ID_BITS = 29

# Payload length and DLC limits (ISO 11898-1 / ISO 11898-7).
CAN_MAX_DLC = 8
CAN_MAX_RAW_DLC = 15
CAN_MAX_DLEN = 8
CANFD_MAX_DLC = 15
CANFD_MAX_DLEN = 64

# CAN FD frame flags.
CANFD_BRS = 0x01
CANFD_ESI = 0x02
CANFD_FDF = 0x04

CAN_MTU = 16
CANFD_MTU = 72

# Protocols of the CAN protocol family.
CAN_RAW = 1
CAN_BCM = 2
CAN_TP16 = 3
CAN_TP20 = 4
CAN_MCNET = 5
CAN_ISOTP = 6
CAN_J1939 = 7
CAN_NPROTO = 8

SOL_CAN_BASE = 100
SOL_CAN_RAW = SOL_CAN_BASE + CAN_RAW

CAN_INV_FILTER = 0x20000000
CAN_RAW_FILTER_MAX = 512

SCM_CAN_RAW_ERRQUEUE = 1


class RawOption(IntEnum):
    """Socket options of raw CAN sockets."""

    FILTER = 1
    ERR_FILTER = 2
    LOOPBACK = 3
    RECV_OWN_MSGS = 4
    FD_FRAMES = 5
    JOIN_FILTERS = 6


_FRAME_STRUCT = struct.Struct("=IBBBB8s")
_U32_MAX = 0xFFFFFFFF

_DLC2LEN = (0, 1, 2, 3, 4, 5, 6, 7, 8, 12, 16, 20, 24, 32, 48, 64)


@dataclass(frozen=True)
class CanFrame:
    """A classic CAN frame: identifier with flags and up to 8 data bytes."""

    can_id: int = 0
    data: bytes = b""
    len8_dlc: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", bytes(self.data))
        if not 0 <= self.can_id <= _U32_MAX:
            raise ValueError(f"can_id out of range: {self.can_id:#x}")
        if len(self.data) > CAN_MAX_DLEN:
            raise ValueError(f"classic CAN payload exceeds {CAN_MAX_DLEN} bytes")
        if not 0 <= self.len8_dlc <= 0xFF:
            raise ValueError(f"len8_dlc out of range: {self.len8_dlc}")

    @property
    def dlc(self) -> int:
        """Payload length in bytes."""
        return len(self.data)

    @property
    def is_extended(self) -> bool:
        return bool(self.can_id & CAN_EFF_FLAG)

    @property
    def is_remote(self) -> bool:
        return bool(self.can_id & CAN_RTR_FLAG)

    @property
    def is_error(self) -> bool:
        return bool(self.can_id & CAN_ERR_FLAG)

    @property
    def arbitration_id(self) -> int:
        """The identifier without flag bits."""
        return self.can_id & (CAN_EFF_MASK if self.is_extended else CAN_SFF_MASK)

    def pack(self) -> bytes:
        """Return the frame in the kernel's 16-byte native layout."""
        return _FRAME_STRUCT.pack(
            self.can_id, len(self.data), 0, 0, self.len8_dlc, self.data
        )


def unpack_frame(raw: bytes) -> CanFrame:
    """Decode a frame from the kernel's 16-byte native layout."""
    if len(raw) != CAN_MTU:
        raise ValueError(f"expected {CAN_MTU} bytes, got {len(raw)}")
    can_id, length, _pad, _res0, len8_dlc, data = _FRAME_STRUCT.unpack(raw)
    if length > CAN_MAX_DLEN:
        raise ValueError(f"invalid payload length {length}")
    return CanFrame(can_id=can_id, data=data[:length], len8_dlc=len8_dlc)


def bit(n: int) -> int:
    """Return a value with only bit ``n`` set."""
    if n < 0:
        raise ValueError("bit number must not be negative")
    return 1 << n


def genmask(high: int, low: int) -> int:
    """Return a contiguous mask with bits ``low`` to ``high`` set."""
    if low < 0 or high < low:
        raise ValueError(f"invalid mask range {high}..{low}")
    return ((1 << (high + 1)) - 1) & ~((1 << low) - 1)


def field_get(mask: int, value: int) -> int:
    """Extract the field selected by ``mask`` from ``value``."""
    if mask <= 0:
        raise ValueError("mask must be a positive value")
    shift = (mask & -mask).bit_length() - 1
    return (value & mask) >> shift


def get_canfd_dlc(dlc: int) -> int:
    """Clamp a DLC to the CAN FD maximum."""
    return min(dlc, CANFD_MAX_DLC)


def can_dlc2len(dlc: int) -> int:
    """Return the payload length for a (sanitised) DLC."""
    return _DLC2LEN[dlc & 0x0F]