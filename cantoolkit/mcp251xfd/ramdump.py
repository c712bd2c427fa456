"""Human readable decoding of the MCP251xFD message RAM (TEF, TX and RX FIFOs)."""

from __future__ import annotations

import struct
from dataclasses import dataclass

from ..canframe import can_dlc2len, field_get, get_canfd_dlc
from . import registers as R
from .loader import RX_FIFO_0, TX_FIFO, ChipState, Ring
from .regdump import DUMP_END, dump_registers

_U32 = struct.Struct("<I")
_U32_MAX = 0xFFFFFFFF

RAM_DUMP_HEADER = "----------------------- RAM dump ----------------------\n"

_PAYLOAD_SIZES = {
    R.REG_FIFOCON_PLSIZE_8: 8,
    R.REG_FIFOCON_PLSIZE_12: 12,
    R.REG_FIFOCON_PLSIZE_16: 16,
    R.REG_FIFOCON_PLSIZE_20: 20,
    R.REG_FIFOCON_PLSIZE_24: 24,
    R.REG_FIFOCON_PLSIZE_32: 32,
    R.REG_FIFOCON_PLSIZE_48: 48,
    R.REG_FIFOCON_PLSIZE_64: 64,
}

_CANFD_DATA_SIZE = 64


def fifo_payload_size(con: int) -> int:
    """Payload size in bytes configured in a FIFO control register."""
    return _PAYLOAD_SIZES.get(field_get(R.REG_FIFOCON_PLSIZE_MASK, con), 0)


def fifo_obj_num(con: int) -> int:
    """Number of message objects configured in a FIFO control register."""
    return (field_get(R.REG_FIFOCON_FSIZE_MASK, con) + 1) & 0xFF


def format_data(data, dlc: int) -> str:
    """Render the payload selected by ``dlc`` as hex, eight bytes per line."""
    length = can_dlc2len(get_canfd_dlc(dlc))
    data = bytes(data)
    if not length:
        return f"{'data':>16} = -none-\n"
    if len(data) < length:
        raise ValueError(f"payload needs {length} bytes, got {len(data)}")

    parts = []
    for i, byte in enumerate(data[:length]):
        if i % 8 == 0:
            if i == 0:
                parts.append(f"{'data':>16} = {byte:02x}")
            else:
                parts.append(f"                   {byte:02x}")
        elif i % 4 == 0:
            parts.append(f"  {byte:02x}")
        elif i % 8 == 7:
            parts.append(f" {byte:02x}\n")
        else:
            parts.append(f" {byte:02x}")
    if length % 8:
        parts.append("\n")
    return "".join(parts)


@dataclass(frozen=True)
class _Layout:
    """FIFO registers and derived object placement in the message RAM."""

    tef_con: int
    tef_sta: int
    tef_ua: int
    tx_con: int
    tx_sta: int
    tx_ua: int
    rx_con: int
    rx_sta: int
    rx_ua: int

    @classmethod
    def from_mem(cls, mem: bytes) -> "_Layout":
        def reg(addr: int) -> int:
            return _U32.unpack_from(mem, addr)[0]

        return cls(
            tef_con=reg(R.REG_TEFCON),
            tef_sta=reg(R.REG_TEFSTA),
            tef_ua=reg(R.REG_TEFUA),
            tx_con=reg(R.fifocon(TX_FIFO)),
            tx_sta=reg(R.fifosta(TX_FIFO)),
            tx_ua=reg(R.fifoua(TX_FIFO)),
            rx_con=reg(R.fifocon(RX_FIFO_0)),
            rx_sta=reg(R.fifosta(RX_FIFO_0)),
            rx_ua=reg(R.fifoua(RX_FIFO_0)),
        )

    # TEF
    @property
    def tef_obj_num(self) -> int:
        return fifo_obj_num(self.tef_con)

    @property
    def tef_tail(self) -> int:
        return (self.tef_ua // R.HW_TEF_OBJ_SIZE) & 0xFF

    @staticmethod
    def tef_rel_addr(n: int) -> int:
        return (R.HW_TEF_OBJ_SIZE * (n & 0xFF)) & 0xFFFF

    # TX
    @property
    def tx_obj_size(self) -> int:
        return (R.HW_TX_OBJ_HEADER_SIZE + fifo_payload_size(self.tx_con)) & 0xFF

    @property
    def tx_obj_num(self) -> int:
        return fifo_obj_num(self.tx_con)

    def tx_rel_addr(self, n: int) -> int:
        return (self.tef_rel_addr(self.tef_obj_num) + self.tx_obj_size * (n & 0xFF)) & 0xFFFF

    @property
    def tx_tail(self) -> int:
        return (((self.tx_ua - self.tx_rel_addr(0)) & _U32_MAX) // self.tx_obj_size) & 0xFF

    @property
    def tx_head(self) -> int:
        return field_get(R.REG_FIFOSTA_FIFOCI_MASK, self.tx_sta)

    # RX
    @property
    def rx_obj_size(self) -> int:
        return (R.HW_RX_OBJ_HEADER_SIZE + fifo_payload_size(self.rx_con)) & 0xFF

    @property
    def rx_obj_num(self) -> int:
        return fifo_obj_num(self.rx_con)

    def rx_rel_addr(self, n: int) -> int:
        return (self.tx_rel_addr(self.tx_obj_num) + self.rx_obj_size * (n & 0xFF)) & 0xFFFF

    @property
    def rx_tail(self) -> int:
        return (((self.rx_ua - self.rx_rel_addr(0)) & _U32_MAX) // self.rx_obj_size) & 0xFF

    @property
    def rx_head(self) -> int:
        return field_get(R.REG_FIFOSTA_FIFOCI_MASK, self.rx_sta)


def _abs_addr(rel: int) -> int:
    return (rel + R.RAM_START) & 0xFFFF


def _read_ram(mem: bytes, rel: int, size: int) -> bytes:
    """Bytes of the message RAM at ``rel``; zeros beyond its end."""
    start = R.RAM_START + rel
    end = min(start + size, R.RAM_START + R.RAM_SIZE, len(mem))
    chunk = mem[start:end] if start < end else b""
    return chunk + bytes(size - len(chunk))


def _mask_line(name: str, mask: int, val: int, desc: str) -> str:
    return f"{name:>16} = 0x{field_get(mask, val):06x}\t\t{desc}\n"


def _value_line(name: str, val: int) -> str:
    return f"{name:>16} = 0x{val:08x}\n"


def _mark(cond: bool, text: str) -> str:
    return text if cond else ""


def _priv_fifo(ring: Ring, n: int) -> str:
    if ring.head_index() == ring.tail_index() == n:
        return "  priv-FIFO-empty" if ring.head == ring.tail else "  priv-FIFO-full"
    return ""


def _overview(title: str, chip_head, ring: Ring, chip_tail: int) -> str:
    if chip_head is None:
        head = f"{'head (p)':>16} =        0x{ring.head_index():02x}    0x{ring.head:08x}\n"
        tail = (
            f"{'tail (c/p)':>16} = 0x{chip_tail:02x}   0x{ring.tail_index():02x}"
            f"    0x{ring.tail:08x}\n"
        )
    else:
        head = (
            f"{'head (c/p)':>16} = 0x{chip_head:02x}    0x{ring.head_index():02x}"
            f"    0x{ring.head:08x}\n"
        )
        tail = (
            f"{'tail (c/p)':>16} = 0x{chip_tail:02x}    0x{ring.tail_index():02x}"
            f"    0x{ring.tail:08x}\n"
        )
    return f"\n{title} Overview:\n" + head + tail + "\n"


def _dump_tef(mem: bytes, layout: _Layout, tef: Ring) -> str:
    out = [_overview("TEF", None, tef, layout.tef_tail)]
    chip_tail = layout.tef_tail
    for n in range(layout.tef_obj_num):
        rel = layout.tef_rel_addr(n)
        obj_id, flags, ts = struct.unpack("<3I", _read_ram(mem, rel, R.HW_TEF_OBJ_SIZE))
        chip_fifo = ""
        if chip_tail == n:
            if layout.tef_sta & R.REG_TEFSTA_TEFFIF:
                chip_fifo = "  chip-FIFO-full"
            elif not layout.tef_sta & R.REG_TEFSTA_TEFNEIF:
                chip_fifo = "  chip-FIFO-empty"
        out.append(
            f"TEF Object: 0x{n:02x} (0x{_abs_addr(rel):03x})"
            + _mark(tef.head_index() == n, "  priv-HEAD")
            + _mark(chip_tail == n, "  chip-TAIL")
            + _mark(tef.tail_index() == n, "  priv-TAIL")
            + chip_fifo
            + _priv_fifo(tef, n)
            + "\n"
        )
        out.append(_value_line("id", obj_id))
        out.append(_value_line("flags", flags))
        out.append(_value_line("ts", ts))
        out.append(_mask_line("SEQ", R.OBJ_FLAGS_SEQ_MASK, flags, "Sequence"))
        out.append("\n")
    return "".join(out)


def _dump_tx(mem: bytes, layout: _Layout, tx: Ring) -> str:
    chip_head, chip_tail = layout.tx_head, layout.tx_tail
    out = [_overview("TX", chip_head, tx, chip_tail)]
    for n in range(layout.tx_obj_num):
        rel = layout.tx_rel_addr(n)
        raw = _read_ram(mem, rel, R.HW_TX_OBJ_CANFD_SIZE)
        obj_id, flags = struct.unpack_from("<2I", raw)
        data = raw[R.HW_TX_OBJ_HEADER_SIZE:]
        chip_fifo = ""
        if chip_tail == n:
            if not layout.tx_sta & R.REG_FIFOSTA_TFNRFNIF:
                chip_fifo = "  chip-FIFO-full"
            elif layout.tx_sta & R.REG_FIFOSTA_TFERFFIF:
                chip_fifo = "  chip-FIFO-empty"
        out.append(
            f"TX Object: 0x{n:02x} (0x{_abs_addr(rel):03x})"
            + _mark(chip_head == n, "  chip-HEAD")
            + _mark(tx.head_index() == n, "  priv-HEAD")
            + _mark(chip_tail == n, "  chip-TAIL")
            + _mark(tx.tail_index() == n, "  priv-TAIL")
            + chip_fifo
            + _priv_fifo(tx, n)
            + "\n"
        )
        out.append(_value_line("id", obj_id))
        out.append(_value_line("flags", flags))
        out.append(_mask_line("SEQ_MCP2517FD", R.OBJ_FLAGS_SEQ_MCP2517FD_MASK, flags,
                              "Sequence (MCP2517)"))
        out.append(_mask_line("SEQ_MCP2518FD", R.OBJ_FLAGS_SEQ_MCP2518FD_MASK, flags,
                              "Sequence (MCP2518)"))
        out.append(format_data(data, field_get(R.OBJ_FLAGS_DLC, flags)))
        out.append("\n")
    return "".join(out)


def _dump_rx(mem: bytes, layout: _Layout, rx: Ring) -> str:
    chip_head, chip_tail = layout.rx_head, layout.rx_tail
    out = [_overview("RX", chip_head, rx, chip_tail)]
    for n in range(layout.rx_obj_num):
        rel = layout.rx_rel_addr(n)
        raw = _read_ram(mem, rel, R.HW_RX_OBJ_CANFD_SIZE)
        obj_id, flags, ts = struct.unpack_from("<3I", raw)
        data = raw[R.HW_RX_OBJ_HEADER_SIZE:]
        chip_fifo = ""
        if chip_tail == n:
            if layout.rx_sta & R.REG_FIFOSTA_TFERFFIF:
                chip_fifo = "  chip-FIFO-full"
            elif not layout.rx_sta & R.REG_FIFOSTA_TFNRFNIF:
                chip_fifo = "  chip-FIFO-empty"
        out.append(
            f"RX Object: 0x{n:02x} (0x{_abs_addr(rel):03x})"
            + _mark(chip_head == n, "  chip-HEAD")
            + _mark(rx.head_index() == n, "  priv-HEAD")
            + _mark(chip_tail == n, "  chip-TAIL")
            + _mark(rx.tail_index() == n, "  priv-TAIL")
            + chip_fifo
            + _priv_fifo(rx, n)
            + "\n"
        )
        out.append(_value_line("id", obj_id))
        out.append(_value_line("flags", flags))
        out.append(_value_line("ts", ts))
        out.append(format_data(data, field_get(R.OBJ_FLAGS_DLC, flags)))
        out.append("\n")
    return "".join(out)


def dump_ram(state: ChipState) -> str:
    """Decode the TEF, TX and RX objects held in the chip's message RAM."""
    mem = bytes(state.mem)
    layout = _Layout.from_mem(mem)
    return (
        RAM_DUMP_HEADER
        + _dump_tef(mem, layout, state.tef)
        + _dump_tx(mem, layout, state.tx)
        + _dump_rx(mem, layout, state.rx)
        + DUMP_END
    )


def dump(state: ChipState) -> str:
    """Decode the registers and the message RAM of a chip state."""
    return dump_registers(state.mem) + dump_ram(state)