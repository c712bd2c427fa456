"""Human readable decoding of the MCP251xFD register file."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Callable, Optional

from ..canframe import field_get
from . import registers as R
from .loader import RX_FIFO_0, TX_FIFO

_U32 = struct.Struct("<I")
_U32_MAX = 0xFFFFFFFF

REGISTER_DUMP_HEADER = "-------------------- register dump --------------------\n"
DUMP_END = "------------------------- end -------------------------\n"


def _hex2(value: int) -> str:
    return f"0x{value:02x}"


def _dec3(value: int) -> str:
    return f"{value:3d}"


def _hex_prefixed_dec2(value: int) -> str:
    # The clock divisor is printed in decimal behind a "0x" prefix.
    return f"0x{value:02d}"


@dataclass(frozen=True)
class _Field:
    """A single bit (``fmt`` is None) or a multi-bit field of a register."""

    name: str
    mask: int
    desc: str
    fmt: Optional[Callable[[int], str]] = None

    def render(self, val: int) -> str:
        if self.fmt is None:
            marker = "x" if val & self.mask else " "
            return f"{self.name:>16}   {marker}\t\t{self.desc}\n"
        return f"{self.name:>16} = {self.fmt(field_get(self.mask, val))}\t\t{self.desc}\n"


def _b(name: str, mask: int, desc: str) -> _Field:
    return _Field(name, mask, desc)


def _m(name: str, mask: int, fmt: Callable[[int], str], desc: str) -> _Field:
    return _Field(name, mask, desc, fmt)


_FIELDS: dict[str, tuple[_Field, ...]] = {
    "con": (
        _m("TXBWS", R.REG_CON_TXBWS_MASK, _hex2, "Transmit Bandwidth Sharing"),
        _b("ABAT", R.REG_CON_ABAT, "Abort All Pending Transmissions"),
        _m("REQOP", R.REG_CON_REQOP_MASK, _hex2, "Request Operation Mode"),
        _m("OPMOD", R.REG_CON_OPMOD_MASK, _hex2, "Operation Mode Status"),
        _b("TXQEN", R.REG_CON_TXQEN, "Enable Transmit Queue"),
        _b("STEF", R.REG_CON_STEF, "Store in Transmit Event FIFO"),
        _b("SERR2LOM", R.REG_CON_SERR2LOM, "Transition to Listen Only Mode on System Error"),
        _b("ESIGM", R.REG_CON_ESIGM, "Transmit ESI in Gateway Mode"),
        _b("RTXAT", R.REG_CON_RTXAT, "Restrict Retransmission Attempts"),
        _b("BRSDIS", R.REG_CON_BRSDIS, "Bit Rate Switching Disable"),
        _b("BUSY", R.REG_CON_BUSY, "CAN Module is Busy"),
        _m("WFT", R.REG_CON_WFT_MASK, _hex2, "Selectable Wake-up Filter Time"),
        _b("WAKFIL", R.REG_CON_WAKFIL, "Enable CAN Bus Line Wake-up Filter"),
        _b("PXEDIS", R.REG_CON_PXEDIS, "Protocol Exception Event Detection Disabled"),
        _b("ISOCRCEN", R.REG_CON_ISOCRCEN, "Enable ISO CRC in CAN FD Frames"),
        _m("DNCNT", R.REG_CON_DNCNT_MASK, _hex2, "Device Net Filter Bit Number"),
    ),
    "nbtcfg": (
        _m("BRP", R.REG_NBTCFG_BRP_MASK, _dec3, "Baud Rate Prescaler"),
        _m("TSEG1", R.REG_NBTCFG_TSEG1_MASK, _dec3,
           "Time Segment 1 (Propagation Segment + Phase Segment 1)"),
        _m("TSEG2", R.REG_NBTCFG_TSEG2_MASK, _dec3, "Time Segment 2 (Phase Segment 2)"),
        _m("SJW", R.REG_NBTCFG_SJW_MASK, _dec3, "Synchronization Jump Width"),
    ),
    "dbtcfg": (
        _m("BRP", R.REG_DBTCFG_BRP_MASK, _dec3, "Baud Rate Prescaler"),
        _m("TSEG1", R.REG_DBTCFG_TSEG1_MASK, _dec3,
           "Time Segment 1 (Propagation Segment + Phase Segment 1)"),
        _m("TSEG2", R.REG_DBTCFG_TSEG2_MASK, _dec3, "Time Segment 2 (Phase Segment 2)"),
        _m("SJW", R.REG_DBTCFG_SJW_MASK, _dec3, "Synchronization Jump Width"),
    ),
    "tdc": (
        _b("EDGFLTEN", R.REG_TDC_EDGFLTEN,
           "Enable Edge Filtering during Bus Integration state"),
        _b("SID11EN", R.REG_TDC_SID11EN, "Enable 12-Bit SID in CAN FD Base Format Messages"),
        _m("TDCMOD", R.REG_TDC_TDCMOD_MASK, _hex2, "Transmitter Delay Compensation Mode"),
        _m("TDCO", R.REG_TDC_TDCO_MASK, _hex2, "Transmitter Delay Compensation Offset"),
        _m("TDCV", R.REG_TDC_TDCV_MASK, _hex2, "Transmitter Delay Compensation Value"),
    ),
    "tbc": (),
    "trec": (
        _b("TXBO", R.REG_TREC_TXBO, "Transmitter in Bus Off State"),
        _b("TXBP", R.REG_TREC_TXBP, "Transmitter in Error Passive State"),
        _b("RXBP", R.REG_TREC_RXBP, "Receiver in Error Passive State"),
        _b("TXWARN", R.REG_TREC_TXWARN, "Transmitter in Error Warning State"),
        _b("RXWARN", R.REG_TREC_RXWARN, "Receiver in Error Warning State"),
        _b("EWARN", R.REG_TREC_EWARN, "Transmitter or Receiver is in Error Warning State"),
        _m("TEC", R.REG_TREC_TEC_MASK, _dec3, "Transmit Error Counter"),
        _m("REC", R.REG_TREC_REC_MASK, _dec3, "Receive Error Counter"),
    ),
    "bdiag0": (
        _m("DTERRCNT", R.REG_BDIAG0_DTERRCNT_MASK, _dec3,
           "Data Bit Rate Transmit Error Counter"),
        _m("DRERRCNT", R.REG_BDIAG0_DRERRCNT_MASK, _dec3,
           "Data Bit Rate Receive Error Counter"),
        _m("NTERRCNT", R.REG_BDIAG0_NTERRCNT_MASK, _dec3,
           "Nominal Bit Rate Transmit Error Counter"),
        _m("NRERRCNT", R.REG_BDIAG0_NRERRCNT_MASK, _dec3,
           "Nominal Bit Rate Receive Error Counter"),
    ),
    "bdiag1": (
        _b("DLCMM", R.REG_BDIAG1_DLCMM, "DLC Mismatch"),
        _b("ESI", R.REG_BDIAG1_ESI, "ESI flag of a received CAN FD message was set"),
        _b("DCRCERR", R.REG_BDIAG1_DCRCERR, "Data CRC Error"),
        _b("DSTUFERR", R.REG_BDIAG1_DSTUFERR, "Data Bit Stuffing Error"),
        _b("DFORMERR", R.REG_BDIAG1_DFORMERR, "Data Format Error"),
        _b("DBIT1ERR", R.REG_BDIAG1_DBIT1ERR, "Data BIT1 Error"),
        _b("DBIT0ERR", R.REG_BDIAG1_DBIT0ERR, "Data BIT0 Error"),
        _b("TXBOERR", R.REG_BDIAG1_TXBOERR, "Device went to bus-off (and auto-recovered)"),
        _b("NCRCERR", R.REG_BDIAG1_NCRCERR, "CRC Error"),
        _b("NSTUFERR", R.REG_BDIAG1_NSTUFERR, "Bit Stuffing Error"),
        _b("NFORMERR", R.REG_BDIAG1_NFORMERR, "Format Error"),
        _b("NACKERR", R.REG_BDIAG1_NACKERR, "Transmitted message was not acknowledged"),
        _b("NBIT1ERR", R.REG_BDIAG1_NBIT1ERR, "Bit1 Error"),
        _b("NBIT0ERR", R.REG_BDIAG1_NBIT0ERR, "Bit0 Error"),
        _m("EFMSGCNT", R.REG_BDIAG1_EFMSGCNT_MASK, _dec3, "Error Free Message Counter"),
    ),
    "osc": (
        _b("SCLKRDY", R.REG_OSC_SCLKRDY, "Synchronized SCLKDIV"),
        _b("OSCRDY", R.REG_OSC_OSCRDY, "Clock Ready"),
        _b("PLLRDY", R.REG_OSC_PLLRDY, "PLL Ready"),
        _m("CLKODIV", R.REG_OSC_CLKODIV_MASK, _hex_prefixed_dec2, "Clock Output Divisor"),
        _b("SCLKDIV", R.REG_OSC_SCLKDIV, "System Clock Divisor"),
        _b("LPMEN", R.REG_OSC_LPMEN, "Low Power Mode (LPM) Enable (MCP2518FD only)"),
        _b("OSCDIS", R.REG_OSC_OSCDIS, "Clock (Oscillator) Disable"),
        _b("PLLEN", R.REG_OSC_PLLEN, "PLL Enable"),
    ),
    "tefcon": (
        _m("FSIZE", R.REG_TEFCON_FSIZE_MASK, _dec3, "FIFO Size"),
        _b("FRESET", R.REG_TEFCON_FRESET, "FIFO Reset"),
        _b("UINC", R.REG_TEFCON_UINC, "Increment Tail"),
        _b("TEFTSEN", R.REG_TEFCON_TEFTSEN, "Transmit Event FIFO Time Stamp Enable"),
        _b("TEFOVIE", R.REG_TEFCON_TEFOVIE, "Transmit Event FIFO Overflow Interrupt Enable"),
        _b("TEFFIE", R.REG_TEFCON_TEFFIE, "Transmit Event FIFO Full Interrupt Enable"),
        _b("TEFHIE", R.REG_TEFCON_TEFHIE, "Transmit Event FIFO Half Full Interrupt Enable"),
        _b("TEFNEIE", R.REG_TEFCON_TEFNEIE, "Transmit Event FIFO Not Empty Interrupt Enable"),
    ),
    "tefsta": (
        _b("TEFOVIF", R.REG_TEFSTA_TEFOVIF, "Transmit Event FIFO Overflow Interrupt Flag"),
        _b("TEFFIF", R.REG_TEFSTA_TEFFIF,
           "Transmit Event FIFO Full Interrupt Flag (0: not full)"),
        _b("TEFHIF", R.REG_TEFSTA_TEFHIF,
           "Transmit Event FIFO Half Full Interrupt Flag (0: < half full)"),
        _b("TEFNEIF", R.REG_TEFSTA_TEFNEIF,
           "Transmit Event FIFO Not Empty Interrupt Flag (0: empty)"),
    ),
    "tefua": (),
    "fifocon": (
        _m("PLSIZE", R.REG_FIFOCON_PLSIZE_MASK, _dec3, "Payload Size"),
        _m("FSIZE", R.REG_FIFOCON_FSIZE_MASK, _dec3, "FIFO Size"),
        _m("TXAT", R.REG_FIFOCON_TXAT_MASK, _dec3, "Retransmission Attempts"),
        _m("TXPRI", R.REG_FIFOCON_TXPRI_MASK, _dec3, "Message Transmit Priority"),
        _b("FRESET", R.REG_FIFOCON_FRESET, "FIFO Reset"),
        _b("TXREQ", R.REG_FIFOCON_TXREQ, "Message Send Request"),
        _b("UINC", R.REG_FIFOCON_UINC, "Increment Head/Tail"),
        _b("TXEN", R.REG_FIFOCON_TXEN, "TX/RX FIFO Selection (0: RX, 1: TX)"),
        _b("RTREN", R.REG_FIFOCON_RTREN, "Auto RTR Enable"),
        _b("RXTSEN", R.REG_FIFOCON_RXTSEN, "Received Message Time Stamp Enable"),
        _b("TXATIE", R.REG_FIFOCON_TXATIE, "Transmit Attempts Exhausted Interrupt Enable"),
        _b("RXOVIE", R.REG_FIFOCON_RXOVIE, "Overflow Interrupt Enable"),
        _b("TFERFFIE", R.REG_FIFOCON_TFERFFIE,
           "Transmit/Receive FIFO Empty/Full Interrupt Enable"),
        _b("TFHRFHIE", R.REG_FIFOCON_TFHRFHIE,
           "Transmit/Receive FIFO Half Empty/Half Full Interrupt Enable"),
        _b("TFNRFNIE", R.REG_FIFOCON_TFNRFNIE,
           "Transmit/Receive FIFO Not Full/Not Empty Interrupt Enable"),
    ),
    "fifosta": (
        _m("FIFOCI", R.REG_FIFOSTA_FIFOCI_MASK, _dec3, "FIFO Message Index"),
        _b("TXABT", R.REG_FIFOSTA_TXABT,
           "Message Aborted Status (0: completed successfully, 1: aborted)"),
        _b("TXLARB", R.REG_FIFOSTA_TXLARB, "Message Lost Arbitration Status"),
        _b("TXERR", R.REG_FIFOSTA_TXERR, "Error Detected During Transmission"),
        _b("TXATIF", R.REG_FIFOSTA_TXATIF, "Transmit Attempts Exhausted Interrupt Pending"),
        _b("RXOVIF", R.REG_FIFOSTA_RXOVIF, "Receive FIFO Overflow Interrupt Flag"),
        _b("TFERFFIF", R.REG_FIFOSTA_TFERFFIF,
           "Transmit/Receive FIFO Empty/Full Interrupt Flag"),
        _b("TFHRFHIF", R.REG_FIFOSTA_TFHRFHIF,
           "Transmit/Receive FIFO Half Empty/Half Full Interrupt Flag"),
        _b("TFNRFNIF", R.REG_FIFOSTA_TFNRFNIF,
           "Transmit/Receive FIFO Not Full/Not Empty Interrupt Flag"),
    ),
    "fifoua": (),
}

# (name, enable bit, flag bit, description) of the INT register.
_INTERRUPTS = (
    ("IVMI", R.REG_INT_IVMIE, R.REG_INT_IVMIF, "Invalid Message Interrupt"),
    ("WAKI", R.REG_INT_WAKIE, R.REG_INT_WAKIF, "Bus Wake Up Interrupt"),
    ("CERRI", R.REG_INT_CERRIE, R.REG_INT_CERRIF, "CAN Bus Error Interrupt"),
    ("SERRI", R.REG_INT_SERRIE, R.REG_INT_SERRIF, "System Error Interrupt"),
    ("RXOVI", R.REG_INT_RXOVIE, R.REG_INT_RXOVIF, "Receive FIFO Overflow Interrupt"),
    ("TXATI", R.REG_INT_TXATIE, R.REG_INT_TXATIF, "Transmit Attempt Interrupt"),
    ("SPICRCI", R.REG_INT_SPICRCIE, R.REG_INT_SPICRCIF, "SPI CRC Error Interrupt"),
    ("ECCI", R.REG_INT_ECCIE, R.REG_INT_ECCIF, "ECC Error Interrupt"),
    ("TEFI", R.REG_INT_TEFIE, R.REG_INT_TEFIF, "Transmit Event FIFO Interrupt"),
    ("MODI", R.REG_INT_MODIE, R.REG_INT_MODIF, "Mode Change Interrupt"),
    ("TBCI", R.REG_INT_TBCIE, R.REG_INT_TBCIF, "Time Base Counter Interrupt"),
    ("RXI", R.REG_INT_RXIE, R.REG_INT_RXIF, "Receive FIFO Interrupt"),
    ("TXI", R.REG_INT_TXIE, R.REG_INT_TXIF, "Transmit FIFO Interrupt"),
)

_FIFO_BITMASKS = {
    "rxif": "Receive FIFO Interrupt Pending",
    "rxovif": "Receive FIFO Overflow Interrupt Pending",
    "txif": "Transmit FIFO Interrupt Pending",
    "txatif": "Transmit FIFO Attempt Interrupt Pending",
    "txreq": "Message Send Request",
}

# Only the lowest bits of a FIFO bitmask register are listed, one per byte
# of the register width.
_FIFO_BITMASK_BITS = 4

_ICODES = {
    0x4A: "Transmit Attempt Interrupt",
    0x49: "Transmit Event FIFO Interrupt",
    0x48: "Invalid Message Occurred",
    0x47: "Operation Mode Changed",
    0x46: "TBC Overflow",
    0x45: "RX/TX MAB Overflow/Underflow",
    0x44: "Address Error Interrupt",
    0x43: "Receive FIFO Overflow Interrupt",
    0x42: "Wake-up Interrupt",
    0x41: "Error Interrupt",
    0x40: "No Interrupt",
}


def _title(name: str) -> str:
    return "INT" if name == "intf" else name.upper()


def _fifo_code(code: int, special: dict[int, str]) -> str:
    if code in special:
        text = special[code]
    elif code < 0x20:
        text = f"FIFO {code}"
    else:
        text = "Reserved"
    return f"{text} (0x{code:02x})\n"


def _vec_body(val: int) -> str:
    rx_code = field_get(R.REG_VEC_RXCODE_MASK, val)
    tx_code = field_get(R.REG_VEC_TXCODE_MASK, val)
    i_code = field_get(R.REG_VEC_ICODE_MASK, val)
    no_int = {0x40: "No Interrupt"}
    return (
        "\trxcode: " + _fifo_code(rx_code, no_int)
        + "\ttxcode: " + _fifo_code(tx_code, no_int)
        + "\ticode: " + _fifo_code(i_code, _ICODES)
    )


def _intf_body(val: int) -> str:
    pending = field_get(R.REG_INT_IF_MASK, val) & field_get(R.REG_INT_IE_MASK, val)
    lines = ["\t\tIE\tIF\tIE & IF\n"]
    for name, enable, flag, desc in _INTERRUPTS:
        ie = "x" if val & enable else ""
        if_ = "x" if val & flag else ""
        both = "x" if pending & flag else ""
        lines.append(f"\t{name}\t{ie}\t{if_}\t{both}\t{desc}\n")
    return "".join(lines)


def _fifo_bitmask_body(name: str, val: int) -> str:
    text = _FIFO_BITMASKS[name] + ":\n"
    if not val:
        return text + "\t\t-none-\n"
    listed = "".join(f"{i} " for i in range(_FIFO_BITMASK_BITS) if val & (1 << i))
    return text + "\t\t" + listed + "\n"


def dump_register(name: str, val: int, addr: int) -> str:
    """Decode the register ``name`` holding ``val`` at address ``addr``."""
    if not 0 <= val <= _U32_MAX:
        raise ValueError(f"register value out of range: {val:#x}")
    if name in _FIELDS:
        body = "".join(f.render(val) for f in _FIELDS[name])
    elif name == "vec":
        body = _vec_body(val)
    elif name == "intf":
        body = _intf_body(val)
    elif name in _FIFO_BITMASKS:
        body = _fifo_bitmask_body(name, val)
    else:
        raise ValueError(f"unknown register {name!r}")
    return f"{_title(name)}: {name}(0x{addr:03x})=0x{val:08x}\n" + body


_CONTROLLER_REGISTERS = (
    ("con", R.REG_CON),
    ("nbtcfg", R.REG_NBTCFG),
    ("dbtcfg", R.REG_DBTCFG),
    ("tdc", R.REG_TDC),
    ("tbc", R.REG_TBC),
    ("vec", R.REG_VEC),
    ("intf", R.REG_INT),
    ("rxif", R.REG_RXIF),
    ("rxovif", R.REG_RXOVIF),
    ("txif", R.REG_TXIF),
    ("txatif", R.REG_TXATIF),
    ("txreq", R.REG_TXREQ),
    ("trec", R.REG_TREC),
    ("bdiag0", R.REG_BDIAG0),
    ("bdiag1", R.REG_BDIAG1),
    ("osc", R.REG_OSC),
)

_TEF_REGISTERS = (
    ("tefcon", R.REG_TEFCON),
    ("tefsta", R.REG_TEFSTA),
    ("tefua", R.REG_TEFUA),
)


def _fifo_registers(x: int):
    return (
        ("fifocon", R.fifocon(x)),
        ("fifosta", R.fifosta(x)),
        ("fifoua", R.fifoua(x)),
    )


def dump_registers(mem) -> str:
    """Decode the register part of a chip memory image."""
    mem = bytes(mem)
    needed = R.REG_OSC + _U32.size
    if len(mem) < needed:
        raise ValueError(f"memory image too short: {len(mem)} < {needed} bytes")

    def block(regs) -> str:
        return "".join(
            dump_register(name, _U32.unpack_from(mem, addr)[0], addr) + "\n"
            for name, addr in regs
        )

    return (
        REGISTER_DUMP_HEADER
        + block(_CONTROLLER_REGISTERS)
        + "-------------------- TEF --------------------\n"
        + block(_TEF_REGISTERS)
        + "-------------------- TX_FIFO --------------------\n"
        + block(_fifo_registers(TX_FIFO))
        + " -------------------- RX_FIFO --------------------\n"
        + block(_fifo_registers(RX_FIFO_0))
        + DUMP_END
    )