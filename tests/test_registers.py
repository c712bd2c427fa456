import pytest

from cantoolkit.canframe import bit, field_get, genmask
from cantoolkit.mcp251xfd import registers as r


def test_fifo_zero_is_transmit_queue():
    assert r.fifocon(0) == r.REG_TXQCON
    assert r.fifosta(0) == r.REG_TXQSTA
    assert r.fifoua(0) == r.REG_TXQUA


def test_fifo_registers_are_spaced_by_twelve_bytes():
    for x in range(r.FIFO_COUNT - 1):
        assert r.fifocon(x + 1) - r.fifocon(x) == 0xC
        assert r.fifosta(x) == r.fifocon(x) + 4
        assert r.fifoua(x) == r.fifocon(x) + 8


def test_last_fifo_is_followed_by_filter_control():
    assert r.fifoua(31) + 4 == r.fltcon(0)
    assert r.fltcon(0) == 0x1D0


def test_filter_control_is_followed_by_filter_objects():
    assert r.fltcon(r.FLTCON_COUNT - 1) + 4 == r.fltobj(0)
    assert r.fltobj(0) == 0x1F0


def test_filter_mask_follows_filter_object():
    for x in range(r.FILTER_COUNT):
        assert r.fltmask(x) == r.fltobj(x) + 4
    for x in range(r.FILTER_COUNT - 1):
        assert r.fltobj(x + 1) == r.fltmask(x) + 4


@pytest.mark.parametrize("func", [r.fifocon, r.fifosta, r.fifoua, r.fltobj, r.fltmask])
@pytest.mark.parametrize("index", [-1, 32])
def test_out_of_range_index_is_rejected(func, index):
    with pytest.raises(ValueError):
        func(index)


@pytest.mark.parametrize("index", [-1, 8])
def test_out_of_range_fltcon_is_rejected(index):
    with pytest.raises(ValueError):
        r.fltcon(index)


def test_request_mode_field_round_trip():
    val = r.REG_CON_MODE_CONFIG << 24
    assert field_get(r.REG_CON_REQOP_MASK, val) == r.REG_CON_MODE_CONFIG
    assert field_get(r.REG_CON_OPMOD_MASK, val) == 0


def test_interrupt_enable_bits_mirror_flag_bits():
    pairs = [
        (r.REG_INT_IVMIE, r.REG_INT_IVMIF),
        (r.REG_INT_WAKIE, r.REG_INT_WAKIF),
        (r.REG_INT_CERRIE, r.REG_INT_CERRIF),
        (r.REG_INT_SERRIE, r.REG_INT_SERRIF),
        (r.REG_INT_RXOVIE, r.REG_INT_RXOVIF),
        (r.REG_INT_TXATIE, r.REG_INT_TXATIF),
        (r.REG_INT_SPICRCIE, r.REG_INT_SPICRCIF),
        (r.REG_INT_ECCIE, r.REG_INT_ECCIF),
        (r.REG_INT_TEFIE, r.REG_INT_TEFIF),
        (r.REG_INT_MODIE, r.REG_INT_MODIF),
        (r.REG_INT_TBCIE, r.REG_INT_TBCIF),
        (r.REG_INT_RXIE, r.REG_INT_RXIF),
        (r.REG_INT_TXIE, r.REG_INT_TXIF),
    ]
    for enable, flag in pairs:
        assert field_get(r.REG_INT_IE_MASK, enable) == flag
        assert field_get(r.REG_INT_IF_MASK, flag) == flag
        assert field_get(r.REG_INT_IF_MASK, enable) == 0


def test_bus_error_mask_covers_only_bdiag1_error_bits():
    assert field_get(r.REG_BDIAG1_EFMSGCNT_MASK, r.REG_BDIAG1_BERR_MASK) == 0
    assert field_get(r.REG_BDIAG1_BERR_MASK, r.REG_BDIAG1_NACKERR) == 1 << 2


def test_sequence_mask_is_mcp2518fd_mask():
    assert r.OBJ_FLAGS_SEQ_MASK == genmask(31, 9)
    assert field_get(r.OBJ_FLAGS_SEQ_MASK, r.OBJ_FLAGS_SEQ_MCP2517FD_MASK) == 0x7F


def test_ram_window_ends_before_osc_register():
    assert r.RAM_SIZE == bit(11)
    assert r.fltmask(r.FILTER_COUNT - 1) < r.RAM_START
    assert r.RAM_START + r.RAM_SIZE <= r.REG_OSC