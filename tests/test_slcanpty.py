import io

import pytest

from cantoolkit.canframe import CAN_EFF_FLAG, CAN_RTR_FLAG, CanFrame
from cantoolkit.slcanpty import ACK, NACK, SlcanSession, asc2nibble, encode_frame, main


def make_session():
    frames = []
    reception = []
    session = SlcanSession(send_frame=frames.append, set_reception=reception.append)
    return session, frames, reception


@pytest.mark.parametrize(
    "char,value",
    [("0", 0), ("9", 9), ("A", 10), ("a", 10), ("F", 15), ("f", 15)],
)
def test_asc2nibble_digits(char, value):
    assert asc2nibble(char) == value
    assert asc2nibble(ord(char)) == value


@pytest.mark.parametrize("char", ["g", "G", "\r", " ", "z"])
def test_asc2nibble_rejects(char):
    assert asc2nibble(char) == 16


@pytest.mark.parametrize(
    "command,reply",
    [(b"V\r", b"V1013\r"), (b"v\r", b"v1014\r"), (b"N\r", b"N4242\r"), (b"F\r", b"F00\r")],
)
def test_fixed_replies(command, reply):
    session, frames, _ = make_session()
    assert session.feed(command) == reply
    assert frames == []


def test_standard_frame():
    session, frames, _ = make_session()
    assert session.feed(b"t1232AABB\r") == ACK
    assert frames == [CanFrame(can_id=0x123, data=b"\xaa\xbb")]


def test_extended_frame():
    session, frames, _ = make_session()
    assert session.feed(b"T123456783010203\r") == ACK
    assert frames == [CanFrame(can_id=0x12345678 | CAN_EFF_FLAG, data=b"\x01\x02\x03")]


def test_remote_frame_with_zero_dlc():
    session, frames, _ = make_session()
    assert session.feed(b"r1230\r") == ACK
    assert frames == [CanFrame(can_id=0x123 | CAN_RTR_FLAG)]


def test_remote_frame_without_dlc_is_tolerated():
    session, frames, _ = make_session()
    assert session.feed(b"r123\r") == ACK
    assert frames == [CanFrame(can_id=0x123 | CAN_RTR_FLAG)]


def test_incomplete_message_is_kept():
    session, frames, _ = make_session()
    initial = session.read_size
    assert session.feed(b"t12") == b""
    assert frames == []
    assert session.read_size == initial - 3
    assert session.feed(b"3122\r") == ACK
    assert frames == [CanFrame(can_id=0x123, data=b"\x22")]
    assert session.read_size == initial


def test_open_and_close():
    session, _, reception = make_session()
    assert session.feed(b"O\r") == ACK
    assert session.is_open
    assert session.feed(b"C\r") == ACK
    assert not session.is_open
    assert reception == [True, False]


def test_timestamp_switch():
    session, _, _ = make_session()
    assert session.feed(b"Z1\r") == ACK
    assert session.timestamps
    session.feed(b"Z0\r")
    assert not session.timestamps


def test_unknown_command_is_refused():
    session, frames, _ = make_session()
    assert session.feed(b"Q\r") == NACK
    assert frames == []


@pytest.mark.parametrize("command", [b"P\r", b"A\r", b"X0\r"])
def test_refused_commands(command):
    session, _, _ = make_session()
    assert session.feed(command) == NACK


@pytest.mark.parametrize("command", [b"X1\r", b"S6\r", b"s031C\r", b"U1\r", b"m00000000\r"])
def test_acknowledged_commands(command):
    session, frames, _ = make_session()
    assert session.feed(command) == ACK
    assert frames == []


def test_invalid_dlc_is_refused():
    session, frames, _ = make_session()
    assert session.feed(b"t1239\r") == NACK
    assert frames == []


def test_invalid_hex_data_is_refused():
    session, frames, _ = make_session()
    assert session.feed(b"t1231ZZ\r") == NACK
    assert frames == []


def test_several_commands_in_one_read():
    session, frames, _ = make_session()
    assert session.feed(b"V\rt1230\r") == b"V1013\r" + ACK
    assert frames == [CanFrame(can_id=0x123)]


def test_leading_carriage_returns_are_ignored():
    session, _, reception = make_session()
    assert session.feed(b"\r\r\rO\r") == ACK
    assert reception == [True]


def test_trace_output():
    trace = io.StringIO()
    session = SlcanSession(trace=trace)
    session.feed(b"V\r")
    assert trace.getvalue() == "V@\n"


def test_encode_standard_frame():
    assert encode_frame(CanFrame(can_id=0x123, data=b"\x11\x22")) == b"t12321122\r"


def test_encode_appends_timestamp():
    encoded = encode_frame(CanFrame(can_id=0x1), 0xABC)
    assert encoded.endswith(b"0ABC\r")


@pytest.mark.parametrize(
    "frame",
    [
        CanFrame(can_id=0x7FF, data=bytes(range(8))),
        CanFrame(can_id=0x1ABCDEF0 | CAN_EFF_FLAG, data=b"\xde\xad"),
        CanFrame(can_id=0x42 | CAN_RTR_FLAG),
        CanFrame(can_id=0x42 | CAN_RTR_FLAG | CAN_EFF_FLAG),
        CanFrame(can_id=0x0),
    ],
)
def test_encode_then_parse_round_trip(frame):
    session, frames, _ = make_session()
    assert session.feed(encode_frame(frame)) == ACK
    assert frames == [frame]


def test_main_rejects_wrong_argument_count(capsys):
    assert main(["only-one"]) == 1
    assert "Usage" in capsys.readouterr().err