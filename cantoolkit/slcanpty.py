"""Bridge between the slcan ASCII protocol on a pty and a raw CAN socket."""

from __future__ import annotations

import fcntl
import os
import select
import socket
import struct
import sys
import termios
import time
from typing import Callable, Optional, TextIO, Union

from .canframe import (
    CAN_EFF_FLAG,
    CAN_EFF_MASK,
    CAN_MTU,
    CAN_RTR_FLAG,
    CAN_SFF_MASK,
    SOL_CAN_RAW,
    CanFrame,
    RawOption,
    unpack_frame,
)

DEVICE_NAME_PTMX = "/dev/ptmx"

ACK = b"\r"
NACK = b"\a"

_RX_BUFFER_SIZE = 200

_FIXED_REPLIES = {
    "V": b"V1013\r",
    "v": b"v1014\r",
    "N": b"N4242\r",
    "F": b"F00\r",
}

# Unsupported commands that are acknowledged, with the offset of their end.
_ACKED_COMMANDS = {"U": 2, "S": 2, "s": 5}

# A filter with id 0 and mask 0 lets every frame through.
_OPEN_FILTER = struct.pack("=II", 0, 0)

_SIOCGSTAMP = 0x8906
_TIOCGPTN = 0x80045430
_TIOCSPTLCK = 0x40045431


def asc2nibble(c: Union[str, int]) -> int:
    """Return the value of a hex digit, or 16 if it is not one."""
    ch = chr(c) if isinstance(c, int) else c
    if "0" <= ch <= "9":
        return ord(ch) - ord("0")
    if "A" <= ch <= "F":
        return ord(ch) - ord("A") + 10
    if "a" <= ch <= "f":
        return ord(ch) - ord("a") + 10
    return 16


def _parse_hex(text: bytes) -> int:
    """Parse a leading hexadecimal number the way strtoul does, as 32 bits."""
    digits = text.lstrip(b" \t\n\v\f\r")
    negative = False
    if digits[:1] in (b"+", b"-"):
        negative = digits[:1] == b"-"
        digits = digits[1:]
    if digits[:2].lower() == b"0x" and len(digits) > 2 and asc2nibble(digits[2]) < 16:
        digits = digits[2:]
    value = 0
    for ch in digits:
        nibble = asc2nibble(ch)
        if nibble > 15:
            break
        value = value * 16 + nibble
    if negative:
        value = -value
    return value & 0xFFFFFFFF


class SlcanSession:
    """State of one slcan conversation: parses commands and builds replies.

    Frames to transmit are handed to ``send_frame``; the 'O' and 'C'
    commands call ``set_reception`` with True or False.
    """

    def __init__(
        self,
        send_frame: Optional[Callable[[CanFrame], None]] = None,
        set_reception: Optional[Callable[[bool], None]] = None,
        trace: Optional[TextIO] = None,
    ) -> None:
        self._send_frame = send_frame or (lambda frame: None)
        self._set_reception = set_reception or (lambda enabled: None)
        self._trace = trace
        self._pending = b""
        self.is_open = False
        self.timestamps = False

    @property
    def read_size(self) -> int:
        """How many bytes may be read before the receive buffer is full."""
        return _RX_BUFFER_SIZE - 1 - len(self._pending)

    def feed(self, data: bytes) -> bytes:
        """Process received bytes and return the replies for the application."""
        buf = self._pending + bytes(data)
        self._pending = b""
        replies = bytearray()
        while True:
            buf = buf.lstrip(b"\r")
            if not buf:
                break
            if b"\r" not in buf:
                self._pending = buf
                break
            if self._trace is not None:
                self._trace.write(buf.replace(b"\r", b"@").decode("latin-1") + "\n")
            reply, end = self._command(buf)
            replies += reply
            if len(buf) <= end + 1:
                break
            buf = buf[end + 1:]
        return bytes(replies)

    def _command(self, buf: bytes) -> tuple[bytes, int]:
        """Handle the command at the start of ``buf``; return reply and its end."""

        def at(index: int) -> int:
            return buf[index] if index < len(buf) else 0

        cmd = chr(buf[0])

        if cmd in ("m", "M"):
            # acceptance code/mask of the controller: not mapped to a filter
            return ACK, 9
        if cmd == "Z":
            self.timestamps = bool(at(1) & 0x01)
            return ACK, 2
        if cmd == "O":
            self._set_reception(True)
            self.is_open = True
            return ACK, 1
        if cmd == "C":
            self._set_reception(False)
            self.is_open = False
            return ACK, 1
        if cmd in _FIXED_REPLIES:
            return _FIXED_REPLIES[cmd], 1
        if cmd in _ACKED_COMMANDS:
            return ACK, _ACKED_COMMANDS[cmd]
        if cmd in ("P", "A"):
            return NACK, 1
        if cmd == "X":
            return (ACK if at(1) & 0x01 else NACK), 2
        if cmd not in ("t", "T", "r", "R"):
            return NACK, len(buf) - 1

        extended = cmd in ("T", "R")
        remote = cmd in ("r", "R")
        end = 9 if extended else 4
        flags = (CAN_EFF_FLAG if extended else 0) | (CAN_RTR_FLAG if remote else 0)

        if remote and at(end) != ord("0"):
            # remote frame sent without a length code: tolerated
            frame = CanFrame(can_id=_parse_hex(buf[1:end]) | flags)
            end -= 1
        else:
            dlc_char = at(end)
            if not ord("0") <= dlc_char < ord("9"):
                return NACK, end
            dlc = dlc_char - ord("0")
            can_id = _parse_hex(buf[1:end]) | flags
            payload = bytearray()
            pos = end + 1
            for _ in range(dlc):
                high = asc2nibble(at(pos))
                if high > 15:
                    return NACK, pos + 1
                low = asc2nibble(at(pos + 1))
                if low > 15:
                    return NACK, pos + 2
                payload.append(high << 4 | low)
                pos += 2
            end = pos - 1 if dlc else pos
            frame = CanFrame(can_id=can_id, data=bytes(payload))

        self._send_frame(frame)
        return ACK, end


def encode_frame(frame: CanFrame, timestamp_ms: Optional[int] = None) -> bytes:
    """Render a frame as an slcan message, optionally with a timestamp."""
    cmd = "R" if frame.is_remote else "T"
    if frame.is_extended:
        text = f"{cmd}{frame.can_id & CAN_EFF_MASK:08X}{frame.dlc}"
    else:
        text = f"{cmd.lower()}{frame.can_id & CAN_SFF_MASK:03X}{frame.dlc}"
    text += frame.data.hex().upper()
    if timestamp_ms is not None:
        text += f"{timestamp_ms:04X}"
    return (text + "\r").encode("ascii")


def _perror(label: str, exc: BaseException) -> None:
    reason = getattr(exc, "strerror", None) or str(exc)
    print(f"{label}: {reason}", file=sys.stderr)


def _print_usage(prog: str) -> None:
    sys.stderr.write(
        f"{prog}: adapter for applications using the slcan ASCII protocol.\n"
        f"\n{prog} creates a pty for applications using the slcan ASCII protocol and\n"
        "converts the ASCII data to a CAN network interface (and vice versa)\n\n"
        f"Usage: {prog} <pty> <can interface>\n"
        "\nExamples:\n"
        f"{prog} /dev/ptyc0 can0  - creates /dev/ttyc0 for the slcan application\n\n"
        f"e.g. for pseudo-terminal '{prog} {DEVICE_NAME_PTMX} can0' creates /dev/pts/N\n"
        "\n"
    )


def _stdin_selectable() -> bool:
    """True if stdin can be watched for a key press to stop."""
    try:
        ready, _, _ = select.select([0], [], [], 0)
    except (OSError, ValueError):
        return False
    if ready:
        try:
            if os.read(0, 1) == b"":
                return False
        except OSError:
            return False
    return True


def _configure_pty(fd: int) -> None:
    """Disable local echo, which would cause double frames."""
    attrs = termios.tcgetattr(fd)
    lflag_off = (
        termios.ICANON
        | termios.ECHO
        | termios.ECHOE
        | termios.ECHOK
        | termios.ECHONL
        | getattr(termios, "ECHOPRT", 0)
        | termios.ECHOKE
    )
    attrs[3] &= ~lflag_off
    attrs[0] &= ~termios.ICRNL
    attrs[0] |= termios.INLCR
    try:
        termios.tcsetattr(fd, termios.TCSANOW, attrs)
    except termios.error:
        pass


def _unlock_ptmx(fd: int) -> str:
    """Unlock a Unix 98 master and return the slave device name."""
    fcntl.ioctl(fd, _TIOCSPTLCK, struct.pack("i", 0))
    result = fcntl.ioctl(fd, _TIOCGPTN, struct.pack("I", 0))
    return f"/dev/pts/{struct.unpack('I', result)[0]}"


def _socket_timestamp_ms(sock: socket.socket) -> int:
    try:
        raw = fcntl.ioctl(sock.fileno(), _SIOCGSTAMP, bytes(16))
        seconds, micros = struct.unpack("@ll", raw)
    except OSError as exc:
        _perror("SIOCGSTAMP", exc)
        now = time.time()
        seconds, micros = int(now), int((now % 1) * 1_000_000)
    return (seconds % 60) * 1000 + micros // 1000


def _send(sock: socket.socket, frame: CanFrame) -> None:
    raw = frame.pack()
    if sock.send(raw) != len(raw):
        raise OSError("incomplete CAN frame written")


def _run(pty_fd: int, sock: socket.socket, select_stdin: bool) -> int:
    session = SlcanSession(
        send_frame=lambda frame: _send(sock, frame),
        set_reception=lambda enabled: sock.setsockopt(
            SOL_CAN_RAW, RawOption.FILTER, _OPEN_FILTER if enabled else b""
        ),
        trace=sys.stdout,
    )
    watched: list = [pty_fd, sock]
    if select_stdin:
        watched.append(0)

    while True:
        try:
            readable, _, _ = select.select(watched, [], [])
        except OSError as exc:
            _perror("select", exc)
            return 1

        if select_stdin and 0 in readable:
            break

        if pty_fd in readable:
            try:
                data = os.read(pty_fd, session.read_size)
            except OSError as exc:
                _perror("read pty", exc)
                break
            if not data:
                break
            try:
                reply = session.feed(data)
            except OSError as exc:
                _perror("write socket", exc)
                break
            if reply:
                try:
                    os.write(pty_fd, reply)
                except OSError as exc:
                    _perror("write pty replybuf", exc)
                    break

        if sock in readable:
            try:
                raw = sock.recv(CAN_MTU)
            except OSError as exc:
                _perror("read socket", exc)
                break
            if len(raw) != CAN_MTU:
                print("read socket: incomplete CAN frame", file=sys.stderr)
                break
            stamp = _socket_timestamp_ms(sock) if session.timestamps else None
            try:
                os.write(pty_fd, encode_frame(unpack_frame(raw), stamp))
            except OSError as exc:
                _perror("write pty", exc)
                break
            sys.stdout.flush()
    return 0


def main(argv=None) -> int:
    """Run the pty <-> CAN adapter; returns the exit status."""
    args = sys.argv[1:] if argv is None else list(argv)
    prog = "slcanpty"
    if len(args) != 2:
        _print_usage(prog)
        return 1
    pty_path, ifname = args

    select_stdin = _stdin_selectable()

    try:
        pty_fd = os.open(pty_path, os.O_RDWR)
    except OSError as exc:
        _perror("open pty", exc)
        return 1

    try:
        try:
            _configure_pty(pty_fd)
        except termios.error as exc:
            _perror("tcgetattr", exc)
            return 1

        if pty_path == DEVICE_NAME_PTMX:
            try:
                slave = _unlock_ptmx(pty_fd)
            except OSError as exc:
                _perror("unlockpt", exc)
                return 1
            print(f"open: {pty_path}: slave pseudo-terminal is {slave}")

        try:
            sock = socket.socket(socket.PF_CAN, socket.SOCK_RAW, socket.CAN_RAW)
        except OSError as exc:
            _perror("socket", exc)
            return 1

        with sock:
            try:
                socket.if_nametoindex(ifname)
            except OSError as exc:
                _perror("if_nametoindex", exc)
                return 1
            # no reception until the application opens the channel with 'O'
            sock.setsockopt(SOL_CAN_RAW, RawOption.FILTER, b"")
            try:
                sock.bind((ifname,))
            except OSError as exc:
                _perror("bind", exc)
                return 1
            return _run(pty_fd, sock, select_stdin)
    finally:
        os.close(pty_fd)