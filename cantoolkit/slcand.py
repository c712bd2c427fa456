"""Daemon that attaches the slcan line discipline to a serial CAN adapter."""

from __future__ import annotations

import argparse
import fcntl
import os
import re
import signal
import struct
import sys
import syslog
import termios
import time
from enum import IntEnum

from .slcan_attach import (
    IFNAMSIZ,
    N_SLCAN,
    N_TTY,
    build_setup_commands,
    get_netdevice_name,
    rename_netdevice,
    set_line_discipline,
)

DAEMON_NAME = "slcand"
DEV_PREFIX = "/dev/"
TTYPATH_LENGTH = 256

_LONG_MAX = 2**63 - 1

_TIOCGSERIAL = 0x541E
_TIOCSSERIAL = 0x541F
_SERIAL_STRUCT_SIZE = 128
_SERIAL_FLAGS_OFFSET = 16
ASYNC_LOW_LATENCY = 1 << 13

_CRTSCTS = getattr(termios, "CRTSCTS", 0x80000000)


class FlowControl(IntEnum):
    """UART flow control types."""

    NONE = 0
    HW = 1
    SW = 2


_FLOW_TYPES = {"hw": FlowControl.HW, "sw": FlowControl.SW}

_UART_RATES = (
    9600, 19200, 38400, 57600, 115200, 230400, 460800, 500000, 576000,
    921600, 1000000, 1152000, 1500000, 2000000, 2500000, 3000000,
    3500000, 3710000, 4000000,
)

_UART_SPEEDS = {
    rate: getattr(termios, f"B{rate}")
    for rate in _UART_RATES
    if hasattr(termios, f"B{rate}")
}


def look_up_uart_speed(speed: int) -> int:
    """Return the termios speed constant for a baud rate."""
    try:
        return _UART_SPEEDS[speed]
    except KeyError:
        raise ValueError(f"Unsupported UART speed ({speed})") from None


def tty_path(tty: str) -> str:
    """Return the device path for a tty name, adding /dev/ where missing."""
    path = tty if tty.startswith(DEV_PREFIX) else DEV_PREFIX + tty
    return path[: TTYPATH_LENGTH - 1]


def _print_usage(prog: str) -> None:
    sys.stderr.write(
        f"{prog} - userspace daemon for serial line CAN interface driver SLCAN.\n"
        f"\nUsage: {prog} [options] <tty> [canif-name]\n\n"
        "Options:\n"
        "         -o          (send open command 'O\\r')\n"
        "         -c          (send close command 'C\\r')\n"
        "         -f          (read status flags with 'F\\r' to reset error states)\n"
        "         -l          (send listen only command 'L\\r', overrides -o)\n"
        "         -s <speed>  (set CAN speed 0..8)\n"
        "         -S <speed>  (set UART speed in baud)\n"
        "         -t <type>   (set UART flow control type 'hw' or 'sw')\n"
        "         -b <btr>    (set bit time register value)\n"
        "         -F          (stay in foreground; no daemonize)\n"
        "         -h          (show this help page)\n"
        "\nExamples:\n"
        "slcand -o -c -f -s6 ttyUSB0\n\n"
        "slcand -o -c -f -s6 ttyUSB0 can0\n\n"
        "slcand -o -c -f -s6 /dev/ttyUSB0\n\n"
    )


class _Parser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        _print_usage(self.prog)
        raise SystemExit(1)


def _strtol(text: str) -> int:
    """Parse a leading decimal number; 0 when there is none."""
    match = re.match(r"\s*([+-]?\d+)", text)
    return int(match.group(1)) if match else 0


def parse_args(argv) -> argparse.Namespace:
    """Parse the command line; prints a message and exits with 1 on bad input."""
    parser = _Parser(prog=DAEMON_NAME, add_help=False)
    parser.add_argument("-o", dest="send_open", action="store_true")
    parser.add_argument("-c", dest="send_close", action="store_true")
    parser.add_argument("-f", dest="read_status_flags", action="store_true")
    parser.add_argument("-l", dest="send_listen", action="store_true")
    parser.add_argument("-s", dest="speed")
    parser.add_argument("-S", dest="uart_speed_str")
    parser.add_argument("-t", dest="flow_str")
    parser.add_argument("-b", dest="btr")
    parser.add_argument("-F", dest="foreground", action="store_true")
    parser.add_argument("-h", dest="help", action="store_true")
    parser.add_argument("-?", dest="help", action="store_true")
    parser.add_argument("positionals", nargs="*")
    args = parser.parse_args(list(argv))

    def usage() -> None:
        _print_usage(parser.prog)
        raise SystemExit(1)

    if args.help:
        usage()
    if args.speed is not None and len(args.speed) > 1:
        usage()
    if args.btr is not None and len(args.btr) > 6:
        usage()

    args.uart_speed = None
    if args.uart_speed_str is not None:
        value = _strtol(args.uart_speed_str)
        if abs(value) > _LONG_MAX:
            usage()
        try:
            look_up_uart_speed(value)
        except ValueError:
            print(f"Unsupported UART speed ({value})", file=sys.stderr)
            raise SystemExit(1)
        args.uart_speed = value

    args.flow = FlowControl.NONE
    if args.flow_str is not None:
        try:
            args.flow = _FLOW_TYPES[args.flow_str]
        except KeyError:
            print(f"Unsupported flow type ({args.flow_str})", file=sys.stderr)
            raise SystemExit(1)

    if not args.positionals:
        usage()
    args.tty = args.positionals[0]
    args.name = args.positionals[1] if len(args.positionals) > 1 else None
    if args.name is not None and len(args.name) > IFNAMSIZ - 1:
        usage()

    for attr in ("positionals", "help", "uart_speed_str", "flow_str"):
        delattr(args, attr)
    return args


class _Log:
    """Sends messages to syslog, or to stdout when running in the foreground."""

    def __init__(self, foreground: bool) -> None:
        self.foreground = foreground

    def __call__(self, priority: int, message: str) -> None:
        if self.foreground:
            print(f"[{priority}] {message}", flush=True)
        else:
            syslog.syslog(priority, message)


class _Runner:
    """Main loop state, stopped by SIGINT or SIGTERM."""

    def __init__(self, path: str, log: _Log) -> None:
        self.path = path
        self.log = log
        self.running = True
        self.exit_code = 0

    def stop(self, signum, _frame) -> None:
        self.log(syslog.LOG_NOTICE, f"received signal {signum} on {self.path}")
        self.exit_code = 0
        self.running = False


def _report(label: str, exc: BaseException) -> None:
    reason = getattr(exc, "strerror", None) or str(exc)
    print(f"{label}: {reason}", file=sys.stderr)


def _strerror(exc: termios.error) -> str:
    return str(exc.args[1]) if len(exc.args) > 1 else str(exc)


def _write(fd: int, data: bytes) -> bool:
    try:
        if os.write(fd, data) <= 0:
            raise OSError("nothing written")
    except OSError as exc:
        _report("write", exc)
        return False
    return True


def _set_low_latency(fd: int) -> None:
    """Ask the serial driver for low receive latency; failures are ignored."""
    buf = bytearray(_SERIAL_STRUCT_SIZE)
    try:
        fcntl.ioctl(fd, _TIOCGSERIAL, buf, True)
        (flags,) = struct.unpack_from("i", buf, _SERIAL_FLAGS_OFFSET)
        struct.pack_into("i", buf, _SERIAL_FLAGS_OFFSET, flags | ASYNC_LOW_LATENCY)
        fcntl.ioctl(fd, _TIOCSSERIAL, buf)
    except OSError:
        pass


def _make_raw(attrs: list) -> None:
    attrs[0] &= ~(
        termios.IGNBRK | termios.BRKINT | termios.PARMRK | termios.ISTRIP
        | termios.INLCR | termios.IGNCR | termios.ICRNL | termios.IXON
    )
    attrs[1] &= ~termios.OPOST
    attrs[3] &= ~(
        termios.ECHO | termios.ECHONL | termios.ICANON | termios.ISIG | termios.IEXTEN
    )
    attrs[2] &= ~(termios.CSIZE | termios.PARENB)
    attrs[2] |= termios.CS8
    cc = list(attrs[6])
    cc[termios.VMIN] = 1
    cc[termios.VTIME] = 0
    attrs[6] = cc


def _apply(fd: int, attrs: list, path: str, log: _Log) -> None:
    try:
        termios.tcsetattr(fd, termios.TCSADRAIN, attrs)
    except termios.error as exc:
        log(
            syslog.LOG_NOTICE,
            f'Cannot set attributes for device "{path}": {_strerror(exc)}!',
        )


def _detach() -> None:
    """Detach from the terminal: new session where possible, root cwd, null stdio."""
    try:
        os.setsid()
    except OSError:
        pass
    signal.signal(signal.SIGHUP, signal.SIG_IGN)
    os.chdir("/")
    null = os.open(os.devnull, os.O_RDWR)
    for target in (0, 1, 2):
        os.dup2(null, target)
    if null > 2:
        os.close(null)


def _run(fd: int, path: str, args: argparse.Namespace, log: _Log) -> int:
    try:
        attrs = termios.tcgetattr(fd)
    except termios.error as exc:
        log(
            syslog.LOG_NOTICE,
            f"failed to get attributes for TTY device {path}: {_strerror(exc)}",
        )
        return 1

    _set_low_latency(fd)

    old_ispeed, old_ospeed = attrs[4], attrs[5]

    _make_raw(attrs)
    attrs[0] &= ~termios.IXOFF
    attrs[2] &= ~_CRTSCTS

    if args.uart_speed is not None:
        baud = look_up_uart_speed(args.uart_speed)
        attrs[4] = attrs[5] = baud

    if args.flow == FlowControl.HW:
        attrs[2] |= _CRTSCTS
    elif args.flow == FlowControl.SW:
        attrs[0] |= termios.IXON | termios.IXOFF

    _apply(fd, attrs, path, log)

    for command in build_setup_commands(
        args.speed, args.btr, args.read_status_flags, args.send_listen, args.send_open
    ):
        if not _write(fd, command):
            return 1

    try:
        set_line_discipline(fd, N_SLCAN)
    except OSError as exc:
        _report("ioctl TIOCSETD", exc)
        return 1

    try:
        device = get_netdevice_name(fd)
    except OSError as exc:
        _report("ioctl SIOCGIFNAME", exc)
        return 1

    log(syslog.LOG_NOTICE, f"attached TTY {path} to netdevice {device}")

    if args.name:
        try:
            renamed = rename_netdevice(device, args.name)
        except OSError as exc:
            _report("socket for interface rename", exc)
        else:
            if not renamed:
                log(syslog.LOG_NOTICE, f"netdevice {device} rename to {args.name} failed")
                print("ioctl SIOCSIFNAME rename: failed", file=sys.stderr)
                return 1
            log(syslog.LOG_NOTICE, f"netdevice {device} renamed to {args.name}")

    runner = _Runner(path, log)
    if args.foreground:
        signal.signal(signal.SIGINT, runner.stop)
        signal.signal(signal.SIGTERM, runner.stop)
    else:
        try:
            _detach()
        except OSError:
            log(syslog.LOG_ERR, "failed to daemonize")
            return 1

    while runner.running:
        time.sleep(1)

    log(syslog.LOG_INFO, f"stopping on TTY device {path}")
    try:
        set_line_discipline(fd, N_TTY)
    except OSError as exc:
        _report("ioctl TIOCSETD", exc)
        return 1

    if args.send_close and not _write(fd, b"C\r"):
        return 1

    attrs[4], attrs[5] = old_ispeed, old_ospeed
    _apply(fd, attrs, path, log)

    log(syslog.LOG_NOTICE, f"terminated on {path}")
    return runner.exit_code


def main(argv=None) -> int:
    """Attach the adapter and keep it attached until stopped; returns the exit status."""
    args = parse_args(sys.argv[1:] if argv is None else argv)
    log = _Log(foreground=args.foreground)
    syslog.openlog(DAEMON_NAME, syslog.LOG_PID, syslog.LOG_LOCAL5)
    try:
        path = tty_path(args.tty)
        log(syslog.LOG_INFO, f"starting on TTY device {path}")
        try:
            fd = os.open(path, os.O_RDWR | os.O_NONBLOCK | os.O_NOCTTY)
        except OSError as exc:
            log(syslog.LOG_NOTICE, f"failed to open TTY device {path}")
            _report(path, exc)
            return 1
        try:
            return _run(fd, path, args, log)
        finally:
            os.close(fd)
    finally:
        syslog.closelog()