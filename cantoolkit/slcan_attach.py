"""Attach the slcan line discipline to a serial line and set up the adapter."""

from __future__ import annotations

import argparse
import errno
import fcntl
import os
import socket
import struct
import sys
import termios
from typing import Optional

N_TTY = 0
N_SLCAN = 17
IFNAMSIZ = 16

_TIOCSETD = getattr(termios, "TIOCSETD", 0x5423)
_SIOCGIFNAME = 0x8910
_SIOCSIFNAME = 0x8923
_IFREQ_SIZE = 40


def _print_usage(prog: str) -> None:
    sys.stderr.write(
        f"{prog} - userspace tool for serial line CAN interface driver SLCAN.\n"
        f"\nUsage: {prog} [options] tty\n\n"
        "Options:\n"
        "         -o          (send open command 'O\\r')\n"
        "         -l          (send listen only command 'L\\r', overrides -o)\n"
        "         -c          (send close command 'C\\r')\n"
        "         -f          (read status flags with 'F\\r' to reset error states)\n"
        "         -s <speed>  (set CAN speed 0..8)\n"
        "         -b <btr>    (set bit time register value)\n"
        "         -d          (only detach line discipline)\n"
        "         -w          (attach - wait for keypess - detach)\n"
        "         -n <name>   (assign created netdevice name)\n"
        "\n"
        "    <speed>          Bitrate\n"
        "          0            10 Kbit/s\n"
        "          1            20 Kbit/s\n"
        "          2            50 Kbit/s\n"
        "          3           100 Kbit/s\n"
        "          4           125 Kbit/s\n"
        "          5           250 Kbit/s\n"
        "          6           500 Kbit/s\n"
        "          7           800 Kbit/s\n"
        "          8          1000 Kbit/s\n"
        "\n"
        "\nExamples:\n"
        "slcan_attach -w -o -f -s6 -c /dev/ttyS1\n\n"
        "slcan_attach /dev/ttyS1\n\n"
        "slcan_attach -d /dev/ttyS1\n\n"
        "slcan_attach -w -n can15 /dev/ttyS1\n\n"
    )


class _Parser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        _print_usage(self.prog)
        raise SystemExit(1)


def build_setup_commands(
    speed: Optional[str],
    btr: Optional[str],
    read_status_flags: bool,
    listen: bool,
    open_: bool,
) -> list[bytes]:
    """Return the commands sent to the adapter before attaching, in order."""
    commands = []
    if speed:
        commands.append(f"C\rS{speed}\r".encode("ascii"))
    if btr:
        commands.append(f"C\rs{btr}\r".encode("ascii"))
    if read_status_flags:
        commands.append(b"F\r")
    if listen:
        commands.append(b"L\r")
    elif open_:
        commands.append(b"O\r")
    return commands


def set_line_discipline(fd: int, ldisc: int) -> None:
    """Set the line discipline of the tty behind ``fd``."""
    fcntl.ioctl(fd, _TIOCSETD, struct.pack("i", ldisc))


def get_netdevice_name(fd: int) -> str:
    """Return the name of the network device created for the tty."""
    result = fcntl.ioctl(fd, _SIOCGIFNAME, bytes(IFNAMSIZ))
    return result.split(b"\0", 1)[0].decode("ascii", "replace")


def rename_netdevice(old: str, new: str) -> bool:
    """Rename a network device; False if the kernel refuses."""
    ifreq = struct.pack(
        f"{IFNAMSIZ}s{IFNAMSIZ}s",
        old.encode()[: IFNAMSIZ - 1],
        new.encode()[: IFNAMSIZ - 1],
    ).ljust(_IFREQ_SIZE, b"\0")
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        try:
            fcntl.ioctl(sock.fileno(), _SIOCSIFNAME, ifreq)
        except OSError:
            return False
    return True


def parse_args(argv) -> argparse.Namespace:
    """Parse the command line; prints usage and exits with 1 on bad input."""
    parser = _Parser(prog="slcan_attach", add_help=False)
    parser.add_argument("-l", dest="send_listen", action="store_true")
    parser.add_argument("-d", dest="detach", action="store_true")
    parser.add_argument("-w", dest="waitkey", action="store_true")
    parser.add_argument("-o", dest="send_open", action="store_true")
    parser.add_argument("-c", dest="send_close", action="store_true")
    parser.add_argument("-f", dest="read_status_flags", action="store_true")
    parser.add_argument("-s", dest="speed")
    parser.add_argument("-b", dest="btr")
    parser.add_argument("-n", dest="name")
    parser.add_argument("-?", dest="help", action="store_true")
    parser.add_argument("ttys", nargs="*")
    args = parser.parse_args(list(argv))

    if (
        args.help
        or (args.speed is not None and len(args.speed) > 1)
        or (args.btr is not None and len(args.btr) > 6)
        or (args.name is not None and len(args.name) > IFNAMSIZ - 1)
        or len(args.ttys) != 1
    ):
        _print_usage(parser.prog)
        raise SystemExit(1)

    args.tty = args.ttys[0]
    del args.ttys
    del args.help
    return args


class _Abort(Exception):
    """A step failed and its error has been reported."""


def _report(label: str, exc: OSError) -> None:
    print(f"{label}: {exc.strerror or exc}", file=sys.stderr)


def _write_command(fd: int, command: bytes) -> None:
    try:
        if os.write(fd, command) <= 0:
            raise OSError(errno.EIO, "nothing written")
    except OSError as exc:
        _report("write", exc)
        raise _Abort from exc


def _attach(fd: int, args: argparse.Namespace) -> None:
    for command in build_setup_commands(
        args.speed, args.btr, args.read_status_flags, args.send_listen, args.send_open
    ):
        _write_command(fd, command)

    try:
        set_line_discipline(fd, N_SLCAN)
    except OSError as exc:
        _report("ioctl TIOCSETD", exc)
        raise _Abort from exc

    try:
        device = get_netdevice_name(fd)
    except OSError as exc:
        _report("ioctl SIOCGIFNAME", exc)
        raise _Abort from exc

    print(f"attached tty {args.tty} to netdevice {device}")

    if args.name:
        print(f"rename netdevice {device} to {args.name} ... ", end="", flush=True)
        try:
            renamed = rename_netdevice(device, args.name)
        except OSError as exc:
            _report("socket for interface rename", exc)
        else:
            print("ok." if renamed else "failed!")


def _detach(fd: int, args: argparse.Namespace) -> None:
    try:
        set_line_discipline(fd, N_TTY)
    except OSError as exc:
        _report("ioctl", exc)
        raise _Abort from exc
    if args.send_close:
        _write_command(fd, b"C\r")


def main(argv=None) -> int:
    """Attach and/or detach the slcan line discipline; returns the exit status."""
    args = parse_args(sys.argv[1:] if argv is None else argv)

    try:
        fd = os.open(args.tty, os.O_WRONLY | os.O_NOCTTY)
    except OSError as exc:
        _report(args.tty, exc)
        return 1

    try:
        if args.waitkey or not args.detach:
            _attach(fd, args)
        if args.waitkey:
            print(f"Press any key to detach {args.tty} ...", flush=True)
            sys.stdin.read(1)
        if args.waitkey or args.detach:
            _detach(fd, args)
    except _Abort:
        return 1
    finally:
        os.close(fd)
    return 0