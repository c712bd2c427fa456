"""Command line tool that decodes chip and driver state of an MCP251xFD."""

from __future__ import annotations

import sys

from .loader import DumpFormatError, load
from .ramdump import dump

PROG = "mcp251xfd-dump"


def _print_usage(prog: str) -> None:
    sys.stderr.write(
        f"{prog} - decode chip and driver state of mcp251xfd.\n"
        "\n"
        f"Usage: {prog} [options] <file>\n"
        "\n"
        "        <file>      path to dev coredump file\n"
        "                        ('/var/log/devcoredump-19700101-234200.dump')\n"
        "                    path to regmap register file\n"
        "                        ('/sys/kernel/debug/regmap/spi1.0-crc/registers')\n"
        "                    shortcut to regmap register file\n"
        "                        ('spi0.0')\n"
        "\n"
        "Options:\n"
        "        -h, --help  this help\n"
        "\n"
    )


def main(argv=None) -> int:
    """Read a dump file and print its decoded contents; returns the exit status."""
    args = sys.argv[1:] if argv is None else list(argv)
    positionals = []
    options_done = False

    for arg in args:
        if options_done or arg == "-" or not arg.startswith("-"):
            positionals.append(arg)
            continue
        if arg == "--":
            options_done = True
            continue
        if arg.startswith("--"):
            if "--help".startswith(arg.split("=", 1)[0]) and "=" not in arg:
                _print_usage(PROG)
                return 0
            _print_usage(PROG)
            return 1
        # short options are handled in order; only -h is accepted
        if arg[1] == "h":
            _print_usage(PROG)
            return 0
        _print_usage(PROG)
        return 1

    if not positionals:
        _print_usage(PROG)
        return 1
    file_path = positionals[0]

    try:
        state = load(file_path)
    except (OSError, DumpFormatError):
        sys.stderr.write(f"Unable to read file: '{file_path}'\n")
        return 1

    sys.stdout.write(dump(state))
    return 0