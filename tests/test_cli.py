import struct

from cantoolkit.mcp251xfd.cli import main
from cantoolkit.mcp251xfd.loader import DUMP_MAGIC
from cantoolkit.mcp251xfd.ramdump import RAM_DUMP_HEADER
from cantoolkit.mcp251xfd.regdump import REGISTER_DUMP_HEADER


def _coredump(tmp_path):
    path = tmp_path / "devcoredump.dump"
    path.write_bytes(struct.pack("<4I", DUMP_MAGIC, 0xFFFFFFFF, 0, 0))
    return path


def test_help_succeeds(capsys):
    assert main(["-h"]) == 0
    assert "Usage:" in capsys.readouterr().err


def test_long_help_succeeds(capsys):
    assert main(["--help"]) == 0
    assert "-h, --help" in capsys.readouterr().err


def test_missing_file_argument(capsys):
    assert main([]) == 1
    assert "Usage:" in capsys.readouterr().err


def test_unknown_option(capsys):
    assert main(["-x", "file"]) == 1
    assert "Usage:" in capsys.readouterr().err


def test_other_listed_option_fails(capsys, tmp_path):
    assert main(["-r", str(_coredump(tmp_path))]) == 1
    assert capsys.readouterr().out == ""


def test_unreadable_file(capsys, tmp_path):
    missing = tmp_path / "missing"
    assert main([str(missing)]) == 1
    assert capsys.readouterr().err == f"Unable to read file: '{missing}'\n"


def test_dumps_coredump(capsys, tmp_path):
    assert main([str(_coredump(tmp_path))]) == 0
    out = capsys.readouterr().out
    assert out.startswith(REGISTER_DUMP_HEADER)
    assert RAM_DUMP_HEADER in out


def test_dumps_regmap_file(capsys, tmp_path):
    path = tmp_path / "registers"
    path.write_text("40: 03000000\n")
    assert main([str(path)]) == 0
    out = capsys.readouterr().out
    assert out.count("TEF Object:") == 4
    assert "tefcon(0x040)=0x03000000" in out