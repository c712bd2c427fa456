# cantoolkit

Tools for working with CAN interfaces on Linux:

- **slcan** helpers that attach a serial-line CAN adapter to the kernel's
  slcan line discipline, either once (`slcan_attach`) or for as long as a
  process keeps running (`slcand`);
- a pseudo-terminal bridge (`slcanpty`) that speaks the slcan ASCII protocol
  to an application on one side and a SocketCAN interface on the other;
- a decoder (`mcp251xfd-dump`) for the register and RAM state of Microchip
  MCP2517FD / MCP2518FD CAN FD controllers, read from a kernel device
  coredump or a regmap debugfs register file.

No third-party libraries are needed. The serial, pty and CAN socket tools
need Linux and, for attaching line disciplines or renaming interfaces,
suitable privileges.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Command-line tools

### slcan_attach

Send setup commands to an slcan adapter on a tty and attach the slcan line
discipline, which creates an `slcanN` network device.

```
slcan_attach -w -o -f -s6 -c /dev/ttyS1
slcan_attach /dev/ttyS1
slcan_attach -d /dev/ttyS1
slcan_attach -w -n can15 /dev/ttyS1
```

| Option      | Meaning                                              |
|-------------|------------------------------------------------------|
| `-o`        | send the open command `O\r`                          |
| `-l`        | send the listen-only command `L\r` (overrides `-o`)  |
| `-c`        | send the close command `C\r` on detach               |
| `-f`        | read status flags with `F\r` to reset error states   |
| `-s <0..8>` | CAN bitrate: 10, 20, 50, 100, 125, 250, 500, 800, 1000 kbit/s |
| `-b <btr>`  | set a raw bit time register value (up to 6 characters) |
| `-d`        | only detach the line discipline                      |
| `-w`        | attach, wait for a key press, then detach            |
| `-n <name>` | rename the created network device (up to 15 characters) |

Bad options or a missing tty print the usage text and exit with status 1.

### slcand

The same setup as `slcan_attach`, kept attached until the process receives
SIGINT or SIGTERM (with `-F`), after which the line discipline is reset to
the normal tty one, `C\r` is sent if `-c` was given, and the original UART
speed is restored. The tty may be given with or without the `/dev/` prefix,
and an optional second argument renames the created interface.

```
slcand -o -c -f -s6 ttyUSB0
slcand -o -c -f -s6 ttyUSB0 can0
slcand -o -c -f -s6 -S 115200 -t hw -F /dev/ttyUSB0
```

Additional options: `-S <baud>` sets the UART speed (standard rates from
9600 up to 4000000 baud, as far as the platform's termios knows them),
`-t hw|sw` selects hardware or software flow control, and `-F` stays in
the foreground with messages printed to standard output as `[priority]
message` instead of being sent to syslog. `-h` prints the usage text.

### slcanpty

Bridge an application that talks slcan over a terminal to a SocketCAN
interface:

```
slcanpty /dev/ptmx can0
```

With `/dev/ptmx` a Unix 98 pseudo-terminal is allocated and the name of its
slave side (`/dev/pts/N`) is printed; point the slcan application at that
device. Frames received on the CAN interface are forwarded as slcan ASCII
once the application sends `O` (and no longer after `C`), and
`t`/`T`/`r`/`R` commands from the application are sent on the bus. `V`,
`v`, `N` and `F` get fixed answers, `Z0`/`Z1` switch receive timestamps
off and on, `U`, `S`, `s`, `m` and `M` are acknowledged, `P` and `A` are
refused, and `X` is acknowledged or refused depending on its argument.
Every received command is echoed to standard output with `\r` shown as `@`.
The bridge stops when the pty is closed, on a read or write error, or when
input arrives on standard input.

### mcp251xfd-dump

Decode the chip and driver state of an MCP251xFD controller:

```
mcp251xfd-dump /var/log/devcoredump-19700101-234200.dump
mcp251xfd-dump /sys/kernel/debug/regmap/spi1.0-crc/registers
mcp251xfd-dump spi0.0
```

The file is read as a device coredump first and, if that fails, as a regmap
register file. A bare device name such as `spi0.0` is looked up under
`/sys/kernel/debug/regmap`, first as given and then with a `-crc` suffix.
The output lists the controller registers with their decoded fields,
followed by the TEF, TX and RX FIFO objects in RAM together with the chip's
and the driver's head/tail positions. `-h`/`--help` prints the usage text;
an unreadable file prints `Unable to read file: '<file>'` and exits with
status 1.

## Library use

### CAN frames and bit fields

`cantoolkit.canframe` holds the classic CAN frame `CanFrame` (fields
`can_id`, `data`, `len8_dlc`; properties `dlc`, `is_extended`, `is_remote`,
`is_error`, `arbitration_id`), with `CanFrame.pack()` and
`unpack_frame(raw)` for the kernel's 16-byte native layout, the identifier
flags and masks, the `RawOption` socket options, and small bit helpers:

```python
from cantoolkit.canframe import bit, can_dlc2len, field_get, genmask, get_canfd_dlc

genmask(31, 28)                  # 0xF0000000
bit(27)                          # 0x08000000
field_get(genmask(26, 24), 0x04000000)   # 4
can_dlc2len(9)                   # 12
get_canfd_dlc(20)                # 15, clamped to the CAN FD maximum
```

### slcan protocol

`cantoolkit.slcanpty` provides the protocol side of the bridge without any
terminal or socket. `SlcanSession(send_frame, set_reception, trace)` is
given bytes as written by an slcan application through `feed(data)`, which
keeps incomplete commands until their `\r` arrives and returns the reply
bytes for the application; frames to transmit are passed to the
`send_frame` callback, and `O`/`C` call `set_reception(True)` /
`set_reception(False)`. The `is_open` and `timestamps` attributes reflect
the commands seen so far.

```python
from cantoolkit.slcanpty import SlcanSession, encode_frame
from cantoolkit.canframe import CanFrame

frames = []
session = SlcanSession(send_frame=frames.append)
session.feed(b"t1232AABB\r")     # b"\r"; frames == [CanFrame(0x123, b"\xaa\xbb")]
encode_frame(CanFrame(0x123, b"\xaa\xbb"))   # b"t1232AABB\r"
```

`encode_frame(frame, timestamp_ms)` appends a four-digit hexadecimal
timestamp when one is given, and `asc2nibble(c)` decodes a single
hexadecimal digit (16 for anything else).

`cantoolkit.slcan_attach.build_setup_commands(speed, btr,
read_status_flags, listen, open_)` returns the commands sent to an adapter
before attaching; the same module has `set_line_discipline(fd, ldisc)`,
`get_netdevice_name(fd)` and `rename_netdevice(old, new)`.
`cantoolkit.slcand.look_up_uart_speed(speed)` maps a baud rate to its
termios constant (raising `ValueError` for unsupported rates) and
`cantoolkit.slcand.tty_path(tty)` adds the `/dev/` prefix where missing.

### MCP251xFD state

```python
from cantoolkit.mcp251xfd.loader import load
from cantoolkit.mcp251xfd.ramdump import dump

state = load("spi0.0")           # a ChipState: register memory plus TEF/TX/RX rings
print(dump(state))               # the register and RAM report as text
```

`cantoolkit.mcp251xfd.loader` also offers `parse_dev_coredump(state, data)`,
`read_dev_coredump(state, path)`, `parse_regmap(state, text)` and
`read_regmap(state, path)`, raising `DumpFormatError` on malformed input;
`load` raises `OSError` or `DumpFormatError` when neither format can be
read. Register addresses and field masks live in
`cantoolkit.mcp251xfd.registers` (for example `fifocon(x)`, `fifosta(x)`,
`fifoua(x)`, `fltcon(x)`, `fltobj(x)`, `fltmask(x)`). The register decoders
are in `cantoolkit.mcp251xfd.regdump` (`dump_register(name, val, addr)`,
`dump_registers(mem)`), and the RAM decoders in
`cantoolkit.mcp251xfd.ramdump` (`dump_ram(state)`, `format_data(data,
dlc)`, `fifo_payload_size(con)`, `fifo_obj_num(con)`). All of them return
strings rather than printing.

## What it does not do

- There are no general tools for capturing, logging, replaying or sending
  CAN traffic, and no ISO-TP or J1939 support; the only CAN socket user is
  the `slcanpty` bridge.
- `slcanpty` handles classic CAN frames only. The acceptance code and mask
  commands `m`/`M` are acknowledged but do not filter anything.
- Without `-F`, `slcand` logs to syslog, moves to `/` and points its
  standard streams at `/dev/null`, but it does not fork into the
  background; start it with your service manager or shell job control.
- `mcp251xfd-dump` only reads saved state; it does not talk to a chip.