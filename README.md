# meterlog

`meterlog` reads values from utility meters and returns them as
timestamped `Reading` objects (`meterlog.reading`). A reading has a
`value`, a timestamp (`seconds`, `microseconds`, with `time_ms()` and
`time_s()`) and an `identifier`. The identifier is a
`StringIdentifier`, a `ChannelIdentifier`, an `ObisIdentifier` or a
`NilIdentifier`.

## Meter sources

| Class | Module | Reads from |
|---|---|---|
| `MeterFile` | `meterlog.meterfile` | Lines of a file or FIFO |
| `MeterExec` | `meterlog.meterexec` | Lines printed by a shell command, which is run on every read |
| `MeterFluksoV2` | `meterlog.fluksov2` | The FluksoV2 SPI delta FIFO (default `/var/run/spid/delta/out`) |
| `MeterOCR` | `meterlog.ocr` | An image file of analogue dials or of a blinking mark |

Every meter takes its options as a mapping. It has `open()`,
`read(n)` and `close()`, and it can be used as a context manager:

```python
from meterlog.meterfile import MeterFile

with MeterFile({"path": "/tmp/meter.fifo", "format": "$t;$i : $v", "interval": 1}) as meter:
    for reading in meter.read(10):
        print(reading.identifier, reading.value, reading.time_ms())
```

`read(n)` returns a list of at most `n` readings. If a meter cannot be
opened, it raises `MeterError`.

The helpers `lookup_string`, `lookup_int`, `lookup_float` and
`lookup_bool` in `meterlog.common` read the options. A missing key
raises `OptionNotFoundError` and a value of the wrong type raises
`InvalidTypeError`. Both are subclasses of `MeterError`.

### MeterFile

Options:

- `path` (required).
- `format` (optional).
- `rewind`: read from the start of the file on every call.
- `interval`: when it is missing or not positive, each `read` first
  waits until the file's size, modification time or inode has changed.

### MeterExec

Options:

- `command` (required).
- `format` (optional).

`open()` refuses to work when the process runs as root.

### MeterFluksoV2

Option `fifo`. Each line has the form `<time> <channel> <consumption>
<power> ...`. For every channel it yields a consumption reading, whose
`ChannelIdentifier` is the negative of channel + 1, and a power
reading, whose identifier is channel + 1. `parse_flukso_line` parses a
single line.

## Line formats

The `format` option of `MeterFile` and `MeterExec` uses three
placeholders:

- `$v`: the value.
- `$i`: the identifier, a word without whitespace.
- `$t`: a Unix timestamp, which may have a fraction.

Whitespace in the format matches any run of whitespace. Any other
character must appear literally. When a line has no timestamp, the
current time is used.

Without a format, each line holds one number and the reading's
identifier is `StringIdentifier("")`. With a format but no `$i`, the
identifier is `"<null>"`.

`LineFormat` and `parse_plain_value` in `meterlog.lineformat` do this
parsing.

## D0 helpers

- `meterlog.d0config.D0Config.from_options` checks the settings of an
  EN 62056-21 (D0) connection:
  - `host` or `device`
  - `baudrate` and `baudrate_read`
  - `parity`: `8n1`, `7n1`, `7e1` or `7o1`
  - `pullseq`
  - `ackseq`: a hex sequence or `auto`
  - `wait_sync`: `end` or `off`
  - `read_timeout`
  - `baudrate_change_delay`
  - `dump_file`
- `parse_hex_sequence`, `parse_baudrate` and `parse_parity` are available
  on their own.
- `meterlog.d0dump.DumpWriter` writes an annotated hex dump of the
  traffic to a path or a binary stream. It has `write(mode, data)` with a
  `DumpMode`, `control(text)` and `close()`.

## Units

`meterlog.units.dlms_unit(code)` returns the DLMS unit symbol for a
code, for example `30` → `"Wh"`. It returns `None` for unknown codes
and raises `ValueError` for values outside 0–255.

## Image recognition

`MeterOCR` needs a `file` option and a `recognizer` option. The
`recognizer` option is a list of objects, each with a `type` and
`boundingboxes`.

- `needle` reads red needles on round dials. Each of its boxes needs a
  `circle` with `cx`, `cy`, `cr` and optionally `offset`.
- `binary` reports a value of 1 each time a light in its single `box`
  switches on.

Each bounding box needs an `identifier`. It may also have `scaler`,
`digit` and `confidence_id`. An optional `kernelColorString` of nine
numbers replaces the default colour matrix, which amplifies red.

Further options:

- `rotate`: degrees clockwise.
- `autofix`: an object with `range`, `x` and `y` that corrects a shifted
  image.
- `impulses`: report impulse counts since the last read instead of
  absolute values. The first read then returns nothing.
- `generate_debug_image`: write `<file>_debug.jpg`.

A read only processes the image when the file has changed, unless
`set_forced_file_changed()` was called.

The helpers live in these modules:

- `meterlog.ocrmath`: `debounce`, `round_based_on_smaller_digits`,
  `calc_impulses`.
- `meterlog.ocrimage`: image operations.
- `meterlog.ocrconfig`: configuration parsing.
- `meterlog.ocrrecognizers`: the recognizers.

## What is not included

- The package has no D0 meter reader. It does not open a serial device
  or TCP connection and does not parse D0 telegrams. For D0 it only
  provides the configuration and dump helpers above.
- `MeterOCR` cannot capture from video devices. The `v4l2_dev` option
  raises `MeterError`.
- `MeterOCR` has no character-recognition recognizer. A recognizer
  without a `type` is rejected.
- There is no command-line program and no storage or upload of readings.

## Running the tests

```
pip install -e .[test]
pytest
```