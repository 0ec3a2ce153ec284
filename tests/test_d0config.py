import pytest

from meterlog.common import InvalidTypeError, MeterError, OptionNotFoundError, Parity
from meterlog.d0config import (
    D0Config,
    parse_baudrate,
    parse_hex_sequence,
    parse_parity,
)


def test_hex_sequence_of_mode_c_ack():
    assert parse_hex_sequence("063030300d0a") == b"\x06\x30\x30\x30\x0d\x0a"


@pytest.mark.parametrize("data", [b"", b"\x00", b"/?!\r\n", bytes(range(256))])
def test_hex_sequence_round_trip(data):
    assert parse_hex_sequence(data.hex()) == data
    assert parse_hex_sequence(data.hex().upper()) == data


def test_hex_sequence_invalid_pair_is_zero():
    assert parse_hex_sequence("zz06") == bytes([0, 6])


def test_hex_sequence_length_is_half_rounded_up():
    assert len(parse_hex_sequence("abcde")) == 3


@pytest.mark.parametrize(
    "rate",
    [50, 75, 110, 134, 150, 200, 300, 600, 1200, 1800, 2400, 4800,
     9600, 19200, 38400, 57600, 115200, 230400],
)
def test_supported_baudrates(rate):
    assert parse_baudrate(rate) == rate


@pytest.mark.parametrize("rate", [0, 100, 14400, 460800])
def test_unsupported_baudrate_raises(rate):
    with pytest.raises(MeterError):
        parse_baudrate(rate)


@pytest.mark.parametrize(
    "text,expected",
    [("8n1", Parity.P8N1), ("7N1", Parity.P7N1), ("7e1", Parity.P7E1), ("7O1", Parity.P7O1)],
)
def test_parse_parity(text, expected):
    assert parse_parity(text) is expected


def test_parse_parity_invalid():
    with pytest.raises(MeterError):
        parse_parity("9x9")


def test_defaults_with_device():
    config = D0Config.from_options({"device": "/dev/ttyUSB0"})
    assert config.device == "/dev/ttyUSB0"
    assert config.host == ""
    assert config.baudrate == 9600
    assert config.baudrate_read == config.baudrate
    assert config.parity is Parity.P7E1
    assert config.read_timeout == 10
    assert config.baudrate_change_delay_ms == 0
    assert config.pull == b""
    assert config.ack == b""
    assert config.auto_ack is False
    assert config.wait_sync_end is False


def test_host_takes_precedence():
    config = D0Config.from_options({"host": "localhost:8888", "device": "/dev/ttyS0"})
    assert config.host == "localhost:8888"
    assert config.device == ""


def test_missing_host_and_device_raises():
    with pytest.raises(OptionNotFoundError):
        D0Config.from_options({})


def test_empty_device_raises():
    with pytest.raises(MeterError):
        D0Config.from_options({"device": ""})


def test_host_of_wrong_type_raises():
    with pytest.raises(InvalidTypeError):
        D0Config.from_options({"host": 42})


def test_sequences_and_auto_ack():
    config = D0Config.from_options(
        {"device": "/dev/ttyS0", "pullseq": "2f3f210d0a", "ackseq": "auto"}
    )
    assert config.pull == b"/?!\r\n"
    assert config.auto_ack is True
    assert config.ack == b""


def test_explicit_ack_sequence():
    config = D0Config.from_options({"device": "/dev/ttyS0", "ackseq": "063030300d0a"})
    assert config.auto_ack is False
    assert config.ack == b"\x06000\r\n"


def test_baudrate_read_follows_option():
    config = D0Config.from_options(
        {"device": "/dev/ttyS0", "baudrate": 300, "baudrate_read": 9600}
    )
    assert (config.baudrate, config.baudrate_read) == (300, 9600)


def test_baudrate_read_defaults_to_baudrate():
    config = D0Config.from_options({"device": "/dev/ttyS0", "baudrate": 2400})
    assert config.baudrate_read == 2400


def test_invalid_baudrate_option_raises():
    with pytest.raises(MeterError):
        D0Config.from_options({"device": "/dev/ttyS0", "baudrate": 1234})


def test_invalid_baudrate_read_option_raises():
    with pytest.raises(MeterError):
        D0Config.from_options({"device": "/dev/ttyS0", "baudrate_read": 1234})


@pytest.mark.parametrize("text,expected", [("END", True), ("end", True), ("Off", False)])
def test_wait_sync(text, expected):
    config = D0Config.from_options({"device": "/dev/ttyS0", "wait_sync": text})
    assert config.wait_sync_end is expected


def test_invalid_wait_sync_raises():
    with pytest.raises(MeterError):
        D0Config.from_options({"device": "/dev/ttyS0", "wait_sync": "start"})


def test_timeouts_and_delay():
    config = D0Config.from_options(
        {
            "device": "/dev/ttyS0",
            "read_timeout": 30,
            "baudrate_change_delay": 500,
            "parity": "8N1",
            "dump_file": "/tmp/d0.dump",
        }
    )
    assert config.read_timeout == 30
    assert config.baudrate_change_delay_ms == 500
    assert config.parity is Parity.P8N1
    assert config.dump_file == "/tmp/d0.dump"


def test_read_timeout_wrong_type_raises():
    with pytest.raises(InvalidTypeError):
        D0Config.from_options({"device": "/dev/ttyS0", "read_timeout": "ten"})