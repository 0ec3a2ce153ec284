from unittest import mock

import pytest

from meterlog.common import InvalidTypeError, MeterError, OptionNotFoundError
from meterlog.meterexec import MeterExec
from meterlog.reading import StringIdentifier


def test_plain_values():
    meter = MeterExec({"command": "printf '1.5\\n2.5\\n'"})
    rds = meter.read(10)
    assert [r.value for r in rds] == [1.5, 2.5]
    assert all(r.identifier == StringIdentifier("") for r in rds)


def test_plain_mode_counts_unparsable_lines():
    meter = MeterExec({"command": "printf 'abc\\n'"})
    rds = meter.read(10)
    assert [r.value for r in rds] == [0.0]


def test_limit_on_readings():
    meter = MeterExec({"command": "printf '1\\n2\\n3\\n'"})
    assert [r.value for r in meter.read(2)] == [1, 2]


def test_format_with_identifier_and_timestamp():
    meter = MeterExec({"command": "printf 'a 3 100.5\\n'", "format": "$i $v $t"})
    rds = meter.read(5)
    assert len(rds) == 1
    assert rds[0].identifier == StringIdentifier("a")
    assert rds[0].value == 3
    assert rds[0].time_ms() == 100500


def test_format_skips_unmatched_lines():
    meter = MeterExec({"command": "printf 'a b\\n4\\n'", "format": "$v"})
    rds = meter.read(5)
    assert [r.value for r in rds] == [4]
    assert rds[0].identifier == StringIdentifier("<null>")


def test_missing_command():
    with pytest.raises(OptionNotFoundError):
        MeterExec({})


def test_command_of_wrong_type():
    with pytest.raises(InvalidTypeError):
        MeterExec({"command": 5})


def test_open_refuses_root():
    meter = MeterExec({"command": "true"})
    with mock.patch("os.geteuid", return_value=0):
        with pytest.raises(MeterError):
            meter.open()


def test_open_runs_command_as_user(tmp_path):
    marker = tmp_path / "ran"
    meter = MeterExec({"command": f"touch '{marker}'"})
    with mock.patch("os.geteuid", return_value=1000):
        meter.open()
    assert marker.exists()