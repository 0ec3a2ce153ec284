import pytest

from meterlog.units import dlms_unit


@pytest.mark.parametrize(
    "code,unit",
    [(1, "a"), (27, "W"), (30, "Wh"), (35, "V"), (9, "°C"), (255, "(unitless)")],
)
def test_known_units(code, unit):
    assert dlms_unit(code) == unit


@pytest.mark.parametrize("code", [0, 58, 59, 65, 252])
def test_unknown_units(code):
    assert dlms_unit(code) is None


@pytest.mark.parametrize("code", [-1, 256])
def test_out_of_range(code):
    with pytest.raises(ValueError):
        dlms_unit(code)


def test_corrected_volume_shares_symbol():
    assert dlms_unit(13) == dlms_unit(14)
    assert dlms_unit(15) == dlms_unit(16)