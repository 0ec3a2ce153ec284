"""Digit rounding, debouncing and impulse arithmetic for image recognition."""

from __future__ import annotations

import logging

_log = logging.getLogger(__name__)


def debounce(prev_digit: int, new_value: float) -> int:
    """Hold on to the previous digit while a new reading is still close to it.

    ``new_value`` is the detected digit as a fraction such as ``9.7``.  The
    digit only changes once the reading has clearly moved past the
    previous one.
    """
    new_digit = int(new_value)  # truncates: 0.99 stays 0
    _log.debug(
        "returning digit debounce check: prev_dig=%d nr=%d fnr=%f",
        prev_digit, new_digit, new_value,
    )
    result = new_digit
    if prev_digit == 0:
        if new_digit == 9 and new_value > 9.5:
            result = 0
        if new_digit == 1 and new_value < 1.5:
            result = 0
    elif prev_digit == 9:
        if new_digit == 0 and new_value < 0.5:
            result = 9
        if new_digit == 8 and new_value >= 8.5:
            result = 9
    else:
        previous = float(prev_digit)
        if new_value > previous:
            if new_value - previous < 1.5:
                result = prev_digit
        elif previous - new_value < 0.5:
            result = prev_digit
    if result != new_digit:
        _log.debug(
            "returning digit debounced: prev_dig=%d nr=%d fnr=%f -> to=%d",
            prev_digit, new_digit, new_value, result,
        )
    return result


def round_based_on_smaller_digits(
    current: int, fnr: float, smaller: float, conf: int
) -> tuple[int, int]:
    """Correct a needle digit using the fraction shown by the next smaller digit.

    ``fnr`` is the needle position as a fractional digit and ``smaller`` the
    next smaller digit as ``0.x``.  Returns the corrected digit and the
    confidence, lowered whenever a correction was made.
    """
    digit = current
    if smaller < 0.5:
        # e.g. 8.1 shown as 0.1 and 7.99: int(7.99 + 0.5 - 0.1) = 8
        candidate = int(fnr + 0.5 - smaller)
        if candidate != digit:
            digit = candidate
            if digit >= 10:
                digit = 0
            conf -= 10
            _log.debug(
                "returning rounded up: smaller=%f nr=%d fnr=%f", smaller, digit, fnr
            )
    if smaller >= 0.5:
        # e.g. 3.9 shown as 0.9 and 4.1: int(4.1 - 0.9 + 0.5) = 3
        candidate = 9 if fnr < smaller - 0.5 else int(fnr - smaller + 0.5)
        if candidate != digit:
            digit = candidate
            conf -= 15
            _log.debug(
                "returning rounded down: smaller=%f nr=%d fnr=%f", smaller, candidate, fnr
            )
    return digit, conf


def calc_impulses(value: float, old_value: float, impulses: int) -> int:
    """Number of impulses between two readings, allowing for a counter wrap.

    With ten or more impulses per unit a jump of more than half a unit is
    taken as a wrap of the counter.
    """
    imp = round((value - old_value) * impulses)
    if impulses >= 10 and abs(imp) > impulses // 2:
        if imp < 0:
            while imp < 0:
                imp += impulses  # 0.99 -> 0.01: -98 becomes 2
        else:
            while imp > 0:
                imp -= impulses  # 0.01 -> 0.99: 98 becomes -2
    return imp