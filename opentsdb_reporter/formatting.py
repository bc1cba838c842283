"""Locale-independent numeric rendering for protocol values.

Values are rendered through ``decimal`` with an explicit ``NumberFormat``
instead of ``str.format``/``locale``, so the output never depends on the
regional settings of the host process.
"""

from __future__ import annotations

import math
import operator
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Context, Decimal
from typing import Any


@dataclass(frozen=True, slots=True)
class NumberFormat:
    """Decimal convention used for every fractional value on the wire."""

    decimal_point: str = "."
    precision: int = 2
    rounding: str = ROUND_HALF_UP

    def __post_init__(self) -> None:
        if self.precision < 0:
            raise ValueError("precision must be non-negative")
        if not self.decimal_point:
            raise ValueError("decimal_point cannot be empty")


US_FORMAT = NumberFormat()

# Enough significant digits for any finite double in fixed-point notation.
_FLOAT_DIGITS = 310


def format_int(value: Any) -> str:
    """Render an integral value with no separators or decimal point.

    Raises:
        TypeError: If ``value`` is not an integer type.
    """
    return str(operator.index(value))


def format_float(value: Any, fmt: NumberFormat = US_FORMAT) -> str:
    """Render ``value`` with exactly ``fmt.precision`` fractional digits.

    The shortest round-tripping repr of the float is rounded with
    ``fmt.rounding``, so ``2.675`` becomes ``2.68`` under half-up.

    Raises:
        ValueError: If ``value`` is NaN or infinite.
        TypeError: If ``value`` is not a real number.
    """
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"cannot format non-finite value {number!r}")

    quantum = Decimal(1).scaleb(-fmt.precision)
    context = Context(prec=_FLOAT_DIGITS + fmt.precision)
    rounded = Decimal(repr(number)).quantize(quantum, rounding=fmt.rounding, context=context)
    text = format(rounded, "f")
    if fmt.decimal_point != ".":
        text = text.replace(".", fmt.decimal_point)
    return text


__all__ = ["NumberFormat", "US_FORMAT", "format_float", "format_int"]
