"""Unit conversion and normalization helpers.

Pure, I/O-free functions shared by every collector so that unit arithmetic
lives in one place. Collectors hand raw numbers in, get display-ready values
out.

Rounding policy:
    Percentages and whole-number conversions round half up
    (``round_half_up(40.5) == 41``), not Python's banker's rounding.
    One-decimal values (GB figures) use the same policy at the first decimal.
"""

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from sysmon.core.models import UNAVAILABLE, Metric

KB_PER_MB = 1024
KB_PER_GB = 1024 * 1024
BYTES_PER_MB = 1024 ** 2
BYTES_PER_GB = 1024 ** 3
SECTOR_SIZE = 512

# Raw thermal readings above this are millidegrees Celsius
MILLIDEGREE_THRESHOLD = 1000


def round_half_up(value: float, digits: int = 0) -> float:
    """Round with .5 going away from zero.

    Example:
        >>> round_half_up(40.5)
        41.0
        >>> round_half_up(2.25, 1)
        2.3
    """
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def fixed(value: float, digits: int = 1) -> float:
    """Fixed-precision decimal, half-up."""
    return round_half_up(value, digits)


def clamp_percent(value: float) -> int:
    """Clamp to [0, 100] and round to an integer percent.

    NaN and infinities collapse to 0.
    """
    if value is None or math.isnan(value) or math.isinf(value):
        return 0
    return int(round_half_up(min(100.0, max(0.0, float(value)))))


def percent_of(part: float, whole: float) -> int:
    """Integer percentage of part in whole, 0 when whole is not positive.

    Example:
        >>> percent_of(40, 100)
        40
    """
    if not whole or whole <= 0:
        return 0
    return clamp_percent(part / whole * 100)


def kb_to_mb(kb: float) -> int:
    return int(kb // KB_PER_MB)


def kb_to_gb(kb: float) -> float:
    return fixed(kb / KB_PER_GB, 1)


def bytes_to_mb(value: float, digits: int = 1) -> float:
    return fixed(value / BYTES_PER_MB, digits)


def bytes_to_gb(value: float, digits: int = 1) -> float:
    return fixed(value / BYTES_PER_GB, digits)


def sectors_to_bytes(sectors: int) -> int:
    return int(sectors) * SECTOR_SIZE


def sectors_to_mb(sectors: int) -> int:
    return int(round_half_up(sectors_to_bytes(sectors) / BYTES_PER_MB))


def millidegrees_to_celsius(raw: float) -> float:
    """Normalize a kernel thermal reading to whole-ish degrees Celsius.

    Readings above 1000 are millidegrees and are divided by 1000; anything at
    or below 1000 is already in degrees.

    Example:
        >>> millidegrees_to_celsius(45000)
        45.0
        >>> millidegrees_to_celsius(45)
        45.0
    """
    raw = float(raw)
    if raw > MILLIDEGREE_THRESHOLD:
        return fixed(raw / 1000, 1)
    return fixed(raw, 1)


def safe_number(value: Any, default: Optional[float] = None) -> Optional[float]:
    """Convert to float, returning default for None, NaN, inf or junk."""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number) or math.isinf(number):
        return default
    return number


def to_metric(value: Any, unit: str = "") -> Metric:
    """Wrap a raw number as a Metric, UNAVAILABLE when it is not numeric."""
    number = safe_number(value)
    if number is None:
        return Metric(UNAVAILABLE, unit)
    return Metric(number, unit)


def percent_metric(value: Any) -> Metric:
    """Clamped whole percentage as a Metric.

    Example:
        >>> percent_metric(104.2)
        Metric(value=100, unit='%')
    """
    metric = to_metric(value, "%")
    if not metric.available:
        return metric
    return Metric(clamp_percent(metric.value), "%")


def celsius_metric(raw: Any) -> Metric:
    """Thermal reading (degrees or millidegrees) as a Celsius Metric."""
    metric = to_metric(raw, "°C")
    if not metric.available:
        return metric
    return Metric(millidegrees_to_celsius(metric.value), "°C")
