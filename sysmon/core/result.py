"""Tagged results for fallback-chain control flow.

Strategies never raise to signal "this source did not work". They return
either an ``Ok`` carrying the parsed value or a ``Failure`` describing why the
attempt was abandoned. The fallback chain inspects the tag and moves on.

Failure kinds:
    UNAVAILABLE: optional source absent (tool missing, path missing)
    PARSE: source answered but not in the expected shape
    PERMISSION: read access refused (common for power/thermal nodes)
    TIMEOUT: external tool exceeded its time budget
    CANCELLED: caller abandoned the snapshot request
    ERROR: anything else caught at the strategy boundary
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union


class FailureKind(Enum):
    """Reason a strategy attempt did not produce a value."""

    UNAVAILABLE = "unavailable"
    PARSE = "parse"
    PERMISSION = "permission"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    ERROR = "error"


@dataclass(frozen=True)
class Ok:
    """Successful attempt."""

    value: Any
    source: str = ""

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    """Failed attempt with its reason."""

    kind: FailureKind
    detail: str = ""
    source: str = ""

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok, Failure]


def unavailable(detail: str = "") -> Failure:
    return Failure(FailureKind.UNAVAILABLE, detail)


def parse_failure(detail: str = "") -> Failure:
    return Failure(FailureKind.PARSE, detail)


def from_os_error(error: OSError) -> Failure:
    """Map an OSError raised while reading a source to a failure kind.

    Args:
        error: The error raised by open()/read()/stat().

    Returns:
        PERMISSION for access errors, UNAVAILABLE for everything else.
    """
    if isinstance(error, PermissionError):
        return Failure(FailureKind.PERMISSION, str(error))
    return Failure(FailureKind.UNAVAILABLE, str(error))
