"""Bounded access to raw host sources.

Every external tool invocation and pseudo-file read used by the collectors
goes through this module. Nothing here raises: each helper returns an ``Ok``
with the raw text or a ``Failure`` tagged with the reason, which is what the
fallback chains consume.

Tools are always executed in list form without a shell, with a timeout, and
only after checking the caller's cancellation event.
"""

import logging
import subprocess
import threading
from pathlib import Path
from typing import Optional, Sequence, Union

from sysmon.core.result import (
    Failure,
    FailureKind,
    Ok,
    Result,
    from_os_error,
    unavailable,
)

logger = logging.getLogger(__name__)

DEFAULT_TOOL_TIMEOUT = 3.0


def is_cancelled(cancel: Optional[threading.Event]) -> bool:
    return cancel is not None and cancel.is_set()


def run_tool(
    args: Sequence[str],
    timeout: float = DEFAULT_TOOL_TIMEOUT,
    cancel: Optional[threading.Event] = None,
) -> Result:
    """Run an external tool and capture its stdout.

    Args:
        args: Command and arguments, e.g. ``["mpstat", "-P", "ALL", "1", "1"]``.
        timeout: Seconds before the tool is killed.
        cancel: Optional event; when set the tool is not started.

    Returns:
        ``Ok(stdout)`` on exit code 0 with non-empty output, otherwise a
        ``Failure`` (UNAVAILABLE, TIMEOUT, CANCELLED, PERMISSION or PARSE).

    Example:
        >>> result = run_tool(["nproc"])
        >>> result.value.strip() if result.ok else "?"
        '8'
    """
    if is_cancelled(cancel):
        return Failure(FailureKind.CANCELLED, f"{args[0]} not started")

    try:
        completed = subprocess.run(
            list(args),
            shell=False,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        logger.debug(f"{args[0]} timed out after {timeout}s")
        return Failure(FailureKind.TIMEOUT, f"{args[0]} timed out after {timeout}s")
    except FileNotFoundError:
        return unavailable(f"{args[0]} not found")
    except OSError as e:
        return from_os_error(e)

    if completed.returncode != 0:
        stderr = (completed.stderr or "").strip()
        if "permission denied" in stderr.lower():
            return Failure(FailureKind.PERMISSION, stderr)
        return unavailable(f"{args[0]} exited with {completed.returncode}: {stderr[:200]}")

    output = completed.stdout or ""
    if not output.strip():
        return Failure(FailureKind.PARSE, f"{args[0]} produced no output")
    return Ok(output)


def read_text(
    path: Union[str, Path], cancel: Optional[threading.Event] = None
) -> Result:
    """Read a pseudo-filesystem node as text.

    Returns:
        ``Ok(text)`` or a ``Failure`` (PERMISSION for refused reads,
        UNAVAILABLE for missing nodes, PARSE for empty content).
    """
    if is_cancelled(cancel):
        return Failure(FailureKind.CANCELLED, f"{path} not read")

    try:
        text = Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        return from_os_error(e)

    if not text.strip():
        return Failure(FailureKind.PARSE, f"{path} is empty")
    return Ok(text)


def read_int(path: Union[str, Path], cancel: Optional[threading.Event] = None) -> Result:
    """Read a sysfs node holding a single integer."""
    result = read_text(path, cancel)
    if not result.ok:
        return result
    try:
        return Ok(int(result.value.strip().split()[0]))
    except (ValueError, IndexError):
        return Failure(FailureKind.PARSE, f"{path} is not an integer")
