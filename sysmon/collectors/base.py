"""Fallback-chain machinery shared by every domain collector.

A collector owns one or more FallbackChains. A chain is an ordered list of
Strategy objects; each strategy names the capabilities it needs and
implements ``attempt(ctx) -> Result``. The chain walks the list in order:

    skipped     capability missing in the CapabilitySet, or ``blocked_by``
                an earlier failure (e.g. the tool it wraps just timed out)
    failed      attempt returned Failure (unavailable, parse, permission, timeout)
    errored     attempt raised; caught here and treated as a failure
    succeeded   first Ok wins, remaining strategies are never attempted

Exhausting the chain yields a Failure and the collector substitutes its
domain's sentinel values. Nothing raised inside a strategy escapes
``DomainCollector.collect``.
"""

import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Tuple

from sysmon.core.capabilities import CapabilitySet
from sysmon.core.models import RawReading
from sysmon.core.result import Failure, FailureKind, Ok, Result, unavailable
from sysmon.utils import sources

logger = logging.getLogger(__name__)


@dataclass
class CollectContext:
    """Per-collection inputs handed to every strategy.

    Attributes:
        capabilities: Session capability set (read-only).
        cancel: Optional cancellation event checked before each external call.
        timeout: Seconds allowed for each external tool.
        root: Filesystem root that procfs/sysfs paths are resolved under.
        domain: Collector domain, stamped on captured readings.
        trace: When a list, every successful tool run or file read is
            appended to it as a RawReading (debugging aid, never persisted).
    """

    capabilities: CapabilitySet
    cancel: Optional[threading.Event] = None
    timeout: float = sources.DEFAULT_TOOL_TIMEOUT
    root: str = "/"
    domain: str = ""
    trace: Optional[List[RawReading]] = None

    @property
    def cancelled(self) -> bool:
        return sources.is_cancelled(self.cancel)

    def path(self, absolute: str) -> str:
        if self.root in ("", "/"):
            return absolute
        return os.path.join(self.root, absolute.lstrip("/"))

    def run(self, args: Sequence[str]) -> Result:
        return self._traced(args[0], sources.run_tool(args, timeout=self.timeout, cancel=self.cancel))

    def read(self, absolute: str) -> Result:
        return self._traced(absolute, sources.read_text(self.path(absolute), cancel=self.cancel))

    def read_int(self, absolute: str) -> Result:
        return self._traced(absolute, sources.read_int(self.path(absolute), cancel=self.cancel))

    def capture(self, source: str, raw: Any) -> RawReading:
        return RawReading(domain=self.domain, strategy=source, raw=raw, captured_at=time.time())

    def _traced(self, source: str, result: Result) -> Result:
        if self.trace is not None and result.ok:
            self.trace.append(self.capture(source, result.value))
        return result


class Strategy:
    """One way of acquiring a reading.

    Subclasses set ``name`` and ``requires`` and implement ``attempt``.
    """

    name = "strategy"
    requires: Tuple[str, ...] = ()

    def available(self, capabilities: CapabilitySet) -> bool:
        return all(capabilities.has(requirement) for requirement in self.requires)

    def blocked_by(self, failures: Sequence[Failure]) -> str:
        """Reason to skip this strategy given the chain's earlier failures, or ""."""
        return ""

    def attempt(self, ctx: CollectContext) -> Result:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name})"


class FunctionStrategy(Strategy):
    """Strategy backed by a plain function of the context."""

    def __init__(
        self,
        name: str,
        func: Callable[[CollectContext], Result],
        requires: Tuple[str, ...] = (),
    ):
        self.name = name
        self.func = func
        self.requires = requires

    def attempt(self, ctx: CollectContext) -> Result:
        return self.func(ctx)


class FallbackChain:
    """Ordered strategies tried until one succeeds.

    Example:
        >>> chain = FallbackChain("cpu.usage", [MpstatStrategy(), TopStrategy()])
        >>> result = chain.run(ctx)
        >>> result.source if result.ok else result.kind
        'mpstat'
    """

    def __init__(self, label: str, strategies: Sequence[Strategy]):
        self.label = label
        self.strategies: List[Strategy] = list(strategies)

    def run(self, ctx: CollectContext) -> Result:
        failures: List[Failure] = []

        for strategy in self.strategies:
            if ctx.cancelled:
                return Failure(FailureKind.CANCELLED, f"{self.label} cancelled")

            if not strategy.available(ctx.capabilities):
                failures.append(
                    Failure(FailureKind.UNAVAILABLE, "capability missing", strategy.name)
                )
                continue

            reason = strategy.blocked_by(failures)
            if reason:
                failures.append(Failure(FailureKind.UNAVAILABLE, reason, strategy.name))
                logger.debug(f"{self.label}: '{strategy.name}' skipped: {reason}")
                continue

            try:
                result = strategy.attempt(ctx)
            except Exception as e:
                result = Failure(FailureKind.ERROR, f"{type(e).__name__}: {e}")

            if result.ok:
                logger.debug(f"{self.label}: '{strategy.name}' succeeded")
                return Ok(result.value, source=strategy.name)

            if result.kind is FailureKind.CANCELLED:
                return result

            failures.append(Failure(result.kind, result.detail, strategy.name))
            logger.debug(
                f"{self.label}: '{strategy.name}' failed ({result.kind.value}): {result.detail}"
            )

        summary = ", ".join(f"{f.source}={f.kind.value}" for f in failures) or "no strategies"
        return unavailable(f"{self.label} exhausted: {summary}")


class DomainCollector:
    """Base for per-domain collectors.

    Subclasses implement ``_collect(ctx)`` returning their DomainSnapshot and
    ``sentinel()`` returning the all-sentinel snapshot.
    """

    domain = "domain"

    def __init__(self, timeout: float = sources.DEFAULT_TOOL_TIMEOUT, root: str = "/"):
        self.timeout = timeout
        self.root = root

    def context(
        self, capabilities: CapabilitySet, cancel: Optional[threading.Event] = None
    ) -> CollectContext:
        return CollectContext(
            capabilities=capabilities,
            cancel=cancel,
            timeout=self.timeout,
            root=self.root,
            domain=self.domain,
        )

    def collect(
        self, capabilities: CapabilitySet, cancel: Optional[threading.Event] = None
    ):
        """Collect this domain's snapshot; never raises."""
        try:
            return self._collect(self.context(capabilities, cancel))
        except Exception as e:
            logger.error(f"Error collecting {self.domain} metrics: {e}", exc_info=True)
            return self.sentinel()

    def _collect(self, ctx: CollectContext):
        raise NotImplementedError

    def sentinel(self):
        raise NotImplementedError

    def _warn_exhausted(self, result: Result) -> None:
        if not result.ok and result.kind is not FailureKind.CANCELLED:
            logger.warning(f"{self.domain}: {result.detail}")
