"""Polling session: assemble a snapshot every interval and hand it to the sinks.

The assembler itself keeps no state across polls. The monitor owns the one
piece of cross-poll state the output format needs, a rolling window of CPU
samples, and folds it into each snapshot before the sinks see it.
"""

import logging
import threading
from collections import deque
from dataclasses import replace
from typing import Deque, List, Optional, Protocol, Sequence, Tuple

from sysmon.core.assembler import SnapshotAssembler
from sysmon.core.models import Snapshot
from sysmon.utils.sources import is_cancelled

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_SIZE = 20


class SnapshotSink(Protocol):
    def write(self, snapshot: Snapshot) -> object: ...

    def close(self) -> None: ...


class SampleHistory:
    """Bounded window of ``(HH:MM:SS, cpu percent)`` samples.

    Example:
        >>> history = SampleHistory(size=3)
        >>> for value in (10, 20, 30, 40):
        ...     history.add("12:00:00", value)
        >>> history.values
        [20, 30, 40]
    """

    def __init__(self, size: int = DEFAULT_HISTORY_SIZE):
        self._samples: Deque[Tuple[str, int]] = deque(maxlen=max(size, 1))
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._samples)

    def add(self, timestamp: str, value: int) -> None:
        with self._lock:
            self._samples.append((timestamp, value))

    @property
    def values(self) -> List[int]:
        with self._lock:
            return [value for _, value in self._samples]

    @property
    def timestamps(self) -> List[str]:
        with self._lock:
            return [stamp for stamp, _ in self._samples]

    def clear(self) -> None:
        with self._lock:
            self._samples.clear()

    def apply(self, snapshot: Snapshot) -> Snapshot:
        """Record the snapshot's CPU reading and return it with the window attached.

        ``avg`` is rounded to one decimal; ``max``/``min`` span the window.
        """
        clock = snapshot.timestamp.split(" ")[-1]
        self.add(clock, snapshot.cpu.current)

        values = self.values
        cpu = replace(
            snapshot.cpu,
            history=tuple(values),
            timestamps=tuple(self.timestamps),
            avg=round(sum(values) / len(values), 1),
            max=max(values),
            min=min(values),
        )
        return replace(snapshot, cpu=cpu)


class SystemMonitor:
    """Runs the poll loop and fans every snapshot out to the sinks.

    A sink that raises is logged and skipped for that tick; the other sinks
    still receive the snapshot and the loop keeps running.

    Attributes:
        assembler: Produces one snapshot per tick.
        sinks: Receivers of every published snapshot.
        interval: Seconds between ticks.
        history: Rolling CPU window attached to each snapshot.

    Example:
        >>> monitor = SystemMonitor(assembler, [JsonFileSink(path)], interval=3)
        >>> stop_event = threading.Event()
        >>> threading.Thread(target=monitor.start, args=(stop_event,), daemon=True).start()
        >>> stop_event.set()
    """

    def __init__(
        self,
        assembler: SnapshotAssembler,
        sinks: Sequence[SnapshotSink] = (),
        interval: float = 3,
        history_size: int = DEFAULT_HISTORY_SIZE,
    ):
        self.assembler = assembler
        self.sinks = list(sinks)
        self.interval = interval
        self.history = SampleHistory(history_size)
        self._latest: Optional[Snapshot] = None
        # One poll at a time so a sample never enters the history twice
        self._poll_lock = threading.Lock()
        logger.debug(
            f"SystemMonitor initialized with interval={interval}s, {len(self.sinks)} sink(s)"
        )

    @property
    def latest(self) -> Optional[Snapshot]:
        """Most recent snapshot published by the loop, history included."""
        return self._latest

    def poll_once(self, cancel: Optional[threading.Event] = None) -> Snapshot:
        """Assemble, attach history and publish one snapshot.

        A snapshot cut short by the cancel event is returned but neither
        recorded nor published.
        """
        with self._poll_lock:
            return self._poll(cancel)

    def current(self) -> Snapshot:
        """The snapshot every sink last received, polling once if there is none yet.

        Readers outside the loop (the REST API) use this so they see the same
        history window as the JSON file and MQTT state.
        """
        with self._poll_lock:
            if self._latest is not None:
                return self._latest
            return self._poll(None)

    def _poll(self, cancel: Optional[threading.Event]) -> Snapshot:
        snapshot = self.assembler.assemble(cancel)
        if is_cancelled(cancel):
            return snapshot
        snapshot = self.history.apply(snapshot)
        self._latest = snapshot
        self._publish(snapshot)
        return snapshot

    def _publish(self, snapshot: Snapshot) -> None:
        for sink in self.sinks:
            try:
                sink.write(snapshot)
            except Exception as e:
                logger.error(f"Sink {type(sink).__name__} failed: {e}", exc_info=True)

    def start(self, stop_event: threading.Event) -> None:
        """Poll until stop_event is set, then close every sink."""
        logger.info(f"System monitor started (interval {self.interval}s)")

        try:
            while not stop_event.is_set():
                try:
                    snapshot = self.poll_once(stop_event)
                    logger.debug(
                        f"Published snapshot {snapshot.timestamp} (health={snapshot.health})"
                    )
                except Exception as e:
                    logger.error(f"Error collecting/publishing snapshot: {e}", exc_info=True)

                # Wait for interval or stop signal
                stop_event.wait(self.interval)

        except Exception as e:
            logger.critical(f"Fatal error in system monitor: {e}", exc_info=True)
        finally:
            for sink in self.sinks:
                try:
                    sink.close()
                except Exception as e:
                    logger.error(f"Error closing {type(sink).__name__}: {e}")
            logger.info("System monitor stopped")
