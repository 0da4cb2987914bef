"""Snapshot sinks.

Every sink exposes ``write(snapshot)`` and ``close()``.

Modules:
    json_file: Dashboard JSON file (atomic replace)
    history_log: Labeled text blocks appended to the history log
    mqtt: MQTT state publisher
"""

from .history_log import HistoryLogSink, RenderTheme, render_snapshot
from .json_file import JsonFileSink, decode_snapshot, encode_snapshot
from .mqtt import MqttSink

__all__ = [
    "HistoryLogSink",
    "JsonFileSink",
    "MqttSink",
    "RenderTheme",
    "decode_snapshot",
    "encode_snapshot",
    "render_snapshot",
]
