"""Polling loop for sysmon.

Modules:
    system: SystemMonitor and the rolling CPU SampleHistory
"""

from .system import SampleHistory, SystemMonitor

__all__ = ["SystemMonitor", "SampleHistory"]
