#!/usr/bin/env python3
"""sysmon - host health collection engine.

Run from a checkout without installing:

    python main.py --once
    python main.py --report data/monitor.log data/system_report.html

Repo layout and configuration are described in sysmon/cli.py and
sysmon/core/config.py.
"""

import sys

from sysmon.cli import main

if __name__ == "__main__":
    sys.exit(main())
