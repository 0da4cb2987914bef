"""sysmon command line entry point.

Usage:
    sysmon                       # Poll loop writing JSON + history log (+ API/MQTT)
    sysmon --once                # Print one rendered snapshot
    sysmon --json [DIR]          # Write the dashboard JSON once
    sysmon --report [LOG [OUT]]  # Render the HTML report from the history log

Thread Safety:
    - The poll loop, API server and MQTT network loop run in daemon threads
    - Graceful shutdown via one threading.Event set on SIGINT/SIGTERM
    - Sinks are closed by the monitor thread before it exits

Exit Codes:
    0: Clean shutdown
    1: Configuration error, missing log file or MQTT connection failure
"""

# Standard library imports
import argparse
import logging
import signal
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

# Local imports
from sysmon.api.rest_api import create_app, start_api
from sysmon.core.assembler import SnapshotAssembler
from sysmon.core.capabilities import CapabilityMatrix
from sysmon.core.config import CONFIG_PATH, DATA_DIR, VERSION, Settings, load_settings
from sysmon.monitors.system import SystemMonitor
from sysmon.report import generate_report
from sysmon.sinks.history_log import PLAIN_THEME, TERMINAL_THEME, HistoryLogSink, render_snapshot
from sysmon.sinks.json_file import JsonFileSink
from sysmon.sinks.mqtt import MqttSink
from sysmon.utils.platform import detect_platform, get_probe

logger = logging.getLogger("sysmon")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(module)s: %(message)s"
LOG_DATE_FORMAT = "%m/%d/%Y %H:%M:%S"


# ----------------------------
# Logging Configuration
# ----------------------------


def setup_logging(log_dir: Path = DATA_DIR, verbose: bool = False) -> None:
    """Console handler plus a 5 MB x 3 rotating file in ``log_dir``."""
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    # Console handler goes to stderr so --once output stays clean
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_dir / "sysmon.log",
            maxBytes=5 * 1024 * 1024,  # 5MB per file
            backupCount=3,  # Keep 3 backups (sysmon.log.1 .. sysmon.log.3)
        )
    except OSError as e:
        logger.warning(f"File logging disabled: {e}")
        return
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)


# ----------------------------
# Arguments
# ----------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sysmon", description="Host health collection engine"
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--once", action="store_true", help="print one rendered snapshot and exit"
    )
    mode.add_argument(
        "--json",
        nargs="?",
        const="",
        metavar="DIR",
        help="write the dashboard JSON once (default: configured json_path)",
    )
    mode.add_argument(
        "--report",
        nargs="*",
        metavar="PATH",
        help="render the HTML report: --report [LOG [OUT]]",
    )
    parser.add_argument(
        "--config", type=Path, default=CONFIG_PATH, help="path to config.ini"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    parser.add_argument("--version", action="version", version=f"sysmon {VERSION}")
    return parser


def build_assembler(settings: Settings) -> SnapshotAssembler:
    matrix = CapabilityMatrix(
        probe_live=settings.probe_live, tool_timeout=settings.tool_timeout
    )
    return SnapshotAssembler(
        matrix,
        thresholds=settings.thresholds,
        parallel=settings.parallel,
        timeout=settings.tool_timeout,
    )


# ----------------------------
# Modes
# ----------------------------


def run_once(settings: Settings) -> int:
    snapshot = build_assembler(settings).assemble()
    theme = TERMINAL_THEME if sys.stdout.isatty() else PLAIN_THEME
    print(render_snapshot(snapshot, theme))
    return 0


def run_json(settings: Settings, target: str) -> int:
    path = Path(target) if target else settings.json_path
    snapshot = build_assembler(settings).assemble()
    written = JsonFileSink(path).write(snapshot)
    logger.info(f"Snapshot written to {written}")
    return 0


def run_report(settings: Settings, paths: List[str]) -> int:
    if len(paths) > 2:
        logger.error("--report takes at most two paths: LOG and OUT")
        return 1
    log_path = Path(paths[0]) if paths else settings.log_path
    output_path = Path(paths[1]) if len(paths) > 1 else settings.report_path
    try:
        stats = generate_report(log_path, output_path)
    except FileNotFoundError as e:
        logger.error(str(e))
        return 1
    logger.info(f"CPU avg {stats.cpu_avg}% over {stats.samples} samples ({stats.badge})")
    logger.info(f"Open in browser: file://{output_path.resolve()}")
    return 0


def run_loop(settings: Settings) -> int:
    """
    Poll until SIGINT/SIGTERM.

    Starts, in order:
    1. Optional MQTT sink (exits 1 when the broker is unreachable)
    2. System monitor thread writing every configured sink
    3. Optional API server thread
    """
    stop_event = threading.Event()

    def signal_handler(sig, frame):
        """Handle shutdown signals gracefully."""
        logger.info("Shutdown signal received, stopping all threads...")
        stop_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    platform_info = detect_platform()
    logger.info(
        f"Starting sysmon {VERSION} on {settings.device_name} "
        f"({get_probe().get_os_version()}, {platform_info.platform_class.value})..."
    )
    assembler = build_assembler(settings)
    sinks = [JsonFileSink(settings.json_path), HistoryLogSink(settings.log_path)]

    if settings.mqtt_enabled:
        mqtt_sink = MqttSink(
            settings.mqtt_broker,
            settings.mqtt_port,
            settings.mqtt_base_topic,
            username=settings.mqtt_username,
            password=settings.mqtt_password,
        )
        if not mqtt_sink.start(stop_event):
            logger.error("Failed to connect to MQTT broker after maximum retry attempts")
            return 1
        sinks.append(mqtt_sink)

    monitor = SystemMonitor(
        assembler, sinks, interval=settings.interval, history_size=settings.history_size
    )
    threads = [
        threading.Thread(
            target=monitor.start, args=(stop_event,), name="SystemMonitor", daemon=True
        )
    ]

    if settings.api_enabled:
        app = create_app(monitor, assembler.matrix, settings.api_auth_token)
        threads.append(
            threading.Thread(
                target=start_api,
                args=(app, settings.api_port, stop_event),
                name="API-Server",
                daemon=True,
            )
        )

    for thread in threads:
        thread.start()
        logger.info(f"{thread.name} started")

    # Main thread only waits; signal handlers run here
    while not stop_event.wait(1):
        pass

    for thread in threads:
        thread.join(timeout=10)
    logger.info("Shutdown complete")
    return 0


# ----------------------------
# Main
# ----------------------------


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for sysmon.

    Raises:
        SystemExit: On fatal configuration errors (exit code 1)
    """
    args = build_parser().parse_args(argv)
    setup_logging(verbose=args.verbose)
    settings = load_settings(args.config)

    if args.once:
        return run_once(settings)
    if args.json is not None:
        return run_json(settings, args.json)
    if args.report is not None:
        return run_report(settings, args.report)
    return run_loop(settings)


if __name__ == "__main__":
    sys.exit(main())
