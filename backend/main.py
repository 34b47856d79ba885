#!/usr/bin/env python3
"""
Command-line entry point for the Warlord swap controller.

Loads the environment, wires the loop controller, optionally serves the
status API on a background thread and then runs the poll loop until a
signal stops it.
"""

import argparse
import json
import logging
import sys
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import requests
import uvicorn
from dotenv import load_dotenv

from warlord import __version__
from warlord.config import Config
from warlord.loop_controller import LoopController

LOG_DIR = Path("logs")
LOG_FILE = LOG_DIR / "warlord.log"
NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "openai", "ccxt", "urllib3")
LIVE_ABORT_WINDOW_SECONDS = 5

logger = logging.getLogger("warlord.main")


class JSONFormatter(logging.Formatter):
    """Structured log lines for log shippers."""

    def format(self, record):
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def setup_logging(verbose: bool = False, json_logs: bool = False) -> None:
    """
    Send logs to stdout and to logs/warlord.log.

    Args:
        verbose: DEBUG instead of INFO
        json_logs: One JSON object per line instead of plain text
    """
    LOG_DIR.mkdir(exist_ok=True)

    if json_logs:
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s %(levelname)-7s [%(name)s] %(message)s",
            "%Y-%m-%d %H:%M:%S",
        )

    stream_handler = logging.StreamHandler(sys.stdout)
    file_handler = logging.FileHandler(LOG_FILE, mode="a")
    stream_handler.setFormatter(formatter)
    file_handler.setFormatter(formatter)

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        handlers=[stream_handler, file_handler],
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def parse_arguments(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="warlord",
        description="Warlord: LLM-assisted perpetual swap controller with hard risk reconciliation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Usage:
  python main.py                     simulation by default (IS_SIMULATION=true)
  python main.py --env .env.live     load a specific env file
  python main.py --no-api            poll loop only, no status server
  python main.py --verbose           DEBUG logging

Configuration:
  Every setting is an environment variable, see .env.example.
  The engine starts paused unless AUTO_START=true; resume it with POST /api/toggle.
        """
    )
    parser.add_argument("--env", default=".env", help="env file to load (default: .env)")
    parser.add_argument("--verbose", action="store_true", help="log at DEBUG level")
    parser.add_argument("--json-logs", action="store_true", help="emit JSON log lines")
    parser.add_argument("--no-api", action="store_true", help="skip the status API server")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def load_config(env_path: str) -> Optional[Config]:
    """Config from the environment, or None after logging why it is unusable."""
    if env_path != ".env":
        if not Path(env_path).exists():
            logger.error(f"Env file {env_path} does not exist")
            return None
        load_dotenv(env_path, override=True)

    try:
        config = Config.from_env()
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        logger.error("Compare your environment with .env.example")
        return None

    logger.info(
        f"Config OK: {config.instrument_id}, poll {config.poll_interval_seconds}s, "
        f"analysis every {config.analysis_interval_seconds}s"
    )
    return config


def confirm_live_mode() -> bool:
    """Loud banner plus a short window to abort before real orders are possible."""
    logger.warning("#" * 72)
    logger.warning("LIVE TRADING: orders will be sent to OKX with real funds")
    logger.warning(f"Ctrl+C in the next {LIVE_ABORT_WINDOW_SECONDS}s aborts")
    logger.warning("#" * 72)
    try:
        time.sleep(LIVE_ABORT_WINDOW_SECONDS)
    except KeyboardInterrupt:
        logger.info("Live start aborted")
        return False
    return True


def start_api_server(controller: LoopController, host: str, port: int) -> threading.Thread:
    """Serve the status API from a daemon thread and probe it once."""
    import api_server

    app = api_server.create_app(controller)

    def serve():
        try:
            uvicorn.run(app, host=host, port=port, log_level="warning")
        except Exception as e:
            logger.error(f"Status API stopped: {e}", exc_info=True)

    thread = threading.Thread(target=serve, name="status-api", daemon=True)
    thread.start()

    # uvicorn needs a moment before it accepts connections
    time.sleep(2)
    try:
        response = requests.get(f"http://127.0.0.1:{port}/", timeout=2)
    except requests.RequestException as e:
        logger.warning(f"Status API not reachable on port {port}: {e}")
        return thread

    if response.ok:
        logger.info(f"Status API listening on http://{host}:{port}")
    else:
        logger.warning(f"Status API probe returned HTTP {response.status_code}")
    return thread


def main(argv=None) -> int:
    """
    Run the controller.

    Returns:
        Process exit code
    """
    args = parse_arguments(argv)
    setup_logging(verbose=args.verbose, json_logs=args.json_logs)
    logger.info(f"Warlord swap controller v{__version__}")

    config = load_config(args.env)
    if config is None:
        return 1

    if config.is_simulation:
        logger.info("Simulation mode: synthetic prices, orders are only logged")
    elif not confirm_live_mode():
        return 0

    try:
        controller = LoopController(config)
    except Exception as e:
        logger.error(f"Could not build the controller: {e}", exc_info=True)
        return 1

    controller.register_signal_handlers()

    if not controller.startup():
        logger.error("Exchange did not answer; check credentials and connectivity")
        return 1

    if args.no_api:
        logger.info("Status API disabled")
    else:
        start_api_server(controller, config.api_host, config.api_port)

    state = "running" if controller.state.is_running else "paused"
    logger.info(f"Entering poll loop, engine {state}; Ctrl+C stops after the current tick")

    try:
        controller.run()
    except KeyboardInterrupt:
        logger.info("Interrupted")
        controller.shutdown()
    except Exception as e:
        logger.error(f"Poll loop crashed: {e}", exc_info=True)
        return 1

    logger.info("Controller stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
