#!/usr/bin/env python3
"""
Main entry point for the trading decision loop.

Loads configuration, builds the loop controller and either runs a single
cycle (``--once``) or keeps running cycles on LOOP_INTERVAL_SECONDS.
"""

import argparse
import json
import logging
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from tradeloop.config import Config, RiskConfig
from tradeloop.exceptions import TradingLoopError
from tradeloop.loop_controller import LoopController


class JSONFormatter(logging.Formatter):
    def format(self, record):
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def setup_logging(verbose: bool = False, json_logs: bool = False) -> None:
    """
    Configure logging for the application.

    Args:
        verbose: If True, set log level to DEBUG, otherwise INFO
        json_logs: If True, use JSON structured log lines
    """
    log_level = logging.DEBUG if verbose else logging.INFO

    Path("logs").mkdir(exist_ok=True)

    if json_logs:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s", "%Y-%m-%d %H:%M:%S")

    handlers = [
        logging.StreamHandler(sys.stdout),
        logging.FileHandler("logs/agent.log", mode="a")
    ]
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=log_level, handlers=handlers)

    # Trade audit lines are already JSON, write them raw to their own file
    audit_handler = logging.FileHandler("logs/trades.jsonl", mode="a")
    audit_handler.setFormatter(logging.Formatter("%(message)s"))
    logging.getLogger("tradeloop.audit").addHandler(audit_handler)

    # Reduce noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("openai._base_client").setLevel(logging.WARNING)
    logging.getLogger("ccxt").setLevel(logging.WARNING)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="LLM-driven multi-instrument trading loop",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --once                 # Run a single cycle and exit
  python main.py --once --capital 1000  # Size the account as if it held $1000
  python main.py --api                  # Run on an interval and serve the HTTP API

Safety:
  TRADING_MODE=simulated (the default) places orders on the venue's demo endpoints.
        """
    )
    parser.add_argument("--env", type=str, default=".env", help="Path to environment file (default: .env)")
    parser.add_argument("--once", action="store_true", help="Run one cycle and exit")
    parser.add_argument("--capital", type=float, default=None, help="Initial capital override for account sizing")
    parser.add_argument("--api", action="store_true", help="Also serve the HTTP API on port 8000")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose (DEBUG) logging")
    parser.add_argument("--json-logs", action="store_true", help="Enable JSON structured logging")
    return parser.parse_args(argv)


def start_api_server(controller: LoopController) -> None:
    """Serve api_server.app from a daemon thread."""
    import uvicorn

    import api_server

    api_server.loop_controller_instance = controller

    def run_api_server():
        try:
            uvicorn.run(api_server.app, host="0.0.0.0", port=8000, log_level="warning")
        except Exception as e:
            logging.getLogger(__name__).error(f"API server thread crashed: {e}", exc_info=True)

    threading.Thread(target=run_api_server, daemon=True).start()


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    args = parse_arguments(argv)
    setup_logging(verbose=args.verbose, json_logs=args.json_logs)
    logger = logging.getLogger(__name__)

    try:
        if args.env != ".env":
            if not Path(args.env).exists():
                logger.error(f"Environment file not found: {args.env}")
                return 1
            load_dotenv(args.env, override=True)
        config = Config.from_env()
        risk_config = RiskConfig.from_env()
        logger.info("[OK] Configuration loaded successfully")
    except ValueError as e:
        logger.error(f"[ERROR] Configuration error: {e}")
        return 1

    if risk_config.is_live:
        logger.warning("!" * 80)
        logger.warning("!!! LIVE MODE ENABLED - REAL MONEY WILL BE TRADED !!!")
        logger.warning("!" * 80)

    try:
        controller = LoopController(config)
    except Exception as e:
        logger.error(f"[ERROR] Failed to initialize loop controller: {e}", exc_info=True)
        return 1

    controller.register_signal_handlers()

    if args.api:
        start_api_server(controller)
        logger.info("API server started on http://0.0.0.0:8000")

    if args.once:
        try:
            record = controller.run_once(args.capital)
        except TradingLoopError as e:
            logger.error(f"[ERROR] Trading cycle failed: {e}")
            return 1
        except ValueError as e:
            # Risk limits are re-read from the environment every cycle
            logger.error(f"[ERROR] Invalid risk configuration: {e}")
            return 1
        if record is None:
            logger.warning("Cycle skipped: no market data")
        return 0

    if args.capital is not None:
        config.initial_capital = args.capital

    logger.info("Starting main trading loop... (Ctrl+C to stop gracefully)")
    controller.run()
    logger.info("Agent stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
