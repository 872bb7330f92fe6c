"""
Entry point for the watch progress server.
"""

import argparse
import signal
import sys

from .config import ConfigError, load_config, validate_config
from .utils import setup_logger
from .web_server import ProgressServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Track watched intervals of media playback")
    parser.add_argument("--host", help="Host address")
    parser.add_argument("--port", type=int, help="Port number")
    parser.add_argument("--config", default="config.json", help="Path to config file")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"  Config error: {e}", file=sys.stderr)
        sys.exit(1)

    # Validate configuration at startup
    config_errors = validate_config(config)
    if config_errors:
        for err in config_errors:
            print(f"  Config error: {err}", file=sys.stderr)
        sys.exit(1)

    if args.debug:
        config.setdefault("logging", {})["debug"] = True

    debug_mode = config.get("logging", {}).get("debug", False)
    logger = setup_logger("main", "main.log", debug=debug_mode)
    logger.info("Watch progress server starting")

    server = ProgressServer(config=config)

    def shutdown(signum, frame):
        logger.info("Shutdown signal received")
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    server.run(host=args.host, port=args.port)


if __name__ == "__main__":
    main()
