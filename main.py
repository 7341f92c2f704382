#!/usr/bin/env python3
"""
Production Counter
Main entry point for the application.

Usage:
    python main.py [options]

Examples:
    # Connect to the camera from the settings file / environment
    python main.py

    # Explicit camera address
    python main.py --camera-ip 192.168.0.10 --camera-port 8500

    # Against a local simulator, without the HTTP API
    python main.py --camera-ip 127.0.0.1 --no-api
"""

import argparse
import logging
import os
import signal
import sys
import threading

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from production_counter.app.CounterApp import CounterApp
from production_counter.config.config_manager import get_config, update_config
from production_counter.utils.AppLogging import logger, reconfigure_console_level


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Production Counter - camera counts and production plan queue",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --camera-ip 192.168.0.10
  python main.py --camera-ip 127.0.0.1 --camera-port 8500 --no-api
  python main.py --database ./production.db --port 8080
        """
    )

    # Camera link
    parser.add_argument(
        '--camera-ip',
        type=str,
        help='Camera IP address (overrides settings)'
    )

    parser.add_argument(
        '--camera-port',
        type=int,
        help='Camera TCP port (overrides settings)'
    )

    parser.add_argument(
        '--no-reconnect',
        action='store_true',
        help='Disable automatic reconnection'
    )

    # Storage
    parser.add_argument(
        '--database',
        type=str,
        help='Path to SQLite database file'
    )

    # API server
    parser.add_argument(
        '--host',
        type=str,
        help='API host to bind'
    )

    parser.add_argument(
        '--port',
        type=int,
        help='API port to bind'
    )

    parser.add_argument(
        '--no-api',
        action='store_true',
        help='Run without the HTTP API'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Show DEBUG messages on the console'
    )

    return parser.parse_args()


def apply_overrides(args) -> None:
    """Apply command line overrides to the global config."""
    overrides = {}
    if args.camera_ip:
        overrides["camera_ip"] = args.camera_ip
    if args.camera_port:
        overrides["camera_port"] = args.camera_port
    if args.no_reconnect:
        overrides["auto_reconnect"] = False
    if args.database:
        overrides["db_path"] = args.database
    if args.host:
        overrides["api_host"] = args.host
    if args.port:
        overrides["api_port"] = args.port
    update_config(**overrides)


def run_headless(counter_app: CounterApp) -> None:
    """Run until SIGINT/SIGTERM."""
    stop_event = threading.Event()

    def _signal_handler(signum, _frame):
        logger.info(f"[Main] Received signal {signum}, shutting down...")
        stop_event.set()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    counter_app.start()
    while not stop_event.wait(1.0):
        pass


def run_with_api(counter_app: CounterApp, host: str, port: int) -> None:
    """Serve the API; uvicorn handles SIGINT/SIGTERM and runs the lifespan."""
    import uvicorn

    from production_counter.endpoint.server import create_app

    app = create_app(counter_app, manage_lifecycle=True)
    logger.info(f"[Main] API on http://{host}:{port} (docs: /docs, health: /health)")
    uvicorn.run(app, host=host, port=port, log_level="info")


def main():
    """Main entry point."""
    args = parse_args()
    if args.verbose:
        reconfigure_console_level(logging.DEBUG)

    logger.info("=" * 60)
    logger.info("Production Counter")
    logger.info("=" * 60)

    apply_overrides(args)
    config = get_config()

    counter_app = CounterApp(config)

    try:
        if args.no_api:
            run_headless(counter_app)
        else:
            run_with_api(counter_app, config.api_host, config.api_port)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Error: {e}", exc_info=True)
        return 1
    finally:
        if args.no_api:
            counter_app.stop()

    return 0


if __name__ == '__main__':
    sys.exit(main())
