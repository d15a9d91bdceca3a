#!/usr/bin/env python3
"""
Run the mediadrop upload API.

Serves the photo, video-session, proxy and server-side video routes used by
browser clients, optionally alongside a Prometheus metrics endpoint.

Usage:
    python scripts/serve.py
    python scripts/serve.py --port 8080 --metrics-port 9090
"""

import argparse
import sys
from pathlib import Path

# Add project root to path for imports (before other imports)
_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from mediadrop.server import run_server  # noqa: E402
from mediadrop.utils.config import get_config  # noqa: E402
from mediadrop.utils.logging import get_logger  # noqa: E402
from mediadrop.utils.metrics import start_metrics_server  # noqa: E402

logger = get_logger(__name__)


def parse_args(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description="Run the mediadrop upload API")

    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=3000,
        help="HTTP port to listen on (default: 3000)",
    )

    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Interface to bind (default: 0.0.0.0)",
    )

    parser.add_argument(
        "--metrics-port",
        type=int,
        help="Also expose Prometheus metrics on this port",
    )

    return parser.parse_args(argv)


def main(argv=None):
    """Main entry point for the server CLI."""
    args = parse_args(argv)

    try:
        config = get_config()
    except ValueError as e:
        print(f"❌ Configuration error: {e}")
        return 1

    if args.metrics_port:
        start_metrics_server(port=args.metrics_port, addr=args.host, block=False)

    print(f"🚀 Upload API on http://{args.host}:{args.port}")
    print(f"   Folder: {config.drive_folder_id}")
    run_server(host=args.host, port=args.port, config=config)
    return 0


if __name__ == "__main__":
    sys.exit(main())
