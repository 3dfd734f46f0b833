"""
PDF Tools Service — Main Entry Point
====================================
Starts the Flask-based PDF tools microservice with its job workers.

Usage:
    python main.py                    # Default: 0.0.0.0:5000
    python main.py --port 8000        # Custom port
    python main.py --workers 4        # More job worker threads
    python main.py --debug            # Debug mode
"""

import argparse
import logging

from pdftools.config import LOG_DATE_FORMAT, LOG_FORMAT, ServiceConfig
from pdftools.server import create_app

logging.basicConfig(
    level=logging.INFO,
    format=LOG_FORMAT,
    datefmt=LOG_DATE_FORMAT,
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="PDF Tools Service")
    parser.add_argument("--host", default="0.0.0.0", help="Bind host")
    parser.add_argument("--port", type=int, default=5000, help="Bind port")
    parser.add_argument("--workers", type=int, default=None, help="Job worker threads")
    parser.add_argument("--debug", action="store_true", help="Debug mode")
    args = parser.parse_args()

    config = ServiceConfig.from_env(workers=args.workers)
    logging.getLogger().setLevel(config.log_level.upper())

    # create_app() initializes storage and starts the worker pool
    logger.info("Creating Flask app (initializes storage + workers)...")
    app = create_app(config)

    logger.info(f"Uploads: {config.upload_dir}  Outputs: {config.output_dir}")
    logger.info(f"Starting server on {args.host}:{args.port}")
    app.run(host=args.host, port=args.port, debug=args.debug, use_reloader=False)


if __name__ == "__main__":
    main()
