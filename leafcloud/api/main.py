from __future__ import annotations

import argparse
import logging

import uvicorn

from leafcam.config import load_config
from leafcam.logging_utils import configure_logging, install_session_log_buffer
from leafcam.main import build_session

from .server import create_app

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Serve a LeafScan capture session over HTTP")
    parser.add_argument("--config", default=None, help="optional JSON configuration file")
    parser.add_argument("--host", default="127.0.0.1", help="interface to bind")
    parser.add_argument("--port", type=int, default=8000, help="port to listen on")
    parser.add_argument("--verbose", action="store_true", help="enable debug logging")
    return parser


def main() -> None:
    args = build_parser().parse_args()
    configure_logging(args.verbose)
    log_buffer = install_session_log_buffer()
    cfg = load_config(args.config)
    session = build_session(cfg)
    app = create_app(session, log_buffer=log_buffer)
    logger.info(
        "Starting server on %s:%d camera=%s classifier=%s",
        args.host,
        args.port,
        cfg.camera.kind,
        cfg.classifier.kind,
    )
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
