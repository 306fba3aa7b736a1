from __future__ import annotations

import argparse

import uvicorn

from autoping.api import create_app
from autoping.config import load_config
from autoping.log import configure_logging


def main() -> None:
    parser = argparse.ArgumentParser(prog="autoping", description="Scheduled HTTP uptime monitor")
    parser.add_argument("--config", default=None, help="Path to the YAML config (default: $AUTOPING_CONFIG)")
    parser.add_argument("--host", default=None, help="Override the bind address")
    parser.add_argument("--port", type=int, default=None, help="Override the listen port")
    args = parser.parse_args()

    config = load_config(args.config)
    if args.host:
        config.host = args.host
    if args.port:
        config.port = args.port

    configure_logging(config.log_level)
    app = create_app(config)
    uvicorn.run(app, host=config.host, port=config.port, log_level=config.log_level.lower())


if __name__ == "__main__":
    main()
