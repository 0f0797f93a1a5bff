"""Run the CampusDesk API with uvicorn."""

from __future__ import annotations

import argparse
import logging
import os

import uvicorn

from .api import create_app
from .env_loader import load_default_env
from .settings import load_settings


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Serve the CampusDesk ask API")
    parser.add_argument("--host", default=os.environ.get("HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.environ.get("PORT", "3000")))
    parser.add_argument("--env-file", default=None, help="KEY=VALUE file loaded before settings")
    args = parser.parse_args(argv)

    load_default_env(args.env_file)
    settings = load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    uvicorn.run(create_app(settings=settings), host=args.host, port=args.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
