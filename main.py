"""Start the transport bookkeeping API with uvicorn.

Host and port default to the ``HOST``/``PORT`` settings; pass ``--reload``
during development.
"""

import argparse
from typing import Optional, Sequence

import uvicorn

from backend.config import get_settings
from backend.logging_utils import configure_root_logger


def parse_cli_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Run the transport bookkeeping API.")
    parser.add_argument("--host", default=settings.host, help="Interface to bind.")
    parser.add_argument("--port", type=int, default=settings.port, help="Port to listen on.")
    parser.add_argument("--reload", action="store_true", help="Restart on code changes.")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_cli_args(argv)
    configure_root_logger(get_settings().log_level)
    uvicorn.run("backend.main:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
