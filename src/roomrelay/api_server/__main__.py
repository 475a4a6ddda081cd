# src/roomrelay/api_server/__main__.py
"""Run the API server: ``python -m roomrelay.api_server [--host H] [--port P]``."""

import argparse

import uvicorn

from .main import create_app


def main() -> None:
    parser = argparse.ArgumentParser(description="RoomRelay API server")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args()
    uvicorn.run(create_app(), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
