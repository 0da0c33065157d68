import argparse
import asyncio
import logging
import sys

import uvicorn

from swapstudio.client import FaceSwapClient
from swapstudio.config import settings
from swapstudio.errors import ConfigurationError, FaceSwapError
from swapstudio.images import guess_source
from swapstudio.logging_config import setup_logging

log = logging.getLogger("swapstudio.cli")


async def _check() -> int:
    client = FaceSwapClient()
    key = client.api_key
    print(f"API key:   {key[:6] + '...' if key else 'MISSING'}")
    print(f"Base URL:  {client.base_url or 'not configured'}")

    configured = client.is_configured()
    connected = await client.test_connection()
    print(f"Configured: {'yes' if configured else 'no'}")
    print(f"Connected:  {'yes' if connected else 'no'}")
    if not connected:
        print("Check the API key, the plan's Face Swap access and billing status.")
    return 0 if configured and connected else 1


async def _swap(source: str, target: str, out: str) -> int:
    client = FaceSwapClient()
    try:
        client.ensure_configured()
    except ConfigurationError:
        log.error("Face swap API is not configured; set LIGHTX_API_KEY")
        return 2
    try:
        result_url = await client.perform_face_swap(guess_source(source), guess_source(target))
        print(result_url)
        if out:
            await client.download_result(result_url, out)
            print(f"Saved to {out}")
    except FaceSwapError as e:
        log.error("%s: %s", type(e).__name__, e)
        return 1
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="swapstudio", description="Face swap service tools")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="run the HTTP API")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)

    sub.add_parser("check", help="check configuration and connectivity")

    swap = sub.add_parser("swap", help="swap the face from SOURCE into TARGET")
    swap.add_argument("source", help="image path or http(s) URL")
    swap.add_argument("target", help="image path or http(s) URL")
    swap.add_argument("-o", "--out", default="", help="save the result image here")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(settings.LOG_LEVEL)

    if args.command == "serve":
        uvicorn.run("swapstudio.main:app", host=args.host, port=args.port)
        return 0
    if args.command == "check":
        return asyncio.run(_check())
    return asyncio.run(_swap(args.source, args.target, args.out))


if __name__ == "__main__":
    sys.exit(main())
