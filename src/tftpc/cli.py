from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import BinaryIO

from .client import ClientConfig, get
from .constants import DEFAULT_BIND_HOST, DEFAULT_PORT
from .errors import ServerError, TftpError
from .packet import TransferMode

log = logging.getLogger("tftpc")

# 2 belongs to argparse usage errors.
EXIT_FAILURE = 1
EXIT_SERVER_ERROR = 3


def _open_out(args: argparse.Namespace) -> BinaryIO:
    if args.out == "-":
        return sys.stdout.buffer
    return open(args.out or os.path.basename(args.path), "wb")


def cmd_get(args: argparse.Namespace) -> int:
    config = ClientConfig(
        host=args.host,
        port=args.port,
        mode=TransferMode.parse(args.mode),
        bind_host=args.bind_host,
    )
    out = None
    completed = False
    try:
        out = _open_out(args)
        stats = get(args.path, out, config)
        completed = True
    except OSError as exc:
        log.error("cannot write %r: %s", args.out or args.path, exc)
        return EXIT_FAILURE
    except ServerError as exc:
        log.error("server refused %r: %s", args.path, exc.message or exc)
        return EXIT_SERVER_ERROR
    except TftpError as exc:
        log.error("transfer of %r failed: %s", args.path, exc)
        return EXIT_FAILURE
    finally:
        if out is sys.stdout.buffer:
            out.flush()
        elif out is not None:
            out.close()
            # partial downloads are not left behind
            if not completed:
                os.remove(out.name)

    payload = {
        "role": "client",
        "path": args.path,
        "bytes": stats.bytes_received,
        "blocks": stats.blocks,
        "discarded": stats.discarded,
        "seconds": stats.duration_s,
        "mbps": stats.throughput_mbps,
    }
    print(json.dumps(payload, indent=2) if args.json else payload, file=sys.stderr if args.out == "-" else sys.stdout)
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="tftpc", description="TFTP read client over non-blocking UDP.")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    sub = p.add_subparsers(dest="cmd", required=True)

    g = sub.add_parser("get", help="download a file from a TFTP server")
    g.add_argument("host")
    g.add_argument("path", help="remote file name")
    g.add_argument("--port", type=int, default=DEFAULT_PORT)
    g.add_argument("--mode", choices=[m.value for m in TransferMode], default=TransferMode.OCTET.value)
    g.add_argument("--out", default=None, help="local file, '-' for stdout (default: remote base name)")
    g.add_argument("--bind-host", default=DEFAULT_BIND_HOST)
    g.add_argument("--json", action="store_true")
    g.set_defaults(func=cmd_get)
    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(message)s")
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
