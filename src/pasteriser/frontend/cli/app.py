"""Command line front end for the pasteriser content-protection engine.

Start here with `python -m pasteriser.frontend.cli.app` or the `pasteriser`
console script.

Usage:
    pasteriser generate-key
    pasteriser derive-key [--password [PASSWORD]] [--salt SALT] [--large]
    pasteriser encrypt (--key KEY | --password [PASSWORD]) [--input FILE] [--output FILE] [--progress]
    pasteriser decrypt (--key KEY | --password [PASSWORD]) [--input FILE] [--output FILE] [--progress]

Secrets may also come from PASTERISER_KEY / PASTERISER_PASSWORD; a password
flag without a value prompts for it.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from pasteriser.core.exceptions import CryptoError, PasteriserError, ProtocolError
from pasteriser.security.crypto import generate_key
from pasteriser.worker.protocol import ProgressEvent

from .context import AppContext, build_context
from .logging_config import configure_logging

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_GENERIC_ERROR = 1
EXIT_AUTH_ERROR = 3
EXIT_ARG_ERROR = 4


class UsageError(Exception):
    # bad or missing command line input
    pass


def _read_input(path: Optional[str]) -> str:
    if path is None or path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def _write_output(path: Optional[str], text: str) -> None:
    if path is None or path == "-":
        sys.stdout.write(text)
        if not text.endswith("\n"):
            sys.stdout.write("\n")
        sys.stdout.flush()
        return
    Path(path).write_text(text, encoding="utf-8")


def _progress_printer(enabled: bool):
    if not enabled:
        return None

    def show(event: ProgressEvent) -> None:
        end = "\n" if event.percent >= 100 else ""
        print(f"\r{event.operation}: {event.percent:3d}%", end=end, file=sys.stderr, flush=True)

    return show


def _secret_mode(args: argparse.Namespace, ctx: AppContext):
    # returns (secret, is_password)
    if args.password is not None:
        return ctx.password(args.password), True
    key = ctx.key(args.key)
    if key is None:
        raise UsageError("either --key or --password is required (or set PASTERISER_KEY)")
    return key, False


def cmd_generate_key(args: argparse.Namespace, ctx: AppContext) -> int:
    _write_output(None, generate_key())
    return EXIT_SUCCESS


def cmd_derive_key(args: argparse.Namespace, ctx: AppContext) -> int:
    password = ctx.password(args.password)
    derived = ctx.manager.derive_key(
        password,
        salt=args.salt,
        is_large_file=args.large,
        progress_callback=_progress_printer(args.progress),
    )
    _write_output(None, json.dumps(derived.to_dict()))
    return EXIT_SUCCESS


def cmd_encrypt(args: argparse.Namespace, ctx: AppContext) -> int:
    secret, is_password = _secret_mode(args, ctx)
    plaintext = _read_input(args.input)
    progress = _progress_printer(args.progress)

    if is_password:
        envelope = ctx.manager.encrypt_with_password(plaintext, secret, progress_callback=progress)
    else:
        envelope = ctx.manager.encrypt(plaintext, secret, progress_callback=progress)
    _write_output(args.output, envelope)
    return EXIT_SUCCESS


def cmd_decrypt(args: argparse.Namespace, ctx: AppContext) -> int:
    secret, is_password = _secret_mode(args, ctx)
    envelope = _read_input(args.input).strip()
    plaintext = ctx.manager.decrypt(
        envelope,
        secret,
        is_password_protected=is_password,
        progress_callback=_progress_printer(args.progress),
    )
    _write_output(args.output, plaintext)
    return EXIT_SUCCESS


def _add_secret_arguments(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--key", default=None, help="Base64-encoded 32-byte key")
    group.add_argument(
        "--password",
        nargs="?",
        const="",
        default=None,
        help="Use a password; prompts when no value is given",
    )


def _add_io_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--input", "-i", default=None, help="Input file (default: stdin)")
    parser.add_argument("--output", "-o", default=None, help="Output file (default: stdout)")
    parser.add_argument("--progress", action="store_true", help="Show progress on stderr")


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pasteriser",
        description="Encrypt and decrypt paste content the way the pasteriser web client does.",
    )
    parser.add_argument("--verbose", "-v", action="count", default=0, help="More logging (-vv for debug)")
    parser.add_argument(
        "--no-worker",
        dest="use_worker",
        action="store_false",
        help="Run operations on the calling thread instead of the background worker",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate-key", help="Print a new random Base64 key")
    gen.set_defaults(handler=cmd_generate_key)

    derive = sub.add_parser("derive-key", help="Derive a key from a password (prints JSON)")
    derive.add_argument("--password", nargs="?", const="", default=None, help="Password; prompts when omitted")
    derive.add_argument("--salt", default=None, help="Base64 salt (default: random)")
    derive.add_argument("--large", action="store_true", help="Use the large-payload iteration count")
    derive.add_argument("--progress", action="store_true", help="Show progress on stderr")
    derive.set_defaults(handler=cmd_derive_key)

    enc = sub.add_parser("encrypt", help="Encrypt text into a Base64 envelope")
    _add_secret_arguments(enc)
    _add_io_arguments(enc)
    enc.set_defaults(handler=cmd_encrypt)

    dec = sub.add_parser("decrypt", help="Decrypt a Base64 envelope")
    _add_secret_arguments(dec)
    _add_io_arguments(dec)
    dec.set_defaults(handler=cmd_decrypt)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(argv)

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose > 1:
        level = logging.DEBUG
    configure_logging(level)

    ctx = build_context(use_worker=args.use_worker)
    try:
        return args.handler(args, ctx)
    except UsageError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ARG_ERROR
    except (CryptoError, ProtocolError) as e:
        print(f"Error: {e.public_message}", file=sys.stderr)
        return EXIT_AUTH_ERROR if isinstance(e, CryptoError) else EXIT_ARG_ERROR
    except PasteriserError as e:
        print(f"Error: {e.public_message}", file=sys.stderr)
        return EXIT_GENERIC_ERROR
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_GENERIC_ERROR
    finally:
        ctx.manager.shutdown()


if __name__ == "__main__":  # pragma: no cover - CLI entry
    sys.exit(main())
