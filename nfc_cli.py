#!/usr/bin/env python3
"""
nfc_cli.py — NFC payload CLI (time-windowed cipher).

Encrypt/decrypt NFC tag payloads using:
  - nfc_crypto.CryptoEngine   (rolling time keys, 5-minute windows)
  - nfc_channel.ChannelContext (text + payload-file helpers)

Usage:
  nfc_cli encrypt [TEXT] [--in FILE] [--out OUT]
  nfc_cli decrypt [PAYLOAD] [--in FILE] [--out OUT]
  nfc_cli check PAYLOAD
  nfc_cli seed
  nfc_cli test-code [MESSAGE]

Global options:
  --fingerprint STR  Device fingerprint (optional; otherwise prompted).
                     Both sides must use the same value.
  --secret STR       Override the compiled-in shared secret (testing only)
  -v, --verbose      Debug logging on stderr

Exit codes: 0=OK, 1=check: not a payload, 2=usage/error.
"""

from __future__ import annotations
import argparse
import getpass
import logging
import sys

import nfc_crypto
from nfc_channel import ChannelContext, ChannelError


# ---------------- helpers ----------------

def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="nfc_cli",
        description="Time-windowed NFC payload encrypt/decrypt",
    )
    ap.add_argument("--fingerprint", dest="fp", default=None, help="Device fingerprint string")
    ap.add_argument("--secret", default=None, help="Shared secret override (testing only)")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")

    sub = ap.add_subparsers(dest="cmd", required=True)

    p_enc = sub.add_parser("encrypt", help="Encrypt text (argument or --in file)")
    p_enc.add_argument("text", nargs="?", default=None)
    p_enc.add_argument("--in", dest="infile", default=None, help="Read UTF-8 plaintext from file")
    p_enc.add_argument("--out", default=None, help="Output path (file mode default: <in>.nfc.txt)")

    p_dec = sub.add_parser("decrypt", help="Decrypt a payload (argument or --in file)")
    p_dec.add_argument("payload", nargs="?", default=None)
    p_dec.add_argument("--in", dest="infile", default=None, help="Read payload from file")
    p_dec.add_argument("--out", default=None, help="Output path (file mode default: <in>.dec.txt)")

    p_chk = sub.add_parser("check", help="Syntactic payload check (no decryption)")
    p_chk.add_argument("payload")

    sub.add_parser("seed", help="Show the current time window")

    p_tc = sub.add_parser("test-code", help="Encrypt a test message for the current window")
    p_tc.add_argument("message", nargs="?", default="TEST MESSAGE")

    return ap


def _load_fingerprint(args) -> str:
    """Get the fingerprint from args or prompt."""
    if args.fp is not None:
        fp = args.fp
    else:
        fp = getpass.getpass("Device fingerprint: ").strip()
    if not fp:
        print("Fingerprint must not be empty.", file=sys.stderr)
        raise SystemExit(2)
    return fp


def _open_context(args) -> ChannelContext:
    secret = args.secret if args.secret is not None else nfc_crypto.STATIC_SECRET
    return ChannelContext.open(_load_fingerprint(args), secret=secret)


def _one_source(value, infile, what: str) -> None:
    if (value is None) == (infile is None):
        print(f"Provide exactly one of {what} or --in FILE.", file=sys.stderr)
        raise SystemExit(2)


def main(argv: list[str] | None = None) -> int:
    ap = _build_parser()
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        if args.cmd == "check":
            ok = nfc_crypto.CryptoEngine.is_valid_format(args.payload.strip())
            print("valid" if ok else "invalid")
            return 0 if ok else 1

        if args.cmd == "encrypt":
            _one_source(args.text, args.infile, "TEXT")
            ctx = _open_context(args)
            if args.infile is not None:
                out = ctx.encrypt_file(args.infile, args.out)
                print("Wrote:", out)
                return 0
            payload = ctx.encrypt_text(args.text)
            if args.out:
                with open(args.out, "w", encoding="ascii") as f:
                    f.write(payload + "\n")
                print("Wrote:", args.out)
            else:
                print(payload)
            return 0

        elif args.cmd == "decrypt":
            _one_source(args.payload, args.infile, "PAYLOAD")
            ctx = _open_context(args)
            if args.infile is not None:
                out = ctx.decrypt_file(args.infile, args.out)
                print("Wrote:", out)
                return 0
            msg = ctx.read_payload(args.payload)
            if args.out:
                with open(args.out, "w", encoding="utf-8") as f:
                    f.write(msg.text)
                print("Wrote:", args.out)
            else:
                print(msg.text)
            return 0

        elif args.cmd == "seed":
            # windows are global; no fingerprint needed
            window = nfc_crypto.time_window(nfc_crypto.wall_clock_ms())
            print(f"{nfc_crypto.format_window(window)} (window {window})")
            return 0

        elif args.cmd == "test-code":
            ctx = _open_context(args)
            print(ctx.engine.generate_test_code(args.message))
            return 0

        else:
            print("Unknown command.", file=sys.stderr)
            return 2

    except KeyboardInterrupt:
        print("\nCancelled.", file=sys.stderr)
        return 2
    except (nfc_crypto.CryptoError, ChannelError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
