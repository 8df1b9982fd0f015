"""
nfc_channel.py — Thin adapter between the NFC/UI collaborators and CryptoEngine.

Dependencies (place alongside this file):
  - nfc_crypto.py

Features:
  - compose_fingerprint(): join already-collected device traits into the opaque
    fingerprint string the engine expects (collection itself lives in the UI).
  - ChannelContext: engine bound to one fingerprint; text + payload-file helpers.
  - read_payload(): decrypt and classify the result (URL vs plain text) so the
    caller can decide whether to offer "open link".
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Callable
from urllib.parse import urlparse
import logging
import pathlib

import nfc_crypto
from nfc_crypto import CryptoEngine

logger = logging.getLogger(__name__)


# ---------- exceptions ----------

class ChannelError(Exception):
    """Base exception for nfc_channel."""


# ---------- helpers ----------

FINGERPRINT_SEP = "|"


def compose_fingerprint(*parts) -> str:
    """
    Join fingerprint components in the order given, e.g.
    (user_agent, language, "1920x1080", tz_offset_minutes, canvas_data_url).
    """
    if not parts:
        raise ChannelError("fingerprint needs at least one component")
    return FINGERPRINT_SEP.join(str(p) for p in parts)


def is_url(text: str) -> bool:
    """True when text parses as an absolute URL (scheme + location)."""
    if not isinstance(text, str) or not text or any(c.isspace() for c in text):
        return False
    try:
        u = urlparse(text)
    except ValueError:
        return False
    if not u.scheme:
        return False
    if u.scheme in ("http", "https", "ftp", "ws", "wss"):
        return bool(u.netloc)
    # mailto:, tel:, geo: ... carry no netloc
    return bool(u.netloc or u.path)


def _existing_file(name: str | pathlib.Path) -> pathlib.Path:
    p = pathlib.Path(name)
    if not p.is_file():
        raise ChannelError(f"File not found: {name}")
    return p


def _default_out_path(in_real: pathlib.Path, out_path, suffix: str) -> pathlib.Path:
    """<in>.nfc.txt for payloads; decrypting <x>.nfc.txt gives <x>.dec.txt."""
    if out_path is not None:
        return pathlib.Path(out_path)
    name = in_real.name
    if suffix == ".dec.txt" and name.endswith(".nfc.txt"):
        name = name[: -len(".nfc.txt")]
    return in_real.with_name(name + suffix)


# ---------- results ----------

@dataclass(frozen=True)
class DecodedMessage:
    text: str
    is_url: bool


# ---------- main context ----------

@dataclass
class ChannelContext:
    """
    Holds the fingerprint and the engine derived from it.
    The engine is immutable after construction, so one context can serve
    the NFC reader callback and manual input at the same time.
    """
    fingerprint: str
    engine: CryptoEngine = field(repr=False)

    @classmethod
    def open(
        cls,
        fingerprint: str,
        *,
        secret: str = nfc_crypto.STATIC_SECRET,
        clock: Callable[[], int] | None = None,
    ) -> "ChannelContext":
        if not isinstance(fingerprint, str) or not fingerprint:
            raise ChannelError("fingerprint must be a non-empty string")
        return cls(fingerprint=fingerprint, engine=CryptoEngine(fingerprint, secret=secret, clock=clock))

    # ---- text ----

    def encrypt_text(self, text: str) -> str:
        return self.engine.encrypt(text)

    def decrypt_text(self, payload: str) -> str:
        """Decrypt scanned or typed payload text; surrounding whitespace is ignored."""
        if not isinstance(payload, str):
            raise ChannelError("payload must be a string")
        return self.engine.decrypt(payload.strip())

    def read_payload(self, payload: str) -> DecodedMessage:
        text = self.decrypt_text(payload)
        return DecodedMessage(text=text, is_url=is_url(text))

    def looks_like_payload(self, text: str) -> bool:
        return isinstance(text, str) and CryptoEngine.is_valid_format(text.strip())

    # ---- files ----

    def encrypt_file(
        self,
        in_path: str | pathlib.Path,
        out_path: str | pathlib.Path | None = None,
    ) -> pathlib.Path:
        """
        Encrypt a UTF-8 text file into a one-line ASCII payload file
        (default name: <in>.nfc.txt). Returns the output path written.
        """
        in_real = _existing_file(in_path)
        text = in_real.read_text(encoding="utf-8")
        payload = self.encrypt_text(text)
        out_p = _default_out_path(in_real, out_path, ".nfc.txt")
        out_p.write_text(payload + "\n", encoding="ascii")
        logger.info("wrote payload %s (%d chars)", out_p, len(payload))
        return out_p

    def decrypt_file(
        self,
        in_path: str | pathlib.Path,
        out_path: str | pathlib.Path | None = None,
    ) -> pathlib.Path:
        """
        Decrypt a payload file produced by encrypt_file back to UTF-8 text
        (default name: <in minus .nfc.txt>.dec.txt). Returns the output path written.
        """
        in_real = _existing_file(in_path)
        try:
            payload = in_real.read_text(encoding="ascii").strip()
        except UnicodeDecodeError:
            raise ChannelError(f"payload file is not ASCII: {in_real}")
        if not payload:
            raise ChannelError(f"payload file is empty: {in_real}")
        text = self.decrypt_text(payload)
        out_p = _default_out_path(in_real, out_path, ".dec.txt")
        out_p.write_text(text, encoding="utf-8")
        logger.info("wrote plaintext %s", out_p)
        return out_p
