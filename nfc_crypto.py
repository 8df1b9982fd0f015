#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
nfc_crypto.py — time-windowed NFC payload cipher (rolling-hash keys, XOR stream,
checksummed envelope, multi-window decrypt retry).
==============================================================================

The key changes every 5 minutes without any exchange between devices. Both
sides share a compiled-in secret; each engine mixes it with a device
fingerprint into a master key, then derives one time key per 5-minute window.
A receiver tries the current window and the three before it, so a tag written
up to ~15-20 minutes ago still reads.

This is an obfuscation scheme, NOT authenticated encryption:
 - 32-bit rolling hash (Java/JS String-hash style), hex encoded
 - key stream = seed || hash(seed+"0") || hash(seed+"1") || ...
 - XOR over characters, Base64 transport, "NFC_" discriminator
 - integrity is a checksum over (msg, ts), not a MAC

------------------------------------------------------------------
Wire format
------------------------------------------------------------------
  "NFC_" + base64( latin1( xor( json(envelope), time_key ) ) )

  envelope = {"msg": str, "ts": int ms, "seed": int window, "checksum": str}
  checksum = simple_hash(msg + str(ts))

The JSON is compact and ASCII-only, so every ciphertext character is < 0x80
and survives Latin-1 + Base64 without loss.

------------------------------------------------------------------
Errors
------------------------------------------------------------------
  FormatError          bad prefix / bad base64           (fatal, no retry)
  IntegrityError       wrong window key / bad checksum   (drives retry, internal)
  ExpiryError          checksum-valid but older than 24h (fatal, even mid-retry)
  ExhaustedRetryError  no window produced a valid envelope
  EncryptionError      message could not be serialized

------------------------------------------------------------------
Minimal Example
------------------------------------------------------------------
engine = CryptoEngine("Mozilla/5.0|en-US|1920x1080|-60|data:image/png...")
payload = engine.encrypt("https://example.org/door/7")
engine.decrypt(payload)   # -> "https://example.org/door/7"
"""

from __future__ import annotations
import base64, binascii, json, logging, re, time
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)

# =========================
# Public constants
# =========================

PREFIX = "NFC_"
VERSION = 1

# Compiled-in secret shared by every installation (not per user).
STATIC_SECRET = "NFC_AUTH_2025_SECURE"

WINDOW_MS = 300_000           # 5 minutes
MAX_AGE_MS = 86_400_000       # 24 hours
RETRY_WINDOWS = 3             # windows tried *before* the current one
MIN_PAYLOAD_LEN = 10          # payloads must be strictly longer

_PAYLOAD_RE = re.compile(r"^NFC_[A-Za-z0-9+/=]+$")
_ENVELOPE_FIELDS = ("msg", "ts", "seed", "checksum")

# =========================
# Exceptions
# =========================

class CryptoError(Exception):
    """Base class for every engine failure."""

class FormatError(CryptoError):
    """Missing/garbled "NFC_" discriminator or Base64 body."""

class IntegrityError(CryptoError):
    """Envelope did not parse or checksum-verify under a given window key."""

class ExpiryError(CryptoError):
    """Envelope is checksum-valid but older than MAX_AGE_MS."""

class ExhaustedRetryError(CryptoError):
    """No tried window produced a valid envelope."""

class EncryptionError(CryptoError):
    """Message could not be serialized into an envelope."""

# =========================
# Hasher
# =========================

def _code_units(text: str):
    """UTF-16 code units of text (surrogate pairs stay split, as in JS strings)."""
    raw = text.encode("utf-16-le", "surrogatepass")
    for i in range(0, len(raw), 2):
        yield raw[i] | (raw[i + 1] << 8)

def simple_hash(text: str) -> str:
    """32-bit rolling hash h = h*31 + unit, signed wraparound, abs(), 8 hex digits."""
    if not text:
        return "00000000"
    h = 0
    for unit in _code_units(text):
        h = ((h << 5) - h + unit) & 0xFFFFFFFF
    if h & 0x80000000:
        h -= 1 << 32
    return format(abs(h), "08x")

# =========================
# Key derivation
# =========================

def time_window(now_ms: int) -> int:
    return now_ms // WINDOW_MS

def format_window(window: int) -> str:
    """Window id for display: "0x" + 8 upper-case hex digits."""
    return "0x" + format(window, "08X")

def derive_master_key(fingerprint: str, secret: str = STATIC_SECRET) -> str:
    return simple_hash(fingerprint + secret)

def derive_time_key(master_key: str, window: int) -> str:
    return simple_hash(master_key + str(window))

# =========================
# Key stream + XOR transform
# =========================

def expand_key(seed: str, length: int) -> str:
    """
    Stretch seed to exactly `length` characters:
      seed || hash(seed+"0") || hash(seed+"1") || ...   then truncate.
    """
    if length <= 0:
        return ""
    parts = [seed]
    have = len(seed)
    counter = 0
    while have < length:
        block = simple_hash(seed + str(counter))
        parts.append(block)
        have += len(block)
        counter += 1
    return "".join(parts)[:length]

def xor_transform(data: str, key: str) -> str:
    """Character-wise XOR against the expanded key. Self-inverse."""
    ks = expand_key(key, len(data))
    return "".join(chr(ord(a) ^ ord(b)) for a, b in zip(data, ks))

# =========================
# Envelope
# =========================

@dataclass(frozen=True)
class Envelope:
    msg: str
    ts: int
    seed: int
    checksum: str

    @classmethod
    def build(cls, message: str, now_ms: int, window: Optional[int] = None) -> "Envelope":
        seed = time_window(now_ms) if window is None else window
        return cls(msg=message, ts=now_ms, seed=seed, checksum=simple_hash(message + str(now_ms)))

    def serialize(self, ascii_only: bool = True) -> str:
        # key order and compact separators match the original JSON.stringify output
        return json.dumps(
            {"msg": self.msg, "ts": self.ts, "seed": self.seed, "checksum": self.checksum},
            separators=(",", ":"),
            ensure_ascii=ascii_only,
        )

    @classmethod
    def parse(cls, text: str) -> Optional["Envelope"]:
        """
        Return an Envelope, or None if text is not a well-formed envelope.
        Only canonical text is accepted: either our ASCII form or the raw
        form JSON.stringify emits. Anything else (escape case, whitespace,
        redundant escapes) decodes to the same fields from different bytes.
        """
        if not text:
            return None
        try:
            obj = json.loads(text)
        except (ValueError, RecursionError):
            return None
        if not isinstance(obj, dict) or any(k not in obj for k in _ENVELOPE_FIELDS):
            return None
        msg, ts, seed, checksum = (obj[k] for k in _ENVELOPE_FIELDS)
        if not isinstance(msg, str) or not isinstance(checksum, str):
            return None
        for n in (ts, seed):
            if not isinstance(n, int) or isinstance(n, bool):
                return None
        env = cls(msg=msg, ts=ts, seed=seed, checksum=checksum)
        if text != env.serialize() and text != env.serialize(ascii_only=False):
            return None
        return env

    def verify(self, now_ms: int) -> bool:
        """
        False on checksum mismatch (caller may try another window).
        Raises ExpiryError when the checksum holds but the envelope is too old:
        age does not depend on which key decrypted it, so retrying is pointless.
        """
        if simple_hash(self.msg + str(self.ts)) != self.checksum:
            return False
        if now_ms - self.ts > MAX_AGE_MS:
            raise ExpiryError("Message expired")
        return True

# =========================
# Public Engine
# =========================

def wall_clock_ms() -> int:
    return time.time_ns() // 1_000_000

class CryptoEngine:
    """
    Stateless apart from the master key, fixed at construction.
    Safe to share across threads; every call samples the clock once.
    """

    def __init__(
        self,
        fingerprint: str,
        *,
        secret: str = STATIC_SECRET,
        clock: Callable[[], int] | None = None,
    ):
        if not isinstance(fingerprint, str):
            raise TypeError("fingerprint must be a str")
        self._master_key = derive_master_key(fingerprint, secret)
        self._clock = clock or wall_clock_ms

    @property
    def master_key(self) -> str:
        return self._master_key

    def current_window(self) -> int:
        return time_window(self._clock())

    def time_key(self, window: int) -> str:
        return derive_time_key(self._master_key, window)

    def formatted_time_seed(self) -> str:
        return format_window(self.current_window())

    # ---- encrypt ----

    def encrypt(self, message: str, window: int | None = None) -> str:
        if not isinstance(message, str):
            raise EncryptionError(f"Encryption failed: message must be str, got {type(message).__name__}")
        now_ms = self._clock()
        env = Envelope.build(message, now_ms, window)
        body = xor_transform(env.serialize(), self.time_key(env.seed))
        logger.debug("encrypted %d chars for window %d", len(message), env.seed)
        return PREFIX + base64.b64encode(body.encode("latin-1")).decode("ascii")

    def generate_test_code(self, message: str = "TEST MESSAGE") -> str:
        return self.encrypt(message)

    # ---- decrypt ----

    @staticmethod
    def is_valid_format(text) -> bool:
        """Syntactic check only; never decrypts."""
        return (
            isinstance(text, str)
            and text.startswith(PREFIX)
            and len(text) > MIN_PAYLOAD_LEN
            and _PAYLOAD_RE.fullmatch(text) is not None
        )

    @staticmethod
    def _unwrap(payload: str) -> str:
        if not isinstance(payload, str) or not payload.startswith(PREFIX):
            raise FormatError("Invalid encrypted format")
        if not CryptoEngine.is_valid_format(payload):
            raise FormatError("Invalid encrypted format")
        b64 = payload[len(PREFIX):]
        try:
            raw = base64.b64decode(b64, validate=True)
        except (binascii.Error, ValueError):
            raise FormatError("Invalid base64 payload")
        # reject non-canonical encodings (stray bits in the final quantum)
        if base64.b64encode(raw).decode("ascii") != b64:
            raise FormatError("Invalid base64 payload")
        return raw.decode("latin-1")

    def _open(self, ciphertext: str, window: int, now_ms: int) -> Envelope:
        env = Envelope.parse(xor_transform(ciphertext, self.time_key(window)))
        if env is None:
            raise IntegrityError(f"window {window}: envelope did not parse")
        # seed is outside the checksum; bind it to the key that opened it
        if env.seed != window:
            raise IntegrityError(f"window {window}: envelope bound to window {env.seed}")
        if not env.verify(now_ms):
            raise IntegrityError(f"window {window}: checksum mismatch")
        return env

    def attempt_decrypt(self, ciphertext: str, window: int, now_ms: int) -> str | None:
        """
        Single-window attempt: the message, or None if this window's key does not
        yield a checksum-valid envelope. ExpiryError propagates.
        """
        try:
            return self._open(ciphertext, window, now_ms).msg
        except IntegrityError as e:
            logger.debug("%s", e)
            return None

    def decrypt(self, payload: str) -> str:
        ciphertext = self._unwrap(payload)
        now_ms = self._clock()
        current = time_window(now_ms)
        # backward only: receipt happens after send
        for back in range(RETRY_WINDOWS + 1):
            window = current - back
            try:
                msg = self.attempt_decrypt(ciphertext, window, now_ms)
            except ExpiryError:
                logger.warning("payload for window %d is older than %d ms", window, MAX_AGE_MS)
                raise
            if msg is not None:
                logger.debug("decrypted with window %d (%d back)", window, back)
                return msg
        raise ExhaustedRetryError("Decryption failed - invalid key or expired data")

    @staticmethod
    def info() -> dict:
        return {
            "name": "CryptoEngine",
            "version": VERSION,
            "prefix": PREFIX,
            "window_ms": WINDOW_MS,
            "retry_windows": RETRY_WINDOWS,
            "max_age_ms": MAX_AGE_MS,
            "notes": "Rolling 32-bit hash keys, XOR stream, checksummed JSON envelope. Obfuscation, not AEAD.",
        }
