#!/usr/bin/env python3
"""
nfc_crypto_selftest.py — black-box self-test for the time-windowed CryptoEngine

- Drives the engine through an injected clock; no sleeping, no wall-clock reliance.
- Checks round trip, wrong fingerprint, tamper, skew window (3 back OK, 4 back
  fails), future payloads, 24h expiry precedence and format rejection.
- No reliance on envelope layout beyond the public "NFC_" + Base64 shape.

Usage:
    import nfc_crypto_selftest as st
    from nfc_crypto import CryptoEngine
    report = st.run_self_test(CryptoEngine)
"""

from __future__ import annotations
import secrets
from typing import Any, Dict, Type

try:
    from nfc_crypto import CryptoEngine, CryptoError, ExpiryError, ExhaustedRetryError, FormatError, WINDOW_MS, MAX_AGE_MS
except Exception as e:  # pragma: no cover
    raise RuntimeError("nfc_crypto not available: " + str(e))

# start of a window, so +/- whole windows land predictably
_BASE_MS = 5_666_667 * WINDOW_MS


class ManualClock:
    """Callable clock returning integer epoch milliseconds; moved by hand."""

    def __init__(self, now_ms: int = _BASE_MS):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


def _safe_preview(s: str, limit: int = 60) -> str:
    out = []
    for ch in s[:limit]:
        o = ord(ch)
        if o < 32 or o == 127:
            out.append(f"\\x{o:02x}")
        else:
            out.append(ch)
    if len(s) > limit:
        out.append("...")
    return "".join(out)

def _ok(why: str = "") -> Dict[str, Any]:
    return {"ok": True, "why": why}

def _fail(why: str) -> Dict[str, Any]:
    return {"ok": False, "why": why}

def _expect_error(fn, exc_type) -> Dict[str, Any]:
    try:
        out = fn()
    except exc_type:
        return _ok()
    except Exception as e:
        return _fail(f"unexpected error: {type(e).__name__}: {e}")
    return _fail(f"unexpectedly succeeded: {out!r}")

def _flip(ch: str) -> str:
    return "B" if ch == "A" else "A"


def run_self_test(engine_cls: Type[CryptoEngine]) -> Dict[str, Any]:
    tests: Dict[str, Dict[str, Any]] = {}
    fingerprint = "selftest|" + secrets.token_hex(8)
    clock = ManualClock(_BASE_MS + 1_000)
    engine = engine_cls(fingerprint, clock=clock)

    # 1) Round trip
    plaintext = "Hello NFC \x00\x01 éß 中文 \U0001F431 https://example.org/?a=1&b=2"
    ct = ""
    try:
        ct = engine.encrypt(plaintext)
        pt = engine.decrypt(ct)
        tests["round_trip"] = _ok() if pt == plaintext else _fail("decrypted plaintext mismatch")
    except Exception as e:
        tests["round_trip"] = _fail(f"exception: {e}")

    # 2) Output alphabet
    tests["ascii_payload"] = _ok() if engine_cls.is_valid_format(ct) else _fail("payload fails format check")

    # 3) Wrong fingerprint -> no window matches
    other = engine_cls(fingerprint + "-other", clock=clock)
    tests["wrong_fingerprint"] = _expect_error(lambda: other.decrypt(ct), ExhaustedRetryError)

    # 4) Tamper detection (flip one body char; must never yield the original)
    try:
        body = ct[4:]
        mid = len(body) // 2
        tampered = ct[:4] + body[:mid] + _flip(body[mid]) + body[mid + 1:]
        try:
            out = engine.decrypt(tampered)
            tests["tamper"] = _fail("tampered payload returned original") if out == plaintext \
                              else _ok("tamper produced a different message")
        except CryptoError:
            tests["tamper"] = _ok()
    except Exception as e:
        tests["tamper"] = _fail(f"exception: {e}")

    # 5) Skew: 3 windows back decrypts, 4 back does not
    try:
        sender = engine_cls(fingerprint, clock=ManualClock(clock.now_ms))
        old_ct = sender.encrypt(plaintext)
        late = engine_cls(fingerprint, clock=ManualClock(clock.now_ms + 3 * WINDOW_MS))
        tests["skew_3_windows"] = _ok() if late.decrypt(old_ct) == plaintext else _fail("mismatch at 3 windows")
    except Exception as e:
        tests["skew_3_windows"] = _fail(f"exception: {e}")
    too_late = engine_cls(fingerprint, clock=ManualClock(clock.now_ms + 4 * WINDOW_MS))
    tests["skew_4_windows"] = _expect_error(lambda: too_late.decrypt(ct), ExhaustedRetryError)

    # 6) Sender clock ahead of receiver -> backward-only retry cannot reach it
    ahead = engine_cls(fingerprint, clock=ManualClock(clock.now_ms + WINDOW_MS))
    future_ct = ahead.encrypt(plaintext)
    tests["future_payload"] = _expect_error(lambda: engine.decrypt(future_ct), ExhaustedRetryError)

    # 7) Expiry wins over remaining retry budget
    stale_sender = engine_cls(fingerprint, clock=ManualClock(clock.now_ms - MAX_AGE_MS - 60_000))
    stale_ct = stale_sender.encrypt(plaintext, window=engine.current_window())
    tests["expiry"] = _expect_error(lambda: engine.decrypt(stale_ct), ExpiryError)

    # 8) Format rejection
    tests["format_no_prefix"] = _expect_error(lambda: engine.decrypt("not-nfc-data"), FormatError)
    tests["format_too_short"] = _expect_error(lambda: engine.decrypt("NFC_"), FormatError)
    tests["format_bad_b64"] = _expect_error(lambda: engine.decrypt("NFC_abc$def*ghi"), FormatError)

    # Summary
    all_passed = all(t["ok"] for t in tests.values())
    sample = {"ct": (ct[:80] + "...") if len(ct) > 80 else ct, "pt_preview": _safe_preview(plaintext, 60)}

    return {
        "engine": engine_cls.__name__,
        "version": getattr(engine_cls, "info", lambda: {})().get("version", "?"),
        "all_passed": all_passed,
        "tests": tests,
        "sample": sample,
    }

if __name__ == "__main__":  # pragma: no cover
    rep = run_self_test(CryptoEngine)
    print(f"Engine: {rep['engine']}  Version: {rep['version']}")
    print("All passed:", rep["all_passed"])
    for name, r in rep["tests"].items():
        status = "OK " if r["ok"] else "FAIL"
        why = ("" if r["ok"] else f"  ({r['why']})")
        print(f" - {name:20s}: {status}{why}")
    print("Sample ct  :", rep["sample"]["ct"])
    print("PT preview :", rep["sample"]["pt_preview"])
