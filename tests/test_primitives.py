# tests/test_primitives.py

import json

import pytest

import nfc_crypto
from nfc_crypto import (
    Envelope,
    ExpiryError,
    MAX_AGE_MS,
    STATIC_SECRET,
    WINDOW_MS,
    derive_master_key,
    derive_time_key,
    expand_key,
    format_window,
    simple_hash,
    time_window,
    xor_transform,
)

from conftest import WINDOW_START_MS


# ---------- hasher ----------

def test_hash_of_empty_string_is_all_zeros():
    assert simple_hash("") == "00000000"


@pytest.mark.parametrize(
    "text, expected",
    [
        ("a", "00000061"),
        ("ab", "00000c21"),
        ("hello", "05e918d2"),
        # 31-multiplier collision pair
        ("Aa", "00000840"),
        ("BB", "00000840"),
    ],
)
def test_hash_known_values(text, expected):
    assert simple_hash(text) == expected


def test_hash_int32_min_renders_as_80000000():
    # this string hashes to exactly -2**31; abs() must not wrap back negative
    assert simple_hash("polygenelubricants") == "80000000"


def test_hash_uses_utf16_code_units():
    # U+1F600 is the surrogate pair D83D DE00: 0xD83D * 31 + 0xDE00
    assert simple_hash("\U0001F600") == format(0xD83D * 31 + 0xDE00, "08x")
    assert simple_hash("\U0001F600") == "001b0d63"


def test_hash_wraps_to_32_bits_and_stays_8_hex_digits():
    h = simple_hash("x" * 10_000)
    assert len(h) == 8
    int(h, 16)
    assert h == h.lower()


# ---------- key derivation ----------

def test_master_key_mixes_fingerprint_and_secret():
    assert derive_master_key("device") == simple_hash("device" + STATIC_SECRET)
    assert derive_master_key("device", "other-secret") == simple_hash("deviceother-secret")


def test_time_key_is_deterministic():
    mk = derive_master_key("device")
    assert derive_time_key(mk, 42) == derive_time_key(mk, 42)
    assert derive_time_key(mk, 42) == simple_hash(mk + "42")
    assert derive_time_key(mk, 42) != derive_time_key(mk, 43)


def test_time_window_buckets_five_minutes():
    assert time_window(WINDOW_START_MS) == 5_666_667
    assert time_window(WINDOW_START_MS + WINDOW_MS - 1) == 5_666_667
    assert time_window(WINDOW_START_MS + WINDOW_MS) == 5_666_668


def test_format_window():
    assert format_window(0x5678AB) == "0x005678AB"


# ---------- key stream ----------

def test_expand_key_truncates_short_requests():
    assert expand_key("abcdef12", 3) == "abc"
    assert expand_key("abcdef12", 0) == ""


def test_expand_key_appends_counter_hashes():
    seed = "abcdef12"
    ks = expand_key(seed, 20)
    assert len(ks) == 20
    assert ks == seed + simple_hash(seed + "0") + simple_hash(seed + "1")[:4]


def test_expand_key_is_a_prefix_family():
    seed = "0badf00d"
    assert expand_key(seed, 100).startswith(expand_key(seed, 37))


# ---------- cipher ----------

@pytest.mark.parametrize("data", ["", "x", '{"msg":"hi"}', "é中\U0001F431\x00"])
def test_xor_transform_is_self_inverse(data):
    key = "1a2b3c4d"
    assert xor_transform(xor_transform(data, key), key) == data


def test_xor_transform_of_ascii_stays_ascii():
    out = xor_transform('{"msg":"hello","ts":1}', "deadbeef")
    assert all(ord(c) < 0x80 for c in out)


# ---------- envelope ----------

def test_envelope_build_captures_time_and_window():
    env = Envelope.build("hi", WINDOW_START_MS + 5)
    assert env.ts == WINDOW_START_MS + 5
    assert env.seed == 5_666_667
    assert env.checksum == simple_hash("hi" + str(WINDOW_START_MS + 5))


def test_envelope_serialize_is_compact_ordered_json():
    env = Envelope(msg="hi", ts=123, seed=4, checksum="0000abcd")
    assert env.serialize() == '{"msg":"hi","ts":123,"seed":4,"checksum":"0000abcd"}'


def test_envelope_serialize_is_ascii_and_parses_back():
    env = Envelope.build("naïve \U0001F431", WINDOW_START_MS)
    text = env.serialize()
    assert text.isascii()
    assert Envelope.parse(text) == env


@pytest.mark.parametrize(
    "text",
    [
        "",
        "not json",
        "[1, 2, 3]",
        '{"msg":"hi","ts":1,"seed":2}',
        '{"msg":"hi","ts":1.5,"seed":2,"checksum":"x"}',
        '{"msg":"hi","ts":true,"seed":2,"checksum":"x"}',
        '{"msg":7,"ts":1,"seed":2,"checksum":"x"}',
        '{"msg":"hi","ts":1,"seed":"2","checksum":"x"}',
    ],
)
def test_envelope_parse_rejects_malformed(text):
    assert Envelope.parse(text) is None


def test_envelope_parse_accepts_ascii_and_raw_unicode_forms():
    env = Envelope.build("caf\u00e9", WINDOW_START_MS)
    ascii_text = env.serialize()
    raw_text = env.serialize(ascii_only=False)
    assert "\\u00e9" in ascii_text
    assert "\u00e9" in raw_text
    assert Envelope.parse(ascii_text) == env
    assert Envelope.parse(raw_text) == env


@pytest.mark.parametrize(
    "variant",
    [
        lambda t: t.replace("\\u00e9", "\\u00E9"),
        lambda t: t.replace("caf", "\\u0063af"),
        lambda t: " " + t,
        lambda t: t + "\n",
        lambda t: t.replace(",", ", ", 1),
        lambda t: t.replace(":", " :", 1),
    ],
)
def test_envelope_parse_rejects_non_canonical_text(variant):
    text = Envelope.build("caf\u00e9", WINDOW_START_MS).serialize()
    other = variant(text)
    assert other != text
    assert json.loads(other) == json.loads(text)
    assert Envelope.parse(other) is None


def test_envelope_keeps_integer_timestamp():
    text = json.dumps({"msg": "m", "ts": 1_700_000_100_123, "seed": 1, "checksum": "c"}, separators=(",", ":"))
    env = Envelope.parse(text)
    assert isinstance(env.ts, int)
    assert env.ts == 1_700_000_100_123


def test_envelope_verify_checksum_mismatch_is_false():
    env = Envelope.build("hi", WINDOW_START_MS)
    forged = Envelope(msg="ho", ts=env.ts, seed=env.seed, checksum=env.checksum)
    assert env.verify(WINDOW_START_MS) is True
    assert forged.verify(WINDOW_START_MS) is False


def test_envelope_verify_age_boundary():
    env = Envelope.build("hi", WINDOW_START_MS)
    assert env.verify(WINDOW_START_MS + MAX_AGE_MS) is True
    with pytest.raises(ExpiryError):
        env.verify(WINDOW_START_MS + MAX_AGE_MS + 1)


def test_envelope_verify_bad_checksum_wins_over_age():
    env = Envelope(msg="hi", ts=0, seed=0, checksum="ffffffff")
    assert env.verify(10 * MAX_AGE_MS) is False


def test_module_exposes_constants():
    assert nfc_crypto.PREFIX == "NFC_"
    assert nfc_crypto.WINDOW_MS == 300_000
    assert nfc_crypto.MAX_AGE_MS == 86_400_000
    assert nfc_crypto.RETRY_WINDOWS == 3
