import pytest

from nfc_crypto import CryptoEngine, WINDOW_MS
from nfc_crypto_selftest import ManualClock

# 1_700_000_100_000 ms: exactly the start of window 5_666_667
WINDOW_START_MS = 5_666_667 * WINDOW_MS
FINGERPRINT = "Mozilla/5.0 (test)|en-US|1920x1080|-60|data:image/png;base64,AAAA"


@pytest.fixture
def clock():
    return ManualClock(WINDOW_START_MS + 1_000)


@pytest.fixture
def engine(clock):
    return CryptoEngine(FINGERPRINT, clock=clock)
