from pathlib import Path
import os
import sys
import tempfile

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent))

# Loggers are configured at import time; keep their files out of the checkout.
os.environ.setdefault("JIOMART_LOG_DIR", os.path.join(tempfile.gettempdir(), "jiomart-scraper-tests"))


@pytest.fixture(autouse=True)
def _no_settle_delays(monkeypatch):
    monkeypatch.setenv("JIOMART_WAIT_MULTIPLIER", "0")
    monkeypatch.delenv("JIOMART_HEADLESS", raising=False)
    monkeypatch.setenv("JIOMART_STEALTH", "0")
