import os
import time

import pytest
import stripe

# Configure Django settings before pytest-django sets Django up
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'dance_hub.test_settings')


@pytest.fixture(autouse=True)
def _stub_external(monkeypatch):
    """
    Keep tests off the network and off the clock.

    Every Stripe call a test exercises is patched explicitly; the dummy key
    makes an unpatched call fail with an authentication error instead of
    reaching a real account.
    """
    monkeypatch.setattr(stripe, 'api_key', 'sk_test_dummy')
    monkeypatch.setattr(time, 'sleep', lambda *_: None)
