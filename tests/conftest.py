"""
Shared pytest fixtures: an in-memory Firestore, a mocked gateway and a frozen clock.
"""
from datetime import datetime, timezone

import pytest
from firebase_admin import firestore

from fakes import FakeBucket, FakeFirestore, make_gateway
from shared import time


@pytest.fixture
def fake_db(monkeypatch):
    # transactions on the fake apply writes immediately, so run the body once
    monkeypatch.setattr(firestore, "transactional", lambda fn: fn)
    return FakeFirestore()


@pytest.fixture
def gateway():
    return make_gateway()


@pytest.fixture
def bucket():
    return FakeBucket()


@pytest.fixture
def frozen_now():
    # 10:00 in Tashkent
    now = datetime(2025, 3, 10, 5, 0, tzinfo=timezone.utc)
    time.set_fake_utcnow(now)
    yield now
    time.clear_fake_utcnow()
