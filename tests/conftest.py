"""
Shared fixtures.

Environment variables are set before any project module is imported,
because app.core.config reads them once at import time.
"""
import os
import tempfile

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("CACHE_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_STORAGE_URI", "memory://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("QR_UPLOAD_DIR", tempfile.mkdtemp(prefix="eventgate-qr-"))
os.environ.setdefault("PUBLIC_BASE_URL", "http://testserver")

from types import SimpleNamespace

import pytest

from services.registrations.services.qr_code_service import QrCodeService
from services.registrations.services.registration_service import RegistrationService
from tests.fakes import (
    FakeCache,
    InMemoryReferenceStore,
    InMemoryRegistrationStore,
    make_event,
    make_ticket_type,
    make_user,
    make_venue,
)


@pytest.fixture
def world():
    """Venue with capacity 10, one event, four users and two ticket types"""
    venue = make_venue(capacity=10)
    event = make_event(venue)
    alice = make_user("alice@example.com", username="alice")
    bob = make_user("bob@example.com", username="bob")
    carol = make_user("carol@example.com", username="carol")
    dave = make_user("dave@example.com", username="dave")
    general = make_ticket_type(event, price="50.00", name="General")
    student = make_ticket_type(event, price="20.50", name="Student")
    return SimpleNamespace(
        venue=venue,
        event=event,
        alice=alice,
        bob=bob,
        carol=carol,
        dave=dave,
        general=general,
        student=student,
    )


@pytest.fixture
def references(world):
    store = InMemoryReferenceStore()
    store.add(
        world.venue, world.event,
        world.alice, world.bob, world.carol, world.dave,
        world.general, world.student,
    )
    return store


@pytest.fixture
def registrations():
    return InMemoryRegistrationStore()


@pytest.fixture
def cache():
    return FakeCache()


@pytest.fixture
def qr_codes(tmp_path):
    return QrCodeService(str(tmp_path / "qrcodes"))


@pytest.fixture
def service(references, registrations, qr_codes, cache):
    return RegistrationService(references, registrations, qr_codes, cache=cache)
