"""Pytest shared fixtures: in-memory store, fake metadata source, manual clock."""
import pathlib
import sys

# Add project root to Python path
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest

from realmsync.core.events import EventBus
from realmsync.core.exceptions import MetadataFetchError
from realmsync.core.manager import RealmManager
from realmsync.core.models import ProviderDescriptor
from realmsync.core.scheduler import ClusterAwareScheduler, InMemoryClusterLock
from realmsync.core.store import InMemoryStore


# ─────────────────────────────────────────────────────────────────────────────
# Test doubles
# ─────────────────────────────────────────────────────────────────────────────
class FakeFetcher:
    """Serves descriptor lists per locator; a stored exception is raised instead."""

    def __init__(self):
        self.documents = {}
        self.calls = []

    def publish(self, locator, descriptors):
        self.documents[locator] = list(descriptors)

    def fail(self, locator, message="connection refused"):
        self.documents[locator] = MetadataFetchError(locator, message)

    def fetch(self, locator):
        self.calls.append(locator)
        document = self.documents.get(locator)
        if document is None:
            raise MetadataFetchError(locator, "not found")
        if isinstance(document, Exception):
            raise document
        return list(document)


class ManualClock:
    def __init__(self, start=1_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class EventRecorder:
    def __init__(self):
        self.events = []

    def __call__(self, event):
        self.events.append(event)

    def types(self):
        return [e.type for e in self.events]


# ─────────────────────────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def recorder():
    return EventRecorder()


@pytest.fixture
def events(recorder):
    return EventBus([recorder])


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def lock(clock):
    return InMemoryClusterLock(owner="node-a", clock=clock)


@pytest.fixture
def scheduler(lock):
    sched = ClusterAwareScheduler(lock, start_timers=False)
    yield sched
    sched.shutdown()


@pytest.fixture
def manager(store, scheduler, fetcher, events):
    mgr = RealmManager(store, scheduler=scheduler, fetcher=fetcher, events=events)
    mgr.create_realm("master")
    return mgr


@pytest.fixture
def make_descriptor():
    def _make(entity_id, **kwargs):
        kwargs.setdefault("display_name", entity_id.upper())
        return ProviderDescriptor(id=entity_id, **kwargs)
    return _make


@pytest.fixture
def demo_realm(manager):
    return manager.create_realm("demo")
