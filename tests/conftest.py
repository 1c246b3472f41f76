"""
Pytest configuration and shared fixtures for brainguard tests.

Everything that touches time, scheduling, the device or push delivery is
replaced by a small fake so tests run deterministically without waiting.
"""

import os
import sys
from dataclasses import replace
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# 테스트가 실제 DB 파일을 만들지 않도록 import 전에 지정
os.environ.setdefault("BRAINGUARD_DATABASE_URL", "sqlite://")

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from apscheduler.jobstores.base import JobLookupError

from brainguard.config import Settings
from brainguard.database import create_db_engine, create_session_factory, init_db
from brainguard.exceptions import DispatchError
from brainguard.schemas.usage import CollectedUsage, ForegroundApp
from brainguard.services.events import EventBus
from brainguard.services.monitoring_service import MonitoringEngine
from brainguard.services.notification_service import NotificationDispatcher
from brainguard.services.score_service import ScoreAggregator
from brainguard.services.store import UsageStore
from brainguard.utils.constants import MINUTE_MS

HOST_PACKAGE = "com.soumikganguly.brainrot"


class FakeClock:
    def __init__(self, now: datetime):
        self._now = now

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs) -> datetime:
        self._now = self._now + timedelta(**kwargs)
        return self._now

    def set(self, now: datetime) -> None:
        self._now = now


class FakeJob:
    def __init__(self, func, trigger, kwargs):
        self.func = func
        self.trigger = trigger
        self.kwargs = kwargs


class FakeScheduler:
    """Records jobs instead of running them; tests fire them explicitly."""

    def __init__(self):
        self.jobs = {}
        self.added = []
        self.running = False

    def add_job(self, func, trigger, id=None, replace_existing=False, **kwargs):
        self.jobs[id] = FakeJob(func, trigger, kwargs)
        self.added.append(id)
        return self.jobs[id]

    def remove_job(self, job_id):
        if job_id not in self.jobs:
            raise JobLookupError(job_id)
        del self.jobs[job_id]

    def get_job(self, job_id):
        return self.jobs.get(job_id)

    def fire(self, job_id):
        job = self.jobs[job_id]
        if job.trigger == "date":
            del self.jobs[job_id]
        return job.func()

    def start(self):
        self.running = True

    def shutdown(self, wait=True):
        self.running = False


class FakeCollector:
    def __init__(self):
        self.usage = {}
        self.names = {}
        self.foreground = None
        self.granted = True
        self.fail = False
        self.callback = None
        self.realtime_supported = True

    def set_usage(self, package_name, minutes, app_name=None):
        self.usage[package_name] = int(minutes * MINUTE_MS)
        if app_name:
            self.names[package_name] = app_name

    def usage_since(self, timestamp_ms):
        if self.fail:
            raise RuntimeError("usage stats service unavailable")
        return [
            CollectedUsage(package_name=pkg, total_foreground_ms=ms, app_name=self.names.get(pkg))
            for pkg, ms in self.usage.items()
        ]

    def current_foreground_app(self):
        if self.foreground is None:
            return None
        return ForegroundApp(package_name=self.foreground)

    def permission_granted(self):
        return self.granted

    def start_realtime(self, callback):
        if not self.realtime_supported:
            return False
        self.callback = callback
        return True

    def stop_realtime(self):
        self.callback = None


class FakeNotifier:
    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, title, body, severity):
        self.sent.append((title, body, severity))
        if self.fail:
            raise DispatchError("push service down")


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 10, 12, 0, 0))


@pytest.fixture
def db_engine(tmp_path):
    # 파일 DB: 엔진 tick은 worker 스레드에서 DB를 읽음
    engine = create_db_engine(f"sqlite:///{tmp_path / 'brainguard-test.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(db_engine):
    return UsageStore(create_session_factory(db_engine))


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def collector():
    return FakeCollector()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def dispatcher(store, notifier, clock):
    return NotificationDispatcher(store, notifier, clock)


@pytest.fixture
def aggregator(store, clock, bus):
    return ScoreAggregator(store, clock, HOST_PACKAGE, ttl_seconds=60, bus=bus)


@pytest.fixture
def monitored(store):
    store.set_monitored_packages(
        ["com.instagram.android", "com.google.android.youtube", HOST_PACKAGE],
        {
            "com.instagram.android": "Instagram",
            "com.google.android.youtube": "YouTube",
            HOST_PACKAGE: "Brainrot",
        },
    )
    return store


@pytest.fixture
def engine(store, collector, dispatcher, bus, clock, scheduler):
    monitoring = MonitoringEngine(
        store, collector, dispatcher, bus, clock, scheduler,
        poll_interval_seconds=600,
        initial_check_delay_seconds=5,
        call_timeout_seconds=5,
    )
    yield monitoring
    monitoring.shutdown()


@pytest.fixture
def test_settings(tmp_path):
    return replace(
        Settings.from_env(),
        database_url=f"sqlite:///{tmp_path / 'brainguard-app.db'}",
        host_package=HOST_PACKAGE,
        fcm_key_path=None,
    )
