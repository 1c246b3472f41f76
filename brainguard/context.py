# brainguard/context.py

import logging

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import Request

from brainguard.config import Settings
from brainguard.database import create_db_engine, create_session_factory, init_db
from brainguard.services.clock import SystemClock
from brainguard.services.collector import UploadedUsageCollector
from brainguard.services.coordinator import ServiceCoordinator
from brainguard.services.daily_reset_service import DailyResetService
from brainguard.services.daily_summary_service import DailySummaryService
from brainguard.services.events import EventBus
from brainguard.services.message_manager import FcmNotifier, LogNotifier
from brainguard.services.monitoring_service import MonitoringEngine
from brainguard.services.notification_service import NotificationDispatcher
from brainguard.services.score_service import ScoreAggregator
from brainguard.services.store import UsageStore
from brainguard.utils.constants import META_FCM_DEVICE_TOKEN

logger = logging.getLogger(__name__)


class ServiceContext:
    """Every long-lived service of the process, built once at startup."""

    def __init__(self, settings, db_engine, store, clock, bus, scheduler, collector, notifier,
                 dispatcher, aggregator, engine, summary_service, reset_service, coordinator):
        self.settings = settings
        self.db_engine = db_engine
        self.store = store
        self.clock = clock
        self.bus = bus
        self.scheduler = scheduler
        self.collector = collector
        self.notifier = notifier
        self.dispatcher = dispatcher
        self.aggregator = aggregator
        self.engine = engine
        self.summary_service = summary_service
        self.reset_service = reset_service
        self.coordinator = coordinator

    def startup(self) -> None:
        init_db(self.db_engine)
        # 놓친 자정 리셋 복구가 먼저, 그 다음 트래커 초기화
        self.reset_service.initialize()
        self.engine.initialize()

        if not self.scheduler.running:
            self.scheduler.start()
        logger.info("Brainguard services started")

    def shutdown(self) -> None:
        self.engine.shutdown()
        self.reset_service.cleanup()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Brainguard services stopped")


def _build_notifier(settings: Settings, store):
    if not settings.fcm_key_path:
        logger.info("No FCM key configured, alerts will only be logged")
        return LogNotifier()
    return FcmNotifier(
        settings.fcm_key_path,
        lambda: store.get_meta(META_FCM_DEVICE_TOKEN),
        timeout=settings.external_call_timeout_seconds,
    )


def build_context(
    settings: Settings,
    db_engine=None,
    collector=None,
    notifier=None,
    scheduler=None,
    clock=None,
) -> ServiceContext:
    db_engine = db_engine or create_db_engine(settings.database_url)
    store = UsageStore(create_session_factory(db_engine))
    clock = clock or SystemClock()
    bus = EventBus()
    scheduler = scheduler or BackgroundScheduler()
    collector = collector or UploadedUsageCollector()
    notifier = notifier or _build_notifier(settings, store)

    dispatcher = NotificationDispatcher(store, notifier, clock)
    aggregator = ScoreAggregator(
        store, clock, settings.host_package,
        ttl_seconds=settings.score_cache_ttl_seconds,
        bus=bus,
    )
    engine = MonitoringEngine(
        store, collector, dispatcher, bus, clock, scheduler,
        poll_interval_seconds=settings.poll_interval_seconds,
        initial_check_delay_seconds=settings.initial_check_delay_seconds,
        call_timeout_seconds=settings.external_call_timeout_seconds,
    )
    summary_service = DailySummaryService(store, aggregator, clock)
    reset_service = DailyResetService(
        store, engine, summary_service, aggregator, clock, scheduler,
        post_reset_delay_seconds=settings.initial_check_delay_seconds,
        retention_days=settings.notification_retention_days,
        max_recovery_days=settings.backfill_days,
    )
    coordinator = ServiceCoordinator(store, engine, bus, clock)

    return ServiceContext(
        settings=settings,
        db_engine=db_engine,
        store=store,
        clock=clock,
        bus=bus,
        scheduler=scheduler,
        collector=collector,
        notifier=notifier,
        dispatcher=dispatcher,
        aggregator=aggregator,
        engine=engine,
        summary_service=summary_service,
        reset_service=reset_service,
        coordinator=coordinator,
    )


def get_context(request: Request) -> ServiceContext:
    # FastAPI dependency (get_db 대신 서비스 묶음을 주입)
    return request.app.state.context
