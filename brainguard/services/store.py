# brainguard/services/store.py

import json
import logging
import threading
from contextlib import contextmanager
from datetime import date
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from brainguard.exceptions import MalformedPersistedData, TransientStoreError
from brainguard.models.app_settings import AppSetting
from brainguard.models.daily_summary import DailySummary
from brainguard.models.daily_usage import DailyUsage
from brainguard.models.meta import Meta
from brainguard.models.notification_history import NotificationHistory
from brainguard.schemas.daily_summary import AppUsageSnapshot, DailySummaryData
from brainguard.schemas.monitoring import AppSettingItem
from brainguard.schemas.notifications import NotificationHistoryItem
from brainguard.schemas.usage import UsageRecord
from brainguard.services.dedup import canonicalize

logger = logging.getLogger(__name__)


def encode_apps(apps: Iterable[AppUsageSnapshot]) -> str:
    # 같은 입력이면 항상 같은 문자열 (backfill 재실행 비교용)
    return json.dumps(
        [app.model_dump() for app in apps],
        sort_keys=True,
        separators=(",", ":"),
    )


def decode_apps(raw: Optional[str]) -> List[AppUsageSnapshot]:
    try:
        parsed = json.loads(raw or "[]")
        if not isinstance(parsed, list):
            raise ValueError("apps blob is not a list")
        return [AppUsageSnapshot(**item) for item in parsed]
    except (ValueError, TypeError) as e:
        raise MalformedPersistedData(str(e)) from e


class UsageStore:
    """Persistent store for raw usage, daily summaries, settings and meta rows.

    Every call opens its own session. SQLAlchemy failures are rolled back and
    re-raised as TransientStoreError so callers never see a half-written state.
    """

    def __init__(self, session_factory):
        self._session_factory = session_factory
        # upsert는 읽고-비교-쓰기라서 프로세스 안에서 직렬화
        self._write_lock = threading.Lock()

    @contextmanager
    def session(self):
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise TransientStoreError(str(e)) from e
        finally:
            db.close()

    # ---------- meta ----------

    def get_meta(self, key: str) -> Optional[str]:
        with self.session() as db:
            row = db.get(Meta, key)
            return row.value if row else None

    def set_meta(self, key: str, value: str) -> None:
        with self.session() as db:
            row = db.get(Meta, key)
            if row is None:
                db.add(Meta(key=key, value=value))
            else:
                row.value = value

    def get_meta_int(self, key: str, default: int = 0) -> int:
        raw = self.get_meta(key)
        if not raw:
            return default
        try:
            return int(raw)
        except ValueError:
            logger.warning("Ignoring malformed integer meta %s=%r", key, raw)
            return default

    def get_meta_json_list(self, key: str) -> List[str]:
        raw = self.get_meta(key)
        if not raw:
            return []
        try:
            parsed = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring malformed json meta %s", key)
            return []
        if not isinstance(parsed, list):
            logger.warning("Ignoring non-list json meta %s", key)
            return []
        return [str(item) for item in parsed]

    # ---------- raw usage ----------

    def upsert_daily_usage(self, usage_date: date, records: Iterable[UsageRecord]) -> int:
        """Max-wins upsert keyed by (date, package_name). Returns rows changed."""
        changed = 0
        with self._write_lock, self.session() as db:
            for record in canonicalize(records):
                row = db.query(DailyUsage).filter(
                    DailyUsage.date == usage_date,
                    DailyUsage.package_name == record.package_name,
                ).first()

                if row is None:
                    db.add(DailyUsage(
                        date=usage_date,
                        package_name=record.package_name,
                        app_name=record.app_name,
                        total_ms=record.total_ms,
                    ))
                    changed += 1
                elif record.total_ms > row.total_ms:
                    row.total_ms = record.total_ms
                    row.app_name = record.app_name
                    changed += 1
                # 같거나 작은 값은 무시 (누적값은 하루 안에서 줄지 않음)
        return changed

    def get_daily_usage(self, usage_date: date) -> List[UsageRecord]:
        with self.session() as db:
            rows = db.query(DailyUsage).filter(
                DailyUsage.date == usage_date
            ).order_by(DailyUsage.total_ms.desc(), DailyUsage.id.asc()).all()
            return [UsageRecord.model_validate(row) for row in rows]

    def dates_with_usage(self, since: date, until: date) -> List[date]:
        with self.session() as db:
            rows = db.query(DailyUsage.date).filter(
                DailyUsage.date >= since,
                DailyUsage.date <= until,
            ).distinct().order_by(DailyUsage.date.asc()).all()
            return [row[0] for row in rows]

    def cleanup_duplicate_entries(self, usage_date: Optional[date] = None) -> int:
        """Keep only the max total_ms row per (date, package_name).

        Ties keep the most recently written row. Returns number of rows deleted.
        """
        removed = 0
        with self._write_lock, self.session() as db:
            query = db.query(DailyUsage)
            if usage_date is not None:
                query = query.filter(DailyUsage.date == usage_date)

            dupes = query.with_entities(DailyUsage.date, DailyUsage.package_name).group_by(
                DailyUsage.date, DailyUsage.package_name
            ).having(func.count(DailyUsage.id) > 1).all()

            for d, pkg in dupes:
                rows = db.query(DailyUsage).filter(
                    DailyUsage.date == d,
                    DailyUsage.package_name == pkg,
                ).order_by(DailyUsage.total_ms.desc(), DailyUsage.id.desc()).all()

                for extra in rows[1:]:
                    db.delete(extra)
                    removed += 1

        if removed:
            logger.info("Removed %d duplicate usage rows", removed)
        return removed

    # ---------- daily summary ----------

    def get_daily_summary(self, summary_date: date) -> Optional[DailySummaryData]:
        with self.session() as db:
            row = db.get(DailySummary, summary_date)
            if row is None:
                return None
            try:
                apps = decode_apps(row.apps_json)
            except MalformedPersistedData:
                logger.warning("Malformed summary blob for %s, treating as absent", summary_date)
                return None
            return DailySummaryData(
                date=row.date,
                total_screen_time_ms=row.total_screen_time_ms,
                score=row.score,
                apps=apps,
                created_at=row.created_at,
            )

    def save_daily_summary(self, summary: DailySummaryData, force: bool = False) -> bool:
        """Persist a summary. Existing rows are only replaced when ``force``."""
        with self._write_lock, self.session() as db:
            row = db.get(DailySummary, summary.date)
            if row is not None and not force:
                return False

            if row is None:
                row = DailySummary(date=summary.date)
                db.add(row)

            row.total_screen_time_ms = summary.total_screen_time_ms
            row.score = summary.score
            row.apps_json = encode_apps(summary.apps)
            return True

    def get_summaries_since(self, since: date) -> List[DailySummaryData]:
        with self.session() as db:
            rows = db.query(DailySummary).filter(
                DailySummary.date >= since
            ).order_by(DailySummary.date.asc()).all()
            dates = [row.date for row in rows]

        summaries = []
        for d in dates:
            summary = self.get_daily_summary(d)
            if summary is not None:
                summaries.append(summary)
        return summaries

    # ---------- app settings ----------

    def get_app_settings(self) -> List[AppSettingItem]:
        with self.session() as db:
            rows = db.query(AppSetting).order_by(AppSetting.app_name).all()
            return [AppSettingItem.model_validate(row) for row in rows]

    def update_app_setting(self, package_name: str, app_name: str,
                           monitored: bool = True, daily_limit_ms: Optional[int] = None) -> None:
        with self.session() as db:
            row = db.get(AppSetting, package_name)
            if row is None:
                row = AppSetting(package_name=package_name, app_name=app_name)
                db.add(row)
            row.app_name = app_name
            row.monitored = monitored
            if daily_limit_ms is not None:
                row.daily_limit_ms = daily_limit_ms

    def set_monitored_packages(self, packages: Iterable[str], names: Dict[str, str]) -> None:
        """Replace the monitored flag on every settings row in one transaction."""
        wanted = set(packages)
        with self.session() as db:
            for row in db.query(AppSetting).all():
                row.monitored = row.package_name in wanted
            existing = {row.package_name for row in db.query(AppSetting.package_name).all()}
            for pkg in wanted - existing:
                db.add(AppSetting(package_name=pkg, app_name=names.get(pkg, pkg), monitored=True))

    # ---------- notification history ----------

    def save_notification_history(self, package_name: str, intensity: str,
                                  sent_at: int, history_date: date) -> None:
        with self.session() as db:
            db.add(NotificationHistory(
                package_name=package_name,
                intensity=intensity,
                sent_at=sent_at,
                date=history_date,
            ))

    def get_notification_history(self, history_date: date) -> List[NotificationHistoryItem]:
        with self.session() as db:
            rows = db.query(NotificationHistory).filter(
                NotificationHistory.date == history_date
            ).order_by(NotificationHistory.sent_at.desc()).all()
            return [NotificationHistoryItem.model_validate(row) for row in rows]

    def delete_notification_history_before(self, cutoff: date) -> int:
        with self.session() as db:
            return db.query(NotificationHistory).filter(
                NotificationHistory.date < cutoff
            ).delete(synchronize_session=False)
