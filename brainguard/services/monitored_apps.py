# brainguard/services/monitored_apps.py

import json
import logging
from typing import Set

from brainguard.exceptions import TransientStoreError
from brainguard.utils.constants import DEFAULT_MONITORED_APPS, META_MONITORED_APPS

logger = logging.getLogger(__name__)


def resolve_monitored_packages(store, strict: bool = False) -> Set[str]:
    """Monitored set: app_settings first, meta list only when that is empty.

    Every consumer (engine, aggregator, backfill) goes through here so both
    sources always mean the same thing downstream. With ``strict`` a store
    failure is raised instead of being read as "nothing monitored", so callers
    that act on the result (tracker sync, summaries) can keep what they have.
    """
    settings_error = None
    try:
        monitored = {s.package_name for s in store.get_app_settings() if s.monitored}
        if monitored:
            return monitored
    except TransientStoreError as e:
        logger.warning(f"Failed to load monitored apps from app_settings: {e}")
        settings_error = e

    try:
        fallback = set(store.get_meta_json_list(META_MONITORED_APPS))
    except TransientStoreError as e:
        logger.warning(f"Failed to load monitored apps from meta: {e}")
        if strict:
            raise
        return set()

    # app_settings를 못 읽었는데 meta도 비어 있으면 판단 불가
    if strict and settings_error is not None and not fallback:
        raise settings_error
    return fallback


def ensure_default_monitored_apps(store) -> Set[str]:
    # 첫 실행: 어느 쪽에도 없으면 기본 목록을 meta에 기록
    monitored = resolve_monitored_packages(store)
    if monitored:
        return monitored

    if store.get_meta(META_MONITORED_APPS) is None:
        logger.info("No monitored apps found, using defaults")
        store.set_meta(META_MONITORED_APPS, json.dumps(DEFAULT_MONITORED_APPS))
        return set(DEFAULT_MONITORED_APPS)

    return monitored
