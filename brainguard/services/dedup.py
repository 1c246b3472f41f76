"""Canonicalization of duplicate per-day usage rows."""

from typing import Iterable, List

from brainguard.schemas.usage import UsageRecord


def canonicalize(records: Iterable[UsageRecord]) -> List[UsageRecord]:
    """Collapse records to one per (date, package_name), keeping the max total.

    Cumulative counters never decrease within a day, so the largest value ever
    observed is the canonical one. On ties the later record wins, which for rows
    read in insertion order means the most recently written.
    """
    best = {}
    for record in records:
        key = (record.date, record.package_name)
        current = best.get(key)
        if current is None or record.total_ms >= current.total_ms:
            best[key] = record
    return list(best.values())
