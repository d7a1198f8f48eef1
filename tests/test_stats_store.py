"""Tests for :mod:`tunefind.stats_store`."""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path

import pytest

from tunefind.stats_store import MemoryStatsStore, ScanStats, SqliteStatsStore


def test_record_keeps_total_equal_to_outcomes() -> None:
    stats = ScanStats()
    for success in (True, False, True, True):
        stats = stats.record(success)

    assert (stats.total, stats.successful, stats.failed) == (4, 3, 1)
    assert stats.is_consistent()
    assert stats.success_rate == 75


def test_record_returns_a_new_object() -> None:
    stats = ScanStats()
    updated = stats.record(False)

    assert stats.total == 0
    assert updated.failed == 1


@pytest.mark.parametrize(
    "stats,rate",
    [(ScanStats(), 0), (ScanStats(total=3, successful=2, failed=1), 67), (ScanStats(total=1, successful=1), 100)],
)
def test_success_rate_is_rounded_percentage(stats: ScanStats, rate: int) -> None:
    assert stats.success_rate == rate


def test_sqlite_store_round_trip(tmp_path: Path) -> None:
    path = str(tmp_path / "stats.sqlite3")
    stats = ScanStats(total=5, successful=3, failed=2)

    SqliteStatsStore(path).save(stats)

    assert SqliteStatsStore(path).load() == stats


def test_sqlite_store_starts_empty(tmp_path: Path) -> None:
    assert SqliteStatsStore(str(tmp_path / "fresh.sqlite3")).load() == ScanStats()


def test_sqlite_store_persists_plain_counter_object(tmp_path: Path) -> None:
    path = str(tmp_path / "stats.sqlite3")
    SqliteStatsStore(path).save(ScanStats(total=2, successful=1, failed=1))

    conn = sqlite3.connect(path)
    try:
        (value,) = conn.execute("SELECT value FROM kv_store WHERE key='scanStats'").fetchone()
    finally:
        conn.close()
    assert json.loads(value) == {"total": 2, "successful": 1, "failed": 1}


@pytest.mark.parametrize("raw", ["{not json", '{"total": 3, "successful": 1, "failed": 1}', '{"total": "x"}'])
def test_sqlite_store_discards_unreadable_entries(tmp_path: Path, raw: str) -> None:
    path = str(tmp_path / "stats.sqlite3")
    store = SqliteStatsStore(path)
    store.save(ScanStats())
    conn = sqlite3.connect(path)
    try:
        conn.execute("UPDATE kv_store SET value=? WHERE key='scanStats'", (raw,))
        conn.commit()
    finally:
        conn.close()

    assert store.load() == ScanStats()


def test_memory_store_hands_out_copies() -> None:
    store = MemoryStatsStore(ScanStats(total=1, successful=1))
    loaded = store.load()
    loaded.total = 99

    assert store.load().total == 1
