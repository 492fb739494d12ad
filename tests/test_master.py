from __future__ import annotations

import pytest

from fish_report.services.master import (
    ApiMasterSource, CsvMasterSource, MasterCache, parse_master_csv,
    STATUS_ERROR, STATUS_SUCCESS,
)
from fish_report.settings import ConfigError
from fish_report.store import MASTER_KEY, MASTER_TS_KEY

from conftest import MASTER_CSV_URL


class Clock:
    def __init__(self, t: float = 1_700_000_000.0):
        self.t = t

    def __call__(self) -> float:
        return self.t


def test_parse_uses_second_row_as_keys():
    text = "factory,person\nfactory,person\n羽野,佐藤\n大道,鈴木\n"
    assert parse_master_csv(text) == {"factory": ["羽野", "大道"], "person": ["佐藤", "鈴木"]}


def test_parse_skips_blank_cells_and_rows():
    text = "a,b,c\r\nspecies,,origin\r\n\r\nサバ, ,長崎\r\n , ,福岡\r\n"
    assert parse_master_csv(text) == {"species": ["サバ"], "origin": ["長崎", "福岡"]}


def test_parse_short_rows_and_headers_only():
    assert parse_master_csv("") == {}
    assert parse_master_csv("label only\n") == {}
    assert parse_master_csv("x,y\nfactory,person\n羽野\n") == {"factory": ["羽野"], "person": []}


def test_cache_serves_fresh_value_and_refetches_after_ttl(store, session, backend):
    clock = Clock()
    source = CsvMasterSource(MASTER_CSV_URL, session=session)
    cache = MasterCache(store, source, ttl_seconds=600, clock=clock)

    first = cache.load()
    assert backend.csv_fetches == 1
    assert first["species"] == ["サバ", "アジ"]

    clock.t += 9 * 60
    # a fresh instance reads the persisted entry, no network
    again = MasterCache(store, source, ttl_seconds=600, clock=clock)
    assert again.load() == first
    assert backend.csv_fetches == 1
    assert again.status == STATUS_SUCCESS

    clock.t += 2 * 60
    backend.csv_text = "x\nfactory\n原田\n"
    assert again.load() == {"factory": ["原田"]}
    assert backend.csv_fetches == 2
    assert store.get(MASTER_KEY)["fetchedAt"] == clock.t


def test_reload_failure_keeps_previous_value(store, session, backend):
    clock = Clock()
    cache = MasterCache(store, CsvMasterSource(MASTER_CSV_URL, session=session), clock=clock)
    before = cache.load()

    backend.offline = True
    assert cache.reload() == before
    assert cache.status == STATUS_ERROR
    assert "unreachable" in cache.error
    assert cache.options("factory") == ["羽野", "大道"]


def test_missing_csv_url_reports_error(store):
    cache = MasterCache(store, CsvMasterSource(None))
    assert cache.load() == {}
    assert cache.status == STATUS_ERROR
    assert "MASTER_CSV_URL" in cache.error

    with pytest.raises(ConfigError):
        CsvMasterSource(None).fetch()


def test_legacy_two_key_cache_is_read(store, session, backend):
    clock = Clock()
    store.set(MASTER_KEY, {"factory": ["大道"]})
    store.set(MASTER_TS_KEY, int((clock.t - 60) * 1000))
    cache = MasterCache(store, CsvMasterSource(MASTER_CSV_URL, session=session), clock=clock)

    assert cache.load() == {"factory": ["大道"]}
    assert backend.csv_fetches == 0


def test_api_source_reads_master_action(store, client, backend):
    backend.master = {"factory": ["羽野", " "], "person": ["佐藤"]}
    cache = MasterCache(store, ApiMasterSource(client))
    assert cache.load() == {"factory": ["羽野"], "person": ["佐藤"]}
    assert backend.calls[-1]["action"] == "master"


def test_feed_without_categories_keeps_previous_value(store, session, backend):
    clock = Clock()
    cache = MasterCache(store, CsvMasterSource(MASTER_CSV_URL, session=session), clock=clock)
    before = cache.reload()
    fetched_at = store.get(MASTER_KEY)["fetchedAt"]

    clock.t += 60
    backend.csv_text = "<html>login</html>"
    assert cache.reload() == before
    assert cache.status == STATUS_ERROR
    assert "no categories" in cache.error
    assert store.get(MASTER_KEY) == {"data": before, "fetchedAt": fetched_at}
