from __future__ import annotations

import threading
import time
from datetime import datetime, timezone

import pytest

from wikifeed.config import settings as settings_module
from wikifeed.db import database
from wikifeed.db.database import init_db, make_engine
from wikifeed.errors import StoreWriteError, TransientFetchError
from wikifeed.models.schemas import ItemDetail, MediaRef, RankedItem, TopPageviews

T0 = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'env.db'}")
    monkeypatch.setenv("LOG_FILE", str(tmp_path / "logs" / "crawl.log"))
    monkeypatch.setenv("LOCK_FILE", str(tmp_path / "crawl.lock"))
    monkeypatch.delenv("WIKIFEED_PROJECTS", raising=False)
    settings_module.reset_settings()
    monkeypatch.setattr(database, "_engine", None)
    yield
    settings_module.reset_settings()


@pytest.fixture
def engine(tmp_path):
    eng = make_engine(f"sqlite:///{tmp_path / 'wikifeed.db'}")
    init_db(eng)
    yield eng
    eng.dispose()


def ranked(article: str, views: int, rank: int = 1) -> RankedItem:
    return RankedItem(article=article, views=views, rank=rank)


def detail(
    article: str,
    extract: str = "An abstract.",
    media: int = 1,
    retrieved: datetime = T0,
) -> ItemDetail:
    return ItemDetail(
        article=article,
        title=article.replace("_", " "),
        extract=extract,
        media=[
            MediaRef(
                original_url=f"https://upload.example/{article}/{i}.jpg",
                thumbnail_url=f"https://upload.example/{article}/{i}_thumb.jpg",
            )
            for i in range(media)
        ],
        page_url=f"https://en.wikipedia.org/wiki/{article}",
        retrieved=retrieved,
    )


class FakeWiki:
    def __init__(self, rankings=None, details=None, fail_ranking=(), fail_detail=()):
        self.rankings = rankings or {}
        self.details = details or {}
        self.fail_ranking = set(fail_ranking)
        self.fail_detail = set(fail_detail)
        self.ranking_calls: list[str] = []
        self.detail_calls: list[str] = []
        self._lock = threading.Lock()

    def fetch_top_articles(self, project):
        self.ranking_calls.append(project)
        if project in self.fail_ranking:
            raise TransientFetchError("unexpected status code 500: resp boom", status_code=500)
        return TopPageviews(project=project, articles=list(self.rankings.get(project, [])))

    def get_article(self, project, article, cancel=None):
        with self._lock:
            self.detail_calls.append(article)
        if article in self.fail_detail:
            raise TransientFetchError(f"unexpected status code 404 for {article}", status_code=404)
        return self.details[article]


class FakeStore:
    def __init__(self, fail_on: int | None = None, delay: float = 0.0):
        self.fail_on = fail_on
        self.delay = delay
        self.rows: dict = {}
        self.deletes: list = []
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def upsert_article(self, article):
        with self._lock:
            self.calls += 1
            n = self.calls
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.fail_on is not None and n == self.fail_on:
                raise StoreWriteError(f"write {n} failed")
            time.sleep(self.delay)
            with self._lock:
                self.rows[(article.project, article.article)] = article
        finally:
            with self._lock:
                self.in_flight -= 1

    def delete_old_articles(self, project, before):
        self.deletes.append((project, before))
        stale = [k for k, a in self.rows.items() if k[0] == project and a.retrieved < before]
        for k in stale:
            del self.rows[k]
        return len(stale)
