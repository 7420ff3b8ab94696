from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import CancelledError, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Iterator, Protocol

from wikifeed.config.settings import CrawlConfig
from wikifeed.db.models import Article
from wikifeed.errors import CrawlCancelled, WikifeedError
from wikifeed.models.schemas import ItemDetail, RankedItem, TopPageviews
from wikifeed.services.article_filter import is_complete

logger = logging.getLogger(__name__)

# how often a blocked admission re-checks the cancellation token
_ADMIT_POLL_SECONDS = 0.05


class Store(Protocol):
    def upsert_article(self, article: Article) -> None: ...

    def delete_old_articles(self, project: str, before: datetime) -> int: ...


class Wiki(Protocol):
    def fetch_top_articles(self, project: str) -> TopPageviews: ...

    def get_article(
        self, project: str, article: str, cancel: threading.Event | None = None
    ) -> ItemDetail: ...


@dataclass
class ProjectResult:
    project: str
    ranked: int
    fetched: int
    written: int
    deleted: int
    duration: float


def make_article(project: str, views: int, detail: ItemDetail) -> Article:
    article = Article(
        project=project,
        article=detail.article,
        title=detail.title,
        abstract=detail.extract,
        daily_views=views,
        article_url=detail.page_url,
        retrieved=detail.retrieved,
    )
    if detail.media:
        article.image_url = detail.media[0].original_url
        article.thumbnail_url = detail.media[0].thumbnail_url
    return article


def retention_cutoff(now: datetime, window: timedelta) -> datetime:
    cutoff = (now - window).astimezone(timezone.utc)
    return cutoff.replace(hour=0, minute=0, second=0, microsecond=0)


def report_fetch_failure(article: str, err: Exception) -> None:
    logger.warning("failed to retrieve %r: %s", article, err)


class Crawler:
    """
    Refreshes the stored top articles, one project at a time.

    Per project: fetch the ranking, fetch detail for every ranked article in
    parallel (paced by the client's shared token bucket), drop incomplete
    detail, upsert through a bounded admission gate, then delete rows that
    have aged out of the retention window.
    """

    def __init__(
        self,
        store: Store,
        wiki: Wiki,
        config: CrawlConfig | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.wiki = wiki
        self.config = config or CrawlConfig()
        self._now = now or (lambda: datetime.now(timezone.utc))

    def crawl_once(self) -> list[ProjectResult]:
        """
        Crawl every configured project in order. The first failing project
        stops the crawl; later projects are not attempted.
        """
        results: list[ProjectResult] = []
        for project in self.config.projects:
            results.append(self.crawl_project_once(project))
        return results

    def crawl_project_once(self, project: str) -> ProjectResult:
        start = time.monotonic()
        try:
            top = self.wiki.fetch_top_articles(project)
            fetched, written = self._fetch_and_write(project, top.articles)
            deleted = self.sweep(project)
        except Exception as e:
            logger.error(
                "crawl of %s failed after %.2fs: %s", project, time.monotonic() - start, e
            )
            raise

        result = ProjectResult(
            project=project,
            ranked=len(top.articles),
            fetched=fetched,
            written=written,
            deleted=deleted,
            duration=time.monotonic() - start,
        )
        logger.info(
            "crawl of %s took %.2fs: ranked=%d fetched=%d written=%d deleted=%d",
            project,
            result.duration,
            result.ranked,
            result.fetched,
            result.written,
            result.deleted,
        )
        return result

    def _fetch_and_write(self, project: str, ranked: list[RankedItem]) -> tuple[int, int]:
        cancel = threading.Event()
        fetched = 0

        def counted() -> Iterator[tuple[RankedItem, ItemDetail]]:
            nonlocal fetched
            pairs = self.fetch_details(project, ranked, cancel)
            try:
                for pair in pairs:
                    fetched += 1
                    yield pair
            finally:
                pairs.close()

        written = self.write_articles(project, counted(), cancel)
        return fetched, written

    def fetch_details(
        self,
        project: str,
        ranked: list[RankedItem],
        cancel: threading.Event | None = None,
    ) -> Iterator[tuple[RankedItem, ItemDetail]]:
        """
        Yield (ranked, detail) pairs as fetches complete, in no particular
        order. Items whose fetch fails are logged and skipped.
        """
        cancel = cancel or threading.Event()
        if not ranked:
            return

        def fetch_one(item: RankedItem) -> ItemDetail:
            if cancel.is_set():
                raise CrawlCancelled(f"fetch of {item.article!r} not started")
            return self.wiki.get_article(project, item.article, cancel=cancel)

        executor = ThreadPoolExecutor(
            max_workers=min(self.config.fetch_workers, len(ranked)),
            thread_name_prefix=f"fetch-{project}",
        )
        futures = {executor.submit(fetch_one, item): item for item in ranked}
        try:
            for future in as_completed(futures):
                item = futures[future]
                try:
                    detail = future.result()
                except (CancelledError, CrawlCancelled):
                    continue
                except WikifeedError as e:
                    report_fetch_failure(item.article, e)
                    continue
                yield item, detail
        finally:
            for future in futures:
                future.cancel()
            executor.shutdown(wait=True)

    def write_articles(
        self,
        project: str,
        pairs: Iterable[tuple[RankedItem, ItemDetail]],
        cancel: threading.Event | None = None,
    ) -> int:
        """
        Upsert complete articles with at most `write_concurrency` writes in
        flight. The first failure sets `cancel`, stops admission, and is
        raised once in-flight writes settle. Returns the number of rows
        written.
        """
        cancel = cancel or threading.Event()
        limit = self.config.write_concurrency
        gate = threading.BoundedSemaphore(limit)
        lock = threading.Lock()
        first_error: list[Exception] = []
        written = 0

        def write(article: Article) -> None:
            nonlocal written
            try:
                if cancel.is_set():
                    raise CrawlCancelled(f"write of {article.article!r} not started")
                self.store.upsert_article(article)
                with lock:
                    written += 1
            except Exception as e:
                with lock:
                    if not first_error:
                        first_error.append(e)
                cancel.set()
            finally:
                gate.release()

        executor = ThreadPoolExecutor(max_workers=limit, thread_name_prefix=f"write-{project}")
        try:
            for ranked, detail in pairs:
                if not is_complete(detail):
                    continue
                if not self._admit(gate, cancel):
                    break
                executor.submit(write, make_article(project, ranked.views, detail))
        finally:
            close = getattr(pairs, "close", None)
            if close is not None:
                close()
            executor.shutdown(wait=True)

        if first_error:
            raise first_error[0]
        if cancel.is_set():
            raise CrawlCancelled(f"writes for {project} cancelled")
        return written

    @staticmethod
    def _admit(gate: threading.BoundedSemaphore, cancel: threading.Event) -> bool:
        while not cancel.is_set():
            if gate.acquire(timeout=_ADMIT_POLL_SECONDS):
                if cancel.is_set():
                    gate.release()
                    return False
                return True
        return False

    def sweep(self, project: str) -> int:
        cutoff = retention_cutoff(self._now(), self.config.retention_window)
        deleted = self.store.delete_old_articles(project, cutoff)
        logger.info("deleted %d articles for %s retrieved before %s", deleted, project, cutoff)
        return deleted
