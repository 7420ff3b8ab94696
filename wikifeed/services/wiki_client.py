from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from urllib.parse import quote

import requests

from wikifeed.errors import TransientFetchError
from wikifeed.models.schemas import ItemDetail, MediaRef, RankedItem, TopPageviews
from wikifeed.services.article_filter import filter_special
from wikifeed.services.projects import WIKIMEDIA_URL, api_url
from wikifeed.services.rate_limit import TokenBucket

USER_AGENT = "wikifeed/0.1 (+local)"

TOP_ARTICLES = (
    WIKIMEDIA_URL
    + "/metrics/pageviews/top/{project}.wikipedia.org/all-access/{year:04d}/{month:02d}/{day:02d}"
)


def create_session(user_agent: str = USER_AGENT) -> requests.Session:
    session = requests.Session()
    session.headers.update({"User-Agent": user_agent})
    return session


def ranking_day(now: datetime | None = None) -> datetime:
    """Yesterday, UTC, truncated to midnight. Today's ranking is not published yet."""
    now = now or datetime.now(timezone.utc)
    day = now.astimezone(timezone.utc) - timedelta(days=1)
    return day.replace(hour=0, minute=0, second=0, microsecond=0)


class WikiClient:
    """
    Reads rankings and article detail from the Wikimedia REST API.
    All requests, from any thread, share one token bucket.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        limiter: TokenBucket | None = None,
        timeout: int = 20,
        skip_article: Callable[[str], bool] | None = None,
    ) -> None:
        self.session = session or create_session()
        self.limiter = limiter or TokenBucket(rate=75, burst=5)
        self.timeout = timeout
        self.skip_article = skip_article

    def _get_json(self, url: str, cancel: threading.Event | None = None) -> Any:
        self.limiter.acquire(cancel)
        try:
            r = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransientFetchError(f"request to {url} failed: {e}", url=url) from e

        if r.status_code != 200:
            body = (r.text or "")[:500]
            raise TransientFetchError(
                f"unexpected status code {r.status_code}: resp {body}",
                url=url,
                status_code=r.status_code,
            )
        try:
            return r.json()
        except ValueError as e:
            raise TransientFetchError(f"could not decode {url}: {e}", url=url) from e

    def fetch_top_articles(
        self,
        project: str,
        day: datetime | None = None,
        cancel: threading.Event | None = None,
    ) -> TopPageviews:
        day = day or ranking_day()
        url = TOP_ARTICLES.format(project=project, year=day.year, month=day.month, day=day.day)
        data = self._get_json(url, cancel)

        try:
            items = (data or {}).get("items") or []
            first = items[0] if items else None
            if first is None:
                raise TransientFetchError("no items found in response", url=url)
            top = TopPageviews(
                project=project,
                access=str(first.get("access", "")),
                year=str(first.get("year", "")),
                month=str(first.get("month", "")),
                day=str(first.get("day", "")),
                articles=[RankedItem.model_validate(a) for a in first.get("articles") or []],
            )
        except (ValueError, TypeError, AttributeError, KeyError) as e:
            raise TransientFetchError(f"malformed ranking payload: {e}", url=url) from e

        if self.skip_article is not None:
            top.articles = filter_special(top.articles, self.skip_article)
        return top

    def _summary_url(self, project: str, article: str) -> str:
        return f"{api_url(project)}/page/summary/{quote(article, safe='')}"

    def get_article_summary(
        self, project: str, article: str, cancel: threading.Event | None = None
    ) -> dict:
        url = self._summary_url(project, article)
        data = self._get_json(url, cancel)
        if not isinstance(data, dict):
            raise TransientFetchError("summary payload is not an object", url=url)
        return data

    def get_article_media(
        self, project: str, article: str, cancel: threading.Event | None = None
    ) -> list[MediaRef]:
        url = f"{api_url(project)}/page/media/{quote(article, safe='')}"
        data = self._get_json(url, cancel)

        media: list[MediaRef] = []
        try:
            for it in (data or {}).get("items") or []:
                original = (it.get("original") or {}).get("source")
                if not original:
                    continue
                thumbnail = (it.get("thumbnail") or {}).get("source") or ""
                media.append(MediaRef(original_url=original, thumbnail_url=thumbnail))
        except (ValueError, TypeError, AttributeError) as e:
            raise TransientFetchError(f"malformed media payload: {e}", url=url) from e
        return media

    def get_article(
        self, project: str, article: str, cancel: threading.Event | None = None
    ) -> ItemDetail:
        summary = self.get_article_summary(project, article, cancel)
        media = self.get_article_media(project, article, cancel)

        try:
            titles = summary.get("titles") or {}
            urls = (summary.get("content_urls") or {}).get("desktop") or {}
            return ItemDetail(
                article=article,
                title=titles.get("normalized") or summary.get("title") or article,
                extract=summary.get("extract") or "",
                media=media,
                page_url=urls.get("page") or "",
                # when we saw it, not the page's revision time
                retrieved=datetime.now(timezone.utc),
            )
        except (ValueError, TypeError, AttributeError) as e:
            raise TransientFetchError(
                f"malformed summary payload: {e}", url=self._summary_url(project, article)
            ) from e
