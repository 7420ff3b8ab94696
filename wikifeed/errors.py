from __future__ import annotations


class WikifeedError(Exception):
    pass


class TransientFetchError(WikifeedError):
    """A ranking or detail request failed; the next scheduled pass may succeed."""

    def __init__(self, message: str, url: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class StoreWriteError(WikifeedError):
    pass


class CrawlCancelled(WikifeedError):
    pass
