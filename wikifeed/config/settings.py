from __future__ import annotations

from datetime import timedelta
from typing import Callable
import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

from wikifeed.services.article_filter import SpecialPageFilter
from wikifeed.services.projects import PROJECTS, is_project

load_dotenv()

SPECIAL_PAGE_PREFIXES = ["Special:", "Wikipedia:"]
SPECIAL_PAGE_TITLES = ["Main_Page"]
SPECIAL_PAGE_MARKERS = ["Pagina principale", "Wikipédia:Accueil principal"]

def _to_int(v: str | None, default: int) -> int:
    if v is None or not v.strip():
        return default
    return int(v.strip())

def _to_list(v: str | None, default: list[str]) -> list[str]:
    if v is None or not v.strip():
        return list(default)
    return [x.strip() for x in v.split(",") if x.strip()]

def _to_float(v: str | None, default: float) -> float:
    if v is None or not v.strip():
        return default
    return float(v.strip())

def _check_projects(v: list[str]) -> list[str]:
    unknown = [p for p in v if not is_project(p)]
    if unknown:
        raise ValueError(f"unknown projects: {', '.join(unknown)}")
    return v



class Settings(BaseModel):
    database_url: str = Field(default="sqlite:///data/wikifeed.db")

    log_level: str = Field(default="INFO")
    log_file: str = Field(default="logs/crawl.log")
    lock_file: str = Field(default="data/crawl.lock")

    projects: list[str] = Field(default_factory=lambda: list(PROJECTS))

    retention_window_hours: int = Field(default=48, ge=1)
    write_concurrency: int = Field(default=10, ge=1)
    fetch_workers: int = Field(default=32, ge=1)

    rate_limit_rps: float = Field(default=75.0, gt=0)
    rate_limit_burst: int = Field(default=5, ge=1)

    http_timeout: int = Field(default=20)
    user_agent: str = Field(default="wikifeed/0.1 (+local)")

    special_page_prefixes: list[str] = Field(default_factory=lambda: list(SPECIAL_PAGE_PREFIXES))
    special_page_titles: list[str] = Field(default_factory=lambda: list(SPECIAL_PAGE_TITLES))
    special_page_markers: list[str] = Field(default_factory=lambda: list(SPECIAL_PAGE_MARKERS))

    @field_validator("projects")
    @classmethod
    def _known_projects(cls, v: list[str]) -> list[str]:
        return _check_projects(v)


class CrawlConfig(BaseModel):
    """
    Everything the crawler needs, passed in explicitly at construction.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    projects: list[str] = Field(default_factory=lambda: list(PROJECTS))
    retention_window: timedelta = Field(default=timedelta(hours=48))
    write_concurrency: int = Field(default=10, ge=1)
    fetch_workers: int = Field(default=32, ge=1)
    rate_limit_rps: float = Field(default=75.0, gt=0)
    rate_limit_burst: int = Field(default=5, ge=1)
    skip_article: Callable[[str], bool] | None = None

    @field_validator("projects")
    @classmethod
    def _known_projects(cls, v: list[str]) -> list[str]:
        return _check_projects(v)

    @classmethod
    def from_settings(cls, s: Settings) -> "CrawlConfig":
        return cls(
            projects=list(s.projects),
            retention_window=timedelta(hours=s.retention_window_hours),
            write_concurrency=s.write_concurrency,
            fetch_workers=s.fetch_workers,
            rate_limit_rps=s.rate_limit_rps,
            rate_limit_burst=s.rate_limit_burst,
            skip_article=SpecialPageFilter.from_settings(s),
        )


_settings: Settings | None = None

def get_settings() -> Settings:
    global _settings
    if _settings is not None:
        return _settings

    _settings = Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///data/wikifeed.db"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_file=os.getenv("LOG_FILE", "logs/crawl.log"),
        lock_file=os.getenv("LOCK_FILE", "data/crawl.lock"),
        projects=_to_list(os.getenv("WIKIFEED_PROJECTS"), PROJECTS),
        retention_window_hours=_to_int(os.getenv("RETENTION_WINDOW_HOURS"), 48),
        write_concurrency=_to_int(os.getenv("WRITE_CONCURRENCY"), 10),
        fetch_workers=_to_int(os.getenv("FETCH_WORKERS"), 32),
        rate_limit_rps=_to_float(os.getenv("RATE_LIMIT_RPS"), 75.0),
        rate_limit_burst=_to_int(os.getenv("RATE_LIMIT_BURST"), 5),
        http_timeout=_to_int(os.getenv("HTTP_TIMEOUT"), 20),
        user_agent=os.getenv("WIKIFEED_USER_AGENT", "wikifeed/0.1 (+local)"),
        special_page_prefixes=_to_list(
            os.getenv("SPECIAL_PAGE_PREFIXES"), SPECIAL_PAGE_PREFIXES
        ),
        special_page_titles=_to_list(
            os.getenv("SPECIAL_PAGE_TITLES"), SPECIAL_PAGE_TITLES
        ),
        special_page_markers=_to_list(
            os.getenv("SPECIAL_PAGE_MARKERS"), SPECIAL_PAGE_MARKERS
        ),
    )
    return _settings


def reset_settings() -> None:
    global _settings
    _settings = None
