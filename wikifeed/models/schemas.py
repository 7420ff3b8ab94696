from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class RankedItem(BaseModel):
    article: str
    views: int
    rank: int


class TopPageviews(BaseModel):
    project: str
    access: str = ""
    year: str = ""
    month: str = ""
    day: str = ""
    articles: list[RankedItem] = Field(default_factory=list)


class MediaRef(BaseModel):
    original_url: str
    thumbnail_url: str = ""


class ItemDetail(BaseModel):
    article: str
    title: str = ""
    extract: str = ""
    media: list[MediaRef] = Field(default_factory=list)
    page_url: str = ""
    retrieved: datetime
