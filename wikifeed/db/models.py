from __future__ import annotations

from datetime import datetime
from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column



class Base(DeclarativeBase):
    pass


class Article(Base):
    __tablename__ = "articles"

    # one row per (project, article); crawls overwrite in place
    project: Mapped[str] = mapped_column(String(16), primary_key=True)
    article: Mapped[str] = mapped_column(String(512), primary_key=True)

    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    thumbnail_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    abstract: Mapped[str | None] = mapped_column(Text, nullable=True)
    article_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    daily_views: Mapped[int] = mapped_column(Integer, nullable=False)
    retrieved: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "project": self.project,
            "article": self.article,
            "title": self.title,
            "thumbnail_url": self.thumbnail_url,
            "image_url": self.image_url,
            "abstract": self.abstract,
            "article_url": self.article_url,
            "daily_views": self.daily_views,
            "retrieved": self.retrieved.isoformat() if self.retrieved else None,
        }


Index("ix_articles_project_views", Article.project, Article.daily_views.desc())
