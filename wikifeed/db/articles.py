from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wikifeed.db.models import Article
from wikifeed.errors import StoreWriteError

_UPDATE_COLUMNS = (
    "title",
    "thumbnail_url",
    "image_url",
    "abstract",
    "article_url",
    "daily_views",
    "retrieved",
)


def _utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _values(article: Article) -> dict:
    return {
        "project": article.project,
        "article": article.article,
        "title": article.title,
        "thumbnail_url": article.thumbnail_url,
        "image_url": article.image_url,
        "abstract": article.abstract,
        "article_url": article.article_url,
        "daily_views": article.daily_views,
        "retrieved": _utc(article.retrieved),
    }


def upsert_article(engine: Engine, article: Article) -> None:
    """
    Insert or overwrite the row for (project, article).
    """
    values = _values(article)
    dialect = engine.dialect.name
    try:
        with Session(engine) as session:
            if dialect in ("sqlite", "postgresql"):
                insert = sqlite.insert if dialect == "sqlite" else postgresql.insert
                stmt = insert(Article).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=["project", "article"],
                    set_={c: stmt.excluded[c] for c in _UPDATE_COLUMNS},
                )
                session.execute(stmt)
            else:
                session.merge(Article(**values))
            session.commit()
    except SQLAlchemyError as e:
        raise StoreWriteError(
            f"failed to upsert {article.project}/{article.article}: {e}"
        ) from e


def delete_old_articles(engine: Engine, project: str, before: datetime) -> int:
    """
    Delete this project's rows retrieved strictly before `before`.
    """
    try:
        with Session(engine) as session:
            result = session.execute(
                delete(Article)
                .where(Article.project == project)
                .where(Article.retrieved < _utc(before))
            )
            session.commit()
            return result.rowcount or 0
    except SQLAlchemyError as e:
        raise StoreWriteError(f"failed to delete old articles for {project}: {e}") from e


def get_articles(engine: Engine, project: str, offset: int = 0, limit: int = 20) -> list[Article]:
    with Session(engine, expire_on_commit=False) as session:
        rows = session.scalars(
            select(Article)
            .where(Article.project == project)
            .order_by(Article.daily_views.desc(), Article.article)
            .offset(offset)
            .limit(limit)
        ).all()
        session.expunge_all()
    return list(rows)


class ArticleStore:
    """Binds the article queries to one engine."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def upsert_article(self, article: Article) -> None:
        upsert_article(self.engine, article)

    def delete_old_articles(self, project: str, before: datetime) -> int:
        return delete_old_articles(self.engine, project, before)

    def get_articles(self, project: str, offset: int = 0, limit: int = 20) -> list[Article]:
        return get_articles(self.engine, project, offset, limit)
