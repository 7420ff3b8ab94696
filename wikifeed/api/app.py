"""
Read-only HTTP API over the stored top articles.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import PlainTextResponse
from sqlalchemy.engine import Engine

from wikifeed.db.articles import ArticleStore
from wikifeed.db.database import get_engine, init_db
from wikifeed.services.projects import PROJECTS, is_project


def create_app(engine: Engine | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Tables must exist before the first read.
        init_db(app.state.store.engine)
        yield

    app = FastAPI(title="wikifeed", lifespan=lifespan)
    app.state.store = ArticleStore(engine or get_engine())

    @app.get("/healthz", response_class=PlainTextResponse)
    def healthz() -> str:
        return "OK"

    @app.get("/projects")
    def projects() -> dict:
        return {"projects": list(PROJECTS)}

    @app.get("/articles")
    def articles(
        project: str = "en",
        offset: int = Query(0, ge=0),
        limit: int = Query(20, ge=1, le=100),
    ) -> dict:
        if not is_project(project):
            raise HTTPException(status_code=400, detail=f"{project} is not a valid project")
        rows = app.state.store.get_articles(project, offset=offset, limit=limit)
        return {
            "project": project,
            "offset": offset,
            "articles": [row.to_dict() for row in rows],
        }

    return app
