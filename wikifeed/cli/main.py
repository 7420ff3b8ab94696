from __future__ import annotations

from typing import Optional

import typer
from rich import print
from wikifeed.config.settings import CrawlConfig, Settings, get_settings
from wikifeed.db.articles import ArticleStore
from wikifeed.db.database import get_engine, init_db
from wikifeed.services.projects import is_project
from wikifeed.services.rate_limit import TokenBucket
from wikifeed.services.wiki_client import WikiClient, create_session
from wikifeed.tools.lock import RunLock
from wikifeed.tools.logging_setup import setup_logging
from wikifeed.workflows.crawl import Crawler


app = typer.Typer(help="Trending Wikipedia articles, crawled and served")


@app.callback()
def main() -> None:
    setup_logging()


def build_wiki_client(s: Settings, config: CrawlConfig) -> WikiClient:
    return WikiClient(
        session=create_session(s.user_agent),
        limiter=TokenBucket(rate=config.rate_limit_rps, burst=config.rate_limit_burst),
        timeout=s.http_timeout,
        skip_article=config.skip_article,
    )


def build_crawler(s: Settings, projects: list[str] | None = None) -> Crawler:
    config = CrawlConfig.from_settings(s)
    if projects:
        unknown = [p for p in projects if not is_project(p)]
        if unknown:
            raise typer.BadParameter(f"unknown projects: {', '.join(unknown)}")
        config.projects = list(projects)
    store = ArticleStore(get_engine())
    return Crawler(store, build_wiki_client(s, config), config)


@app.command()
def doctor():
    """Check config + DB connectivity."""
    s = get_settings()
    print("[bold green]Config loaded[/bold green]")
    print("Database:", s.database_url)
    print("Projects:", s.projects)
    print(
        "Rate limit:", f"{s.rate_limit_rps}/s burst {s.rate_limit_burst}",
        "| Write concurrency:", s.write_concurrency,
    )
    init_db()
    print("[bold green]DB OK[/bold green]")


@app.command()
def setup():
    """Create the articles table."""
    s = get_settings()
    print("Setting up database at", s.database_url)
    init_db()


@app.command()
def crawl(
    project: Optional[list[str]] = typer.Option(
        None, "--project", "-p", help="Crawl only these projects (repeatable)."
    ),
):
    """Update the set of articles one time."""
    s = get_settings()
    crawler = build_crawler(s, project)
    try:
        with RunLock(s.lock_file):
            init_db()
            results = crawler.crawl_once()
    except Exception as e:
        print(f"[bold red]Crawl failed[/bold red]: {e}")
        raise SystemExit(1)

    print("[bold green]Crawl complete[/bold green]")
    for r in results:
        print(
            f"{r.project}: ranked={r.ranked} fetched={r.fetched} "
            f"written={r.written} deleted={r.deleted} ({r.duration:.1f}s)"
        )


@app.command("fetch-top-articles")
def fetch_top_articles(
    project: str = typer.Option("en", help="project to scan"),
    num_articles: int = typer.Option(10, "--num-articles", "-n", help="number of articles to fetch"),
):
    """Debug command to exercise the Wikipedia client."""
    if not is_project(project):
        raise typer.BadParameter(f"unknown project: {project}")
    s = get_settings()
    wiki = build_wiki_client(s, CrawlConfig.from_settings(s))
    try:
        top = wiki.fetch_top_articles(project)
        for i, ranked in enumerate(top.articles[:num_articles]):
            article = wiki.get_article(project, ranked.article)
            if i > 0:
                print()
            print(f"{i + 1}. {article.title} ({ranked.views})\n\n{article.extract}")
    except Exception as e:
        print(f"[bold red]Fetch failed[/bold red]: {e}")
        raise SystemExit(1)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="interface to bind"),
    port: int = typer.Option(8080, help="port on which to serve"),
):
    """Run the read API."""
    import uvicorn

    from wikifeed.api.app import create_app

    uvicorn.run(create_app(), host=host, port=port)


if __name__ == "__main__":
    app()
