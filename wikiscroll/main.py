from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse
from fastapi.staticfiles import StaticFiles
from jinja2 import Environment, FileSystemLoader, select_autoescape

from wikiscroll.core.article_source import ArticleSource, WikipediaArticleSource
from wikiscroll.core.categories import ALL_CATEGORY, CATEGORIES
from wikiscroll.core.scroll_triggers import VisibilityEvent
from wikiscroll.core.sessions import FeedSession, get_session_store, init_session_store
from wikiscroll.core.settings import Settings
from wikiscroll.providers.content_types import FeedQuery
from wikiscroll.providers.wikipedia import WikipediaClient

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent
TEMPLATES_DIR = BASE_DIR / "templates"
STATIC_DIR = BASE_DIR / "static"

jinja = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html", "xml"]),
)

_settings: Settings | None = None
_client: WikipediaClient | None = None
_source: ArticleSource | None = None


def init_services(settings: Settings | None = None, source: ArticleSource | None = None) -> None:
    """Wire settings, article source and session store.

    Pass `source` to serve a different article source (tests do).
    """
    global _settings, _client, _source
    _settings = settings or Settings.from_env()
    if source is None:
        _client = WikipediaClient(_settings)
        source = WikipediaArticleSource(_client, _settings)
    _source = source
    init_session_store(source, _settings)


def get_settings() -> Settings:
    if _settings is None:
        init_services()
    return _settings  # type: ignore[return-value]


def get_article_source() -> ArticleSource:
    if _source is None:
        init_services()
    return _source  # type: ignore[return-value]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    global _settings, _client, _source
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info(f"wikiscroll starting (env={settings.app_env}, page_size={settings.page_size})")
    yield
    get_session_store().close_all()
    if _client is not None:
        await _client.close()
    _settings = _client = _source = None


app = FastAPI(title="wikiscroll", lifespan=lifespan)
app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")

BLOG_POSTS = [
    {
        "title": "10 Tips for Effective Wikipedia Research",
        "excerpt": "Learn how to navigate Wikipedia like a pro with these essential research techniques and strategies for finding reliable information quickly.",
        "date": "2024-01-15",
        "read_time": "5 min read",
        "category": "Research Tips",
    },
    {
        "title": "Understanding Wikipedia Categories: A Complete Guide",
        "excerpt": "Master Wikipedia's categorization system to discover related articles and build comprehensive knowledge on any topic.",
        "date": "2024-01-10",
        "read_time": "7 min read",
        "category": "Tutorial",
    },
    {
        "title": "The Science Behind Infinite Scroll: Why It Works",
        "excerpt": "Explore the psychology and UX principles that make infinite scroll an effective way to discover and consume content.",
        "date": "2024-01-05",
        "read_time": "6 min read",
        "category": "UX Design",
    },
    {
        "title": "Wikipedia's Most Fascinating Articles You've Never Heard Of",
        "excerpt": "Discover hidden gems in Wikipedia's vast collection of articles that showcase the incredible diversity of human knowledge.",
        "date": "2024-01-01",
        "read_time": "8 min read",
        "category": "Discovery",
    },
    {
        "title": "How to Verify Wikipedia Information: A Critical Thinking Guide",
        "excerpt": "Learn essential skills for evaluating Wikipedia content and using it as a starting point for deeper research.",
        "date": "2023-12-28",
        "read_time": "9 min read",
        "category": "Critical Thinking",
    },
    {
        "title": "Building Better Search Queries for Wikipedia",
        "excerpt": "Master the art of crafting effective search queries to find exactly what you're looking for on Wikipedia.",
        "date": "2023-12-25",
        "read_time": "4 min read",
        "category": "Search Tips",
    },
]


def render(template_name: str, **ctx) -> HTMLResponse:
    template = jinja.get_template(template_name)
    return HTMLResponse(template.render(**ctx))


# --- Pages ---


@app.get("/", response_class=HTMLResponse)
def home(request: Request):
    s = get_settings()
    return render(
        "home.html",
        request=request,
        categories=CATEGORIES,
        selected_category=ALL_CATEGORY,
        settings=s,
    )


@app.get("/about", response_class=HTMLResponse)
def about(request: Request):
    return render("about.html", request=request, categories=CATEGORIES)


@app.get("/blog", response_class=HTMLResponse)
def blog(request: Request):
    return render("blog.html", request=request, categories=CATEGORIES, posts=BLOG_POSTS)


# --- Article proxy API ---


@app.get("/api/categories")
def api_categories():
    return [{"id": cat_id, "name": name} for cat_id, name in CATEGORIES]


@app.get("/api/articles/details/{page_id}")
async def api_article_details(page_id: int):
    """Details for one article by page id."""
    article = await get_article_source().get_article(page_id)
    if article is None:
        raise HTTPException(status_code=404, detail="Article not found")
    return article.to_dict()


@app.get("/api/articles/{category}")
async def api_articles(category: str, page: int = 1, limit: int = 10):
    """Articles for a category ("all" for a random batch)."""
    source = get_article_source()
    try:
        articles = await source.fetch_by_category(category, page, limit)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return [a.to_dict() for a in articles]


@app.get("/api/search")
async def api_search(q: str = "", page: int = 1, limit: int = 10):
    """Free-text article search. An empty query returns no articles."""
    if not q.strip():
        return []
    source = get_article_source()
    try:
        articles = await source.search_by_text(q, page, limit)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return [a.to_dict() for a in articles]


# --- Feed sessions ---


def _session_or_404(session_id: str) -> FeedSession:
    session = get_session_store().get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Feed session not found")
    return session


@app.post("/api/feed")
async def api_feed_mount():
    """Mount a feed view: create a session and run the initial load."""
    session = get_session_store().create()
    await session.mount()
    return session.to_dict()


@app.get("/api/feed/{session_id}")
async def api_feed_state(session_id: str):
    return _session_or_404(session_id).to_dict()


@app.post("/api/feed/{session_id}/filter")
async def api_feed_filter(session_id: str, category: str | None = None, q: str | None = None):
    """Switch the feed to a category or a search (exactly one)."""
    session = _session_or_404(session_id)
    if (category is None) == (q is None):
        raise HTTPException(status_code=400, detail="Pass exactly one of 'category' or 'q'")
    query = FeedQuery.for_category(category) if category is not None else FeedQuery.for_search(q or "")
    await session.feed.set_filter(query)
    return session.to_dict()


@app.post("/api/feed/{session_id}/more")
async def api_feed_more(session_id: str):
    session = _session_or_404(session_id)
    await session.feed.load_more()
    return session.to_dict()


@app.post("/api/feed/{session_id}/preload")
async def api_feed_preload(session_id: str):
    session = _session_or_404(session_id)
    await session.feed.preload_more()
    return session.to_dict()


@app.post("/api/feed/{session_id}/home")
async def api_feed_home(session_id: str):
    session = _session_or_404(session_id)
    await session.feed.reset_to_home()
    return session.to_dict()


@app.post("/api/feed/{session_id}/visibility")
async def api_feed_visibility(session_id: str, target: str, distance: float = 0.0):
    """Report a sentinel's distance below the viewport; triggers decide what to load."""
    session = _session_or_404(session_id)
    delivered = await session.events.publish(VisibilityEvent(target=target, distance=distance))
    return {**session.to_dict(), "delivered": delivered}


@app.delete("/api/feed/{session_id}")
async def api_feed_unmount(session_id: str):
    if not get_session_store().close(session_id):
        raise HTTPException(status_code=404, detail="Feed session not found")
    return {"closed": True, "id": session_id}
