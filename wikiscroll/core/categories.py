"""Category catalogue and category-to-search-query expansion."""

from __future__ import annotations

from collections.abc import Mapping

ALL_CATEGORY = "all"

# (id, display name) in menu order
CATEGORIES: tuple[tuple[str, str], ...] = (
    ("all", "All"),
    ("philosophy", "Philosophy"),
    ("physics", "Physics"),
    ("mathematics", "Mathematics"),
    ("art", "Art"),
    ("history", "History"),
    ("science", "Science"),
    ("technology", "Technology"),
    ("literature", "Literature"),
    ("music", "Music"),
    ("geography", "Geography"),
    ("biology", "Biology"),
    ("chemistry", "Chemistry"),
    ("psychology", "Psychology"),
    ("economics", "Economics"),
    ("politics", "Politics"),
    ("sports", "Sports"),
    ("medicine", "Medicine"),
)

# Broadened search expressions, one disjunction per category
CATEGORY_QUERIES: dict[str, str] = {
    "philosophy": "philosophy OR philosopher OR philosophical",
    "physics": "physics OR physicist OR physical",
    "mathematics": "mathematics OR mathematician OR mathematical",
    "art": "art OR artist OR artistic",
    "history": "history OR historical OR historian",
    "science": "science OR scientist OR scientific",
    "technology": "technology OR technological OR tech",
    "literature": "literature OR literary OR author",
    "music": "music OR musician OR musical",
    "geography": "geography OR geographic OR country",
    "biology": "biology OR biologist OR biological",
    "chemistry": "chemistry OR chemist OR chemical",
    "psychology": "psychology OR psychologist OR psychological",
    "economics": "economics OR economist OR economic",
    "politics": "politics OR political OR government",
    "sports": "sports OR athlete OR athletic",
    "medicine": "medicine OR medical OR doctor",
}


def category_search_query(
    category: str,
    queries: Mapping[str, str] | None = None,
) -> str:
    """Expand a category id into its search expression.

    Pure function of the category name: the same input always yields the
    same query string. Unknown categories search for themselves.

    Args:
        category: Category id (e.g. "physics")
        queries: Optional override of the expansion table

    Returns:
        Search expression for the full-text search API
    """
    table = CATEGORY_QUERIES if queries is None else queries
    key = category.strip().lower()
    return table.get(key, category.strip())


def category_name(category: str) -> str:
    """Display name for a category id, falling back to the id itself."""
    for cat_id, name in CATEGORIES:
        if cat_id == category:
            return name
    return category
