"""
Project and journey ordering.

Two kinds of reorder:
  - Named strategies (featured_first, by_year_*, by_tech_stack, by_status,
    custom_order), deterministic and parameter-free beyond the name.
  - Adaptive intents, a small-integer relevance score per project.

Every sort is stable and breaks score ties by year descending, so items
that tie on both keep their original relative order.
"""

from __future__ import annotations

import re
from typing import Any, Callable

from portfolio_agent.errors import NotFoundError, UnsupportedOperationError

Project = dict[str, Any]

CATEGORY_KEYWORDS: dict[str, list[str]] = {
    "ai_ml": [
        "ai", "artificial intelligence", "machine learning", "ml", "neural", "prediction",
        "model", "algorithm", "tensorflow", "pytorch", "scikit", "data science", "analytics",
    ],
    "data_science": [
        "data", "analytics", "pipeline", "etl", "warehouse", "bigquery", "sql",
        "pandas", "numpy", "visualization", "dashboard", "insights",
    ],
    "web_development": [
        "web", "website", "next.js", "react", "html", "css", "javascript",
        "typescript", "frontend", "backend", "full stack",
    ],
    "mobile_development": [
        "mobile", "app", "flutter", "react native", "ios", "android", "dart", "swift", "kotlin",
    ],
    "backend": ["api", "server", "database", "backend", "node.js", "python", "express", "rest", "graphql"],
    "full_stack": ["full stack", "frontend", "backend", "database", "api", "web app"],
    "cloud_computing": ["cloud", "aws", "gcp", "azure", "docker", "kubernetes", "deployment", "hosting"],
    "automation": ["automation", "workflow", "pipeline", "ci/cd", "deployment", "orchestration", "airflow"],
}

STATUS_PRIORITY = {"completed": 3, "in-progress": 2, "planning": 1}

FEATURED_BONUS = 5
TECH_MATCH_SCORE = 3
COMPLEXITY_FEATURED_BONUS = 10


# ---------------------------------------------------------------------------
# Field access
# ---------------------------------------------------------------------------

def _year(project: Project) -> int:
    year = project.get("year")
    return year if isinstance(year, int) and not isinstance(year, bool) else 0


def _stack(project: Project) -> list[str]:
    stack = project.get("stack")
    return [str(s) for s in stack] if isinstance(stack, list) else []


def _search_text(project: Project) -> str:
    return " ".join([
        str(project.get("title", "")),
        str(project.get("description", "")),
        " ".join(_stack(project)),
    ]).lower()


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

def keyword_score(project: Project, keywords: list[str]) -> int:
    """+2 per keyword longer than 3 chars found in title/description/stack, +1 for shorter ones, +5 if featured."""
    text = _search_text(project)
    score = 0
    for keyword in keywords:
        if keyword.lower() in text:
            score += 2 if len(keyword) > 3 else 1
    if project.get("featured") is True:
        score += FEATURED_BONUS
    return score


def technology_score(project: Project, technologies: list[str]) -> int:
    stack = [s.lower() for s in _stack(project)]
    return sum(
        TECH_MATCH_SCORE
        for tech in technologies
        if any(tech.lower() in item for item in stack)
    )


def complexity_score(project: Project) -> int:
    return len(_stack(project)) + (COMPLEXITY_FEATURED_BONUS if project.get("featured") is True else 0)


def rank_by_score(projects: list[Project], score: Callable[[Project], int]) -> list[Project]:
    return sorted(projects, key=lambda p: (-score(p), -_year(p)))


# ---------------------------------------------------------------------------
# Named strategies
# ---------------------------------------------------------------------------

def apply_custom_order(items: list[Any], order: list[str], key: Callable[[Any], str]) -> list[Any]:
    """Listed items first in list order; unlisted items keep their relative order after them."""
    positions: dict[str, int] = {}
    for index, name in enumerate(order):
        positions.setdefault(name, index)
    unlisted = len(order)
    return sorted(items, key=lambda item: positions.get(key(item), unlisted))


def _title_key(project: Project) -> str:
    return str(project.get("title", "")).lower()


def reorder_projects(projects: list[Project], strategy: str, custom_order: list[str] | None = None) -> list[Project]:
    if strategy == "featured_first":
        return sorted(projects, key=lambda p: (not p.get("featured") is True, -_year(p)))
    if strategy == "by_year_desc":
        return sorted(projects, key=lambda p: -_year(p))
    if strategy == "by_year_asc":
        return sorted(projects, key=_year)
    if strategy == "by_tech_stack":
        return sorted(projects, key=lambda p: (-len(_stack(p)), -_year(p)))
    if strategy == "by_status":
        return sorted(projects, key=lambda p: (-STATUS_PRIORITY.get(p.get("status"), 0), -_year(p)))
    if strategy == "custom_order":
        return apply_custom_order(projects, [t.lower() for t in (custom_order or [])], _title_key)
    raise UnsupportedOperationError(f"Unknown reorder strategy: {strategy}")


# ---------------------------------------------------------------------------
# Adaptive intents
# ---------------------------------------------------------------------------

def move_to_front(projects: list[Project], target: str) -> tuple[list[Project], Project]:
    """Exact (case-insensitive) title match first, else the first substring match."""
    wanted = target.lower()
    titles = [_title_key(p) for p in projects]
    index = next((i for i, t in enumerate(titles) if t == wanted), None)
    if index is None:
        index = next((i for i, t in enumerate(titles) if wanted in t), None)
    if index is None:
        raise NotFoundError("Project", target, [str(p.get("title", "")) for p in projects])
    chosen = projects[index]
    return [chosen] + projects[:index] + projects[index + 1:], chosen


def adaptive_sort(
    projects: list[Project],
    intent: str,
    target_project: str | None = None,
    category: str | None = None,
    technologies: list[str] | None = None,
    keywords: list[str] | None = None,
) -> tuple[list[Project], str]:
    """Return the reordered projects and a one-line explanation."""
    if intent == "prioritize_specific_project":
        ordered, chosen = move_to_front(projects, target_project or "")
        return ordered, f'Moved "{chosen.get("title")}" to first position'

    if intent == "prioritize_category":
        if category not in CATEGORY_KEYWORDS:
            raise UnsupportedOperationError(f"Unknown project category: {category}")
        words = CATEGORY_KEYWORDS[category]
        return rank_by_score(projects, lambda p: keyword_score(p, words)), f"Prioritized {category} projects"

    if intent == "prioritize_by_keywords":
        words = keywords or []
        return rank_by_score(projects, lambda p: keyword_score(p, words)), f"Prioritized by keywords: {', '.join(words)}"

    if intent == "prioritize_technology":
        techs = technologies or []
        return rank_by_score(projects, lambda p: technology_score(p, techs)), f"Prioritized projects using: {', '.join(techs)}"

    if intent == "custom_adaptive_sort":
        return rank_by_score(projects, complexity_score), "Sorted by project complexity and featured status"

    raise UnsupportedOperationError(f"Unknown adaptive sort intent: {intent}")


# ---------------------------------------------------------------------------
# Journey
# ---------------------------------------------------------------------------

_YEAR_RE = re.compile(r"\d{4}")


def journey_year(item: dict[str, Any]) -> int:
    match = _YEAR_RE.search(str(item.get("year", "")))
    return int(match.group()) if match else 0


def reorder_journey(items: list[dict[str, Any]], strategy: str, custom_order: list[str] | None = None) -> list[dict[str, Any]]:
    if strategy == "by_year_asc":
        return sorted(items, key=journey_year)
    if strategy == "by_year_desc":
        return sorted(items, key=lambda item: -journey_year(item))
    if strategy == "custom_order":
        return apply_custom_order(items, custom_order or [], lambda item: str(item.get("id", "")))
    raise UnsupportedOperationError(f"Unknown journey reorder strategy: {strategy}")
