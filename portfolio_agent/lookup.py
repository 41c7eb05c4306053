"""
Natural-key lookups over stored collections.

One matching rule per entity; the executor and the undo synthesizer
both resolve entries through here so they agree on which element a
command refers to.
"""

from __future__ import annotations

from typing import Any

from portfolio_agent.errors import NotFoundError

GOAL_LISTS = ("shortTerm", "longTerm")


def _casefold_index(items: list[dict[str, Any]], field: str, wanted: str) -> int | None:
    wanted = wanted.lower()
    for i, item in enumerate(items):
        if str(item.get(field, "")).lower() == wanted:
            return i
    return None


def find_project(projects: list[dict[str, Any]], title: str) -> int:
    index = _casefold_index(projects, "title", title)
    if index is None:
        raise NotFoundError("Project", title, [str(p.get("title", "")) for p in projects])
    return index


def find_skill(skills: list[dict[str, Any]], name: str) -> int:
    index = _casefold_index(skills, "name", name)
    if index is None:
        raise NotFoundError("Skill", name, [str(s.get("name", "")) for s in skills])
    return index


def has_title(projects: list[dict[str, Any]], title: str, skip: int | None = None) -> bool:
    return any(
        i != skip and str(p.get("title", "")).lower() == title.lower()
        for i, p in enumerate(projects)
    )


def has_name(skills: list[dict[str, Any]], name: str, skip: int | None = None) -> bool:
    return any(
        i != skip and str(s.get("name", "")).lower() == name.lower()
        for i, s in enumerate(skills)
    )


def find_role(roles: list[str], role: str) -> int:
    """Exact match wins, then case-insensitive exact."""
    if role in roles:
        return roles.index(role)
    lowered = role.lower()
    for i, existing in enumerate(roles):
        if existing.lower() == lowered:
            return i
    raise NotFoundError("Role", role, list(roles))


def find_goal(goals: dict[str, Any], match: str, only: str | None = None) -> tuple[str, int]:
    """
    Locate a goal as (list name, index).

    Exact text in shortTerm then longTerm, then a case-insensitive
    substring in the same order. `only` restricts the search to one list.
    """
    names = (only,) if only else GOAL_LISTS
    lists = {name: list(goals.get(name) or []) for name in names}

    for name in names:
        if match in lists[name]:
            return name, lists[name].index(match)

    lowered = match.lower()
    for name in names:
        for i, goal in enumerate(lists[name]):
            if lowered in str(goal).lower():
                return name, i

    available = [str(g) for name in names for g in lists[name]]
    raise NotFoundError("Goal", match, available)


def find_journey_item(items: list[dict[str, Any]], item_id: str, timeline: str) -> int:
    for i, item in enumerate(items):
        if item.get("id") == item_id:
            return i
    raise NotFoundError(
        f"Journey item in {timeline}",
        item_id,
        [f"{item.get('id')} ({item.get('title', '')})" for item in items],
    )
