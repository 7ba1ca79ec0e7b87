"""
Turns client-supplied listing parameters into a MongoDB filter, sort and
skip/limit window. Nothing here touches the database.
"""
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from pymongo import DESCENDING

from app.config import settings

ALL_CATEGORIES = "all"

SortSpec = List[Tuple[str, int]]

# _id closes every sort so equal keys still page deterministically
RECENT_SORT: SortSpec = [("createdAt", DESCENDING), ("_id", DESCENDING)]
POPULAR_SORT: SortSpec = [("metadata.views", DESCENDING), ("createdAt", DESCENDING), ("_id", DESCENDING)]
LIKED_SORT: SortSpec = [("metadata.likes", DESCENDING), ("createdAt", DESCENDING), ("_id", DESCENDING)]
TEMPLATE_SORT: SortSpec = LIKED_SORT

SORT_MODES: Dict[str, SortSpec] = {
    "recent": RECENT_SORT,
    "popular": POPULAR_SORT,
    "liked": LIKED_SORT,
}


@dataclass
class ProjectQuery:
    filter: Dict[str, Any]
    sort: SortSpec
    page: int
    limit: int
    skip: int
    filters: Dict[str, Any] = field(default_factory=dict)


def _to_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def coerce_page(value: Any) -> int:
    page = _to_int(value)
    if page is None or page < 1:
        return 1
    return page


def coerce_limit(value: Any) -> int:
    limit = _to_int(value)
    if limit is None or limit < 1:
        return settings.default_page_limit
    return min(limit, settings.max_page_limit)


def split_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def contains_ci(term: str) -> Dict[str, str]:
    """Case-insensitive literal substring match."""
    return {"$regex": re.escape(term), "$options": "i"}


def equals_ci(term: str) -> Dict[str, str]:
    """Case-insensitive whole-value match."""
    return {"$regex": f"^{re.escape(term)}$", "$options": "i"}


def search_clause(search: str) -> Dict[str, Any]:
    # A regex against an array field matches if any element matches
    return {
        "$or": [
            {"name": contains_ci(search)},
            {"description": contains_ci(search)},
            {"requirements.entities": contains_ci(search)},
        ]
    }


def build_filter(
    category: Optional[str] = None,
    search: Optional[str] = None,
    entities: Optional[List[str]] = None,
    roles: Optional[List[str]] = None,
) -> Dict[str, Any]:
    clauses = []

    if category and category != ALL_CATEGORIES:
        clauses.append({"metadata.category": category})

    if search:
        clauses.append(search_clause(search))

    for entity in entities or []:
        clauses.append({"requirements.entities": equals_ci(entity)})

    for role in roles or []:
        clauses.append({"requirements.roles": equals_ci(role)})

    if not clauses:
        return {}
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def build_list_query(
    page: Any = None,
    limit: Any = None,
    category: Optional[str] = None,
    search: Optional[str] = None,
) -> ProjectQuery:
    """Gallery listing: newest first, optional category and search."""
    page = coerce_page(page)
    limit = coerce_limit(limit)
    search = search.strip() if search else None

    return ProjectQuery(
        filter=build_filter(category=category, search=search),
        sort=RECENT_SORT,
        page=page,
        limit=limit,
        skip=(page - 1) * limit,
        filters={"category": category or ALL_CATEGORIES, "search": search},
    )


def build_search_query(
    q: Optional[str] = None,
    category: Optional[str] = None,
    entities: Optional[str] = None,
    roles: Optional[str] = None,
    sort_by: Optional[str] = None,
    page: Any = None,
    limit: Any = None,
) -> ProjectQuery:
    """
    Search page: the gallery filters plus required entities/roles
    (comma separated, all must be present) and a sort mode of
    recent, popular or liked. Unknown sort modes fall back to recent.
    """
    page = coerce_page(page)
    limit = coerce_limit(limit)
    q = q.strip() if q else None
    entity_list = split_csv(entities)
    role_list = split_csv(roles)
    sort_key = sort_by if sort_by in SORT_MODES else "recent"

    return ProjectQuery(
        filter=build_filter(category=category, search=q, entities=entity_list, roles=role_list),
        sort=SORT_MODES[sort_key],
        page=page,
        limit=limit,
        skip=(page - 1) * limit,
        filters={
            "category": category or ALL_CATEGORIES,
            "entities": entity_list,
            "roles": role_list,
            "sortBy": sort_key,
        },
    )


def pagination(query: ProjectQuery, total: int) -> Dict[str, int]:
    return {
        "page": query.page,
        "limit": query.limit,
        "total": total,
        "pages": math.ceil(total / query.limit) if query.limit else 0,
    }
