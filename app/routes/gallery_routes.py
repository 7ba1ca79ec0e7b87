from typing import Optional
from fastapi import APIRouter, Depends

from app.services.analytics_service import AnalyticsAggregator
from app.services.project_service import ProjectService
from app.services.query_builder import build_search_query, pagination
from app.utils.dependencies import ensure_db, get_analytics, get_project_service

router = APIRouter(prefix="/api", tags=["Gallery"], dependencies=[Depends(ensure_db)])


@router.get("/templates")
async def get_templates(projects: ProjectService = Depends(get_project_service)):
    templates = await projects.list_templates()
    return {"templates": templates}


@router.get("/search")
async def search_projects(
    q: Optional[str] = None,
    category: Optional[str] = None,
    entities: Optional[str] = None,
    roles: Optional[str] = None,
    sortBy: Optional[str] = None,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    projects: ProjectService = Depends(get_project_service),
):
    query = build_search_query(
        q=q,
        category=category,
        entities=entities,
        roles=roles,
        sort_by=sortBy,
        page=page,
        limit=limit,
    )
    items, total = await projects.list(query)
    return {
        "projects": items,
        "pagination": pagination(query, total),
        "filters": query.filters,
        "searchQuery": q or "",
    }


@router.get("/suggestions")
async def get_suggestions(analytics: AnalyticsAggregator = Depends(get_analytics)):
    """Frequency-ranked entities, roles and categories for autocomplete."""
    return await analytics.suggestions()
