from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Body, Depends, status

from app.services.analytics_service import AnalyticsAggregator
from app.services.project_service import ProjectService
from app.services.query_builder import build_list_query, pagination
from app.utils.dependencies import ensure_db, get_analytics, get_project_service
from app.utils.exceptions import ValidationError

router = APIRouter(prefix="/api/projects", tags=["Projects"], dependencies=[Depends(ensure_db)])


@router.get("")
async def list_projects(
    page: Optional[str] = None,
    limit: Optional[str] = None,
    category: Optional[str] = None,
    search: Optional[str] = None,
    projects: ProjectService = Depends(get_project_service),
):
    """Public gallery, newest first. generatedUI is left out of list items."""
    query = build_list_query(page=page, limit=limit, category=category, search=search)
    items, total = await projects.list(query)
    return {"projects": items, "pagination": pagination(query, total)}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_project(
    background_tasks: BackgroundTasks,
    payload: dict = Body(...),
    projects: ProjectService = Depends(get_project_service),
    analytics: AnalyticsAggregator = Depends(get_analytics),
):
    project = await projects.create(payload)

    # Snapshot bookkeeping never holds up or fails the creation
    background_tasks.add_task(analytics.ingest_creation_event, project)

    return {
        "message": "Project saved successfully",
        "project": {"id": str(project.id), "slug": project.slug, "name": project.name},
    }


@router.get("/{identifier}")
async def get_project(
    identifier: str,
    background_tasks: BackgroundTasks,
    projects: ProjectService = Depends(get_project_service),
):
    """Fetch by slug or id. The view counter is bumped after the response."""
    project = await projects.get_by_identifier(identifier)
    background_tasks.add_task(projects.increment_views, project.id)
    return {"project": project}


@router.put("/{project_id}/ui")
async def update_generated_ui(
    project_id: str,
    payload: dict = Body(...),
    projects: ProjectService = Depends(get_project_service),
):
    if "generatedUI" not in payload:
        raise ValidationError("generatedUI is required")
    await projects.set_generated_ui(project_id, payload["generatedUI"])
    return {"message": "Generated UI updated successfully"}


@router.post("/{project_id}/like")
async def like_project(
    project_id: str,
    projects: ProjectService = Depends(get_project_service),
):
    likes = await projects.increment_likes(project_id)
    return {"likes": likes}
