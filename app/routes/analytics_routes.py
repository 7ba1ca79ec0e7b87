from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Body, Depends, status

from app.services.analytics_service import AnalyticsAggregator
from app.utils.dependencies import ensure_db, get_analytics

router = APIRouter(prefix="/api/analytics", tags=["Analytics"], dependencies=[Depends(ensure_db)])


@router.get("")
async def get_platform_analytics(analytics: AnalyticsAggregator = Depends(get_analytics)):
    return await analytics.platform_summary()


@router.get("/dashboard")
async def get_dashboard_analytics(
    period: Optional[str] = None,
    analytics: AnalyticsAggregator = Depends(get_analytics),
):
    return await analytics.dashboard(period)


@router.post("/pageview", status_code=status.HTTP_202_ACCEPTED)
async def record_page_view(
    background_tasks: BackgroundTasks,
    payload: dict = Body(...),
    analytics: AnalyticsAggregator = Depends(get_analytics),
):
    page_view = analytics.build_page_view(payload.get("projectId"), payload)
    background_tasks.add_task(analytics.record_page_view, page_view)
    return {"message": "Page view recorded"}
