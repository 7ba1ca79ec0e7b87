from fastapi import Request

from app.services.analytics_service import AnalyticsAggregator
from app.services.project_service import ProjectService


async def ensure_db(request: Request):
    # Lazily connect when the lifespan hook didn't run (serverless cold start)
    await request.app.state.mongo.connect()


def get_project_service(request: Request) -> ProjectService:
    return request.app.state.projects


def get_analytics(request: Request) -> AnalyticsAggregator:
    return request.app.state.analytics
