from datetime import datetime
from typing import Dict
from beanie import Document
from pydantic import Field
from pymongo import ASCENDING, IndexModel


class AnalyticsSnapshot(Document):
    """One calendar day (UTC) of accumulated AI usage counters."""
    date: datetime
    ai_calls: int = Field(0, alias="aiCalls")
    total_tokens_used: int = Field(0, alias="totalTokensUsed")
    total_response_time: float = Field(0, alias="totalResponseTime")
    average_response_time: float = Field(0, alias="averageResponseTime")
    popular_categories: Dict[str, int] = Field(default={}, alias="popularCategories")
    popular_entities: Dict[str, int] = Field(default={}, alias="popularEntities")
    average_project_views: float = Field(0, alias="averageProjectViews")
    total_projects: int = Field(0, alias="totalProjects")

    class Settings:
        name = "analytics"
        indexes = [IndexModel([("date", ASCENDING)], unique=True)]
