from datetime import datetime
from typing import List, Optional
from beanie import Document, PydanticObjectId
from pydantic import Field


class PageView(Document):
    """Append-only record of one project page visit."""
    project_id: PydanticObjectId = Field(alias="projectId")  # no cascade on project delete
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    user_agent: Optional[str] = Field(None, alias="userAgent")
    referrer: Optional[str] = None
    session_id: Optional[str] = Field(None, alias="sessionId")
    time_on_page: Optional[float] = Field(None, alias="timeOnPage")
    scroll_depth: Optional[float] = Field(None, alias="scrollDepth")
    interaction_events: List[dict] = Field(default=[], alias="interactionEvents")

    class Settings:
        name = "pageviews"
        indexes = ["projectId", "timestamp"]
