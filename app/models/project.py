from datetime import datetime
from typing import Any, List, Optional
from beanie import Document, PydanticObjectId
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pymongo import ASCENDING, DESCENDING, IndexModel

CATEGORIES = (
    "business",
    "personal",
    "education",
    "healthcare",
    "ecommerce",
    "social",
    "productivity",
    "other",
)

NAME_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500


class Requirements(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    app_name: Optional[str] = Field(None, alias="appName")
    entities: List[str] = Field(default=[])
    roles: List[str] = Field(default=[])
    features: List[str] = Field(default=[])
    original_prompt: Optional[str] = Field(None, alias="originalPrompt")


class GenerationStats(BaseModel):
    """How the AI produced the requirements (model, cost, latency)."""
    model_config = ConfigDict(populate_by_name=True)

    ai_model: Optional[str] = Field(None, alias="aiModel")
    tokens_used: int = Field(0, ge=0, alias="tokensUsed")
    response_time: float = Field(0, ge=0, alias="responseTime")  # milliseconds
    generation_date: datetime = Field(default_factory=datetime.utcnow, alias="generationDate")


class ProjectMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    category: str = "other"
    views: int = Field(0, ge=0)
    likes: int = Field(0, ge=0)
    is_template: bool = Field(False, alias="isTemplate")
    tags: List[str] = Field(default=[])

    @field_validator("tags")
    @classmethod
    def dedupe_tags(cls, tags: List[str]) -> List[str]:
        # tags are a set; keep first-seen order for stable output
        return list(dict.fromkeys(tags))


class Project(Document):
    name: str = Field(min_length=1, max_length=NAME_MAX_LENGTH)
    description: str = Field(min_length=1, max_length=DESCRIPTION_MAX_LENGTH)
    slug: str
    requirements: Requirements = Field(default_factory=Requirements)
    generated_ui: Optional[Any] = Field(None, alias="generatedUI")
    analytics: GenerationStats = Field(default_factory=GenerationStats)
    metadata: ProjectMetadata = Field(default_factory=ProjectMetadata)
    created_at: datetime = Field(default_factory=datetime.utcnow, alias="createdAt")
    updated_at: datetime = Field(default_factory=datetime.utcnow, alias="updatedAt")

    class Settings:
        name = "projects"
        indexes = [
            IndexModel([("slug", ASCENDING)], unique=True),
            IndexModel([("createdAt", DESCENDING)]),
            "metadata.category",
            "metadata.views",
            "metadata.likes",
            "metadata.isTemplate",
        ]


class ProjectSummary(BaseModel):
    """List-view projection of a Project: everything except generatedUI."""
    model_config = ConfigDict(populate_by_name=True)

    id: PydanticObjectId = Field(alias="_id")
    name: str
    description: str
    slug: str
    requirements: Requirements = Field(default_factory=Requirements)
    analytics: GenerationStats = Field(default_factory=GenerationStats)
    metadata: ProjectMetadata = Field(default_factory=ProjectMetadata)
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")

    class Settings:
        projection = {"generatedUI": 0}
