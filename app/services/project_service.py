import re
import time
from datetime import datetime
from typing import Any, List, Optional, Tuple

from beanie import PydanticObjectId, UpdateResponse
from bson import ObjectId
from pydantic import ValidationError as PydanticValidationError
from pymongo.errors import DuplicateKeyError, PyMongoError

from app.models.project import CATEGORIES, Project, ProjectSummary
from app.services.query_builder import TEMPLATE_SORT, ProjectQuery
from app.utils.exceptions import NotFoundError, PersistenceError, ValidationError
from app.utils.logger import logger

TEMPLATE_LIMIT = 20
SLUG_ATTEMPTS = 3

# Fields the store or this service own; never taken from the client payload
SERVER_FIELDS = ("_id", "id", "slug", "createdAt", "created_at", "updatedAt", "updated_at", "revision_id")

_last_suffix = 0


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "project"


def _slug_suffix() -> int:
    """Epoch milliseconds, bumped so two calls in one process never repeat."""
    global _last_suffix
    _last_suffix = max(int(time.time() * 1000), _last_suffix + 1)
    return _last_suffix


def make_slug(name: str) -> str:
    return f"{slugify(name)}-{_slug_suffix()}"


def parse_object_id(value: Any) -> Optional[PydanticObjectId]:
    if isinstance(value, ObjectId):
        return PydanticObjectId(value)
    if isinstance(value, str) and ObjectId.is_valid(value):
        return PydanticObjectId(value)
    return None


def describe_validation_error(exc: PydanticValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg", ""))
    return "; ".join(parts)


class ProjectService:
    """
    Project lifecycle: creation, lookup, listing and the view/like counters.
    Counters are store-side $inc updates, never read-modify-write.
    """

    def build(self, payload: dict) -> Project:
        if not isinstance(payload, dict):
            raise ValidationError("Project payload must be a JSON object")

        data = {k: v for k, v in payload.items() if k not in SERVER_FIELDS}
        for required in ("name", "description"):
            value = data.get(required)
            if not isinstance(value, str) or not value.strip():
                raise ValidationError(f"{required} is required")

        metadata = data.get("metadata")
        if metadata is not None and not isinstance(metadata, dict):
            raise ValidationError("metadata must be an object")

        category = (metadata or {}).get("category")
        if category is not None and category not in CATEGORIES:
            raise ValidationError(f"metadata.category must be one of: {', '.join(CATEGORIES)}")

        now = datetime.utcnow()
        try:
            return Project(**data, slug=make_slug(data["name"]), created_at=now, updated_at=now)
        except PydanticValidationError as e:
            raise ValidationError(describe_validation_error(e))

    async def create(self, payload: dict) -> Project:
        project = self.build(payload)

        for attempt in range(SLUG_ATTEMPTS):
            try:
                await project.insert()
                logger.info(f"Project created: {project.slug}")
                return project
            except DuplicateKeyError:
                logger.warning(f"Slug collision on {project.slug}, retrying")
                project.id = None
                project.slug = make_slug(project.name)
            except PyMongoError as e:
                logger.error(f"Project insert failed: {e}")
                raise PersistenceError("Failed to save project")

        raise PersistenceError("Failed to save project")

    async def list(self, query: ProjectQuery) -> Tuple[List[ProjectSummary], int]:
        try:
            projects = await Project.find(query.filter) \
                .sort(query.sort) \
                .skip(query.skip) \
                .limit(query.limit) \
                .project(ProjectSummary) \
                .to_list()
            total = await Project.find(query.filter).count()
        except PyMongoError as e:
            logger.error(f"Project listing failed: {e}")
            raise PersistenceError("Failed to fetch projects")
        return projects, total

    async def get_by_identifier(self, identifier: str) -> Project:
        """
        Resolve a project by slug, falling back to its ObjectId. A slug
        match always wins over an id match.
        """
        project = await Project.find_one({"slug": identifier})
        if project is None:
            oid = parse_object_id(identifier)
            if oid is not None:
                project = await Project.get(oid)
        if project is None:
            raise NotFoundError("Project not found")
        return project

    async def increment_views(self, project_id: PydanticObjectId):
        try:
            await Project.find_one({"_id": project_id}).update({"$inc": {"metadata.views": 1}})
        except PyMongoError as e:
            logger.error(f"View increment failed for {project_id}: {e}")

    async def set_generated_ui(self, project_id: str, generated_ui: Any) -> Project:
        oid = parse_object_id(project_id)
        if oid is None:
            raise NotFoundError("Project not found")

        project = await Project.find_one({"_id": oid}).update(
            {"$set": {"generatedUI": generated_ui, "updatedAt": datetime.utcnow()}},
            response_type=UpdateResponse.NEW_DOCUMENT,
        )
        if project is None:
            raise NotFoundError("Project not found")
        return project

    async def increment_likes(self, project_id: str) -> int:
        oid = parse_object_id(project_id)
        if oid is None:
            raise NotFoundError("Project not found")

        project = await Project.find_one({"_id": oid}).update(
            {"$inc": {"metadata.likes": 1}, "$set": {"updatedAt": datetime.utcnow()}},
            response_type=UpdateResponse.NEW_DOCUMENT,
        )
        if project is None:
            raise NotFoundError("Project not found")
        return project.metadata.likes

    async def list_templates(self) -> List[ProjectSummary]:
        return await Project.find({"metadata.isTemplate": True}) \
            .sort(TEMPLATE_SORT) \
            .limit(TEMPLATE_LIMIT) \
            .project(ProjectSummary) \
            .to_list()
