import pandas as pd
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from app.models.analytics import AnalyticsSnapshot
from app.models.page_view import PageView
from app.models.project import Project, ProjectSummary
from app.services.project_service import describe_validation_error, parse_object_id
from app.services.query_builder import POPULAR_SORT
from app.utils.exceptions import PersistenceError, ValidationError
from app.utils.logger import logger

PERIODS = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
}
DEFAULT_PERIOD = "7d"

DASHBOARD_TOP_N = 5
SUGGESTIONS_TOP_N = 10

PAGE_VIEW_FIELDS = ("userAgent", "referrer", "sessionId", "timeOnPage", "scrollDepth", "interactionEvents")


def ranked(field: str, limit: Optional[int] = None) -> List[dict]:
    """
    Group on a field and count, highest count first. Ties fall back to
    the label ascending so rankings don't depend on storage order.
    """
    pipeline = [
        {"$group": {"_id": f"${field}", "count": {"$sum": 1}}},
        {"$sort": {"count": -1, "_id": 1}},
    ]
    if limit:
        pipeline.append({"$limit": limit})
    return pipeline


def snapshot_key(label: Any) -> Optional[str]:
    """Map keys cannot contain '.' or start with '$'."""
    if label is None:
        return None
    key = str(label).strip().replace(".", "_").lstrip("$")
    return key or None


def today_utc() -> datetime:
    return datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0)


class AnalyticsAggregator:
    """Platform statistics built from aggregation pipelines over projects and page views."""

    async def _totals(self) -> Dict[str, int]:
        rows = await Project.aggregate([
            {"$group": {
                "_id": None,
                "views": {"$sum": "$metadata.views"},
                "likes": {"$sum": "$metadata.likes"},
            }}
        ]).to_list()
        if not rows:
            return {"views": 0, "likes": 0}
        return {"views": int(rows[0].get("views") or 0), "likes": int(rows[0].get("likes") or 0)}

    async def category_stats(self) -> List[dict]:
        rows = await Project.aggregate([
            {"$group": {
                "_id": "$metadata.category",
                "count": {"$sum": 1},
                "avgViews": {"$avg": "$metadata.views"},
                "totalLikes": {"$sum": "$metadata.likes"},
            }},
            {"$sort": {"count": -1, "_id": 1}},
        ]).to_list()
        for row in rows:
            row["avgViews"] = round(float(row.get("avgViews") or 0), 2)
        return rows

    async def top_labels(self, field: str, limit: int) -> List[dict]:
        """Flatten an array field across all projects and rank its values by frequency."""
        return await Project.aggregate(
            [{"$unwind": f"${field}"}] + ranked(field, limit)
        ).to_list()

    async def category_counts(self) -> List[dict]:
        return await Project.aggregate(ranked("metadata.category")).to_list()

    async def platform_summary(self) -> dict:
        try:
            total_projects = await Project.find_all().count()
            totals = await self._totals()
            categories = await self.category_stats()
            latest = await AnalyticsSnapshot.find_all().sort("-date").limit(1).to_list()
        except PyMongoError as e:
            logger.error(f"Analytics summary failed: {e}")
            raise PersistenceError("Failed to fetch analytics")

        snapshot = latest[0] if latest else None
        return {
            "totalProjects": total_projects,
            "totalViews": totals["views"],
            "totalLikes": totals["likes"],
            "categoryStats": categories,
            "aiUsage": {
                "totalCalls": snapshot.ai_calls if snapshot else 0,
                "totalTokens": snapshot.total_tokens_used if snapshot else 0,
                "averageResponseTime": snapshot.average_response_time if snapshot else 0,
            },
        }

    async def daily_stats(self, since: datetime, until: datetime) -> List[dict]:
        """Page views and distinct viewed projects per UTC day, zero-filled."""
        buckets = await PageView.aggregate([
            {"$match": {"timestamp": {"$gte": since}}},
            {"$group": {
                "_id": {
                    "year": {"$year": "$timestamp"},
                    "month": {"$month": "$timestamp"},
                    "day": {"$dayOfMonth": "$timestamp"},
                },
                "views": {"$sum": 1},
                "projects": {"$addToSet": "$projectId"},
            }},
        ]).to_list()

        rows = [
            {
                "date": datetime(b["_id"]["year"], b["_id"]["month"], b["_id"]["day"]),
                "views": b["views"],
                "uniqueProjects": len(b["projects"]),
            }
            for b in buckets
        ]
        df = pd.DataFrame(rows, columns=["date", "views", "uniqueProjects"])
        df["date"] = pd.to_datetime(df["date"])
        days = pd.date_range(start=since.date(), end=until.date(), freq="D")
        df = df.set_index("date").reindex(days, fill_value=0)

        return [
            {"date": day.strftime("%Y-%m-%d"), "views": int(views), "uniqueProjects": int(unique)}
            for day, views, unique in df.itertuples()
        ]

    async def dashboard(self, period: Optional[str] = None) -> dict:
        period = period or DEFAULT_PERIOD
        if period not in PERIODS:
            raise ValidationError(f"period must be one of: {', '.join(PERIODS)}")

        now = datetime.utcnow()
        since = now - PERIODS[period]

        try:
            total_projects = await Project.find_all().count()
            totals = await self._totals()
            recent_views = await PageView.find({"timestamp": {"$gte": since}}).count()
            recent_projects = await Project.find({"createdAt": {"$gte": since}}).count()
            top_projects = await Project.find_all() \
                .sort(POPULAR_SORT) \
                .limit(DASHBOARD_TOP_N) \
                .project(ProjectSummary) \
                .to_list()
            categories = await self.category_stats()
            daily = await self.daily_stats(since, now)
            top_entities = await self.top_labels("requirements.entities", DASHBOARD_TOP_N)
            top_roles = await self.top_labels("requirements.roles", DASHBOARD_TOP_N)
        except PyMongoError as e:
            logger.error(f"Dashboard aggregation failed: {e}")
            raise PersistenceError("Failed to fetch dashboard analytics")

        return {
            "period": period,
            "since": since.isoformat() + "Z",
            "overview": {
                "totalProjects": total_projects,
                "totalViews": totals["views"],
                "totalLikes": totals["likes"],
                "recentViews": recent_views,
                "recentProjects": recent_projects,
            },
            "topProjects": [
                {
                    "id": str(p.id),
                    "name": p.name,
                    "slug": p.slug,
                    "category": p.metadata.category,
                    "views": p.metadata.views,
                    "likes": p.metadata.likes,
                }
                for p in top_projects
            ],
            "categoryStats": categories,
            "dailyStats": daily,
            "topEntities": top_entities,
            "topRoles": top_roles,
        }

    async def suggestions(self) -> dict:
        try:
            return {
                "topEntities": await self.top_labels("requirements.entities", SUGGESTIONS_TOP_N),
                "topRoles": await self.top_labels("requirements.roles", SUGGESTIONS_TOP_N),
                "categories": await self.category_counts(),
            }
        except PyMongoError as e:
            logger.error(f"Suggestions aggregation failed: {e}")
            raise PersistenceError("Failed to fetch suggestions")

    def build_page_view(self, project_id: str, meta: Optional[dict] = None) -> PageView:
        oid = parse_object_id(project_id)
        if oid is None:
            raise ValidationError("projectId must be a valid project id")
        meta = {k: v for k, v in (meta or {}).items() if k in PAGE_VIEW_FIELDS and v is not None}
        try:
            return PageView(project_id=oid, **meta)
        except PydanticValidationError as e:
            raise ValidationError(describe_validation_error(e))

    async def record_page_view(self, page_view: PageView):
        """Best effort: a lost page view is logged, never raised."""
        try:
            await page_view.insert()
        except Exception as e:
            logger.error(f"Failed to record page view for {page_view.project_id}: {e}")

    async def ingest_creation_event(self, project: Project):
        """
        Fold a newly created project into today's snapshot. Runs after the
        creation response; failures are logged and dropped.
        """
        try:
            stats = project.analytics
            inc = {
                "aiCalls": 1,
                "totalTokensUsed": int(stats.tokens_used or 0),
                "totalResponseTime": float(stats.response_time or 0),
                "totalProjects": 1,
            }
            category = snapshot_key(project.metadata.category)
            if category:
                inc[f"popularCategories.{category}"] = 1
            for entity in dict.fromkeys(project.requirements.entities):
                key = snapshot_key(entity)
                if key:
                    inc[f"popularEntities.{key}"] = 1

            collection = AnalyticsSnapshot.get_motor_collection()
            snapshot = await collection.find_one_and_update(
                {"date": today_utc()},
                {"$inc": inc},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
            await self.refresh_averages(collection, snapshot)
        except Exception as e:
            logger.error(f"Failed to update analytics for project {project.slug}: {e}")

    async def refresh_averages(self, collection, snapshot: dict):
        """
        Write the derived averages for this counter state. Applies only
        while aiCalls still equals the snapshot's, so a refresh computed
        from an older state matches nothing.
        """
        totals = await self._totals()
        project_count = await Project.find_all().count()
        await collection.update_one(
            {"_id": snapshot["_id"], "aiCalls": snapshot["aiCalls"]},
            {"$set": {
                "averageResponseTime": snapshot["totalResponseTime"] / max(snapshot["aiCalls"], 1),
                "averageProjectViews": totals["views"] / project_count if project_count else 0,
            }},
        )
