"""Platform summary, dashboard, page views and snapshot ingestion."""
import asyncio
from datetime import datetime, timedelta

from pymongo.errors import PyMongoError

from app.models.analytics import AnalyticsSnapshot
from app.models.page_view import PageView
from app.models.project import Project
from app.services.analytics_service import AnalyticsAggregator, today_utc


async def _set_views(slug, views):
    await Project.find_one({"slug": slug}).update({"$set": {"metadata.views": views}})


class TestPlatformSummary:
    async def test_empty_platform(self, client):
        body = (await client.get("/api/analytics")).json()
        assert body == {
            "totalProjects": 0,
            "totalViews": 0,
            "totalLikes": 0,
            "categoryStats": [],
            "aiUsage": {"totalCalls": 0, "totalTokens": 0, "averageResponseTime": 0},
        }

    async def test_totals_and_categories(self, client, create_project):
        a = await create_project(name="A", metadata={"category": "social"})
        b = await create_project(name="B", metadata={"category": "social"})
        c = await create_project(name="C", metadata={"category": "business"})
        d = await create_project(name="D", metadata={"category": "personal"})
        await _set_views(a["slug"], 4)
        await _set_views(b["slug"], 6)
        await _set_views(c["slug"], 1)
        await client.post(f"/api/projects/{d['id']}/like")

        body = (await client.get("/api/analytics")).json()
        assert body["totalProjects"] == 4
        assert body["totalViews"] == 11
        assert body["totalLikes"] == 1
        assert [(s["_id"], s["count"]) for s in body["categoryStats"]] == [
            ("social", 2), ("business", 1), ("personal", 1),
        ]
        social = body["categoryStats"][0]
        assert social["avgViews"] == 5.0
        assert social["totalLikes"] == 0

    async def test_ai_usage_from_latest_snapshot(self, client, create_project):
        await create_project(analytics={"tokensUsed": 100, "responseTime": 200})
        await create_project(analytics={"tokensUsed": 50, "responseTime": 400})

        usage = (await client.get("/api/analytics")).json()["aiUsage"]
        assert usage["totalCalls"] == 2
        assert usage["totalTokens"] == 150
        assert usage["averageResponseTime"] == 300


class TestIngestion:
    async def test_snapshot_accumulates(self, create_project):
        await create_project(name="A", requirements={"entities": ["User", "User", "Order"]},
                             analytics={"tokensUsed": 10, "responseTime": 100})
        await create_project(name="B", requirements={"entities": ["User"]}, metadata={"category": "social"},
                             analytics={"tokensUsed": 30, "responseTime": 300})

        snapshots = await AnalyticsSnapshot.find_all().to_list()
        assert len(snapshots) == 1
        snapshot = snapshots[0]
        assert snapshot.date == today_utc()
        assert snapshot.ai_calls == 2
        assert snapshot.total_projects == 2
        assert snapshot.total_tokens_used == 40
        assert snapshot.average_response_time == 200
        assert snapshot.popular_categories == {"healthcare": 1, "social": 1}
        assert snapshot.popular_entities == {"User": 2, "Order": 1}

    async def test_dotted_labels_are_stored_safely(self, create_project):
        await create_project(requirements={"entities": ["Node.js Service", "$Price"]})
        snapshot = (await AnalyticsSnapshot.find_all().to_list())[0]
        assert snapshot.popular_entities == {"Node_js Service": 1, "Price": 1}

    async def test_failure_never_blocks_creation(self, client, monkeypatch):
        def broken(*args, **kwargs):
            raise PyMongoError("analytics store down")

        monkeypatch.setattr(AnalyticsSnapshot, "get_motor_collection", broken)

        resp = await client.post("/api/projects", json={"name": "Still Works", "description": "d"})
        assert resp.status_code == 201

        monkeypatch.undo()
        assert await Project.find_all().count() == 1
        assert await AnalyticsSnapshot.find_all().count() == 0

    async def test_ingest_swallows_errors_directly(self, mongo, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(AnalyticsSnapshot, "get_motor_collection", broken)
        project = Project(name="X", description="Y", slug="x-1")
        await AnalyticsAggregator().ingest_creation_event(project)

    async def test_concurrent_ingests_keep_average_current(self, mongo):
        aggregator = AnalyticsAggregator()
        fast = Project(name="Fast", description="d", slug="fast-1", analytics={"responseTime": 100})
        slow = Project(name="Slow", description="d", slug="slow-1", analytics={"responseTime": 300})

        await asyncio.gather(
            aggregator.ingest_creation_event(fast),
            aggregator.ingest_creation_event(slow),
        )

        snapshot = (await AnalyticsSnapshot.find_all().to_list())[0]
        assert snapshot.ai_calls == 2
        assert snapshot.average_response_time == 200

    async def test_refresh_from_older_counters_is_ignored(self, mongo):
        aggregator = AnalyticsAggregator()
        collection = AnalyticsSnapshot.get_motor_collection()

        await aggregator.ingest_creation_event(
            Project(name="A", description="d", slug="a-1", analytics={"responseTime": 100})
        )
        older = await collection.find_one({"date": today_utc()})
        await aggregator.ingest_creation_event(
            Project(name="B", description="d", slug="b-1", analytics={"responseTime": 300})
        )

        # the first creation's refresh landing after the second one
        await aggregator.refresh_averages(collection, older)

        current = await collection.find_one({"date": today_utc()})
        assert current["aiCalls"] == 2
        assert current["averageResponseTime"] == 200


class TestPageViews:
    async def test_record(self, client, create_project):
        created = await create_project()
        resp = await client.post("/api/analytics/pageview", json={
            "projectId": created["id"],
            "userAgent": "pytest",
            "referrer": "https://example.com",
            "sessionId": "s-1",
            "scrollDepth": 0.5,
        })
        assert resp.status_code == 202
        assert resp.json() == {"message": "Page view recorded"}

        views = await PageView.find_all().to_list()
        assert len(views) == 1
        assert str(views[0].project_id) == created["id"]
        assert views[0].user_agent == "pytest"
        assert views[0].session_id == "s-1"
        assert views[0].scroll_depth == 0.5

    async def test_invalid_project_id_is_400(self, client):
        resp = await client.post("/api/analytics/pageview", json={"projectId": "nope"})
        assert resp.status_code == 400
        assert resp.json()["code"] == "VALIDATION_ERROR"

    async def test_malformed_fields_are_400(self, client, create_project):
        created = await create_project()
        for bad in ({"timeOnPage": "abc"}, {"interactionEvents": [1, 2]}, {"scrollDepth": [0.5]}):
            resp = await client.post("/api/analytics/pageview", json={"projectId": created["id"], **bad})
            assert resp.status_code == 400, bad
            assert resp.json()["code"] == "VALIDATION_ERROR"

        assert await PageView.find_all().count() == 0

    async def test_page_view_does_not_touch_view_counter(self, client, create_project):
        created = await create_project()
        await client.post("/api/analytics/pageview", json={"projectId": created["id"]})
        project = await Project.find_one({"slug": created["slug"]})
        assert project.metadata.views == 0


class TestDashboard:
    async def test_invalid_period_is_400(self, client):
        resp = await client.get("/api/analytics/dashboard", params={"period": "1y"})
        assert resp.status_code == 400

    async def test_default_period(self, client):
        body = (await client.get("/api/analytics/dashboard")).json()
        assert body["period"] == "7d"
        assert len(body["dailyStats"]) == 8
        assert all(day["views"] == 0 for day in body["dailyStats"])
        assert body["topProjects"] == []
        assert body["topEntities"] == []

    async def test_dashboard(self, client, create_project):
        a = await create_project(name="A", requirements={"entities": ["User", "Order"], "roles": ["Admin"]})
        b = await create_project(name="B", requirements={"entities": ["User"], "roles": ["Admin", "Guest"]},
                                 metadata={"category": "social"})
        await _set_views(a["slug"], 2)
        await _set_views(b["slug"], 9)

        for project_id in (a["id"], a["id"], b["id"]):
            await client.post("/api/analytics/pageview", json={"projectId": project_id})

        # outside the 24h window
        await PageView(project_id=a["id"], timestamp=datetime.utcnow() - timedelta(days=3)).insert()

        body = (await client.get("/api/analytics/dashboard", params={"period": "24h"})).json()
        assert body["period"] == "24h"
        assert body["overview"]["totalProjects"] == 2
        assert body["overview"]["totalViews"] == 11
        assert body["overview"]["recentViews"] == 3
        assert body["overview"]["recentProjects"] == 2
        assert [p["name"] for p in body["topProjects"]] == ["B", "A"]
        assert body["topProjects"][0]["views"] == 9

        today = datetime.utcnow().strftime("%Y-%m-%d")
        assert body["dailyStats"][-1] == {"date": today, "views": 3, "uniqueProjects": 2}
        assert sum(day["views"] for day in body["dailyStats"]) == 3

        assert body["topEntities"] == [{"_id": "User", "count": 2}, {"_id": "Order", "count": 1}]
        assert body["topRoles"] == [{"_id": "Admin", "count": 2}, {"_id": "Guest", "count": 1}]
        assert [s["_id"] for s in body["categoryStats"]] == ["healthcare", "social"]

        body = (await client.get("/api/analytics/dashboard", params={"period": "7d"})).json()
        assert body["overview"]["recentViews"] == 4
        assert sum(day["views"] for day in body["dailyStats"]) == 4

    async def test_top_entities_capped_at_five(self, client, create_project):
        await create_project(requirements={"entities": ["A", "B", "C", "D", "E", "F", "G"]})
        body = (await client.get("/api/analytics/dashboard", params={"period": "30d"})).json()
        assert [e["_id"] for e in body["topEntities"]] == ["A", "B", "C", "D", "E"]
        assert len(body["dailyStats"]) == 31
