"""HTTP-level tests for the FastAPI routers."""

from unittest.mock import AsyncMock, patch

from kwpilot.models.keyword_models import AnalysisResult, AnalysisSummary
from kwpilot.research.pipeline import CourseResearchResult


class TestSystem:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "service": "kwpilot", "version": "1.0.0"}


class TestPromptRoutes:
    def test_save_list_activate_delete(self, client):
        assert client.get("/prompts").json()["prompts"] == {"seed": None, "analysis": None}

        for text in ("first", "second"):
            response = client.post("/prompts/seed", json={"prompt": text, "change_note": text})
            assert response.status_code == 200

        active = client.get("/prompts/seed").json()["prompt"]
        assert active["version"] == 2 and active["prompt"] == "second"
        assert client.get("/prompts/seed/versions").json()["count"] == 2

        assert client.delete("/prompts/seed/versions/2").status_code == 400
        assert client.post("/prompts/seed/versions/1/activate").json()["prompt"]["is_active"] is True
        assert client.delete("/prompts/seed/versions/2").status_code == 200
        assert client.get("/prompts/seed/versions/2").status_code == 404

    def test_unknown_type(self, client):
        assert client.get("/prompts/banner").status_code == 400
        assert client.post("/prompts/banner", json={"prompt": "x"}).status_code == 400

    def test_missing_active_and_seed_defaults(self, client):
        assert client.get("/prompts/analysis").status_code == 404
        assert client.post("/prompts/seed-defaults").json()["seeded"] == ["seed", "analysis"]
        stats = client.get("/prompts/stats").json()["stats"]
        assert stats["analysis"]["active_version"] == 1


class TestSessionRoutes:
    def test_crud(self, client):
        created = client.post(
            "/sessions",
            json={"course_name": "AZ-104", "course_url": "https://example.com/az-104", "vendor": "Microsoft"},
        ).json()
        session_id = created["session_id"]

        detail = client.get(f"/sessions/{session_id}").json()["session"]
        assert detail["vendor"] == "Microsoft"
        assert detail["analyzed_keywords"] == []

        patched = client.patch(f"/sessions/{session_id}", json={"to_add_count": 4})
        assert patched.json()["session"]["to_add_count"] == 4
        assert client.patch(f"/sessions/{session_id}", json={"colour": "red"}).status_code == 400

        listing = client.get("/sessions", params={"search": "az-104"}).json()
        assert listing["total_count"] == 1
        assert "analyzed_keywords" not in listing["sessions"][0]
        assert client.get("/sessions/vendors").json()["vendors"] == ["Microsoft"]

        match = client.post("/sessions/find-match", json={"course_url": "https://example.com/az-104"}).json()
        assert match["found"] is True

        assert client.delete(f"/sessions/{session_id}").status_code == 200
        assert client.delete(f"/sessions/{session_id}").status_code == 404
        assert client.get(f"/sessions/{session_id}").status_code == 404

    def test_patch_missing(self, client):
        assert client.patch("/sessions/404", json={"error": "x"}).status_code == 404

    def test_bulk_delete_and_clear(self, client):
        ids = [client.post("/sessions", json={"course_name": f"C{i}"}).json()["session_id"] for i in range(3)]
        assert client.post("/sessions/bulk-delete", json={"session_ids": ids[:2]}).json()["deleted"] == 2
        assert client.delete("/sessions").json()["deleted"] == 1


class TestCacheRoutes:
    def test_empty_stats(self, client):
        stats = client.get("/cache/keywords/stats").json()["stats"]
        assert stats["total_entries"] == 0
        assert client.delete("/cache/keywords/expired").json()["deleted"] == 0
        assert client.get("/cache/queue").json()["queue"]["total"] == 0
        assert client.get("/cache/rate-limits").json()["rate_limits"] == []


class TestKeywordRoutes:
    def test_fetch_ideas_validation(self, client):
        response = client.post("/keywords/fetch-ideas", json={"seed_keywords": ["x"], "source": "bing"})
        assert response.status_code == 400

    def test_analyze_with_no_results_is_500(self, client):
        empty = AnalysisResult(analyzed_keywords=[], summary=AnalysisSummary())
        with patch("kwpilot.api.keyword_routes.analyze_keywords", AsyncMock(return_value=empty)):
            response = client.post(
                "/keywords/analyze",
                json={"course_name": "AZ-104", "keywords": [{"keyword": "az 104"}], "prompt": "p"},
            )
        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to analyze any keywords"


class TestResearchRoutes:
    def test_batch_limits(self, client):
        assert client.post("/research/batch", json={"courses": []}).status_code == 400
        courses = [{"course_name": f"C{i}", "course_url": f"https://example.com/{i}"} for i in range(51)]
        assert client.post("/research/batch", json={"courses": courses}).status_code == 400

    def test_run(self, client):
        result = CourseResearchResult(course_name="AZ-104", status="completed", session_id=1, reused=True)
        with patch("kwpilot.api.research_routes.run_course_research", AsyncMock(return_value=result)):
            response = client.post(
                "/research/run",
                json={"course": {"course_name": "AZ-104", "course_url": "https://example.com/az-104"}},
            )
        assert response.status_code == 200
        assert response.json()["result"]["reused"] is True


class TestImportRoutes:
    def test_upload_performance_report(self, client):
        csv = (
            "Campaign report\n\"1 January 2026 - 31 January 2026\"\n"
            "Campaign state,Campaign,Clicks\nEnabled,AWS,10\n"
        )
        response = client.post(
            "/import/campaign-performance",
            files={"file": ("report.csv", csv.encode("utf-8"), "text/csv")},
            data={"customer_id": "351-501-2934"},
        )
        assert response.status_code == 200
        assert response.json()["created"] == 1
        assert client.get("/import/knowledge-base").json()["counts"]["campaigns"] == 1

    def test_empty_file(self, client):
        response = client.post(
            "/import/editor-export",
            files={"file": ("export.csv", b"", "text/csv")},
        )
        assert response.status_code == 400


class TestAuthRoutes:
    def test_state_mismatch_rejected(self, client):
        client.cookies.set("gads_oauth_state", "expected")
        response = client.get("/auth/google-ads/callback", params={"code": "c", "state": "forged"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid OAuth state"

    def test_callback_stores_token(self, client):
        body = {"access_token": "at", "refresh_token": "rt", "expires_in": 3600, "scope": "https://www.googleapis.com/auth/adwords"}
        client.cookies.set("gads_oauth_state", "s1")
        with patch("kwpilot.connectors.google_ads.client.exchange_code", AsyncMock(return_value=body)):
            response = client.get(
                "/auth/google-ads/callback",
                params={"code": "c", "state": "s1"},
                follow_redirects=False,
            )
        assert response.status_code == 303
        assert response.headers["location"] == "/auth/google-ads/status"
        status = client.get("/auth/google-ads/status").json()
        assert status["has_token"] is True and status["source"] == "runtime"

    def test_provider_error_reported(self, client):
        response = client.get("/auth/linkedin/callback", params={"error": "user_cancelled_login"})
        assert response.status_code == 400

    def test_disconnect(self, client):
        assert client.delete("/auth/linkedin").json()["deleted"] == 0
        assert client.get("/auth/linkedin/status").json()["validity"] == "no_token"
