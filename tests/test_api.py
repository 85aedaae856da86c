"""API tests for jobs, videos and usage routes over file stores in a temp dir."""

import pytest
from fastapi.testclient import TestClient

from backend.main import create_app
from cadence.brands.models import Brand, BrandVideoConfig
from cadence.brands.store import FileBrandStore
from cadence.media import FileMediaStore
from cadence.providers.veo import GeneratedVideo
from cadence.video.service import VideoGenerationService
from cadence.video.usage_store import FileVideoUsageStore, VideoUsageRecord

JOBS = "/api/generation-jobs"


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as c:
        yield c


@pytest.fixture
def brands(settings):
    store = FileBrandStore(settings.data_dir)
    store.save(
        Brand(id="brand-1", name="Acme", video_config=BrandVideoConfig(enabled=True, monthly_budget_usd=10.0, daily_limit=5))
    )
    store.save(Brand(id="brand-off", name="Dormant"))
    return store


def _create(client, content_id="c1", type="carousel", total_items=5):
    response = client.post(JOBS, json={"contentId": content_id, "type": type, "totalItems": total_items})
    assert response.status_code == 200
    return response.json()["job"]


def test_health(client, settings):
    for path in ("/health", "/api/health"):
        response = client.get(path)
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "data_dir": str(settings.data_dir)}


class TestJobsRoutes:
    def test_create_and_fetch(self, client):
        job = _create(client)
        assert job["status"] == "pending"
        assert (job["progress"], job["completed_items"], job["total_items"]) == (0, 0, 5)
        assert job["error_message"] is None

        fetched = client.get(JOBS, params={"jobId": job["id"]}).json()
        assert fetched == {"success": True, "job": job}

    @pytest.mark.parametrize(
        "body",
        [
            {"type": "single"},
            {"contentId": "c1", "type": "video"},
            {"contentId": "c1", "type": "single", "totalItems": 0},
        ],
    )
    def test_create_rejects_bad_bodies(self, client, body):
        assert client.post(JOBS, json=body).status_code == 400

    def test_unknown_job(self, client):
        response = client.get(JOBS, params={"jobId": "job_missing"})
        assert response.status_code == 404
        assert response.json()["detail"] == "Job not found"

    def test_job_ids_cannot_reach_other_data_files(self, client, brands, settings):
        FileVideoUsageStore(settings.data_dir).record(
            VideoUsageRecord(brand_id="brand-1", model="veo-3.1-fast", duration_seconds=5, cost_usd=9.9)
        )
        estimate = {"brandId": "brand-1", "model": "veo-3.1-fast", "duration": 5}
        assert client.post("/api/videos/estimate", json=estimate).json()["canGenerate"] is False

        for job_id in ("../video_usage", "../brands"):
            assert client.get(JOBS, params={"jobId": job_id}).status_code == 404
            assert client.delete(JOBS, params={"jobId": job_id}).status_code == 200

        assert (settings.data_dir / "video_usage.json").exists()
        assert brands.get("brand-1") is not None
        after = client.post("/api/videos/estimate", json=estimate).json()
        assert after["canGenerate"] is False
        assert after["limits"]["budgetRemaining"] == pytest.approx(0.1)

    @pytest.mark.parametrize("content_id", ["../../escaped", "c1/../x", "c 1"])
    def test_content_id_must_be_a_plain_token(self, client, brands, content_id):
        job = client.post(JOBS, json={"contentId": content_id, "type": "single"})
        assert job.status_code == 400
        video = client.post(
            "/api/videos/generate", json={"contentId": content_id, "brandId": "brand-1", "prompt": "Harbor"}
        )
        assert video.status_code == 400

    def test_completed_carousel_scenario(self, client):
        job = _create(client)
        response = client.patch(
            JOBS, json={"jobId": job["id"], "completedItems": 5, "status": "completed", "progress": 100}
        )
        assert response.status_code == 200
        assert response.json()["job"]["status"] == "completed"

        active = client.get(JOBS, params={"contentId": "c1", "activeOnly": "true"}).json()
        assert active["jobs"] == []
        everything = client.get(JOBS, params={"contentId": "c1"}).json()
        assert [j["id"] for j in everything["jobs"]] == [job["id"]]

        late_failure = client.patch(JOBS, json={"jobId": job["id"], "status": "failed", "errorMessage": "late"})
        assert late_failure.status_code == 409

    def test_patch_validation(self, client):
        job = _create(client)
        assert client.patch(JOBS, json={"progress": 10}).status_code == 400
        assert client.patch(JOBS, json={"jobId": "job_missing", "progress": 10}).status_code == 404
        assert client.patch(JOBS, json={"jobId": job["id"], "progress": 150}).status_code == 422
        # progress needs the job to be started first
        assert client.patch(JOBS, json={"jobId": job["id"], "progress": 10}).status_code == 422

    def test_patch_leaves_omitted_fields(self, client):
        job = _create(client)
        client.patch(JOBS, json={"jobId": job["id"], "status": "generating", "currentStep": "Slide 1"})
        updated = client.patch(JOBS, json={"jobId": job["id"], "progress": 40, "completedItems": 2}).json()["job"]
        assert updated["current_step"] == "Slide 1"
        assert (updated["progress"], updated["completed_items"]) == (40, 2)

    def test_list_active_and_delete(self, client):
        running = _create(client, "c1")
        done = _create(client, "c1", type="single", total_items=1)
        other = _create(client, "c2", type="composite", total_items=1)
        client.patch(JOBS, json={"jobId": done["id"], "status": "completed"})

        active_ids = [j["id"] for j in client.get(JOBS).json()["jobs"]]
        assert active_ids == [other["id"], running["id"]]

        assert client.delete(JOBS, params={"contentId": "c1"}).json() == {"success": True, "deleted": 1}
        assert client.delete(JOBS, params={"jobId": other["id"]}).json() == {"success": True}
        assert client.delete(JOBS, params={"jobId": other["id"]}).status_code == 200
        assert client.delete(JOBS).status_code == 400


class TestVideoRoutes:
    def test_estimate(self, client, brands):
        response = client.post(
            "/api/videos/estimate",
            json={"brandId": "brand-1", "model": "veo-3.0", "duration": 8, "includeAudio": True},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["canGenerate"] is True
        assert body["estimate"]["totalCost"] == pytest.approx(6.0)
        assert body["estimate"]["formatted"] == "$6.00"
        assert body["limits"]["budgetRemaining"] == pytest.approx(10.0)
        assert body["warning"] is None

    def test_estimate_disabled_brand(self, client, brands):
        body = client.post("/api/videos/estimate", json={"brandId": "brand-off"}).json()
        assert body["enabled"] is False
        assert body["canGenerate"] is False
        assert body["estimate"] is None
        assert "not enabled" in body["warning"]

    def test_estimate_errors(self, client, brands):
        assert client.post("/api/videos/estimate", json={}).status_code == 400
        assert client.post("/api/videos/estimate", json={"brandId": "ghost"}).status_code == 404

    def test_usage(self, client, brands, settings):
        FileVideoUsageStore(settings.data_dir).record(
            VideoUsageRecord(brand_id="brand-1", content_id="c1", model="veo-3.1-fast", duration_seconds=5, cost_usd=0.75)
        )
        body = client.get("/api/videos/usage", params={"brandId": "brand-1"}).json()
        monthly = body["usage"]["monthly"]
        assert monthly["spent"] == pytest.approx(0.75)
        assert monthly["remainingFormatted"] == "$9.25"
        assert monthly["videoCount"] == 1
        assert monthly["statusColor"] == "green"
        assert body["usage"]["daily"] == {
            "count": 1,
            "limit": 5,
            "remaining": 4,
            "spent": pytest.approx(0.75),
            "spentFormatted": "$0.75",
        }
        assert body["recentVideos"][0]["contentId"] == "c1"

    def test_usage_errors(self, client, brands):
        assert client.get("/api/videos/usage").status_code == 400
        assert client.get("/api/videos/usage", params={"brandId": "ghost"}).status_code == 404

    def test_update_video_config(self, client, brands):
        response = client.patch(
            "/api/videos/usage",
            json={"brandId": "brand-off", "videoConfig": {"enabled": True, "monthly_budget_usd": 25}},
        )
        assert response.status_code == 200
        assert response.json()["videoConfig"]["enabled"] is True
        assert brands.get("brand-off").video_config.monthly_budget_usd == 25

        invalid = client.patch(
            "/api/videos/usage", json={"brandId": "brand-off", "videoConfig": {"monthly_budget_usd": -5}}
        )
        assert invalid.status_code == 400
        assert client.patch("/api/videos/usage", json={"brandId": "ghost"}).status_code == 404

    def test_generate_without_api_key_fails_job(self, client, brands):
        response = client.post(
            "/api/videos/generate", json={"contentId": "c9", "brandId": "brand-1", "prompt": "A harbor at dawn"}
        )
        assert response.status_code == 500
        detail = response.json()["detail"]
        assert detail["code"] == "NO_API_KEY"

        job = client.get(JOBS, params={"jobId": detail["jobId"]}).json()["job"]
        assert job["status"] == "failed"
        assert job["type"] == "video"
        assert job["error_code"] == "NO_API_KEY"

    def test_generate_refused_by_brand_settings(self, client, brands):
        disabled = client.post(
            "/api/videos/generate", json={"contentId": "c9", "brandId": "brand-off", "prompt": "Harbor"}
        )
        assert disabled.status_code == 403
        assert client.get(JOBS, params={"contentId": "c9"}).json()["jobs"] == []

        assert client.post("/api/videos/generate", json={"contentId": "c9", "prompt": "Harbor"}).status_code == 400
        missing = client.post("/api/videos/generate", json={"contentId": "c9", "brandId": "ghost", "prompt": "Harbor"})
        assert missing.status_code == 404

    def test_generate_success(self, client, brands, settings):
        class InlineVeo:
            async def start_generation(self, model_id, prompt, aspect_ratio):
                return "operations/op-1"

            async def wait_for_video(self, operation_name, on_poll=None):
                return GeneratedVideo(data=b"mp4")

            async def download(self, uri):
                raise AssertionError("inline video needs no download")

        services = client.app.state.services
        services.video = VideoGenerationService(
            services.tracker,
            services.brands,
            services.video_usage,
            FileMediaStore(settings.media_dir),
            services.ledger,
            provider=InlineVeo(),
        )

        response = client.post(
            "/api/videos/generate",
            json={"contentId": "c9", "brandId": "brand-1", "prompt": "Harbor", "duration": 6, "platform": "tiktok"},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["generated"] is True
        assert body["job"]["status"] == "completed"
        assert body["video"] == {"path": body["video"]["path"], "duration": 6, "hasAudio": False}
        assert (settings.media_dir / body["video"]["path"]).read_bytes() == b"mp4"
        assert body["cost"]["formatted"] == "$0.90"
        assert body["model"] == {"key": "veo-3.1-fast", "name": "Veo 3.1 Fast"}

        summary = client.get("/api/usage/summary").json()
        assert summary["summary"]["by_service"]["google"]["calls"] == 1
        assert summary["recent"][-1]["operation"] == "video_generation"


def test_usage_summary_starts_empty(client):
    body = client.get("/api/usage/summary", params={"limit": 5}).json()
    assert body["success"] is True
    assert body["summary"]["total_calls"] == 0
    assert body["recent"] == []
