"""HTTP surface tests with the database and orchestrator swapped for test doubles."""

import os
import random
import unittest
from datetime import datetime
from tempfile import TemporaryDirectory

from fastapi import FastAPI
from fastapi.testclient import TestClient

from autopost.api import deps
from autopost.api.router import router
from autopost.core import rate_limit
from autopost.core.settings import settings
from autopost.db.session import get_db
from autopost.services.notifier import Notifier
from autopost.services.storage import MediaStorage
from autopost.workers.orchestrator import PipelineOrchestrator
from fakes import Clock, FakeCompositor, FakeHookGenerator, RecordingSleep, add_account, add_job, make_session_factory
from test_orchestrator import CONFIG


class TestApi(unittest.TestCase):
    def setUp(self):
        self.tmpdir = TemporaryDirectory()
        self.Session = make_session_factory(self.tmpdir.name)
        storage = MediaStorage(os.path.join(self.tmpdir.name, "static"), "https://media.example.com")
        self.orchestrator = PipelineOrchestrator(
            session_factory=self.Session, config=CONFIG,
            compositor=FakeCompositor(storage.videos_dir), hook_generator=FakeHookGenerator(),
            notifier=Notifier([]), storage=storage, clock=Clock(), sleep=RecordingSleep(), rng=random.Random(1),
        )
        rate_limit._limiter = rate_limit.InMemoryRateLimiter()

        def override_db():
            db = self.Session()
            try:
                yield db
            finally:
                db.close()

        app = FastAPI()
        app.include_router(router)
        app.dependency_overrides[get_db] = override_db
        app.dependency_overrides[deps.get_orchestrator] = lambda: self.orchestrator
        self.client = TestClient(app)
        self.db = self.Session()

    def tearDown(self):
        self.db.close()
        self.tmpdir.cleanup()
        rate_limit._limiter = None
        settings.cron_secret = ""

    def test_health(self):
        resp = self.client.get("/health")
        self.assertEqual(resp.status_code, 200)
        self.assertIn("ok", resp.json())

    def test_create_and_run_job(self):
        add_account(self.db)
        resp = self.client.post("/api/jobs", json={"product_name": "Desk Lamp",
                                                   "image_urls": ["https://x/1.jpg", "https://x/1.jpg"]})
        self.assertEqual(resp.status_code, 200)
        job = resp.json()
        self.assertEqual(job["image_urls"], ["https://x/1.jpg"])
        self.assertIn("X-RateLimit-Remaining", resp.headers)

        resp = self.client.post("/api/pipeline/run", json={"job_id": job["id"], "video": {"text_style": "neon"}})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["stage"], "scheduled")

        resp = self.client.get(f"/api/jobs/progress?ids={job['id']}")
        self.assertEqual(resp.json()[0]["progress"], 100)

        resp = self.client.get(f"/api/jobs/{job['id']}")
        self.assertIsNotNone(resp.json()["scheduled_at"])

    def test_run_unknown_job(self):
        resp = self.client.post("/api/pipeline/run", json={"job_id": "missing"})
        self.assertEqual(resp.status_code, 404)

    def test_text_watermark_without_text_is_rejected(self):
        job = add_job(self.db)
        resp = self.client.post("/api/pipeline/run", json={
            "job_id": job.id, "video": {"watermark": {"enabled": True, "type": "text"}}})
        self.assertEqual(resp.status_code, 400)

    def test_get_missing_job(self):
        self.assertEqual(self.client.get("/api/jobs/nope").status_code, 404)

    def test_bulk_endpoints_are_rate_limited(self):
        codes = [self.client.post("/api/jobs/retry", json={"job_ids": []}).status_code for _ in range(11)]
        self.assertEqual(codes[:10], [400] * 10)
        self.assertEqual(codes[10], 429)

    def test_scheduler_stats_and_next_slot(self):
        add_job(self.db)
        stats = self.client.get("/api/scheduler/stats").json()
        self.assertEqual(stats["pending"], 1)
        slot = self.client.get("/api/pipeline/next-slot").json()
        self.assertNotIn("next_slot", slot)
        scheduled_at = datetime.fromisoformat(slot["scheduled_at"].replace("Z", "+00:00"))
        self.assertIn(scheduled_at.hour, CONFIG.best_posting_hours)

    def test_cron_requires_secret(self):
        self.assertEqual(self.client.post("/api/cron/tick").status_code, 401)
        settings.cron_secret = "s3cret"
        self.assertEqual(self.client.post("/api/cron/tick", headers={"Authorization": "Bearer nope"}).status_code, 401)

        resp = self.client.post("/api/cron/tick", headers={"Authorization": "Bearer s3cret"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["pipelines"]["processed"], 0)


if __name__ == "__main__":
    unittest.main()
