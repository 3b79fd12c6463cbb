"""Endpoint tests for scan identification, project matching and cost overview."""

import json
import unittest
from datetime import datetime, timezone
from decimal import Decimal

from fastapi.testclient import TestClient

from conftest import make_image_bytes, mock_settings
from scavenger.core.dependencies import (
    get_cost_sink,
    get_matcher,
    get_orchestrator,
    get_scan_cache,
)
from scavenger.main import app
from scavenger.services.ai.common.costs import CostRecord, InMemoryCostSink
from scavenger.services.ai.common.errors import RateLimited
from scavenger.services.ai.common.providers import MockProvider
from scavenger.services.ai.identify.service import IdentificationOrchestrator
from scavenger.services.ai.match.service import PARSE_FAILURE_DIAGNOSTIC, ProjectMatcher
from scavenger.services.scan_cache import ScanCache

IDENTIFY_PAYLOAD = {
    "parent_object": "Desk fan",
    "items": [
        {
            "component_name": "Brushless DC motor",
            "category": "Electromechanical",
            "reusability_score": 8,
            "market_value_low": 3,
            "market_value_high": 6,
            "condition": "Good",
            "confidence": 0.85,
        }
    ],
    "tools_needed": ["Phillips screwdriver"],
}

MATCH_BODY = {
    "inventory": [{"component_name": "Brushless DC motor"}],
    "projects": [{"id": "p1", "name": "Mini fan"}],
}


class _RateLimitedProvider(MockProvider):
    async def generate(self, prompt, **kwargs):
        raise RateLimited(body="quota exceeded")


class _ApiTestCase(unittest.TestCase):
    def setUp(self):
        self.sink = InMemoryCostSink()
        self.cache = ScanCache(ttl_seconds=60, max_entries=10)
        app.dependency_overrides[get_cost_sink] = lambda: self.sink
        app.dependency_overrides[get_scan_cache] = lambda: self.cache
        self.client = TestClient(app)

    def tearDown(self):
        app.dependency_overrides.clear()

    def use_matcher(self, provider=None, **settings):
        matcher = ProjectMatcher(provider=provider, cost_sink=self.sink, settings=mock_settings(**settings))
        app.dependency_overrides[get_matcher] = lambda: matcher

    def use_orchestrator(self, provider=None, **settings):
        orchestrator = IdentificationOrchestrator(
            provider=provider, cost_sink=self.sink, settings=mock_settings(**settings)
        )
        app.dependency_overrides[get_orchestrator] = lambda: orchestrator


class MatchEndpointTests(_ApiTestCase):
    def test_success(self):
        rows = [{"project_id": "p1", "project_name": "Mini fan", "match_score": 88}]
        self.use_matcher(MockProvider(raw_text=json.dumps({"matched_projects": rows})))
        resp = self.client.post("/api/v1/projects/match", json=MATCH_BODY)
        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertEqual(data["matched_projects"][0]["match_score"], 88)
        self.assertNotIn("error", data)
        self.assertEqual(len(self.sink), 1)

    def test_missing_inventory_returns_400(self):
        self.use_matcher(MockProvider())
        resp = self.client.post("/api/v1/projects/match", json={"projects": []})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json(), {"error": "Inventory and projects are required"})

    def test_missing_configuration_returns_500(self):
        self.use_matcher(ai_provider="openai")
        resp = self.client.post("/api/v1/projects/match", json=MATCH_BODY)
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.json(), {"error": "AI service not configured"})
        self.assertEqual(len(self.sink), 0)

    def test_rate_limit_returns_429(self):
        self.use_matcher(_RateLimitedProvider())
        resp = self.client.post("/api/v1/projects/match", json=MATCH_BODY)
        self.assertEqual(resp.status_code, 429)
        self.assertEqual(resp.json(), {"error": "Rate limit exceeded"})

    def test_unparsable_reply_degrades_to_empty_200(self):
        self.use_matcher(MockProvider(raw_text="no idea, sorry"))
        resp = self.client.post("/api/v1/projects/match", json=MATCH_BODY)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"matched_projects": [], "error": PARSE_FAILURE_DIAGNOSTIC})


class IdentifyEndpointTests(_ApiTestCase):
    def _post(self, *images, **form):
        files = [("images", (f"img{i}.png", raw, "image/png")) for i, raw in enumerate(images)]
        data = {"user_id": "u1", **form}
        return self.client.post("/api/v1/scan/identify", files=files, data=data)

    def test_success_then_cache_hit(self):
        provider = MockProvider(raw_text=json.dumps(IDENTIFY_PAYLOAD))
        self.use_orchestrator(provider)
        raw = make_image_bytes(1600, 1200)

        first = self._post(raw)
        self.assertEqual(first.status_code, 200)
        body = first.json()
        self.assertEqual(body["parent_object"], "Desk fan")
        self.assertEqual(body["items"][0]["component_name"], "Brushless DC motor")
        self.assertFalse(body["cached"])
        self.assertEqual(len(body["image_hash"]), 16)

        second = self._post(raw)
        self.assertEqual(second.status_code, 200)
        self.assertTrue(second.json()["cached"])
        self.assertEqual(second.json()["image_hash"], body["image_hash"])
        self.assertEqual(len(provider.calls), 1)
        self.assertEqual(len(self.sink), 1)

    def test_hint_bypasses_cache(self):
        provider = MockProvider(raw_text=json.dumps(IDENTIFY_PAYLOAD))
        self.use_orchestrator(provider)
        raw = make_image_bytes()
        self._post(raw)
        resp = self._post(raw, user_hint="a desk fan")
        self.assertFalse(resp.json()["cached"])
        self.assertEqual(len(provider.calls), 2)

    def test_multiple_images_sent_together(self):
        provider = MockProvider(raw_text=json.dumps(IDENTIFY_PAYLOAD))
        self.use_orchestrator(provider)
        resp = self._post(make_image_bytes(), make_image_bytes(color=(0, 0, 255)))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(provider.calls[0]["images"], 2)

    def test_undecodable_image_returns_400(self):
        self.use_orchestrator(MockProvider())
        resp = self._post(b"not an image")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["detail"]["code"], "decode_error")

    def test_too_many_images_returns_400(self):
        self.use_orchestrator(MockProvider())
        raw = make_image_bytes(8, 8)
        resp = self._post(*([raw] * 6))
        self.assertEqual(resp.status_code, 400)

    def test_parse_failure_returns_partial_detection(self):
        self.use_orchestrator(MockProvider(raw_text="This looks like a Sony radio. condition: Fair"))
        resp = self._post(make_image_bytes())
        self.assertEqual(resp.status_code, 502)
        detail = resp.json()["detail"]
        self.assertEqual(detail["code"], "parse_error")
        self.assertEqual(detail["partial_detection"]["brand"], "Sony")
        self.assertEqual(detail["partial_detection"]["condition"], "Fair")
        self.assertEqual(len(self.sink), 1)

    def test_non_text_envelope_fields_still_200(self):
        payload = {**IDENTIFY_PAYLOAD, "parent_object": 123, "message": {"note": "x"}}
        self.use_orchestrator(MockProvider(raw_text=json.dumps(payload)))
        resp = self._post(make_image_bytes())
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["parent_object"], "123")
        self.assertIsNone(resp.json()["message"])

    def test_rate_limit_returns_429(self):
        self.use_orchestrator(_RateLimitedProvider())
        resp = self._post(make_image_bytes())
        self.assertEqual(resp.status_code, 429)
        self.assertEqual(resp.json()["detail"]["code"], "rate_limited")

    def test_missing_configuration_returns_500(self):
        self.use_orchestrator(ai_provider="claude")
        resp = self._post(make_image_bytes())
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.json()["detail"]["code"], "misconfigured")
        self.assertEqual(len(self.sink), 0)


class AdminCostsEndpointTests(_ApiTestCase):
    def test_overview(self):
        when = datetime(2024, 5, 2, tzinfo=timezone.utc)
        for user_id, cost, correction in [("u1", "1.0", False), ("u1", "2.0", True), ("u2", "4.0", False)]:
            self.sink.append(
                CostRecord(user_id=user_id, cost=Decimal(cost), is_correction=correction, provider="openai", timestamp=when)
            )

        resp = self.client.get("/api/v1/admin/costs")
        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertEqual(Decimal(data["platform_total"]), Decimal("7.0"))
        self.assertEqual(data["total_records"], 3)
        self.assertEqual([u["user_id"] for u in data["users"]], ["u2", "u1"])
        self.assertEqual(data["users"][1]["total_corrections"], 1)
        self.assertEqual(data["by_provider"]["openai"]["count"], 3)
        self.assertEqual(list(data["by_month"]), ["2024-05"])

    def test_empty_overview(self):
        data = self.client.get("/api/v1/admin/costs").json()
        self.assertEqual(data["users"], [])
        self.assertEqual(Decimal(data["average_cost_per_scan"]), Decimal("0"))


class HealthTests(unittest.TestCase):
    def test_health(self):
        resp = TestClient(app).get("/api/v1/health")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["status"], "ok")
