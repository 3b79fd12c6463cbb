"""Tests for the project matcher."""

import asyncio
import json
import unittest

from pydantic import ValidationError as SchemaValidationError

from conftest import mock_settings
from scavenger.services.ai.common.costs import InMemoryCostSink
from scavenger.services.ai.common.errors import Misconfigured, RateLimited, ValidationError
from scavenger.services.ai.common.json_tools import ParseStage
from scavenger.services.ai.common.providers import MockProvider
from scavenger.services.ai.match.contracts import MatchResult
from scavenger.services.ai.match.service import (
    PARSE_FAILURE_DIAGNOSTIC,
    ProjectMatcher,
    sort_by_score,
)

INVENTORY = [{"component_name": "ESP32", "quantity": 1}, {"component_name": "OLED display"}]
PROJECTS = [{"id": "p1", "name": "Weather station"}, {"id": "p2", "name": "Smart lamp"}]


def _response(rows):
    return json.dumps({"matched_projects": rows})


def _row(pid, score, **extra):
    return {"project_id": pid, "project_name": f"Project {pid}", "match_score": score, **extra}


class _RateLimitedProvider(MockProvider):
    async def generate(self, prompt, **kwargs):
        raise RateLimited()


def _matcher(provider, sink=None, **settings):
    return ProjectMatcher(
        provider=provider,
        cost_sink=sink if sink is not None else InMemoryCostSink(),
        settings=mock_settings(**settings),
    )


class MatchResultTests(unittest.TestCase):
    def test_score_rounded(self):
        self.assertEqual(MatchResult.model_validate(_row("p1", 74.6)).match_score, 75)

    def test_score_out_of_range_rejected(self):
        with self.assertRaises(SchemaValidationError):
            MatchResult.model_validate(_row("p1", 140))

    def test_non_numeric_score_rejected(self):
        with self.assertRaises(SchemaValidationError):
            MatchResult.model_validate(_row("p1", None))

    def test_non_finite_score_rejected(self):
        for score in (float("inf"), float("-inf"), float("nan"), "Infinity"):
            with self.assertRaises(SchemaValidationError):
                MatchResult.model_validate(_row("p1", score))

    def test_components_have_deduplicated_in_order(self):
        row = _row("p1", 50, components_have=["LED", "ESP32", "LED"])
        self.assertEqual(MatchResult.model_validate(row).components_have, ["LED", "ESP32"])

    def test_numeric_project_id_coerced(self):
        self.assertEqual(MatchResult.model_validate(_row(42, 10)).project_id, "42")


class MatchTests(unittest.TestCase):
    def test_model_order_preserved_by_default(self):
        provider = MockProvider(raw_text=_response([_row("p2", 40), _row("p1", 90)]))
        outcome = asyncio.run(_matcher(provider).match(INVENTORY, PROJECTS))
        self.assertEqual([m.project_id for m in outcome.matched_projects], ["p2", "p1"])
        self.assertEqual(outcome.parse_stage, ParseStage.DIRECT)
        self.assertIsNone(outcome.error)

    def test_resort_is_stable_descending(self):
        rows = [_row("a", 50), _row("b", 90), _row("c", 50), _row("d", 90)]
        outcome = asyncio.run(_matcher(MockProvider(raw_text=_response(rows))).match([], [], resort=True))
        self.assertEqual([m.project_id for m in outcome.matched_projects], ["b", "d", "a", "c"])

    def test_bare_list_response_accepted(self):
        provider = MockProvider(raw_text=json.dumps([_row("p1", 60)]))
        outcome = asyncio.run(_matcher(provider).match(INVENTORY, PROJECTS))
        self.assertEqual(len(outcome.matched_projects), 1)

    def test_malformed_rows_dropped(self):
        rows = [_row("p1", 60), {"project_name": "no id", "match_score": 10}, _row("p3", "high")]
        outcome = asyncio.run(_matcher(MockProvider(raw_text=_response(rows))).match(INVENTORY, PROJECTS))
        self.assertEqual([m.project_id for m in outcome.matched_projects], ["p1"])
        self.assertEqual(outcome.dropped, 2)

    def test_overflowing_score_row_dropped(self):
        raw = (
            '{"matched_projects": [{"project_id": "p1", "match_score": 1e999}, '
            '{"project_id": "p2", "match_score": 70}]}'
        )
        outcome = asyncio.run(_matcher(MockProvider(raw_text=raw)).match(INVENTORY, PROJECTS))
        self.assertEqual([m.project_id for m in outcome.matched_projects], ["p2"])
        self.assertEqual(outcome.dropped, 1)

    def test_unparsable_response_degrades_to_empty_result(self):
        sink = InMemoryCostSink()
        provider = MockProvider(raw_text="Sorry, I can't help with that.")
        outcome = asyncio.run(_matcher(provider, sink).match(INVENTORY, PROJECTS))
        self.assertEqual(outcome.matched_projects, [])
        self.assertEqual(outcome.error, PARSE_FAILURE_DIAGNOSTIC)
        self.assertEqual(outcome.parse_stage, ParseStage.FAILED)
        self.assertEqual(outcome.to_payload(), {"matched_projects": [], "error": PARSE_FAILURE_DIAGNOSTIC})
        self.assertEqual(len(sink), 1)

    def test_missing_inputs_rejected_without_call(self):
        provider = MockProvider()
        with self.assertRaises(ValidationError):
            asyncio.run(_matcher(provider).match(None, PROJECTS))
        with self.assertRaises(ValidationError):
            asyncio.run(_matcher(provider).match(INVENTORY, None))
        with self.assertRaises(ValidationError):
            asyncio.run(_matcher(provider).match("ESP32", PROJECTS))
        self.assertEqual(provider.calls, [])

    def test_missing_credentials(self):
        matcher = ProjectMatcher(settings=mock_settings(ai_provider="claude"))
        with self.assertRaises(Misconfigured):
            asyncio.run(matcher.match(INVENTORY, PROJECTS))

    def test_rate_limit_propagates_and_is_billed_once(self):
        sink = InMemoryCostSink()
        with self.assertRaises(RateLimited):
            asyncio.run(_matcher(_RateLimitedProvider(), sink).match(INVENTORY, PROJECTS))
        records = sink.snapshot()
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].scope, "match")

    def test_prompt_carries_inventory_and_catalog(self):
        provider = MockProvider(raw_text=_response([]))
        asyncio.run(_matcher(provider).match(INVENTORY, PROJECTS))
        prompt = provider.calls[0]["prompt"]
        self.assertIn("OLED display", prompt)
        self.assertIn("Smart lamp", prompt)
        self.assertIn("matched_projects", provider.calls[0]["system_prompt"])


def test_sort_by_score_ties_keep_input_order():
    rows = [MatchResult.model_validate(_row(pid, score)) for pid, score in [("x", 10), ("y", 30), ("z", 10)]]
    assert [r.project_id for r in sort_by_score(rows)] == ["y", "x", "z"]
