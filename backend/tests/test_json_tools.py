"""Tests for staged structured-data extraction."""

import unittest

from scavenger.services.ai.common.json_tools import (
    ParseStage,
    extract_json,
    parse_structured,
    repair_truncated_json,
)


class ParseStructuredTests(unittest.TestCase):
    def test_direct_object(self):
        outcome = parse_structured('{"items": [], "parent_object": "radio"}')
        self.assertEqual(outcome.stage, ParseStage.DIRECT)
        self.assertEqual(outcome.data["parent_object"], "radio")

    def test_fenced_block_matches_bare_payload(self):
        bare = '{"items": [{"component_name": "LED"}]}'
        fenced = f"Here you go:\n```json\n{bare}\n```\nEnjoy."
        direct = parse_structured(bare)
        unwrapped = parse_structured(fenced)
        self.assertEqual(unwrapped.stage, ParseStage.UNWRAPPED)
        self.assertEqual(unwrapped.data, direct.data)

    def test_fence_without_language_tag(self):
        outcome = parse_structured('```\n{"a": 1}\n```')
        self.assertEqual(outcome.stage, ParseStage.UNWRAPPED)
        self.assertEqual(outcome.data, {"a": 1})

    def test_object_embedded_in_prose(self):
        outcome = parse_structured('Result: {"a": {"b": "}"}} trailing words')
        self.assertEqual(outcome.stage, ParseStage.UNWRAPPED)
        self.assertEqual(outcome.data, {"a": {"b": "}"}})

    def test_embedded_array(self):
        self.assertEqual(extract_json("scores: [1, 2, 3] done"), [1, 2, 3])

    def test_truncated_object_repaired(self):
        text = '```json\n{"parent_object": "router", "items": [{"component_name": "Capacitor", "description": "Electroly'
        outcome = parse_structured(text)
        self.assertEqual(outcome.stage, ParseStage.REPAIRED)
        self.assertEqual(outcome.data["parent_object"], "router")
        self.assertEqual(outcome.data["items"][0]["component_name"], "Capacitor")
        self.assertIsNone(outcome.data["items"][0]["description"])

    def test_plain_prose_fails(self):
        outcome = parse_structured("I could not identify this object, sorry.")
        self.assertEqual(outcome.stage, ParseStage.FAILED)
        self.assertFalse(outcome.ok)
        self.assertIsNone(outcome.data)

    def test_empty_fails(self):
        self.assertFalse(parse_structured("").ok)
        self.assertFalse(parse_structured(None).ok)
        self.assertIsNone(extract_json("   "))


class RepairTruncatedJsonTests(unittest.TestCase):
    def test_closes_open_containers(self):
        self.assertEqual(repair_truncated_json('{"a": [1, 2'), '{"a": [1, 2]}')

    def test_drops_dangling_key(self):
        self.assertEqual(repair_truncated_json('{"a": 1, "b":'), '{"a": 1}')

    def test_drops_trailing_comma(self):
        self.assertEqual(repair_truncated_json('{"a": 1,'), '{"a": 1}')

    def test_unterminated_key_dropped(self):
        self.assertEqual(repair_truncated_json('{"a": 1, "ke'), '{"a": 1}')

    def test_unterminated_value_becomes_null(self):
        self.assertEqual(repair_truncated_json('{"a": "hel'), '{"a":null}')

    def test_escaped_quote_inside_string(self):
        self.assertEqual(repair_truncated_json('{"a": "say \\"hi\\"", "b": [true'), '{"a": "say \\"hi\\"", "b": [true]}')
