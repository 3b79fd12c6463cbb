"""Component identification: one normalized still in, structured items out.

Failure policy:
  - ``Misconfigured`` / ``ValidationError`` are raised before any network
    call and emit no cost record.
  - ``RateLimited`` / ``UpstreamFailure`` are raised once, never retried.
  - An unparsable body raises ``ParseError``; there is no safe empty result
    for a single identification.
Every call that got an HTTP response emits exactly one ``CostRecord``.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError as SchemaValidationError

from scavenger.core.config import Settings, get_settings
from scavenger.core.image_processing import NormalizedImage

from ..common import router as ai_router
from ..common.costs import CostSink, build_cost_record, emit
from ..common.errors import ParseError, UpstreamFailure, ValidationError
from ..common.json_tools import ParseStage, parse_structured
from ..common.providers.base import BaseProvider, ProviderImage, ProviderResult
from .contracts import Disassembly, IdentifiedItem

_module_logger = logging.getLogger(__name__)

IDENTIFICATION_PROMPT = """You are Scavenger AI, an expert at identifying salvageable components from electronics, devices, and materials.

Analyze the provided image(s) and BREAK DOWN the object into its individual salvageable internal components.
For a typical electronic device, identify {min_components}-{max_components} components.

RULES:
1. Multiple images show the SAME OBJECT from different angles - combine the information.
2. IGNORE plastic casing, screws, rubber feet, labels, packaging.
3. FOCUS ON chips, ICs, capacitors, motors, switches, LEDs, displays, sensors, connectors, cables, PCBs, batteries, speakers, antennas.
4. Group similar components when there are many and estimate quantities.

For EACH component provide:
- component_name: specific name with quantity if applicable
- category: one of ICs/Chips, Passive Components, Electromechanical, Connectors, Display/LEDs, Sensors, Power, PCB, Other
- specifications: key specs as an object
- technical_specs: {{"voltage", "power_rating", "part_number", "notes"}} (strings or null)
- source_info: {{"datasheet_url", "purchase_url"}} (strings or null)
- reusability_score: 1-10 (10 = maker favourites such as ESP32 or OLED displays)
- market_value_low / market_value_high: estimated USD value for the quantity
- condition: New, Good, Fair, or For Parts
- confidence: 0.0 to 1.0
- description, common_uses (3-5 ideas), quantity

ALWAYS respond with valid JSON in exactly this shape:
{{
  "parent_object": "string",
  "items": [
    {{
      "component_name": "string",
      "category": "string",
      "specifications": {{}},
      "technical_specs": {{"voltage": null, "power_rating": null, "part_number": null, "notes": null}},
      "source_info": {{"datasheet_url": null, "purchase_url": null}},
      "reusability_score": 0,
      "market_value_low": 0,
      "market_value_high": 0,
      "condition": "string",
      "confidence": 0.0,
      "description": "string",
      "common_uses": ["string"],
      "quantity": 1
    }}
  ],
  "total_estimated_value_low": 0,
  "total_estimated_value_high": 0,
  "salvage_difficulty": "Easy | Medium | Hard",
  "tools_needed": ["string"],
  "disassembly": {{
    "steps": ["string"],
    "difficulty": "Easy | Medium | Hard",
    "time_estimate": "string",
    "injury_risk": "Low | Medium | High",
    "damage_risk": "Low | Medium | High",
    "safety_warnings": ["string"],
    "tutorial_url": null,
    "video_url": null
  }},
  "message": "string"
}}"""

USER_PROMPT = (
    "I'm providing {count} image(s) of the same object. Analyze ALL images together "
    "to identify the object and its salvageable components. Return ONLY valid JSON "
    "(no markdown, no code fences). If unsure, lower the confidence and still return "
    "a complete JSON object. Keep tools_needed to <= 8 items and common_uses to <= 4."
)

HINT_PROMPT = (
    '\n\nIMPORTANT USER CONTEXT: The user says this object is: "{hint}". '
    "Use this to improve identification accuracy."
)

MAX_HINT_LENGTH = 500

_BRAND_PATTERNS = (
    re.compile(r"brand[\"']?[:\s]+[\"']?([A-Za-z0-9 ]+)[\"']?", re.IGNORECASE),
    re.compile(r"manufacturer[\"']?[:\s]+[\"']?([A-Za-z0-9 ]+)[\"']?", re.IGNORECASE),
    re.compile(
        r"(Apple|Samsung|Sony|LG|Dell|HP|Logitech|Corsair|Razer|ASUS|MSI|Intel|AMD|NVIDIA|Microsoft|Google)",
        re.IGNORECASE,
    ),
)
_OBJECT_PATTERNS = (
    re.compile(r"parent_object[\"']?[:\s]+[\"']?([^\"'\n,}]+)[\"']?", re.IGNORECASE),
    re.compile(r"this (?:is|appears to be|looks like) (?:a |an )?([^.]+)", re.IGNORECASE),
    re.compile(r"identified as (?:a |an )?([^.]+)", re.IGNORECASE),
)
_CATEGORY_RE = re.compile(
    r"category[\"']?[:\s]+[\"']?(ICs/Chips|Passive Components|Electromechanical|Connectors|"
    r"Display/LEDs|Sensors|Power|PCB|Other)[\"']?",
    re.IGNORECASE,
)
_CONDITION_RE = re.compile(r"condition[\"']?[:\s]+[\"']?(New|Good|Fair|For Parts)[\"']?", re.IGNORECASE)


@dataclass
class IdentificationResult:
    """Everything the caller needs from one identification call."""

    items: list[IdentifiedItem]
    parse_stage: ParseStage
    provider_result: ProviderResult | None = None
    fingerprint: str = ""
    parent_object: str | None = None
    total_estimated_value_low: float | None = None
    total_estimated_value_high: float | None = None
    salvage_difficulty: str | None = None
    tools_needed: list[str] = field(default_factory=list)
    disassembly: Disassembly | None = None
    message: str | None = None
    cached: bool = False

    def to_payload(self) -> dict[str, Any]:
        return {
            "parent_object": self.parent_object,
            "items": [item.model_dump() for item in self.items],
            "total_estimated_value_low": self.total_estimated_value_low,
            "total_estimated_value_high": self.total_estimated_value_high,
            "salvage_difficulty": self.salvage_difficulty,
            "tools_needed": list(self.tools_needed),
            "disassembly": self.disassembly.model_dump() if self.disassembly else None,
            "message": self.message,
            "image_hash": self.fingerprint,
            "cached": self.cached,
        }


def extract_partial_info(text: str) -> dict[str, str]:
    """Sniff brand / object / category / condition out of unparsable text."""
    partial: dict[str, str] = {}
    for pattern in _BRAND_PATTERNS:
        match = pattern.search(text)
        if match:
            partial["brand"] = match.group(1).strip()
            break
    for pattern in _OBJECT_PATTERNS:
        match = pattern.search(text)
        if match:
            partial["object_type"] = match.group(1).strip()
            break
    match = _CATEGORY_RE.search(text)
    if match:
        partial["category"] = match.group(1)
    match = _CONDITION_RE.search(text)
    if match:
        partial["condition"] = match.group(1)
    return partial


def _optional_float(value: Any) -> float | None:
    try:
        number = float(value) if value is not None else None
    except (TypeError, ValueError):
        return None
    return number if number is None or math.isfinite(number) else None


def _optional_text(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


class IdentificationOrchestrator:
    """Send a normalized still to the model and validate what comes back.

    Holds no per-call state, so one instance may serve concurrent requests.
    """

    def __init__(
        self,
        *,
        provider: BaseProvider | None = None,
        cost_sink: CostSink | None = None,
        settings: Settings | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._provider = provider
        self._cost_sink = cost_sink
        self._settings = settings
        self._log = logger or _module_logger

    def build_prompts(self, image_count: int, user_hint: str | None) -> tuple[str, str]:
        settings = self._settings or get_settings()
        system_prompt = IDENTIFICATION_PROMPT.format(
            min_components=settings.component_limit_min,
            max_components=settings.component_limit_max,
        )
        prompt = USER_PROMPT.format(count=image_count)
        if user_hint and user_hint.strip():
            prompt += HINT_PROMPT.format(hint=user_hint.strip()[:MAX_HINT_LENGTH])
        return system_prompt, prompt

    async def identify(
        self,
        image: NormalizedImage,
        *,
        user_id: str,
        scan_id: str | None = None,
        user_hint: str | None = None,
        extra_images: Sequence[NormalizedImage] = (),
        is_correction: bool = False,
    ) -> IdentificationResult:
        if image is None or not image.data:
            raise ValidationError("No image provided")
        if not user_id:
            raise ValidationError("user_id is required")

        config = ai_router.resolve(
            "identify", provider=self._provider, settings=self._settings
        )
        images = [image, *extra_images]
        system_prompt, prompt = self.build_prompts(len(images), user_hint)

        self._log.info(
            "Identifying %s (%d image(s)) via %s",
            image.fingerprint,
            len(images),
            config.provider.name,
        )

        def cost(result: ProviderResult | None, failure: UpstreamFailure | None = None):
            return build_cost_record(
                user_id=user_id,
                scan_id=scan_id,
                scope="identify",
                provider=config.provider.name,
                model=config.model,
                result=result,
                failure=failure,
                is_correction=is_correction,
            )

        try:
            result = await config.provider.generate(
                prompt,
                system_prompt=system_prompt,
                images=[ProviderImage(data=i.data, content_type=i.content_type) for i in images],
                model=config.model,
                temperature=config.temperature,
                max_tokens=config.max_tokens,
                timeout_seconds=config.timeout_seconds,
            )
        except UpstreamFailure as exc:
            if exc.status is not None:
                emit(self._cost_sink, cost(None, exc))
            self._log.warning("Identification upstream failure: %s (status=%s)", exc, exc.status)
            raise

        emit(self._cost_sink, cost(result))
        self._log.debug("AI response: %s", result.raw_text[:200])

        outcome = parse_structured(result.raw_text)
        data = outcome.data
        if not outcome.ok or not isinstance(data, dict) or not isinstance(data.get("items"), list):
            partial = extract_partial_info(result.raw_text)
            self._log.error("Failed to parse identification response; partial=%s", partial)
            raise ParseError(
                "Could not parse identification response",
                raw_text=result.raw_text,
                partial=partial,
            )

        items = self._validate_items(data["items"])
        disassembly = None
        if isinstance(data.get("disassembly"), dict):
            try:
                disassembly = Disassembly.model_validate(data["disassembly"])
            except SchemaValidationError:
                self._log.warning("Dropping malformed disassembly block")

        tools = data.get("tools_needed")
        self._log.info(
            "Identified %d component(s) in %s (stage=%s)",
            len(items),
            _optional_text(data.get("parent_object")) or "unknown object",
            outcome.stage,
        )
        return IdentificationResult(
            items=items,
            parse_stage=outcome.stage,
            provider_result=result,
            fingerprint=image.fingerprint,
            parent_object=_optional_text(data.get("parent_object")),
            total_estimated_value_low=_optional_float(data.get("total_estimated_value_low")),
            total_estimated_value_high=_optional_float(data.get("total_estimated_value_high")),
            salvage_difficulty=_optional_text(data.get("salvage_difficulty")),
            tools_needed=[str(t) for t in tools] if isinstance(tools, list) else [],
            disassembly=disassembly,
            message=_optional_text(data.get("message")),
        )

    def _validate_items(self, raw_items: list[Any]) -> list[IdentifiedItem]:
        items: list[IdentifiedItem] = []
        for idx, raw in enumerate(raw_items):
            if not isinstance(raw, dict):
                self._log.warning("Item %d is not an object; skipped", idx)
                continue
            try:
                items.append(IdentifiedItem.model_validate(raw))
            except SchemaValidationError as exc:
                self._log.warning("Item %d failed validation: %s", idx, exc.error_count())
        return items
