# ============================================================================
# src/medical_digitizer/extraction/ai_enhancer.py
# ============================================================================
"""
AI Entity Enhancer

Optional second extraction pass against an OpenAI-compatible
chat-completions endpoint. The model is asked for the same eight entity
categories the baseline extractor produces, as a fixed JSON object.

Response handling:
- JSON mode requested (response_format json_object)
- Content parsed strictly with json; markdown fences and prose around
  the object are stripped, but malformed JSON is a failed enhancement
- Shape validated strictly: exactly the eight keys, each a list of strings

Every failure (transport, HTTP status, timeout, parse, shape) surfaces as
EnhancementError. Callers decide whether that matters; the merger never
lets it fail a document.
"""

from typing import Any, Dict, List, Optional
import asyncio
import json
import logging
import re

import aiohttp
from pydantic import BaseModel, ConfigDict, Field, StrictStr, ValidationError

from ..core.models import EntitySet
from ..utils.exceptions import EnhancementError

logger = logging.getLogger(__name__)

_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


SYSTEM_PROMPT = (
    "You are an expert at extracting medical entities from text. "
    "Always respond with valid JSON."
)

_PROMPT_TEMPLATE = """Extract medical entities from the following clinical text.

Return a JSON object with EXACTLY these keys, each holding a list of strings:
{{
  "names": ["patient and practitioner names"],
  "ages": ["ages, e.g. 45 years"],
  "dates": ["visit, birth and prescription dates"],
  "medications": ["drug names with strength if shown"],
  "symptoms": ["reported symptoms and complaints"],
  "vitals": ["vital signs with values, e.g. BP 120/80"],
  "addresses": ["street addresses"],
  "phoneNumbers": ["phone numbers"]
}}

Rules:
- Use ["None"] for a category with nothing in the text
- Copy values as written; do not invent data
- No explanations or markdown, only the JSON object

Text:
{text}"""


class AIEnhancementConfig(BaseModel):
    """Connection settings for one enhancement round trip."""

    endpoint: str
    model: str
    temperature: float = 0.1
    api_key: Optional[str] = None
    timeout: float = Field(default=30.0, gt=0)
    max_tokens: int = Field(default=1000, gt=0)


class EntityResponse(BaseModel):
    """Exact shape the model must return."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    names: List[StrictStr]
    ages: List[StrictStr]
    dates: List[StrictStr]
    medications: List[StrictStr]
    symptoms: List[StrictStr]
    vitals: List[StrictStr]
    addresses: List[StrictStr]
    phone_numbers: List[StrictStr] = Field(alias="phoneNumbers")

    def to_entity_set(self) -> EntitySet:
        return EntitySet(
            names=list(self.names),
            ages=list(self.ages),
            dates=list(self.dates),
            medications=list(self.medications),
            symptoms=list(self.symptoms),
            vitals=list(self.vitals),
            addresses=list(self.addresses),
            phone_numbers=list(self.phone_numbers),
        )


def build_prompt(text: str) -> str:
    return _PROMPT_TEMPLATE.format(text=text)


class EntityEnhancer:
    """
    Chat-completions client for the AI enhancement pass.

    Usage:
        enhancer = EntityEnhancer()
        entities = await enhancer.enhance(raw_text, config)
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    async def enhance(self, text: str, config: AIEnhancementConfig) -> EntitySet:
        """
        Run one enhancement round trip, bounded by config.timeout.

        Returns:
            EntitySet exactly as the model returned it (sentinels included)

        Raises:
            EnhancementError: on any failure
        """
        try:
            content = await asyncio.wait_for(
                self._request_completion(text, config),
                timeout=config.timeout,
            )
        except asyncio.TimeoutError:
            raise EnhancementError(f"AI enhancement timed out after {config.timeout}s")
        except EnhancementError:
            raise
        except aiohttp.ClientError as e:
            raise EnhancementError(f"AI enhancement request failed: {e}")

        data = self._parse_content(content)

        try:
            response = EntityResponse.model_validate(data)
        except ValidationError as e:
            raise EnhancementError(
                f"AI response has unexpected shape ({e.error_count()} errors)"
            )

        entities = response.to_entity_set()
        self.logger.debug(f"AI enhancement returned {entities.total_entities()} values")
        return entities

    async def _request_completion(self, text: str, config: AIEnhancementConfig) -> str:
        """POST the prompt and return the assistant message content."""
        headers = {"Content-Type": "application/json"}
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"

        payload = {
            "model": config.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt(text)},
            ],
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
            "response_format": {"type": "json_object"},
        }

        async with aiohttp.ClientSession() as session:
            async with session.post(config.endpoint, json=payload, headers=headers) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise EnhancementError(
                        f"AI endpoint error ({response.status}): {error_text[:200]}"
                    )
                body = await response.json(content_type=None)

        try:
            return body["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError):
            raise EnhancementError("AI endpoint returned no message content")

    def _parse_content(self, content: str) -> Dict[str, Any]:
        """
        Decode the model's JSON object.

        Markdown fences and prose around the object are tolerated; the
        object itself must parse strictly. Broken JSON is a failed
        enhancement, never a repaired one.
        """
        if not content or not content.strip():
            raise EnhancementError("AI response was empty")

        text = _strip_fences(content.strip())
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            block = _extract_object(text)
            if block is None:
                raise EnhancementError("AI response contains no JSON object")
            try:
                data = json.loads(block)
            except json.JSONDecodeError as e:
                raise EnhancementError(f"AI response is not valid JSON: {e}")
            self.logger.debug("Extracted JSON object from surrounding text")

        if not isinstance(data, dict):
            raise EnhancementError("AI response is not a JSON object")
        return data


def _strip_fences(text: str) -> str:
    match = _FENCE_PATTERN.match(text)
    return match.group(1).strip() if match else text


def _extract_object(text: str) -> Optional[str]:
    """Return the first brace-balanced {...} block, or None."""
    start_idx = text.find("{")
    if start_idx == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i, char in enumerate(text[start_idx:], start=start_idx):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start_idx:i + 1]
    return None
