# backend/rental_search/extractor.py
import json
import logging
import re
from typing import Any, Dict, List, Optional, Sequence

import openai
from openai import AsyncOpenAI
from pydantic import ValidationError

from .config import DEFAULT_MODEL, DEFAULT_TEMPERATURE, Settings
from .errors import ExtractionUnavailable, FailureKind
from .schemas import ConversationTurn, Filters, Furnishing, PropertyType

logger = logging.getLogger(__name__)

# --- System instruction (static) ---
SEARCH_SYSTEM_PROMPT = f"""You are a property search assistant for a rental platform. Your job is to parse natural language property queries and extract structured search parameters.

Extract the following fields from the conversation:
- property_type: one of {", ".join(f'"{t.value}"' for t in PropertyType)} (null if not specified)
- min_budget: minimum monthly rent as a plain integer (null if not specified)
- max_budget: maximum monthly rent as a plain integer (null if not specified)
- city: city name (null if not specified)
- locality: specific area/locality (null if not specified)
- furnishing: one of {", ".join(f'"{f.value}"' for f in Furnishing)} (null if not specified)
- bedrooms: number of bedrooms (null if not specified)
- amenities: array of desired amenities like ["parking", "gym", "pool", "wifi", "ac"] (empty array if not specified)

Also provide:
- response_message: a friendly message acknowledging the search
- suggestions: array of 2-3 short search refinement suggestions

Earlier messages in the conversation still apply. Keep every constraint the user gave before unless the latest message changes or removes it.

Example input: "Show me 2BHK under 15k near Koramangala with parking"
Example output:
{{
  "property_type": "2bhk",
  "max_budget": 15000,
  "locality": "Koramangala",
  "amenities": ["parking"],
  "response_message": "Looking for 2BHK apartments under ₹15,000 in Koramangala with parking...",
  "suggestions": ["Add furnishing preference", "Specify move-in date", "Include gym access"]
}}

Always respond with valid JSON only. No markdown, no explanation."""

FALLBACK_MESSAGE = "I'll help you find properties. Could you tell me more about what you're looking for?"
FALLBACK_SUGGESTIONS = (
    "Specify budget range",
    "Mention preferred location",
    "Add property type (1BHK, 2BHK, etc.)",
)

FENCE_PATTERN = re.compile(r"```(?:json)?[ \t]*\n?", re.IGNORECASE)


def fallback_filters() -> Filters:
    """Filters used when the backend answer cannot be read. Carries no criteria."""
    return Filters(response_message=FALLBACK_MESSAGE, suggestions=list(FALLBACK_SUGGESTIONS))


def strip_code_fences(content: str) -> str:
    return FENCE_PATTERN.sub("", content).strip()


def _reject_constant(name: str):
    raise ValueError(f"non-finite number in payload: {name}")


def _loads(text: str) -> Any:
    # Infinity/NaN are not JSON; ValueError also covers oversized integer literals.
    return json.loads(text, parse_constant=_reject_constant)


def _load_object(text: str) -> Optional[Dict[str, Any]]:
    try:
        data = _loads(text)
    except ValueError:
        # Models sometimes wrap the object in a sentence; try the outermost braces.
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            return None
        try:
            data = _loads(text[start:end + 1])
        except ValueError:
            return None
    return data if isinstance(data, dict) else None


def parse_filters_payload(content: Optional[str]) -> Filters:
    """Turn the backend answer into Filters, or the fallback Filters if unreadable."""
    if not content or not content.strip():
        logger.warning("Empty extraction payload, using fallback filters")
        return fallback_filters()

    data = _load_object(strip_code_fences(content))
    if data is None:
        logger.warning("Unparsable extraction payload, using fallback filters: %.200s", content)
        return fallback_filters()

    try:
        return Filters.model_validate(data)
    except (ValidationError, ValueError, OverflowError) as e:
        logger.warning("Extraction payload failed validation, using fallback filters: %s", e)
        return fallback_filters()


def _error_code(error: openai.APIStatusError) -> Optional[str]:
    code = getattr(error, "code", None)
    if code:
        return str(code)
    body = error.body
    if isinstance(body, dict):
        inner = body.get("error", body)
        if isinstance(inner, dict) and inner.get("code"):
            return str(inner["code"])
    return None


def classify_upstream_error(error: Exception) -> FailureKind:
    """Map an SDK exception onto the failure kinds callers act on."""
    if isinstance(error, openai.RateLimitError):
        if _error_code(error) == "insufficient_quota":
            return FailureKind.QUOTA_EXHAUSTED
        return FailureKind.RATE_LIMITED
    if isinstance(error, openai.APIStatusError) and error.status_code == 402:
        return FailureKind.QUOTA_EXHAUSTED
    return FailureKind.UNAVAILABLE


def build_messages(utterance: str, history: Sequence[ConversationTurn]) -> List[Dict[str, str]]:
    messages = [{"role": "system", "content": SEARCH_SYSTEM_PROMPT}]
    messages.extend({"role": turn.role, "content": turn.content} for turn in history)
    messages.append({"role": "user", "content": utterance})
    return messages


class Extractor:
    """Extracts Filters from an utterance plus prior turns via a chat completions backend."""

    def __init__(self, client: AsyncOpenAI, model: str = DEFAULT_MODEL,
                 temperature: Optional[float] = DEFAULT_TEMPERATURE):
        self.client = client
        self.model = model
        self.temperature = temperature

    @classmethod
    def from_settings(cls, settings: Settings) -> "Extractor":
        if not settings.openai_api_key:
            raise RuntimeError("Missing OPENAI_API_KEY in environment")
        client = AsyncOpenAI(
            api_key=settings.openai_api_key,
            base_url=settings.llm_base_url,
            timeout=settings.llm_timeout,
            max_retries=0,
        )
        return cls(client, model=settings.llm_model, temperature=settings.llm_temperature)

    async def extract(self, utterance: str, history: Sequence[ConversationTurn] = ()) -> Filters:
        if not utterance or not utterance.strip():
            raise ValueError("utterance must not be empty")

        request: Dict[str, Any] = {
            "model": self.model,
            "messages": build_messages(utterance.strip(), history),
        }
        if self.temperature is not None:
            request["temperature"] = self.temperature

        logger.info("Extracting filters (history=%d turns): %r", len(history), utterance)
        try:
            response = await self.client.chat.completions.create(**request)
        except openai.APIError as e:
            kind = classify_upstream_error(e)
            logger.error("Language backend failed (%s): %s", kind.value, e)
            raise ExtractionUnavailable(kind, str(e)) from e

        content = None
        if response.choices:
            content = response.choices[0].message.content
        logger.debug("Extraction payload: %s", content)
        return parse_filters_payload(content)
