"""
Provider-response normalizer for the short-form analysis.

Two contracts:
- strict: the whole content must be a JSON object of the expected shape;
  any deviation fails the call with ProviderResponseError
- lenient: the first {...} block is extracted, the score is clamped and
  missing fields get defaults; only unparseable content fails
"""

import json
import re
from typing import Any

from app.exceptions import ProviderResponseError
from app.models.api import ProviderName
from app.models.domain import CognitiveAnalysis

JSON_BLOCK = re.compile(r"\{.*\}", re.DOTALL)

LENIENT_DEFAULT_SCORE = 75
LENIENT_DEFAULT_ANALYSIS = (
    "The author demonstrates solid cognitive abilities with a structured approach to "
    "reasoning and clear articulation of ideas."
)
LENIENT_DEFAULT_CHARACTERISTICS = ["analytical", "systematic", "methodical"]
LENIENT_DEFAULT_STRENGTHS = ["logical reasoning", "clear communication", "systematic thinking"]
LENIENT_DEFAULT_TENDENCIES = [
    "methodical analysis",
    "evidence-based reasoning",
    "structured presentation",
]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _string_list(value: list[Any]) -> list[str]:
    return [str(item) for item in value]


def parse_strict_analysis(content: str | None, provider: ProviderName) -> CognitiveAnalysis:
    """
    Parse a JSON-mode provider answer.

    Raises:
        ProviderResponseError: content is empty, not JSON, or the wrong shape
    """
    if not content:
        raise ProviderResponseError(provider.value, "No response content")

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise ProviderResponseError(provider.value, f"Invalid JSON: {e}") from e

    if (
        not isinstance(data, dict)
        or not _is_number(data.get("intelligenceScore"))
        or not isinstance(data.get("characteristics"), list)
        or not isinstance(data.get("detailedAnalysis"), str)
        or not isinstance(data.get("strengths"), list)
        or not isinstance(data.get("tendencies"), list)
    ):
        raise ProviderResponseError(provider.value, "Invalid response format")

    return CognitiveAnalysis(
        intelligence_score=int(round(data["intelligenceScore"])),
        characteristics=_string_list(data["characteristics"]),
        detailed_analysis=data["detailedAnalysis"],
        strengths=_string_list(data["strengths"]),
        tendencies=_string_list(data["tendencies"]),
        provider=provider,
    )


def parse_lenient_analysis(content: str | None, provider: ProviderName) -> CognitiveAnalysis:
    """
    Parse a free-text provider answer that embeds a JSON object.

    Raises:
        ProviderResponseError: no JSON object can be extracted
    """
    if not content:
        raise ProviderResponseError(provider.value, "No response content")

    match = JSON_BLOCK.search(content)
    if match is None:
        raise ProviderResponseError(provider.value, "No JSON object in response")

    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ProviderResponseError(provider.value, f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ProviderResponseError(provider.value, "Invalid response format")

    raw_score = data.get("intelligenceScore")
    score = raw_score if _is_number(raw_score) and raw_score else LENIENT_DEFAULT_SCORE
    score = max(1, min(100, int(round(score))))

    characteristics = data.get("characteristics")
    strengths = data.get("strengths")
    tendencies = data.get("tendencies")
    analysis = data.get("detailedAnalysis")

    return CognitiveAnalysis(
        intelligence_score=score,
        characteristics=(
            _string_list(characteristics)
            if isinstance(characteristics, list)
            else list(LENIENT_DEFAULT_CHARACTERISTICS)
        ),
        detailed_analysis=(
            analysis if isinstance(analysis, str) and analysis else LENIENT_DEFAULT_ANALYSIS
        ),
        strengths=(
            _string_list(strengths)
            if isinstance(strengths, list)
            else list(LENIENT_DEFAULT_STRENGTHS)
        ),
        tendencies=(
            _string_list(tendencies)
            if isinstance(tendencies, list)
            else list(LENIENT_DEFAULT_TENDENCIES)
        ),
        provider=provider,
    )
