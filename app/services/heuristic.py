"""
Heuristic Scorer - deterministic, explainable stand-in for a provider analysis.

Scores text by counting which marker phrases appear at least once in each
weighted category. Not a statistical model.
"""

from dataclasses import dataclass

from app.models.api import ProviderName
from app.models.domain import CognitiveAnalysis

BASE_SCORE = 72
MIN_SCORE = 60
MAX_SCORE = 98
MAX_LIST_ITEMS = 5


@dataclass(frozen=True)
class MarkerCategory:
    """A group of marker phrases worth `weight` points each when present."""

    name: str
    weight: int
    markers: tuple[str, ...]


CATEGORIES: tuple[MarkerCategory, ...] = (
    MarkerCategory(
        "friction",
        5,
        (
            "struggle", "tension", "paradox", "dilemma", "puzzle", "mystery",
            "contradiction", "problem", "difficulty", "challenge", "resist", "elusive",
        ),
    ),
    MarkerCategory(
        "risk",
        4,
        (
            "might be wrong", "could be", "perhaps", "maybe", "speculative",
            "tentative", "experimental", "risky", "dangerous", "controversial",
        ),
    ),
    MarkerCategory(
        "generative",
        6,
        (
            "breakthrough", "discovery", "insight", "revelation", "realization",
            "eureka", "aha", "suddenly", "emerged", "crystallized",
        ),
    ),
    MarkerCategory(
        "argumentative_heat",
        2,
        (
            "but", "however", "yet", "nevertheless", "still", "despite",
            "although", "whereas", "conflict", "debate", "argue",
        ),
    ),
    MarkerCategory(
        "academic_theater",
        -3,
        (
            "framework", "taxonomy", "categorize", "organize", "systematic",
            "comprehensive", "thorough", "complete",
        ),
    ),
    MarkerCategory(
        "clean_resolution",
        -2,
        (
            "conclusion", "therefore", "thus", "hence", "clearly", "obviously",
            "evidently", "certainly",
        ),
    ),
)

DETAILED_ANALYSIS = (
    "The author demonstrates a systematic approach to presenting information, with clear "
    "organization and logical progression of ideas. The writing reveals analytical tendencies, "
    "with an ability to connect concepts and examine them from multiple perspectives. There's "
    "evidence of both theoretical understanding and practical application in the way ideas are "
    "developed and illustrated.\n\n"
    "The cognitive profile suggests someone who approaches problems methodically, breaking down "
    "complex issues into more manageable components. The author shows a preference for "
    "structured thinking, with an emphasis on coherence and consistency. Throughout the text, "
    "there's evidence of a mind that values substantive content over stylistic flourishes.\n\n"
    "The text exhibits a balance between divergent and convergent thinking patterns. The author "
    "can explore multiple possibilities while still working toward clear conclusions. This "
    "combination suggests cognitive flexibility paired with an appreciation for resolution and "
    "clarity."
)


class HeuristicScorer:
    """Keyword-presence scorer producing a full CognitiveAnalysis."""

    def score(self, text: str) -> int:
        """Pseudo intelligence score clamped to [MIN_SCORE, MAX_SCORE]."""
        lowered = text.lower()
        score = BASE_SCORE
        for category in CATEGORIES:
            hits = sum(1 for marker in category.markers if marker in lowered)
            score += hits * category.weight

        words = len(text.split())
        if words > 1000:
            score -= 3
        if words > 2000:
            score -= 5

        return min(MAX_SCORE, max(MIN_SCORE, score))

    def characteristics(self, text: str) -> list[str]:
        lowered = text.lower()
        items = ["analytical", "clear", "systematic"]
        if len(text) > 1000:
            items.append("thorough")
        if "?" in text:
            items.append("inquisitive")
        if "!" in text:
            items.append("enthusiastic")
        if len(text.split(".")) > 20:
            items.append("detailed")
        if "problem" in lowered or "solution" in lowered:
            items.append("problem-solving")
        return items[:MAX_LIST_ITEMS]

    def strengths(self, text: str) -> list[str]:
        lowered = text.lower()
        items = ["logical coherence", "conceptual clarity", "structured thinking"]
        if len(text) > 1000:
            items.append("thoroughness")
        if "example" in lowered:
            items.append("illustrative reasoning")
        if "because" in lowered or "therefore" in lowered:
            items.append("causal reasoning")
        if "compare" in lowered or "contrast" in lowered:
            items.append("comparative analysis")
        return items[:MAX_LIST_ITEMS]

    def tendencies(self, text: str) -> list[str]:
        lowered = text.lower()
        items = ["systematic analysis", "precise expression", "methodical approach"]
        if "?" in text:
            items.append("questioning assumptions")
        if "however" in lowered or "although" in lowered:
            items.append("considering alternatives")
        if "must" in lowered or "should" in lowered:
            items.append("normative thinking")
        if "example" in lowered or "instance" in lowered:
            items.append("illustrative reasoning")
        return items[:MAX_LIST_ITEMS]

    def analyze(
        self, text: str, provider: ProviderName, used_fallback: bool = False
    ) -> CognitiveAnalysis:
        return CognitiveAnalysis(
            intelligence_score=self.score(text),
            characteristics=self.characteristics(text),
            detailed_analysis=DETAILED_ANALYSIS,
            strengths=self.strengths(text),
            tendencies=self.tendencies(text),
            provider=provider,
            used_fallback=used_fallback,
        )
