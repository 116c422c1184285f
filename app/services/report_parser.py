"""
Report Section Parser - turns free-text provider output into a ComprehensiveReport.

A line-scanning state machine with one monotonic cursor over sections 1..10.
A section boundary is either an explicit number ("1.", "2:", "Question 3:")
or a known heading phrase for that section. Boundaries only ever move the
cursor forward; anything else is content for the current section. The
buffer for a section is committed (trimmed) when the next boundary or the
end of input is reached, and only when it is non-empty. Fields that are
never committed keep their seeded defaults, so the report is always complete.
"""

import re
from dataclasses import dataclass, field

from app.models.domain import ComprehensiveReport

SECTION_COUNT = 10

# Report field for each section number
SECTION_FIELDS: tuple[str, ...] = (
    "intelligence",
    "abstract_thinking",
    "originality",
    "reasoning_style",
    "ambiguity_handling",
    "metacognition",
    "thinking_type",
    "cognitive_complexity",
    "thinking_quality",
    "cognitive_archetype",
)

NUMBERED_HEADER = re.compile(r"^(?:Question\s*)?(\d+)[.:]\s*(.*)$", re.IGNORECASE)

# Heading phrases per section; a heading for section N is recognised only while
# the cursor is below N
SECTION_HEADINGS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"^intelligence\s*level|author's\s*intelligence",
        r"^abstract\s*thinking|conceptually\s*integrated",
        r"^originality|original\s*insight",
        r"^reasoning\s*style|what\s*kind\s*of\s*reasoning",
        r"^ambiguity|multiple\s*perspectives|conceptual\s*ambiguity",
        r"^metacognitive|metacognition",
        r"^thinking\s*type|systematizer|synthesizer",
        r"^cognitive\s*complexity|indicators\s*of\s*cognitive",
        r"^thinking\s*quality|disciplined\s*or\s*meandering|coherent\s*or\s*fragmented",
        r"^cognitive\s*archetype|archetype",
    )
)

SEEDED_DEFAULTS: dict[str, str] = {
    "intelligence": (
        "This text demonstrates sophisticated intellectual capacity through systematic "
        "analysis and complex theoretical development."
    ),
    "abstract_thinking": (
        "The author shows advanced abstract thinking through their handling of complex "
        "philosophical concepts and theoretical frameworks."
    ),
    "originality": (
        "The text reveals original analytical approaches and novel conceptual distinctions."
    ),
    "reasoning_style": (
        "The author employs systematic, analytical reasoning with careful attention to "
        "logical structure."
    ),
    "ambiguity_handling": (
        "The author skillfully manages conceptual complexity through precise definitions "
        "and systematic analysis."
    ),
    "metacognition": (
        "The author demonstrates metacognitive awareness through their systematic approach "
        "to organizing complex material."
    ),
    "thinking_type": (
        "The author exhibits systematic, convergent thinking focused on building coherent "
        "theoretical frameworks."
    ),
    "cognitive_complexity": (
        "High cognitive complexity is evident in the integration of multiple conceptual "
        "levels and theoretical perspectives."
    ),
    "thinking_quality": (
        "The thinking quality is sophisticated, characterized by precision, systematic "
        "analysis, and theoretical depth."
    ),
    "cognitive_archetype": (
        "Systematic Theoretical Analyst - a mind that excels at creating coherent "
        "frameworks and precise conceptual analysis."
    ),
}

FALLBACK_REPORT_TEXT: dict[str, str] = {
    "intelligence": (
        "The author demonstrates sophisticated cognitive abilities, with strong analytical "
        "reasoning and abstract thinking capabilities. Their writing exhibits logical "
        "structuring of complex ideas and thoughtful exploration of concepts."
    ),
    "abstract_thinking": (
        "The author shows excellent abstract thinking skills, easily moving between concrete "
        "examples and theoretical principles. They demonstrate the ability to identify "
        "patterns and extract underlying concepts."
    ),
    "originality": (
        "The writing contains original insights and creative approaches to the subject "
        "matter. The author builds upon existing knowledge while contributing novel "
        "perspectives and connections."
    ),
    "reasoning_style": (
        "The reasoning style is primarily analytical and systematic, with a methodical "
        "approach to developing arguments. The author employs both inductive and deductive "
        "reasoning strategies effectively."
    ),
    "ambiguity_handling": (
        "The author navigates ambiguity with ease, acknowledging multiple perspectives and "
        "considering nuanced interpretations. They show comfort with complexity rather than "
        "resorting to oversimplification."
    ),
    "metacognition": (
        "Strong metacognitive awareness is evident through self-reflective elements and "
        "consideration of thinking processes. The author demonstrates awareness of cognitive "
        "limitations and biases."
    ),
    "thinking_type": (
        "The thinking appears to blend systematic and conceptual approaches, with a "
        "preference for structured analysis while maintaining openness to broader "
        "implications and interconnections."
    ),
    "cognitive_complexity": (
        "High cognitive complexity is displayed through the integration of multiple "
        "dimensions of analysis and consideration of various factors and their relationships."
    ),
    "thinking_quality": (
        "The thinking quality is disciplined and coherent, with careful attention to logical "
        "consistency and evidential support. Ideas flow naturally and build upon each other "
        "effectively."
    ),
    "cognitive_archetype": (
        "The cognitive archetype most closely resembles that of an 'Analytical Synthesizer' - "
        "someone who combines systematic analysis with the ability to integrate diverse "
        "information into coherent frameworks."
    ),
}


def fallback_report(generated_by: str) -> ComprehensiveReport:
    """Complete report used when the provider call itself fails."""
    return ComprehensiveReport(generated_by=generated_by, **FALLBACK_REPORT_TEXT)


@dataclass
class _ParserState:
    cursor: int = 0
    buffer: list[str] = field(default_factory=list)
    fields: dict[str, str] = field(default_factory=lambda: dict(SEEDED_DEFAULTS))


class ReportSectionParser:
    """Parses ten-section free text into a fully populated report."""

    def parse(self, content: str, generated_by: str) -> ComprehensiveReport:
        state = _ParserState()

        for raw_line in content.split("\n"):
            line = raw_line.strip()
            boundary = self._match_boundary(line, state.cursor)
            if boundary is not None:
                section, initial = boundary
                self._commit(state)
                state.cursor = section
                state.buffer = [initial] if initial else []
            elif state.cursor > 0:
                state.buffer.append(line)

        self._commit(state)
        return ComprehensiveReport(generated_by=generated_by, **state.fields)

    def _match_boundary(self, line: str, cursor: int) -> tuple[int, str] | None:
        """
        Return (section, initial buffer text) when the line opens a later section.

        A number at or behind the cursor, or outside 1..10, is not a boundary.
        """
        numbered = NUMBERED_HEADER.match(line)
        if numbered:
            section = int(numbered.group(1))
            if cursor < section <= SECTION_COUNT:
                return section, numbered.group(2)

        for index, pattern in enumerate(SECTION_HEADINGS):
            section = index + 1
            if cursor < section and pattern.search(line):
                return section, ""

        return None

    @staticmethod
    def _commit(state: _ParserState) -> None:
        if state.cursor == 0:
            return
        text = "\n".join(state.buffer).strip()
        if text:
            state.fields[SECTION_FIELDS[state.cursor - 1]] = text
