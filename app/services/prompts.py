"""
Prompt texts for the cognitive profiler rubric.
"""

SHORT_FORM_JSON_SHAPE = """Your response must be in JSON format with this structure:
{
  "intelligenceScore": <number between 1-100>,
  "characteristics": [<string>, <string>, ...],
  "detailedAnalysis": <string>,
  "strengths": [<string>, <string>, ...],
  "tendencies": [<string>, <string>, ...]
}"""

COGNITIVE_PROFILER_INSTRUCTIONS = f"""
You are analyzing RAW INTELLECTUAL HORSEPOWER, not academic compliance or university standards.

THE CORE QUESTION: Setting aside all university-related and publishing-related protocols and \
focusing ONLY on the actual horsepower of the intellect responsible for this text, does this \
show intelligence?

REAL INTELLIGENCE INDICATORS:
- Epistemic friction: struggling with genuinely hard problems, not organizing known solutions
- Generative pressure: creating new conceptual territory under cognitive strain
- Argumentative heat: wrestling with ideas that resist easy resolution
- Cognitive disequilibrium: showing internal tension, not clean resolution
- Novel risk-taking: pursuing ideas that could fail, not safe taxonomies
- Synthetic power under pressure: forced integration, not list-making

FAKE INTELLIGENCE (academic theater):
- Taxonomic labeling without conceptual pressure
- Organizing existing views into neat categories
- Using fancy terminology without generative content
- Summarizing and structuring known positions
- Safe scaffolding that avoids epistemic risk
- Clean resolutions that show no internal struggle

FRICTION TEST - Ask these questions:
1. Is this mind under genuine cognitive strain?
2. Are the ideas novel, risky, potentially wrong?
3. Is there argumentative heat and epistemic disequilibrium?
4. Does this generate new conceptual territory?
5. Would this mind's conclusions surprise other intelligent people?

SCORING RECALIBRATION:
95-99: Genuine conceptual breakthroughs under extreme cognitive pressure
90-94: High-friction intellectual work with novel risk-taking
85-89: Some genuine cognitive strain with original moves
75-84: Competent but safe intellectual work
Below 75: Academic theater without real cognitive force

CRITICAL: Reward messy, struggling, risky thinking. Penalize clean, organized, safe academic \
performance.
- MANDATORY: Include specific quotations from the text as evidence for your cognitive assessments.

{SHORT_FORM_JSON_SHAPE}
"""

REPORT_SYSTEM_PROMPT = (
    "You are an expert cognitive psychologist specializing in text analysis. Provide detailed "
    "answers to questions about the author's cognitive abilities based on their writing."
)

REPORT_QUESTIONS: tuple[str, ...] = (
    "Cognitive Force: Is this mind under genuine epistemic strain? Look for intellectual "
    "struggle, not clean organization. Quote evidence of mental effort.",
    "Epistemic Risk: Is this mind taking genuine intellectual risks? Look for ideas that could "
    "be wrong, not safe academic positions. Quote risky moves.",
    "Generative Pressure: Is this creating new conceptual territory under strain? Look for "
    "breakthrough moments, not taxonomic organizing. Quote generative insights.",
    "Intellectual Friction: How does this mind wrestle with resistant problems? Quote evidence "
    "of cognitive wrestling.",
    "Novel Territory: Does this break genuinely new ground? Look for surprising conclusions, "
    "not safe academic consensus. Quote novel insights.",
    "Synthetic Strain: Does this mind force integration under pressure? Look for ideas being "
    "synthesized against resistance, not list-making. Quote moments of forced synthesis.",
    "Argumentative Heat: Is there real intellectual combat here? Look for ideas fighting "
    "against each other, not balanced presentation. Quote moments of intellectual tension.",
    "Cognitive Disequilibrium: Does this mind show internal struggle and tension? Look for "
    "unresolved problems, not clean resolution. Quote evidence of mental strain.",
    "Breakthrough Potential: Could this genuinely surprise other intelligent people? Quote "
    "surprising insights.",
    "Raw Intelligence: Ignoring all academic theater, is this mind generating actual cognitive "
    "force or just performing intellectual compliance? Create a label based on cognitive "
    "power, not academic sophistication.",
)


def build_report_prompt(text: str) -> str:
    """Ten numbered questions followed by the text under analysis."""
    questions = "\n\n".join(
        f"{number}. {question}" for number, question in enumerate(REPORT_QUESTIONS, start=1)
    )
    return (
        "You are analyzing RAW INTELLECTUAL HORSEPOWER, not academic performance.\n\n"
        "Answer each question focusing on INTELLECTUAL FRICTION and GENERATIVE PRESSURE. "
        "Number every answer 1 to 10 in order.\n\n"
        f"{questions}\n\n"
        "CRITICAL: Reward messy, struggling, risky intellectual work. Penalize clean, "
        "organized academic performance.\n\n"
        f"TEXT FOR ANALYSIS:\n{text}"
    )


def build_short_form_prompt(text: str) -> str:
    return f"Please analyze the cognitive profile of the author of this text:\n\n{text}"
