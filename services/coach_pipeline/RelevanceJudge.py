"""LLM relevance judgement of single documents, with a degraded fallback for unparseable replies."""

import asyncio
import json
import math
import re
from dataclasses import dataclass, field

from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.exceptions import CoachError, JudgmentFailure
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import ExtractedDocument
from shared.models.search import SmartSearchResult

MAX_SECTIONS = 3
MAX_SECTION_WORDS = 300
MAX_KEY_POINTS = 5
FALLBACK_SECTION_CHARS = 500

_CODE_FENCE_PATTERN = re.compile(r"```(?:json|JSON)?")
_FIRST_NUMBER_PATTERN = re.compile(r"\d+")

JUDGE_PROMPT_TEMPLATE = """You are an expert Canvas LMS consultant with deep knowledge of educational technology. Analyse the following document to answer the user's question.

USER QUESTION: "{question}"

DOCUMENT INFORMATION:
- File name: {name}
- Size: {size} characters
- Type: Canvas LMS documentation

DOCUMENT CONTENT:
{content}

ANALYSIS INSTRUCTIONS:
1. RELEVANCE: look for direct matches, conceptual connections and implicit information. Give a relevance score from 0 to 100.
2. SECTIONS: quote the {max_sections} most valuable sections (at most {max_words} words each). Prefer step-by-step instructions, settings and practical tips. Keep menu paths, button names and exact values.
3. ANALYSIS: summarise how this document answers the question, list the most actionable insights and give a confidence score from 0 to 100.

Answer with ONLY this JSON object (no markdown, no other text):
{{
  "relevanceScore": <integer 0-100>,
  "confidence": <integer 0-100>,
  "reasoning": "<why this document is or is not relevant>",
  "relevantSections": ["<section 1>", "<section 2>", "<section 3>"],
  "summary": "<how this document helps answer the question>",
  "keyPoints": ["<point 1>", "<point 2>", "<point 3>", "<point 4>", "<point 5>"]
}}

If the document is NOT relevant, answer with relevanceScore 0 and confidence 100 and explain why.
"""

FALLBACK_PROMPT_TEMPLATE = """Analyse this Canvas document for the question "{question}". Reply with only a relevance score from 0 to 100:
{excerpt}"""


##########################################
############# PARSE OUTCOMES #############
##########################################

@dataclass(frozen=True)
class ValidJudgement:
    relevance_score: int
    confidence: int
    reasoning: str = ""
    relevant_sections: list[str] = field(default_factory=list)
    summary: str = ""
    key_points: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RejectedJudgement:
    """JSON was found but does not satisfy the contract. The document is skipped."""

    reason: str


@dataclass(frozen=True)
class MalformedJudgement:
    """No JSON object could be recovered. Triggers the fallback prompt."""

    reason: str


ParseOutcome = ValidJudgement | RejectedJudgement | MalformedJudgement


##########################################
################ PARSING #################
##########################################

def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def find_json_object(text: str) -> str | None:
    """Return the first balanced ``{...}`` region of text, ignoring braces inside JSON strings."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            char = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        start = text.find("{", start + 1)
    return None


def _truncate_words(text: str, max_words: int) -> str:
    words = text.split()
    if len(words) <= max_words:
        return text.strip()
    return " ".join(words[:max_words])


def _string_list(value, limit: int) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()][:limit]


def parse_judgement(raw: str) -> ParseOutcome:
    """
    Parse a judge reply into one of the three outcomes.

    Code fences are removed and the first balanced JSON object is decoded.
    ``relevanceScore`` must be a number (not a boolean) within [0, 100]. Lists are
    cut to their maximum length, sections to MAX_SECTION_WORDS words, and
    ``confidence`` is clamped to [0, 100] with 0 as default.
    """
    cleaned = _CODE_FENCE_PATTERN.sub("", raw or "").strip()
    candidate = find_json_object(cleaned)
    if candidate is None:
        return MalformedJudgement("no JSON object found")
    try:
        data = json.loads(candidate)
    except ValueError as e:
        return MalformedJudgement("invalid JSON: %s" % e)

    score = data.get("relevanceScore")
    if not _is_number(score):
        return RejectedJudgement("relevanceScore is missing or not a number: %r" % (score,))
    if score < 0 or score > 100:
        return RejectedJudgement("relevanceScore out of range: %r" % (score,))

    confidence = data.get("confidence", 0)
    confidence = round_half_up(min(max(confidence, 0), 100)) if _is_number(confidence) else 0

    reasoning = data.get("reasoning")
    summary = data.get("summary")
    return ValidJudgement(
        relevance_score=round_half_up(score),
        confidence=confidence,
        reasoning=reasoning if isinstance(reasoning, str) else "",
        relevant_sections=[_truncate_words(s, MAX_SECTION_WORDS) for s in _string_list(data.get("relevantSections"), MAX_SECTIONS)],
        summary=summary if isinstance(summary, str) else "",
        key_points=_string_list(data.get("keyPoints"), MAX_KEY_POINTS),
    )


##########################################
################# JUDGE ##################
##########################################

class RelevanceJudge:
    """Asks the completion service how relevant each document is to a question."""

    def __init__(self, helper_config: HelperConfig, llm_client: LLMClientInterface) -> None:
        self.logging = helper_config.get_logger()
        self._llm = llm_client
        self.fallback_window = helper_config.get_int_val("COACH_FALLBACK_WINDOW", default=1000, minimum=1)
        self.fallback_confidence = helper_config.get_int_val("COACH_FALLBACK_CONFIDENCE", default=50, minimum=0)
        self.concurrency = helper_config.get_int_val("COACH_JUDGE_CONCURRENCY", default=4, minimum=1)

    ##########################################
    ################ CORE ####################
    ##########################################

    async def judge_all(self, documents: list[ExtractedDocument], question: str) -> list[SmartSearchResult]:
        """Judge all documents concurrently, bounded by COACH_JUDGE_CONCURRENCY.

        Returns:
            list[SmartSearchResult]: Judged-relevant documents in input order.
        """
        sem = asyncio.Semaphore(self.concurrency)

        async def _bounded(document: ExtractedDocument) -> SmartSearchResult | None:
            async with sem:
                return await self.judge_relevance(document, question)

        results = await asyncio.gather(*[_bounded(doc) for doc in documents])
        judged = [r for r in results if r is not None]
        self.logging.info("Judged %d documents, %d relevant", len(documents), len(judged))
        return judged

    async def judge_relevance(self, document: ExtractedDocument, question: str) -> SmartSearchResult | None:
        """
        Judge one document.

        Returns:
            SmartSearchResult | None: None if the document is irrelevant (score 0), the reply
            violates the JSON contract, the fallback fails too, or the completion service errors.
        """
        name = document.handle.display_name
        prompt = self.build_prompt(document, question)
        try:
            raw = await self._llm.do_generate(prompt, json_mode=True, model=self._llm.judge_model)
        except ValueError as e:
            raw = ""
            self.logging.warning("Empty judgement for %s: %s", name, e)
        except CoachError as e:
            self.logging.error("Relevance judgement failed for %s: %s", name, e.message)
            return None

        outcome = parse_judgement(raw)
        if isinstance(outcome, RejectedJudgement):
            self.logging.warning("Rejected judgement for %s: %s", name, outcome.reason)
            return None
        if isinstance(outcome, MalformedJudgement):
            self.logging.warning("Malformed judgement for %s (%s). Raw reply: %r", name, outcome.reason, raw[:500])
            try:
                return await self._judge_fallback(document, question)
            except JudgmentFailure as e:
                self.logging.warning("Fallback judgement failed for %s: %s", name, e.message)
                return None

        if outcome.relevance_score == 0:
            self.logging.info("%s: not relevant (score 0) - %s", name, outcome.reasoning[:200])
            return None

        self.logging.info("%s: score %d, confidence %d", name, outcome.relevance_score, outcome.confidence)
        return SmartSearchResult(
            document=document.handle,
            relevance_score=outcome.relevance_score,
            confidence=outcome.confidence,
            relevant_sections=outcome.relevant_sections,
            summary=outcome.summary,
            key_points=outcome.key_points,
            reasoning=outcome.reasoning,
        )

    ##########################################
    ############### HELPERS ##################
    ##########################################

    def build_prompt(self, document: ExtractedDocument, question: str) -> str:
        return JUDGE_PROMPT_TEMPLATE.format(
            question=question,
            name=document.handle.display_name,
            size=document.char_count,
            content=document.text,
            max_sections=MAX_SECTIONS,
            max_words=MAX_SECTION_WORDS,
        )

    def build_fallback_prompt(self, document: ExtractedDocument, question: str) -> str:
        return FALLBACK_PROMPT_TEMPLATE.format(question=question, excerpt=document.text[:self.fallback_window])

    async def _judge_fallback(self, document: ExtractedDocument, question: str) -> SmartSearchResult | None:
        """
        Ask for a bare 0-100 score over the start of the document.

        Returns:
            SmartSearchResult | None: A degraded result, or None for a score of 0.

        Raises:
            JudgmentFailure: If the reply holds no usable score or the call fails.
        """
        try:
            raw = await self._llm.do_generate(self.build_fallback_prompt(document, question), model=self._llm.judge_model)
        except (CoachError, ValueError) as e:
            raise JudgmentFailure("fallback request failed: %s" % e) from e

        match = _FIRST_NUMBER_PATTERN.search(raw or "")
        if match is None:
            raise JudgmentFailure("fallback reply holds no number: %r" % (raw or "")[:200])
        score = int(match.group(0))
        if score == 0:
            return None
        if score > 100:
            raise JudgmentFailure("fallback score out of range: %d" % score)

        self.logging.info("%s: fallback score %d", document.handle.display_name, score)
        return SmartSearchResult(
            document=document.handle,
            relevance_score=score,
            confidence=self.fallback_confidence,
            relevant_sections=[document.text[:FALLBACK_SECTION_CHARS]],
            summary='Fallback analysis: possibly relevant to "%s"' % question,
            key_points=["Automatic analysis - manual verification recommended"],
            reasoning="Fallback analysis used because the structured reply could not be parsed",
            degraded=True,
        )
