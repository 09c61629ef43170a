"""
AI Augmentation Bridge — optional natural-language layer over the engine.

The bridge gathers primitive results (mapping matrix summary, gaps,
requirement coverage) and, when an LLM provider is configured, asks it to
synthesise an answer. Not configured, timeout, provider error or unparsable
output all degrade to a rule-based answer built from the same primitives:
the bridge never fails a request and never changes what the engine returns.
"""
from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import TYPE_CHECKING

import httpx

from crossmap.config import settings
from crossmap.schemas.ai import AIAnalysisResult
from crossmap.services.ai_adapters import AIAdapter, get_ai_adapter
from crossmap.services.catalog import normalize_requirement_id
from crossmap.services.text_match import keyword_similarity, keywords

if TYPE_CHECKING:
    from crossmap.services.engine import MappingEngine

logger = logging.getLogger(__name__)

RULE_BASED_CONFIDENCE = 0.5
MAX_RELATED_CONTROLS = 10

SYSTEM_PROMPT = """\
You are a compliance analyst working across security, privacy and AI
governance frameworks. You receive a question and a JSON context with the
tenant's cross-framework mapping summary, gap analysis and trustworthy-AI
requirement coverage. Answer ONLY with a JSON object with the fields:
- answer: short direct answer to the question
- findings: list of key observations
- recommendations: list of concrete next steps
- related_controls: list of control ids from the context
- cross_framework_insights: list of observations about framework overlap
- confidence: number between 0 and 1
Use only control ids that appear in the context."""


class AIParsingError(Exception):
    """Raised when the AI response cannot be parsed."""


def parse_json(text: str) -> dict:
    """Parse a JSON object from LLM output, handling markdown code blocks."""
    try:
        data = json.loads(text)
        if isinstance(data, dict):
            return data
    except json.JSONDecodeError:
        pass

    match = re.search(r"```json\s*(.*?)\s*```", text, re.DOTALL)
    if match:
        try:
            data = json.loads(match.group(1))
            if isinstance(data, dict):
                return data
        except json.JSONDecodeError:
            pass

    match = re.search(r"\{.*\}", text, re.DOTALL)
    if match:
        try:
            return json.loads(match.group(0))
        except json.JSONDecodeError:
            pass

    raise AIParsingError("AI returned invalid JSON")


def _strings(value) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v is not None]


class AIBridge:
    def __init__(self, engine: MappingEngine, adapter: AIAdapter | None = None, config=settings):
        self.engine = engine
        self.config = config
        self.adapter = adapter if adapter is not None else get_ai_adapter(config)

    @property
    def is_available(self) -> bool:
        return self.adapter is not None

    async def analyze(
        self,
        tenant_id: str,
        query: str,
        frameworks: list[str] | None = None,
        requirement_focus: list[str] | None = None,
    ) -> AIAnalysisResult:
        focus = [normalize_requirement_id(r).value for r in requirement_focus] if requirement_focus else None
        context = await self._context(tenant_id, query, frameworks, focus)

        if not self.is_available:
            return self._rule_based(query, context, "AI provider not configured")

        try:
            response = await asyncio.wait_for(
                self.adapter.chat_completion(
                    system=SYSTEM_PROMPT,
                    user_message=f"Question: {query}\n\nContext:\n{json.dumps(context, indent=2)}",
                    max_tokens=self.config.AI_MAX_TOKENS,
                    temperature=self.config.AI_TEMPERATURE,
                    timeout=self.config.AI_TIMEOUT_SECONDS,
                ),
                timeout=self.config.AI_TIMEOUT_SECONDS,
            )
            data = parse_json(response.text)
        except asyncio.TimeoutError:
            logger.warning("AI provider timed out after %ss", self.config.AI_TIMEOUT_SECONDS)
            return self._rule_based(query, context, "AI provider timed out")
        except (httpx.HTTPError, ValueError, AIParsingError) as exc:
            logger.warning("AI provider failed, falling back to rule-based analysis: %s", exc)
            return self._rule_based(query, context, f"AI provider error: {exc}")

        known = set(context["known_controls"])
        try:
            confidence = min(1.0, max(0.0, float(data.get("confidence", 0.7))))
        except (TypeError, ValueError):
            confidence = 0.7
        return AIAnalysisResult(
            query=query,
            ai_used=True,
            answer=str(data.get("answer") or ""),
            findings=_strings(data.get("findings")),
            recommendations=_strings(data.get("recommendations")),
            related_controls=[c for c in _strings(data.get("related_controls")) if c in known],
            cross_framework_insights=_strings(data.get("cross_framework_insights")),
            confidence=confidence,
        )

    async def _context(
        self,
        tenant_id: str,
        query: str,
        frameworks: list[str] | None,
        focus: list[str] | None,
    ) -> dict:
        matrix = await self.engine.build_mapping_matrix(tenant_id, frameworks)
        gaps = await self.engine.identify_gaps(tenant_id)
        coverage = await self.engine.requirement_coverage(tenant_id, focus)

        in_scope = await self.engine.catalog.list_controls([f.id for f in matrix.frameworks])
        words = keywords(query)
        scored = []
        for c in in_scope:
            score, _ = keyword_similarity(words, c.title, c.description)
            if score > 0:
                scored.append((score, c.id))
        scored.sort(key=lambda s: (-s[0], s[1]))

        return {
            "frameworks": [f.id for f in matrix.frameworks],
            "matrix_summary": matrix.summary.model_dump(),
            "framework_pairs": [
                {
                    "framework_a": cell.framework_a,
                    "framework_b": cell.framework_b,
                    "mapped_pairs": cell.mapping_count,
                    "overlap_percent_a": cell.overlap_percent_a,
                    "overlap_percent_b": cell.overlap_percent_b,
                }
                for cell in matrix.cells
            ],
            "coverage_percent_by_framework": gaps.coverage_percent_by_framework,
            "overall_coverage_percent": gaps.overall_coverage_percent,
            "unmapped_control_count": len(gaps.unmapped_controls),
            "unmapped_requirements": [r.requirement_name for r in gaps.unmapped_requirements],
            "gap_recommendations": [r.description for r in gaps.recommendations],
            "requirement_coverage": [
                {
                    "requirement": rc.requirement_name,
                    "total_controls": rc.total_controls,
                    "average_coverage": rc.average_coverage,
                }
                for rc in coverage
            ],
            "query_matched_controls": [cid for _, cid in scored[:MAX_RELATED_CONTROLS]],
            "known_controls": [c.id for c in in_scope],
        }

    def _rule_based(self, query: str, context: dict, reason: str) -> AIAnalysisResult:
        findings = []
        if context["overall_coverage_percent"] is not None:
            findings.append(f"Overall control coverage is {context['overall_coverage_percent']}%")
        if context["unmapped_control_count"]:
            findings.append(f"{context['unmapped_control_count']} controls have no requirement or cross-framework mapping")
        for name in context["unmapped_requirements"]:
            findings.append(f'Requirement "{name}" has no mapped control')

        insights = [
            f"{p['framework_a']} / {p['framework_b']}: {p['mapped_pairs']} equivalent pairs"
            f" ({p['overlap_percent_a']}% / {p['overlap_percent_b']}%)"
            for p in context["framework_pairs"]
            if p["mapped_pairs"]
        ]

        summary = context["matrix_summary"]
        answer = (
            f"{summary['total_mappings']} equivalent control pairs across "
            f"{summary['total_frameworks']} enabled frameworks"
        )
        if summary["most_mapped_framework"]:
            answer += f"; {summary['most_mapped_framework']} is the most mapped framework"

        return AIAnalysisResult(
            query=query,
            ai_used=False,
            answer=answer + ".",
            findings=findings,
            recommendations=list(context["gap_recommendations"]),
            related_controls=list(context["query_matched_controls"]),
            cross_framework_insights=insights,
            confidence=RULE_BASED_CONFIDENCE,
            degraded_reason=reason,
        )
