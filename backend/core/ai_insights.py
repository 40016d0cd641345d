"""
ai_insights.py — Narrative action plans on top of deterministic metrics.

Design:
- Never compute statistics via AI; only explain and recommend.
- Only cohort aggregates leave the process. Student names and rows are never sent.
- Gracefully fall back to deterministic templates when AI is disabled/unavailable.
"""

from __future__ import annotations

import json
import os
from typing import Any, Dict, List

import httpx

from core.log_setup import get_logger
from core.models import FullAnalysis
from core.stats import safe_float

logger = get_logger()

PLAN_SECTIONS = (
    "high_achiever_plan",
    "average_student_plan",
    "at_risk_plan",
    "teacher_actions",
    "hod_insights",
)

_CAMEL_SECTIONS = {
    "highAchieverPlan": "high_achiever_plan",
    "averageStudentPlan": "average_student_plan",
    "atRiskPlan": "at_risk_plan",
    "teacherActions": "teacher_actions",
    "hodInsights": "hod_insights",
}

GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
OPENAI_URL = "https://api.openai.com/v1/responses"


def build_action_plan_metrics(analysis: FullAnalysis) -> Dict[str, Any]:
    """Aggregate-only metrics for the narrative request."""
    payload = analysis.summary_payload()
    summary = payload["summary"]
    payload.update({
        "mean": safe_float(summary["mean"], 1),
        "std_dev": safe_float(summary["std_dev"], 1),
        "pass_rate": safe_float(summary["pass_rate"], 1),
        "fail_count": summary["fail_count"],
        "student_count": summary["pass_count"] + summary["fail_count"],
        "components": [
            {
                "name": c["name"],
                "mean": safe_float(c["mean"], 1),
                "correlation_with_total": safe_float(c["correlation_with_total"], 2),
            }
            for c in payload["component_stats"]
        ],
    })
    return payload


def _bullets(lines: List[str]) -> str:
    return "\n".join(f"- {line}" for line in lines)


def _deterministic_action_plan(metrics: Dict[str, Any]) -> Dict[str, Any]:
    mean = metrics.get("mean") or 0
    pass_rate = metrics.get("pass_rate") or 0
    fail_count = metrics.get("fail_count", 0)
    strongest = metrics.get("strongest_component", "N/A")
    weakest = metrics.get("weakest_component", "N/A")
    components = metrics.get("components", [])
    driver = max(components, key=lambda c: abs(c.get("correlation_with_total") or 0), default=None)

    high = [
        f"Offer extension tasks in {strongest}, where the class is already strongest.",
        "Invite top scorers to lead peer study groups.",
        "Point high achievers to competitions and enrichment projects.",
    ]
    average = [
        f"Schedule weekly practice sets in {weakest} to lift the class mean ({mean}%).",
        "Use short retrieval quizzes to consolidate recent topics.",
        "Set each student a concrete target for the next grade band.",
    ]
    at_risk = [
        f"{fail_count} student(s) are below the pass mark; arrange small-group remediation.",
        f"Start with foundational skills in {weakest}.",
        "Contact parents or guardians with a simple home study routine.",
    ]
    teacher = [
        f"Reteach the lowest-scoring component ({weakest}) next week.",
        "Group students by performance band for targeted activities.",
    ]
    if driver is not None:
        teacher.append(
            f"{driver['name']} tracks the final result most closely "
            f"(r = {driver.get('correlation_with_total')}); prioritise it in revision."
        )
    hod = [
        f"Pass rate is {pass_rate}%; compare against the department target.",
        f"Review curriculum coverage and assessment design for {weakest}.",
        f"Share the practice that works in {strongest} across the department.",
    ]

    return {
        "mode": "deterministic",
        "high_achiever_plan": _bullets(high),
        "average_student_plan": _bullets(average),
        "at_risk_plan": _bullets(at_risk),
        "teacher_actions": _bullets(teacher),
        "hod_insights": _bullets(hod),
    }


def _build_prompt(metrics: Dict[str, Any]) -> str:
    component_lines = "\n".join(
        f"- {c['name']}: Mean {c['mean']}, Correlation {c['correlation_with_total']}"
        for c in metrics.get("components", [])
    )
    return (
        "Role: Educational Data Analyst Expert.\n"
        "Task: Analyze the following academic data summary and generate specific, actionable educational plans.\n\n"
        "Data Summary:\n"
        f"- Overall Mean Score: {metrics.get('mean')}%\n"
        f"- Standard Deviation: {metrics.get('std_dev')}\n"
        f"- Pass Rate: {metrics.get('pass_rate')}%\n"
        f"- Failing Students: {metrics.get('fail_count')}\n"
        f"- Strongest Component: {metrics.get('strongest_component')}\n"
        f"- Weakest Component: {metrics.get('weakest_component')}\n\n"
        "Component Details (Correlation with Final Grade):\n"
        f"{component_lines}\n\n"
        "Return a JSON object with these keys, each value a detailed Markdown string:\n"
        "1. high_achiever_plan: enrichment, competitions, leadership.\n"
        "2. average_student_plan: consolidation, practice, movement to next level.\n"
        "3. at_risk_plan: remediation, parent intervention, foundational steps.\n"
        "4. teacher_actions: pedagogy changes, grouping strategies, what to reteach next week.\n"
        "5. hod_insights: curriculum gaps, teacher PD needs, strategic changes for the department.\n"
        "Make the advice specific to the data (e.g. mention components with high correlation). "
        "Do not invent numbers. Return raw JSON only."
    )


def _sections_from_text(text: str, mode: str) -> Dict[str, Any]:
    text = (text or "").strip()
    if not text:
        raise RuntimeError("Empty AI response.")
    parsed = json.loads(text)
    if not isinstance(parsed, dict):
        raise RuntimeError("AI response is not a JSON object.")
    plan: Dict[str, Any] = {"mode": mode}
    for key, value in parsed.items():
        section = _CAMEL_SECTIONS.get(key, key)
        if section in PLAN_SECTIONS:
            plan[section] = str(value)
    missing = [s for s in PLAN_SECTIONS if s not in plan]
    if missing:
        raise RuntimeError(f"AI response missing sections: {missing}")
    return plan


def _call_gemini_action_plan(metrics: Dict[str, Any]) -> Dict[str, Any]:
    api_key = os.getenv("GEMINI_API_KEY", "").strip()
    model = os.getenv("GEMINI_MODEL", "gemini-2.5-flash").strip()
    timeout_s = float(os.getenv("AI_TIMEOUT_SECONDS", "20"))
    temperature = float(os.getenv("AI_TEMPERATURE", "0.2"))
    if not api_key:
        raise RuntimeError("GEMINI_API_KEY is not set.")

    payload = {
        "contents": [{"role": "user", "parts": [{"text": _build_prompt(metrics)}]}],
        "generationConfig": {
            "responseMimeType": "application/json",
            "temperature": temperature,
        },
    }
    with httpx.Client(timeout=timeout_s) as client:
        res = client.post(
            GEMINI_URL.format(model=model),
            headers={"x-goog-api-key": api_key, "Content-Type": "application/json"},
            json=payload,
        )
        res.raise_for_status()
        data = res.json()

    candidates = data.get("candidates") or []
    if not candidates:
        raise RuntimeError("AI response had no candidates.")
    parts = (candidates[0].get("content") or {}).get("parts") or []
    text = "".join(p.get("text", "") for p in parts)
    return _sections_from_text(text, "ai_gemini")


def _call_openai_action_plan(metrics: Dict[str, Any]) -> Dict[str, Any]:
    api_key = os.getenv("OPENAI_API_KEY", "").strip()
    model = os.getenv("OPENAI_MODEL", "gpt-4o-mini").strip()
    timeout_s = float(os.getenv("AI_TIMEOUT_SECONDS", "20"))
    temperature = float(os.getenv("AI_TEMPERATURE", "0.2"))
    if not api_key:
        raise RuntimeError("OPENAI_API_KEY is not set.")

    payload = {
        "model": model,
        "input": [
            {"role": "user", "content": [{"type": "input_text", "text": _build_prompt(metrics)}]},
        ],
        "temperature": temperature,
        "text": {
            "format": {
                "type": "json_schema",
                "name": "action_plan",
                "schema": {
                    "type": "object",
                    "additionalProperties": False,
                    "properties": {s: {"type": "string"} for s in PLAN_SECTIONS},
                    "required": list(PLAN_SECTIONS),
                },
                "strict": True,
            }
        },
    }
    with httpx.Client(timeout=timeout_s) as client:
        res = client.post(
            OPENAI_URL,
            headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
            json=payload,
        )
        res.raise_for_status()
        data = res.json()

    return _sections_from_text(data.get("output_text", ""), "ai_openai")


def generate_action_plan(analysis: FullAnalysis) -> Dict[str, Any]:
    """
    Public entrypoint for the differentiated action plan.

    Behavior:
    - AI disabled (default): deterministic plan.
    - AI enabled and working: narrative from the configured provider.
    - AI enabled but failing: deterministic plan flagged as a retryable fallback.
    """
    metrics = build_action_plan_metrics(analysis)

    ai_enabled = os.getenv("AI_ENABLED", "false").strip().lower() in {"1", "true", "yes", "on"}
    provider = os.getenv("AI_PROVIDER", "gemini").strip().lower()

    if not ai_enabled:
        return _deterministic_action_plan(metrics)

    callers = {
        "gemini": _call_gemini_action_plan,
        "openai": _call_openai_action_plan,
    }
    call = callers.get(provider)
    if call is None:
        logger.warning("unknown AI_PROVIDER %r; using deterministic plan", provider)
        return _deterministic_action_plan(metrics)

    try:
        return call(metrics)
    except (httpx.HTTPError, RuntimeError, ValueError, KeyError) as exc:
        logger.warning("action plan generation via %s failed: %s", provider, exc)
        fallback = _deterministic_action_plan(metrics)
        fallback["mode"] = "deterministic_fallback"
        fallback["ai_error"] = str(exc)
        fallback["retryable"] = True
        return fallback
