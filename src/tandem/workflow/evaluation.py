"""Evaluator output parsing and refinement prompts.

The default parser understands the formats evaluator agents are usually
asked for::

    SCORE: 85
    FEEDBACK: Tighten the introduction.
    ISSUES:
    - intro is long
    SUGGESTIONS:
    - cut the first paragraph

as well as ``SCORE: 0.85``, ``SCORE: 8/10``, a bare ``85/100``, or a JSON
object ``{"score": 85, "feedback": "..."}``. Scores are normalized to
0.0-1.0. Whole numbers are read on the 0-100 scale the evaluation prompt
asks for, so ``SCORE: 1`` is 0.01. A decimal of at most 1 (``0.85``) or a
fraction (``8/10``) is read as already normalized.
"""

import json
import re
from typing import Any

from ..types import EvaluationResult

_SCORE = re.compile(r"score\s*[:=]\s*(\d+(?:\.\d+)?)(?:\s*/\s*(\d+(?:\.\d+)?))?", re.IGNORECASE)
_FRACTION = re.compile(r"(\d+(?:\.\d+)?)\s*/\s*(\d+(?:\.\d+)?)")
_SECTION = r"(?=\n\s*(?:score|feedback|issues|suggestions)\s*:|\Z)"
_FEEDBACK = re.compile(r"feedback\s*:\s*(.+?)" + _SECTION, re.IGNORECASE | re.DOTALL)
_ISSUES = re.compile(r"issues\s*:\s*(.+?)" + _SECTION, re.IGNORECASE | re.DOTALL)
_SUGGESTIONS = re.compile(r"suggestions\s*:\s*(.+?)" + _SECTION, re.IGNORECASE | re.DOTALL)
_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def normalize_score(value: int | float, scale: float | None = None) -> float:
    """Map a raw score onto 0.0-1.0.

    With a ``scale`` the value is divided by it. Otherwise integers are
    percentages, and floats above 1 are too.
    """
    if scale:
        value = value / scale
    elif isinstance(value, int) or value > 1.0:
        value = value / 100.0
    return min(max(float(value), 0.0), 1.0)


def _number(token: str) -> int | float:
    return float(token) if "." in token else int(token)


def parse_evaluation(text: str) -> EvaluationResult:
    """Parse an evaluator reply. Unparseable replies score 0.0."""
    text = text or ""
    parsed = _parse_json(text)
    if parsed is not None:
        return parsed

    score = 0.0
    match = _SCORE.search(text)
    if match:
        scale = float(match.group(2)) if match.group(2) else None
        score = normalize_score(_number(match.group(1)), scale)
    else:
        match = _FRACTION.search(text)
        if match and float(match.group(2)) > 0:
            score = normalize_score(float(match.group(1)), float(match.group(2)))

    feedback_match = _FEEDBACK.search(text)
    feedback = feedback_match.group(1).strip() if feedback_match else text.strip()

    return EvaluationResult(
        score=score,
        feedback=feedback,
        issues=_bullets(_ISSUES.search(text)),
        suggestions=_bullets(_SUGGESTIONS.search(text)),
        raw=text,
    )


def _parse_json(text: str) -> EvaluationResult | None:
    match = _JSON_OBJECT.search(text)
    if match is None:
        return None
    try:
        data: Any = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    score = data.get("score")
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        return None
    return EvaluationResult(
        score=normalize_score(score),
        feedback=str(data.get("feedback", "")),
        issues=[str(i) for i in data.get("issues", []) or []],
        suggestions=[str(s) for s in data.get("suggestions", []) or []],
        raw=text,
    )


def _bullets(match: re.Match[str] | None) -> list[str]:
    if match is None:
        return []
    items = []
    for line in match.group(1).splitlines():
        line = line.strip().lstrip("-*").strip()
        if line:
            items.append(line)
    return items


def evaluation_prompt(request: str, output: str, criteria: str | None = None) -> str:
    prompt = (
        "Evaluate the following output against the original request.\n\n"
        f"Original Request: {request}\n\n"
        f"Output:\n{output}\n\n"
    )
    if criteria:
        prompt += f"Evaluation Criteria:\n{criteria}\n\n"
    return prompt + "Reply with SCORE: <0-100> and FEEDBACK: <what to improve>."


def revision_prompt(request: str, output: str, evaluation: EvaluationResult) -> str:
    lines = [
        f"Original Request: {request}",
        "",
        f"Current Output:\n{output}",
        "",
        f"Evaluation Feedback (Score: {round(evaluation.score * 100)}/100):",
        evaluation.feedback,
    ]
    if evaluation.suggestions:
        lines += ["", "Suggestions:"] + [f"- {s}" for s in evaluation.suggestions]
    lines += ["", "Please revise the output to address the feedback."]
    return "\n".join(lines)
