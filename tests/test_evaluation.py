"""Tests for evaluator reply parsing and refinement prompts."""

import pytest

from tandem import EvaluationResult
from tandem.workflow import evaluation_prompt, normalize_score, parse_evaluation, revision_prompt


class TestParseEvaluation:
    """Tests for parse_evaluation."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("SCORE: 85\nFEEDBACK: good", 0.85),
            ("SCORE: 0.85", 0.85),
            ("SCORE: 1\nFEEDBACK: terrible", 0.01),
            ("SCORE: 1.0", 1.0),
            ("score = 8/10", 0.8),
            ("I would rate this 3/4 overall.", 0.75),
            ('{"score": 0.6, "feedback": "ok"}', 0.6),
            ('{"score": 70}', 0.7),
            ('{"score": 1}', 0.01),
            ('{"score": true}', 0.0),
            ("SCORE: 150", 1.0),
            ("no score here", 0.0),
            ("", 0.0),
        ],
    )
    def test_score_formats(self, text, expected):
        """Test every supported score format normalizes to 0-1."""
        assert parse_evaluation(text).score == pytest.approx(expected)

    def test_sections(self):
        """Test feedback, issues and suggestions are extracted."""
        text = (
            "SCORE: 72\n"
            "FEEDBACK: Tighten the introduction.\n"
            "ISSUES:\n"
            "- intro is long\n"
            "- no conclusion\n"
            "SUGGESTIONS:\n"
            "* cut the first paragraph\n"
        )

        result = parse_evaluation(text)

        assert result.feedback == "Tighten the introduction."
        assert result.issues == ["intro is long", "no conclusion"]
        assert result.suggestions == ["cut the first paragraph"]
        assert result.raw == text

    def test_feedback_defaults_to_whole_reply(self):
        """Test a reply without a FEEDBACK section becomes the feedback."""
        assert parse_evaluation("SCORE: 50 needs work").feedback == "SCORE: 50 needs work"

    def test_json_with_lists(self):
        """Test JSON replies carry their lists through."""
        result = parse_evaluation('Verdict: {"score": 0.9, "issues": ["typo"], "suggestions": []}')

        assert result.score == 0.9
        assert result.issues == ["typo"]

    def test_json_without_score_falls_back(self):
        """Test JSON lacking a numeric score is parsed as text."""
        assert parse_evaluation('SCORE: 40 {"note": "x"}').score == pytest.approx(0.4)


class TestNormalizeScore:
    """Tests for normalize_score."""

    @pytest.mark.parametrize(
        "value,scale,expected",
        [
            (0.5, None, 0.5),
            (1.0, None, 1.0),
            (1, None, 0.01),
            (50, None, 0.5),
            (72.5, None, 0.725),
            (7, 10, 0.7),
            (-3, None, 0.0),
            (12, 10, 1.0),
        ],
    )
    def test_normalize(self, value, scale, expected):
        """Test values map onto 0-1 and clamp."""
        assert normalize_score(value, scale) == pytest.approx(expected)


class TestPrompts:
    """Tests for the evaluator and revision prompts."""

    def test_evaluation_prompt(self):
        """Test the evaluation prompt carries request and output."""
        prompt = evaluation_prompt("Write a haiku", "An old silent pond")

        assert "Original Request: Write a haiku" in prompt
        assert "An old silent pond" in prompt
        assert "SCORE" in prompt
        assert "Evaluation Criteria" not in prompt

    def test_evaluation_prompt_with_criteria(self):
        """Test criteria are included ahead of the reply format."""
        prompt = evaluation_prompt("Write a haiku", "An old silent pond", criteria="- 5-7-5 syllables\n- a season word")

        assert "Evaluation Criteria:\n- 5-7-5 syllables\n- a season word" in prompt
        assert prompt.endswith("Reply with SCORE: <0-100> and FEEDBACK: <what to improve>.")

    def test_revision_prompt(self):
        """Test the revision prompt carries score, feedback and suggestions."""
        evaluation = EvaluationResult(score=0.42, feedback="Add imagery.", suggestions=["mention frogs"])

        prompt = revision_prompt("Write a haiku", "An old silent pond", evaluation)

        assert "Score: 42/100" in prompt
        assert "Add imagery." in prompt
        assert "- mention frogs" in prompt
        assert prompt.endswith("Please revise the output to address the feedback.")
