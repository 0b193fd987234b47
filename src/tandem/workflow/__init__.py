"""Agent execution and multi-agent workflow patterns."""

from .agent import AgentExecutor
from .engine import WorkflowEngine, concatenate_branches, workflow_tool
from .evaluation import evaluation_prompt, normalize_score, parse_evaluation, revision_prompt
from .events import WorkflowRun
from .loop import LoopController, StopCondition, keyword_stop_condition, stability_stop_condition
from .routing import latest_user_text, normalize_selection, route_by_capability, route_by_keywords

__all__ = [
    "AgentExecutor",
    "LoopController",
    "StopCondition",
    "WorkflowEngine",
    "WorkflowRun",
    "concatenate_branches",
    "evaluation_prompt",
    "keyword_stop_condition",
    "latest_user_text",
    "normalize_score",
    "normalize_selection",
    "parse_evaluation",
    "revision_prompt",
    "route_by_capability",
    "route_by_keywords",
    "stability_stop_condition",
    "workflow_tool",
]
