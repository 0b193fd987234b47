"""Agent executor: one inference round trip for one agent.

A step resolves the agent, asks the inference collaborator for a reply
and, if the reply requests tools, runs them as one batch and appends the
results. The caller's history is never modified; the step returns a new
list with the produced turns appended.
"""

import logging
from typing import Iterable, Sequence

from ..exceptions import ConfigurationError, InferenceError
from ..registry import AgentRegistry
from ..tools import ToolExecutor
from ..types import (
    AgentDefinition,
    ConversationTurn,
    InferenceCollaborator,
    InferenceRequest,
    InferenceResponse,
    StepKind,
    StepResult,
    TurnRole,
)

logger = logging.getLogger(__name__)


class AgentExecutor:
    """Runs single agent steps.

    Example:
        executor = AgentExecutor(registry, gateway, tool_executor)
        step = await executor.step("researcher", [ConversationTurn.user("Hi")])
        if step.continuation_required:
            step = await executor.step("researcher", step.history)
    """

    def __init__(
        self,
        registry: AgentRegistry,
        inference: InferenceCollaborator,
        tools: ToolExecutor,
    ):
        self._registry = registry
        self._inference = inference
        self._tools = tools

    @property
    def registry(self) -> AgentRegistry:
        return self._registry

    @property
    def tools(self) -> ToolExecutor:
        return self._tools

    async def step(
        self,
        agent_id: str,
        history: Sequence[ConversationTurn],
        available_tools: Iterable[str] | None = None,
    ) -> StepResult:
        """Run one step for ``agent_id``.

        Args:
            agent_id: Agent to run.
            history: Conversation so far. Not modified.
            available_tools: Further narrows the agent's own tool list.

        Returns:
            A StepResult whose ``history`` is ``history`` plus this step's turns.

        Raises:
            AgentNotFoundError: If the agent is not registered.
            InferenceError: If the inference call fails. Not retried here.
        """
        agent = self._registry.lookup(agent_id)
        tool_names = self._tool_names(agent, available_tools)

        request = InferenceRequest(
            agent_id=agent.agent_id,
            system_instructions=agent.system_instructions,
            turns=list(history),
            available_tool_schemas=self._tools.registry.schemas(tool_names),
            model=agent.model,
        )
        response = await self._infer(agent, request)
        updated = list(history)

        if response.has_tool_calls:
            assistant = ConversationTurn(
                role=TurnRole.ASSISTANT,
                content=response.content,
                tool_calls=list(response.tool_call_requests),
                agent_id=agent.agent_id,
            )
            results = await self._tools.execute(
                response.tool_call_requests,
                allowed_tools=tool_names,
                agent_id=agent.agent_id,
            )
            tool_turn = ConversationTurn(role=TurnRole.TOOL, tool_results=results, agent_id=agent.agent_id)
            updated.extend([assistant, tool_turn])

            failed = sum(1 for r in results if not r.success)
            logger.debug(
                f"Agent '{agent.agent_id}' ran {len(results)} tool calls ({failed} failed)"
            )
            return StepResult(
                kind=StepKind.TOOL_CALLS,
                content=response.content,
                requests=list(response.tool_call_requests),
                tool_results=results,
                history=updated,
                continuation_required=True,
            )

        if response.content is None or not response.content.strip():
            return StepResult(
                kind=StepKind.ERROR,
                reason="Inference returned neither text nor tool calls",
                history=updated,
                continuation_required=False,
            )

        updated.append(ConversationTurn.assistant(response.content, agent_id=agent.agent_id))
        return StepResult(
            kind=StepKind.TEXT,
            content=response.content,
            history=updated,
            continuation_required=False,
        )

    def _tool_names(self, agent: AgentDefinition, available_tools: Iterable[str] | None) -> list[str]:
        names = list(agent.tools)
        if available_tools is not None:
            allowed = set(available_tools)
            names = [n for n in names if n in allowed]
        return names

    async def _infer(self, agent: AgentDefinition, request: InferenceRequest) -> InferenceResponse:
        try:
            return await self._inference.infer(request)
        except (InferenceError, ConfigurationError):
            raise
        except Exception as e:
            raise InferenceError("unknown", f"{type(e).__name__}: {e}", transient=False, original_error=e) from e
