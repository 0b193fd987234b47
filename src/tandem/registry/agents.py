"""Agent registry.

Holds immutable AgentDefinitions keyed by id and answers capability
queries used by routing. Reads never mutate state.
"""

import json
import logging
import threading
from typing import Any, Iterable, Iterator

from pydantic import ValidationError

from ..exceptions import AgentNotFoundError, ConfigurationError, DuplicateAgentError, ProviderNotFoundError
from ..types import AgentDefinition, ModelConfig, ModelProvider

logger = logging.getLogger(__name__)


class BulkRegistration:
    """Outcome of ``register_bulk`` / ``import_json``."""

    __slots__ = ("registered", "failed")

    def __init__(self) -> None:
        self.registered: list[str] = []
        self.failed: list[tuple[str, str]] = []

    @property
    def ok(self) -> bool:
        return not self.failed

    def __repr__(self) -> str:
        return f"BulkRegistration(registered={self.registered!r}, failed={self.failed!r})"


class AgentRegistry:
    """Registry of agent definitions.

    Example:
        registry = AgentRegistry()
        registry.register(AgentDefinition(
            agent_id="researcher",
            name="Researcher",
            system_instructions="You research topics.",
            capabilities=("research",),
        ))

        agent = registry.lookup("researcher")
        coders = list(registry.find_by_capability("coding"))
    """

    def __init__(self, agents: Iterable[AgentDefinition] | None = None):
        self._agents: dict[str, AgentDefinition] = {}
        self._lock = threading.RLock()
        for agent in agents or ():
            self.register(agent)

    # =========================================================================
    # Registration
    # =========================================================================

    def register(self, definition: AgentDefinition | dict[str, Any]) -> AgentDefinition:
        """Register an agent definition.

        Args:
            definition: An AgentDefinition or a dict of its fields.

        Returns:
            The registered (validated) definition.

        Raises:
            DuplicateAgentError: If the id is already registered.
            ConfigurationError: If a dict definition fails validation.
        """
        if not isinstance(definition, AgentDefinition):
            definition = _coerce(definition)

        with self._lock:
            if definition.agent_id in self._agents:
                raise DuplicateAgentError(definition.agent_id)
            self._agents[definition.agent_id] = definition

        logger.debug(f"Registered agent '{definition.agent_id}'")
        return definition

    def register_bulk(self, definitions: Iterable[AgentDefinition | dict[str, Any]]) -> BulkRegistration:
        """Register many definitions, collecting failures instead of raising."""
        report = BulkRegistration()
        for definition in definitions:
            agent_id = (
                definition.agent_id
                if isinstance(definition, AgentDefinition)
                else str(definition.get("agent_id", "<unknown>"))
            )
            try:
                self.register(definition)
            except ConfigurationError as e:
                report.failed.append((agent_id, str(e)))
            else:
                report.registered.append(agent_id)

        if report.failed:
            logger.warning(
                f"Registered {len(report.registered)} agents, {len(report.failed)} failed"
            )
        return report

    def unregister(self, agent_id: str) -> AgentDefinition:
        """Remove an agent.

        Raises:
            AgentNotFoundError: If the id is not registered.
        """
        with self._lock:
            if agent_id not in self._agents:
                raise AgentNotFoundError(agent_id)
            return self._agents.pop(agent_id)

    def clone(self, agent_id: str, new_id: str, **updates: Any) -> AgentDefinition:
        """Register a copy of an agent under a new id with field overrides."""
        source = self.lookup(agent_id)
        data = source.model_dump()
        data.update(updates)
        data["agent_id"] = new_id
        return self.register(data)

    # =========================================================================
    # Lookup
    # =========================================================================

    def lookup(self, agent_id: str) -> AgentDefinition:
        """Get an agent definition.

        Raises:
            AgentNotFoundError: If the id is not registered.
        """
        with self._lock:
            definition = self._agents.get(agent_id)
        if definition is None:
            raise AgentNotFoundError(agent_id)
        return definition

    def get(self, agent_id: str) -> AgentDefinition | None:
        with self._lock:
            return self._agents.get(agent_id)

    def has(self, agent_id: str) -> bool:
        with self._lock:
            return agent_id in self._agents

    def count(self) -> int:
        with self._lock:
            return len(self._agents)

    def all(self) -> list[AgentDefinition]:
        """All definitions in registration order."""
        with self._lock:
            return list(self._agents.values())

    def ids(self) -> list[str]:
        with self._lock:
            return list(self._agents)

    def find_by_capability(self, tag: str) -> Iterator[AgentDefinition]:
        """Lazily yield agents carrying ``tag``, in registration order.

        The sequence is taken from a snapshot, so agents registered while
        iterating are not included. No match yields nothing.
        """
        for definition in self.all():
            if tag in definition.capabilities:
                yield definition

    def find_by_capabilities(self, tags: Iterable[str]) -> list[AgentDefinition]:
        """Agents carrying every tag in ``tags``."""
        wanted = set(tags)
        return [a for a in self.all() if wanted.issubset(a.capabilities)]

    def find_by_provider(self, provider: ModelProvider | str) -> list[AgentDefinition]:
        """Agents whose model config names ``provider``.

        Raises:
            ProviderNotFoundError: If ``provider`` is not a known provider.
        """
        try:
            provider = ModelProvider(provider)
        except ValueError:
            raise ProviderNotFoundError(str(provider)) from None
        return [a for a in self.all() if a.model is not None and a.model.provider == provider]

    def search(
        self,
        query: str,
        search_description: bool = False,
        case_sensitive: bool = False,
    ) -> list[AgentDefinition]:
        """Find agents whose name (and optionally description) contains ``query``."""
        needle = query if case_sensitive else query.lower()
        matches = []
        for agent in self.all():
            haystacks = [agent.name]
            if search_description:
                haystacks.append(agent.description)
            if not case_sensitive:
                haystacks = [h.lower() for h in haystacks]
            if any(needle in h for h in haystacks):
                matches.append(agent)
        return matches

    def capabilities(self) -> list[str]:
        """Every capability tag in use, sorted."""
        tags: set[str] = set()
        for agent in self.all():
            tags.update(agent.capabilities)
        return sorted(tags)

    def capabilities_by_agent(self, agent_ids: Iterable[str]) -> dict[str, tuple[str, ...]]:
        """Map each id to its capability tags.

        Raises:
            AgentNotFoundError: If any id is not registered.
        """
        return {agent_id: self.lookup(agent_id).capabilities for agent_id in agent_ids}

    # =========================================================================
    # Import / Export
    # =========================================================================

    def export_json(self, pretty: bool = False) -> str:
        """Serialize every definition to a JSON array."""
        data = [agent.model_dump(mode="json") for agent in self.all()]
        return json.dumps(data, indent=2 if pretty else None)

    def import_json(self, payload: str, skip_invalid: bool = True) -> BulkRegistration:
        """Register definitions from a JSON array produced by ``export_json``.

        Raises:
            ConfigurationError: If the payload is not a JSON array, or if
                ``skip_invalid`` is False and any entry fails.
        """
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid agent JSON: {e}") from e
        if not isinstance(data, list):
            raise ConfigurationError("Agent JSON must be an array of definitions")

        report = self.register_bulk(data)
        if report.failed and not skip_invalid:
            raise ConfigurationError(f"Failed to import agents: {report.failed}")
        return report

    def clear(self) -> None:
        with self._lock:
            self._agents.clear()

    def __contains__(self, agent_id: object) -> bool:
        return isinstance(agent_id, str) and self.has(agent_id)

    def __len__(self) -> int:
        return self.count()


def _coerce(data: dict[str, Any]) -> AgentDefinition:
    try:
        return AgentDefinition.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid agent definition: {e}") from e


# =============================================================================
# Default agents
# =============================================================================


DEFAULT_AGENTS: tuple[AgentDefinition, ...] = (
    AgentDefinition(
        agent_id="research-agent",
        name="Research Agent",
        description="Specializes in gathering information and conducting research",
        system_instructions=(
            "You are a research specialist. Gather comprehensive information, analyze "
            "sources, and provide well-researched answers. Focus on accuracy and "
            "completeness, and cite your sources."
        ),
        capabilities=("research", "analysis", "fact-checking"),
        tools=("search_web",),
        model=ModelConfig(temperature=0.3, max_tokens=4096),
    ),
    AgentDefinition(
        agent_id="code-agent",
        name="Code Agent",
        description="Specializes in writing and analyzing code",
        system_instructions=(
            "You are a senior software engineer. Write clean, efficient, well-documented "
            "code. Consider edge cases and explain your reasoning."
        ),
        capabilities=("coding", "debugging", "code-review"),
        model=ModelConfig(temperature=0.1, max_tokens=8192),
    ),
    AgentDefinition(
        agent_id="creative-agent",
        name="Creative Agent",
        description="Specializes in creative writing and brainstorming",
        system_instructions=(
            "You are a creative writer and ideation specialist. Generate original ideas "
            "and craft engaging narratives."
        ),
        capabilities=("creative-writing", "brainstorming", "storytelling"),
        model=ModelConfig(temperature=0.9, max_tokens=4096),
    ),
    AgentDefinition(
        agent_id="analyst-agent",
        name="Analyst Agent",
        description="Specializes in data analysis and critical thinking",
        system_instructions=(
            "You are a data analyst and critical thinker. Analyze information objectively, "
            "identify patterns, and provide data-driven insights."
        ),
        capabilities=("analysis", "data-processing", "critical-thinking"),
        tools=("calculate_expression",),
        model=ModelConfig(temperature=0.2, max_tokens=4096),
    ),
)


def register_default_agents(registry: AgentRegistry) -> int:
    """Register DEFAULT_AGENTS, skipping ids already present.

    Returns:
        Number of agents registered.
    """
    report = registry.register_bulk(a for a in DEFAULT_AGENTS if not registry.has(a.agent_id))
    return len(report.registered)
