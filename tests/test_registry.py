"""Tests for the agent registry."""

import json

import pytest

from tandem import AgentDefinition, AgentRegistry, ModelConfig, ModelProvider, register_default_agents
from tandem.exceptions import AgentNotFoundError, ConfigurationError, DuplicateAgentError, ProviderNotFoundError

from conftest import make_agent


class TestRegistration:
    """Tests for registering and removing agents."""

    def test_register_and_lookup(self):
        """Test a registered agent can be looked up by id."""
        registry = AgentRegistry()
        registry.register(make_agent("researcher", capabilities=["research"]))

        agent = registry.lookup("researcher")
        assert agent.agent_id == "researcher"
        assert agent.capabilities == ("research",)
        assert "researcher" in registry
        assert len(registry) == 1

    def test_register_duplicate_rejected(self):
        """Test registering the same id twice raises DuplicateAgentError."""
        registry = AgentRegistry([make_agent("writer")])

        with pytest.raises(DuplicateAgentError) as exc_info:
            registry.register(make_agent("writer"))
        assert exc_info.value.agent_id == "writer"
        assert registry.count() == 1

    def test_register_from_dict(self):
        """Test dict definitions are validated into AgentDefinitions."""
        registry = AgentRegistry()
        agent = registry.register(
            {"agent_id": "a1", "name": "A1", "system_instructions": "Be brief.", "tools": ["x"]}
        )

        assert isinstance(agent, AgentDefinition)
        assert agent.tools == ("x",)

    def test_register_invalid_dict(self):
        """Test an invalid dict raises ConfigurationError."""
        registry = AgentRegistry()

        with pytest.raises(ConfigurationError):
            registry.register({"agent_id": "a1", "name": "A1", "system_instructions": "  "})

    def test_register_bulk_collects_failures(self):
        """Test bulk registration keeps going past bad entries."""
        registry = AgentRegistry([make_agent("existing")])
        report = registry.register_bulk(
            [make_agent("new-one"), make_agent("existing"), {"agent_id": "bad"}]
        )

        assert report.registered == ["new-one"]
        assert [agent_id for agent_id, _ in report.failed] == ["existing", "bad"]
        assert not report.ok

    def test_unregister(self):
        """Test unregistering removes the agent and returns it."""
        registry = AgentRegistry([make_agent("temp")])

        removed = registry.unregister("temp")
        assert removed.agent_id == "temp"
        assert not registry.has("temp")

        with pytest.raises(AgentNotFoundError):
            registry.unregister("temp")

    def test_clone_with_overrides(self):
        """Test cloning registers a copy under a new id."""
        registry = AgentRegistry([make_agent("base", capabilities=["research"])])

        clone = registry.clone("base", "base-2", capabilities=("research", "review"))
        assert clone.agent_id == "base-2"
        assert clone.capabilities == ("research", "review")
        assert registry.lookup("base").capabilities == ("research",)


class TestLookup:
    """Tests for lookups and capability queries."""

    def test_lookup_unknown(self):
        """Test unknown ids raise AgentNotFoundError, get returns None."""
        registry = AgentRegistry()

        with pytest.raises(AgentNotFoundError):
            registry.lookup("ghost")
        assert registry.get("ghost") is None

    def test_find_by_capability_in_registration_order(self, registry):
        """Test capability matches come back in registration order."""
        registry.register(make_agent("second-researcher", capabilities=["research"]))

        found = [a.agent_id for a in registry.find_by_capability("research")]
        assert found == ["research", "second-researcher"]

    def test_find_by_capability_no_match(self, registry):
        """Test an unused tag yields an empty sequence, not an error."""
        assert list(registry.find_by_capability("astrology")) == []

    def test_find_by_capability_is_lazy_snapshot(self, registry):
        """Test agents registered mid-iteration are not yielded."""
        seen = []
        for agent in registry.find_by_capability("research"):
            seen.append(agent.agent_id)
            registry.register(make_agent("late", capabilities=["research"]))

        assert seen == ["research"]
        assert registry.has("late")

    def test_find_by_capabilities_requires_all(self):
        """Test multi-tag queries match agents carrying every tag."""
        registry = AgentRegistry(
            [
                make_agent("a", capabilities=["research", "analysis"]),
                make_agent("b", capabilities=["research"]),
            ]
        )

        assert [a.agent_id for a in registry.find_by_capabilities(["research", "analysis"])] == ["a"]

    def test_find_by_provider(self):
        """Test provider queries use each agent's model config."""
        registry = AgentRegistry(
            [
                make_agent("o", model=ModelConfig(provider=ModelProvider.OPENAI)),
                make_agent("m", model=ModelConfig(provider=ModelProvider.MOCK)),
                make_agent("none"),
            ]
        )

        assert [a.agent_id for a in registry.find_by_provider("openai")] == ["o"]

    def test_find_by_unknown_provider(self):
        """Test an unknown provider name raises ProviderNotFoundError."""
        registry = AgentRegistry([make_agent("o", model=ModelConfig(provider=ModelProvider.OPENAI))])

        with pytest.raises(ProviderNotFoundError) as exc_info:
            registry.find_by_provider("grok")
        assert exc_info.value.provider == "grok"

    def test_search(self):
        """Test name and description search."""
        registry = AgentRegistry(
            [
                make_agent("r", name="Research Agent", description="finds sources"),
                make_agent("w", name="Writer", description="writes research summaries"),
            ]
        )

        assert [a.agent_id for a in registry.search("research")] == ["r"]
        assert [a.agent_id for a in registry.search("research", search_description=True)] == ["r", "w"]
        assert registry.search("RESEARCH", case_sensitive=True) == []

    def test_capabilities(self, registry):
        """Test capability listings."""
        assert registry.capabilities() == ["coding", "research", "writing"]
        assert registry.capabilities_by_agent(["code", "creative"]) == {
            "code": ("coding",),
            "creative": ("writing",),
        }

    def test_definitions_are_immutable(self, registry):
        """Test definitions cannot be changed after registration."""
        agent = registry.lookup("research")

        with pytest.raises(Exception):
            agent.agent_id = "changed"


class TestImportExport:
    """Tests for JSON import/export."""

    def test_round_trip(self, registry):
        """Test exported agents import into a fresh registry."""
        payload = registry.export_json(pretty=True)
        fresh = AgentRegistry()
        report = fresh.import_json(payload)

        assert report.ok
        assert fresh.ids() == registry.ids()
        assert fresh.lookup("research").tools == ("lookup",)

    def test_import_rejects_non_array(self):
        """Test non-array payloads are configuration errors."""
        with pytest.raises(ConfigurationError):
            AgentRegistry().import_json(json.dumps({"agent_id": "x"}))

    def test_import_strict_mode(self):
        """Test skip_invalid=False raises on bad entries."""
        payload = json.dumps([{"agent_id": "x"}])

        with pytest.raises(ConfigurationError):
            AgentRegistry().import_json(payload, skip_invalid=False)


class TestDefaultAgents:
    """Tests for the built-in agent set."""

    def test_register_default_agents(self):
        """Test the default agents register once."""
        registry = AgentRegistry()

        assert register_default_agents(registry) == 4
        assert register_default_agents(registry) == 0
        assert set(registry.ids()) == {"research-agent", "code-agent", "creative-agent", "analyst-agent"}
        assert registry.lookup("analyst-agent").tools == ("calculate_expression",)
