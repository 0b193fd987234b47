"""Agent registry for Tandem."""

from .agents import DEFAULT_AGENTS, AgentRegistry, BulkRegistration, register_default_agents

__all__ = ["AgentRegistry", "BulkRegistration", "DEFAULT_AGENTS", "register_default_agents"]
