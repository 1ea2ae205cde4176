"""
Miniville - a small town of generative agents.

Agents perceive a shared map of named places, retrieve relevant memories,
ask a single serialized decision gateway (an LLM) what to do next, and reflect
on what they have lived through.
"""

__version__ = "0.1.0"

# Main simulation components
from .orchestrator import Orchestrator
from .agent import Agent, AgentState, CognitionMode, StateKind
from .world import World
from .memory import MemoryStream
from .gateway import (
    Absent,
    ChatBackend,
    DecisionGateway,
    GatewayResult,
    MirascopeBackend,
    OllamaBackend,
    Parsed,
    Text,
    build_gateway,
)
from .scenario import Scenario, ScenarioError, ScenarioLoader, load_scenario, smallville
from .config import Config

# Core schemas
from .schemas import (
    ActionDecision,
    AgentProfile,
    AgentSnapshot,
    ChatMessage,
    DailyPlan,
    MemoryRecord,
    Perception,
    Place,
    ReflectionOutput,
    ScoredMemory,
    TimeBlock,
    WorldEvent,
)

__all__ = [
    # Main
    "Orchestrator",
    "Agent",
    "AgentState",
    "CognitionMode",
    "StateKind",
    "World",
    "MemoryStream",
    # Gateway
    "Absent",
    "ChatBackend",
    "DecisionGateway",
    "GatewayResult",
    "MirascopeBackend",
    "OllamaBackend",
    "Parsed",
    "Text",
    "build_gateway",
    # Scenarios
    "Scenario",
    "ScenarioError",
    "ScenarioLoader",
    "load_scenario",
    "smallville",
    "Config",
    # Schemas
    "ActionDecision",
    "AgentProfile",
    "AgentSnapshot",
    "ChatMessage",
    "DailyPlan",
    "MemoryRecord",
    "Perception",
    "Place",
    "ReflectionOutput",
    "ScoredMemory",
    "TimeBlock",
    "WorldEvent",
]
