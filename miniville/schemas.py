"""
Pydantic schemas for the Miniville simulation.

All data structures that cross a module boundary are defined here.

Design Philosophy:
- World and memory records are frozen models (immutable once created)
- Decision gateway outputs are lenient about values (importance is clamped,
  unknown memory types become observations) but strict about shape; anything
  that still fails to validate is treated as an absent result by the caller
- Introspection snapshots are copies, so readers can never mutate live state
"""

import re
from datetime import datetime
from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


MemoryType = Literal["observation", "action", "reflection"]
MEMORY_TYPES: Tuple[str, ...] = ("observation", "action", "reflection")

HHMM_PATTERN = r"^\d{2}:\d{2}$"

DEFAULT_IMPORTANCE = 3
MIN_IMPORTANCE = 1
MAX_IMPORTANCE = 10
MAX_PROPOSED_MEMORIES = 3


def coerce_importance(value: Any, default: int = DEFAULT_IMPORTANCE) -> int:
    """Turn an arbitrary importance rating into an int clamped to [1, 10].

    Missing or non-numeric values fall back to ``default`` before clamping.
    """

    if isinstance(value, bool) or value is None:
        number = default
    else:
        try:
            number = int(value)
        except (TypeError, ValueError, OverflowError):
            match = re.search(r"-?\d+", str(value))
            number = int(match.group(0)) if match else default
    return max(MIN_IMPORTANCE, min(MAX_IMPORTANCE, number))


# ============================================================================
# World Schemas
# ============================================================================


class Place(BaseModel):
    """A named circular area of the town.

    Places are fixed for the lifetime of a world. A position belongs to a place
    when its distance to the place centre is within ``radius``; positions that
    belong to no place are "in the street".
    """

    model_config = ConfigDict(frozen=True)

    place_id: str = Field(..., description="Stable identifier (e.g. 'hobbs')")
    name: str = Field(..., description="Display name used in prompts and plans")
    x: float = Field(..., description="Centre x coordinate in grid cells")
    y: float = Field(..., description="Centre y coordinate in grid cells")
    radius: float = Field(..., gt=0, description="Containment radius in grid cells")
    description: str = Field("", description="Short description for prompts")


class ChatMessage(BaseModel):
    """A line of speech posted at a place."""

    model_config = ConfigDict(frozen=True)

    speaker: str
    text: str
    timestamp: datetime


class WorldEvent(BaseModel):
    """An entry of the global event log.

    ``place`` holds the resolved place name, or an empty string when the event
    is not tied to a place.
    """

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    text: str
    place: str = ""


class NearbyAgent(BaseModel):
    """Another agent sharing the perceiving agent's place."""

    model_config = ConfigDict(frozen=True)

    agent_id: str
    name: str
    action: str = "idle"


class Perception(BaseModel):
    """Transient snapshot of what an agent can observe this tick."""

    model_config = ConfigDict(frozen=True)

    place: Optional[Place] = None
    place_name: str = "Street"
    others: Tuple[NearbyAgent, ...] = ()
    chat: Tuple[ChatMessage, ...] = ()

    @property
    def place_id(self) -> Optional[str]:
        return self.place.place_id if self.place is not None else None

    def other_named(self, name: str) -> Optional[NearbyAgent]:
        """Return the nearby agent with this exact display name, if any."""
        for other in self.others:
            if other.name == name:
                return other
        return None


# ============================================================================
# Memory Schemas
# ============================================================================


class MemoryRecord(BaseModel):
    """One immutable entry of an agent's memory stream.

    ``term_frequency`` is derived once from the tokenized text when the record
    is created and is never recomputed. It is stored as sorted ``(token, count)``
    pairs so the record stays immutable all the way down; use ``term_counts()``
    for a dict view.
    """

    model_config = ConfigDict(frozen=True)

    record_id: str = Field(..., description="Unique within the owning stream")
    timestamp: datetime = Field(..., description="Simulated time of the memory")
    text: str
    importance: int = Field(..., ge=1, le=10, description="Poignancy 1-10")
    memory_type: MemoryType = "observation"
    term_frequency: Tuple[Tuple[str, int], ...] = ()

    @field_validator("term_frequency", mode="before")
    @classmethod
    def _freeze_counts(cls, value: Any) -> Any:
        if isinstance(value, Mapping):
            return tuple(sorted(value.items()))
        return value

    def term_counts(self) -> Dict[str, int]:
        """Fresh dict copy of the term frequencies."""
        return dict(self.term_frequency)


class ScoredMemory(BaseModel):
    """A retrieval hit with its component scores kept for introspection."""

    model_config = ConfigDict(frozen=True)

    record: MemoryRecord
    score: float
    relevance: float
    recency: float
    importance: float


# ============================================================================
# Decision Gateway Output Schemas
# ============================================================================


class MemoryProposal(BaseModel):
    """A memory item proposed by the decision gateway.

    Lenient on purpose: an unknown type becomes ``observation`` and the
    importance is clamped to 1..10 (3 when missing or not a number).
    """

    model_config = ConfigDict(extra="ignore")

    text: str = ""
    type: Literal["observation", "action"] = "observation"
    importance: int = Field(3, ge=1, le=10)

    @field_validator("text", mode="before")
    @classmethod
    def _stringify_text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, value: Any) -> str:
        return "action" if value == "action" else "observation"

    @field_validator("importance", mode="before")
    @classmethod
    def _coerce_importance(cls, value: Any) -> int:
        return coerce_importance(value)


class ActionDecision(BaseModel):
    """Structured action decision for one tick.

    ``action`` is kept as free text; anything other than ``move`` or
    ``interact`` is treated as staying. Only the first three memories count.
    """

    model_config = ConfigDict(extra="ignore")

    thought: str = ""
    action: str
    target: str = ""
    utterance: str = ""
    memories: List[MemoryProposal] = Field(default_factory=list)

    @field_validator("action", mode="before")
    @classmethod
    def _normalize_action(cls, value: Any) -> str:
        return str(value).strip().lower() if value is not None else "stay"

    @field_validator("thought", "target", "utterance", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("memories", mode="before")
    @classmethod
    def _first_three(cls, value: Any) -> Any:
        if isinstance(value, list):
            return value[:MAX_PROPOSED_MEMORIES]
        return value


class TimeBlock(BaseModel):
    """One block of a daily plan."""

    model_config = ConfigDict(extra="forbid")

    start: str = Field(..., pattern=HHMM_PATTERN)
    end: str = Field(..., pattern=HHMM_PATTERN)
    location: str
    activity: str


class DailyPlan(BaseModel):
    """Time-blocked plan for a single simulated day."""

    model_config = ConfigDict(extra="forbid")

    date: str
    blocks: List[TimeBlock] = Field(..., max_length=10)


class ReflectionOutput(BaseModel):
    """Insights synthesised from recent memories."""

    model_config = ConfigDict(extra="forbid")

    insights: List[str] = Field(..., min_length=2, max_length=4)
    summary_update: str


# ============================================================================
# Agent Schemas
# ============================================================================


class AgentProfile(BaseModel):
    """Static persona of an agent (WHO the agent IS, not what they're doing).

    ``persona`` is an optional paper-style character sheet that replaces the
    generated one in prompts. ``seed_memory`` holds semicolon-delimited facts
    that become the agent's first memories.
    """

    agent_id: str = Field(..., description="Unique agent identifier")
    name: str = Field(..., description="Display name, also used as chat speaker")
    age: Optional[int] = Field(None, ge=0)
    title: str = Field("", description="Occupation or role")
    traits: List[str] = Field(default_factory=list)
    goals: List[str] = Field(default_factory=list)
    bio: str = ""
    persona: str = ""
    seed_memory: str = ""
    home: str = Field(..., description="Name of the agent's home place")
    start_x: float = 16.0
    start_y: float = 16.0


class Destination(BaseModel):
    """Where a travelling agent is heading."""

    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    place_id: str
    place_name: str


class AgentSnapshot(BaseModel):
    """Read-only view of an agent for presentation layers."""

    model_config = ConfigDict(frozen=True)

    agent_id: str
    name: str
    state: str
    position: Tuple[float, float]
    destination: Optional[Destination] = None
    energy: int
    summary: str = ""
    plan_text: str = ""
    last_thought: str = ""
    last_retrieved: Tuple[ScoredMemory, ...] = ()
    last_transcript: str = ""
    memory_count: int = 0
    reflection_accumulator: int = 0
