"""
Generative agent: persona, memory stream, daily plan, and the per-tick cycle.

Each tick an agent runs, strictly in order:

1. Move toward its destination (if travelling)
2. Perceive its place, the agents sharing it, and the recent chat there
3. Retrieve the most relevant memories for the current situation
4. Ask the decision gateway for an ActionDecision
5. Apply the decision (move / interact / stay)
6. Store up to three proposed memories
7. Lose one point of energy
8. Reflect once enough importance has accumulated

A missing gateway reply never raises here. A missing decision leaves the agent
idle for the tick and a missing plan is replaced by a deterministic fallback day.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional, Sequence

from miniville.gateway import DecisionGateway, Parsed, Text, format_transcript
from miniville.logging_utils import Color, colored, debug_enabled, log_deterministic, log_error, log_llm, log_success
from miniville.memory import MemoryStream
from miniville.planning import fallback_daily_plan, plan_snippet, plan_text
from miniville.prompts import (
    DEFAULT_PROMPTS,
    PromptLibrary,
    build_action_prompt,
    build_daily_plan_prompt,
    build_importance_prompt,
    build_reflection_prompt,
)
from miniville.schemas import (
    DEFAULT_IMPORTANCE,
    ActionDecision,
    AgentProfile,
    AgentSnapshot,
    DailyPlan,
    Destination,
    MemoryProposal,
    Perception,
    ReflectionOutput,
    ScoredMemory,
    coerce_importance,
)
from miniville.world import World, distance


SPEED = 1.3                 # grid cells per tick
ARRIVAL_EPSILON = 0.01
TICK_MINUTES = 10
RETRIEVAL_K = 8
MAX_MEMORIES_PER_DECISION = 3
MEMORY_TEXT_LIMIT = 280
MAX_ENERGY = 100
REFLECTION_THRESHOLD = 26
REFLECTION_WINDOW = 12
REFLECTION_IMPORTANCE = 8
SEED_IMPORTANCE_START = 8
SEED_IMPORTANCE_FLOOR = 5

UNSURE_THOUGHT = "I'm not sure what to do next... I'll observe for now."


class CognitionMode(str, Enum):
    """``fast`` trusts the decision's importance; ``paper`` re-rates every memory."""

    FAST = "fast"
    PAPER = "paper"


class StateKind(str, Enum):
    IDLE = "idle"
    WALKING = "walking"
    TALKING = "talking"
    STAYING = "staying"


@dataclass(frozen=True)
class AgentState:
    """Current state tag; ``target`` is the partner (talking) or place (walking)."""

    kind: StateKind = StateKind.IDLE
    target: Optional[str] = None

    @classmethod
    def idle(cls) -> "AgentState":
        return cls(StateKind.IDLE)

    @classmethod
    def walking(cls, place_name: Optional[str] = None) -> "AgentState":
        return cls(StateKind.WALKING, place_name)

    @classmethod
    def talking(cls, partner: str) -> "AgentState":
        return cls(StateKind.TALKING, partner)

    @classmethod
    def staying(cls) -> "AgentState":
        return cls(StateKind.STAYING)

    @property
    def label(self) -> str:
        """Human-readable action label shown to other agents."""
        if self.kind is StateKind.WALKING:
            return f"going to {self.target}" if self.target else "walking"
        if self.kind is StateKind.TALKING:
            return f"talking to {self.target}"
        return self.kind.value


class Agent:
    """One simulated townsperson.

    Args:
        profile: Static persona
        mode: Importance rating mode
        speed: Grid cells travelled per tick
        tick_minutes: Simulated minutes per tick (used in prompts)
        prompt_library: Templates for gateway requests
    """

    def __init__(
        self,
        profile: AgentProfile,
        *,
        mode: CognitionMode | str = CognitionMode.FAST,
        speed: float = SPEED,
        tick_minutes: int = TICK_MINUTES,
        prompt_library: PromptLibrary = DEFAULT_PROMPTS,
    ) -> None:
        self.profile = profile
        self.mode = CognitionMode(mode)
        self.speed = speed
        self.tick_minutes = tick_minutes
        self.prompt_library = prompt_library

        self.x = profile.start_x
        self.y = profile.start_y
        self.destination: Optional[Destination] = None
        self.state = AgentState.idle()
        self.energy = MAX_ENERGY

        self.memory = MemoryStream()
        self.daily_plan: Optional[DailyPlan] = None
        self.summary = ""
        self.reflection_accumulator = 0

        # Introspection only; never read by the cycle itself.
        self.last_thought = ""
        self.last_retrieved: List[ScoredMemory] = []
        self.last_transcript = ""

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    @property
    def agent_id(self) -> str:
        return self.profile.agent_id

    @property
    def name(self) -> str:
        return self.profile.name

    @property
    def action_label(self) -> str:
        return self.state.label

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"Agent({self.agent_id!r}, state={self.state.label!r}, pos=({self.x:.1f}, {self.y:.1f}))"

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    def seed_initial_memories(self, now: datetime) -> None:
        """Store biographical facts as the first memories.

        Each semicolon-delimited phrase of ``seed_memory`` becomes one record;
        without seeds, a handful of facts are generated from the profile.
        Importance starts at 8 and decays by one per seed, never below 5.
        """
        profile = self.profile
        seeds = [part.strip() for part in profile.seed_memory.split(";") if part.strip()]
        if not seeds:
            if profile.age is not None:
                seeds.append(f"{profile.name} is {profile.age} years old.")
            if profile.title:
                seeds.append(f"{profile.name} works as {profile.title}.")
            seeds.append(f"{profile.name} lives near {profile.home}.")
            if profile.traits:
                seeds.append(f"{profile.name}'s traits: {', '.join(profile.traits)}.")
            if profile.goals:
                seeds.append(f"{profile.name}'s long-term goals: {'; '.join(profile.goals)}.")
            if profile.bio.strip():
                seeds.append(profile.bio.strip())

        importance = SEED_IMPORTANCE_START
        for seed in seeds:
            self.memory.add(seed, now, importance, "observation", prefix="seed")
            importance = max(SEED_IMPORTANCE_FLOOR, importance - 1)

    async def initialize(self, gateway: DecisionGateway, world: World, now: datetime) -> None:
        """Seed memories, plan the day, and announce the agent in the event log."""
        self.x, self.y = world.clamp_position(self.x, self.y)
        self.seed_initial_memories(now)
        await self.make_daily_plan(gateway, world, now)
        place = world.place_at(self.x, self.y)
        world.log_event(now, f"{self.name} wakes up and starts the day.", place.place_id if place else None)

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    async def make_daily_plan(self, gateway: DecisionGateway, world: World, now: datetime) -> DailyPlan:
        """Replace the daily plan wholesale, falling back to a fixed day."""
        log_llm(f"[{self.name}] Planning the day...")
        messages = build_daily_plan_prompt(self, world, now, self.prompt_library)
        plan = await gateway.chat_json(messages, DailyPlan, temperature=0.35, max_tokens=512)

        if plan is None:
            log_error(f"[{self.name}] No usable plan; using the fallback day.")
            plan = fallback_daily_plan(world.places, self.profile.home, now)

        self.daily_plan = plan
        return plan

    def daily_plan_text(self) -> str:
        return plan_text(self.daily_plan)

    def plan_snippet_for(self, now: datetime) -> str:
        return plan_snippet(self.daily_plan, now)

    # ------------------------------------------------------------------
    # Movement
    # ------------------------------------------------------------------

    def distance_to_destination(self) -> Optional[float]:
        if self.destination is None:
            return None
        return distance(self.x, self.y, self.destination.x, self.destination.y)

    def move_towards_destination(self, world: World) -> None:
        """Advance at most ``speed`` cells; snap and clear on arrival."""
        if self.destination is None:
            return

        dest = self.destination
        remaining = distance(self.x, self.y, dest.x, dest.y)
        if remaining >= ARRIVAL_EPSILON:
            step = min(self.speed, remaining)
            self.x += (dest.x - self.x) / remaining * step
            self.y += (dest.y - self.y) / remaining * step
            self.x, self.y = world.clamp_position(self.x, self.y)
            remaining = distance(self.x, self.y, dest.x, dest.y)

        if remaining < ARRIVAL_EPSILON:
            self.x, self.y = dest.x, dest.y
            self.destination = None

    # ------------------------------------------------------------------
    # The cycle
    # ------------------------------------------------------------------

    def build_query(self, perception: Perception, now: datetime) -> str:
        others = ", ".join(other.name for other in perception.others)
        chat = " | ".join(message.text for message in perception.chat)
        return (
            f"{self.name} at {perception.place_name}. "
            f"Plan: {self.plan_snippet_for(now)}. "
            f"Others: {others}. "
            f"Chat: {chat}"
        )

    async def step(
        self,
        gateway: DecisionGateway,
        world: World,
        all_agents: Sequence["Agent"],
        now: datetime,
    ) -> None:
        """Run one perceive -> retrieve -> decide -> act -> reflect cycle."""

        # 1. Move
        if self.destination is not None:
            self.move_towards_destination(world)
            if self.destination is not None:
                self.state = AgentState.walking(self.destination.place_name)

        # 2. Perceive (post-move position)
        perception = world.perceive(self, all_agents)
        log_deterministic(
            f"[{self.name}] At {perception.place_name} with {len(perception.others)} other(s)"
        )

        # 3. Retrieve
        self.last_retrieved = self.memory.retrieve(self.build_query(perception, now), now, RETRIEVAL_K)

        # 4. Decide
        messages = build_action_prompt(self, world, now, perception, self.last_retrieved, self.prompt_library)
        self.last_transcript = format_transcript(messages)
        log_llm(f"[{self.name}] Choosing action via gateway...")
        result = await gateway.complete(messages, temperature=0.35, max_tokens=512, schema=ActionDecision)

        match result:
            case Parsed(value=ActionDecision() as decision):
                self.last_thought = decision.thought
                # 5. Apply, 6. Record
                self.apply_decision(decision, world, perception, now)
                await self.record_memories(gateway, decision.memories, now)
                log_success(f"[{self.name}] {self.state.label}")
            case _:
                self.last_thought = UNSURE_THOUGHT
                self.state = AgentState.idle()
                log_error(f"[{self.name}] No usable decision; idling this tick.")

        if debug_enabled("MINIVILLE_VERBOSE"):
            print(colored(f"    Thought: {self.last_thought[:120]}", Color.CYAN))

        # 7. Energy
        self.energy = max(0, min(MAX_ENERGY, self.energy - 1))

        # 8. Reflect
        await self.maybe_reflect(gateway, world, now)

    def apply_decision(
        self,
        decision: ActionDecision,
        world: World,
        perception: Perception,
        now: datetime,
    ) -> None:
        """Turn a decision into a state change, chat line or destination.

        Only ``move`` touches the destination. A ``stay`` or ``interact`` made
        mid-journey changes the state for this tick, and the trip resumes on
        the next move stage; the destination is cleared only on arrival.
        """
        target = (decision.target or "").strip()
        utterance = (decision.utterance or "").strip()

        if decision.action == "move":
            place = world.find_place(target) or world.places[0]
            self.destination = Destination(
                x=place.x, y=place.y, place_id=place.place_id, place_name=place.name
            )
            self.state = AgentState.walking(place.name)
            world.log_event(now, f"{self.name} heads to {place.name}.", place.place_id)
        elif decision.action == "interact":
            if utterance and perception.other_named(target) is not None:
                world.post_chat(perception.place_id, self.name, utterance, now)
                self.state = AgentState.talking(target)
                if debug_enabled("MINIVILLE_VERBOSE"):
                    print(colored(f'    Says to {target}: "{utterance[:120]}"', Color.CYAN))
            else:
                self.state = AgentState.idle()
        else:
            self.state = AgentState.staying()

    async def record_memories(
        self,
        gateway: DecisionGateway,
        proposals: Sequence[MemoryProposal],
        now: datetime,
    ) -> None:
        """Store up to three proposed memories and feed the reflection accumulator."""
        for proposal in list(proposals)[:MAX_MEMORIES_PER_DECISION]:
            text = proposal.text[:MEMORY_TEXT_LIMIT]
            importance = proposal.importance

            if self.mode is CognitionMode.PAPER:
                importance = await self.rate_importance(gateway, text)

            record = self.memory.add(text, now, importance, proposal.type)
            self.reflection_accumulator += record.importance

    async def rate_importance(self, gateway: DecisionGateway, text: str) -> int:
        """Ask the gateway for a 1-10 poignancy rating; 3 when the reply has no number."""
        messages = build_importance_prompt(self, text, self.prompt_library)
        result = await gateway.complete(messages, temperature=0.0, max_tokens=16)
        match result:
            case Text(text=reply):
                found = re.search(r"(\d+)", reply)
                return coerce_importance(found.group(1) if found else None)
            case _:
                return DEFAULT_IMPORTANCE

    # ------------------------------------------------------------------
    # Reflection
    # ------------------------------------------------------------------

    async def maybe_reflect(self, gateway: DecisionGateway, world: World, now: datetime) -> bool:
        """Reflect when the accumulator reaches the threshold.

        Returns True when a reflection was attempted. The accumulator is reset
        after every attempt, whether or not insights came back.
        """
        if self.reflection_accumulator < REFLECTION_THRESHOLD:
            return False

        try:
            log_llm(f"[{self.name}] Reflecting...")
            recent = self.memory.recent(REFLECTION_WINDOW)
            messages = build_reflection_prompt(self, now, recent, self.prompt_library)
            output = await gateway.chat_json(messages, ReflectionOutput, temperature=0.35, max_tokens=512)

            if output is not None and output.insights:
                for insight in output.insights:
                    self.memory.add(
                        f"Insight: {insight}", now, REFLECTION_IMPORTANCE, "reflection", prefix="ref"
                    )
                if output.summary_update.strip():
                    self.summary = output.summary_update.strip()
                place = world.place_at(self.x, self.y)
                world.log_event(
                    now, f"{self.name} reflects and gains insights.", place.place_id if place else None
                )
            else:
                log_error(f"[{self.name}] Reflection produced nothing usable.")
        finally:
            self.reflection_accumulator = 0
        return True

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def snapshot(self) -> AgentSnapshot:
        """Immutable copy of the agent's observable state."""
        return AgentSnapshot(
            agent_id=self.agent_id,
            name=self.name,
            state=self.state.label,
            position=(self.x, self.y),
            destination=self.destination,
            energy=self.energy,
            summary=self.summary,
            plan_text=self.daily_plan_text(),
            last_thought=self.last_thought,
            last_retrieved=tuple(self.last_retrieved),
            last_transcript=self.last_transcript,
            memory_count=len(self.memory),
            reflection_accumulator=self.reflection_accumulator,
        )
