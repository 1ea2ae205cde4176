"""
Main simulation orchestrator.

Owns the simulated clock and drives the town one tick at a time:
1. Advance the clock by one tick
2. Step every agent strictly in roster order (one gateway request at a time)
3. Prune old chat from every place
4. Notify tick listeners

Simulated time is passed explicitly to every agent call; wall-clock pacing
(``tick_delay``) and the run/pause flag live here and nowhere else. The flag is
checked only between ticks, so pausing lets the current tick finish.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence

from miniville.agent import Agent, CognitionMode
from miniville.config import Config
from miniville.gateway import DecisionGateway
from miniville.logging_utils import log_error, log_info, log_success
from miniville.scenario import DEFAULT_START_TIME, Scenario
from miniville.schemas import AgentSnapshot, ChatMessage, WorldEvent
from miniville.world import World


TickListener = Callable[[int, datetime, "Orchestrator"], None]


class Orchestrator:
    """Sequential tick driver for a set of agents sharing one world.

    Args:
        world: Shared world (places, chat, event log)
        agents: Agents in the order they act each tick
        gateway: The single decision gateway every agent uses
        start_time: Initial simulated time
        tick_minutes: Simulated minutes per tick
        chat_keep_minutes: Per-place chat retention window
        tick_delay: Wall-clock seconds slept between ticks in ``run``
        tick_listeners: Callables ``(tick_number, now, orchestrator)`` invoked
            after each tick; failures are logged and ignored
    """

    def __init__(
        self,
        world: World,
        agents: Sequence[Agent],
        gateway: DecisionGateway,
        *,
        start_time: datetime = DEFAULT_START_TIME,
        tick_minutes: Optional[int] = None,
        chat_keep_minutes: Optional[int] = None,
        tick_delay: Optional[float] = None,
        tick_listeners: Optional[List[TickListener]] = None,
    ) -> None:
        ids = [agent.agent_id for agent in agents]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Duplicate agent ids: {ids}")

        self.world = world
        self.agents: List[Agent] = list(agents)
        self.gateway = gateway
        self.now = start_time
        self.tick_minutes = tick_minutes if tick_minutes is not None else Config.TICK_MINUTES
        self.chat_keep_minutes = (
            chat_keep_minutes if chat_keep_minutes is not None else Config.CHAT_KEEP_MINUTES
        )
        self.tick_delay = tick_delay if tick_delay is not None else Config.TICK_DELAY_SECONDS
        self.tick_listeners: List[TickListener] = tick_listeners or []
        self.tick_count = 0
        self.running = False
        self.initialized = False

    @classmethod
    def from_scenario(
        cls,
        scenario: Scenario,
        gateway: DecisionGateway,
        *,
        mode: CognitionMode | str | None = None,
        **kwargs,
    ) -> "Orchestrator":
        """Build agents for every profile in ``scenario`` and wire them to one gateway."""
        mode = mode or Config.COGNITION_MODE
        tick_minutes = kwargs.get("tick_minutes") or Config.TICK_MINUTES
        agents = [
            Agent(profile, mode=mode, tick_minutes=tick_minutes) for profile in scenario.profiles
        ]
        return cls(scenario.world, agents, gateway, start_time=scenario.start_time, **kwargs)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Seed memories and plan the day for every agent, one after another."""
        log_info(f"Initializing {len(self.agents)} agents at {self.now:%Y-%m-%d %H:%M}")
        for agent in self.agents:
            await agent.initialize(self.gateway, self.world, self.now)
        self.initialized = True
        log_success("Agents ready")

    async def tick(self) -> datetime:
        """Run one tick and return the new simulated time."""
        self.now = self.now + timedelta(minutes=self.tick_minutes)
        self.tick_count += 1
        print(f"=== Tick {self.tick_count} ({self.now:%Y-%m-%d %H:%M}) ===")

        for agent in self.agents:
            await agent.step(self.gateway, self.world, self.agents, self.now)

        self.world.prune_chat(self.now, self.chat_keep_minutes)

        for listener in self.tick_listeners:
            try:
                listener(self.tick_count, self.now, self)
            except Exception as exc:
                log_error(f"Tick listener failed: {exc}")

        return self.now

    async def run(self, num_ticks: Optional[int] = None) -> int:
        """Run ticks until ``num_ticks`` are done or ``pause()`` is called.

        Returns the number of ticks completed by this call.
        """
        if not self.initialized:
            await self.initialize()

        self.running = True
        completed = 0
        log_info(
            f"Starting run: {len(self.agents)} agents, "
            f"{num_ticks if num_ticks is not None else 'unbounded'} ticks"
        )

        try:
            while self.running and (num_ticks is None or completed < num_ticks):
                await self.tick()
                completed += 1
                if self.running and (num_ticks is None or completed < num_ticks):
                    await asyncio.sleep(self.tick_delay)
        finally:
            self.running = False

        log_success(f"Run finished after {completed} tick(s)")
        return completed

    def pause(self) -> None:
        """Stop after the current tick."""
        self.running = False

    # ------------------------------------------------------------------
    # Introspection (copies only)
    # ------------------------------------------------------------------

    def agent_snapshots(self) -> List[AgentSnapshot]:
        return [agent.snapshot() for agent in self.agents]

    def get_agent(self, agent_id: str) -> Optional[Agent]:
        for agent in self.agents:
            if agent.agent_id == agent_id:
                return agent
        return None

    @property
    def events(self) -> tuple[WorldEvent, ...]:
        return self.world.events

    def chat_snapshot(self) -> dict[str, tuple[ChatMessage, ...]]:
        return self.world.chat_snapshot()
