"""Smallville simulation runner.

Five townspeople from the Generative Agents paper spend the day before
Valentine's Day in Smallville. Every decision goes through one decision
gateway, one request at a time.

Usage:
    python -m examples.smallville.run --ticks 12
    LLM_PROVIDER=ollama LLM_MODEL=llama3.1 python -m examples.smallville.run --mode paper
    python -m examples.smallville.run --scenario cafe_regulars
"""

import argparse
import asyncio
from datetime import datetime

from miniville import Orchestrator, build_gateway, load_scenario
from miniville.config import Config
from miniville.logging_utils import Color, colored


def print_new_events(orchestrator: Orchestrator, seen: int) -> int:
    events = orchestrator.events
    for event in events[seen:]:
        where = f" @ {event.place}" if event.place else ""
        print(colored(f"  {event.timestamp:%H:%M}{where}: {event.text}", Color.MAGENTA))
    return len(events)


def print_agents(orchestrator: Orchestrator) -> None:
    for snap in orchestrator.agent_snapshots():
        x, y = snap.position
        place = orchestrator.world.place_name_at(x, y)
        print(
            f"  {snap.name:<20} {snap.state:<32} {place:<28} "
            f"energy={snap.energy:<3} memories={snap.memory_count}"
        )


async def run_simulation(ticks: int, scenario_name: str | None, mode: str | None, analysis: bool) -> None:
    Config.validate()
    print(Config.display())
    print()

    scenario = load_scenario(scenario_name)
    gateway = build_gateway()
    seen = 0

    def on_tick(tick: int, now: datetime, orchestrator: Orchestrator) -> None:
        nonlocal seen
        seen = print_new_events(orchestrator, seen)
        if analysis:
            print_agents(orchestrator)
        print()

    orchestrator = Orchestrator.from_scenario(
        scenario,
        gateway,
        mode=mode,
        tick_listeners=[on_tick],
    )

    print(f"Scenario: {scenario.name} ({len(scenario.profiles)} agents)")
    await orchestrator.initialize()
    seen = print_new_events(orchestrator, seen)
    print()

    await orchestrator.run(ticks)

    print("\nFinal state:")
    print_agents(orchestrator)
    print(f"\nGateway requests: {gateway.request_count}")


def main():
    """CLI entry point for the Smallville simulation."""
    parser = argparse.ArgumentParser(description="Smallville generative agents simulation")
    parser.add_argument(
        "--ticks",
        type=int,
        default=Config.DEFAULT_TICK_COUNT,
        help=f"Number of ticks to run (default: {Config.DEFAULT_TICK_COUNT})",
    )
    parser.add_argument(
        "--scenario",
        default=None,
        help="JSON scenario name or path (default: built-in Smallville)",
    )
    parser.add_argument(
        "--mode",
        choices=["fast", "paper"],
        default=None,
        help="Importance rating mode (default: COGNITION_MODE)",
    )
    parser.add_argument(
        "--analysis",
        action="store_true",
        help="Print every agent's state after each tick",
    )

    args = parser.parse_args()

    asyncio.run(
        run_simulation(
            ticks=args.ticks,
            scenario_name=args.scenario,
            mode=args.mode,
            analysis=args.analysis,
        )
    )


if __name__ == "__main__":
    main()
