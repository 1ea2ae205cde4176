"""Daily plan helpers.

The decision gateway normally writes each agent's daily plan. When it does not
(no reply, bad JSON, schema violation) the agent falls back to a fixed,
deterministic day built from whatever places the town actually has.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import List, Optional, Sequence

from miniville.schemas import DailyPlan, Place, TimeBlock


SNIPPET_BLOCKS = 3
NO_PLAN = "(no plan)"
NO_REMAINING_BLOCKS = "(no remaining plan blocks)"

# (start, end, location slot, activity); "home" resolves to the agent's home.
FALLBACK_DAY = (
    ("08:00", "09:00", "home", "Morning routine and breakfast"),
    ("09:00", "11:30", "library", "Work / study"),
    ("11:30", "12:30", "cafe", "Lunch and a short chat"),
    ("12:30", "15:30", "library", "More focused work / study"),
    ("15:30", "16:15", "park", "Walk and clear my head"),
    ("16:15", "18:00", "market", "Errands"),
    ("18:00", "20:00", "home", "Dinner and downtime"),
)

SLOT_KEYWORDS = {
    "cafe": re.compile(r"cafe", re.IGNORECASE),
    "library": re.compile(r"library", re.IGNORECASE),
    "park": re.compile(r"park", re.IGNORECASE),
    "market": re.compile(r"market|pharmacy", re.IGNORECASE),
}


def pick_place_name(places: Sequence[Place], slot: str, home: str) -> str:
    """Name of the first place matching the slot keyword.

    Falls back to the first registered place, then to ``home`` when the
    registry is empty.
    """

    pattern = SLOT_KEYWORDS[slot]
    for place in places:
        if pattern.search(place.name):
            return place.name
    if places:
        return places[0].name
    return home


def fallback_daily_plan(places: Sequence[Place], home: str, now: datetime) -> DailyPlan:
    """Deterministic generic day used when no plan comes back from the gateway."""

    blocks: List[TimeBlock] = []
    for start, end, slot, activity in FALLBACK_DAY:
        location = home if slot == "home" else pick_place_name(places, slot, home)
        blocks.append(TimeBlock(start=start, end=end, location=location, activity=activity))
    return DailyPlan(date=now.strftime("%Y-%m-%d"), blocks=blocks)


def format_block(block: TimeBlock) -> str:
    return f"{block.start}-{block.end} @{block.location}: {block.activity}"


def plan_text(plan: Optional[DailyPlan]) -> str:
    """All blocks, one per line; empty string without a plan."""

    if plan is None or not plan.blocks:
        return ""
    return "\n".join(format_block(block) for block in plan.blocks)


def upcoming_blocks(plan: Optional[DailyPlan], now: datetime, limit: int = SNIPPET_BLOCKS) -> List[TimeBlock]:
    """First ``limit`` blocks, in stored order, that end at or after the time of day.

    HH:MM strings compare correctly as text because they are zero padded.
    """

    if plan is None:
        return []
    hhmm = now.strftime("%H:%M")
    return [block for block in plan.blocks if block.end >= hhmm][:limit]


def plan_snippet(plan: Optional[DailyPlan], now: datetime) -> str:
    if plan is None or not plan.blocks:
        return NO_PLAN
    upcoming = upcoming_blocks(plan, now)
    if not upcoming:
        return NO_REMAINING_BLOCKS
    return "\n".join(format_block(block) for block in upcoming)
