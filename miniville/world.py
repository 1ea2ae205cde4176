"""
World model: named places on a 2D grid, place-scoped chat, and a global event log.

Perception follows the Stanford partial observability pattern, simplified to
co-location: an agent perceives the other agents standing in the same place
and the recent chat posted there. Agents in the street perceive nobody.

Perception rules (what agents CAN perceive):
- Their resolved place (or "Street")
- Other agents resolved to the same place id, with their current action label
- The last few chat lines posted at that place

Perception rules (what agents CANNOT perceive):
- Themselves (never listed among nearby agents)
- Agents or chat in other places
- The global event log

Usage:
    world = World(places=SMALLVILLE_PLACES)
    perception = world.perceive(agent, agents)
    world.post_chat(perception.place_id, agent.name, "Hi!", now)
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from miniville.schemas import ChatMessage, NearbyAgent, Perception, Place, WorldEvent


DEFAULT_WIDTH = 32
DEFAULT_HEIGHT = 32
CHAT_WINDOW = 6
DEFAULT_CHAT_KEEP_MINUTES = 120
STREET = "Street"

# Agents are clamped just inside the far edge of the grid.
EDGE_MARGIN = 0.1


class Locatable(Protocol):
    """Anything the world can place: agents expose id, name, position and action label."""

    agent_id: str
    name: str
    x: float
    y: float

    @property
    def action_label(self) -> str: ...


def distance(ax: float, ay: float, bx: float, by: float) -> float:
    """Euclidean distance between two points."""
    return math.hypot(ax - bx, ay - by)


class World:
    """Fixed set of circular places plus chat and event logs.

    The place registry is frozen at construction. Chat is stored per place and
    mirrored into the global event log; pruning only ever touches per-place chat.
    """

    def __init__(
        self,
        places: Sequence[Place],
        *,
        width: float = DEFAULT_WIDTH,
        height: float = DEFAULT_HEIGHT,
    ) -> None:
        if not places:
            raise ValueError("World requires at least one place")

        ids = [place.place_id for place in places]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Duplicate place ids in registry: {ids}")

        self.width = width
        self.height = height
        self._places: Tuple[Place, ...] = tuple(places)
        self._by_id: Dict[str, Place] = {place.place_id: place for place in self._places}
        self._chat: Dict[str, List[ChatMessage]] = {place.place_id: [] for place in self._places}
        self._events: List[WorldEvent] = []

    # ------------------------------------------------------------------
    # Places
    # ------------------------------------------------------------------

    @property
    def places(self) -> Tuple[Place, ...]:
        return self._places

    def get_place(self, place_id: Optional[str]) -> Optional[Place]:
        if place_id is None:
            return None
        return self._by_id.get(place_id)

    def find_place(self, name_or_id: str) -> Optional[Place]:
        """Look a place up by exact display name, then by id."""
        for place in self._places:
            if place.name == name_or_id:
                return place
        return self._by_id.get(name_or_id)

    def resolve_place(self, x: float, y: float) -> Tuple[Place, float]:
        """Return the nearest place and the distance to its centre.

        Ties resolve to the place registered first.
        """
        best = self._places[0]
        best_distance = distance(x, y, best.x, best.y)
        for place in self._places[1:]:
            d = distance(x, y, place.x, place.y)
            if d < best_distance:
                best, best_distance = place, d
        return best, best_distance

    def place_at(self, x: float, y: float) -> Optional[Place]:
        """Return the place containing the position, or None for the street."""
        place, d = self.resolve_place(x, y)
        return place if d <= place.radius else None

    def place_name_at(self, x: float, y: float) -> str:
        place = self.place_at(x, y)
        return place.name if place is not None else STREET

    def clamp_position(self, x: float, y: float) -> Tuple[float, float]:
        """Clamp a position to the world bounds."""
        max_x = max(0.0, self.width - EDGE_MARGIN)
        max_y = max(0.0, self.height - EDGE_MARGIN)
        return min(max(x, 0.0), max_x), min(max(y, 0.0), max_y)

    # ------------------------------------------------------------------
    # Perception
    # ------------------------------------------------------------------

    def perceive(self, agent: Locatable, all_agents: Iterable[Locatable]) -> Perception:
        """Build the co-location perception for ``agent``.

        Two agents are nearby iff both resolve to the same place id. The
        querying agent is never included, and agents in the street see nobody.
        """
        place = self.place_at(agent.x, agent.y)
        if place is None:
            return Perception(place=None, place_name=STREET)

        others: List[NearbyAgent] = []
        for other in all_agents:
            if other.agent_id == agent.agent_id:
                continue
            other_place = self.place_at(other.x, other.y)
            if other_place is not None and other_place.place_id == place.place_id:
                others.append(
                    NearbyAgent(
                        agent_id=other.agent_id,
                        name=other.name,
                        action=other.action_label or "idle",
                    )
                )

        chat = tuple(self._chat[place.place_id][-CHAT_WINDOW:])
        return Perception(place=place, place_name=place.name, others=tuple(others), chat=chat)

    # ------------------------------------------------------------------
    # Chat and events
    # ------------------------------------------------------------------

    def post_chat(self, place_id: Optional[str], speaker: str, text: str, timestamp: datetime) -> None:
        """Post a chat line at a place and mirror it into the event log.

        Silently ignored when ``place_id`` is missing or unknown.
        """
        if place_id is None or place_id not in self._chat:
            return
        self._chat[place_id].append(ChatMessage(speaker=speaker, text=text, timestamp=timestamp))
        self._events.append(
            WorldEvent(timestamp=timestamp, text=f"{speaker}: {text}", place=self._by_id[place_id].name)
        )

    def log_event(self, timestamp: datetime, text: str, place_id: Optional[str] = None) -> None:
        place = self.get_place(place_id)
        self._events.append(
            WorldEvent(timestamp=timestamp, text=text, place=place.name if place is not None else "")
        )

    def prune_chat(self, now: datetime, keep_minutes: int = DEFAULT_CHAT_KEEP_MINUTES) -> None:
        """Drop chat older than ``keep_minutes`` before ``now``. The event log is untouched."""
        cutoff = now - timedelta(minutes=keep_minutes)
        for place_id, messages in self._chat.items():
            self._chat[place_id] = [message for message in messages if message.timestamp >= cutoff]

    # ------------------------------------------------------------------
    # Introspection (copies only)
    # ------------------------------------------------------------------

    @property
    def events(self) -> Tuple[WorldEvent, ...]:
        return tuple(self._events)

    def chat_at(self, place_id: str) -> Tuple[ChatMessage, ...]:
        return tuple(self._chat.get(place_id, ()))

    def chat_snapshot(self) -> Dict[str, Tuple[ChatMessage, ...]]:
        return {place_id: tuple(messages) for place_id, messages in self._chat.items()}
