"""
Scenario definitions: the place registry, the agent roster, and the start time.

Two sources:
- ``smallville()`` builds the built-in five-agent town from the Generative
  Agents paper (Hobbs Cafe, Johnson Park, Oak Hill College, ...)
- ``ScenarioLoader`` reads the same structure from a JSON file

Scenario file structure:
```json
{
  "name": "Smallville",
  "description": "...",
  "start_time": "2023-02-13T08:00:00",
  "world": {"width": 32, "height": 32},
  "places": [
    {"place_id": "hobbs", "name": "Hobbs Cafe", "x": 10, "y": 10, "radius": 3.0}
  ],
  "agents": [
    {"agent_id": "isabella", "name": "Isabella Rodriguez", "home": "Town Plaza",
     "start_at": "Hobbs Cafe", "seed_memory": "...; ..."}
  ]
}
```

An agent starts at the centre of its ``start_at`` place, at explicit
``start_x``/``start_y`` coordinates, or at the middle of the town (16, 16)
when neither is given or the place is unknown.

Usage:
    scenario = ScenarioLoader().load("smallville")
    orchestrator = Orchestrator.from_scenario(scenario, gateway)
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from miniville.config import Config
from miniville.schemas import AgentProfile, Place
from miniville.world import DEFAULT_HEIGHT, DEFAULT_WIDTH, World


DEFAULT_START_TIME = datetime(2023, 2, 13, 8, 0)
FALLBACK_START = (16.0, 16.0)


class ScenarioError(ValueError):
    """Raised when a scenario definition is malformed."""


@dataclass
class Scenario:
    """Everything needed to start a simulation run."""

    name: str
    world: World
    profiles: List[AgentProfile]
    start_time: datetime = DEFAULT_START_TIME
    description: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


# ============================================================================
# Built-in Smallville
# ============================================================================

SMALLVILLE_PLACES: Tuple[Place, ...] = (
    Place(place_id="hobbs", name="Hobbs Cafe", x=10, y=10, radius=3.0,
          description="A cozy coffee shop with pastries and regulars."),
    Place(place_id="park", name="Johnson Park", x=22, y=9, radius=3.5,
          description="A green park with benches, flowers, and walking paths."),
    Place(place_id="college", name="Oak Hill College", x=20, y=21, radius=3.2,
          description="A small college campus where students attend classes."),
    Place(place_id="library", name="Oak Hill College Library", x=8, y=22, radius=3.2,
          description="A quiet library used for studying and research."),
    Place(place_id="market", name="Willow Market and Pharmacy", x=26, y=26, radius=3.2,
          description="A neighborhood market with a pharmacy counter."),
    Place(place_id="plaza", name="Town Plaza", x=14, y=28, radius=3.8,
          description="The center of town where people pass by and chat."),
)


SMALLVILLE_AGENTS: Tuple[Dict[str, Any], ...] = (
    {
        "agent_id": "isabella",
        "name": "Isabella Rodriguez",
        "age": 34,
        "title": "Cafe owner (Hobbs Cafe)",
        "traits": ["friendly", "outgoing", "hospitable"],
        "goals": [
            "Host a Valentine's Day party at Hobbs Cafe (Feb 14, 5-7pm)",
            "Keep Hobbs Cafe welcoming and thriving",
            "Connect neighbors and regular customers",
        ],
        "bio": (
            "Isabella runs Hobbs Cafe and loves making people feel welcome. She's gathering "
            "supplies and inviting everyone to a Valentine's Day party."
        ),
        "persona": "\n".join([
            "Innate tendency: friendly, outgoing, hospitable.",
            "Learned tendency: Isabella Rodriguez is a cafe owner of Hobbs Cafe who loves to make "
            "people feel welcome. She is always looking for ways to make the cafe a place where "
            "people can come to relax and enjoy themselves.",
            "Currently: Isabella Rodriguez is planning on having a Valentine's Day party at Hobbs "
            "Cafe with her customers on February 14th, 2023 at 5pm. She is gathering party material "
            "and telling everyone she meets to join the party at Hobbs Cafe on February 14th, 2023, "
            "from 5pm to 7pm.",
            "Lifestyle: goes to bed around 11pm, wakes up around 6am.",
        ]),
        "seed_memory": (
            "Isabella Rodriguez is the cafe owner of Hobbs Cafe; "
            "Isabella Rodriguez is friendly, outgoing, and hospitable; "
            "Isabella Rodriguez loves to make people feel welcome at her cafe; "
            "Isabella Rodriguez and Maria Lopez have been good friends for about a year; "
            "Isabella Rodriguez is planning a Valentine's Day party at Hobbs Cafe on February 14th, 2023 from 5pm to 7pm; "
            "Isabella Rodriguez is gathering party supplies and inviting customers and friends; "
            "Isabella Rodriguez goes to bed around 11pm and wakes up around 6am; "
            "Isabella Rodriguez opens Hobbs Cafe at 8:00 am and serves customers during the day"
        ),
        "home": "Town Plaza",
        "start_at": "Hobbs Cafe",
    },
    {
        "agent_id": "klaus",
        "name": "Klaus Mueller",
        "age": 20,
        "title": "Sociology student (Oak Hill College)",
        "traits": ["kind", "inquisitive", "passionate"],
        "goals": [
            "Make progress on a research paper about gentrification",
            "Explore perspectives on social justice",
            "Improve writing skills and find good resources",
        ],
        "bio": (
            "Klaus is a sociology student at Oak Hill College. He spends a lot of time researching "
            "and writing about gentrification and low-income communities."
        ),
        "persona": "\n".join([
            "Innate tendency: kind, inquisitive, passionate.",
            "Learned tendency: Klaus Mueller is a student at Oak Hill College studying sociology. "
            "He is passionate about social justice and loves to explore different perspectives.",
            "Currently: Klaus Mueller is writing a research paper on the effects of gentrification "
            "in low-income communities.",
            "Lifestyle: goes to bed around 11pm, wakes up around 7am, eats dinner around 5pm.",
        ]),
        "seed_memory": (
            "Klaus Mueller is a student at Oak Hill College studying sociology; "
            "Klaus Mueller is kind, inquisitive, and passionate; "
            "Klaus Mueller is passionate about social justice and exploring different perspectives; "
            "Klaus Mueller is writing a research paper on the effects of gentrification in low-income communities; "
            "Klaus Mueller and Maria Lopez have been friends for more than 2 years; "
            "Klaus Mueller is close friends and classmates with Maria Lopez; "
            "Klaus Mueller has a crush on Maria Lopez; "
            "Klaus Mueller often works in the Oak Hill College Library; "
            "Klaus Mueller sometimes eats lunch at Hobbs Cafe; "
            "Klaus Mueller takes walks in Johnson Park to clear his mind; "
            "Klaus Mueller goes to bed around 11pm and wakes up around 7am"
        ),
        "home": "Oak Hill College",
        "start_at": "Oak Hill College Library",
    },
    {
        "agent_id": "maria",
        "name": "Maria Lopez",
        "age": 21,
        "title": "Physics student + Twitch streamer (Oak Hill College)",
        "traits": ["energetic", "enthusiastic", "inquisitive"],
        "goals": [
            "Stay on track for a physics degree",
            "Keep a consistent Twitch streaming routine",
            "Meet people and explore new ideas",
        ],
        "bio": (
            "Maria studies physics at Oak Hill College and streams games on Twitch. She loves "
            "connecting with people and often studies at Hobbs Cafe."
        ),
        "persona": "\n".join([
            "Innate tendency: energetic, enthusiastic, inquisitive.",
            "Learned tendency: Maria Lopez is a student at Oak Hill College studying physics and a "
            "part time Twitch game streamer who loves to connect with people and explore new ideas.",
            "Currently: Maria Lopez is working on her physics degree and streaming games on Twitch "
            "to make some extra money. She visits Hobbs Cafe for studying and eating just about everyday.",
            "Lifestyle: goes to bed around midnight, wakes up around 10am, eats dinner around 7pm.",
        ]),
        "seed_memory": (
            "Maria Lopez is a student at Oak Hill College studying physics; "
            "Maria Lopez is energetic, enthusiastic, and inquisitive; "
            "Maria Lopez is a part time Twitch game streamer; "
            "Maria Lopez loves to connect with people and explore new ideas; "
            "Maria Lopez and Klaus Mueller have been friends for more than 2 years; "
            "Maria Lopez is close friends and classmates with Klaus Mueller; "
            "Maria Lopez has a secret crush on Klaus Mueller; "
            "Maria Lopez visits Hobbs Cafe for studying and eating almost every day; "
            "Maria Lopez often rock climbs for fun and exercise; "
            "Maria Lopez goes to bed around midnight and wakes up around 10am"
        ),
        "home": "Oak Hill College",
        # Still in her dorm at 8am.
        "start_at": "Oak Hill College",
    },
    {
        "agent_id": "john",
        "name": "John Lin",
        "age": 45,
        "title": "Pharmacy shopkeeper (Willow Market and Pharmacy)",
        "traits": ["patient", "kind", "organized"],
        "goals": [
            "Help customers get medication smoothly",
            "Stay up to date on new medications and treatments",
            "Learn who will run in the local mayor election",
        ],
        "bio": (
            "John runs the pharmacy counter at Willow Market and Pharmacy. He's taking online "
            "classes to stay current and keeps asking neighbors about the upcoming mayor election."
        ),
        "persona": "\n".join([
            "Innate tendency: patient, kind, organized.",
            "Learned tendency: John Lin is a pharmacy shop keeper at the Willow Market and Pharmacy "
            "who loves to help people. He is always looking for ways to make the process of getting "
            "medication easier for his customers.",
            "Currently: John Lin lives with his wife Mei Lin and son Eddy Lin, works at the Willow "
            "Market and Pharmacy, and takes online classes to stay up to date on new medications and "
            "treatments. John is also curious about who will be running for the local mayor election "
            "next month and asks everyone he meets.",
            "Lifestyle: goes to bed around 10pm, wakes up around 6am, eats dinner around 5pm.",
        ]),
        "seed_memory": (
            "John Lin is a pharmacy shop keeper at the Willow Market and Pharmacy; "
            "John Lin is patient, kind, and organized; "
            "John Lin loves to help people get the right medication; "
            "John Lin is taking online classes to stay up to date on new medications and treatments; "
            "John Lin lives with his wife Mei Lin and son Eddy Lin; "
            "John Lin has known his neighbors Sam Moore and Jennifer Moore for a few years; "
            "John Lin thinks Sam Moore is a kind and nice man; "
            "John Lin is curious about who will run for local mayor next month and asks neighbors about it; "
            "John Lin goes to bed around 10pm and wakes up around 6am; "
            "John Lin works at Willow Market and Pharmacy during the day"
        ),
        "home": "Town Plaza",
        "start_at": "Town Plaza",
    },
    {
        "agent_id": "sam",
        "name": "Sam Moore",
        "age": 65,
        "title": "Retired Navy officer (mayoral candidate)",
        "traits": ["wise", "resourceful", "humorous"],
        "goals": [
            "Run for local mayor in the upcoming election",
            "Promote job creation and community development",
            "Stay connected with neighbors and share advice",
        ],
        "bio": (
            "Sam is a retired navy officer and avid reader. He spends time tending Johnson Park and "
            "has started telling neighbors he plans to run for mayor."
        ),
        "persona": "\n".join([
            "Innate tendency: wise, resourceful, humorous.",
            "Learned tendency: Sam Moore is a retired navy officer who loves to share stories from "
            "his time in the military. He is always full of interesting stories and advice.",
            "Currently: Sam Moore lives with his wife of 40 years, Jennifer Moore, spends free time "
            "tending the park, and is planning on running for local mayor in the upcoming election.",
            "Lifestyle: goes to bed around 9pm, wakes up around 5am, eats dinner around 5pm.",
        ]),
        "seed_memory": (
            "Sam Moore is a retired navy officer; "
            "Sam Moore is wise, resourceful, and humorous; "
            "Sam Moore lives with his wife Jennifer Moore; "
            "Sam Moore has known his neighbor John Lin for a few years; "
            "Sam Moore spends free time tending Johnson Park and reading books; "
            "Sam Moore is planning to run for local mayor in the upcoming election and tells neighbors about it; "
            "Sam Moore goes to bed around 9pm and wakes up around 5am; "
            "Sam Moore often visits Hobbs Cafe to chat with people"
        ),
        "home": "Town Plaza",
        "start_at": "Johnson Park",
    },
)


def build_profile(entry: Dict[str, Any], places: Sequence[Place]) -> AgentProfile:
    """Build an AgentProfile, resolving ``start_at`` to the place centre.

    Raises:
        ScenarioError: If the entry does not validate as a profile
    """
    data = dict(entry)
    start_at = data.pop("start_at", None)

    if "start_x" not in data and "start_y" not in data:
        start = FALLBACK_START
        if start_at:
            by_name = {place.name: place for place in places}
            place = by_name.get(start_at)
            if place is not None:
                start = (place.x, place.y)
        data["start_x"], data["start_y"] = start

    try:
        return AgentProfile(**data)
    except ValidationError as exc:
        raise ScenarioError(f"Invalid agent entry {entry.get('agent_id', '?')!r}: {exc}") from exc


def smallville(
    *,
    width: float = DEFAULT_WIDTH,
    height: float = DEFAULT_HEIGHT,
    start_time: datetime = DEFAULT_START_TIME,
) -> Scenario:
    """The built-in five-agent Smallville scenario."""
    world = World(SMALLVILLE_PLACES, width=width, height=height)
    profiles = [build_profile(entry, world.places) for entry in SMALLVILLE_AGENTS]
    return Scenario(
        name="Smallville",
        world=world,
        profiles=profiles,
        start_time=start_time,
        description="Five townspeople from the Generative Agents paper, the day before Valentine's Day.",
    )


# ============================================================================
# JSON scenarios
# ============================================================================


class ScenarioLoader:
    """Load and validate scenarios from JSON files.

    Directory structure:
    - Default: {PROJECT_ROOT}/examples/scenarios/
    - Override via constructor: ScenarioLoader(Path("/custom/scenarios"))
    - Scenario files: {scenario_name}.json

    Validation:
    - Required fields: name, places, agents
    - At least one place and one agent
    - Place ids and agent ids must be unique
    - Raises ScenarioError (a ValueError) for anything malformed
    """

    def __init__(self, scenarios_dir: Optional[Path] = None):
        self.scenarios_dir = scenarios_dir or Config.SCENARIOS_DIR

    def resolve_path(self, scenario: str | Path) -> Path:
        """A path to an existing file, or a name looked up in ``scenarios_dir``."""
        candidate = Path(scenario)
        if candidate.suffix == ".json" and candidate.exists():
            return candidate
        return self.scenarios_dir / f"{candidate.stem}.json"

    def load(self, scenario: str | Path) -> Scenario:
        """Load a scenario by name or path.

        Raises:
            FileNotFoundError: If the scenario file doesn't exist
            ScenarioError: If the file is not valid JSON or is malformed
        """
        path = self.resolve_path(scenario)
        if not path.exists():
            raise FileNotFoundError(f"Scenario '{scenario}' not found at {path}")

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ScenarioError(f"Scenario file {path} is not valid JSON: {exc}") from exc

        return self.parse(data)

    def parse(self, data: Any) -> Scenario:
        """Build a Scenario from already-decoded JSON data."""
        self._validate_scenario(data)

        world_cfg = data.get("world") or {}
        places = self._parse_places(data["places"])
        try:
            world = World(
                places,
                width=float(world_cfg.get("width", DEFAULT_WIDTH)),
                height=float(world_cfg.get("height", DEFAULT_HEIGHT)),
            )
        except (TypeError, ValueError) as exc:
            raise ScenarioError(f"Invalid world definition: {exc}") from exc

        profiles = [build_profile(entry, world.places) for entry in data["agents"]]
        ids = [profile.agent_id for profile in profiles]
        if len(set(ids)) != len(ids):
            raise ScenarioError(f"Duplicate agent ids in scenario: {ids}")

        return Scenario(
            name=data["name"],
            world=world,
            profiles=profiles,
            start_time=self._parse_start_time(data.get("start_time")),
            description=data.get("description", ""),
            metadata=data.get("metadata", {}),
        )

    def _validate_scenario(self, data: Any) -> None:
        if not isinstance(data, dict):
            raise ScenarioError("Scenario must be a JSON object")

        required = ["name", "places", "agents"]
        missing = [key for key in required if key not in data]
        if missing:
            raise ScenarioError(f"Scenario missing required fields: {missing}")

        if not isinstance(data["places"], list) or not data["places"]:
            raise ScenarioError("Scenario must have at least one place")
        if not isinstance(data["agents"], list) or not data["agents"]:
            raise ScenarioError("Scenario must have at least one agent")
        if not all(isinstance(entry, dict) for entry in data["agents"]):
            raise ScenarioError("Each agent entry must be an object")

    def _parse_places(self, raw: List[Any]) -> List[Place]:
        places: List[Place] = []
        for entry in raw:
            try:
                places.append(Place.model_validate(entry))
            except ValidationError as exc:
                raise ScenarioError(f"Invalid place entry {entry!r}: {exc}") from exc
        return places

    def _parse_start_time(self, value: Optional[str]) -> datetime:
        if value is None:
            return DEFAULT_START_TIME
        try:
            return datetime.fromisoformat(value)
        except (TypeError, ValueError) as exc:
            raise ScenarioError(f"Invalid start_time {value!r}") from exc


def load_scenario(scenario: str | Path | None = None) -> Scenario:
    """Built-in Smallville when ``scenario`` is None, otherwise a JSON scenario."""
    if scenario is None:
        return smallville()
    return ScenarioLoader().load(scenario)
