"""Prompt templates for the decision gateway.

Templates use ``{{placeholder}}`` syntax so JSON braces in the text never need
escaping. Builders return role-tagged message lists ready for
``DecisionGateway.complete``.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Dict, List, Mapping, Sequence

from miniville.schemas import ActionDecision, DailyPlan, MemoryRecord, Perception, ReflectionOutput, ScoredMemory

if TYPE_CHECKING:  # pragma: no cover
    from miniville.agent import Agent
    from miniville.world import World


_PLACEHOLDER_RE = re.compile(r"\{\{\s*(\w+)\s*\}\}")


@dataclass
class PromptTemplate:
    """Represents a templated prompt with placeholders."""

    name: str
    system: str
    user: str
    description: str = ""


class PromptLibrary:
    """Container for named prompt templates."""

    def __init__(self) -> None:
        self.templates: Dict[str, PromptTemplate] = {}

    def register(self, template: PromptTemplate) -> None:
        self.templates[template.name] = template

    def get(self, name: str) -> PromptTemplate:
        return self.templates[name]


def fill(text: str, values: Mapping[str, str]) -> str:
    """Replace ``{{name}}`` placeholders; unknown placeholders become empty strings."""
    return _PLACEHOLDER_RE.sub(lambda m: str(values.get(m.group(1), "")), text)


def render_messages(template: PromptTemplate, values: Mapping[str, str]) -> List[Dict[str, str]]:
    """Render a template into system + user messages."""
    return [
        {"role": "system", "content": fill(template.system, values).strip()},
        {"role": "user", "content": fill(template.user, values).strip()},
    ]


def format_sim_time(moment: datetime) -> str:
    """YYYY-MM-DD HH:MM."""
    return moment.strftime("%Y-%m-%d %H:%M")


def schema_json(model: type) -> str:
    return json.dumps(model.model_json_schema())


# Default templates ------------------------------------------------------------

DEFAULT_PROMPTS = PromptLibrary()

DEFAULT_PROMPTS.register(
    PromptTemplate(
        name="persona",
        system=(
            "You are roleplaying as a real person living in Smallville, a small town.\n"
            "Never mention you are an AI model or that you are in a simulation. Stay in character.\n\n"
            "Character sheet (ground truth facts):\n{{persona_block}}\n\n"
            "Long-term goals:\n{{goals_block}}\n"
            "{{summary_block}}\n"
            "Style:\n"
            "- Use English only.\n"
            "- Be concise and concrete.\n"
            "- If speaking, sound like a real person.\n"
            "- If thinking, keep it brief (1-2 sentences)."
        ),
        user="",
        description="Shared system prompt carrying the character sheet.",
    )
)

DEFAULT_PROMPTS.register(
    PromptTemplate(
        name="daily_plan",
        system="{{persona}}",
        user=(
            "Today is {{date}}.\n"
            "Create a simple plan for today for {{name}}.\n\n"
            "Constraints:\n"
            "- Choose location only from: {{places}}\n"
            "- Use time blocks (start/end) in HH:MM (24h).\n"
            "- Provide 6-10 blocks.\n"
            "- Output MUST be valid JSON that matches the given schema.\n"
            "(Important: respond in JSON only, no markdown.)\n\n"
            "Context:\n"
            "- {{name}}'s home base: {{home}}\n"
            "- {{name}}'s current priorities: {{goals}}\n\n"
            "JSON schema (for reference, do not include it in output):\n{{schema}}"
        ),
        description="Requests a DailyPlan for the simulated day.",
    )
)

DEFAULT_PROMPTS.register(
    PromptTemplate(
        name="action",
        system="{{persona}}",
        user=(
            "You are {{name}}. It is {{time}}.\n"
            "Current location: {{place_name}}\n\n"
            "Nearby people:\n{{others}}\n\n"
            "Recent chat in this place:\n{{chat}}\n\n"
            "Your plan (snippet):\n{{plan}}\n\n"
            "Retrieved memories (most relevant):\n{{memories}}\n\n"
            "Decide what to do NEXT for the next ~{{tick_minutes}} minutes.\n"
            "Allowed actions:\n"
            "- move: go to a different location (target must be one of: {{places}})\n"
            "- interact: say something to a nearby person (target must be a nearby person's name)\n"
            "- stay: continue what you're doing here (target can be current location)\n\n"
            "Also, write 1-3 memory items to store into your memory stream:\n"
            "- observation: what you noticed (short factual)\n"
            "- action: what you decided/did (short factual)\n"
            "Each memory needs an importance rating 1..10 (10 = life-changing, 1 = trivial).\n\n"
            "Output MUST be valid JSON ONLY and match schema.\n"
            "JSON schema:\n{{schema}}"
        ),
        description="Requests an ActionDecision for the current tick.",
    )
)

DEFAULT_PROMPTS.register(
    PromptTemplate(
        name="importance",
        system="{{persona}}",
        user=(
            "Rate the importance (poignancy) of the following memory for {{name}}'s long-term goals.\n"
            "Return only an integer 1..10.\n\n"
            "Memory:\n{{memory}}"
        ),
        description="Separate poignancy rating used in paper mode.",
    )
)

DEFAULT_PROMPTS.register(
    PromptTemplate(
        name="reflection",
        system="{{persona}}",
        user=(
            "It is {{time}}. You are {{name}}.\n"
            "You will reflect on your recent experiences and update your self-understanding.\n\n"
            "Recent memories:\n{{memories}}\n\n"
            "Task:\n"
            "- Produce 2-4 high-level insights (short sentences).\n"
            "- Produce a one-paragraph summary update describing what kind of person {{name}} is becoming today.\n\n"
            "Output MUST be valid JSON ONLY and match schema.\n"
            "JSON schema:\n{{schema}}"
        ),
        description="Requests a ReflectionOutput over recent memories.",
    )
)


# Builders ---------------------------------------------------------------------


def system_persona(agent: "Agent", library: PromptLibrary = DEFAULT_PROMPTS) -> str:
    profile = agent.profile
    if profile.persona.strip():
        persona_block = profile.persona.strip()
    else:
        persona_block = (
            f"Name: {profile.name}\nAge: {profile.age}\nRole: {profile.title}\n"
            f"Traits: {', '.join(profile.traits)}\nBio: {profile.bio}"
        )

    summary_block = ""
    if agent.summary.strip():
        summary_block = f"\nCurrent self-summary (from reflection):\n{agent.summary.strip()}\n"

    return fill(
        library.get("persona").system,
        {
            "persona_block": persona_block,
            "goals_block": "\n".join(f"- {goal}" for goal in profile.goals),
            "summary_block": summary_block,
        },
    ).strip()


def build_daily_plan_prompt(
    agent: "Agent", world: "World", now: datetime, library: PromptLibrary = DEFAULT_PROMPTS
) -> List[Dict[str, str]]:
    profile = agent.profile
    return render_messages(
        library.get("daily_plan"),
        {
            "persona": system_persona(agent, library),
            "date": now.strftime("%Y-%m-%d"),
            "name": profile.name,
            "places": ", ".join(place.name for place in world.places),
            "home": profile.home,
            "goals": "; ".join(profile.goals),
            "schema": schema_json(DailyPlan),
        },
    )


def _memory_lines(hits: Sequence[ScoredMemory]) -> str:
    if not hits:
        return "(no memories retrieved)"
    return "\n".join(
        f"{i}. [{hit.record.memory_type}] (imp:{hit.record.importance}) {hit.record.text}"
        for i, hit in enumerate(hits, 1)
    )


def build_action_prompt(
    agent: "Agent",
    world: "World",
    now: datetime,
    perception: Perception,
    retrieved: Sequence[ScoredMemory],
    library: PromptLibrary = DEFAULT_PROMPTS,
) -> List[Dict[str, str]]:
    others = (
        "\n".join(f"- {other.name}: {other.action}" for other in perception.others)
        if perception.others
        else "(no one nearby)"
    )
    chat = (
        "\n".join(f"- {message.speaker}: {message.text}" for message in perception.chat)
        if perception.chat
        else "(no recent chat)"
    )
    return render_messages(
        library.get("action"),
        {
            "persona": system_persona(agent, library),
            "name": agent.name,
            "time": format_sim_time(now),
            "place_name": perception.place_name,
            "others": others,
            "chat": chat,
            "plan": agent.plan_snippet_for(now),
            "memories": _memory_lines(retrieved),
            "tick_minutes": str(agent.tick_minutes),
            "places": ", ".join(place.name for place in world.places),
            "schema": schema_json(ActionDecision),
        },
    )


def build_importance_prompt(
    agent: "Agent", memory_text: str, library: PromptLibrary = DEFAULT_PROMPTS
) -> List[Dict[str, str]]:
    return render_messages(
        library.get("importance"),
        {"persona": system_persona(agent, library), "name": agent.name, "memory": memory_text},
    )


def build_reflection_prompt(
    agent: "Agent",
    now: datetime,
    recent: Sequence[MemoryRecord],
    library: PromptLibrary = DEFAULT_PROMPTS,
) -> List[Dict[str, str]]:
    memories = "\n".join(
        f"{i}. (imp:{record.importance}) {record.text}" for i, record in enumerate(recent, 1)
    )
    return render_messages(
        library.get("reflection"),
        {
            "persona": system_persona(agent, library),
            "time": format_sim_time(now),
            "name": agent.name,
            "memories": memories or "(no memories yet)",
            "schema": schema_json(ReflectionOutput),
        },
    )
