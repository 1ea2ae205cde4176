"""Test helpers shared across modules (fakes, builders)."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Iterable, List, Optional

from miniville.schemas import AgentProfile


START = datetime(2023, 2, 13, 8, 0)


class ScriptedBackend:
    """ChatBackend that replays canned replies in order.

    A reply may be a string, an exception instance (raised), or an async
    callable receiving the messages. Once the script runs out, ``default`` is
    returned.
    """

    def __init__(self, replies: Iterable[Any] = (), default: Any = "") -> None:
        self.replies: List[Any] = list(replies)
        self.default = default
        self.calls: List[dict] = []

    async def generate(self, messages, *, temperature, max_tokens, json_mode):
        self.calls.append(
            {
                "messages": list(messages),
                "temperature": temperature,
                "max_tokens": max_tokens,
                "json_mode": json_mode,
            }
        )
        reply = self.replies.pop(0) if self.replies else self.default
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            return await reply(messages)
        return reply


def decision_json(
    action: str = "stay",
    target: str = "",
    utterance: str = "",
    memories: Optional[list] = None,
    thought: str = "Keep going.",
) -> str:
    return json.dumps(
        {
            "thought": thought,
            "action": action,
            "target": target,
            "utterance": utterance,
            "memories": memories or [],
        }
    )


def make_profile(agent_id: str, name: str, x: float = 10.0, y: float = 10.0, **overrides) -> AgentProfile:
    data = dict(
        agent_id=agent_id,
        name=name,
        age=30,
        title="Barista",
        traits=["friendly"],
        goals=["Keep the cafe running"],
        bio=f"{name} lives in town.",
        seed_memory=f"{name} works at Hobbs Cafe; {name} likes coffee",
        home="Town Plaza",
        start_x=x,
        start_y=y,
    )
    data.update(overrides)
    return AgentProfile(**data)
