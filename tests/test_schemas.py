"""Tests for schema validation rules."""

from datetime import datetime

import pytest
from pydantic import ValidationError

from miniville.schemas import (
    AgentProfile,
    DailyPlan,
    MemoryRecord,
    Perception,
    Place,
    ReflectionOutput,
    TimeBlock,
)


def block(start="08:00", end="09:00"):
    return {"start": start, "end": end, "location": "Hobbs Cafe", "activity": "Coffee"}


def test_daily_plan_allows_at_most_ten_blocks():
    DailyPlan(date="2023-02-13", blocks=[block()] * 10)
    with pytest.raises(ValidationError):
        DailyPlan(date="2023-02-13", blocks=[block()] * 11)


@pytest.mark.parametrize("start", ["8:00", "0800", "08:00pm", ""])
def test_time_blocks_require_hh_mm(start):
    with pytest.raises(ValidationError):
        TimeBlock(**block(start=start))


def test_reflection_needs_two_to_four_insights():
    ReflectionOutput(insights=["a", "b"], summary_update="")
    with pytest.raises(ValidationError):
        ReflectionOutput(insights=["a"], summary_update="")
    with pytest.raises(ValidationError):
        ReflectionOutput(insights=["a", "b", "c", "d", "e"], summary_update="")


def test_memory_record_importance_bounds_and_type():
    now = datetime(2023, 2, 13, 8, 0)
    with pytest.raises(ValidationError):
        MemoryRecord(record_id="m", timestamp=now, text="x", importance=11)
    with pytest.raises(ValidationError):
        MemoryRecord(record_id="m", timestamp=now, text="x", importance=5, memory_type="dream")


def test_profile_defaults_to_town_centre():
    profile = AgentProfile(agent_id="ada", name="Ada", home="Park")

    assert (profile.start_x, profile.start_y) == (16.0, 16.0)
    assert profile.age is None


def test_street_perception_has_no_place_id():
    assert Perception().place_id is None
    place = Place(place_id="hobbs", name="Hobbs Cafe", x=10, y=10, radius=3)
    assert Perception(place=place, place_name=place.name).place_id == "hobbs"
