"""Tests for co-location perception."""

from dataclasses import dataclass
from datetime import datetime, timedelta

from miniville.scenario import SMALLVILLE_PLACES
from miniville.world import CHAT_WINDOW, STREET, World


T0 = datetime(2023, 2, 13, 8, 0)


@dataclass
class Walker:
    agent_id: str
    name: str
    x: float
    y: float
    action_label: str = "idle"


def make_world() -> World:
    return World(SMALLVILLE_PLACES)


def test_perception_never_includes_self():
    world = make_world()
    alice = Walker("alice", "Alice", 10, 10)

    perception = world.perceive(alice, [alice])

    assert perception.place_name == "Hobbs Cafe"
    assert perception.others == ()


def test_agents_in_same_place_see_each_other_with_actions():
    world = make_world()
    alice = Walker("alice", "Alice", 10, 10)
    bob = Walker("bob", "Bob", 11.5, 9.0, action_label="talking to Alice")
    carol = Walker("carol", "Carol", 22, 9)  # Johnson Park

    perception = world.perceive(alice, [alice, bob, carol])

    assert [other.name for other in perception.others] == ["Bob"]
    assert perception.others[0].action == "talking to Alice"
    assert perception.other_named("Bob") is not None
    assert perception.other_named("Carol") is None


def test_agents_in_the_street_see_nobody():
    world = make_world()
    # Two agents standing next to each other, but outside every place radius.
    alice = Walker("alice", "Alice", 16, 16)
    bob = Walker("bob", "Bob", 16.2, 16)

    perception = world.perceive(alice, [alice, bob])

    assert perception.place is None
    assert perception.place_id is None
    assert perception.place_name == STREET
    assert perception.others == ()
    assert perception.chat == ()


def test_agent_in_street_is_not_nearby_to_agent_in_place():
    world = make_world()
    alice = Walker("alice", "Alice", 10, 10)
    bob = Walker("bob", "Bob", 10, 13.5)  # 3.5 from Hobbs Cafe (radius 3.0)

    assert world.perceive(alice, [alice, bob]).others == ()


def test_boundary_of_radius_counts_as_inside():
    world = make_world()
    alice = Walker("alice", "Alice", 10, 13.0)  # exactly radius 3.0 away

    assert world.perceive(alice, [alice]).place_name == "Hobbs Cafe"


def test_perception_chat_is_limited_to_recent_window():
    world = make_world()
    for i in range(CHAT_WINDOW + 2):
        world.post_chat("hobbs", "Isabella", f"line {i}", T0 + timedelta(minutes=i))
    world.post_chat("park", "Sam", "nice weather", T0)

    perception = world.perceive(Walker("alice", "Alice", 10, 10), [])

    assert [message.text for message in perception.chat] == [f"line {i}" for i in range(2, CHAT_WINDOW + 2)]
