#!/usr/bin/env python3
"""
Test script for occupancy timeline computation.
"""

import sys
import os

# Add the src directory to the path so we can import the modules
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from nodewar_tools.log.guild_detector import build_membership
from nodewar_tools.log.timeline import compute_occupancy, occupancy_from_events

HOME = "Lollipop"

SAMPLE_LOG = """[20:00:00] Next war tick: 100
[20:00:05] Alice has killed Bob from Chernobyl
[20:00:10] Carol died to Dave from Chernobyl
[20:00:20] Alice has killed Erin from Chernobyl
[20:00:30] Alice died to Frank from Other Guild
"""


def test_earlier_event_owns_the_interval():
    result = occupancy_from_events([(0, "home"), (10, "home"), (25, "Rival")], ["home", "Rival"])
    assert result.total_window_seconds == 25
    assert result.occupancy_by_guild["home"] == 25
    assert result.occupancy_by_guild["Rival"] == 0
    print("✓ first event owns each interval")


def test_events_are_sorted_first():
    result = occupancy_from_events([(25, "Rival"), (0, "home"), (10, "home")])
    assert result.total_window_seconds == 25
    assert result.seconds_for("home") == 25
    assert result.seconds_for("Rival") == 0
    assert [t for t, _ in result.events] == [0, 10, 25]


def test_unowned_and_zero_length_intervals_are_skipped():
    result = occupancy_from_events([(0, None), (5, "A"), (5, "B"), (9, "B")])
    assert result.total_window_seconds == 9
    assert result.seconds_for("A") == 0
    assert result.seconds_for("B") == 4


def test_fewer_than_two_events():
    assert occupancy_from_events([]).total_window_seconds == 0
    single = occupancy_from_events([(100, "A")], ["A"])
    assert single.total_window_seconds == 0
    assert single.occupancy_by_guild == {"A": 0}


def test_compute_occupancy_from_log():
    membership = build_membership(SAMPLE_LOG, HOME)
    result = compute_occupancy(SAMPLE_LOG, membership)
    assert result.total_window_seconds == 30
    assert result.seconds_for(HOME) == 15
    assert result.seconds_for("Chernobyl") == 10
    assert result.seconds_for("Other Guild") == 0
    assert set(result.occupancy_by_guild) == {HOME, "Chernobyl", "Other Guild"}
    print(f"✓ occupancy: {result.occupancy_by_guild}")


def test_death_line_falls_back_to_tagged_guild():
    """When the killer's membership is unknown the death line's guild owns the event."""
    membership = build_membership("[20:00:00] Alice has killed Bob from Chernobyl\n", HOME)
    log = ("[20:00:00] Carol died to Stranger from Chernobyl\n"
           "[20:00:20] Alice has killed Bob from Chernobyl\n")
    result = compute_occupancy(log, membership)
    assert result.seconds_for("Chernobyl") == 20


def test_untimed_lines_are_ignored():
    log = "Alice has killed Bob from Chernobyl\n[20:00:05] Alice has killed Bob from Chernobyl\n"
    result = compute_occupancy(log, build_membership(log, HOME))
    assert len(result.events) == 1
    assert result.total_window_seconds == 0


if __name__ == "__main__":
    print("Testing occupancy timeline...")
    test_earlier_event_owns_the_interval()
    test_events_are_sorted_first()
    test_unowned_and_zero_length_intervals_are_skipped()
    test_fewer_than_two_events()
    test_compute_occupancy_from_log()
    test_death_line_falls_back_to_tagged_guild()
    test_untimed_lines_are_ignored()
    print("All timeline tests passed!")
