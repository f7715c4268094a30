#!/usr/bin/env python3
"""
Test script for kill/death extraction and the KD convention.
"""

import sys
import os
import math

# Add the src directory to the path so we can import the modules
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from nodewar_tools.log.event_extractor import extract_events
from nodewar_tools.log.guild_detector import build_membership
from nodewar_tools.models import kd_ratio

HOME = "Lollipop"
RIVAL = "Chernobyl"

SAMPLE_LOG = """[20:00:00] Next war tick: 100
[20:00:05] Alice has killed Bob from Chernobyl
[20:00:10] Carol died to Dave from Chernobyl
[20:00:20] Alice has killed Erin from Chernobyl
[20:00:30] Alice died to Frank from Other Guild
[20:00:40] Next war tick: 200
[20:00:45] Carol has killed Frank from Other Guild
"""


def extract(log_text):
    return extract_events(log_text, build_membership(log_text, HOME), RIVAL)


def assert_split_invariant(ledger):
    for players in ledger.stats.values():
        for stat in players.values():
            assert stat.kills == stat.kills_vs_rival + stat.kills_vs_others, stat
            assert stat.deaths == stat.deaths_vs_rival + stat.deaths_vs_others, stat


def test_home_guild_example():
    """One kill line credits the home guild and the tagged guild."""
    ledger = extract("[12:00:01] Alice has killed Bob from Rival \n")
    assert ledger.kills_by_guild[HOME] == 1
    assert ledger.deaths_by_guild["Rival"] == 1
    assert ledger.kills_matrix[HOME]["Rival"] == 1
    assert ledger.stat(HOME, "Alice").kills == 1
    assert ledger.stat("Rival", "Bob").deaths == 1
    print("✓ home guild example")


def test_counts_and_matrix():
    ledger = extract(SAMPLE_LOG)
    assert ledger.kills_by_guild == {"Chernobyl": 1, "Other Guild": 1, HOME: 3}
    assert ledger.deaths_by_guild == {"Chernobyl": 2, "Other Guild": 1, HOME: 2}
    assert ledger.kills_matrix[HOME] == {"Chernobyl": 2, "Other Guild": 1}
    assert ledger.kills_matrix["Chernobyl"][HOME] == 1
    assert ledger.kills_matrix["Other Guild"][HOME] == 1
    assert ledger.combat_lines == 5
    assert ledger.skipped_lines == []
    print(f"✓ kills by guild: {ledger.kills_by_guild}")


def test_vs_rival_split():
    ledger = extract(SAMPLE_LOG)
    assert_split_invariant(ledger)

    alice = ledger.stat(HOME, "Alice")
    assert (alice.kills, alice.kills_vs_rival, alice.kills_vs_others) == (2, 2, 0)
    assert (alice.deaths, alice.deaths_vs_rival, alice.deaths_vs_others) == (1, 0, 1)

    carol = ledger.stat(HOME, "Carol")
    assert carol.deaths_vs_rival == 1
    assert carol.kills_vs_others == 1

    dave = ledger.stat(RIVAL, "Dave")
    assert dave.kills == 1 and dave.kills_vs_others == 1
    print("✓ vs-rival / vs-others split holds")


def test_rival_match_is_case_insensitive():
    ledger = extract_events("[20:00:05] Alice has killed Bob from CHERNOBYL\n",
                            build_membership("[20:00:05] Alice has killed Bob from CHERNOBYL\n", HOME), RIVAL)
    assert ledger.stat(HOME, "Alice").kills_vs_rival == 1


def test_events_on_both_participants_with_last_known_tick():
    ledger = extract(SAMPLE_LOG)
    alice_events = ledger.stat(HOME, "Alice").events
    assert [e.type for e in alice_events] == ["kill", "kill", "death"]
    assert alice_events[0].opponent_nick == "Bob"
    assert alice_events[0].opponent_guild == "Chernobyl"
    assert alice_events[0].time == 20 * 3600 + 5
    assert all(e.tick == 100 for e in alice_events)

    frank_events = ledger.stat("Other Guild", "Frank").events
    assert [e.type for e in frank_events] == ["kill", "death"]
    assert frank_events[1].tick == 200
    print("✓ timeline events carry time and last known tick")


def test_unresolvable_nickname_is_skipped():
    """A death line whose victim never appears as a home-side name cannot be attributed."""
    membership = build_membership("[20:00:05] Alice has killed Bob from Chernobyl\n", HOME)
    ledger = extract_events("[20:00:06] Bob has killed Ghost from Nowhere\n", membership, RIVAL)
    assert ledger.skipped_lines == ["[20:00:06] Bob has killed Ghost from Nowhere"]
    assert sum(ledger.kills_by_guild.values()) == 0


def test_death_line_credits_tagged_guild():
    """The guild named on a death line wins over the killer's other membership."""
    log = ("[20:00:05] Alice has killed Dave from Chernobyl\n"
           "[20:00:10] Carol died to Dave from Other Guild\n")
    ledger = extract(log)
    assert ledger.kills_by_guild["Other Guild"] == 1
    assert ledger.kills_matrix["Other Guild"][HOME] == 1
    assert ledger.stat("Other Guild", "Dave").kills == 1
    assert ledger.stat("Chernobyl", "Dave").kills == 0


def test_zero_member_guild_has_zero_stats():
    log = "[20:00:00] Something happened from Ghosts\n[20:00:05] Alice has killed Bob from Chernobyl\n"
    ledger = extract(log)
    assert ledger.kills_by_guild["Ghosts"] == 0
    assert ledger.deaths_by_guild["Ghosts"] == 0
    assert ledger.stats["Ghosts"] == {}
    assert ledger.kd_ratio_by_guild()["Ghosts"] == 0


def test_kd_convention():
    assert kd_ratio(3, 0) == math.inf
    assert kd_ratio(0, 0) == 0
    assert kd_ratio(0, 4) == 0
    assert kd_ratio(3, 2) == 1.5

    ledger = extract(SAMPLE_LOG)
    kd = ledger.kd_ratio_by_guild()
    assert kd[HOME] == 3 / 2
    assert kd["Chernobyl"] == 1 / 2

    ledger = extract("[12:00:01] Alice has killed Bob from Rival\n")
    assert ledger.kd_ratio_by_guild()[HOME] == math.inf
    assert ledger.stat(HOME, "Alice").kd == math.inf
    print("✓ KD convention")


if __name__ == "__main__":
    print("Testing event extractor...")
    test_home_guild_example()
    test_counts_and_matrix()
    test_vs_rival_split()
    test_rival_match_is_case_insensitive()
    test_events_on_both_participants_with_last_known_tick()
    test_unresolvable_nickname_is_skipped()
    test_death_line_credits_tagged_guild()
    test_zero_member_guild_has_zero_stats()
    test_kd_convention()
    print("All event extractor tests passed!")
