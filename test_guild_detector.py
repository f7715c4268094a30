#!/usr/bin/env python3
"""
Test script for line classification and guild membership detection.
"""

import sys
import os

# Add the src directory to the path so we can import the modules
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from nodewar_tools.log.guild_detector import build_membership, detect_guilds, extract_nicks_for_guild
from nodewar_tools.log.line_classifier import LineKind, classify_line, parse_clock, parse_tick

HOME = "Lollipop"

SAMPLE_LOG = """[20:00:00] Next war tick: 100
[20:00:05] Alice has killed Bob from Chernobyl
[20:00:10] Carol died to Dave from Chernobyl
[20:00:20] Alice has killed Erin from Chernobyl
[20:00:30] Alice died to Frank from Other Guild
"""


def test_classify_kill_line():
    """A kill line carries killer, victim, victim guild and time."""
    line = classify_line("[12:00:01] Alice has killed Bob from Rival ")
    assert line.kind is LineKind.KILL
    assert line.killer == "Alice"
    assert line.victim == "Bob"
    assert line.guild == "Rival"
    assert line.time == 12 * 3600 + 1
    print("✓ kill line classified")


def test_classify_death_line():
    """A death line tags the killer's guild."""
    line = classify_line("[00:01:02] Carol died to Dave from Chernobyl")
    assert line.kind is LineKind.DEATH
    assert line.victim == "Carol"
    assert line.killer == "Dave"
    assert line.guild == "Chernobyl"
    assert line.time == 62
    print("✓ death line classified")


def test_classify_other_lines():
    assert classify_line("[20:00:00] Next war tick: 100").kind is LineKind.OTHER
    assert classify_line("").kind is LineKind.OTHER
    assert classify_line("garbage without a pattern").kind is LineKind.OTHER
    assert classify_line("Alice has killed Bob").kind is LineKind.OTHER
    print("✓ non-combat lines ignored")


def test_multi_word_guild_name():
    line = classify_line("[20:00:30] Alice died to Frank from Other Guild")
    assert line.guild == "Other Guild"
    assert line.killer == "Frank"


def test_accented_guild_name():
    line = classify_line("[12:00:01] Alice has killed Bob from Guilda São ")
    assert line.kind is LineKind.KILL
    assert line.guild == "Guilda São"
    log = "[12:00:01] Alice has killed Bob from Guilda São \n[12:00:09] Alice died to Zé from Guilda São\n"
    assert detect_guilds(log, HOME) == ["Guilda São", HOME]
    assert extract_nicks_for_guild("Guilda São", log, HOME) == ["Bob", "Zé"]
    print("✓ accented guild names recognised")


def test_parse_clock_and_tick():
    assert parse_clock("[01:02:03] x") == 3723
    assert parse_clock("no time here") is None
    assert parse_tick("[20:00:00] Next war tick: 100") == 100
    assert parse_tick("Node Time: 12:30") == 750
    assert parse_tick("PID: 1:00:00") == 3600
    assert parse_tick("nothing") is None
    print("✓ clock and tick markers parsed")


def test_detect_guilds_keeps_order_and_adds_home():
    guilds = detect_guilds(SAMPLE_LOG, HOME)
    assert guilds == ["Chernobyl", "Other Guild", HOME]
    print(f"✓ detected guilds: {guilds}")


def test_detect_guilds_on_empty_log():
    assert detect_guilds("", HOME) == [HOME]
    assert detect_guilds("@@@ not a log @@@", HOME) == [HOME]


def test_home_guild_members_are_the_untagged_side():
    assert extract_nicks_for_guild(HOME, SAMPLE_LOG, HOME) == ["Alice", "Carol"]


def test_adversary_members_are_the_tagged_side():
    assert extract_nicks_for_guild("Chernobyl", SAMPLE_LOG, HOME) == ["Bob", "Dave", "Erin"]
    assert extract_nicks_for_guild("Other Guild", SAMPLE_LOG, HOME) == ["Frank"]
    print("✓ adversary membership extracted")


def test_guild_token_must_match_exactly():
    """'from Chernobyl2' is not a Chernobyl line."""
    log = "[20:00:05] Alice has killed Bob from Chernobyl2\n"
    assert extract_nicks_for_guild("Chernobyl", log, HOME) == []
    assert extract_nicks_for_guild("Chernobyl2", log, HOME) == ["Bob"]


def test_home_guild_example():
    membership = build_membership("[12:00:01] Alice has killed Bob from Rival \n", HOME)
    assert membership.contains(HOME, "Alice")
    assert membership.contains("Rival", "Bob")
    assert membership.guild_of("Alice") == HOME
    assert membership.guild_of("Bob") == "Rival"


def test_membership_tie_break_prefers_tagged_guild():
    """A nickname both untagged and tagged resolves to the tagged guild and is reported."""
    log = ("[20:00:05] Dave has killed Zed from Chernobyl\n"
           "[20:00:10] Carol died to Dave from Chernobyl\n")
    membership = build_membership(log, HOME)
    assert membership.guilds_of("Dave") == ["Chernobyl", HOME]
    assert membership.guild_of("Dave") == "Chernobyl"
    assert len(membership.ambiguities) == 1
    ambiguity = membership.ambiguities[0]
    assert ambiguity.nickname == "Dave"
    assert ambiguity.chosen_guild == "Chernobyl"
    print(f"✓ ambiguity recorded: {ambiguity}")


def test_membership_is_read_only():
    membership = build_membership(SAMPLE_LOG, HOME)
    try:
        membership.members["New"] = ("x",)
    except TypeError:
        pass
    else:
        raise AssertionError("membership map should not be writable")
    assert membership.all_nicks() == ["Bob", "Dave", "Erin", "Frank", "Alice", "Carol"]


if __name__ == "__main__":
    print("Testing line classifier and guild detector...")
    test_classify_kill_line()
    test_classify_death_line()
    test_classify_other_lines()
    test_multi_word_guild_name()
    test_accented_guild_name()
    test_parse_clock_and_tick()
    test_detect_guilds_keeps_order_and_adds_home()
    test_detect_guilds_on_empty_log()
    test_home_guild_members_are_the_untagged_side()
    test_adversary_members_are_the_tagged_side()
    test_guild_token_must_match_exactly()
    test_home_guild_example()
    test_membership_tie_break_prefers_tagged_guild()
    test_membership_is_read_only()
    print("All guild detector tests passed!")
