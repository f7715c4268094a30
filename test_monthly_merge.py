#!/usr/bin/env python3
"""
Test script for the monthly merge engine and the monthly KDA tool.
"""

import sys
import os
import copy
import math
import tempfile
import time
from datetime import datetime, timezone

# Add the src directory to the path so we can import the modules
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from nodewar_tools.exceptions import ExternalSourceUnavailable
from nodewar_tools.models import Identity, PlayerCombatStat, ProcessedLog
from nodewar_tools.pipeline.monthly_kda import MonthlyKDATool
from nodewar_tools.pipeline.monthly_merge import MonthlyMergeEngine, is_placeholder_family, resolve_nick_families
from nodewar_tools.storage.json_store import LogStore, MonthlyStore

HOME = "Lollipop"
RIVAL = "Chernobyl"
TRACKED = ["Manifest", "Allyance", "Grand_Order"]


def stat(nick, guild, classe="Warrior", familia="", kills=0, deaths=0, kills_vs_rival=0,
         deaths_vs_rival=0, placeholder=False):
    return PlayerCombatStat(nick=nick, guild=guild, kills=kills, deaths=deaths,
                            kills_vs_rival=kills_vs_rival, deaths_vs_rival=deaths_vs_rival,
                            kills_vs_others=kills - kills_vs_rival, deaths_vs_others=deaths - deaths_vs_rival,
                            classe=classe, familia=familia, placeholder_identity=placeholder)


def make_log(log_id, created_at, stats):
    by_guild = {}
    for entry in stats:
        by_guild.setdefault(entry.guild, {})[entry.nick] = entry
    return ProcessedLog(home_guild=HOME, rival_guild=RIVAL, guilds=list(by_guild), total_geral=len(stats),
                        total_por_classe=[], classes={}, classes_by_guild={}, kills_by_guild={},
                        deaths_by_guild={}, kd_ratio_by_guild={}, kills_matrix={},
                        player_stats_by_guild=by_guild, id=log_id, created_at=created_at)


def sample_logs():
    first = make_log("log-1", "2024-05-03T21:00:00+00:00", [
        stat("Alice", HOME, familia="AliceFam", kills=3, deaths=1, kills_vs_rival=2),
        stat("Bob", HOME, classe="Mage", familia="Família3", kills=1, deaths=2, deaths_vs_rival=1,
             placeholder=True),
        stat("Carl", HOME, familia="UnknownFam", kills=5),
        stat("Mia", "Manifest", classe="Archer", familia="MiaFam", kills=2, deaths=2),
        stat("Zed", RIVAL, familia="ZedFam", kills=4, deaths=3),
    ])
    second = make_log("log-2", "2024-05-10T21:00:00+00:00", [
        stat("Alice", HOME, classe="Mage", familia="AliceFam", kills=1, deaths=1, deaths_vs_rival=1),
        stat("Mia", "Manifest", classe="Archer", familia="MiaFam", kills=1),
    ])
    return [first, second]


FAMILY_MAP = {"alicefam": "Allyance", "miafam": "Manifest", "bobfam": "Grand_Order"}
NICK_FAMILIES = {"Bob": "BobFam"}


def engine():
    return MonthlyMergeEngine(HOME, RIVAL, TRACKED)


def totals(records):
    return {nick: (r.guilda, r.total_kills, r.total_deaths, r.total_kills_vs_rival, r.total_deaths_vs_rival,
                   r.kd_overall, r.kd_vs_rival, r.kd_vs_others, sorted(r.logs_processed))
            for nick, r in records.items()}


def test_placeholder_family_detection():
    assert is_placeholder_family("")
    assert is_placeholder_family(None)
    assert is_placeholder_family("Família3")
    assert is_placeholder_family("Familia 2")
    assert is_placeholder_family("Family7")
    assert is_placeholder_family("Família não encontrada")
    assert not is_placeholder_family("AliceFam")
    assert not is_placeholder_family("FamíliaReal")


def test_reclassification_through_family_map():
    result = engine().merge_month("2024-05", sample_logs(), FAMILY_MAP, NICK_FAMILIES)
    records = result.records

    assert records["Alice"].guilda == "Allyance"
    assert records["Alice"].player_familia == "AliceFam"
    assert records["Bob"].guilda == "Grand_Order"
    assert records["Bob"].player_familia == "BobFam"
    assert records["Mia"].guilda == "Manifest"
    assert "Carl" not in records
    assert "Zed" not in records
    assert result.excluded == ["Carl"]
    assert result.logs_folded == 2
    print("✓ home-guild players reclassified into sub-guilds")


def test_per_class_sums_and_recomputed_kd():
    records = engine().merge_month("2024-05", sample_logs(), FAMILY_MAP, NICK_FAMILIES).records
    alice = records["Alice"]
    by_class = {c.classe: c for c in alice.classes_played}
    assert by_class["Warrior"].kills == 3 and by_class["Warrior"].deaths == 1
    assert by_class["Mage"].kills == 1 and by_class["Mage"].deaths == 1
    assert by_class["Mage"].last_played == "2024-05-10T21:00:00+00:00"
    assert (alice.total_kills, alice.total_deaths) == (4, 2)
    assert alice.kd_overall == 2.0
    assert alice.kd_vs_rival == 2.0
    assert alice.kd_vs_others == 2.0
    assert alice.logs_processed == ["log-1", "log-2"]
    assert alice.total_kills == alice.total_kills_vs_rival + alice.total_kills_vs_others

    mia = records["Mia"]
    assert (mia.total_kills, mia.total_deaths) == (3, 2)
    assert mia.kd_vs_rival == 0

    bob = records["Bob"]
    assert bob.kd_overall == 0.5


def test_kd_infinity_when_no_deaths():
    log = make_log("log-9", "2024-05-01T20:00:00+00:00", [stat("Mia", "Manifest", kills=3)])
    mia = engine().merge_month("2024-05", [log], {}).records["Mia"]
    assert mia.kd_overall == math.inf
    assert mia.kd_vs_rival == 0
    assert mia.kd_vs_others == math.inf


def test_merge_is_idempotent():
    first = engine().merge_month("2024-05", sample_logs(), FAMILY_MAP, NICK_FAMILIES)
    second = engine().merge_month("2024-05", sample_logs(), FAMILY_MAP, NICK_FAMILIES)
    assert totals(first.records) == totals(second.records)

    again = engine().merge_month("2024-05", sample_logs(), FAMILY_MAP, NICK_FAMILIES,
                                 existing=copy.deepcopy(first.records))
    assert totals(again.records) == totals(first.records)
    assert again.logs_folded == 0
    print("✓ re-merging the same logs changes nothing")


def test_incremental_merge_adds_new_logs_only():
    logs = sample_logs()
    partial = engine().merge_month("2024-05", logs[:1], FAMILY_MAP, NICK_FAMILIES)
    full = engine().merge_month("2024-05", logs, FAMILY_MAP, NICK_FAMILIES, existing=partial.records)
    scratch = engine().merge_month("2024-05", logs, FAMILY_MAP, NICK_FAMILIES)
    assert totals(full.records) == totals(scratch.records)


def test_latest_log_decides_guild():
    logs = sample_logs() + [make_log("log-3", "2024-05-20T21:00:00+00:00", [
        stat("Alice", "Manifest", familia="AliceFam", kills=1)])]
    records = engine().merge_month("2024-05", logs, FAMILY_MAP).records
    assert records["Alice"].guilda == "Manifest"
    assert records["Alice"].total_kills == 5


def test_missing_family_map_excludes_home_players():
    result = engine().merge_month("2024-05", sample_logs(), {})
    assert set(result.records) == {"Mia"}
    assert set(result.excluded) == {"Alice", "Bob", "Carl"}


def test_nicks_needing_family():
    assert engine().nicks_needing_family(sample_logs(), FAMILY_MAP) == ["Bob"]


def test_resolve_nick_families():
    def lookup(nick):
        if nick == "Broken":
            raise OSError("down")
        if nick == "Nobody":
            return Identity("Classe não encontrada", "Família não encontrada", found=False)
        return Identity("Warrior", f"{nick}Fam")

    families = resolve_nick_families(["Bob", "Broken", "Nobody", "Bob"], lookup, concurrency=2, budget_seconds=5)
    assert families == {"Bob": "BobFam"}


def test_resolve_nick_families_respects_budget():
    def lookup(nick):
        if nick == "Slow":
            time.sleep(1.0)
        return Identity("Warrior", f"{nick}Fam")

    started = time.monotonic()
    families = resolve_nick_families(["Fast", "Slow"], lookup, concurrency=2, budget_seconds=0.2)
    assert time.monotonic() - started < 0.9
    assert families == {"Fast": "FastFam"}
    print("✓ family lookups stop at the time budget")


class FakeRoster:
    def __init__(self, mapping=None, available=True):
        self.mapping = mapping or {}
        self.available = available

    def refresh(self):
        if not self.available:
            raise ExternalSourceUnavailable("roster offline")
        return list(self.mapping)

    def family_guild_map(self):
        return dict(self.mapping)


def make_tool(workdir, roster, lookup=None):
    config = {
        "general": {"output_path": os.path.join(workdir, "output"), "data_dir": os.path.join(workdir, "data")},
        "nodewar": {"home_guild": HOME, "rival_guild": RIVAL, "tracked_guilds": TRACKED},
        "identity": {"retries": 0, "throttle_ms": 0, "jitter_ms": 0},
        "monthly": {"family_budget_seconds": 5},
    }
    clock = lambda: datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc)
    log_store = LogStore(config, clock=clock)
    monthly_store = MonthlyStore(config, clock=clock)
    lookup = lookup or (lambda nick: Identity("Warrior", f"{nick}Fam"))
    return MonthlyKDATool(config, log_store=log_store, monthly_store=monthly_store,
                          roster=roster, lookup=lookup)


def test_monthly_tool_run_and_rerun():
    with tempfile.TemporaryDirectory() as workdir:
        tool = make_tool(workdir, FakeRoster(FAMILY_MAP))
        for log in sample_logs():
            tool.log_store.insert(log)

        result = tool.run("2024-05")
        assert result["success"] is True
        assert result["total_logs_processed"] == 2
        assert result["total_players_processed"] == 3
        assert result["records_updated"] == 3
        assert result["degraded"] is False

        stored = {r.player_nick: r for r in tool.monthly_store.list_month("2024-05")}
        assert stored["Bob"].guilda == "Grand_Order"
        first_ids = {nick: r.id for nick, r in stored.items()}

        rerun = tool.run("2024-05")
        assert rerun["success"] is True
        assert rerun["total_logs_processed"] == 0
        again = {r.player_nick: r for r in tool.monthly_store.list_month("2024-05")}
        assert totals(again) == totals(stored)
        assert {nick: r.id for nick, r in again.items()} == first_ids

        forced = tool.run("2024-05", force_reprocess=True)
        assert forced["total_logs_processed"] == 2
        assert totals({r.player_nick: r for r in tool.monthly_store.list_month("2024-05")}) == totals(stored)
        print(f"✓ monthly tool: {result['message']}")


def test_monthly_tool_prunes_inactive_players():
    with tempfile.TemporaryDirectory() as workdir:
        tool = make_tool(workdir, FakeRoster(FAMILY_MAP))
        for log in sample_logs():
            tool.log_store.insert(log)
        tool.run("2024-05")

        gone = engine().merge_month("2024-05", [make_log("old", "2024-05-01T00:00:00+00:00",
                                                         [stat("Old", "Manifest", kills=1)])], {})
        tool.monthly_store.upsert(gone.records["Old"])

        kept = tool.run("2024-05", force_reprocess=True)
        assert kept["removed_inactive_players"] == []
        assert tool.monthly_store.get("2024-05", "Old") is not None

        pruned = tool.run("2024-05", force_reprocess=True, clean_inactive=True)
        assert pruned["removed_inactive_players"] == ["Old"]
        assert tool.monthly_store.get("2024-05", "Old") is None


def test_monthly_tool_without_roster_degrades():
    with tempfile.TemporaryDirectory() as workdir:
        tool = make_tool(workdir, FakeRoster(available=False))
        for log in sample_logs():
            tool.log_store.insert(log)
        result = tool.run("2024-05")
        assert result["success"] is True
        assert result["degraded"] is True
        assert [r.player_nick for r in tool.monthly_store.list_month("2024-05")] == ["Mia"]


def test_monthly_tool_empty_month():
    with tempfile.TemporaryDirectory() as workdir:
        tool = make_tool(workdir, FakeRoster(FAMILY_MAP))
        result = tool.run("2024-06")
        assert result["success"] is False
        assert "No logs" in result["message"]


def test_summarize_does_not_store():
    with tempfile.TemporaryDirectory() as workdir:
        tool = make_tool(workdir, FakeRoster(FAMILY_MAP))
        for log in sample_logs():
            tool.log_store.insert(log)
        records = tool.summarize("2024-05")
        assert [r.player_nick for r in records] == ["Alice", "Mia", "Bob"]
        assert tool.monthly_store.list_month("2024-05") == []


if __name__ == "__main__":
    print("Testing monthly merge...")
    test_placeholder_family_detection()
    test_reclassification_through_family_map()
    test_per_class_sums_and_recomputed_kd()
    test_kd_infinity_when_no_deaths()
    test_merge_is_idempotent()
    test_incremental_merge_adds_new_logs_only()
    test_latest_log_decides_guild()
    test_missing_family_map_excludes_home_players()
    test_nicks_needing_family()
    test_resolve_nick_families()
    test_resolve_nick_families_respects_budget()
    test_monthly_tool_run_and_rerun()
    test_monthly_tool_prunes_inactive_players()
    test_monthly_tool_without_roster_degrades()
    test_monthly_tool_empty_month()
    test_summarize_does_not_store()
    print("All monthly merge tests passed!")
