"""
Data model for processed node war logs and monthly player records.

Every record converts to and from the plain JSON shape stored by
:mod:`nodewar_tools.storage.json_store`.
"""

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional


class Territory(str, Enum):
    """Territory a node war was fought in."""
    CALPHEON = "Calpheon"
    KAMASYLVIA = "Kamasylvia"
    SIEGE = "Siege"


def kd_ratio(kills: int, deaths: int) -> float:
    """
    Kill/death ratio used everywhere a ratio is reported.

    ``kills / deaths`` when there are deaths, ``inf`` for kills without a
    death and ``0.0`` when the player neither killed nor died.
    """
    if deaths > 0:
        return kills / deaths
    if kills > 0:
        return math.inf
    return 0.0


def format_clock(seconds: Optional[int]) -> Optional[str]:
    """Format seconds since midnight as HH:MM:SS."""
    if seconds is None:
        return None
    hours, rest = divmod(int(seconds), 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


@dataclass(frozen=True)
class Identity:
    """Class and family name of a character."""
    classe: str
    familia: str
    found: bool = True
    placeholder: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "classe": self.classe,
            "familia": self.familia,
            "found": self.found,
            "placeholder": self.placeholder,
        }


@dataclass(frozen=True)
class TimelineEvent:
    """One kill or death seen from a single player's point of view."""
    type: str  # "kill" or "death"
    opponent_nick: str
    opponent_guild: str
    time: Optional[int] = None
    tick: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "type": self.type,
            "opponentNick": self.opponent_nick,
            "opponentGuild": self.opponent_guild,
        }
        if self.time is not None:
            data["t"] = self.time
            data["time"] = format_clock(self.time)
        if self.tick is not None:
            data["tick"] = self.tick
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TimelineEvent":
        return cls(
            type=data.get("type", "kill"),
            opponent_nick=data.get("opponentNick", ""),
            opponent_guild=data.get("opponentGuild", ""),
            time=data.get("t"),
            tick=data.get("tick"),
        )


@dataclass
class PlayerCombatStat:
    """Kill/death counters of one player within one guild for one log."""
    nick: str
    guild: str
    kills: int = 0
    deaths: int = 0
    kills_vs_rival: int = 0
    deaths_vs_rival: int = 0
    kills_vs_others: int = 0
    deaths_vs_others: int = 0
    classe: str = ""
    familia: str = ""
    placeholder_identity: bool = False
    events: List[TimelineEvent] = field(default_factory=list)

    def record_kill(self, vs_rival: bool, event: TimelineEvent) -> None:
        self.kills += 1
        if vs_rival:
            self.kills_vs_rival += 1
        else:
            self.kills_vs_others += 1
        self.events.append(event)

    def record_death(self, vs_rival: bool, event: TimelineEvent) -> None:
        self.deaths += 1
        if vs_rival:
            self.deaths_vs_rival += 1
        else:
            self.deaths_vs_others += 1
        self.events.append(event)

    def apply_identity(self, identity: Identity) -> None:
        self.classe = identity.classe
        self.familia = identity.familia
        self.placeholder_identity = identity.placeholder

    @property
    def kd(self) -> float:
        return kd_ratio(self.kills, self.deaths)

    def sorted_events(self) -> List[TimelineEvent]:
        """Events ordered by time; events without a time keep discovery order at the end."""
        timed = [e for e in self.events if e.time is not None]
        untimed = [e for e in self.events if e.time is None]
        return sorted(timed, key=lambda e: e.time) + untimed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kills": self.kills,
            "deaths": self.deaths,
            "classe": self.classe,
            "familia": self.familia,
            "kills_vs_rival": self.kills_vs_rival,
            "deaths_vs_rival": self.deaths_vs_rival,
            "kills_vs_others": self.kills_vs_others,
            "deaths_vs_others": self.deaths_vs_others,
            "placeholder_identity": self.placeholder_identity,
            "events": [e.to_dict() for e in self.events],
        }

    @classmethod
    def from_dict(cls, guild: str, nick: str, data: Dict[str, Any]) -> "PlayerCombatStat":
        return cls(
            nick=nick,
            guild=guild,
            kills=int(data.get("kills", 0) or 0),
            deaths=int(data.get("deaths", 0) or 0),
            kills_vs_rival=int(data.get("kills_vs_rival", 0) or 0),
            deaths_vs_rival=int(data.get("deaths_vs_rival", 0) or 0),
            kills_vs_others=int(data.get("kills_vs_others", 0) or 0),
            deaths_vs_others=int(data.get("deaths_vs_others", 0) or 0),
            classe=data.get("classe", "") or "",
            familia=data.get("familia", "") or "",
            placeholder_identity=bool(data.get("placeholder_identity", False)),
            events=[TimelineEvent.from_dict(e) for e in data.get("events", []) or []],
        )


@dataclass(frozen=True)
class ProcessedLog:
    """Everything extracted from one raw node war log."""
    home_guild: str
    rival_guild: str
    guilds: List[str]
    total_geral: int
    total_por_classe: List[Dict[str, Any]]
    classes: Dict[str, List[Dict[str, str]]]
    classes_by_guild: Dict[str, Dict[str, List[Dict[str, str]]]]
    kills_by_guild: Dict[str, int]
    deaths_by_guild: Dict[str, int]
    kd_ratio_by_guild: Dict[str, float]
    kills_matrix: Dict[str, Dict[str, int]]
    player_stats_by_guild: Dict[str, Dict[str, PlayerCombatStat]]
    total_node_seconds: int = 0
    occupancy_seconds_by_guild: Dict[str, int] = field(default_factory=dict)
    territorio: Optional[str] = None
    node: str = ""
    event_date: Optional[str] = None
    arquivo_nome: str = ""
    is_win: Optional[bool] = None
    win_reason: Optional[str] = None
    degraded: bool = False
    unresolved_nicks: List[str] = field(default_factory=list)
    ambiguities: List[str] = field(default_factory=list)
    id: Optional[str] = None
    created_at: Optional[str] = None

    @property
    def guildas_adversarias(self) -> List[str]:
        return [g for g in self.guilds if g != self.home_guild]

    @property
    def month_year(self) -> Optional[str]:
        """Calendar month ("YYYY-MM") of the log, taken from its creation time."""
        if not self.created_at:
            return None
        return self.created_at[:7]

    def occupancy_seconds(self, guild: str) -> int:
        return self.occupancy_seconds_by_guild.get(guild, 0)

    def with_storage_fields(self, log_id: str, created_at: str) -> "ProcessedLog":
        return replace(self, id=log_id, created_at=created_at)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "created_at": self.created_at,
            "guild": self.home_guild,
            "rivalGuild": self.rival_guild,
            "guilds": list(self.guilds),
            "totalGeral": self.total_geral,
            "totalPorClasse": list(self.total_por_classe),
            "classes": self.classes,
            "classesByGuild": self.classes_by_guild,
            "killsByGuild": self.kills_by_guild,
            "deathsByGuild": self.deaths_by_guild,
            "kdRatioByGuild": self.kd_ratio_by_guild,
            "killsMatrix": self.kills_matrix,
            "playerStatsByGuild": {
                guild: {nick: stat.to_dict() for nick, stat in players.items()}
                for guild, players in self.player_stats_by_guild.items()
            },
            "totalNodeSeconds": self.total_node_seconds,
            "occupancySecondsByGuild": self.occupancy_seconds_by_guild,
            "territorio": self.territorio,
            "node": self.node,
            "guildasAdversarias": self.guildas_adversarias,
            "eventDate": self.event_date,
            "arquivoNome": self.arquivo_nome,
            "isWin": self.is_win,
            "winReason": self.win_reason,
            "degraded": self.degraded,
            "unresolvedNicks": list(self.unresolved_nicks),
            "ambiguities": list(self.ambiguities),
        }
        for guild in (self.home_guild, self.rival_guild):
            data[f"{guild.lower()}OccupancySeconds"] = self.occupancy_seconds(guild)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProcessedLog":
        stats = data.get("playerStatsByGuild") or {}
        return cls(
            home_guild=data.get("guild", ""),
            rival_guild=data.get("rivalGuild", ""),
            guilds=list(data.get("guilds") or []),
            total_geral=int(data.get("totalGeral", 0) or 0),
            total_por_classe=list(data.get("totalPorClasse") or []),
            classes=data.get("classes") or {},
            classes_by_guild=data.get("classesByGuild") or {},
            kills_by_guild=data.get("killsByGuild") or {},
            deaths_by_guild=data.get("deathsByGuild") or {},
            kd_ratio_by_guild=data.get("kdRatioByGuild") or {},
            kills_matrix=data.get("killsMatrix") or {},
            player_stats_by_guild={
                guild: {nick: PlayerCombatStat.from_dict(guild, nick, s) for nick, s in players.items()}
                for guild, players in stats.items()
            },
            total_node_seconds=int(data.get("totalNodeSeconds", 0) or 0),
            occupancy_seconds_by_guild=data.get("occupancySecondsByGuild") or {},
            territorio=data.get("territorio"),
            node=data.get("node", "") or "",
            event_date=data.get("eventDate"),
            arquivo_nome=data.get("arquivoNome", "") or "",
            is_win=data.get("isWin"),
            win_reason=data.get("winReason"),
            degraded=bool(data.get("degraded", False)),
            unresolved_nicks=list(data.get("unresolvedNicks") or []),
            ambiguities=list(data.get("ambiguities") or []),
            id=data.get("id"),
            created_at=data.get("created_at"),
        )


@dataclass
class ClassStat:
    """Monthly counters of one player on one class."""
    classe: str
    kills: int = 0
    deaths: int = 0
    kills_vs_rival: int = 0
    deaths_vs_rival: int = 0
    kills_vs_others: int = 0
    deaths_vs_others: int = 0
    last_played: Optional[str] = None

    def add(self, stat: PlayerCombatStat, played_at: Optional[str]) -> None:
        self.kills += stat.kills
        self.deaths += stat.deaths
        self.kills_vs_rival += stat.kills_vs_rival
        self.deaths_vs_rival += stat.deaths_vs_rival
        self.kills_vs_others += stat.kills_vs_others
        self.deaths_vs_others += stat.deaths_vs_others
        if played_at and (self.last_played is None or played_at > self.last_played):
            self.last_played = played_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "classe": self.classe,
            "kills": self.kills,
            "deaths": self.deaths,
            "kills_vs_rival": self.kills_vs_rival,
            "deaths_vs_rival": self.deaths_vs_rival,
            "kills_vs_others": self.kills_vs_others,
            "deaths_vs_others": self.deaths_vs_others,
            "last_played": self.last_played,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClassStat":
        return cls(
            classe=data.get("classe", ""),
            kills=int(data.get("kills", 0) or 0),
            deaths=int(data.get("deaths", 0) or 0),
            kills_vs_rival=int(data.get("kills_vs_rival", 0) or 0),
            deaths_vs_rival=int(data.get("deaths_vs_rival", 0) or 0),
            kills_vs_others=int(data.get("kills_vs_others", 0) or 0),
            deaths_vs_others=int(data.get("deaths_vs_others", 0) or 0),
            last_played=data.get("last_played"),
        )


@dataclass
class MonthlyRecord:
    """Aggregate of one player over every log of a calendar month."""
    month_year: str
    player_nick: str
    player_familia: str
    guilda: str
    classes_played: List[ClassStat] = field(default_factory=list)
    total_kills: int = 0
    total_deaths: int = 0
    total_kills_vs_rival: int = 0
    total_deaths_vs_rival: int = 0
    total_kills_vs_others: int = 0
    total_deaths_vs_others: int = 0
    kd_overall: float = 0.0
    kd_vs_rival: float = 0.0
    kd_vs_others: float = 0.0
    logs_processed: List[str] = field(default_factory=list)
    last_log_processed_at: Optional[str] = None
    id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def class_stat(self, classe: str) -> ClassStat:
        for entry in self.classes_played:
            if entry.classe == classe:
                return entry
        entry = ClassStat(classe=classe)
        self.classes_played.append(entry)
        return entry

    def recompute_totals(self) -> None:
        """Rebuild the totals and the three KD ratios from the per-class counters."""
        self.total_kills = sum(c.kills for c in self.classes_played)
        self.total_deaths = sum(c.deaths for c in self.classes_played)
        self.total_kills_vs_rival = sum(c.kills_vs_rival for c in self.classes_played)
        self.total_deaths_vs_rival = sum(c.deaths_vs_rival for c in self.classes_played)
        self.total_kills_vs_others = sum(c.kills_vs_others for c in self.classes_played)
        self.total_deaths_vs_others = sum(c.deaths_vs_others for c in self.classes_played)
        self.kd_overall = kd_ratio(self.total_kills, self.total_deaths)
        self.kd_vs_rival = kd_ratio(self.total_kills_vs_rival, self.total_deaths_vs_rival)
        self.kd_vs_others = kd_ratio(self.total_kills_vs_others, self.total_deaths_vs_others)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "month_year": self.month_year,
            "player_nick": self.player_nick,
            "player_familia": self.player_familia,
            "guilda": self.guilda,
            "classes_played": [c.to_dict() for c in self.classes_played],
            "total_kills": self.total_kills,
            "total_deaths": self.total_deaths,
            "total_kills_vs_rival": self.total_kills_vs_rival,
            "total_deaths_vs_rival": self.total_deaths_vs_rival,
            "total_kills_vs_others": self.total_kills_vs_others,
            "total_deaths_vs_others": self.total_deaths_vs_others,
            "kd_overall": self.kd_overall,
            "kd_vs_rival": self.kd_vs_rival,
            "kd_vs_others": self.kd_vs_others,
            "logs_processed": list(self.logs_processed),
            "last_log_processed_at": self.last_log_processed_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MonthlyRecord":
        record = cls(
            month_year=data.get("month_year", ""),
            player_nick=data.get("player_nick", ""),
            player_familia=data.get("player_familia", "") or "",
            guilda=data.get("guilda", "") or "",
            classes_played=[ClassStat.from_dict(c) for c in data.get("classes_played", []) or []],
            logs_processed=list(data.get("logs_processed") or []),
            last_log_processed_at=data.get("last_log_processed_at"),
            id=data.get("id"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )
        record.recompute_totals()
        return record
