from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


class KeigenBaseModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


def _none_as_empty_list(value):
    return [] if value is None else value


def _none_as_empty_dict(value):
    return {} if value is None else value


class FightEventRow(KeigenBaseModel):
    """One damage event on one target, as produced by the report parser."""

    model_config = ConfigDict(frozen=True)

    timestamp: int
    ability: str = ""
    actor: str | None = None  # Target player
    source: str | None = None  # Attacker
    amount: int | None = None
    unmitigated_amount: int | None = None  # 0 = unknown, not a true zero
    absorbed: int | None = None
    mitigation_pct: int | float | None = None
    intended_mit_pct: int | float | None = None
    damage_type: str | None = None
    buffs: dict[str, list[str]] = {}
    deaths: list[str] = []
    available_mitigations_by_player: dict[str, list[str]] = {}
    potentially_botched_buffs: list[str] = []

    @field_validator("deaths", "potentially_botched_buffs", mode="before")
    @classmethod
    def _default_lists(cls, value):
        return _none_as_empty_list(value)

    @field_validator("buffs", "available_mitigations_by_player", mode="before")
    @classmethod
    def _default_mappings(cls, value):
        value = _none_as_empty_dict(value)
        if isinstance(value, dict):
            return {k: _none_as_empty_list(v) for k, v in value.items()}
        return value

    @property
    def mitigation_unknown(self) -> bool:
        return not self.unmitigated_amount


class CastEvent(KeigenBaseModel):
    timestamp: int
    source: str
    ability: str


class BuffEvent(KeigenBaseModel):
    """Raw apply/remove/refresh buff event, already resolved to names."""

    timestamp: int
    type: str
    ability: str
    source: str | None = None
    target: str | None = None


class FightTable(KeigenBaseModel):
    fight_id: int | None = None
    encounter_id: int | None = None
    name: str = "Unknown Fight"
    rows: list[FightEventRow] = []
    friendly_players: list[str] = []  # Roster for the presentation layer
    # Optional raw streams; when present the rows are enriched before grouping.
    roster: dict[str, str] = {}  # player -> job
    casts: list[CastEvent] = []
    buff_events: list[BuffEvent] = []

    @field_validator("rows", "friendly_players", "casts", "buff_events", mode="before")
    @classmethod
    def _default_lists(cls, value):
        return _none_as_empty_list(value)

    @field_validator("roster", mode="before")
    @classmethod
    def _default_roster(cls, value):
        return _none_as_empty_dict(value)


class PlayerAggregate(KeigenBaseModel):
    model_config = ConfigDict(frozen=True)

    was_targeted: bool = False
    buffs: list[str] = []
    dead: bool = False
    available_mitigations: list[str] = []
    botched_buffs: list[str] = []
    amount: int = 0
    unmitigated_amount: int = 0
    absorbed: int = 0
    mitigation_pct: int = 0
    intended_mit_pct: int = 0


class CondensedSet(KeigenBaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    timestamp: int
    ability: str
    players: dict[str, PlayerAggregate] = {}
    available_mitigations_by_player: dict[str, list[str]] = {}
    botched_buffs_by_player: dict[str, list[str]] = {}
    children: list[FightEventRow] = []
    damage_type: str | None = None


class CondensedPull(KeigenBaseModel):
    model_config = ConfigDict(frozen=True)

    fight_id: int | None = None
    encounter_id: int | None = None
    name: str = "Unknown Fight"
    condensed_sets: list[CondensedSet] = []
