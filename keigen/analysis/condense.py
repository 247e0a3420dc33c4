"""Condensed pull generation: fold near-duplicate hits into display sets.

Rows are walked in timestamp order with a single open group. A row joins the
open group when it names the same ability and lands within the grouping
window of the group's first hit; anything else closes the group and opens a
new one. Every raw row survives as a child of its set.
"""

import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from keigen.analysis.availability import populate_mitigation_availability
from keigen.analysis.botched import row_botched_buffs
from keigen.analysis.buffs import BuffAttributionEngine, build_status_list
from keigen.config import get_settings
from keigen.constants import IGNORED_BUFFS
from keigen.models import (
    BuffEvent,
    CastEvent,
    CondensedPull,
    CondensedSet,
    FightEventRow,
    FightTable,
    PlayerAggregate,
)
from keigen.normalize import canonical_name

logger = logging.getLogger(__name__)

DEFAULT_GROUPING_WINDOW_MS = 2000


def _append_unique(target: list[str], values: Iterable[str]) -> None:
    for value in values:
        if value not in target:
            target.append(value)


def _rounded_mean(values: list[float]) -> int:
    if not values:
        return 0
    # Halves round up (26.5 -> 27).
    return math.floor(sum(values) / len(values) + 0.5)


@dataclass
class _PlayerAccumulator:
    was_targeted: bool = False
    dead: bool = False
    buffs: set[str] = field(default_factory=set)
    available_mitigations: list[str] = field(default_factory=list)
    botched_buffs: list[str] = field(default_factory=list)
    amount: int = 0
    unmitigated_amount: int = 0
    absorbed: int = 0
    mitigation_pcts: list[float] = field(default_factory=list)
    intended_mit_pcts: list[float] = field(default_factory=list)

    def add_hit(self, row: FightEventRow) -> None:
        self.amount += row.amount or 0
        self.unmitigated_amount += row.unmitigated_amount or 0
        self.absorbed += row.absorbed or 0
        if row.mitigation_pct is not None:
            self.mitigation_pcts.append(row.mitigation_pct)
        if row.intended_mit_pct is not None:
            self.intended_mit_pcts.append(row.intended_mit_pct)

    def freeze(self) -> PlayerAggregate:
        return PlayerAggregate(
            was_targeted=self.was_targeted,
            buffs=sorted(self.buffs),
            dead=self.dead,
            available_mitigations=list(self.available_mitigations),
            botched_buffs=list(self.botched_buffs),
            amount=self.amount,
            unmitigated_amount=self.unmitigated_amount,
            absorbed=self.absorbed,
            mitigation_pct=_rounded_mean(self.mitigation_pcts),
            intended_mit_pct=_rounded_mean(self.intended_mit_pcts),
        )


@dataclass
class _RowFold:
    """Everything one row contributes to a set, computed before any state changes."""

    row: FightEventRow
    buff_credits: list[tuple[str, str]]  # (applier, buff)
    botched_credits: list[tuple[str, str]]  # (applier, buff)

    @classmethod
    def build(cls, row: FightEventRow, ignored: set[str], margin_pct: float) -> "_RowFold":
        appliers_by_buff: dict[str, list[str]] = {}
        buff_credits = []
        for buff, appliers in row.buffs.items():
            key = canonical_name(buff)
            if key in ignored:
                continue
            _append_unique(appliers_by_buff.setdefault(key, []), appliers)
            buff_credits.extend((applier, buff) for applier in appliers)

        botched_credits = [
            (applier, buff)
            for buff in row_botched_buffs(row, margin_pct)
            for applier in appliers_by_buff.get(canonical_name(buff), [])
        ]
        return cls(row, buff_credits, botched_credits)


class _OpenGroup:
    def __init__(self, first: FightEventRow):
        self.anchor = first.timestamp
        self.ability = first.ability
        self.key = canonical_name(first.ability)
        self.damage_type = first.damage_type
        self.children: list[FightEventRow] = []
        self.players: dict[str, _PlayerAccumulator] = {}
        self.availability: dict[str, list[str]] = {}
        self.botched: dict[str, list[str]] = {}

    def accepts(self, row: FightEventRow, window_ms: int) -> bool:
        return (
            canonical_name(row.ability) == self.key
            and row.timestamp - self.anchor <= window_ms
        )

    def _player(self, name: str) -> _PlayerAccumulator:
        if name not in self.players:
            self.players[name] = _PlayerAccumulator()
        return self.players[name]

    def apply(self, change: _RowFold) -> None:
        row = change.row
        self.children.append(row)

        if row.actor:
            target = self._player(row.actor)
            target.was_targeted = True
            _append_unique(
                target.available_mitigations,
                row.available_mitigations_by_player.get(row.actor, []),
            )
            target.add_hit(row)

        for player, abilities in row.available_mitigations_by_player.items():
            _append_unique(self.availability.setdefault(player, []), abilities)

        for applier, buff in change.buff_credits:
            self._player(applier).buffs.add(buff)

        for name in row.deaths:
            self._player(name).dead = True

        for applier, buff in change.botched_credits:
            _append_unique(self._player(applier).botched_buffs, [buff])
            _append_unique(self.botched.setdefault(applier, []), [buff])

    def close(self) -> CondensedSet:
        availability = {p: list(a) for p, a in self.availability.items()}
        botched = {p: list(b) for p, b in self.botched.items()}
        for name in self.players:
            availability.setdefault(name, [])
            botched.setdefault(name, [])
        return CondensedSet(
            id=self.anchor,
            timestamp=self.anchor,
            ability=self.ability,
            players={name: acc.freeze() for name, acc in self.players.items()},
            available_mitigations_by_player=availability,
            botched_buffs_by_player=botched,
            children=list(self.children),
            damage_type=self.damage_type,
        )


def condense_rows(
    rows: Iterable[FightEventRow],
    *,
    grouping_window_ms: int = DEFAULT_GROUPING_WINDOW_MS,
    ignored_buffs: Iterable[str] = IGNORED_BUFFS,
    botched_margin_pct: float = 0,
) -> list[CondensedSet]:
    """Group rows into condensed sets in chronological order of first hit."""
    ignored = {canonical_name(b) for b in ignored_buffs}
    sets: list[CondensedSet] = []
    group: _OpenGroup | None = None

    for row in sorted(rows, key=lambda r: r.timestamp):
        if not row.ability:
            logger.debug("Skipping row at %d without ability", row.timestamp)
            continue
        try:
            change = _RowFold.build(row, ignored, botched_margin_pct)
        except Exception:
            logger.exception(
                "Failed to fold row %s at %d into condensed set",
                row.ability, row.timestamp,
            )
            continue

        if group is None or not group.accepts(row, grouping_window_ms):
            if group is not None:
                sets.append(group.close())
            group = _OpenGroup(row)
        group.apply(change)

    if group is not None and group.children:
        sets.append(group.close())
    return sets


def _validate_each(model, raw_items, label: str) -> list:
    items = []
    for index, raw in enumerate(raw_items or []):
        try:
            items.append(model.model_validate(raw))
        except ValidationError as exc:
            logger.warning("Skipping invalid %s %d: %s", label, index, exc)
    return items


def _valid_roster(raw_roster) -> dict[str, str]:
    if not isinstance(raw_roster, Mapping):
        if raw_roster:
            logger.warning("Ignoring roster that is not a mapping: %r", raw_roster)
        return {}
    roster = {}
    for player, job in raw_roster.items():
        if isinstance(player, str) and isinstance(job, str):
            roster[player] = job
        else:
            logger.warning("Skipping invalid roster entry %r: %r", player, job)
    return roster


def _coerce_fight_table(fight_table: FightTable | Mapping[str, Any] | None) -> FightTable:
    if fight_table is None:
        return FightTable()
    if isinstance(fight_table, FightTable):
        return fight_table

    data = dict(fight_table)
    raw_rows = data.pop("rows", None)
    raw_casts = data.pop("casts", None)
    raw_buff_events = data.pop("buffEvents", None)
    raw_buff_events = data.pop("buff_events", None) or raw_buff_events
    raw_roster = data.pop("roster", None)

    try:
        table = FightTable.model_validate(data)
    except ValidationError as exc:
        bad_fields = {err["loc"][0] for err in exc.errors() if err["loc"]}
        logger.warning("Dropping invalid fight fields %s: %s", sorted(map(str, bad_fields)), exc)
        try:
            table = FightTable.model_validate(
                {key: value for key, value in data.items() if key not in bad_fields},
            )
        except ValidationError as retry_exc:
            logger.warning("Invalid fight metadata, using defaults: %s", retry_exc)
            table = FightTable()

    return table.model_copy(update={
        "rows": _validate_each(FightEventRow, raw_rows, "row"),
        "casts": _validate_each(CastEvent, raw_casts, "cast"),
        "buff_events": _validate_each(BuffEvent, raw_buff_events, "buff event"),
        "roster": _valid_roster(raw_roster),
    })


def enrich_rows(
    table: FightTable,
    *,
    ignored_buffs: Iterable[str] = IGNORED_BUFFS,
    lookback_ms: int | None = None,
    abilities_only: bool = False,
) -> list[FightEventRow]:
    """Apply buff attribution and cast-driven availability when raw streams exist."""
    rows = list(table.rows)
    if table.buff_events:
        engine_kwargs = {} if lookback_ms is None else {"lookback_ms": lookback_ms}
        engine = BuffAttributionEngine(
            build_status_list(table.buff_events),
            ignored_buffs=ignored_buffs,
            **engine_kwargs,
        )
        rows = [
            engine.attribute_row(row, roster=table.roster, abilities_only=abilities_only)
            for row in rows
        ]
    if table.casts and table.roster:
        rows = populate_mitigation_availability(rows, table.casts, table.roster)
    return rows


def generate_condensed_pull(
    fight_table: FightTable | Mapping[str, Any] | None,
    *,
    grouping_window_ms: int | None = None,
    ignored_buffs: Iterable[str] | None = None,
    botched_margin_pct: float | None = None,
) -> CondensedPull:
    """Build the condensed view of one pull.

    Args:
        fight_table: Parsed fight table, its JSON-like mapping, or None.
        grouping_window_ms: Max gap from a set's first hit (settings default).
        ignored_buffs: Buffs never credited (``IGNORED_BUFFS`` by default).
        botched_margin_pct: Shortfall tolerated before a flag counts.

    Returns:
        Frozen ``CondensedPull``; equal inputs give equal output.
    """
    analysis = get_settings().analysis
    if grouping_window_ms is None:
        grouping_window_ms = analysis.grouping_window_ms
    if botched_margin_pct is None:
        botched_margin_pct = analysis.botched_margin_pct
    if ignored_buffs is None:
        ignored_buffs = IGNORED_BUFFS
    ignored_buffs = list(ignored_buffs)

    table = _coerce_fight_table(fight_table)
    rows = enrich_rows(
        table,
        ignored_buffs=ignored_buffs,
        lookback_ms=analysis.buff_lookback_ms,
        abilities_only=analysis.abilities_only,
    )
    condensed_sets = condense_rows(
        rows,
        grouping_window_ms=grouping_window_ms,
        ignored_buffs=ignored_buffs,
        botched_margin_pct=botched_margin_pct,
    )
    logger.info(
        "Condensed %d rows into %d sets for fight %s (%s)",
        len(rows), len(condensed_sets), table.fight_id, table.name,
    )
    return CondensedPull(
        fight_id=table.fight_id,
        encounter_id=table.encounter_id,
        name=table.name,
        condensed_sets=condensed_sets,
    )
