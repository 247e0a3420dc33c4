"""Per-player mitigation cooldown/charge tracking and availability lookup."""

import logging
import sys
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from keigen.analysis.cooldown_dependencies import (
    CardDependency,
    ChargedCooldown,
    CooldownDependencyEntry,
    CooldownDependencyResolver,
    MutualCooldown,
    ResourceGatedAbility,
    default_resolver,
)
from keigen.constants import JOB_MITIGATIONS, MitigationAbility
from keigen.models import CastEvent, FightEventRow
from keigen.normalize import canonical_name

logger = logging.getLogger(__name__)

OPEN_END = sys.maxsize  # End of a lock nothing has resolved yet


@dataclass
class CooldownWindow:
    start: int
    end: int

    @property
    def is_open(self) -> bool:
        return self.end == OPEN_END

    def blocks(self, timestamp: int) -> bool:
        # End is exclusive: the ability is back at `end`.
        return self.start <= timestamp < self.end


@dataclass
class ChargeState:
    charges: int
    max_charges: int
    recharge_started: int | None = None  # None while charges are full

    def refill(self, timestamp: int, recast_ms: int) -> None:
        while (
            self.recharge_started is not None
            and self.charges < self.max_charges
            and timestamp >= self.recharge_started + recast_ms
        ):
            self.charges += 1
            self.recharge_started += recast_ms
        if self.charges >= self.max_charges:
            self.charges = self.max_charges
            self.recharge_started = None


@dataclass
class CooldownTracker:
    ability: MitigationAbility
    windows: list[CooldownWindow] = field(default_factory=list)
    charge_state: ChargeState | None = None

    @property
    def recast_ms(self) -> int:
        return self.ability.recast_sec * 1000

    def add_window(self, start: int, end: int) -> CooldownWindow | None:
        if end <= start:
            logger.debug(
                "Dropping empty cooldown window for %s (%d-%d)",
                self.ability.name, start, end,
            )
            return None
        window = CooldownWindow(start, end)
        self.windows.append(window)
        self.windows.sort(key=lambda w: w.start)
        return window

    def last_open_window(self) -> CooldownWindow | None:
        if self.windows and self.windows[-1].is_open:
            return self.windows[-1]
        return None

    def is_available(self, timestamp: int) -> bool:
        return not any(w.blocks(timestamp) for w in self.windows)


@dataclass
class PlayerState:
    job: str
    abilities: list[MitigationAbility]
    trackers: dict[str, CooldownTracker]
    gauges: dict[str, int] = field(default_factory=dict)
    # (resource, window) pairs waiting for the gauge to refill
    pending_locks: list[tuple[str, CooldownWindow]] = field(default_factory=list)


class MitigationAvailabilityTracker:
    """Cooldown/charge state machine for every registered player.

    Casts must be recorded in timestamp order; availability can then be
    queried for any timestamp.
    """

    def __init__(
        self,
        job_mitigations: Mapping[str, list[MitigationAbility]] = JOB_MITIGATIONS,
        resolver: CooldownDependencyResolver | None = None,
        exclusive_selections: Mapping[str, str] | None = None,
    ):
        self._job_mitigations = {
            canonical_name(job): abilities for job, abilities in job_mitigations.items()
        }
        self._resolver = resolver or default_resolver()
        # exclusive group id -> canonical name of the ability chosen for this fight
        self._selections = {
            group: canonical_name(name)
            for group, name in (exclusive_selections or {}).items()
        }
        self._players: dict[str, PlayerState] = {}

    @property
    def players(self) -> list[str]:
        return list(self._players)

    def register_player(self, player: str, job: str) -> None:
        abilities = self._job_mitigations.get(canonical_name(job), [])
        if not abilities:
            logger.debug("No mitigation abilities configured for %s (%s)", player, job)
        self._players[player] = PlayerState(
            job=job,
            abilities=list(abilities),
            trackers={canonical_name(a.name): CooldownTracker(a) for a in abilities},
        )

    def tracker_for(self, player: str, ability: str) -> CooldownTracker | None:
        state = self._players.get(player)
        if state is None:
            return None
        return state.trackers.get(canonical_name(ability))

    def gauge(self, player: str, resource: str = "oath") -> int | None:
        state = self._players.get(player)
        if state is None:
            return None
        return state.gauges.get(resource)

    def record_cast(self, player: str, ability: str, timestamp: int) -> bool:
        """Apply one cast to the player's state.

        Returns False when the cast touched nothing we track (unknown player,
        non-mitigation ability without dependency entries).
        """
        state = self._players.get(player)
        if state is None:
            logger.debug("Cast from unregistered player %s ignored (%s)", player, ability)
            return False

        tracker = state.trackers.get(canonical_name(ability))
        entries = self._resolver.resolve(state.job, ability)
        if tracker is None and not entries:
            return False

        handled = False
        for entry in entries:
            match entry.handler:
                case ChargedCooldown(max_charges=max_charges):
                    if tracker is not None:
                        self._spend_charge(tracker, max_charges, timestamp)
                        handled = True
                case MutualCooldown():
                    handled = self._apply_mutual(state, entry, tracker, timestamp) or handled
                case CardDependency():
                    self._apply_card(state, entry, tracker, timestamp)
                    handled = True
                case ResourceGatedAbility() as gate:
                    self._apply_resource(state, gate, tracker, timestamp)
                    handled = True

        if not handled and tracker is not None:
            if tracker.ability.max_charges:
                self._spend_charge(tracker, tracker.ability.max_charges, timestamp)
            else:
                tracker.add_window(timestamp, timestamp + tracker.recast_ms)
        return True

    def available_at(self, player: str, timestamp: int) -> list[str]:
        """Mitigation abilities the player could press at ``timestamp``."""
        state = self._players.get(player)
        if state is None:
            return []
        available = []
        for ability in self._selected_abilities(state.abilities):
            tracker = state.trackers[canonical_name(ability.name)]
            if tracker.is_available(timestamp):
                available.append(ability.name)
        return available

    def _selected_abilities(self, abilities: list[MitigationAbility]) -> list[MitigationAbility]:
        chosen: dict[str, str] = {}
        for ability in abilities:
            group = ability.exclusive_group
            if group and group not in chosen:
                chosen[group] = self._selections.get(group) or canonical_name(ability.name)
        return [
            a for a in abilities
            if not a.exclusive_group or chosen[a.exclusive_group] == canonical_name(a.name)
        ]

    # --- handlers ---

    def _spend_charge(self, tracker: CooldownTracker, max_charges: int, timestamp: int) -> None:
        state = tracker.charge_state
        if state is None or state.max_charges != max_charges:
            state = tracker.charge_state = ChargeState(max_charges, max_charges)

        recast_ms = tracker.recast_ms
        state.refill(timestamp, recast_ms)
        if state.recharge_started is None:
            state.recharge_started = timestamp
        if state.charges > 0:
            state.charges -= 1
        if state.charges == 0:
            tracker.add_window(timestamp, state.recharge_started + recast_ms)

    def _apply_mutual(
        self,
        state: PlayerState,
        entry: CooldownDependencyEntry,
        tracker: CooldownTracker | None,
        timestamp: int,
    ) -> bool:
        if tracker is None or tracker.recast_ms <= 0:
            return False
        if tracker.last_open_window() is None or tracker.last_open_window().start != timestamp:
            tracker.add_window(timestamp, OPEN_END)
        for name in entry.affects:
            other = state.trackers.get(name)
            window = other.last_open_window() if other else None
            if window is not None:
                window.end = window.start + tracker.recast_ms
        return True

    def _apply_card(
        self,
        state: PlayerState,
        entry: CooldownDependencyEntry,
        tracker: CooldownTracker | None,
        timestamp: int,
    ) -> None:
        if entry.trigger in entry.affects:
            if tracker is not None:
                tracker.add_window(timestamp, OPEN_END)
            return
        # Draw: free the affected card from its open lock.
        for name in entry.affects:
            card = state.trackers.get(name)
            window = card.last_open_window() if card else None
            if window is not None:
                window.end = timestamp if timestamp > window.start else window.start + 1

    def _apply_resource(
        self,
        state: PlayerState,
        gate: ResourceGatedAbility,
        tracker: CooldownTracker | None,
        timestamp: int,
    ) -> None:
        gauge = state.gauges.get(gate.resource, gate.gauge_max)

        if gate.gain:
            gauge = min(gate.gauge_max, gauge + gate.gain)
            state.gauges[gate.resource] = gauge
            self._release_locks(state, gate, gauge, timestamp)

        if gate.cost:
            if tracker is not None:
                tracker.add_window(timestamp, timestamp + tracker.recast_ms)
            gauge = max(0, gauge - gate.cost)
            state.gauges[gate.resource] = gauge
            if gauge < gate.cost:
                self._lock_gated(state, gate, timestamp)

    def _lock_gated(self, state: PlayerState, gate: ResourceGatedAbility, timestamp: int) -> None:
        for name in sorted(self._resolver.gated_abilities(state.job, gate.resource)):
            tracker = state.trackers.get(name)
            if tracker is None:
                continue
            if any(w.start == timestamp and w.is_open for w in tracker.windows):
                continue
            window = tracker.add_window(timestamp, OPEN_END)
            if window is not None:
                state.pending_locks.append((gate.resource, window))

    def _release_locks(
        self, state: PlayerState, gate: ResourceGatedAbility, gauge: int, timestamp: int,
    ) -> None:
        threshold = self._spend_threshold(state, gate)
        if gauge < threshold:
            return
        remaining = []
        for resource, window in state.pending_locks:
            if resource != gate.resource:
                remaining.append((resource, window))
                continue
            window.end = timestamp if timestamp > window.start else window.start + 1
        state.pending_locks = remaining

    def _spend_threshold(self, state: PlayerState, gate: ResourceGatedAbility) -> int:
        costs = [
            entry.handler.cost
            for name in self._resolver.gated_abilities(state.job, gate.resource)
            for entry in self._resolver.resolve(state.job, name)
            if isinstance(entry.handler, ResourceGatedAbility) and entry.handler.cost > 0
        ]
        return min(costs) if costs else 0


def populate_mitigation_availability(
    rows: Iterable[FightEventRow],
    casts: Iterable[CastEvent],
    roster: Mapping[str, str],
    *,
    job_mitigations: Mapping[str, list[MitigationAbility]] = JOB_MITIGATIONS,
    resolver: CooldownDependencyResolver | None = None,
    exclusive_selections: Mapping[str, str] | None = None,
) -> list[FightEventRow]:
    """Fill ``available_mitigations_by_player`` on every row.

    Args:
        rows: Damage rows for one pull.
        casts: Every cast in the pull (mitigation casts, auto-attacks, ...).
        roster: Friendly player name -> job.
        job_mitigations: Per-job mitigation tables.
        resolver: Cooldown dependency resolver (default table if omitted).
        exclusive_selections: Fight-scoped exclusive group -> chosen ability.

    Returns:
        New rows carrying availability for every roster player; inputs are
        left untouched.
    """
    tracker = MitigationAvailabilityTracker(
        job_mitigations, resolver, exclusive_selections,
    )
    for player, job in roster.items():
        tracker.register_player(player, job)

    tracked = 0
    unknown_sources: set[str] = set()
    for cast in sorted(casts, key=lambda c: c.timestamp):
        if cast.source not in roster:
            unknown_sources.add(cast.source)
            continue
        if tracker.record_cast(cast.source, cast.ability, cast.timestamp):
            tracked += 1

    by_timestamp: dict[int, dict[str, list[str]]] = {}
    result = []
    for row in rows:
        availability = by_timestamp.get(row.timestamp)
        if availability is None:
            availability = {
                player: tracker.available_at(player, row.timestamp) for player in roster
            }
            by_timestamp[row.timestamp] = availability
        result.append(row.model_copy(update={
            "available_mitigations_by_player": {p: list(a) for p, a in availability.items()},
        }))

    logger.info(
        "Mitigation availability populated: %d rows, %d players, %d tracked casts",
        len(result), len(roster), tracked,
    )
    if unknown_sources:
        logger.warning(
            "Casts from %d players missing from roster: %s",
            len(unknown_sources), sorted(unknown_sources)[:10],
        )
    return result
