"""Buff/debuff status windows and many-to-many applier attribution."""

import logging
import sys
from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from keigen.constants import ABILITY_BY_BUFF, IGNORED_BUFFS, KNOWN_BUFF_JOBS
from keigen.models import BuffEvent, FightEventRow
from keigen.normalize import canonical_name

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK_MS = 30_000

APPLY_TYPES = frozenset({"applybuff", "applybuffstack", "applydebuff", "applydebuffstack"})
REMOVE_TYPES = frozenset({"removebuff", "removebuffstack", "removedebuff", "removedebuffstack"})


@dataclass(frozen=True)
class BuffStatus:
    source: str | None
    target: str | None
    buff: str
    start: int
    end: int

    def covers(self, timestamp: int) -> bool:
        return self.start <= timestamp <= self.end


def is_ignored_buff(name: str | None, ignored: Iterable[str] = IGNORED_BUFFS) -> bool:
    key = canonical_name(name)
    return bool(key) and key in {canonical_name(i) for i in ignored}


def build_status_list(events: Iterable[BuffEvent]) -> list[BuffStatus]:
    """Pair apply/remove events into status windows.

    Windows still open when the events run out end at ``sys.maxsize``.
    """
    open_events: dict[tuple, BuffEvent] = {}
    statuses: list[BuffStatus] = []

    for event in sorted(events, key=lambda e: e.timestamp):
        event_type = event.type.lower()
        key = (event.source, event.target, canonical_name(event.ability))

        if event_type in APPLY_TYPES:
            if key in open_events:
                logger.info(
                    "Duplicate apply of %s on %s from %s at %d ignored",
                    event.ability, event.target, event.source, event.timestamp,
                )
                continue
            open_events[key] = event
        elif event_type in REMOVE_TYPES:
            applied = open_events.pop(key, None)
            if applied is None:
                logger.error(
                    "Remove of %s on %s from %s at %d has no matching apply",
                    event.ability, event.target, event.source, event.timestamp,
                )
                continue
            statuses.append(BuffStatus(
                source=applied.source,
                target=applied.target,
                buff=applied.ability,
                start=applied.timestamp,
                end=event.timestamp,
            ))
        # refreshbuff and friends do not move window edges

    for applied in open_events.values():
        statuses.append(BuffStatus(
            source=applied.source,
            target=applied.target,
            buff=applied.ability,
            start=applied.timestamp,
            end=sys.maxsize,
        ))

    statuses.sort(key=lambda s: s.start)
    return statuses


class BuffAttributionEngine:
    """Answers "which buffs were on this target, and who put them there"."""

    def __init__(
        self,
        statuses: Iterable[BuffStatus] = (),
        ignored_buffs: Iterable[str] = IGNORED_BUFFS,
        ability_by_buff: Mapping[str, str] = ABILITY_BY_BUFF,
        lookback_ms: int = DEFAULT_LOOKBACK_MS,
        known_buff_jobs: Mapping[str, Iterable[str]] = KNOWN_BUFF_JOBS,
    ):
        self._ignored = {canonical_name(b) for b in ignored_buffs}
        self._ability_by_buff = {canonical_name(k): v for k, v in ability_by_buff.items()}
        self._known_jobs = {
            canonical_name(buff): {canonical_name(job) for job in jobs}
            for buff, jobs in known_buff_jobs.items()
        }
        self.lookback_ms = lookback_ms
        self._by_target: dict[str | None, list[BuffStatus]] = defaultdict(list)
        for status in sorted(statuses, key=lambda s: s.start):
            self._by_target[status.target].append(status)

    def is_ignored(self, buff: str | None) -> bool:
        return canonical_name(buff) in self._ignored

    def active_buffs(self, target: str | None, timestamp: int) -> dict[str, list[str]]:
        """Buffs live on ``target`` at ``timestamp`` with their appliers."""
        result: dict[str, list[str]] = {}
        for status in self._by_target.get(target, ()):
            if status.start > timestamp:
                break
            if not status.covers(timestamp) or self.is_ignored(status.buff):
                continue
            appliers = result.setdefault(status.buff, [])
            if status.source and status.source not in appliers:
                appliers.append(status.source)
        return result

    def backfill(self, buff: str, target: str | None, timestamp: int) -> list[str]:
        """Appliers for ``buff`` when the damage packet names no source.

        Falls back to the most recently ended status within the lookback
        window.
        """
        key = canonical_name(buff)
        live: list[str] = []
        latest: BuffStatus | None = None
        for status in self._by_target.get(target, ()):
            if status.start > timestamp:
                break
            if canonical_name(status.buff) != key:
                continue
            if status.covers(timestamp):
                if status.source and status.source not in live:
                    live.append(status.source)
            elif timestamp - status.end <= self.lookback_ms:
                if latest is None or status.end > latest.end:
                    latest = status

        if live:
            return live
        if latest is not None and latest.source:
            logger.info(
                "Backfilled %s on %s at %d from status ended at %d (%s)",
                buff, target, timestamp, latest.end, latest.source,
            )
            return [latest.source]
        return []

    def resolve_to_abilities(self, buff_names: Iterable[str]) -> list[str]:
        resolved: list[str] = []
        for name in buff_names:
            ability = self._ability_by_buff.get(canonical_name(name), name)
            if ability not in resolved:
                resolved.append(ability)
        return resolved

    def check_cross_job_anomaly(
        self,
        buff: str,
        appliers: list[str],
        target: str | None,
        target_job: str | None,
        timestamp: int,
    ) -> bool:
        """Flag a buff that no job present could have put on the target.

        Only fires when no applier was found and the target's job is known;
        the buff is still shown.
        """
        if appliers or not target_job:
            return False
        known = self._known_jobs.get(canonical_name(buff))
        if not known or canonical_name(target_job) in known:
            return False
        logger.warning(
            "CrossJobBuffMissingSource: %s on %s (%s) at %d has no applier",
            buff, target, target_job, timestamp,
            extra={
                "diagnostic": "CrossJobBuffMissingSource",
                "buff": buff,
                "target": target,
                "target_job": target_job,
                "timestamp": timestamp,
                "known_jobs": sorted(known),
            },
        )
        return True

    def attribute_row(
        self,
        row: FightEventRow,
        *,
        roster: Mapping[str, str] | None = None,
        abilities_only: bool = False,
    ) -> FightEventRow:
        """Merge status-derived buffs into the row and fill missing appliers."""
        buffs: dict[str, list[str]] = {
            name: list(appliers)
            for name, appliers in row.buffs.items()
            if not self.is_ignored(name)
        }
        if row.actor:
            for name, appliers in self.active_buffs(row.actor, row.timestamp).items():
                merged = buffs.setdefault(name, [])
                merged.extend(a for a in appliers if a not in merged)

        for name, appliers in buffs.items():
            if appliers:
                continue
            appliers.extend(self.backfill(name, row.actor, row.timestamp))
            target_job = (roster or {}).get(row.actor or "")
            if not appliers and target_job:
                self.check_cross_job_anomaly(
                    name, appliers, row.actor, target_job, row.timestamp,
                )

        if abilities_only:
            collapsed: dict[str, list[str]] = {}
            for name, appliers in buffs.items():
                ability = self.resolve_to_abilities([name])[0]
                merged = collapsed.setdefault(ability, [])
                merged.extend(a for a in appliers if a not in merged)
            buffs = collapsed

        return row.model_copy(update={"buffs": buffs})
