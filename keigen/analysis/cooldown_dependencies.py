"""Declarative table of cooldown interdependencies between job abilities."""

import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, replace

from keigen.constants import AUTO_ATTACK_NAMES
from keigen.normalize import canonical_name

logger = logging.getLogger(__name__)

ANY_JOB = "any"


@dataclass(frozen=True)
class ChargedCooldown:
    """Ability holds several charges that recover one at a time."""

    max_charges: int


@dataclass(frozen=True)
class MutualCooldown:
    """Casting the trigger puts the affected ability on the trigger's recast."""


@dataclass(frozen=True)
class CardDependency:
    """A played card stays locked until the next draw of its kind.

    When the trigger is one of the affected abilities it is the card itself;
    otherwise the trigger is the draw that frees the affected card.
    """


@dataclass(frozen=True)
class ResourceGatedAbility:
    """Usability tied to a gauge that other actions (auto-attacks) refill.

    Spenders have ``cost > 0``; generators have ``gain > 0``.
    """

    resource: str
    cost: int = 0
    gain: int = 0
    gauge_max: int = 100


CooldownHandler = ChargedCooldown | MutualCooldown | CardDependency | ResourceGatedAbility


@dataclass(frozen=True)
class CooldownDependencyEntry:
    job: str
    trigger: str
    affects: tuple[str, ...]
    handler: CooldownHandler

    @property
    def max_charges(self) -> int | None:
        if isinstance(self.handler, ChargedCooldown):
            return self.handler.max_charges
        return None

    def canonical(self) -> "CooldownDependencyEntry":
        job = ANY_JOB if self.job.strip().lower() == ANY_JOB else canonical_name(self.job)
        return replace(
            self,
            job=job,
            trigger=canonical_name(self.trigger),
            affects=tuple(canonical_name(a) for a in self.affects),
        )


OATH_SPENDER = ResourceGatedAbility(resource="oath", cost=50)
OATH_GENERATOR = ResourceGatedAbility(resource="oath", gain=5)

COOLDOWN_DEPENDENCIES: tuple[CooldownDependencyEntry, ...] = (
    # Astrologian cards and draws
    CooldownDependencyEntry("Astrologian", "The Bole", ("The Bole",), CardDependency()),
    CooldownDependencyEntry("Astrologian", "The Spire", ("The Spire",), CardDependency()),
    CooldownDependencyEntry("Astrologian", "Umbral Draw", ("The Bole",), CardDependency()),
    CooldownDependencyEntry("Astrologian", "Astral Draw", ("The Spire",), CardDependency()),
    CooldownDependencyEntry("Astrologian", "Umbral Draw", ("Astral Draw",), MutualCooldown()),
    CooldownDependencyEntry("Astrologian", "Astral Draw", ("Umbral Draw",), MutualCooldown()),
    # Charge pools
    CooldownDependencyEntry("Dark Knight", "Oblation", (), ChargedCooldown(2)),
    CooldownDependencyEntry("White Mage", "Divine Benison", (), ChargedCooldown(2)),
    CooldownDependencyEntry("Summoner", "Radiant Aegis", (), ChargedCooldown(2)),
    CooldownDependencyEntry("Gunbreaker", "Aurora", (), ChargedCooldown(2)),
    # Paladin Oath gauge
    CooldownDependencyEntry("Paladin", "Intervention", ("Intervention",), OATH_SPENDER),
    CooldownDependencyEntry("Paladin", "Sheltron", ("Sheltron",), OATH_SPENDER),
    CooldownDependencyEntry("Paladin", "Holy Sheltron", ("Holy Sheltron",), OATH_SPENDER),
    *(
        CooldownDependencyEntry("Paladin", name, (), OATH_GENERATOR)
        for name in sorted(AUTO_ATTACK_NAMES)
    ),
)


class CooldownDependencyResolver:
    """Looks up dependency entries by (job, ability), tolerant of naming drift."""

    def __init__(self, entries: Iterable[CooldownDependencyEntry] = COOLDOWN_DEPENDENCIES):
        self._by_key: dict[tuple[str, str], list[CooldownDependencyEntry]] = defaultdict(list)
        for entry in entries:
            canon = entry.canonical()
            if not canon.trigger:
                logger.debug("Skipping dependency entry without trigger: %r", entry)
                continue
            self._by_key[(canon.job, canon.trigger)].append(canon)

    def resolve(self, job: str | None, ability: str | None) -> list[CooldownDependencyEntry]:
        """Entries for this pair, job-specific first. Unknown pairs give []."""
        trigger = canonical_name(ability)
        if not trigger:
            return []
        return [
            *self._by_key.get((canonical_name(job), trigger), ()),
            *self._by_key.get((ANY_JOB, trigger), ()),
        ]

    def gated_abilities(self, job: str | None, resource: str) -> set[str]:
        """Canonical names of every ability spending ``resource`` for ``job``."""
        job_key = canonical_name(job)
        gated: set[str] = set()
        for (entry_job, _trigger), entries in self._by_key.items():
            if entry_job not in (job_key, ANY_JOB):
                continue
            for entry in entries:
                handler = entry.handler
                if (
                    isinstance(handler, ResourceGatedAbility)
                    and handler.resource == resource
                    and handler.cost > 0
                ):
                    gated.add(entry.trigger)
                    gated.update(entry.affects)
        return gated


def _handler_from_dict(data: dict) -> CooldownHandler | None:
    tag = canonical_name(data.get("handler"))
    match tag:
        case "chargedcooldown":
            max_charges = data.get("maxCharges", data.get("max_charges"))
            if not isinstance(max_charges, int) or max_charges < 1:
                return None
            return ChargedCooldown(max_charges)
        case "mutualcooldown":
            return MutualCooldown()
        case "carddependency":
            return CardDependency()
        case "resourcegatedability":
            return ResourceGatedAbility(
                resource=data.get("resource", "oath"),
                cost=int(data.get("cost", 0)),
                gain=int(data.get("gain", 0)),
                gauge_max=int(data.get("gaugeMax", data.get("gauge_max", 100))),
            )
        case _:
            return None


def parse_dependency_table(rows: Iterable[dict]) -> list[CooldownDependencyEntry]:
    """Build entries from plain mappings (e.g. a JSON config file).

    Each mapping carries ``job``, ``trigger``, ``affects``, ``handler`` (one of
    ``chargedCooldown``, ``mutualCooldown``, ``cardDependency``,
    ``resourceGatedAbility``) and handler-specific fields. Rows with an unknown
    handler are logged and skipped.
    """
    entries: list[CooldownDependencyEntry] = []
    for row in rows:
        handler = _handler_from_dict(row)
        if handler is None or not row.get("trigger"):
            logger.warning("Ignoring unusable cooldown dependency row: %r", row)
            continue
        entries.append(CooldownDependencyEntry(
            job=row.get("job") or ANY_JOB,
            trigger=row["trigger"],
            affects=tuple(row.get("affects") or ()),
            handler=handler,
        ))
    return entries


def default_resolver() -> CooldownDependencyResolver:
    return CooldownDependencyResolver(COOLDOWN_DEPENDENCIES)
