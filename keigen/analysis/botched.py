"""Detection of mitigation that fell short of what was achievable."""

from collections.abc import Iterable

from keigen.models import FightEventRow


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_botched(actual_pct, intended_pct, margin_pct: float = 0) -> bool:
    """True when the intended mitigation beat the realized one by more than the margin."""
    if not _is_number(actual_pct) or not _is_number(intended_pct):
        return False
    return intended_pct > actual_pct + margin_pct


def potentially_botched_buffs(
    damage_buffs: Iterable,
    calculated_buffs: Iterable,
    mitigation_unknown: bool = False,
) -> list[str]:
    """Buffs on the damage packet that the calculated packet does not account for.

    Matching ignores case; the damage packet's spelling is kept.
    """
    if mitigation_unknown:
        return []
    calculated = {b.lower() for b in calculated_buffs if isinstance(b, str)}
    result: list[str] = []
    seen: set[str] = set()
    for buff in damage_buffs:
        if not isinstance(buff, str):
            continue
        key = buff.lower()
        if key in calculated or key in seen:
            continue
        seen.add(key)
        result.append(buff)
    return result


def row_botched_buffs(row: FightEventRow, margin_pct: float = 0) -> list[str]:
    flagged = row.potentially_botched_buffs
    if not flagged:
        return []
    if row.mitigation_pct is None or row.intended_mit_pct is None:
        # Percentages missing; trust the upstream flags.
        return list(flagged)
    if is_botched(row.mitigation_pct, row.intended_mit_pct, margin_pct):
        return list(flagged)
    return []
