"""Tests for botched mitigation detection."""

from keigen.analysis.botched import is_botched, potentially_botched_buffs, row_botched_buffs
from keigen.models import FightEventRow


class TestIsBotched:
    def test_strict_inequality(self):
        assert is_botched(30, 40)
        assert not is_botched(40, 40)
        assert not is_botched(50, 40)

    def test_margin(self):
        assert not is_botched(30, 35, margin_pct=5)
        assert is_botched(30, 36, margin_pct=5)

    def test_missing_values_never_flag(self):
        assert not is_botched(None, 40)
        assert not is_botched(30, None)
        assert not is_botched("30", 40)


class TestPotentiallyBotchedBuffs:
    def test_case_insensitive_difference(self):
        """Damage packet spelling is kept and duplicates dropped."""
        result = potentially_botched_buffs(
            ["Rampart", "Reprisal", 3, "rampart", None],
            ["reprisal", 7],
        )
        assert result == ["Rampart"]

    def test_unknown_mitigation(self):
        assert potentially_botched_buffs(["Rampart"], [], mitigation_unknown=True) == []

    def test_all_accounted_for(self):
        assert potentially_botched_buffs(["Kerachole"], ["KERACHOLE"]) == []


class TestRowBotchedBuffs:
    def _row(self, **kwargs):
        return FightEventRow(timestamp=1, ability="Hit", potentially_botched_buffs=["Reprisal"], **kwargs)

    def test_shortfall_keeps_flags(self):
        assert row_botched_buffs(self._row(mitigation_pct=20, intended_mit_pct=30)) == ["Reprisal"]

    def test_no_shortfall_drops_flags(self):
        assert row_botched_buffs(self._row(mitigation_pct=30, intended_mit_pct=30)) == []

    def test_margin_applied(self):
        row = self._row(mitigation_pct=20, intended_mit_pct=30)
        assert row_botched_buffs(row, margin_pct=10) == []

    def test_missing_percentages_trust_flags(self):
        assert row_botched_buffs(self._row()) == ["Reprisal"]

    def test_no_flags(self):
        row = FightEventRow(timestamp=1, ability="Hit", mitigation_pct=0, intended_mit_pct=50)
        assert row_botched_buffs(row) == []
