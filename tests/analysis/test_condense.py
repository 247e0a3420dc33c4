"""Tests for condensed pull generation."""

import logging

import keigen.analysis.condense as condense_module
from keigen.analysis.condense import condense_rows, generate_condensed_pull
from keigen.models import FightEventRow, FightTable


def _row(ts, ability="Magitek Ray", **kwargs):
    return FightEventRow(timestamp=ts, ability=ability, **kwargs)


class TestGrouping:
    def test_single_row_scenario(self):
        """Magitek Ray on the Main Tank with a Sage's Kerachole up."""
        row = FightEventRow.model_validate({
            "timestamp": 1000,
            "ability": "Magitek Ray",
            "actor": "Main Tank",
            "buffs": {"Kerachole": ["Lily Sage"]},
            "availableMitigationsByPlayer": {
                "Main Tank": ["Rampart"],
                "Lily Sage": ["Kerachole"],
            },
        })
        sets = condense_rows([row])

        assert len(sets) == 1
        main_tank = sets[0].players["Main Tank"]
        assert main_tank.was_targeted is True
        assert main_tank.available_mitigations == ["Rampart"]
        sage = sets[0].players["Lily Sage"]
        assert sage.was_targeted is False
        assert sage.buffs == ["Kerachole"]
        assert sage.available_mitigations == []
        assert sets[0].id == 1000
        assert sets[0].children == [row]

    def test_window_boundary(self):
        assert len(condense_rows([_row(1000), _row(3000)])) == 1
        assert len(condense_rows([_row(1000), _row(3001)])) == 2

    def test_window_measured_from_anchor(self):
        """Chained hits do not stretch the group past the first hit's window."""
        sets = condense_rows([_row(0), _row(1500), _row(3000)])
        assert [len(s.children) for s in sets] == [2, 1]

    def test_different_ability_closes_group(self):
        sets = condense_rows([_row(0, "A"), _row(100, "B"), _row(200, "A")])
        assert [s.ability for s in sets] == ["A", "B", "A"]

    def test_unsorted_input(self):
        sets = condense_rows([_row(5000, "B"), _row(1000, "A"), _row(1500, "A")])
        assert [s.timestamp for s in sets] == [1000, 5000]
        assert [c.timestamp for c in sets[0].children] == [1000, 1500]

    def test_custom_window(self):
        assert len(condense_rows([_row(0), _row(1000)], grouping_window_ms=500)) == 2

    def test_rows_without_ability_skipped(self):
        sets = condense_rows([_row(0, ""), _row(10)])
        assert len(sets) == 1
        assert len(sets[0].children) == 1

    def test_empty(self):
        assert condense_rows([]) == []


class TestAggregation:
    def test_availability_union(self):
        """Off Tank Rampart then Sentinel unions into one set-level list."""
        sets = condense_rows([
            _row(1000, actor="Off Tank", available_mitigations_by_player={"Off Tank": ["Rampart"]}),
            _row(1500, actor="Off Tank", available_mitigations_by_player={"Off Tank": ["Sentinel"]}),
        ])
        assert set(sets[0].available_mitigations_by_player["Off Tank"]) == {"Rampart", "Sentinel"}
        assert set(sets[0].players["Off Tank"].available_mitigations) == {"Rampart", "Sentinel"}

    def test_one_aggregate_per_player(self):
        sets = condense_rows([
            _row(1000, actor="Main Tank", buffs={"Reprisal": ["Main Tank"]}, deaths=["Main Tank"]),
            _row(1200, actor="Main Tank", buffs={"Reprisal": ["Main Tank"]}),
        ])
        assert list(sets[0].players) == ["Main Tank"]
        aggregate = sets[0].players["Main Tank"]
        assert aggregate.buffs == ["Reprisal"]
        assert aggregate.dead is True
        assert aggregate.was_targeted is True

    def test_death_only_player(self):
        sets = condense_rows([_row(1000, actor="Main Tank", deaths=["Healer"])])
        healer = sets[0].players["Healer"]
        assert healer.dead is True
        assert healer.was_targeted is False
        assert sets[0].available_mitigations_by_player["Healer"] == []
        assert sets[0].botched_buffs_by_player["Healer"] == []

    def test_buff_only_contributor(self):
        sets = condense_rows([_row(1000, actor="Main Tank", buffs={"Kerachole": ["Lily Sage"]})])
        sage = sets[0].players["Lily Sage"]
        assert sage.was_targeted is False
        assert sage.dead is False
        assert sage.buffs == ["Kerachole"]
        assert sage.available_mitigations == []

    def test_ignored_buffs_excluded(self):
        sets = condense_rows([
            _row(1000, actor="Main Tank", buffs={"Well Fed": ["Main Tank"], "Kerachole": ["Lily Sage"]}),
        ])
        assert sets[0].players["Main Tank"].buffs == []
        assert "Lily Sage" in sets[0].players

    def test_custom_ignore_list(self):
        sets = condense_rows(
            [_row(1000, buffs={"Kerachole": ["Lily Sage"]})],
            ignored_buffs=["kerachole"],
        )
        assert sets[0].players == {}

    def test_damage_numbers(self):
        sets = condense_rows([
            _row(1000, actor="Main Tank", amount=100, unmitigated_amount=150, absorbed=10,
                 mitigation_pct=20, intended_mit_pct=30),
            _row(1100, actor="Main Tank", amount=200, unmitigated_amount=300, absorbed=0,
                 mitigation_pct=30, intended_mit_pct=30),
            _row(1200, actor="Main Tank"),
        ])
        aggregate = sets[0].players["Main Tank"]
        assert aggregate.amount == 300
        assert aggregate.unmitigated_amount == 450
        assert aggregate.absorbed == 10
        assert aggregate.mitigation_pct == 25
        assert aggregate.intended_mit_pct == 30

    def test_half_percentages_round_up(self):
        sets = condense_rows([
            _row(1000, actor="Main Tank", mitigation_pct=26, intended_mit_pct=28),
            _row(1100, actor="Main Tank", mitigation_pct=27, intended_mit_pct=29),
        ])
        aggregate = sets[0].players["Main Tank"]
        assert aggregate.mitigation_pct == 27
        assert aggregate.intended_mit_pct == 29


class TestBotched:
    def test_flag_propagates_to_applier(self):
        sets = condense_rows([
            _row(
                1000, actor="Main Tank",
                buffs={"Reprisal": ["Off Tank"], "Rampart": ["Off Tank"]},
                potentially_botched_buffs=["Reprisal"],
            ),
        ])
        assert sets[0].players["Off Tank"].botched_buffs == ["Reprisal"]
        assert sets[0].botched_buffs_by_player["Off Tank"] == ["Reprisal"]
        assert "Rampart" not in sets[0].botched_buffs_by_player["Off Tank"]

    def test_every_player_has_botched_list(self):
        sets = condense_rows([_row(1000, actor="Main Tank", buffs={"Kerachole": ["Lily Sage"]})])
        assert sets[0].botched_buffs_by_player == {"Main Tank": [], "Lily Sage": []}

    def test_no_shortfall_means_no_flag(self):
        sets = condense_rows([
            _row(1000, actor="Main Tank", buffs={"Reprisal": ["Off Tank"]},
                 mitigation_pct=30, intended_mit_pct=30, potentially_botched_buffs=["Reprisal"]),
        ])
        assert sets[0].botched_buffs_by_player["Off Tank"] == []

    def test_flags_deduplicated_across_rows(self):
        rows = [
            _row(ts, actor="Main Tank", buffs={"Reprisal": ["Off Tank"]},
                 potentially_botched_buffs=["Reprisal"])
            for ts in (1000, 1200)
        ]
        sets = condense_rows(rows)
        assert sets[0].botched_buffs_by_player["Off Tank"] == ["Reprisal"]


class TestFaultTolerance:
    def test_failing_row_skipped(self, monkeypatch, caplog):
        real = condense_module.row_botched_buffs

        def flaky(row, margin_pct=0):
            if row.timestamp == 1200:
                raise RuntimeError("bad row")
            return real(row, margin_pct)

        monkeypatch.setattr(condense_module, "row_botched_buffs", flaky)
        with caplog.at_level(logging.ERROR):
            sets = condense_rows([_row(1000, actor="A"), _row(1200, actor="B"), _row(1400, actor="C")])
        assert "Failed to fold row" in caplog.text
        assert "C" in sets[0].players
        assert "B" not in sets[0].players
        assert [child.timestamp for child in sets[0].children] == [1000, 1400]

    def test_failing_row_does_not_split_set(self, monkeypatch):
        real = condense_module.row_botched_buffs

        def flaky(row, margin_pct=0):
            if row.ability == "Attack":
                raise RuntimeError("bad row")
            return real(row, margin_pct)

        monkeypatch.setattr(condense_module, "row_botched_buffs", flaky)
        sets = condense_rows([_row(0, actor="A"), _row(100, "Attack", actor="B"), _row(200, actor="C")])
        assert len(sets) == 1
        assert sorted(sets[0].players) == ["A", "C"]

    def test_idempotent(self):
        rows = [
            _row(1000, actor="Main Tank", buffs={"Kerachole": ["Lily Sage"]},
                 potentially_botched_buffs=["Kerachole"]),
            _row(4000, "Attack", actor="Off Tank", deaths=["Off Tank"]),
        ]
        assert condense_rows(rows) == condense_rows(rows)


class TestGenerateCondensedPull:
    def test_none_input(self):
        pull = generate_condensed_pull(None)
        assert pull.name == "Unknown Fight"
        assert pull.condensed_sets == []

    def test_fight_table_metadata(self):
        table = FightTable(fight_id=7, encounter_id=1234, name="Omega", rows=[_row(1000)])
        pull = generate_condensed_pull(table)
        assert (pull.fight_id, pull.encounter_id, pull.name) == (7, 1234, "Omega")
        assert len(pull.condensed_sets) == 1

    def test_mapping_input_skips_invalid_rows(self, caplog):
        data = {
            "fightId": 1,
            "name": "Omega",
            "rows": [
                {"timestamp": 1000, "ability": "Magitek Ray", "actor": "Main Tank"},
                {"timestamp": "soon", "ability": "Magitek Ray"},
                {"timestamp": 1500, "ability": "Magitek Ray", "buffs": None},
            ],
        }
        with caplog.at_level(logging.WARNING):
            pull = generate_condensed_pull(data)
        assert "Skipping invalid row 1" in caplog.text
        assert len(pull.condensed_sets[0].children) == 2

    def test_mapping_input_keeps_valid_metadata(self, caplog):
        data = {
            "fightId": 7,
            "name": "Omega",
            "roster": {"Main Tank": "Paladin", "Off Tank": 3},
            "casts": [
                {"timestamp": "oops", "source": "Main Tank", "ability": "Reprisal"},
                {"timestamp": 9000, "source": "Main Tank", "ability": "Rampart"},
            ],
            "rows": [{"timestamp": 10000, "ability": "Magitek Ray", "actor": "Main Tank"}],
        }
        with caplog.at_level(logging.WARNING):
            pull = generate_condensed_pull(data)
        assert (pull.fight_id, pull.name) == (7, "Omega")
        assert "Skipping invalid cast 0" in caplog.text
        main_tank = pull.condensed_sets[0].players["Main Tank"]
        assert "Rampart" not in main_tank.available_mitigations
        assert "Reprisal" in main_tank.available_mitigations
        assert "Off Tank" not in pull.condensed_sets[0].available_mitigations_by_player

    def test_invalid_field_dropped_alone(self, caplog):
        with caplog.at_level(logging.WARNING):
            pull = generate_condensed_pull({
                "fightId": "first",
                "encounterId": 1234,
                "name": "Omega",
                "rows": [{"timestamp": 1000, "ability": "Magitek Ray"}],
            })
        assert "Dropping invalid fight fields ['fightId']" in caplog.text
        assert (pull.fight_id, pull.encounter_id, pull.name) == (None, 1234, "Omega")
        assert len(pull.condensed_sets) == 1

    def test_settings_window_used(self, monkeypatch):
        monkeypatch.setenv("ANALYSIS__GROUPING_WINDOW_MS", "100")
        pull = generate_condensed_pull(FightTable(rows=[_row(0), _row(500)]))
        assert len(pull.condensed_sets) == 2

    def test_explicit_window_wins(self, monkeypatch):
        monkeypatch.setenv("ANALYSIS__GROUPING_WINDOW_MS", "100")
        pull = generate_condensed_pull(FightTable(rows=[_row(0), _row(500)]), grouping_window_ms=2000)
        assert len(pull.condensed_sets) == 1

    def test_raw_streams_enrich_rows(self):
        table = FightTable.model_validate({
            "rows": [{"timestamp": 10000, "ability": "Magitek Ray", "actor": "Main Tank"}],
            "roster": {"Main Tank": "Paladin", "Lily Sage": "Sage"},
            "casts": [{"timestamp": 9000, "source": "Main Tank", "ability": "Rampart"}],
            "buffEvents": [
                {"timestamp": 8000, "type": "applybuff", "ability": "Kerachole",
                 "source": "Lily Sage", "target": "Main Tank"},
            ],
        })
        condensed = generate_condensed_pull(table).condensed_sets[0]
        assert condensed.players["Lily Sage"].buffs == ["Kerachole"]
        assert "Rampart" not in condensed.players["Main Tank"].available_mitigations
        assert "Reprisal" in condensed.players["Main Tank"].available_mitigations
        assert "Kerachole" in condensed.available_mitigations_by_player["Lily Sage"]

    def test_dump_by_alias(self):
        pull = generate_condensed_pull(FightTable(rows=[_row(1000, actor="Main Tank")]))
        dumped = pull.model_dump(by_alias=True)
        condensed = dumped["condensedSets"][0]
        assert condensed["botchedBuffsByPlayer"] == {"Main Tank": []}
        assert condensed["players"]["Main Tank"]["wasTargeted"] is True
