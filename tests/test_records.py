"""Tests for roll records, physical dice bookkeeping and id sequences."""

from dicetray.records import DieResult, RollGroup, RollIdSequence, RollRecord


class TestRollGroup:
    def test_physical_count(self) -> None:
        assert RollGroup("d6", 4).physical_count == 4
        assert RollGroup("d100", 2).physical_count == 4

    def test_dict_round_trip(self) -> None:
        group = RollGroup("d20", 2, "kh", 1)
        assert RollGroup.from_dict(group.to_dict()) == group


class TestRollRecord:
    def test_pending_defaults(self) -> None:
        rec = RollRecord(id=0, formula="1d6", template="__G0__", groups=[RollGroup("d6", 1)])
        assert rec.result is None
        assert not rec.resolved
        assert rec.group_results == []

    def test_expected_dice(self) -> None:
        rec = RollRecord(
            id=0,
            formula="1d100 + 2d6",
            template="__G0__ + __G1__",
            groups=[RollGroup("d100", 1), RollGroup("d6", 2)],
        )
        assert rec.expected_dice == 4

    def test_dict_round_trip(self) -> None:
        rec = RollRecord(
            id=5,
            formula="2d20kh1",
            template="__G0__",
            groups=[RollGroup("d20", 2, "kh", 1)],
            group_results=[[DieResult(14, True), DieResult(9, False)]],
            result=14,
            breakdown="(14 + <del>9</del>)",
        )
        assert RollRecord.from_dict(rec.to_dict()) == rec

    def test_from_dict_pending(self) -> None:
        data = {"id": 1, "formula": "1d4", "template": "__G0__", "groups": [{"type": "d4", "count": 1}]}
        rec = RollRecord.from_dict(data)
        assert rec.result is None
        assert rec.groups == [RollGroup("d4", 1)]


class TestRollIdSequence:
    def test_counts_up(self) -> None:
        ids = RollIdSequence()
        assert [ids(), ids(), ids()] == [0, 1, 2]
        assert ids.next_id == 3

    def test_start(self) -> None:
        assert RollIdSequence(10)() == 10
