"""Tests for UI helper functions (building a tray, rolling, formatting)."""

from __future__ import annotations

from unittest.mock import patch

from dicetray.config import TrayConfig
from dicetray.renderers import MarkdownRenderer
from ui.app import new_bag, read_config, record_markdown, roll_formula


class TestRollFormula:
    def test_roll_settles(self) -> None:
        bag = new_bag(seed=1)
        assert roll_formula(bag, "2d20kh1 + 5") is None
        assert bag.history[0].resolved

    def test_result_from_faces(self) -> None:
        bag = new_bag(seed=1)
        with patch("dicetray.physics.random_face", side_effect=[14, 9]):
            roll_formula(bag, "2d20kh1 + 5")
        assert bag.history[0].result == 19
        assert bag.history[0].breakdown == "(14 + <del>9</del>) + 5"

    def test_invalid_formula_reports_error(self) -> None:
        bag = new_bag(seed=1)
        error = roll_formula(bag, "1d6 +")
        assert error is not None
        assert "1d6 +" in error
        assert bag.history == []

    def test_too_many_dice_reports_error(self) -> None:
        bag = new_bag(seed=1, config=TrayConfig(max_dice=4))
        assert roll_formula(bag, "5d6") is not None

    def test_blank_formula_ignored(self) -> None:
        bag = new_bag(seed=1)
        assert roll_formula(bag, "   ") is None
        assert bag.history == []


class TestRecordMarkdown:
    def test_resolved_entry(self) -> None:
        bag = new_bag(seed=2)
        roll_formula(bag, "1d6")
        record = bag.history[0]
        text = record_markdown(record, True, MarkdownRenderer())
        assert text.startswith(f"**1d6** = **{record.result}**")

    def test_canceled_entry(self) -> None:
        bag = new_bag(seed=2)
        record = bag.roll("1d6")
        bag.cancel_roll(record.id)
        assert record_markdown(record, False, MarkdownRenderer()).endswith("Canceled")


class TestReadConfig:
    def test_missing_file_uses_defaults(self, tmp_path) -> None:
        assert read_config(tmp_path / "tray.toml") == (TrayConfig(), None)

    def test_valid_file(self, tmp_path) -> None:
        path = tmp_path / "tray.toml"
        path.write_text("[tray]\nmax_dice = 32\n")
        config, error = read_config(path)
        assert config.max_dice == 32
        assert error is None

    def test_invalid_file_falls_back_with_message(self, tmp_path) -> None:
        path = tmp_path / "tray.toml"
        path.write_text("[tray]\nmax_dice = 0\n")
        config, error = read_config(path)
        assert config == TrayConfig()
        assert "max_dice" in error
