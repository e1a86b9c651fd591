"""Tests for text and Markdown rendering of roll history."""

from dicetray.records import RollGroup, RollRecord
from dicetray.renderers import MarkdownRenderer, TextRenderer


def rec(roll_id: int, formula: str, result: float | None = None, breakdown: str | None = None) -> RollRecord:
    return RollRecord(
        id=roll_id,
        formula=formula,
        template="__G0__",
        groups=[RollGroup("d20", 2, "kh", 1)],
        result=result,
        breakdown=breakdown,
    )


class TestTextRenderer:
    def test_resolved_record(self) -> None:
        lines = TextRenderer().render_record(rec(3, "2d20kh1", 14, "(14 + <del>9</del>)"))
        assert lines == ["#3 2d20kh1 = 14", "    (14 + <del>9</del>)"]

    def test_rolling(self) -> None:
        lines = TextRenderer().render_record(rec(0, "2d20kh1"), active=True)
        assert lines == ["#0 2d20kh1 = ...", "    Rolling..."]

    def test_canceled(self) -> None:
        assert TextRenderer().status(rec(0, "2d20kh1"), active=False) == "Canceled"

    def test_history_marks_only_active_rolls(self) -> None:
        history = [rec(1, "1d6"), rec(0, "1d6")]
        lines = TextRenderer().render_history(history, [1])
        assert lines[1] == "    Rolling..."
        assert lines[3] == "    Canceled"

    def test_latest(self) -> None:
        renderer = TextRenderer()
        assert renderer.render_latest([]) == ""
        assert renderer.render_latest([rec(1, "1d6"), rec(0, "1d6", 4, "4")]) == ""
        assert renderer.render_latest([rec(0, "1d6", 4.5, "4.5")]) == "4.5"


class TestMarkdownRenderer:
    def test_strikethrough(self) -> None:
        renderer = MarkdownRenderer()
        assert renderer.format_breakdown("(14 + <del>9</del>)") == "(14 + ~~9~~)"

    def test_nested_strikethrough(self) -> None:
        renderer = MarkdownRenderer()
        text = "max(3, <del>(2 + <del>1</del>)</del>)"
        assert renderer.format_breakdown(text) == "max(3, ~~(2 + ~~1~~)~~)"

    def test_status_uses_markdown(self) -> None:
        status = MarkdownRenderer().status(rec(0, "2d20kh1", 14, "(14 + <del>9</del>)"), active=True)
        assert status == "(14 + ~~9~~)"
