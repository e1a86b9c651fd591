"""Renderers that convert roll records into text output.

Breakdowns mark discarded terms with ``<del>...</del>``. The TextRenderer
keeps those tags (they display as struck-through text in HTML);
the MarkdownRenderer turns them into ``~~...~~`` for Markdown output such
as the Streamlit app.
"""

from __future__ import annotations

import re

from dicetray.records import RollRecord

# Innermost <del> pair: one that contains no other opening tag.
DEL_RE = re.compile(r"<del>((?:(?!<del>).)*?)</del>")


class TextRenderer:
    """Renders roll history to lines of text, newest roll first."""

    def format_breakdown(self, breakdown: str) -> str:
        return breakdown

    def status(self, record: RollRecord, active: bool) -> str:
        """What to show in place of a breakdown.

        A pending roll still on the tray is rolling. A pending roll that is
        no longer on the tray was canceled and will never resolve.
        """
        if record.result is None:
            return "Rolling..." if active else "Canceled"
        return self.format_breakdown(record.breakdown or "")

    def render_result(self, record: RollRecord) -> str:
        return "..." if record.result is None else f"{record.result}"

    def render_record(self, record: RollRecord, active: bool = False) -> list[str]:
        return [
            f"#{record.id} {record.formula} = {self.render_result(record)}",
            f"    {self.status(record, active)}",
        ]

    def render_history(self, history: list[RollRecord], active_ids: list[int] | None = None) -> list[str]:
        active = set(active_ids or [])
        lines: list[str] = []
        for record in history:
            lines.extend(self.render_record(record, record.id in active))
        return lines

    def render_latest(self, history: list[RollRecord]) -> str:
        """The newest roll's result, or an empty string while it rolls."""
        if history and history[0].result is not None:
            return f"{history[0].result}"
        return ""


class MarkdownRenderer(TextRenderer):
    """Renders struck-through terms with Markdown ``~~`` markers."""

    def format_breakdown(self, breakdown: str) -> str:
        prev = None
        while prev != breakdown:
            prev, breakdown = breakdown, DEL_RE.sub(r"~~\1~~", breakdown)
        return breakdown
