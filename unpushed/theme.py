"""Shared visual constants and helpers for unpushed."""

from __future__ import annotations

from rich.style import Style
from rich.text import Text

from unpushed.git import DirtyReason, StatusVerdict, VerdictKind

# ── Color Palette (GitHub Dark + Neon Accents) ──────────────────────────

SURFACE = "#161b22"
MUTED = "#8b949e"

CYAN = "#58a6ff"
GREEN = "#39d353"
PURPLE = "#bc8cff"
YELLOW = "#e3b341"
RED = "#f85149"
ORANGE = "#f0883e"

STATUS_COLORS = {
    VerdictKind.CLEAN: GREEN,
    VerdictKind.DIRTY: YELLOW,
    VerdictKind.ERROR: RED,
}

STATUS_ICONS = {
    VerdictKind.CLEAN: "✔",
    VerdictKind.DIRTY: "✗",
    VerdictKind.ERROR: "!",
}

REASON_LABELS = {
    DirtyReason.UNCOMMITTED_CHANGES: "uncommitted",
    DirtyReason.UNTRACKED_FILES: "untracked",
    DirtyReason.UNPUSHED_COMMITS: "unpushed",
    DirtyReason.STASH: "stash",
}

REASON_COLORS = {
    DirtyReason.UNCOMMITTED_CHANGES: ORANGE,
    DirtyReason.UNTRACKED_FILES: PURPLE,
    DirtyReason.UNPUSHED_COMMITS: CYAN,
    DirtyReason.STASH: YELLOW,
}

# ── ASCII Banner ────────────────────────────────────────────────────────

BANNER = r"""
                              _              _
  _   _ _ __  _ __  _   _ ___| |__   ___  __| |
 | | | | '_ \| '_ \| | | / __| '_ \ / _ \/ _` |
 | |_| | | | | |_) | |_| \__ \ | | |  __/ (_| |
  \__,_|_| |_| .__/ \__,_|___/_| |_|\___|\__,_|
             |_|"""

TAGLINE = "forgotten work, found"


def verdict_text(verdict: StatusVerdict) -> Text:
    """Status cell: icon and kind, coloured by kind."""
    color = STATUS_COLORS[verdict.kind]
    text = Text(f"{STATUS_ICONS[verdict.kind]} {verdict.kind.value}", style=Style(color=color, bold=True))
    if verdict.missing_head:
        text.append(" (no HEAD)", style=Style(color=MUTED, italic=True))
    return text


def reasons_text(verdict: StatusVerdict) -> Text:
    """Reasons cell: coloured labels, or the error cause."""
    if verdict.is_error:
        return Text(verdict.cause, style=Style(color=RED))
    text = Text()
    for i, reason in enumerate(verdict.sorted_reasons()):
        if i:
            text.append(" ")
        text.append(REASON_LABELS[reason], style=Style(color=REASON_COLORS[reason]))
    return text


def render_banner() -> Text:
    """Render the ASCII banner as styled Rich Text."""
    text = Text(justify="center")
    for line in BANNER.strip("\n").split("\n"):
        text.append(line + "\n", style=Style(color=GREEN, bold=True))
    text.append(f"  {TAGLINE}\n", style=Style(color=MUTED, italic=True))
    return text
