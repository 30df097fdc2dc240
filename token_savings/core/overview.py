"""
Overview rendering for the default gain view.

Shows lifetime totals, the top commands by savings and, on request, a
savings graph, the most recent commands and a quota estimate.
"""

from datetime import timezone, tzinfo
from enum import Enum
from typing import List, Optional, Sequence

from token_savings.storage.models import InvocationRecord
from .aggregator import CommandStats, DayStats, Summary
from .exporter import format_tokens, render_summary_text

GRAPH_WIDTH = 40
GRAPH_DAYS = 30

# Heuristic: ~44K tokens per 5h window on the Pro plan
ESTIMATED_PRO_MONTHLY = 6_000_000


class QuotaTier(Enum):
    """Subscription tiers used for the quota estimate."""
    PRO = ("pro", 1, "Pro ($20/mo)")
    MAX_5X = ("5x", 5, "Max 5x ($100/mo)")
    MAX_20X = ("20x", 20, "Max 20x ($200/mo)")

    def __init__(self, key: str, multiplier: int, label: str):
        self.key = key
        self.multiplier = multiplier
        self.label = label

    @property
    def monthly_quota(self) -> int:
        return ESTIMATED_PRO_MONTHLY * self.multiplier

    @classmethod
    def from_key(cls, key: str) -> "QuotaTier":
        """Look up a tier by its CLI key; unknown keys fall back to Pro."""
        for tier in cls:
            if tier.key == key.lower():
                return tier
        return cls.PRO


def _shorten(text: str, limit: int, keep: int) -> str:
    return f"{text[:keep]}..." if len(text) > limit else text


def render_by_command(stats: Sequence[CommandStats]) -> List[str]:
    lines = [
        "By Command:",
        "─" * 40,
        f"{'Command':<20} {'Count':>6} {'Saved':>10} {'Save%':>8}",
    ]
    for s in stats:
        lines.append(
            f"{_shorten(s.rtk_cmd, 18, 15):<20} {s.commands:>6} "
            f"{format_tokens(s.saved_tokens):>10} {s.savings_pct:>7.1f}%"
        )
    lines.append("")
    return lines


def render_graph(days: Sequence[DayStats]) -> List[str]:
    """ASCII bar chart of saved tokens for the most recent days."""
    days = list(days)[-GRAPH_DAYS:]
    if not days:
        return []
    max_saved = max(max(d.saved_tokens for d in days), 0)
    lines = [f"Daily Savings (last {GRAPH_DAYS} days):", "─" * 40]
    for day in days:
        if max_saved > 0 and day.saved_tokens > 0:
            bar_len = int(day.saved_tokens / max_saved * GRAPH_WIDTH)
        else:
            bar_len = 0
        bar = "█" * bar_len + " " * (GRAPH_WIDTH - bar_len)
        lines.append(f"{day.date.isoformat()[5:]} │{bar} {format_tokens(day.saved_tokens)}")
    lines.append("")
    return lines


def render_history(recent: Sequence[InvocationRecord], tz: tzinfo = timezone.utc) -> List[str]:
    if not recent:
        return []
    lines = ["Recent Commands:", "─" * 40]
    for record in recent:
        when = record.timestamp.astimezone(tz).strftime("%m-%d %H:%M")
        lines.append(
            f"{when} {_shorten(record.rtk_cmd, 25, 22):<25} "
            f"-{record.savings_pct:.0f}% ({format_tokens(record.saved_tokens)})"
        )
    lines.append("")
    return lines


def render_quota(summary: Summary, tier: QuotaTier) -> List[str]:
    quota_pct = summary.saved_tokens / tier.monthly_quota * 100.0
    return [
        "Monthly Quota Analysis:",
        "─" * 40,
        f"Subscription tier:        {tier.label}",
        f"Estimated monthly quota:  {format_tokens(tier.monthly_quota)}",
        f"Tokens saved (lifetime):  {format_tokens(summary.saved_tokens)}",
        f"Quota preserved:          {quota_pct:.1f}%",
        "",
        "Note: Heuristic estimate based on ~44K tokens/5h (Pro baseline)",
        "      Actual limits use rolling 5-hour windows, not monthly caps.",
    ]


def render_overview(
    summary: Summary,
    by_command: Sequence[CommandStats],
    days: Optional[Sequence[DayStats]] = None,
    recent: Optional[Sequence[InvocationRecord]] = None,
    tier: Optional[QuotaTier] = None,
    tz: tzinfo = timezone.utc
) -> str:
    """Render the default overview.

    Args:
        summary: Lifetime totals
        by_command: Top commands by saved tokens
        days: Daily buckets for the savings graph, or None to skip it
        recent: Most recent records, or None to skip the history
        tier: Quota tier, or None to skip the quota estimate
        tz: Time zone for history timestamps

    Returns:
        Rendered text
    """
    if summary.commands == 0:
        return "No tracking data yet.\nRun some commands to start tracking savings.\n"

    lines = render_summary_text(summary)
    if by_command:
        lines.extend(render_by_command(by_command))
    if days is not None:
        lines.extend(render_graph(days))
    if recent is not None:
        lines.extend(render_history(recent, tz))
    if tier is not None:
        lines.extend(render_quota(summary, tier))
    return "\n".join(lines) + "\n"


def render_compact(summary: Summary) -> str:
    """One-line summary for status bars."""
    if summary.commands == 0:
        return "0 cmds tracked\n"
    return (
        f"{summary.commands}cmds {format_tokens(summary.input_tokens)}in "
        f"{format_tokens(summary.output_tokens)}out "
        f"{format_tokens(summary.saved_tokens)}saved ({summary.savings_pct:.0f}%)\n"
    )
