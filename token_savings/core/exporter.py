"""
Report rendering.

Renders a composed report as aligned text tables, JSON or sectioned CSV.

Text output abbreviates token counts for reading; JSON and CSV carry raw
integers and percentages rounded to two decimals so they can be consumed
by other tools. Rendering is deterministic: the same report always
produces the same bytes.
"""

import csv
import io
import json
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

from .aggregator import DayStats, Granularity, MonthStats, Summary, WeekStats
from .errors import UnsupportedFormatError
from .report import Report

COLUMNS = ["commands", "input_tokens", "output_tokens", "saved_tokens", "savings_pct"]


class ExportFormat(Enum):
    """Output encodings supported by the exporter."""
    TEXT = "text"
    JSON = "json"
    CSV = "csv"


def parse_format(value: str) -> ExportFormat:
    """Resolve a format selector, failing before any work is done.

    Raises:
        UnsupportedFormatError: If the selector is not recognized
    """
    try:
        return ExportFormat(value.strip().lower())
    except (ValueError, AttributeError):
        raise UnsupportedFormatError(value, [fmt.value for fmt in ExportFormat])


def format_tokens(n: int) -> str:
    """Abbreviate a token count: 1.2K, 3.4M, or the plain number below 1,000."""
    magnitude = abs(n)
    if magnitude >= 1_000_000:
        return f"{n / 1_000_000:.1f}M"
    if magnitude >= 1_000:
        return f"{n / 1_000:.1f}K"
    return str(n)


def round_pct(value: float) -> float:
    return round(value, 2)


@dataclass(frozen=True)
class _TableLayout:
    title: str
    unit: str
    label_header: str
    label_width: int
    rule_width: int
    label: Callable[[object], str]


def _week_label(week: WeekStats) -> str:
    return f"{week.week_start.isoformat()[5:]} → {week.week_end.isoformat()[5:]}"


_LAYOUTS: Dict[Granularity, _TableLayout] = {
    Granularity.DAY: _TableLayout(
        "Daily Breakdown", "days", "Date", 12, 64, lambda d: d.date.isoformat()
    ),
    Granularity.WEEK: _TableLayout(
        "Weekly Breakdown", "weeks", "Week", 22, 72, _week_label
    ),
    Granularity.MONTH: _TableLayout(
        "Monthly Breakdown", "months", "Month", 10, 64, lambda m: m.month
    ),
}


def _series(report: Report, granularity: Granularity) -> Optional[list]:
    return {
        Granularity.DAY: report.daily,
        Granularity.WEEK: report.weekly,
        Granularity.MONTH: report.monthly,
    }[granularity]


def _text_row(label: str, width: int, stats) -> str:
    return (
        f"{label:<{width}} {stats.commands:>7} "
        f"{format_tokens(stats.input_tokens):>10} "
        f"{format_tokens(stats.output_tokens):>10} "
        f"{format_tokens(stats.saved_tokens):>10} "
        f"{stats.savings_pct:>6.1f}%"
    )


def _text_table(layout: _TableLayout, buckets: Sequence, summary: Summary) -> List[str]:
    lines = [
        "",
        f"{layout.title} ({len(buckets)} {layout.unit})",
        "═" * layout.rule_width,
        f"{layout.label_header:<{layout.label_width}} {'Cmds':>7} {'Input':>10} "
        f"{'Output':>10} {'Saved':>10} {'Save%':>7}",
        "─" * layout.rule_width,
    ]
    lines.extend(_text_row(layout.label(b), layout.label_width, b) for b in buckets)
    lines.append("─" * layout.rule_width)
    lines.append(_text_row("TOTAL", layout.label_width, summary))
    lines.append("")
    return lines


def render_summary_text(summary: Summary) -> List[str]:
    """Totals block used when no breakdown was requested."""
    return [
        "Token Savings",
        "═" * 40,
        "",
        f"Total commands:    {summary.commands}",
        f"Input tokens:      {format_tokens(summary.input_tokens)}",
        f"Output tokens:     {format_tokens(summary.output_tokens)}",
        f"Tokens saved:      {format_tokens(summary.saved_tokens)} ({summary.savings_pct:.1f}%)",
        "",
    ]


def render_text(report: Report) -> str:
    """Render one aligned table per requested series.

    Every table ends with a TOTAL row taken from the report summary.
    """
    lines: List[str] = []
    if not report.views:
        lines.extend(render_summary_text(report.summary))
    for granularity in Granularity:
        buckets = _series(report, granularity)
        if buckets is None:
            continue
        lines.extend(_text_table(_LAYOUTS[granularity], buckets, report.summary))
    if report.skipped_records:
        lines.append(f"Note: {report.skipped_records} malformed record(s) skipped.")
    return "\n".join(lines) + "\n"


def _totals_dict(stats) -> Dict[str, object]:
    return {
        "commands": stats.commands,
        "input_tokens": stats.input_tokens,
        "output_tokens": stats.output_tokens,
        "saved_tokens": stats.saved_tokens,
        "savings_pct": round_pct(stats.savings_pct),
    }


def day_to_dict(day: DayStats) -> Dict[str, object]:
    return {"date": day.date.isoformat(), **_totals_dict(day)}


def week_to_dict(week: WeekStats) -> Dict[str, object]:
    return {
        "week_start": week.week_start.isoformat(),
        "week_end": week.week_end.isoformat(),
        **_totals_dict(week),
    }


def month_to_dict(month: MonthStats) -> Dict[str, object]:
    return {"month": month.month, **_totals_dict(month)}


_SECTIONS = {
    Granularity.DAY: ("Daily Data", ["date"], day_to_dict),
    Granularity.WEEK: ("Weekly Data", ["week_start", "week_end"], week_to_dict),
    Granularity.MONTH: ("Monthly Data", ["month"], month_to_dict),
}


def report_to_dict(report: Report) -> Dict[str, object]:
    """Build the JSON document; series keys appear only when requested."""
    data: Dict[str, object] = {"summary": _totals_dict(report.summary)}
    for granularity in Granularity:
        buckets = _series(report, granularity)
        if buckets is not None:
            to_dict = _SECTIONS[granularity][2]
            data[granularity.value] = [to_dict(b) for b in buckets]
    if report.skipped_records:
        data["skipped_records"] = report.skipped_records
    return data


def render_json(report: Report) -> str:
    return json.dumps(report_to_dict(report), indent=2, ensure_ascii=False) + "\n"


def _csv_section(title: str, header: List[str], rows: List[Dict[str, object]]) -> str:
    buffer = io.StringIO()
    buffer.write(f"# {title}\n")
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(header)
    for row in rows:
        writer.writerow([
            f"{row[column]:.2f}" if column == "savings_pct" else row[column]
            for column in header
        ])
    return buffer.getvalue()


def render_csv(report: Report) -> str:
    """Render one commented section per requested series.

    Sections are separated by a blank line. With no series requested the
    summary is written as its own section.
    """
    sections = []
    for granularity in Granularity:
        buckets = _series(report, granularity)
        if buckets is None:
            continue
        title, key_columns, to_dict = _SECTIONS[granularity]
        sections.append(_csv_section(title, key_columns + COLUMNS, [to_dict(b) for b in buckets]))
    if not sections:
        sections.append(_csv_section("Summary", COLUMNS, [_totals_dict(report.summary)]))
    if report.skipped_records:
        sections.append(f"# Skipped records: {report.skipped_records}\n")
    return "\n".join(sections)


_RENDERERS: Dict[ExportFormat, Callable[[Report], str]] = {
    ExportFormat.TEXT: render_text,
    ExportFormat.JSON: render_json,
    ExportFormat.CSV: render_csv,
}


def render(report: Report, fmt: ExportFormat) -> str:
    """Render a report in the selected format."""
    return _RENDERERS[fmt](report)
