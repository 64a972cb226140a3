"""Per-batch change statistics and their summary report.

When ``GITHUB_STEP_SUMMARY`` is set the report is appended there as Markdown,
otherwise a rich table is printed to the console.
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

from rich.console import Console
from rich.table import Table

logger = logging.getLogger(__name__)


class ChangeKind(str, Enum):
    """Reporting bucket for one processed record."""

    CREATED = "created"
    UPDATED = "updated"
    MODIFIED = "modified"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class ChangeDetail:
    mal_id: int
    title: str
    reason: str


@dataclass
class ProcessingStats:
    """Counters for one media batch.

    Attributes:
        media_type: "tv" or "movies".
        total_before: Records in the existing output before the run.
        total_after: Records persisted after the run.
        details: Change details keyed by bucket.
    """

    media_type: str
    total_before: int = 0
    total_after: int = 0
    details: dict[ChangeKind, list[ChangeDetail]] = field(
        default_factory=lambda: {kind: [] for kind in ChangeKind}
    )

    def record(self, kind: ChangeKind, mal_id: int, title: str, reason: str) -> None:
        self.details[kind].append(ChangeDetail(mal_id=mal_id, title=title, reason=reason))

    def count(self, kind: ChangeKind) -> int:
        return len(self.details[kind])

    @property
    def created(self) -> int:
        return self.count(ChangeKind.CREATED)

    @property
    def updated(self) -> int:
        return self.count(ChangeKind.UPDATED)

    @property
    def modified(self) -> int:
        return self.count(ChangeKind.MODIFIED)

    @property
    def not_found(self) -> int:
        return self.count(ChangeKind.NOT_FOUND)

    @property
    def diff(self) -> int:
        return self.total_after - self.total_before


_SECTIONS = (
    (ChangeKind.CREATED, "✨ Created"),
    (ChangeKind.UPDATED, "🔄 Updated"),
    (ChangeKind.MODIFIED, "🔧 Modified via Override"),
    (ChangeKind.NOT_FOUND, "❌ Not Found"),
)

_METRICS = (
    (ChangeKind.CREATED, "Created"),
    (ChangeKind.UPDATED, "Updated"),
    (ChangeKind.MODIFIED, "Modified (Overridden)"),
    (ChangeKind.NOT_FOUND, "Not Found"),
)


def _title(media_type: str) -> str:
    return media_type[:1].upper() + media_type[1:]


def render_markdown(stats: ProcessingStats) -> str:
    """Render the batch summary as GitHub-flavoured Markdown."""
    lines = [
        f"## {_title(stats.media_type)} - Summary",
        "",
        "| Metric | Before | After | Diff |",
        "|--------|--------|-------|------|",
        f"| Total Entries | {stats.total_before} | {stats.total_after} | {stats.diff:+d} |",
    ]
    for kind, label in _METRICS:
        count = stats.count(kind)
        lines.append(f"| {label} | - | {count} | +{count} |")

    for kind, heading in _SECTIONS:
        details = stats.details[kind]
        if not details:
            continue
        lines += [
            "",
            f"### {heading} ({len(details)})",
            "",
            "| Title | MAL ID | Reason |",
            "|-------|--------|--------|",
        ]
        lines += [f"| {d.title} | {d.mal_id} | {d.reason} |" for d in details]

    return "\n" + "\n".join(lines) + "\n"


def render_table(stats: ProcessingStats) -> Table:
    table = Table(title=f"{_title(stats.media_type)} - Summary")
    table.add_column("Metric")
    table.add_column("Before", justify="right")
    table.add_column("After", justify="right")
    table.add_column("Diff", justify="right")
    table.add_row(
        "Total Entries", str(stats.total_before), str(stats.total_after), f"{stats.diff:+d}"
    )
    for kind, label in _METRICS:
        count = stats.count(kind)
        table.add_row(label, "-", str(count), f"+{count}")
    return table


def report(stats: ProcessingStats, console: Console | None = None) -> None:
    """Publish the batch summary to the CI step summary or the console."""
    summary_file = os.getenv("GITHUB_STEP_SUMMARY")
    if summary_file:
        try:
            with open(summary_file, "a", encoding="utf-8") as f:
                f.write(render_markdown(stats))
        except OSError as e:
            logger.warning(f"Could not write to GITHUB_STEP_SUMMARY: {e}")
        return

    console = console or Console()
    console.print(render_table(stats))
    for kind, heading in _SECTIONS:
        for detail in stats.details[kind]:
            console.print(
                f"{heading}: {detail.title} (MAL ID {detail.mal_id}) - {detail.reason}",
                markup=False,
            )
