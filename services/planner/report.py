"""Plain-text report of an analysis, as offered for download."""

from datetime import datetime
from typing import Optional

from models.analysis import Analysis


def _heading(title: str, underline: str = "-") -> str:
    return f"{title}\n{underline * len(title)}\n"


def build_report_text(analysis: Analysis, generated_at: Optional[datetime] = None) -> str:
    """Render the issues, recommendations and principles as a text report."""
    when = (generated_at or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
    parts = [
        _heading("URBAN PLANNING ANALYSIS REPORT", "="),
        f"\nDate: {when}\n\n",
        _heading("CURRENT ASSESSMENT"),
        f"{analysis.overall_description}\n\n",
        _heading("IDENTIFIED ISSUES"),
    ]
    for i, issue in enumerate(analysis.identified_issues, start=1):
        parts.append(f"{i}. {issue.category.value}: {issue.details}\n")
    parts.append("\n")

    parts.append(_heading("RECOMMENDATIONS"))
    for i, rec in enumerate(analysis.recommendations, start=1):
        parts.append(f"{i}. {rec.category.value}: {rec.recommendation}\n")
        parts.append(f"   Benefits: {rec.expected_benefits}\n\n")

    parts.append(_heading("URBAN PLANNING PRINCIPLES"))
    for i, principle in enumerate(analysis.principles, start=1):
        parts.append(f"{i}. {principle}\n")

    if analysis.raw_text:
        parts.append("\n")
        parts.append(_heading("FULL ANALYSIS TEXT"))
        parts.append(f"{analysis.raw_text}\n")
    return "".join(parts)
