"""Export functions for monthly download series."""

import csv
import io
import json
from datetime import datetime

from .types import MonthlyTotal


def export_csv(
    package: str, series: list[MonthlyTotal], output: io.StringIO | None = None
) -> str:
    """Export a monthly series to CSV format."""
    if output is None:
        output = io.StringIO()

    writer = csv.writer(output)
    writer.writerow(["package", "month", "total"])

    for point in series:
        writer.writerow([package, point["month"], point["total"]])

    return output.getvalue()


def export_json(package: str, series: list[MonthlyTotal]) -> str:
    """Export a monthly series to JSON format."""
    export_data = {
        "generated": datetime.now().isoformat(),
        "package": package,
        "total": sum(point["total"] for point in series),
        "months": [
            {"month": point["month"], "total": point["total"]} for point in series
        ],
    }
    return json.dumps(export_data, indent=2)


def export_markdown(package: str, series: list[MonthlyTotal]) -> str:
    """Export a monthly series to Markdown table format."""
    lines = [
        f"### {package}",
        "",
        "| Month | Downloads |",
        "|-------|----------:|",
    ]

    for point in series:
        lines.append(f"| {point['month']} | {point['total']:,} |")

    return "\n".join(lines)
