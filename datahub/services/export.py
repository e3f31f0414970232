"""CSV export of search results."""

import csv
import io
from datetime import UTC, datetime

from datahub.services.query_engine import SearchHit


def sanitize_csv_value(value: str | None) -> str:
    """
    Sanitize a value to prevent CSV formula injection.

    Spreadsheet applications interpret cells starting with =, +, -, @, \\t
    or \\r as formulas. Prefixing with a single quote prevents that.
    """
    if not value:
        return ""
    if value[0] in ("=", "+", "-", "@", "\t", "\r"):
        return "'" + value
    return value


def generate_export_filename(prefix: str = "search-results") -> str:
    timestamp = datetime.now(UTC).strftime("%Y%m%d%H%M%S")
    return f"{prefix}-{timestamp}.csv"


def export_search_results_to_csv(results: list[SearchHit]) -> str:
    """Render hits as CSV with Type, Score, ID and Snippet columns."""
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(["Type", "Score", "ID", "Snippet"])
    for hit in results:
        snippet = (hit.snippet or "").replace("\n", " ")
        writer.writerow(
            [
                hit.category.value,
                round(hit.score, 2),
                sanitize_csv_value(hit.id),
                sanitize_csv_value(snippet),
            ]
        )
    return output.getvalue()
