"""
Spreadsheet exports of the admin lists.

Semicolon separated, every cell quoted, UTF-8 with a BOM so Excel opens the
accents correctly in a French locale.
"""

import csv
import io
from datetime import date, datetime
from typing import Any, Iterable, List, Mapping, Tuple

from ..schemas.leads import Client, QuoteRequest

BOM = "\ufeff"

Column = Tuple[str, str]

QUOTE_REQUEST_COLUMNS: List[Column] = [
    ("created_at", "Date"),
    ("status", "Statut"),
    ("name", "Nom"),
    ("email", "Email"),
    ("phone", "Téléphone"),
    ("business_type", "Activité"),
    ("services", "Services"),
    ("budget", "Budget"),
]

CLIENT_COLUMNS: List[Column] = [
    ("name", "Nom"),
    ("email", "Email"),
    ("phone", "Téléphone"),
    ("status", "Statut"),
    ("quotes_count", "Devis"),
    ("calls_count", "Appels"),
    ("first_contact", "Premier contact"),
    ("last_contact", "Dernier contact"),
    ("sales_partner_name", "Commercial"),
]


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def to_csv(rows: Iterable[Mapping[str, Any]], columns: List[Column]) -> str:
    output = io.StringIO()
    writer = csv.writer(output, delimiter=";", quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow([label for _, label in columns])
    for row in rows:
        writer.writerow([_cell(row.get(key)) for key, _ in columns])
    return BOM + output.getvalue()


def quote_requests_csv(quotes: List[QuoteRequest]) -> str:
    return to_csv((q.model_dump() for q in quotes), QUOTE_REQUEST_COLUMNS)


def clients_csv(clients: List[Client]) -> str:
    rows = (
        {
            **c.model_dump(exclude={"quotes", "calls"}),
            "quotes_count": len(c.quotes),
            "calls_count": len(c.calls),
        }
        for c in clients
    )
    return to_csv(rows, CLIENT_COLUMNS)


def export_filename(name: str, on: date) -> str:
    """'export-quotes_2025-03-10.csv'"""
    return f"{name}_{on.isoformat()}.csv"
