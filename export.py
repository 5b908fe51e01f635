"""
Transaction exports: CSV for spreadsheets and an Excel workbook.

Both produce one row per transaction with the columns
``Date,Type,Category,Description,Amount``; dates are ``yyyy-MM-dd`` and
transactions whose category cannot be resolved show as "Uncategorized".
"""

from io import BytesIO
from typing import Iterable, List

from openpyxl import Workbook

import aggregation

HEADERS = ["Date", "Type", "Category", "Description", "Amount"]


def _quote(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


def _csv_field(value: str) -> str:
    if any(ch in value for ch in ',"\r\n'):
        return _quote(value)
    return value


def format_amount(amount: float) -> str:
    # shortest exact repr, whole numbers without ".0": 100.0 -> "100", 12.345 -> "12.345"
    text = repr(float(amount))
    return text[:-2] if text.endswith(".0") else text


def _rows(transactions: Iterable[dict], categories: Iterable[dict]) -> List[tuple]:
    names = {str(c["_id"]): c["name"] for c in categories}
    rows = []
    for tx in transactions:
        day = aggregation.as_date(tx.get("date"))
        rows.append((
            day,
            tx["type"],
            names.get(str(tx.get("category_id")), aggregation.UNCATEGORIZED_NAME),
            tx.get("description", ""),
            tx["amount"],
        ))
    return rows


def transactions_to_csv(transactions: Iterable[dict], categories: Iterable[dict]) -> str:
    lines = [",".join(HEADERS)]
    for day, type, category, description, amount in _rows(transactions, categories):
        lines.append(",".join([
            day.strftime("%Y-%m-%d") if day else "",
            type,
            _csv_field(category),
            _quote(description),
            format_amount(amount),
        ]))
    return "\n".join(lines)


def transactions_to_xlsx(transactions: Iterable[dict], categories: Iterable[dict]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Transactions"
    ws.append(HEADERS)
    for day, type, category, description, amount in _rows(transactions, categories):
        ws.append([day.strftime("%Y-%m-%d") if day else None, type, category, description, amount])

    buffer = BytesIO()
    wb.save(buffer)
    return buffer.getvalue()
