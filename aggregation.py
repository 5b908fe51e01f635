"""
Financial aggregation over already-fetched documents.

All functions here are pure: they take transaction, category and budget
documents exactly as they come out of MongoDB (snake_case dicts) and return
JSON-ready dicts in the shapes the report endpoints answer with. Nothing here
touches the database, and nothing raises for empty or sparse input; ownership,
type matching and positive amounts are checked before documents get here.

Categories are resolved by id regardless of their ``is_active`` flag, so a
deactivated category keeps labelling its historical transactions.
"""

from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

MONTH_NAMES = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
               "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

UNCATEGORIZED_NAME = "Uncategorized"
UNCATEGORIZED_COLOR = "#9ca3af"

STATUS_GOOD = "good"
STATUS_WARNING = "warning"
STATUS_CRITICAL = "critical"
STATUS_EXCEEDED = "exceeded"

DEFAULT_WARNING_THRESHOLD = 80
DEFAULT_CRITICAL_THRESHOLD = 95


def as_date(value) -> Optional[date]:
    """Normalize a stored date (datetime, date or ISO string) to a calendar day."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value).date()
        except ValueError:
            return None
    return None


def _totals(amounts: List[float]) -> Dict[str, float]:
    total = sum(amounts)
    count = len(amounts)
    return {
        "total": total,
        "count": count,
        "avgAmount": total / count if count else 0,
    }


def summary(transactions: Iterable[dict]) -> dict:
    """Income/expense totals, counts and averages plus the net balance.

    Returns ``{income: {total, count, avgAmount}, expense: {...}, balance,
    totalTransactions}``; an empty input gives all zeros.
    """
    amounts: Dict[str, List[float]] = {"income": [], "expense": []}
    for tx in transactions:
        if tx.get("type") in amounts:
            amounts[tx["type"]].append(tx["amount"])

    result = {
        "income": _totals(amounts["income"]),
        "expense": _totals(amounts["expense"]),
    }
    result["balance"] = result["income"]["total"] - result["expense"]["total"]
    result["totalTransactions"] = result["income"]["count"] + result["expense"]["count"]
    return result


def category_breakdown(transactions: Iterable[dict], categories: Iterable[dict],
                       type: str = "expense") -> List[dict]:
    """Per-category totals for one transaction type, largest total first.

    Each row is ``{_id, name, color, total, count, avgAmount}``. Transactions
    whose category cannot be resolved are grouped under one "Uncategorized"
    row with a null ``_id``.
    """
    by_id = {str(c["_id"]): c for c in categories}

    groups: Dict[Optional[str], List[float]] = {}
    for tx in transactions:
        if tx.get("type") != type:
            continue
        category_id = tx.get("category_id")
        key = str(category_id) if category_id is not None and str(category_id) in by_id else None
        groups.setdefault(key, []).append(tx["amount"])

    rows = []
    for key, amounts in groups.items():
        category = by_id.get(key) if key is not None else None
        row = {
            "_id": key,
            "name": category["name"] if category else UNCATEGORIZED_NAME,
            "color": category.get("color", UNCATEGORIZED_COLOR) if category else UNCATEGORIZED_COLOR,
        }
        row.update(_totals(amounts))
        rows.append(row)

    rows.sort(key=lambda row: row["total"], reverse=True)
    return rows


def monthly_trend(transactions: Iterable[dict], year: int) -> List[dict]:
    """Twelve month buckets, January first, zero-filled where nothing happened."""
    buckets = [
        {"month": name, "income": 0, "expense": 0, "balance": 0, "incomeCount": 0, "expenseCount": 0}
        for name in MONTH_NAMES
    ]

    for tx in transactions:
        day = as_date(tx.get("date"))
        if day is None or day.year != year:
            continue
        bucket = buckets[day.month - 1]
        if tx.get("type") == "income":
            bucket["income"] += tx["amount"]
            bucket["incomeCount"] += 1
        elif tx.get("type") == "expense":
            bucket["expense"] += tx["amount"]
            bucket["expenseCount"] += 1

    for bucket in buckets:
        bucket["balance"] = bucket["income"] - bucket["expense"]
    return buckets


def classify_budget(percentage_used: float, warning: float, critical: float) -> str:
    # highest level wins: 100% is exceeded even when critical is also 100
    if percentage_used >= 100:
        return STATUS_EXCEEDED
    if percentage_used >= critical:
        return STATUS_CRITICAL
    if percentage_used >= warning:
        return STATUS_WARNING
    return STATUS_GOOD


def budget_spent(budget: dict, transactions: Iterable[dict]) -> float:
    """Sum of expenses in the budget's category inside [start_date, end_date]."""
    start = as_date(budget.get("start_date"))
    end = as_date(budget.get("end_date"))
    category_id = str(budget.get("category_id"))

    spent = 0
    for tx in transactions:
        if tx.get("type") != "expense" or str(tx.get("category_id")) != category_id:
            continue
        day = as_date(tx.get("date"))
        if day is None or start is None or end is None:
            continue
        if start <= day <= end:
            spent += tx["amount"]
    return spent


def budget_status(budget: dict, transactions: Iterable[dict]) -> dict:
    """Derived budget figures: ``{spent, remaining, percentageUsed, status}``.

    A zero amount yields 0% and "good" whatever the thresholds, and ``remaining``
    bottoms out at zero when the budget is overspent.
    """
    amount = budget.get("amount") or 0
    spent = budget_spent(budget, transactions)
    if amount > 0:
        percentage_used = spent / amount * 100
        thresholds = budget.get("alert_thresholds") or {}
        status = classify_budget(
            percentage_used,
            thresholds.get("warning", DEFAULT_WARNING_THRESHOLD),
            thresholds.get("critical", DEFAULT_CRITICAL_THRESHOLD),
        )
    else:
        # no amount, no usage signal
        percentage_used, status = 0, STATUS_GOOD

    return {
        "spent": spent,
        "remaining": max(0, amount - spent),
        "percentageUsed": percentage_used,
        "status": status,
    }


def category_stats(transactions: Iterable[dict]) -> dict:
    amounts = [tx["amount"] for tx in transactions]
    if not amounts:
        return {"totalAmount": 0, "transactionCount": 0, "avgAmount": 0, "minAmount": 0, "maxAmount": 0}
    total = sum(amounts)
    return {
        "totalAmount": total,
        "transactionCount": len(amounts),
        "avgAmount": total / len(amounts),
        "minAmount": min(amounts),
        "maxAmount": max(amounts),
    }
