import logging
from datetime import date, datetime, timezone
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, Response
from pymongo.database import Database

import aggregation
import export
from budgets import BudgetList, budgets_with_status
from database import date_range_filter, get_db
from schemas import TransactionType
from security import current_user_id, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reports", tags=["reports"])


def _window_filter(user_id: str, start_date: Optional[date], end_date: Optional[date]) -> dict:
    query = {"user_id": user_id}
    date_clause = date_range_filter(start_date, end_date)
    if date_clause:
        query["date"] = date_clause
    return query


@router.get("/summary")
def get_summary(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    query = _window_filter(current_user_id(current_user), start_date, end_date)
    return aggregation.summary(db["transaction"].find(query))


@router.get("/category-breakdown")
def get_category_breakdown(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    type: TransactionType = "expense",
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    user_id = current_user_id(current_user)
    query = _window_filter(user_id, start_date, end_date)
    query["type"] = type

    transactions = list(db["transaction"].find(query))
    # inactive categories included so historical rows keep their label
    categories = db["category"].find({"user_id": user_id})
    return aggregation.category_breakdown(transactions, categories, type)


@router.get("/monthly-trends")
def get_monthly_trends(
    year: Optional[int] = Query(None, ge=1900, le=9999),
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    year = year or datetime.now(timezone.utc).year
    query = _window_filter(current_user_id(current_user), date(year, 1, 1), date(year, 12, 31))
    return aggregation.monthly_trend(db["transaction"].find(query), year)


@router.get("/budgets", response_model=BudgetList)
def get_budget_report(current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    user_id = current_user_id(current_user)
    budgets = list(db["budget"].find({"user_id": user_id, "is_active": True}).sort("start_date", 1))
    return BudgetList(budgets=budgets_with_status(db, user_id, budgets))


@router.get("/export")
def export_transactions(
    format: Literal["csv", "xlsx"] = "csv",
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    type: Optional[TransactionType] = None,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    user_id = current_user_id(current_user)
    query = _window_filter(user_id, start_date, end_date)
    if type:
        query["type"] = type

    transactions = list(db["transaction"].find(query).sort("date", 1))
    categories = list(db["category"].find({"user_id": user_id}))
    label = "-".join(d.isoformat() for d in (start_date, end_date) if d) or "all"
    logger.info("Exporting %d transactions as %s for user %s", len(transactions), format, user_id)

    if format == "xlsx":
        return Response(
            content=export.transactions_to_xlsx(transactions, categories),
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers={"Content-Disposition": f'attachment; filename="financial-report-{label}.xlsx"'},
        )
    return Response(
        content=export.transactions_to_csv(transactions, categories),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="financial-report-{label}.csv"'},
    )
