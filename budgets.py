import logging
from datetime import date, datetime
from typing import Iterable, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import Field, model_validator
from pymongo.database import Database

import aggregation
from categories import find_active_category
from database import create_document, day_end, day_start, find_owned, get_db, parse_object_id, to_object_id, utcnow
from notifications import notify_budget_threshold
from schemas import (
    AlertThresholds,
    Budget as BudgetSchema,
    BudgetNotifications,
    BudgetPeriod,
    CamelModel,
    CategoryRef,
    category_ref,
)
from security import current_user_id, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/budgets", tags=["budgets"])


class BudgetCreate(CamelModel):
    category: str = Field(..., description="Expense category id")
    amount: float = Field(..., gt=0)
    period: BudgetPeriod
    start_date: date
    end_date: date
    alert_thresholds: AlertThresholds = Field(default_factory=AlertThresholds)
    notes: Optional[str] = Field(None, max_length=300)

    @model_validator(mode="after")
    def check_window(self):
        if self.end_date < self.start_date:
            raise ValueError("End date must be on or after start date")
        if self.alert_thresholds.warning > self.alert_thresholds.critical:
            raise ValueError("Warning threshold cannot exceed critical threshold")
        return self


class BudgetUpdate(CamelModel):
    amount: Optional[float] = Field(None, gt=0)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    alert_thresholds: Optional[AlertThresholds] = None
    notes: Optional[str] = Field(None, max_length=300)
    is_active: Optional[bool] = None
    notifications_enabled: Optional[bool] = None

    @model_validator(mode="after")
    def check_thresholds(self):
        if self.alert_thresholds and self.alert_thresholds.warning > self.alert_thresholds.critical:
            raise ValueError("Warning threshold cannot exceed critical threshold")
        return self


class BudgetOut(CamelModel):
    id: str
    user_id: str
    category_id: str
    category: Optional[CategoryRef] = None
    amount: float
    period: BudgetPeriod
    start_date: datetime
    end_date: datetime
    spent: float
    remaining: float
    percentage_used: float
    status: str
    alert_thresholds: AlertThresholds = Field(default_factory=AlertThresholds)
    notifications: BudgetNotifications = Field(default_factory=BudgetNotifications)
    is_active: bool = True
    notes: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BudgetList(CamelModel):
    budgets: List[BudgetOut]


class BudgetResponse(CamelModel):
    message: str
    budget: Optional[BudgetOut] = None


def windows_overlap(start_a: date, end_a: date, start_b: date, end_b: date) -> bool:
    """Inclusive interval intersection test."""
    return start_a <= end_b and end_a >= start_b


def find_overlapping_budget(db: Database, user_id: str, category_id: str, period: str,
                            start: datetime, end: datetime, exclude_id=None) -> Optional[dict]:
    query = {"user_id": user_id, "category_id": category_id, "period": period, "is_active": True}
    if exclude_id is not None:
        query["_id"] = {"$ne": exclude_id}

    start_day, end_day = aggregation.as_date(start), aggregation.as_date(end)
    for existing in db["budget"].find(query):
        if windows_overlap(aggregation.as_date(existing["start_date"]), aggregation.as_date(existing["end_date"]),
                           start_day, end_day):
            return existing
    return None


def budget_transactions(db: Database, user_id: str, budgets: List[dict]) -> List[dict]:
    """Expense transactions that can count towards any of the given budgets."""
    if not budgets:
        return []
    return list(db["transaction"].find({
        "user_id": user_id,
        "type": "expense",
        "category_id": {"$in": sorted({b["category_id"] for b in budgets})},
        "date": {
            "$gte": day_start(min(aggregation.as_date(b["start_date"]) for b in budgets)),
            "$lte": day_end(max(aggregation.as_date(b["end_date"]) for b in budgets)),
        },
    }))


def to_budget_out(budget: dict, transactions: Iterable[dict], categories_by_id: dict) -> BudgetOut:
    derived = aggregation.budget_status(budget, transactions)
    fields = {k: v for k, v in budget.items() if k not in ("_id", "spent")}
    return BudgetOut(
        id=str(budget["_id"]),
        category=category_ref(categories_by_id.get(budget["category_id"])),
        spent=derived["spent"],
        remaining=derived["remaining"],
        percentage_used=derived["percentageUsed"],
        status=derived["status"],
        **fields,
    )


def categories_for(db: Database, category_ids: Iterable[str]) -> dict:
    object_ids = [oid for oid in (to_object_id(c) for c in set(category_ids)) if oid is not None]
    if not object_ids:
        return {}
    return {str(c["_id"]): c for c in db["category"].find({"_id": {"$in": object_ids}})}


def budgets_with_status(db: Database, user_id: str, budgets: List[dict]) -> List[BudgetOut]:
    transactions = budget_transactions(db, user_id, budgets)
    categories_by_id = categories_for(db, [b["category_id"] for b in budgets])
    return [to_budget_out(b, transactions, categories_by_id) for b in budgets]


def refresh_budgets(db: Database, user_id: str, category_id: str) -> None:
    """Recompute the stored ``spent`` of active budgets on a category and raise alerts."""
    budgets = list(db["budget"].find({"user_id": user_id, "category_id": category_id, "is_active": True}))
    if not budgets:
        return

    transactions = budget_transactions(db, user_id, budgets)
    category = categories_for(db, [category_id]).get(category_id)
    for budget in budgets:
        status_info = aggregation.budget_status(budget, transactions)
        updates = {"spent": status_info["spent"], "updated_at": utcnow()}

        alert_field = notify_budget_threshold(db, budget, status_info, category["name"] if category else None)
        if alert_field:
            updates[f"notifications.{alert_field}"] = utcnow()

        db["budget"].update_one({"_id": budget["_id"]}, {"$set": updates})


@router.get("", response_model=BudgetList)
def list_budgets(period: Optional[BudgetPeriod] = None, active: Optional[bool] = None,
                 current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    user_id = current_user_id(current_user)
    query = {"user_id": user_id}
    if period:
        query["period"] = period
    if active is not None:
        query["is_active"] = active

    budgets = list(db["budget"].find(query).sort("created_at", -1))
    return BudgetList(budgets=budgets_with_status(db, user_id, budgets))


@router.get("/{budget_id}", response_model=BudgetOut)
def get_budget(budget_id: str, current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    user_id = current_user_id(current_user)
    budget = find_owned(db, "budget", budget_id, user_id, "Budget")
    return budgets_with_status(db, user_id, [budget])[0]


@router.post("", response_model=BudgetResponse, status_code=status.HTTP_201_CREATED)
def create_budget(payload: BudgetCreate,
                  current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    user_id = current_user_id(current_user)

    category = find_active_category(db, user_id, payload.category, "expense")
    if category is None:
        raise HTTPException(status_code=400, detail="Invalid expense category")

    category_id = str(category["_id"])
    start, end = day_start(payload.start_date), day_start(payload.end_date)
    if find_overlapping_budget(db, user_id, category_id, payload.period, start, end):
        raise HTTPException(status_code=400, detail="Budget already exists for this category and period")

    budget = BudgetSchema(
        user_id=user_id,
        category_id=category_id,
        amount=payload.amount,
        period=payload.period,
        start_date=start,
        end_date=end,
        alert_thresholds=payload.alert_thresholds,
        notes=payload.notes or "",
    )
    inserted_id = create_document(db, "budget", budget)
    logger.info("Created budget %s for user %s", inserted_id, user_id)

    doc = budget.model_dump()
    doc["_id"] = inserted_id
    transactions = budget_transactions(db, user_id, [doc])
    return BudgetResponse(
        message="Budget created successfully",
        budget=to_budget_out(doc, transactions, {category_id: category}),
    )


@router.put("/{budget_id}", response_model=BudgetResponse)
def update_budget(budget_id: str, payload: BudgetUpdate,
                  current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    user_id = current_user_id(current_user)
    budget = find_owned(db, "budget", budget_id, user_id, "Budget")

    # category and period are fixed for the life of a budget
    updates = payload.model_dump(exclude_none=True, exclude={"start_date", "end_date", "notifications_enabled"})
    if payload.start_date is not None:
        updates["start_date"] = day_start(payload.start_date)
    if payload.end_date is not None:
        updates["end_date"] = day_start(payload.end_date)
    if payload.notifications_enabled is not None:
        updates["notifications.enabled"] = payload.notifications_enabled

    start = updates.get("start_date", budget["start_date"])
    end = updates.get("end_date", budget["end_date"])
    if aggregation.as_date(end) < aggregation.as_date(start):
        raise HTTPException(status_code=400, detail="End date must be on or after start date")

    window_changed = "start_date" in updates or "end_date" in updates or (
        payload.is_active and not budget.get("is_active", True))
    if window_changed and updates.get("is_active", budget.get("is_active", True)):
        if find_overlapping_budget(db, user_id, budget["category_id"], budget["period"], start, end,
                                   exclude_id=budget["_id"]):
            raise HTTPException(status_code=400, detail="Budget already exists for this category and period")

    if updates:
        updates["updated_at"] = utcnow()
        db["budget"].update_one({"_id": budget["_id"]}, {"$set": updates})
        logger.info("Updated budget %s", budget_id)
        # new amount, window or thresholds may move spent and the alert level
        refresh_budgets(db, user_id, budget["category_id"])

    updated = db["budget"].find_one({"_id": budget["_id"]})
    return BudgetResponse(message="Budget updated successfully",
                          budget=budgets_with_status(db, user_id, [updated])[0])


@router.delete("/{budget_id}", response_model=BudgetResponse)
def delete_budget(budget_id: str, current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    user_id = current_user_id(current_user)
    result = db["budget"].delete_one({"_id": parse_object_id(budget_id, "Budget"), "user_id": user_id})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Budget not found")
    logger.info("Deleted budget %s", budget_id)
    return BudgetResponse(message="Budget deleted successfully")
