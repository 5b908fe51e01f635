import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pymongo.database import Database

import aggregation
from database import create_document, get_db, pagination, parse_object_id, utcnow
from schemas import CamelModel, Notification as NotificationSchema
from security import current_user_id, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])

# budget status -> field of budget.notifications recording that the level fired
ALERT_FIELDS = {
    aggregation.STATUS_WARNING: "last_warning_alert",
    aggregation.STATUS_CRITICAL: "last_critical_alert",
    aggregation.STATUS_EXCEEDED: "last_exceeded_alert",
}

ALERT_TITLES = {
    aggregation.STATUS_WARNING: "Budget warning",
    aggregation.STATUS_CRITICAL: "Budget almost spent",
    aggregation.STATUS_EXCEEDED: "Budget exceeded",
}


class NotificationOut(CamelModel):
    id: str
    user_id: str
    type: str
    title: str
    message: str
    data: dict = {}
    is_read: bool = False
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class NotificationPage(CamelModel):
    notifications: List[NotificationOut]
    pagination: dict


class NotificationResponse(CamelModel):
    message: str
    notification: Optional[NotificationOut] = None


def to_notification_out(doc: dict) -> NotificationOut:
    return NotificationOut(id=str(doc["_id"]), **{k: v for k, v in doc.items() if k != "_id"})


def notify_budget_threshold(db: Database, budget: dict, status_info: dict,
                            category_name: Optional[str] = None) -> Optional[str]:
    """Create a budget alert the first time a budget reaches a level.

    Returns the ``budget.notifications`` field to stamp, or None when no alert
    was raised (good status, alerts disabled, or level already reported).
    """
    field = ALERT_FIELDS.get(status_info["status"])
    settings = budget.get("notifications") or {}
    if field is None or not settings.get("enabled", True) or settings.get(field):
        return None

    label = category_name or "this category"
    percentage = status_info["percentageUsed"]
    create_document(db, "notification", NotificationSchema(
        user_id=budget["user_id"],
        type=f"budget_{status_info['status']}",
        title=ALERT_TITLES[status_info["status"]],
        message=f"You have used {percentage:.0f}% of your {budget.get('period', 'monthly')} budget for {label}.",
        data={
            "budgetId": str(budget["_id"]),
            "categoryId": budget["category_id"],
            "percentageUsed": percentage,
        },
    ))
    logger.info("Budget %s reached %s (%.1f%%)", budget["_id"], status_info["status"], percentage)
    return field


@router.get("", response_model=NotificationPage)
def list_notifications(page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100),
                       unread: Optional[bool] = None,
                       current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    query = {"user_id": current_user_id(current_user)}
    if unread:
        query["is_read"] = False

    skip = (page - 1) * limit
    docs = list(db["notification"].find(query).sort("created_at", -1).skip(skip).limit(limit))
    total = db["notification"].count_documents(query)

    return NotificationPage(
        notifications=[to_notification_out(d) for d in docs],
        pagination=pagination(page, limit, total, len(docs)),
    )


@router.put("/read-all", response_model=NotificationResponse)
def mark_all_read(current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    result = db["notification"].update_many(
        {"user_id": current_user_id(current_user), "is_read": False},
        {"$set": {"is_read": True, "read_at": utcnow()}},
    )
    logger.info("Marked %d notifications read", result.modified_count)
    return NotificationResponse(message="All notifications marked as read")


@router.put("/{notification_id}/read", response_model=NotificationResponse)
def mark_read(notification_id: str,
              current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    query = {"_id": parse_object_id(notification_id, "Notification"), "user_id": current_user_id(current_user)}
    now = utcnow()
    result = db["notification"].update_one(query, {"$set": {"is_read": True, "read_at": now}})
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Notification not found")

    doc = db["notification"].find_one(query)
    return NotificationResponse(message="Notification marked as read", notification=to_notification_out(doc))
