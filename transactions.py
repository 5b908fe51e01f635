import logging
import re
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import Field, field_validator
from pymongo.database import Database

import aggregation
from budgets import categories_for, refresh_budgets
from categories import find_active_category
from database import (
    as_naive_utc,
    create_document,
    date_range_filter,
    find_owned,
    get_db,
    pagination,
    parse_object_id,
    utcnow,
)
from schemas import (
    CamelModel,
    CategoryRef,
    PaymentMethod,
    RecurringDetails,
    Transaction as TransactionSchema,
    TransactionType,
    category_ref,
)
from security import current_user_id, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/transactions", tags=["transactions"])

INVALID_CATEGORY_MESSAGE = "Invalid category for this transaction type"


class TransactionCreate(CamelModel):
    type: TransactionType
    amount: float = Field(..., gt=0)
    description: str = Field(..., min_length=1, max_length=200)
    category: str = Field(..., description="Category id")
    date: Optional[datetime] = None
    tags: List[str] = Field(default_factory=list)
    payment_method: PaymentMethod = "other"
    is_recurring: bool = False
    recurring_details: Optional[RecurringDetails] = None
    notes: str = Field("", max_length=500)

    @field_validator("description", mode="before")
    @classmethod
    def strip_description(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("tags")
    @classmethod
    def strip_tags(cls, value):
        return [t.strip() for t in value if t.strip()]


class TransactionUpdate(CamelModel):
    type: Optional[TransactionType] = None
    amount: Optional[float] = Field(None, gt=0)
    description: Optional[str] = Field(None, min_length=1, max_length=200)
    category: Optional[str] = None
    date: Optional[datetime] = None
    tags: Optional[List[str]] = None
    payment_method: Optional[PaymentMethod] = None
    is_recurring: Optional[bool] = None
    recurring_details: Optional[RecurringDetails] = None
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("description", mode="before")
    @classmethod
    def strip_description(cls, value):
        return value.strip() if isinstance(value, str) else value


class TransactionOut(CamelModel):
    id: str
    user_id: str
    type: TransactionType
    amount: float
    description: str
    category_id: str
    category: Optional[CategoryRef] = None
    date: datetime
    tags: List[str] = []
    payment_method: PaymentMethod = "other"
    is_recurring: bool = False
    recurring_details: Optional[RecurringDetails] = None
    notes: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TransactionPage(CamelModel):
    transactions: List[TransactionOut]
    pagination: dict


class TransactionResponse(CamelModel):
    message: str
    transaction: Optional[TransactionOut] = None


def to_transaction_out(doc: dict, categories_by_id: dict) -> TransactionOut:
    fields = {k: v for k, v in doc.items() if k != "_id"}
    return TransactionOut(
        id=str(doc["_id"]),
        category=category_ref(categories_by_id.get(doc["category_id"])),
        **fields,
    )


def transaction_filter(user_id: str, type: Optional[str] = None, category: Optional[str] = None,
                       start_date: Optional[date] = None, end_date: Optional[date] = None,
                       search: Optional[str] = None) -> dict:
    query = {"user_id": user_id}
    if type:
        query["type"] = type
    if category:
        query["category_id"] = category
    date_clause = date_range_filter(start_date, end_date)
    if date_clause:
        query["date"] = date_clause
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        query["$or"] = [{"description": pattern}, {"notes": pattern}]
    return query


@router.get("", response_model=TransactionPage)
def list_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    type: Optional[TransactionType] = None,
    category: Optional[str] = None,
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    search: Optional[str] = None,
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    user_id = current_user_id(current_user)
    query = transaction_filter(user_id, type, category, start_date, end_date, search)

    skip = (page - 1) * limit
    docs = list(db["transaction"].find(query).sort([("date", -1), ("created_at", -1)]).skip(skip).limit(limit))
    total = db["transaction"].count_documents(query)

    categories_by_id = categories_for(db, [d["category_id"] for d in docs])
    return TransactionPage(
        transactions=[to_transaction_out(d, categories_by_id) for d in docs],
        pagination=pagination(page, limit, total, len(docs)),
    )


@router.get("/stats")
def transaction_stats(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    query = transaction_filter(current_user_id(current_user), start_date=start_date, end_date=end_date)
    return aggregation.summary(db["transaction"].find(query))


@router.post("", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
def create_transaction(payload: TransactionCreate,
                       current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    user_id = current_user_id(current_user)

    category = find_active_category(db, user_id, payload.category, payload.type)
    if category is None:
        raise HTTPException(status_code=400, detail=INVALID_CATEGORY_MESSAGE)

    transaction = TransactionSchema(
        user_id=user_id,
        type=payload.type,
        amount=payload.amount,
        description=payload.description,
        category_id=str(category["_id"]),
        date=as_naive_utc(payload.date or utcnow()),
        tags=payload.tags,
        payment_method=payload.payment_method,
        is_recurring=payload.is_recurring,
        recurring_details=payload.recurring_details,
        notes=payload.notes,
    )
    inserted_id = create_document(db, "transaction", transaction)
    logger.info("Created %s transaction %s for user %s", transaction.type, inserted_id, user_id)

    if transaction.type == "expense":
        refresh_budgets(db, user_id, transaction.category_id)

    doc = transaction.model_dump()
    doc["_id"] = inserted_id
    return TransactionResponse(
        message="Transaction created successfully",
        transaction=to_transaction_out(doc, {transaction.category_id: category}),
    )


@router.put("/{transaction_id}", response_model=TransactionResponse)
def update_transaction(transaction_id: str, payload: TransactionUpdate,
                       current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    user_id = current_user_id(current_user)
    transaction = find_owned(db, "transaction", transaction_id, user_id, "Transaction")

    updates = payload.model_dump(exclude_none=True, exclude={"category"})
    new_type = updates.get("type", transaction["type"])
    new_category_id = payload.category or transaction["category_id"]

    # the referenced category must keep matching the transaction type
    if payload.category is not None or new_type != transaction["type"]:
        category = find_active_category(db, user_id, new_category_id, new_type)
        if category is None:
            raise HTTPException(status_code=400, detail=INVALID_CATEGORY_MESSAGE)
        updates["category_id"] = str(category["_id"])
    if "date" in updates:
        updates["date"] = as_naive_utc(updates["date"])

    if updates:
        updates["updated_at"] = utcnow()
        db["transaction"].update_one({"_id": transaction["_id"]}, {"$set": updates})
        logger.info("Updated transaction %s", transaction_id)

    previous = transaction.copy()
    transaction.update(updates)
    for affected in {(previous["type"], previous["category_id"]), (transaction["type"], transaction["category_id"])}:
        if affected[0] == "expense":
            refresh_budgets(db, user_id, affected[1])

    categories_by_id = categories_for(db, [transaction["category_id"]])
    return TransactionResponse(
        message="Transaction updated successfully",
        transaction=to_transaction_out(transaction, categories_by_id),
    )


@router.delete("/{transaction_id}", response_model=TransactionResponse)
def delete_transaction(transaction_id: str,
                       current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    user_id = current_user_id(current_user)
    transaction = db["transaction"].find_one_and_delete({
        "_id": parse_object_id(transaction_id, "Transaction"),
        "user_id": user_id,
    })
    if transaction is None:
        raise HTTPException(status_code=404, detail="Transaction not found")
    logger.info("Deleted transaction %s", transaction_id)

    if transaction["type"] == "expense":
        refresh_budgets(db, user_id, transaction["category_id"])

    return TransactionResponse(message="Transaction deleted successfully")
