import logging
import re
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import Field, field_validator
from pymongo.database import Database

import aggregation
from database import create_document, find_owned, get_db, to_object_id, utcnow
from schemas import HEX_COLOR_PATTERN, CamelModel, Category as CategorySchema, TransactionType
from security import current_user_id, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/categories", tags=["categories"])

# Provisioned for every new account at registration.
DEFAULT_CATEGORIES = [
    ("Food & Dining", "expense", "#ef4444"),
    ("Transportation", "expense", "#f97316"),
    ("Shopping", "expense", "#eab308"),
    ("Entertainment", "expense", "#22c55e"),
    ("Bills & Utilities", "expense", "#3b82f6"),
    ("Healthcare", "expense", "#8b5cf6"),
    ("Salary", "income", "#10b981"),
    ("Freelance", "income", "#06b6d4"),
    ("Investment", "income", "#8b5cf6"),
]

DUPLICATE_MESSAGE = "Category with this name already exists for this type"


class CategoryCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=50)
    type: TransactionType
    color: str = Field(..., pattern=HEX_COLOR_PATTERN)
    icon: Optional[str] = None
    description: Optional[str] = Field(None, max_length=200)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value):
        return value.strip() if isinstance(value, str) else value


class CategoryUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    color: Optional[str] = Field(None, pattern=HEX_COLOR_PATTERN)
    icon: Optional[str] = None
    description: Optional[str] = Field(None, max_length=200)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value):
        return value.strip() if isinstance(value, str) else value


class CategoryOut(CamelModel):
    id: str
    user_id: str
    name: str
    type: TransactionType
    color: str
    icon: str = "tag"
    description: str = ""
    is_default: bool = False
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CategoryList(CamelModel):
    categories: List[CategoryOut]


class CategoryResponse(CamelModel):
    message: str
    category: Optional[CategoryOut] = None


def to_category_out(doc: dict) -> CategoryOut:
    return CategoryOut(id=str(doc["_id"]), **{k: v for k, v in doc.items() if k != "_id"})


def find_duplicate_category(db: Database, user_id: str, name: str, type: str,
                            exclude_id=None) -> Optional[dict]:
    """Active category of the same type whose name matches case-insensitively."""
    query = {
        "user_id": user_id,
        "name": {"$regex": f"^{re.escape(name)}$", "$options": "i"},
        "type": type,
        "is_active": True,
    }
    if exclude_id is not None:
        query["_id"] = {"$ne": exclude_id}
    return db["category"].find_one(query)


def find_active_category(db: Database, user_id: str, category_id: str, type: str) -> Optional[dict]:
    """Owned, active category of the given type, or None for anything else."""
    object_id = to_object_id(category_id)
    if object_id is None:
        return None
    return db["category"].find_one({"_id": object_id, "user_id": user_id, "type": type, "is_active": True})


def provision_default_categories(db: Database, user_id: str) -> None:
    for name, type, color in DEFAULT_CATEGORIES:
        create_document(db, "category", CategorySchema(
            user_id=user_id, name=name, type=type, color=color, is_default=True,
        ))
    logger.info("Provisioned %d default categories for user %s", len(DEFAULT_CATEGORIES), user_id)


@router.get("", response_model=CategoryList)
def list_categories(type: Optional[TransactionType] = None,
                    current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    query = {"user_id": current_user_id(current_user), "is_active": True}
    if type:
        query["type"] = type
    docs = db["category"].find(query).sort("name", 1)
    return CategoryList(categories=[to_category_out(d) for d in docs])


@router.post("", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
def create_category(payload: CategoryCreate,
                    current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    user_id = current_user_id(current_user)

    if find_duplicate_category(db, user_id, payload.name, payload.type):
        raise HTTPException(status_code=400, detail=DUPLICATE_MESSAGE)

    category = CategorySchema(
        user_id=user_id,
        name=payload.name,
        type=payload.type,
        color=payload.color,
        icon=payload.icon or "tag",
        description=payload.description or "",
    )
    inserted_id = create_document(db, "category", category)
    logger.info("Created category %s for user %s", inserted_id, user_id)

    doc = category.model_dump()
    doc["_id"] = inserted_id
    return CategoryResponse(message="Category created successfully", category=to_category_out(doc))


@router.put("/{category_id}", response_model=CategoryResponse)
def update_category(category_id: str, payload: CategoryUpdate,
                    current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    user_id = current_user_id(current_user)
    category = find_owned(db, "category", category_id, user_id, "Category")

    # type is immutable once transactions may reference the category
    updates = payload.model_dump(exclude_none=True)
    if "name" in updates and updates["name"] != category["name"]:
        if find_duplicate_category(db, user_id, updates["name"], category["type"], exclude_id=category["_id"]):
            raise HTTPException(status_code=400, detail=DUPLICATE_MESSAGE)

    if updates:
        updates["updated_at"] = utcnow()
        db["category"].update_one({"_id": category["_id"]}, {"$set": updates})
        category.update(updates)
        logger.info("Updated category %s", category_id)

    return CategoryResponse(message="Category updated successfully", category=to_category_out(category))


@router.delete("/{category_id}", response_model=CategoryResponse)
def delete_category(category_id: str,
                    current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    user_id = current_user_id(current_user)
    category = find_owned(db, "category", category_id, user_id, "Category")

    transaction_count = db["transaction"].count_documents({
        "user_id": user_id,
        "category_id": str(category["_id"]),
    })

    if transaction_count > 0:
        # referenced categories stay resolvable for historical transactions
        now = utcnow()
        db["category"].update_one({"_id": category["_id"]}, {"$set": {"is_active": False, "updated_at": now}})
        category.update({"is_active": False, "updated_at": now})
        logger.info("Deactivated category %s (%d transactions)", category_id, transaction_count)
        return CategoryResponse(
            message="Category deactivated successfully (has associated transactions)",
            category=to_category_out(category),
        )

    db["category"].delete_one({"_id": category["_id"]})
    logger.info("Deleted category %s", category_id)
    return CategoryResponse(message="Category deleted successfully")


@router.get("/{category_id}/stats")
def get_category_stats(category_id: str,
                       current_user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    user_id = current_user_id(current_user)
    category = find_owned(db, "category", category_id, user_id, "Category")

    transactions = db["transaction"].find({"user_id": user_id, "category_id": str(category["_id"])})
    return {
        "category": {
            "id": str(category["_id"]),
            "name": category["name"],
            "type": category["type"],
            "color": category["color"],
        },
        "stats": aggregation.category_stats(transactions),
    }
