"""
Database Schemas for the Finance Tracker

Each Pydantic model represents a collection in MongoDB.
The collection name is the lowercase of the class name.

Examples:
- User -> "user"
- Category -> "category"
- Transaction -> "transaction"
- Budget -> "budget"
- Notification -> "notification"

Documents are stored with snake_case keys (``model_dump()``); the JSON API
speaks camelCase (``model_dump(by_alias=True)``), which is what the alias
generator on ``CamelModel`` provides.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

TransactionType = Literal["income", "expense"]
BudgetPeriod = Literal["weekly", "monthly", "yearly"]
PaymentMethod = Literal["cash", "card", "bank_transfer", "upi", "wallet", "other"]
RecurringFrequency = Literal["daily", "weekly", "monthly", "yearly"]

HEX_COLOR_PATTERN = r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class User(CamelModel):
    """
    Users collection schema
    Collection name: "user" (lowercase of class name)
    """
    email: EmailStr = Field(..., description="Email address (unique)")
    password_hash: str = Field(..., description="BCrypt hashed password")
    name: Optional[str] = Field(None, description="Full name")
    is_active: bool = Field(True, description="Whether user is active")


class Category(CamelModel):
    """
    Categories collection schema
    Collection name: "category"

    Name is unique case-insensitively per (user, type) among active categories.
    """
    user_id: str = Field(..., description="Owning user")
    name: str = Field(..., min_length=1, max_length=50)
    type: TransactionType
    color: str = Field(..., pattern=HEX_COLOR_PATTERN, description="Display color, #rgb or #rrggbb")
    icon: str = "tag"
    description: str = Field("", max_length=200)
    is_default: bool = Field(False, description="Provisioned at registration")
    is_active: bool = Field(True, description="False once soft-deleted")


class RecurringDetails(CamelModel):
    frequency: RecurringFrequency
    next_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class Transaction(CamelModel):
    """
    Transactions collection schema
    Collection name: "transaction"
    """
    user_id: str = Field(..., description="Owning user")
    type: TransactionType
    amount: float = Field(..., gt=0, description="Always positive; the type carries the sign")
    description: str = Field(..., min_length=1, max_length=200)
    category_id: str = Field(..., description="Referenced category, never owned")
    date: datetime
    tags: List[str] = Field(default_factory=list)
    payment_method: PaymentMethod = "other"
    is_recurring: bool = False
    recurring_details: Optional[RecurringDetails] = None
    notes: str = Field("", max_length=500)


class AlertThresholds(CamelModel):
    warning: float = Field(80, ge=0, le=100)
    critical: float = Field(95, ge=0, le=100)


class BudgetNotifications(CamelModel):
    enabled: bool = True
    last_warning_alert: Optional[datetime] = None
    last_critical_alert: Optional[datetime] = None
    last_exceeded_alert: Optional[datetime] = None


class Budget(CamelModel):
    """
    Budgets collection schema
    Collection name: "budget"

    ``spent`` is the last refreshed total; remaining/percentageUsed/status are
    never stored and are derived on read (see aggregation.budget_status).
    """
    user_id: str = Field(..., description="Owning user")
    category_id: str = Field(..., description="Expense category")
    amount: float = Field(..., gt=0)
    period: BudgetPeriod = "monthly"
    start_date: datetime
    end_date: datetime
    spent: float = Field(0, ge=0)
    alert_thresholds: AlertThresholds = Field(default_factory=AlertThresholds)
    notifications: BudgetNotifications = Field(default_factory=BudgetNotifications)
    is_active: bool = True
    notes: str = Field("", max_length=300)


class Notification(CamelModel):
    """
    Notifications collection schema
    Collection name: "notification"
    """
    user_id: str = Field(..., description="Owning user")
    type: str = Field(..., description="Event kind, e.g. budget_warning")
    title: str
    message: str
    data: dict = Field(default_factory=dict)
    is_read: bool = False
    read_at: Optional[datetime] = None


class CategoryRef(CamelModel):
    """Category fields embedded in transaction and budget responses."""
    id: str
    name: str
    color: str
    type: TransactionType


def category_ref(doc: Optional[dict]) -> Optional[CategoryRef]:
    if doc is None:
        return None
    return CategoryRef(id=str(doc["_id"]), name=doc["name"], color=doc["color"], type=doc["type"])
