from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from config import DEFAULT_EXPENSE_LIMIT


# ---------- AUTH ----------
class RegisterIn(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=6)

    @field_validator("email")
    @classmethod
    def check_email(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("Invalid email address")
        return v


class LoginIn(BaseModel):
    email: str
    password: str


class TokenOut(BaseModel):
    access_token: str
    token_type: str


class UserOut(BaseModel):
    id: int
    name: str
    email: str

    class Config:
        from_attributes = True


class AuthOut(BaseModel):
    message: str
    token: str
    user: UserOut


class MessageOut(BaseModel):
    message: str


# ---------- EXPENSES ----------
class ExpenseIn(BaseModel):
    amount: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    category: str = Field(min_length=1, max_length=100)
    description: Optional[str] = ""
    date: date

    @field_validator("category")
    @classmethod
    def strip_category(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Category is required")
        return v


class ExpenseOut(BaseModel):
    id: int
    user_id: int
    amount: float
    category: str
    description: str
    date: date
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ExpenseFilters(BaseModel):
    category: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    limit: int = Field(default=DEFAULT_EXPENSE_LIMIT, ge=1)


# ---------- STATISTICS ----------
class CategoryStatsOut(BaseModel):
    category: str
    total: float
    count: int


class StatisticsOut(BaseModel):
    total: float
    categories: List[CategoryStatsOut]
    average_daily: float


class OverviewOut(BaseModel):
    start_date: date
    end_date: date
    currency: str
    current_month: StatisticsOut
    last_month_total: float
    percentage_change: float
    monthly_budget: float
    remaining_budget: float


# ---------- EXPORT ----------
class ExportOut(BaseModel):
    exported_at: datetime
    expenses: List[ExpenseOut]
    settings: Dict[str, str]
