import logging
from contextlib import contextmanager
from datetime import date
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from auth import get_password_hash
from config import DEFAULT_SETTINGS
from errors import Conflict, NotFound, StoreFailure
from models import Expense, Setting, User, utcnow
from schemas import ExpenseFilters, ExpenseIn, RegisterIn
from stats import Statistics, aggregate, month_bounds, percentage_change
from user_settings import SettingsView, encode_settings, merge_settings

logger = logging.getLogger(__name__)


@contextmanager
def _writing(db: Session, action: str, conflict: Optional[Conflict] = None):
    """Commit on success; on a store error roll back and raise StoreFailure.

    A unique-constraint violation raises ``conflict`` instead when one is given.
    """
    try:
        yield
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if conflict is None:
            logger.exception("Store failure while trying to %s", action)
            raise StoreFailure(f"Failed to {action}") from exc
        raise conflict from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Store failure while trying to %s", action)
        raise StoreFailure(f"Failed to {action}") from exc


# ---------- USERS ----------
def register_user(db: Session, payload: RegisterIn) -> User:
    duplicate = Conflict("User with this email already exists")
    if db.query(User).filter(User.email == payload.email).first():
        raise duplicate
    now = utcnow()
    user = User(
        name=payload.name,
        email=payload.email,
        hashed_password=get_password_hash(payload.password),
        created_at=now,
        updated_at=now,
    )
    with _writing(db, "register user", conflict=duplicate):
        db.add(user)
        db.flush()
        for key, value in DEFAULT_SETTINGS.items():
            db.add(Setting(user_id=user.id, key=key, value=value, created_at=now, updated_at=now))
    db.refresh(user)
    logger.info("Registered user %s", user.id)
    return user


# ---------- EXPENSES ----------
def _scoped(db: Session, user_id: int, start_date: Optional[date] = None, end_date: Optional[date] = None):
    q = db.query(Expense).filter(Expense.user_id == user_id)
    if start_date is not None:
        q = q.filter(Expense.date >= start_date)
    if end_date is not None:
        q = q.filter(Expense.date <= end_date)
    return q


def query_expenses(db: Session, user_id: int, filters: ExpenseFilters) -> List[Expense]:
    """A user's expenses, newest date first, then most recently created."""
    q = _scoped(db, user_id, filters.start_date, filters.end_date)
    if filters.category is not None:
        q = q.filter(Expense.category == filters.category)
    q = q.order_by(Expense.date.desc(), Expense.created_at.desc(), Expense.id.desc())
    return q.limit(filters.limit).all()


def get_expense(db: Session, user_id: int, expense_id: int) -> Expense:
    # other users' expenses look exactly like missing ones
    expense = db.query(Expense).filter(Expense.id == expense_id, Expense.user_id == user_id).first()
    if expense is None:
        raise NotFound("Expense not found")
    return expense


def create_expense(db: Session, user_id: int, payload: ExpenseIn) -> Expense:
    now = utcnow()
    expense = Expense(
        user_id=user_id,
        category=payload.category,
        description=payload.description or "",
        date=payload.date,
        created_at=now,
        updated_at=now,
    )
    expense.amount = payload.amount
    with _writing(db, "create expense"):
        db.add(expense)
    db.refresh(expense)
    return expense


def update_expense(db: Session, user_id: int, expense_id: int, payload: ExpenseIn) -> Expense:
    expense = get_expense(db, user_id, expense_id)
    with _writing(db, "update expense"):
        expense.amount = payload.amount
        expense.category = payload.category
        expense.description = payload.description or ""
        expense.date = payload.date
        expense.updated_at = max(utcnow(), expense.created_at)
    db.refresh(expense)
    return expense


def delete_expense(db: Session, user_id: int, expense_id: int) -> None:
    expense = get_expense(db, user_id, expense_id)
    with _writing(db, "delete expense"):
        db.delete(expense)


# ---------- STATISTICS ----------
def get_statistics(db: Session, user_id: int, start_date: Optional[date] = None,
                   end_date: Optional[date] = None) -> Statistics:
    expenses = _scoped(db, user_id, start_date, end_date).order_by(Expense.id).all()
    return aggregate(expenses)


def get_overview(db: Session, user_id: int, today: Optional[date] = None) -> dict:
    start, end = month_bounds("current_month", today)
    last_start, last_end = month_bounds("last_month", today)
    current = get_statistics(db, user_id, start, end)
    previous = get_statistics(db, user_id, last_start, last_end)
    view = SettingsView.from_mapping(get_settings(db, user_id))
    return {
        "start_date": start,
        "end_date": end,
        "currency": view.currency.value,
        "current_month": current.to_dict(),
        "last_month_total": float(previous.total),
        "percentage_change": round(percentage_change(current.total, previous.total), 2),
        "monthly_budget": float(view.monthly_budget),
        "remaining_budget": float(view.monthly_budget - current.total),
    }


# ---------- SETTINGS ----------
def _setting_rows(db: Session, user_id: int) -> Dict[str, Setting]:
    rows = db.query(Setting).filter(Setting.user_id == user_id).order_by(Setting.id).all()
    return {row.key: row for row in rows}


def get_settings(db: Session, user_id: int) -> Dict[str, str]:
    return {key: row.value for key, row in _setting_rows(db, user_id).items()}


def update_settings(db: Session, user_id: int, payload) -> Dict[str, str]:
    """Upsert every key in ``payload``; all keys commit together or not at all."""
    incoming = encode_settings(payload)
    try:
        merged, written = _write_settings(db, user_id, incoming)
    except Conflict:
        # another request created one of the new keys first; overwrite it
        merged, written = _write_settings(db, user_id, incoming)
    logger.info("Updated %d setting(s) for user %s", written, user_id)
    return merged


def _write_settings(db: Session, user_id: int, incoming: Dict[str, str]):
    rows = _setting_rows(db, user_id)
    merged, upserts = merge_settings({k: r.value for k, r in rows.items()}, incoming)
    now = utcnow()
    race = Conflict("Settings were changed by another request")
    with _writing(db, "update settings", conflict=race):
        for upsert in upserts:
            if upsert.created:
                db.add(Setting(user_id=user_id, key=upsert.key, value=upsert.value,
                               created_at=now, updated_at=now))
            else:
                row = rows[upsert.key]
                row.value = upsert.value
                row.updated_at = max(now, row.created_at)
    return merged, len(upserts)


# ---------- EXPORT ----------
def export_data(db: Session, user_id: int) -> dict:
    expenses = (
        db.query(Expense)
        .filter(Expense.user_id == user_id)
        .order_by(Expense.date.desc(), Expense.created_at.desc(), Expense.id.desc())
        .all()
    )
    return {"exported_at": utcnow(), "expenses": expenses, "settings": get_settings(db, user_id)}
