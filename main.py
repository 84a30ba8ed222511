# main.py
import logging
import time
from datetime import date, datetime, timezone
from typing import Dict, List, Optional

from fastapi import Body, Depends, FastAPI, Path, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

import services
from auth import authenticate, get_current_user, token_for
from config import CORS_ORIGINS, DEFAULT_EXPENSE_LIMIT, LOG_LEVEL, MAX_ID
from database import Base, engine, get_db
from errors import AppError, KIND_BY_STATUS, ValidationFailed
from models import User
from schemas import (AuthOut, ExpenseFilters, ExpenseIn, ExpenseOut, ExportOut, LoginIn, MessageOut,
                     OverviewOut, RegisterIn, StatisticsOut, TokenOut, UserOut)
from stats import PERIODS, month_bounds

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
logger = logging.getLogger("money-manager")

Base.metadata.create_all(bind=engine)

# ---------- APP ----------
app = FastAPI(title="Money Manager API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed = (time.perf_counter() - started) * 1000
    logger.info("%s %s -> %s (%.1f ms)", request.method, request.url.path, response.status_code, elapsed)
    return response


# ---------- ERRORS ----------
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ())[1:])
    message = first.get("msg", "Invalid request")
    if field:
        message = f"{field}: {message}"
    return JSONResponse(status_code=400, content=ValidationFailed(message).to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    kind = KIND_BY_STATUS.get(exc.status_code, "internal_error" if exc.status_code >= 500 else "error")
    if exc.status_code == 404 and exc.detail == "Not Found":
        message = "Route not found"
    else:
        message = str(exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"error": kind, "message": message},
                        headers=getattr(exc, "headers", None))


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Store failure on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "internal_error", "message": "Something went wrong"})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "internal_error", "message": "Something went wrong"})


# ---------- HEALTH ----------
@app.get("/api/health")
def health():
    return {"status": "OK", "message": "Money Manager API is running",
            "time": datetime.now(timezone.utc).isoformat()}


# ---------- AUTH ENDPOINTS ----------
@app.post("/api/auth/register", response_model=AuthOut, status_code=201)
def register(payload: RegisterIn, db: Session = Depends(get_db)):
    user = services.register_user(db, payload)
    return {"message": "User registered successfully", "token": token_for(user), "user": user}


@app.post("/api/auth/login", response_model=AuthOut)
def login(payload: LoginIn, db: Session = Depends(get_db)):
    user = authenticate(db, payload.email, payload.password)
    return {"message": "Login successful", "token": token_for(user), "user": user}


@app.post("/api/auth/token", response_model=TokenOut)
def login_form(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
    user = authenticate(db, form_data.username, form_data.password)
    return {"access_token": token_for(user), "token_type": "bearer"}


@app.get("/api/auth/me", response_model=UserOut)
def read_me(current_user: User = Depends(get_current_user)):
    return current_user


# ---------- EXPENSE ENDPOINTS ----------
@app.get("/api/expenses", response_model=List[ExpenseOut])
def list_expenses(
    category: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: int = Query(DEFAULT_EXPENSE_LIMIT, ge=1, le=MAX_ID),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    filters = ExpenseFilters(category=category, start_date=start_date, end_date=end_date, limit=limit)
    return services.query_expenses(db, current_user.id, filters)


@app.get("/api/expenses/{expense_id}", response_model=ExpenseOut)
def read_expense(expense_id: int = Path(ge=1, le=MAX_ID),
                 current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return services.get_expense(db, current_user.id, expense_id)


@app.post("/api/expenses", response_model=ExpenseOut, status_code=201)
def add_expense(payload: ExpenseIn, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return services.create_expense(db, current_user.id, payload)


@app.put("/api/expenses/{expense_id}", response_model=ExpenseOut)
def edit_expense(payload: ExpenseIn, expense_id: int = Path(ge=1, le=MAX_ID),
                 current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return services.update_expense(db, current_user.id, expense_id, payload)


@app.delete("/api/expenses/{expense_id}", response_model=MessageOut)
def remove_expense(expense_id: int = Path(ge=1, le=MAX_ID),
                   current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    services.delete_expense(db, current_user.id, expense_id)
    return {"message": "Expense deleted successfully"}


# ---------- STATISTICS ----------
@app.get("/api/statistics", response_model=StatisticsOut)
def statistics(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    period: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Totals for the user's expenses between start_date and end_date (inclusive).
    `period=current_month|last_month` fills in whichever bound is missing.
    """
    if period is not None:
        if period not in PERIODS:
            raise ValidationFailed(f"period must be one of: {', '.join(PERIODS)}")
        first, last = month_bounds(period)
        start_date = start_date or first
        end_date = end_date or last
    return services.get_statistics(db, current_user.id, start_date, end_date).to_dict()


@app.get("/api/statistics/overview", response_model=OverviewOut)
def statistics_overview(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return services.get_overview(db, current_user.id)


# ---------- SETTINGS ----------
@app.get("/api/settings", response_model=Dict[str, str])
def read_settings(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return services.get_settings(db, current_user.id)


@app.put("/api/settings", response_model=MessageOut)
def write_settings(payload: dict = Body(...), current_user: User = Depends(get_current_user),
                   db: Session = Depends(get_db)):
    services.update_settings(db, current_user.id, payload)
    return {"message": "Settings updated successfully"}


# ---------- EXPORT ----------
@app.get("/api/export", response_model=ExportOut)
def export(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return services.export_data(db, current_user.id)
