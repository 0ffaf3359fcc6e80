# main.py
from datetime import timedelta
from typing import List, Optional
import os

from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

import analytics
import crud
import emailer
import ingest
from auth import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    Principal,
    authenticate_user,
    create_access_token,
    generate_temporary_password,
    get_current_active_user,
    get_db,
    get_password_hash,
    require_admin,
    require_analyst_or_admin,
    require_auth,
    verify_password,
)
from database import Base, engine
from errors import (
    AppError,
    InvalidOperation,
    NotFound,
    StorageUnavailable,
    Unauthorized,
    Unknown,
    ValidationError,
)
from logging_config import get_logger
from models import User
from schemas import (
    CompetitorCreate,
    CompetitorOut,
    CompetitorUpdate,
    DashboardMetrics,
    IngestResult,
    PasswordReset,
    PricingDataCreate,
    PricingDataOut,
    PricingTrendPoint,
    Token,
    UserCreate,
    UserOut,
    UserProvision,
    UserProvisioned,
    UserUpdate,
)

logger = get_logger("competitor_dashboard")

Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Competitor Intelligence Dashboard",
    description="FastAPI + OAuth2 + SQLAlchemy competitor pricing analytics",
    version="0.1.0",
)

DEFAULT_TREND_DAYS = 180
DEFAULT_HISTORY_LIMIT = 30

# ========= CORS Configuration =========
allowed = os.getenv("ALLOWED_ORIGINS", "")
ALLOWED_ORIGINS = [
    o.strip().rstrip("/") for o in (allowed.split(",") if allowed else [])
    if o and o.strip()
]

allow_all = os.getenv("ALLOW_ALL_CORS", "0") == "1"

if allow_all:
    origins = ["*"]
else:
    origins = ALLOWED_ORIGINS

if allow_all or origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    logger.info("CORS enabled. allow_all=%s origins=%s", allow_all, origins)
else:
    logger.info("CORS not enabled: no ALLOWED_ORIGINS and ALLOW_ALL_CORS != 1")


# ========= Error handlers =========

_VALIDATION_MESSAGES = {
    "/api/competitors": "Invalid competitor data",
    "/api/pricing-data": "Invalid pricing data",
    "/api/users": "Invalid user data",
}


@app.exception_handler(AppError)
def handle_app_error(request: Request, exc: AppError):
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthorized) else None
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_body(), headers=headers)


@app.exception_handler(RequestValidationError)
def handle_request_validation(request: Request, exc: RequestValidationError):
    message = next(
        (msg for prefix, msg in _VALIDATION_MESSAGES.items() if request.url.path.startswith(prefix)),
        "Invalid request data",
    )
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    return handle_app_error(request, ValidationError(message, errors=errors))


@app.exception_handler(OperationalError)
def handle_storage_error(request: Request, exc: OperationalError):
    logger.exception("Storage failure on %s %s", request.method, request.url.path)
    return handle_app_error(request, StorageUnavailable())


@app.exception_handler(Exception)
def handle_unexpected(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return handle_app_error(request, Unknown())


# ========= Helpers =========

def parse_positive_int(raw: Optional[str], default: int) -> int:
    """Query-string window/limit: missing, non-numeric or < 1 falls back to default."""
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


def _notify(send, *args) -> bool:
    """Best-effort email; a delivery failure never fails the request."""
    try:
        return bool(send(*args))
    except Exception:
        logger.exception("Email delivery failed (%s)", getattr(send, "__name__", send))
        return False


@app.get("/healthz", include_in_schema=False)
def healthz():
    return {"status": "ok"}


# ========= AUTH ROUTES =========

@app.post("/api/register", response_model=UserOut, status_code=201)
def register_user(user_in: UserCreate, db: Session = Depends(get_db)):
    user = crud.create_user(
        db,
        username=user_in.username,
        email=user_in.email,
        name=user_in.name,
        role="viewer",
        hashed_password=get_password_hash(user_in.password),
    )
    _notify(emailer.send_welcome_email, user.email, user.name)
    return user


@app.post("/api/login", response_model=Token)
def login_for_access_token(
    form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)
):
    user = authenticate_user(db, form_data.username, form_data.password)
    if not user:
        raise Unauthorized("Incorrect username or password")
    if not user.is_active:
        raise Unauthorized("Inactive user")
    crud.touch_last_active(db, user)
    access_token = create_access_token(
        data={"sub": user.username}, expires_delta=timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    return Token(access_token=access_token, token_type="bearer")


@app.get("/api/user", response_model=UserOut)
def read_current_user(current_user: User = Depends(get_current_active_user)):
    return current_user


@app.post("/api/reset-password")
def reset_password(
    payload: PasswordReset,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_auth),
):
    user = crud.get_user(db, principal.id)
    if not user:
        raise NotFound("User not found")
    if not verify_password(payload.current_password, user.password):
        raise ValidationError("Current password is incorrect")
    crud.set_password(db, user, get_password_hash(payload.new_password))
    return {"message": "Password updated successfully"}


# ========= DASHBOARD =========

@app.get("/api/dashboard/metrics", response_model=DashboardMetrics)
def dashboard_metrics(db: Session = Depends(get_db), principal: Principal = Depends(require_auth)):
    return analytics.get_dashboard_metrics(db)


@app.get("/api/dashboard/pricing-trends", response_model=List[PricingTrendPoint])
def pricing_trends(
    days: Optional[str] = None,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_auth),
):
    return analytics.get_recent_pricing_trends(db, parse_positive_int(days, DEFAULT_TREND_DAYS))


# ========= COMPETITOR CRUD =========

@app.get("/api/competitors", response_model=List[CompetitorOut])
def list_competitors(db: Session = Depends(get_db), principal: Principal = Depends(require_auth)):
    return crud.get_competitors(db)


@app.post("/api/competitors", response_model=CompetitorOut, status_code=201)
def create_competitor(
    competitor_in: CompetitorCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_analyst_or_admin),
):
    return crud.create_competitor(db, competitor_in, created_by=principal.id)


@app.put("/api/competitors/{competitor_id}", response_model=CompetitorOut)
def update_competitor(
    competitor_id: int,
    updates: CompetitorUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_analyst_or_admin),
):
    competitor = crud.update_competitor(db, competitor_id, updates)
    if not competitor:
        raise NotFound("Competitor not found")
    return competitor


@app.delete("/api/competitors/{competitor_id}", status_code=204)
def delete_competitor(
    competitor_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
):
    if not crud.delete_competitor(db, competitor_id):
        raise NotFound("Competitor not found")
    return


# ========= PRICING DATA =========

@app.post("/api/pricing-data", response_model=PricingDataOut, status_code=201)
def create_pricing_data(
    pricing_in: PricingDataCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_analyst_or_admin),
):
    return crud.create_pricing_data(db, pricing_in)


@app.get("/api/pricing-data/competitor/{competitor_id}", response_model=List[PricingDataOut])
def competitor_pricing_history(
    competitor_id: int,
    limit: Optional[str] = None,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_auth),
):
    return crud.get_pricing_data_by_competitor(
        db, competitor_id, parse_positive_int(limit, DEFAULT_HISTORY_LIMIT)
    )


# ========= USER MANAGEMENT (admin) =========

@app.get("/api/users", response_model=List[UserOut])
def list_users(db: Session = Depends(get_db), principal: Principal = Depends(require_admin)):
    return crud.get_users(db)


@app.post("/api/users", response_model=UserProvisioned, status_code=201)
def provision_user(
    user_in: UserProvision,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
):
    temporary_password = generate_temporary_password()
    user = crud.create_user(
        db,
        username=user_in.username,
        email=user_in.email,
        name=user_in.name,
        role=user_in.role,
        hashed_password=get_password_hash(temporary_password),
    )
    email_sent = _notify(
        emailer.send_temporary_password_email, user.email, user.name, temporary_password
    )
    logger.info("User %s provisioned by admin %s (email_sent=%s)", user.id, principal.id, email_sent)
    return UserProvisioned(**UserOut.model_validate(user).model_dump(), email_sent=email_sent)


@app.put("/api/users/{user_id}", response_model=UserOut)
def update_user(
    user_id: int,
    updates: UserUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
):
    user = crud.update_user(db, user_id, updates)
    if not user:
        raise NotFound("User not found")
    return user


@app.delete("/api/users/{user_id}", status_code=204)
def delete_user(
    user_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
):
    if user_id == principal.id:
        raise InvalidOperation("Cannot delete your own account")
    if not crud.delete_user(db, user_id):
        raise NotFound("User not found")
    return


# ========= BULK UPLOAD =========

@app.post("/api/bulk-upload", response_model=IngestResult)
def bulk_upload(
    file: UploadFile = File(...),
    record_type: str = Form(..., alias="type"),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_analyst_or_admin),
):
    try:
        return ingest.ingest_upload(db, file.file, record_type, principal.id)
    finally:
        file.file.close()
