# auth.py
import os
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from database import SessionLocal
from errors import Forbidden, Unauthorized
from models import User, utcnow
from schemas import TokenData

SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key-change-me")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

# no 0/O, 1/l/I: temporary passwords get typed in from an email
TEMP_PASSWORD_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnpqrstuvwxyz23456789"
TEMP_PASSWORD_LENGTH = 12

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

# auto_error=False: a missing token is reported through our own Unauthorized
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/login", auto_error=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# ---------- Passwords & tokens ----------

def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def generate_temporary_password(length: int = TEMP_PASSWORD_LENGTH) -> str:
    return "".join(secrets.choice(TEMP_PASSWORD_ALPHABET) for _ in range(length))


def authenticate_user(db: Session, username: str, password: str) -> Optional[User]:
    user = db.query(User).filter(User.username == username).first()
    if not user or not verify_password(password, user.password):
        return None
    return user


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


# ---------- Request principal ----------

@dataclass(frozen=True)
class Principal:
    """The authenticated caller of one request."""

    id: int
    role: str


def ensure_authenticated(principal: Optional[Principal]) -> Principal:
    if principal is None:
        raise Unauthorized()
    return principal


def ensure_admin(principal: Optional[Principal]) -> Principal:
    principal = ensure_authenticated(principal)
    if principal.role != "admin":
        raise Forbidden("Admin access required")
    return principal


def ensure_analyst_or_admin(principal: Optional[Principal]) -> Principal:
    principal = ensure_authenticated(principal)
    if principal.role not in ("admin", "analyst"):
        raise Forbidden("Analyst or Admin access required")
    return principal


# ---------- FastAPI dependencies ----------

def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme), db: Session = Depends(get_db)
) -> User:
    if not token:
        raise Unauthorized()
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        token_data = TokenData(username=payload.get("sub"))
    except JWTError:
        raise Unauthorized("Could not validate credentials")
    if token_data.username is None:
        raise Unauthorized("Could not validate credentials")

    user = db.query(User).filter(User.username == token_data.username).first()
    if user is None:
        raise Unauthorized("Could not validate credentials")
    return user


def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_active:
        raise Unauthorized("Inactive user")
    return current_user


def get_current_principal(user: User = Depends(get_current_active_user)) -> Principal:
    return Principal(id=user.id, role=user.role)


def require_auth(principal: Principal = Depends(get_current_principal)) -> Principal:
    return ensure_authenticated(principal)


def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    return ensure_admin(principal)


def require_analyst_or_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    return ensure_analyst_or_admin(principal)
