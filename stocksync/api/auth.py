from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from stocksync.config import settings
from stocksync.database import get_db
from stocksync.exceptions import ForbiddenError, UnauthorizedError, ValidationError
from stocksync.models.user import User
from stocksync.services import auth_service

router = APIRouter(prefix="/auth", tags=["Auth"])


class LoginRequest(BaseModel):
    username: str
    password: str


class RegisterRequest(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)
    name: str = ""
    role: str = "warehouse-staff"


class UserOut(BaseModel):
    id: str
    username: str
    name: str
    role: str

    model_config = {"from_attributes": True}


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


def get_current_user(
    authorization: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> User:
    """Dependency: extract user from an ``Authorization: Bearer`` header."""
    token = _bearer_token(authorization)
    if not token:
        raise UnauthorizedError("Access token required")
    payload = auth_service.decode_token(token)
    if not payload:
        raise UnauthorizedError("Invalid or expired token")
    user = auth_service.get_user_by_id(db, payload["sub"])
    if not user or not user.active:
        raise UnauthorizedError("User not found or disabled")
    return user


def require_user(
    authorization: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> User | None:
    """Dependency: enforce auth on write endpoints when REQUIRE_AUTH is on."""
    if not settings.REQUIRE_AUTH:
        return None
    return get_current_user(authorization, db)


@router.post("/login")
def login(data: LoginRequest, db: Session = Depends(get_db)):
    user = auth_service.authenticate(db, data.username, data.password)
    if not user:
        raise UnauthorizedError("Invalid credentials")
    token = auth_service.create_access_token(user)
    return {"token": token, "user": UserOut.model_validate(user)}


@router.post("/register", status_code=201)
def register(data: RegisterRequest, db: Session = Depends(get_db)):
    if settings.REQUIRE_AUTH and data.role in settings.supervisor_roles:
        raise ForbiddenError(f"Self-registration cannot grant the {data.role} role")
    try:
        user = auth_service.create_user(db, data.username, data.password, data.name, data.role)
    except ValueError as e:
        raise ValidationError(str(e)) from None
    token = auth_service.create_access_token(user)
    return {"token": token, "user": UserOut.model_validate(user)}


@router.get("/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)):
    return user
