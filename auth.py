import logging
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel, EmailStr, Field

import config
from database import create_document, get_db, now_utc
from schemas import User as UserSchema

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

router = APIRouter(prefix="/auth", tags=["auth"])

# --------------------- Utility ---------------------

def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def create_token(data: dict, expires_minutes: int = config.JWT_EXPIRES_MINUTES) -> str:
    to_encode = data.copy()
    expire = now_utc() + timedelta(minutes=expires_minutes)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, config.JWT_SECRET, algorithm=config.JWT_ALG)


class AuthUser(BaseModel):
    id: str
    email: EmailStr
    name: str
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def decode_token(token: str) -> AuthUser:
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALG])
        return AuthUser(**{
            "id": payload.get("id"),
            "email": payload.get("email"),
            "name": payload.get("name"),
            "role": payload.get("role", "user"),
        })
    except (JWTError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid or expired token")


def get_current_user(authorization: Optional[str] = Header(None)) -> AuthUser:
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")
    try:
        scheme, token = authorization.split()
        if scheme.lower() != "bearer":
            raise ValueError("Invalid auth scheme")
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid Authorization header")
    return decode_token(token)


def require_admin(user: AuthUser = Depends(get_current_user)) -> AuthUser:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin only")
    return user


def require_customer(user: AuthUser = Depends(get_current_user)) -> AuthUser:
    if user.is_admin:
        raise HTTPException(status_code=403, detail="Customers only")
    return user


def token_response(user_id: str, email: str, name: str, role: str) -> dict:
    claims = {"id": user_id, "email": email, "name": name, "role": role}
    return {"token": create_token(claims), "user": claims}

# --------------------- Models ---------------------

class SignupRequest(BaseModel):
    name: str
    email: EmailStr
    password: str = Field(min_length=6)


class SigninRequest(BaseModel):
    email: EmailStr
    password: str

# --------------------- Routes ---------------------

def _create_user(database, req: SignupRequest, role: str) -> str:
    if database["user"].find_one({"email": req.email}):
        raise HTTPException(status_code=400, detail="Email already registered")
    user_doc = UserSchema(
        name=req.name,
        email=req.email,
        password_hash=hash_password(req.password),
        role=role,
        is_active=True,
    )
    return create_document(database, "user", user_doc)


@router.post("/signup", status_code=201)
def signup(req: SignupRequest, database=Depends(get_db)):
    user_id = _create_user(database, req, "user")
    logger.info("Registered user %s", user_id)
    return token_response(user_id, req.email, req.name, "user")


@router.post("/signin")
def signin(req: SigninRequest, database=Depends(get_db)):
    user = database["user"].find_one({"email": req.email})
    if not user or not verify_password(req.password, user.get("password_hash", "")):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.get("is_active", True):
        raise HTTPException(status_code=403, detail="Account disabled")
    return token_response(str(user["_id"]), user["email"], user["name"], user.get("role", "user"))


@router.get("/me")
def me(user: AuthUser = Depends(get_current_user)):
    return user.model_dump()


@router.post("/create-admin", status_code=201)
def create_admin(req: SignupRequest, admin: AuthUser = Depends(require_admin), database=Depends(get_db)):
    user_id = _create_user(database, req, "admin")
    logger.info("Admin %s created admin account %s", admin.id, user_id)
    return {"id": user_id, "email": req.email, "name": req.name, "role": "admin"}
