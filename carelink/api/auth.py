from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field, EmailStr
from datetime import datetime, timedelta, timezone
import os
import logging
from dotenv import load_dotenv
import jwt
import bcrypt

from carelink.core.context import RequestContext
from carelink.database.connection import get_db
from carelink.database.models import Profile, UserRole

load_dotenv()
router = APIRouter(prefix="/api/auth", tags=["Authentication"])
security = HTTPBearer()
logger = logging.getLogger(__name__)

# ==================== CONFIG ====================

SECRET_KEY = os.getenv("SECRET_KEY", "change-me-in-production")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1440"))  # 1 day
REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))

# ==================== PYDANTIC MODELS ====================

class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    full_name: str = Field(..., min_length=2, max_length=100)
    role: UserRole = Field(UserRole.PATIENT, description="patient/doctor/healthcare_organization")

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

class RefreshTokenRequest(BaseModel):
    refresh_token: str

class AuthResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: dict

# ==================== HELPER FUNCTIONS ====================

def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its bcrypt hash"""
    try:
        return bcrypt.checkpw(plain_password.encode(), hashed_password.encode())
    except ValueError:
        return False

def _create_token(data: dict, expires_delta: timedelta, token_type: str) -> str:
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    to_encode.update({
        "exp": now + expires_delta,
        "iat": now,
        "type": token_type
    })
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

def create_access_token(data: dict) -> str:
    """Create JWT access token"""
    return _create_token(data, timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES), "access")

def create_refresh_token(data: dict) -> str:
    """Create JWT refresh token"""
    return _create_token(data, timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS), "refresh")

def decode_token(token: str) -> dict:
    """Decode and validate JWT token"""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired"
        )
    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token"
        )

def serialize_user(user: Profile) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "role": user.role
    }

def issue_tokens(user: Profile) -> dict:
    access_token = create_access_token(data={
        "user_id": user.id,
        "role": user.role
    })
    refresh_token = create_refresh_token(data={
        "user_id": user.id
    })
    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "token_type": "bearer",
        "user": serialize_user(user)
    }

# ==================== DEPENDENCY: Get Current User ====================

async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> Profile:
    """
    Dependency to get current authenticated user
    Use this in protected routes: current_user: Profile = Depends(get_current_user)
    """
    payload = decode_token(credentials.credentials)

    if payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type"
        )

    user_id = payload.get("user_id")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload"
        )

    user = db.query(Profile).filter(Profile.id == user_id).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found"
        )

    return user


async def get_request_context(
    current_user: Profile = Depends(get_current_user)
) -> RequestContext:
    """The caller's id and role, passed explicitly into every access rule."""
    return RequestContext(actor_id=current_user.id, role=current_user.role)


def require_role(ctx: RequestContext, *roles: UserRole) -> None:
    allowed = {role.value for role in roles}
    if ctx.role not in allowed:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"This action requires role: {', '.join(sorted(allowed))}"
        )

# ==================== API ENDPOINTS ====================

@router.post("/signup", response_model=AuthResponse, status_code=201)
async def signup(
    request: SignupRequest,
    db: Session = Depends(get_db)
):
    """
    📝 Create an account

    The role is fixed at signup and cannot be changed afterwards.
    """
    email = request.email.lower()
    if db.query(Profile).filter(Profile.email == email).first():
        raise HTTPException(
            status_code=400,
            detail="An account with this email already exists"
        )

    user = Profile(
        email=email,
        password_hash=hash_password(request.password),
        full_name=request.full_name.strip(),
        role=request.role.value
    )

    try:
        db.add(user)
        db.commit()
        db.refresh(user)
    except Exception as e:
        db.rollback()
        logger.error(f"Signup failed for {email}: {str(e)}")
        raise HTTPException(status_code=500, detail="Could not create account")

    logger.info(f"New {user.role} account {user.id}")
    return issue_tokens(user)


@router.post("/login", response_model=AuthResponse)
async def login(
    request: LoginRequest,
    db: Session = Depends(get_db)
):
    """🔑 Email + password login"""
    user = db.query(Profile).filter(Profile.email == request.email.lower()).first()

    if not user or not verify_password(request.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password"
        )

    logger.info(f"Login: {user.id}")
    return issue_tokens(user)


@router.post("/refresh", response_model=dict)
async def refresh_access_token(
    request: RefreshTokenRequest,
    db: Session = Depends(get_db)
):
    """
    🔄 Refresh Access Token

    - Validates refresh token
    - Returns new access token
    """
    payload = decode_token(request.refresh_token)

    if payload.get("type") != "refresh":
        raise HTTPException(
            status_code=400,
            detail="Invalid token type. Must be refresh token."
        )

    user = db.query(Profile).filter(Profile.id == payload.get("user_id")).first()
    if not user:
        raise HTTPException(
            status_code=404,
            detail="User not found"
        )

    return {
        "access_token": create_access_token(data={
            "user_id": user.id,
            "role": user.role
        }),
        "token_type": "bearer"
    }


@router.get("/me", response_model=dict)
async def get_me(current_user: Profile = Depends(get_current_user)):
    return serialize_user(current_user)
