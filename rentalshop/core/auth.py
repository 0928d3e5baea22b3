"""
Authentication dependencies for the RentalShop backend
Validates JWT bearer tokens issued by the web apps and provides user context
"""
from typing import Optional

from fastapi import Depends, HTTPException, status, Header
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from passlib.context import CryptContext
from pydantic import BaseModel
import logging

from .config import settings

logger = logging.getLogger(__name__)

# Security scheme for bearer tokens
security = HTTPBearer(auto_error=False)

# Password hashing context (bcrypt, same as the web apps)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

JWT_ALGORITHM = "HS256"

# Role hierarchy: ADMIN > MERCHANT > OUTLET_ADMIN > OUTLET_STAFF
ROLE_HIERARCHY = {
    "ADMIN": 4,
    "MERCHANT": 3,
    "OUTLET_ADMIN": 2,
    "OUTLET_STAFF": 1,
}


class TokenUser(BaseModel):
    """User data extracted from JWT token"""
    id: str
    email: str
    name: Optional[str] = None
    role: str = "OUTLET_STAFF"
    merchant_id: Optional[int] = None
    outlet_id: Optional[int] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "ADMIN"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(payload: dict) -> str:
    """Sign a token with AUTH_SECRET (used by tests and internal tooling)"""
    return jwt.encode(payload, _auth_secret(), algorithm=JWT_ALGORITHM)


def _auth_secret() -> str:
    if not settings.AUTH_SECRET:
        raise ValueError("AUTH_SECRET environment variable is not set")
    return settings.AUTH_SECRET


def decode_token(token: str) -> dict:
    """
    Decode and validate a JWT token.

    Expected payload:
    {
        "sub": "42",
        "email": "owner@shop.vn",
        "name": "Owner",
        "role": "MERCHANT",
        "merchantId": 7,
        "outletId": null,
        "exp": 1234567890
    }
    """
    try:
        return jwt.decode(
            token,
            _auth_secret(),
            algorithms=[JWT_ALGORITHM],
            options={"verify_aud": False}
        )
    except JWTError as e:
        if "expired" in str(e).lower():
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token has expired",
                headers={"WWW-Authenticate": "Bearer"}
            )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"}
        )


def _user_from_payload(payload: dict) -> Optional[TokenUser]:
    user_id = payload.get("id") or payload.get("sub")
    email = payload.get("email")
    if not user_id or not email:
        return None

    return TokenUser(
        id=str(user_id),
        email=email,
        name=payload.get("name"),
        role=(payload.get("role") or "OUTLET_STAFF").upper(),
        merchant_id=payload.get("merchantId") or payload.get("merchant_id"),
        outlet_id=payload.get("outletId") or payload.get("outlet_id"),
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> TokenUser:
    """
    Dependency that extracts and validates the current user from JWT.

    Usage:
        @router.get("/protected")
        async def protected_route(user: TokenUser = Depends(get_current_user)):
            ...
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"}
        )

    user = _user_from_payload(decode_token(credentials.credentials))
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload: missing user id or email",
            headers={"WWW-Authenticate": "Bearer"}
        )
    return user


def require_role(required_role: str):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.post("/plans")
        async def create_plan(user: TokenUser = Depends(require_role("ADMIN"))):
            ...
    """
    async def role_checker(
        user: TokenUser = Depends(get_current_user)
    ) -> TokenUser:
        user_level = ROLE_HIERARCHY.get(user.role, 0)
        required_level = ROLE_HIERARCHY.get(required_role, 0)

        if user_level < required_level:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {required_role}, your role: {user.role}"
            )

        return user

    return role_checker


require_admin = require_role("ADMIN")


def resolve_merchant_scope(user: TokenUser, merchant_id: Optional[int] = None,
                           required: bool = True) -> Optional[int]:
    """
    Decide which merchant a request operates on.

    Admins may act on any merchant. Everyone else is pinned to the
    merchant in their token.
    """
    if user.is_admin:
        if merchant_id is None and required:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="merchant_id is required for admin requests"
            )
        return merchant_id

    if user.merchant_id is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is not assigned to a merchant"
        )
    if merchant_id is not None and merchant_id != user.merchant_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied to this merchant"
        )
    return user.merchant_id


async def require_admin_or_sync_key(
    x_sync_key: Optional[str] = Header(None, alias="X-Sync-Key"),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Optional[TokenUser]:
    """
    Allow scheduled jobs holding the sync key, otherwise require an ADMIN token.

    Returns the admin user, or None when the sync key was used.
    """
    if settings.SYNC_API_KEY and x_sync_key == settings.SYNC_API_KEY:
        return None
    if x_sync_key:
        logger.warning("Invalid sync key attempt")

    user = await get_current_user(credentials)
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied. Required role: ADMIN or a valid X-Sync-Key"
        )
    return user
