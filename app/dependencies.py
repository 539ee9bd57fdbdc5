"""
Gym Membership Service - FastAPI Dependencies

Shared dependencies for authentication, database sessions, and access checks.

This module provides dependency injection for:
1. Current member authentication (JWT issued by the auth service)
2. Role-based access control for front desk / admin staff
3. The paid-feature access guard other subsystems mount on their routes
"""

import uuid
from typing import List, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_async_session
from app.models.member import Member, MemberRole, STAFF_ROLES
from app.models.membership import MembershipRecord
from app.services.membership_service import MembershipService
from app.utils.clock import Clock, utcnow
from app.utils.security import verify_access_token


# HTTP Bearer token security
security = HTTPBearer(auto_error=False)


def get_clock() -> Clock:
    """Clock used by services. Overridden in tests to pin "now"."""
    return utcnow


async def get_current_member(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_async_session),
) -> Member:
    """
    Get the current authenticated member from JWT token.

    Token can be provided via:
    1. Authorization: Bearer <token> header
    2. access_token cookie

    Raises:
        HTTPException: If token is invalid or member not found
    """
    token = None

    # Try Bearer header first
    if credentials:
        token = credentials.credentials
    else:
        # Fallback to cookie
        token = request.cookies.get("access_token")
        if token and token.startswith("Bearer "):
            token = token[7:]

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    payload = verify_access_token(token)

    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    member_id = payload.get("sub")
    if not member_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        member_uuid = uuid.UUID(member_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid member ID in token",
        )

    member = await db.get(Member, member_uuid)

    if not member:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Member not found",
        )

    return member


async def get_current_active_member(
    current_member: Member = Depends(get_current_member),
) -> Member:
    """Get current member and verify the account is active."""
    if not current_member.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Member account is deactivated",
        )
    return current_member


# ===========================================
# ROLE-BASED ACCESS CONTROL
# ===========================================

def require_role(allowed_roles: List[MemberRole]):
    """
    Require one of the given portal roles.

    Usage:
        @router.post("/plans")
        async def create_plan(member: Member = Depends(require_role([MemberRole.ADMIN]))):
            ...
    """
    async def role_checker(
        current_member: Member = Depends(get_current_active_member),
    ) -> Member:
        if current_member.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {[r.value for r in allowed_roles]}",
            )
        return current_member

    return role_checker


def require_staff():
    """Require front desk or admin."""
    return require_role(list(STAFF_ROLES))


# ===========================================
# PAID FEATURE ACCESS GUARD
# ===========================================

async def require_active_membership(
    current_member: Member = Depends(get_current_active_member),
    db: AsyncSession = Depends(get_async_session),
    clock: Clock = Depends(get_clock),
) -> MembershipRecord:
    """
    Deny paid features unless the member's membership is active right now.

    Re-reads the membership on every request. Mount on any booking, store or
    class route:

        @router.post("/bookings")
        async def book(membership: MembershipRecord = Depends(require_active_membership)):
            ...
    """
    service = MembershipService(db, clock)
    return await service.ensure_member_can_use_paid_features(current_member.id)
