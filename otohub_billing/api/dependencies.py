# otohub_billing/api/dependencies.py
"""
Caller identity and subscription access for API routes.

Authentication happens upstream; the gateway forwards the resolved caller
as X-User-ID, X-User-Role and X-Tenant-ID headers.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from otohub_billing.core.constants import (
    AccessLevel,
    BILLING_PATHS,
    TENANT_ROLE_HIERARCHY,
    UserRole,
)
from otohub_billing.core.exceptions import SubscriptionAccessError
from otohub_billing.db.database import get_db, transaction
from otohub_billing.services.proof_storage import LocalProofStorage, ProofStorage
from otohub_billing.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

READ_METHODS = ("GET", "HEAD", "OPTIONS")


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: UserRole
    tenant_id: Optional[str] = None

    @property
    def is_superadmin(self) -> bool:
        return self.role == UserRole.SUPERADMIN


async def get_current_actor(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
    x_tenant_id: Optional[str] = Header(None),
) -> Actor:
    """Resolve the caller forwarded by the gateway"""
    if not x_user_id or not x_user_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required"
        )

    try:
        role = UserRole(x_user_role.upper())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid role"
        )

    if role != UserRole.SUPERADMIN and not x_tenant_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Tenant-ID header is required"
        )

    return Actor(user_id=x_user_id, role=role, tenant_id=x_tenant_id)


def require_role(required_role: UserRole):
    """Dependency to check the caller's tenant role"""
    async def role_checker(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role.value not in TENANT_ROLE_HIERARCHY:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Tenant role required"
            )

        actor_level = TENANT_ROLE_HIERARCHY.index(actor.role.value)
        required_level = TENANT_ROLE_HIERARCHY.index(UserRole(required_role).value)

        if actor_level < required_level:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires {UserRole(required_role).value} role or higher"
            )

        return actor

    return role_checker


async def require_superadmin(actor: Actor = Depends(get_current_actor)) -> Actor:
    if not actor.is_superadmin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Superadmin access required"
        )
    return actor


async def require_subscription_access(
    request: Request,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> Actor:
    """Gate a tenant route on the subscription status.

    Billing routes stay reachable in every state so a tenant can always pay.
    Elsewhere PAST_DUE tenants may only read, and SUSPENDED or CANCELLED
    tenants are refused.
    """
    if actor.is_superadmin:
        return actor

    path = request.url.path
    if any(prefix in path for prefix in BILLING_PATHS):
        return actor

    async with transaction(db):
        subscription_status, access = await SubscriptionService(db).get_access(actor.tenant_id)

    if access == AccessLevel.FULL:
        return actor
    if access == AccessLevel.READ_ONLY and request.method in READ_METHODS:
        return actor

    logger.warning(
        "Blocked %s %s for %s tenant (access=%s)",
        request.method,
        path,
        subscription_status.value,
        access.value,
        extra={"tenant_id": actor.tenant_id, "user_id": actor.user_id},
    )
    if access == AccessLevel.READ_ONLY:
        message = f"Account is {subscription_status.value}, payment required to make changes"
    else:
        message = f"Access denied, tenant status is {subscription_status.value}"
    raise SubscriptionAccessError(
        message,
        details={"status": subscription_status.value, "access_level": access.value},
    )


def get_proof_storage() -> ProofStorage:
    return LocalProofStorage()
