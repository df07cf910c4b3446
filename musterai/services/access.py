from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from musterai.core.errors import PermissionDeniedError
from musterai.domain.models import GeneratedDocument, Membership
from musterai.persistence.repos import documents as documents_repo
from musterai.persistence.repos import memberships as memberships_repo


logger = logging.getLogger(__name__)

MEMBERSHIP_ACTIVE = "active"

REASON_DOCUMENT_NOT_FOUND = "Document not found"
REASON_NOT_A_MEMBER = "User not a member of this organization"
REASON_MEMBERSHIP_INACTIVE = "User membership not active"
REASON_INSUFFICIENT_PERMISSIONS = "Insufficient permissions"


class Role(str, Enum):
    ADMIN = "admin"
    MANAGEMENT = "management"
    OPERATOR = "operator"
    VIEWER = "viewer"


_GENERATION_ROLES = frozenset({Role.ADMIN, Role.MANAGEMENT, Role.OPERATOR})


def parse_role(value: str | None) -> Role | None:
    # Unknown role strings map to None and therefore grant nothing.
    if not value:
        return None
    try:
        return Role(value.strip().lower())
    except ValueError:
        return None


def role_can_generate(role: Role | None) -> bool:
    return role in _GENERATION_ROLES


@dataclass(frozen=True)
class AccessVerdict:
    authorized: bool
    reason: str | None = None
    document: GeneratedDocument | None = None
    organization_id: str | None = None
    membership: Membership | None = None


def _denied(reason: str) -> AccessVerdict:
    return AccessVerdict(authorized=False, reason=reason)


async def authorize(session: AsyncSession, document_id: str, subject_id: str) -> AccessVerdict:
    # Read-only: document -> organization -> membership -> status -> role capability.
    document = await documents_repo.get_document(session, document_id)
    if document is None:
        return _denied(REASON_DOCUMENT_NOT_FOUND)

    organization_id = document.organization_id
    membership = await memberships_repo.get_membership(session, subject_id, organization_id)
    if membership is None:
        return _denied(REASON_NOT_A_MEMBER)
    if membership.status != MEMBERSHIP_ACTIVE:
        return _denied(REASON_MEMBERSHIP_INACTIVE)
    if not role_can_generate(parse_role(membership.role)):
        return _denied(REASON_INSUFFICIENT_PERMISSIONS)

    return AccessVerdict(
        authorized=True,
        document=document,
        organization_id=organization_id,
        membership=membership,
    )


async def require_document_access(
    session: AsyncSession, document_id: str, subject_id: str
) -> AccessVerdict:
    verdict = await authorize(session, document_id, subject_id)
    if not verdict.authorized:
        logger.info(
            "access_denied document_id=%s subject_id=%s reason=%s",
            document_id,
            subject_id,
            verdict.reason,
        )
        raise PermissionDeniedError(verdict.reason or REASON_INSUFFICIENT_PERMISSIONS)
    return verdict


async def require_active_member(
    session: AsyncSession, subject_id: str, organization_id: str
) -> Membership:
    # Usage reporting needs an active membership of any role.
    membership = await memberships_repo.get_membership(session, subject_id, organization_id)
    if membership is None or membership.status != MEMBERSHIP_ACTIVE:
        raise PermissionDeniedError(REASON_NOT_A_MEMBER)
    return membership
