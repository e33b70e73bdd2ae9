"""Authentication context extraction and role guard utilities."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from margindesk.core.config import get_settings
from margindesk.db.dependencies import get_db_session
from margindesk.models.entities import User, UserRole


class AppRole(str, Enum):
    """Application role names exposed to route guards."""

    OWNER = "owner"
    FINANCE = "finance"
    PM = "pm"
    READONLY = "readonly"


USER_ROLE_TO_APP_ROLE: dict[UserRole, AppRole] = {
    UserRole.OWNER: AppRole.OWNER,
    UserRole.FINANCE: AppRole.FINANCE,
    UserRole.PM: AppRole.PM,
    UserRole.READONLY: AppRole.READONLY,
}


APP_ROLE_TO_USER_ROLE: dict[AppRole, UserRole] = {
    app_role: user_role for user_role, app_role in USER_ROLE_TO_APP_ROLE.items()
}

ADMIN_ROLES = (AppRole.OWNER, AppRole.FINANCE)
EDITOR_ROLES = (AppRole.OWNER, AppRole.FINANCE, AppRole.PM)


@dataclass(frozen=True)
class RequestUserContext:
    """Authenticated request actor resolved from headers and DB state."""

    user_id: UUID
    subject: str
    email: str
    display_name: str
    status: str
    role: AppRole

    @property
    def is_admin(self) -> bool:
        """Whether current user may run finance administration operations."""

        return self.role in ADMIN_ROLES


def _require_identity_headers(
    x_user_sub: str | None,
    x_user_email: str | None,
    x_user_name: str | None,
) -> tuple[str, str, str]:
    if not x_user_sub or not x_user_email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized. Expected X-User-Sub and X-User-Email identity headers.",
        )

    display_name = x_user_name or x_user_email
    return x_user_sub.strip(), x_user_email.strip().lower(), display_name.strip()


def _resolve_identity(
    x_user_sub: str | None,
    x_user_email: str | None,
    x_user_name: str | None,
) -> tuple[str, str, str, bool]:
    settings = get_settings()
    if x_user_sub and x_user_email:
        return (*_require_identity_headers(x_user_sub, x_user_email, x_user_name), False)

    if settings.auth_allow_dev_principal:
        return (
            settings.auth_dev_subject.strip(),
            settings.auth_dev_email.strip().lower(),
            settings.auth_dev_display_name.strip(),
            True,
        )

    return (*_require_identity_headers(x_user_sub, x_user_email, x_user_name), False)


def _upsert_user(
    db: Session,
    *,
    subject: str,
    email: str,
    display_name: str,
    default_role: UserRole,
) -> User:
    user = db.scalar(select(User).where(User.subject == subject))
    now = datetime.utcnow()

    if user is None:
        user = User(
            subject=subject,
            email=email,
            display_name=display_name,
            role=default_role,
            status="active",
            last_login_at=now,
            created_at=now,
            updated_at=now,
        )
        db.add(user)
        db.flush()
        return user

    changed = False
    if user.email != email:
        user.email = email
        changed = True
    if user.display_name != display_name:
        user.display_name = display_name
        changed = True

    user.last_login_at = now
    if changed:
        user.updated_at = now
    db.flush()
    return user


def ensure_user_principal(
    db: Session,
    *,
    subject: str,
    email: str,
    display_name: str,
    role: AppRole | None = None,
) -> User:
    """Ensure user exists with the given role and return persisted row.

    Utility exported for tests and seed helpers.
    """

    normalized_email = email.strip().lower()
    user = _upsert_user(
        db,
        subject=subject.strip(),
        email=normalized_email,
        display_name=display_name.strip() or normalized_email,
        default_role=UserRole(get_settings().auth_default_role),
    )
    if role is not None:
        user.role = APP_ROLE_TO_USER_ROLE[role]
        user.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(user)
    return user


def get_current_user_context(
    x_user_sub: str | None = Header(default=None, alias="X-User-Sub"),
    x_user_email: str | None = Header(default=None, alias="X-User-Email"),
    x_user_name: str | None = Header(default=None, alias="X-User-Name"),
    db: Session = Depends(get_db_session),
) -> RequestUserContext:
    """Resolve current request user and role.

    Identity headers are set by the authenticating proxy in front of the API.
    """

    settings = get_settings()
    subject, email, display_name, is_dev = _resolve_identity(x_user_sub, x_user_email, x_user_name)
    default_role = settings.auth_dev_role if is_dev else settings.auth_default_role
    user = _upsert_user(
        db,
        subject=subject,
        email=email,
        display_name=display_name,
        default_role=UserRole(default_role),
    )
    db.commit()

    return RequestUserContext(
        user_id=user.id,
        subject=user.subject,
        email=user.email,
        display_name=user.display_name,
        status=user.status,
        role=USER_ROLE_TO_APP_ROLE[user.role],
    )


def has_role(context: RequestUserContext, allowed_roles: set[AppRole]) -> bool:
    """Check whether user has any of the allowed roles."""

    return context.role in allowed_roles


def require_roles(*roles: AppRole):
    """Dependency factory requiring at least one provided role."""

    allowed = set(roles)

    def dependency(context: RequestUserContext = Depends(get_current_user_context)) -> RequestUserContext:
        if not has_role(context, allowed):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Forbidden. Insufficient role permissions for this operation.",
            )
        return context

    return dependency


require_admin = require_roles(*ADMIN_ROLES)
require_editor = require_roles(*EDITOR_ROLES)
