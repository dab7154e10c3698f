# wasteroute/services/users.py
import logging
from typing import List, Optional

from pymongo.errors import DuplicateKeyError

from wasteroute.core.clock import utcnow
from wasteroute.core.config import settings
from wasteroute.core.errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from wasteroute.core.query import RequestQuery
from wasteroute.core.roles import Role, as_role
from wasteroute.core.security import hash_password, verify_password
from wasteroute.core.states import Status
from wasteroute.models.user import RegisterIn

logger = logging.getLogger(__name__)


async def register(repo, body: RegisterIn) -> dict:
    doc = {
        "email": body.email.lower(),
        "name": body.name,
        "role": body.role,
        "password_hash": hash_password(body.password),
        "created_at": utcnow(),
    }
    try:
        user = await repo.insert_user(doc)
    except DuplicateKeyError:
        raise ConflictError("Email already registered")
    logger.info("Registered %s as %s", user["email"], user["role"])
    return user


async def authenticate(repo, email: str, password: str) -> dict:
    user = await repo.find_user_by_email(email)
    if not user or not verify_password(password, user.get("password_hash", "")):
        raise AuthenticationError("Incorrect email or password")
    return user


async def ensure_admin(repo) -> Optional[dict]:
    """Create the configured bootstrap administrator if it does not exist yet."""
    if not settings.admin_email or not settings.admin_password:
        return None
    existing = await repo.find_user_by_email(settings.admin_email)
    if existing:
        if as_role(existing.get("role")) is not Role.ADMINISTRATOR:
            existing = await repo.set_user_role(existing["_id"], Role.ADMINISTRATOR.value)
        return existing
    try:
        user = await repo.insert_user({
            "email": settings.admin_email.lower(),
            "name": "Administrator",
            "role": Role.ADMINISTRATOR.value,
            "password_hash": hash_password(settings.admin_password),
            "created_at": utcnow(),
        })
    except DuplicateKeyError:
        # another worker created it first
        return await repo.find_user_by_email(settings.admin_email)
    logger.info("Bootstrap administrator %s created", user["email"])
    return user


async def list_users(repo, role: Optional[str] = None) -> List[dict]:
    return await repo.list_users(role)


async def active_assignments(repo, collector_id: str) -> int:
    total = 0
    for status in (Status.ASSIGNED.value, Status.IN_PROGRESS.value):
        query = RequestQuery(assigned_collector=collector_id).narrow(status=status)
        _, count = await repo.list_requests(query, skip=0, limit=1)
        total += count
    return total


async def set_role(repo, actor: dict, user_id: str, role: str) -> dict:
    if user_id == actor["_id"] and role != Role.ADMINISTRATOR.value:
        raise ValidationError.for_field("role", "Administrators cannot demote themselves")
    target = await repo.find_user(user_id)
    if not target:
        raise NotFoundError("User not found")
    # assigned_collector must always point at a collector
    if as_role(target.get("role")) is Role.COLLECTOR and role != Role.COLLECTOR.value:
        if await active_assignments(repo, user_id):
            raise ConflictError("Collector still has active assignments; reassign them first")
    updated = await repo.set_user_role(user_id, role)
    if not updated:
        raise NotFoundError("User not found")
    logger.info("User %s role set to %s by %s", user_id, role, actor["_id"])
    return updated


async def delete_user(repo, actor: dict, user_id: str) -> int:
    """
    Remove an account without cascading: their requests stay, with the
    owner or collector reference unset and a marker in the notes.
    """
    if user_id == actor["_id"]:
        raise ValidationError.for_field("user_id", "Cannot delete your own account")
    user = await repo.find_user(user_id)
    if not user:
        raise NotFoundError("User not found")
    touched = await repo.delete_user(user_id, f"{user.get('name') or user['email']} (deleted user)")
    logger.info("User %s deleted by %s; %d requests detached", user_id, actor["_id"], touched)
    return touched
