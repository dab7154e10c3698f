# wasteroute/routers/admin.py
from typing import List, Optional

from fastapi import APIRouter, Depends

from wasteroute.core.roles import Role
from wasteroute.core.security import require_roles
from wasteroute.deps import get_notifier, get_repo
from wasteroute.models.collection import AdminAssignIn, AssignOut, to_out
from wasteroute.models.user import RoleName, RoleUpdateIn, UserOut, user_out
from wasteroute.services import assignment, users

router = APIRouter(prefix="/admin", tags=["admin"])

admin_only = require_roles(Role.ADMINISTRATOR)


@router.post("/collections/assign", response_model=AssignOut)
async def assign_collection(
    body: AdminAssignIn,
    user=Depends(admin_only),
    repo=Depends(get_repo),
    notifier=Depends(get_notifier),
):
    doc, route = await assignment.assign(
        repo, notifier, user, body.collection_id, body.collector_id, body.scheduled_date
    )
    return {"collection": to_out(doc), "route": str(route["_id"])}


@router.get("/users", response_model=List[UserOut])
async def list_users(role: Optional[RoleName] = None, user=Depends(admin_only), repo=Depends(get_repo)):
    return [user_out(u) for u in await users.list_users(repo, role)]


@router.put("/users/{user_id}/role", response_model=UserOut)
async def set_role(user_id: str, body: RoleUpdateIn, user=Depends(admin_only), repo=Depends(get_repo)):
    return user_out(await users.set_role(repo, user, user_id, body.role))


@router.delete("/users/{user_id}")
async def delete_user(user_id: str, user=Depends(admin_only), repo=Depends(get_repo)):
    touched = await users.delete_user(repo, user, user_id)
    return {"ok": True, "requests_updated": touched}
