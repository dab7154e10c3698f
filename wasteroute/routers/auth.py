# wasteroute/routers/auth.py
from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordRequestForm

from wasteroute.core.security import create_token, get_current_user
from wasteroute.deps import get_repo
from wasteroute.models.user import RegisterIn, TokenOut, UserOut, user_out
from wasteroute.services import users

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=UserOut, status_code=201)
async def register(body: RegisterIn, repo=Depends(get_repo)):
    return user_out(await users.register(repo, body))


@router.post("/token", response_model=TokenOut)
async def token(form: OAuth2PasswordRequestForm = Depends(), repo=Depends(get_repo)):
    # OAuth2 form field "username" carries the email
    user = await users.authenticate(repo, form.username, form.password)
    return {"access_token": create_token(user["_id"], user["role"]), "token_type": "bearer", "role": user["role"]}


@router.get("/me", response_model=UserOut)
async def me(user=Depends(get_current_user)):
    return user_out(user)
