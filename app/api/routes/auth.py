from fastapi import APIRouter, Depends

from app.api.dependencies import get_caller_id, get_store
from app.cqrs.commands import auth as auth_commands
from app.cqrs.queries import auth as auth_queries
from app.models.schemas import LoginResponse, UserLogin, UserOut, UserRegister
from app.store.base import DocumentStore

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=UserOut, status_code=201)
def register(payload: UserRegister, store: DocumentStore = Depends(get_store)):
    return auth_commands.register_user(store, payload)


@router.post("/login", response_model=LoginResponse)
def login(payload: UserLogin, store: DocumentStore = Depends(get_store)):
    return auth_queries.login_user(store, payload)


@router.get("/me", response_model=UserOut)
def me(caller_id: str = Depends(get_caller_id), store: DocumentStore = Depends(get_store)):
    return auth_queries.get_user(store, caller_id)
