from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm

from roomhub import auth
from roomhub.dependencies import ServiceContainer, get_current_principal, get_optional_principal, get_services
from roomhub.schemas import Principal, Token, UserCreate, UserRead
from roomhub.rate_limit import limiter

router = APIRouter(prefix="/users", tags=["users"])


@router.post("/register", response_model=UserRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
def register_user(
    request: Request,
    user_in: UserCreate,
    principal: Optional[Principal] = Depends(get_optional_principal),
    services: ServiceContainer = Depends(get_services),
) -> UserRead:
    return services.users.register(user_in, principal)


@router.post("/login", response_model=Token)
@limiter.limit("10/minute")
def login(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    services: ServiceContainer = Depends(get_services),
) -> Token:
    user = services.users.authenticate(form_data.username, form_data.password)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Incorrect username or password")
    access_token = auth.create_access_token({"sub": user.username, "role": user.role.value, "uid": user.id})
    return Token(access_token=access_token)


@router.get("", response_model=List[UserRead])
@limiter.limit("20/minute")
def list_users(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    services: ServiceContainer = Depends(get_services),
) -> List[UserRead]:
    return services.users.list_users(principal)


@router.get("/me", response_model=UserRead)
def read_me(
    principal: Principal = Depends(get_current_principal),
    services: ServiceContainer = Depends(get_services),
) -> UserRead:
    return services.users.get(principal.id)
