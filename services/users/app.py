from contextlib import asynccontextmanager
from typing import List

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from quickroom import auth
from quickroom.config import get_settings
from quickroom.database import Base, engine, get_db
from quickroom.dependencies import get_current_active_user, require_admin_user
from quickroom.errors import register_error_handlers
from quickroom.logging_middleware import add_audit_middleware, configure_logging
from quickroom.models import RoleEnum, User
from quickroom.rate_limit import apply_rate_limiter, limiter
from quickroom.schemas import Token, UserCreate, UserRead

settings = get_settings()


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    configure_logging()
    fastapi_app = FastAPI(title="Users Service", version="1.0.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    add_audit_middleware(fastapi_app, "users")
    register_error_handlers(fastapi_app)
    return fastapi_app


app = create_app()


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "users"}


@app.post("/users/register", response_model=UserRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
def register_user(request: Request, user_in: UserCreate, db: Session = Depends(get_db)) -> User:
    duplicate = db.execute(
        select(User).where(or_(User.username == user_in.username, User.email == user_in.email))
    ).scalars().first()
    if duplicate:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username or email already exists")

    # Only the very first admin can self-register; later admins are refused.
    if user_in.role == RoleEnum.ADMIN:
        admins_exist = db.execute(select(User.id).where(User.role == RoleEnum.ADMIN)).first() is not None
        if admins_exist:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only admins can assign elevated roles")

    user = User(
        name=user_in.name,
        username=user_in.username,
        email=user_in.email,
        role=user_in.role,
        hashed_password=auth.get_password_hash(user_in.password),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@app.post("/users/login", response_model=Token)
@limiter.limit("10/minute")
def login(request: Request, form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)) -> Token:
    user = auth.authenticate_user(db, form_data.username, form_data.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers=auth.CREDENTIALS_HEADERS,
        )
    return Token(access_token=auth.token_for(user))


@app.get("/users/me", response_model=UserRead)
@limiter.limit("60/minute")
def read_me(request: Request, current_user: User = Depends(get_current_active_user)) -> User:
    return current_user


@app.get("/users", response_model=List[UserRead])
@limiter.limit("20/minute")
def list_users(
    request: Request,
    current_user: User = Depends(require_admin_user),
    db: Session = Depends(get_db),
) -> List[User]:
    return list(db.execute(select(User).order_by(User.id)).scalars())
