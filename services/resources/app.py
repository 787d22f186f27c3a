from contextlib import asynccontextmanager
from typing import List

from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from quickroom.capacity import check_resource_availability
from quickroom.config import get_settings
from quickroom.database import Base, engine, get_db
from quickroom.dependencies import get_current_active_user, require_admin_user
from quickroom.errors import BookingValidationError, NotFoundError, register_error_handlers
from quickroom.intervals import build_window, parse_date
from quickroom.logging_middleware import add_audit_middleware, configure_logging
from quickroom.models import BookingResource, Resource, User
from quickroom.rate_limit import apply_rate_limiter, limiter
from quickroom.schemas import (
    ResourceAvailabilityReport,
    ResourceAvailabilityRequest,
    ResourceCreate,
    ResourceRead,
    ResourceUpdate,
)

settings = get_settings()


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    configure_logging()
    fastapi_app = FastAPI(title="Resources Service", version="1.0.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    add_audit_middleware(fastapi_app, "resources")
    register_error_handlers(fastapi_app)
    return fastapi_app


app = create_app()


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "resources"}


def _get_resource(db: Session, resource_id: int) -> Resource:
    resource = db.get(Resource, resource_id)
    if not resource:
        raise NotFoundError(f"Resource not found: {resource_id}")
    return resource


@app.get("/resources", response_model=List[ResourceRead])
@limiter.limit("60/minute")
def list_resources(
    request: Request,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> List[Resource]:
    return list(db.execute(select(Resource).order_by(Resource.type, Resource.name)).scalars())


@app.post("/resources", response_model=ResourceRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
def add_resource(
    request: Request,
    resource_in: ResourceCreate,
    current_user: User = Depends(require_admin_user),
    db: Session = Depends(get_db),
) -> Resource:
    resource = Resource(**resource_in.model_dump())
    db.add(resource)
    db.commit()
    db.refresh(resource)
    return resource


@app.put("/resources/{resource_id}", response_model=ResourceRead)
@limiter.limit("15/minute")
def update_resource(
    request: Request,
    resource_id: int,
    resource_update: ResourceUpdate,
    current_user: User = Depends(require_admin_user),
    db: Session = Depends(get_db),
) -> Resource:
    resource = _get_resource(db, resource_id)
    update_data = resource_update.model_dump(exclude_unset=True, exclude_none=True)
    new_total = update_data.get("total_quantity")
    if new_total is not None:
        largest = db.execute(
            select(func.max(BookingResource.quantity_requested)).where(BookingResource.resource_id == resource_id)
        ).scalar()
        if largest is not None and new_total < largest:
            raise BookingValidationError(
                f"Total quantity {new_total} is below an existing reservation of {largest}"
            )
    for key, value in update_data.items():
        setattr(resource, key, value)
    db.commit()
    db.refresh(resource)
    return resource


@app.delete("/resources/{resource_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("15/minute")
def delete_resource(
    request: Request,
    resource_id: int,
    current_user: User = Depends(require_admin_user),
    db: Session = Depends(get_db),
) -> None:
    resource = _get_resource(db, resource_id)
    db.delete(resource)
    db.commit()


@app.post("/resources/check-availability", response_model=ResourceAvailabilityReport)
@limiter.limit("60/minute")
def check_availability(
    request: Request,
    payload: ResourceAvailabilityRequest,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
) -> ResourceAvailabilityReport:
    day = parse_date(payload.date)
    window = build_window(payload.start_time, payload.end_time)
    return check_resource_availability(db, payload.resources, day, window)
