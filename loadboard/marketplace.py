"""Accounts, loads, trucks, applications, reviews and stats routes."""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from loadboard.auth import (
    authenticate_user,
    create_access_token,
    create_user,
    get_current_user,
    require_approved,
    require_role,
)
from loadboard.database import get_db, Application, Load, Review, Truck, User
from loadboard.directory import display_names, get_user, require_user
from loadboard.errors import AuthorizationError, ForbiddenError, NotFoundError, ValidationError
from loadboard.models import (
    ApplicationOut,
    Created,
    LoadCreate,
    LoadOut,
    LoginResponse,
    ReviewCreate,
    ReviewOut,
    Stats,
    TruckCreate,
    TruckOut,
    UserCreate,
    UserLogin,
    UserOut,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


# Auth

@router.post("/auth/signup", response_model=UserOut)
async def signup(data: UserCreate, db: Session = Depends(get_db)):
    return create_user(db, data.email, data.password, data.role, data.name, data.company, data.phone)


@router.post("/auth/login", response_model=LoginResponse)
async def login(data: UserLogin, db: Session = Depends(get_db)):
    user = authenticate_user(db, data.email, data.password)
    if not user:
        raise AuthorizationError("Invalid credentials")
    return LoginResponse(
        **UserOut.model_validate(user).model_dump(),
        access_token=create_access_token(user),
    )


# Users

@router.get("/users/me", response_model=UserOut)
async def me(user: User = Depends(get_current_user)):
    return user


@router.get("/admin/users", response_model=List[UserOut])
async def list_users(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    require_role(user, "admin")
    return db.query(User).order_by(User.id).all()


@router.post("/admin/users/{user_id}/approve")
async def approve_user(user_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    require_role(user, "admin")
    target = require_user(db, user_id)
    target.is_approved = True
    db.commit()
    logger.info("User %s approved by admin %s", target.id, user.id)
    return {"success": True}


# Loads

@router.get("/loads", response_model=List[LoadOut])
async def search_loads(pickup: Optional[str] = None, delivery: Optional[str] = None,
                       type: Optional[str] = None, db: Session = Depends(get_db)):
    query = (
        db.query(Load, User.name)
        .join(User, Load.shipper_id == User.id)
        .filter(Load.status == "available")
    )
    if pickup:
        query = query.filter(Load.pickup_location.ilike(f"%{pickup}%"))
    if delivery:
        query = query.filter(Load.delivery_location.ilike(f"%{delivery}%"))
    if type:
        query = query.filter(Load.truck_type == type)

    results = []
    for load, shipper_name in query.order_by(Load.created_at.desc(), Load.id.desc()).all():
        out = LoadOut.model_validate(load)
        out.shipper_name = shipper_name
        results.append(out)
    return results


@router.post("/loads", response_model=Created)
async def post_load(data: LoadCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    require_role(user, "shipper", "Only shippers can post loads")
    require_approved(user)
    if not data.pickup_location.strip() or not data.delivery_location.strip():
        raise ValidationError("Pickup and delivery locations are required")

    load = Load(shipper_id=user.id, **data.model_dump())
    db.add(load)
    db.commit()
    logger.info("Load %s posted by shipper %s", load.id, user.id)
    return {"id": load.id}


@router.get("/shipper/loads", response_model=List[LoadOut])
async def my_loads(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return db.query(Load).filter(Load.shipper_id == user.id).order_by(Load.id).all()


@router.delete("/loads/{load_id}")
async def delete_load(load_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    load = db.get(Load, load_id)
    if load is None or (load.shipper_id != user.id and user.role != "admin"):
        raise ForbiddenError("Unauthorized")
    db.delete(load)
    db.commit()
    logger.info("Load %s deleted by user %s", load_id, user.id)
    return {"success": True}


# Trucks

@router.post("/trucks", response_model=Created)
async def post_truck(data: TruckCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    require_role(user, "driver", "Only drivers can post trucks")
    require_approved(user)
    if not data.current_location.strip() or not data.truck_type.strip():
        raise ValidationError("Location and truck type are required")

    truck = Truck(driver_id=user.id, **data.model_dump())
    db.add(truck)
    db.commit()
    return {"id": truck.id}


@router.get("/trucks", response_model=List[TruckOut])
async def list_trucks(db: Session = Depends(get_db)):
    rows = db.query(Truck, User.name).join(User, Truck.driver_id == User.id).order_by(Truck.id).all()
    results = []
    for truck, driver_name in rows:
        out = TruckOut.model_validate(truck)
        out.driver_name = driver_name
        results.append(out)
    return results


# Applications

@router.post("/loads/{load_id}/apply", response_model=Created)
async def apply_for_load(load_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    require_role(user, "driver", "Only drivers can apply")
    if db.get(Load, load_id) is None:
        raise NotFoundError(f"Load {load_id} not found")

    application = Application(load_id=load_id, driver_id=user.id)
    db.add(application)
    db.commit()
    logger.info("Driver %s applied for load %s", user.id, load_id)
    return {"id": application.id}


@router.get("/shipper/applications", response_model=List[ApplicationOut])
async def shipper_applications(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    rows = (
        db.query(Application, Load)
        .join(Load, Application.load_id == Load.id)
        .filter(Load.shipper_id == user.id)
        .order_by(Application.id)
        .all()
    )
    names = display_names(db, (application.driver_id for application, _ in rows))

    results = []
    for application, load in rows:
        out = ApplicationOut.model_validate(application)
        out.driver_name = names.get(application.driver_id)
        out.pickup_location = load.pickup_location
        out.delivery_location = load.delivery_location
        results.append(out)
    return results


# Stats

@router.get("/stats", response_model=Stats)
async def stats(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    def count_loads(status):
        return db.query(func.count(Load.id)).filter(Load.status == status).scalar()

    return {
        "activeLoads": count_loads("available"),
        "completedLoads": count_loads("completed"),
        "totalUsers": db.query(func.count(User.id)).scalar(),
    }


# Reviews

@router.post("/reviews")
async def post_review(data: ReviewCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    if get_user(db, data.reviewee_id) is None:
        raise NotFoundError(f"User {data.reviewee_id} not found")
    db.add(Review(reviewer_id=user.id, reviewee_id=data.reviewee_id, rating=data.rating, comment=data.comment))
    db.commit()
    return {"success": True}


@router.get("/reviews/{user_id}", response_model=List[ReviewOut])
async def list_reviews(user_id: int, db: Session = Depends(get_db)):
    rows = (
        db.query(Review, User.name)
        .join(User, Review.reviewer_id == User.id)
        .filter(Review.reviewee_id == user_id)
        .order_by(Review.id)
        .all()
    )
    results = []
    for review, reviewer_name in rows:
        out = ReviewOut.model_validate(review)
        out.reviewer_name = reviewer_name
        results.append(out)
    return results
