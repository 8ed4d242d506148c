from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["shipper", "driver", "admin"]


# Outgoing message (the sender is always the authenticated caller)
class MessageCreate(BaseModel):
    receiverId: int
    content: str


# Message as stored; also the payload of receive_message events
class Message(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    sender_id: int
    receiver_id: int
    content: str
    created_at: datetime


class ConversationSummary(BaseModel):
    user_id: int
    name: Optional[str] = None
    last_message: Message


# Socket payload for send_message; carries the sender explicitly
class SocketMessage(BaseModel):
    senderId: int
    receiverId: int
    content: str


# User registration model
class UserCreate(BaseModel):
    email: str
    password: str
    role: Role
    name: str
    company: Optional[str] = None
    phone: Optional[str] = None


# User login model
class UserLogin(BaseModel):
    email: str
    password: str


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    role: str
    name: str
    company: Optional[str] = None
    phone: Optional[str] = None
    is_approved: bool
    created_at: datetime


class LoginResponse(UserOut):
    access_token: str
    token_type: str = "bearer"


class LoadCreate(BaseModel):
    pickup_location: str
    delivery_location: str
    weight: Optional[str] = None
    truck_type: Optional[str] = None
    rate: Optional[float] = None
    contact_details: Optional[str] = None


class LoadOut(LoadCreate):
    model_config = ConfigDict(from_attributes=True)

    id: int
    shipper_id: int
    shipper_name: Optional[str] = None
    status: str
    created_at: datetime


class TruckCreate(BaseModel):
    current_location: str
    truck_type: str
    availability_date: str
    contact: Optional[str] = None


class TruckOut(TruckCreate):
    model_config = ConfigDict(from_attributes=True)

    id: int
    driver_id: int
    driver_name: Optional[str] = None
    created_at: datetime


class ApplicationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    load_id: int
    driver_id: int
    driver_name: Optional[str] = None
    pickup_location: Optional[str] = None
    delivery_location: Optional[str] = None
    status: str
    created_at: datetime


class ReviewCreate(BaseModel):
    reviewee_id: int
    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = None


class ReviewOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    reviewer_id: int
    reviewer_name: Optional[str] = None
    reviewee_id: int
    rating: int
    comment: Optional[str] = None
    created_at: datetime


class Created(BaseModel):
    id: int


class Stats(BaseModel):
    activeLoads: int
    completedLoads: int
    totalUsers: int
