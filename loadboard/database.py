from sqlalchemy import (
    create_engine,
    event,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from loadboard import config
from loadboard.helpers.time import utcnow


def _make_engine(url: str):
    kwargs = {}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        # An in-memory database only lives as long as its connection
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    engine = create_engine(url, **kwargs)

    if url.startswith("sqlite"):
        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


engine = _make_engine(config.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for ORM models
Base = declarative_base()


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    password = Column(String, nullable=False)
    role = Column(String, nullable=False)
    name = Column(String, nullable=False)
    company = Column(String)
    phone = Column(String)
    is_approved = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow)

    loads = relationship("Load", back_populates="shipper")
    trucks = relationship("Truck", back_populates="driver")

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"


class Load(Base):
    __tablename__ = "loads"

    id = Column(Integer, primary_key=True, index=True)
    shipper_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    pickup_location = Column(String, nullable=False)
    delivery_location = Column(String, nullable=False)
    weight = Column(String)
    truck_type = Column(String)
    rate = Column(Float)
    contact_details = Column(String)
    status = Column(String, nullable=False, default="available")
    created_at = Column(DateTime, default=utcnow)

    shipper = relationship("User", back_populates="loads")
    applications = relationship("Application", back_populates="load", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Load(id={self.id}, {self.pickup_location} -> {self.delivery_location}, status={self.status})>"


class Truck(Base):
    __tablename__ = "trucks"

    id = Column(Integer, primary_key=True, index=True)
    driver_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    current_location = Column(String, nullable=False)
    truck_type = Column(String, nullable=False)
    availability_date = Column(String, nullable=False)
    contact = Column(String)
    created_at = Column(DateTime, default=utcnow)

    driver = relationship("User", back_populates="trucks")


class Application(Base):
    __tablename__ = "applications"

    id = Column(Integer, primary_key=True, index=True)
    load_id = Column(Integer, ForeignKey("loads.id"), nullable=False, index=True)
    driver_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    status = Column(String, nullable=False, default="pending")
    created_at = Column(DateTime, default=utcnow)

    load = relationship("Load", back_populates="applications")
    driver = relationship("User")


# Database model for messages (named MessageDB to avoid confusion with the Pydantic model)
class MessageDB(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    receiver_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<MessageDB(id={self.id}, sender_id={self.sender_id}, receiver_id={self.receiver_id})>"


class Review(Base):
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, index=True)
    reviewer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    reviewee_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    comment = Column(String)
    created_at = Column(DateTime, default=utcnow)

    reviewer = relationship("User", foreign_keys=[reviewer_id])


# Initialize the database
def init_db():
    """Create database tables. Safe to call on every startup."""
    Base.metadata.create_all(bind=engine)


# Create a database session
def get_db():
    """Get a new database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
