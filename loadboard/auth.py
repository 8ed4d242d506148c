import logging
from typing import Optional

from fastapi import Depends, Header
from jose import jwt, JWTError
from passlib.context import CryptContext
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from loadboard import config
from loadboard.database import get_db, User
from loadboard.directory import get_user
from loadboard.errors import AuthorizationError, ForbiddenError, ValidationError

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=config.BCRYPT_ROUNDS)


# Create a new user; admins are approved on signup, everyone else waits
def create_user(db: Session, email: str, password: str, role: str, name: str,
                company: Optional[str] = None, phone: Optional[str] = None) -> User:
    if not email or not email.strip():
        raise ValidationError("Email is required")
    if not password:
        raise ValidationError("Password is required")
    if not name or not name.strip():
        raise ValidationError("Name is required")

    user = User(
        email=email.strip(),
        password=pwd_context.hash(password),
        role=role,
        name=name.strip(),
        company=company,
        phone=phone,
        is_approved=(role == "admin"),
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationError("Email already registered")
    db.refresh(user)
    logger.info("Registered %s user %s", role, user.id)
    return user


# Authenticate user by checking their password
def authenticate_user(db: Session, email: str, password: str):
    user = db.query(User).filter(User.email == email).first()
    if not user or not pwd_context.verify(password, user.password):
        return False
    return user


def create_access_token(user: User) -> str:
    """Signed token whose subject is the user id. Tokens do not expire."""
    return jwt.encode({"sub": str(user.id)}, config.SECRET_KEY, algorithm=config.ALGORITHM)


def resolve_credential(db: Session, credential: Optional[str]) -> User:
    """Turn an Authorization header value into a user.

    Accepts "Bearer <token>" and, while ALLOW_ID_HEADER is on, the caller's
    bare numeric id.
    """
    if not credential or not credential.strip():
        raise AuthorizationError()
    credential = credential.strip()

    scheme, _, rest = credential.partition(" ")
    if scheme.lower() == "bearer" and rest.strip():
        try:
            payload = jwt.decode(rest.strip(), config.SECRET_KEY, algorithms=[config.ALGORITHM])
        except JWTError:
            raise AuthorizationError("Invalid credentials")
        subject = payload.get("sub")
    elif config.ALLOW_ID_HEADER:
        subject = credential
    else:
        raise AuthorizationError()

    user = get_user(db, subject)
    if user is None:
        raise AuthorizationError()
    return user


# Get the current caller from the Authorization header
def get_current_user(authorization: Optional[str] = Header(None), db: Session = Depends(get_db)) -> User:
    return resolve_credential(db, authorization)


def require_role(user: User, role: str, detail: str = "Forbidden") -> User:
    if user.role != role:
        raise ForbiddenError(detail)
    return user


def require_approved(user: User) -> User:
    if not user.is_approved:
        raise ForbiddenError("Account pending approval")
    return user
