from typing import Dict, Iterable, Optional

from sqlalchemy.orm import Session

from loadboard.database import User
from loadboard.errors import NotFoundError


def _as_id(user_id) -> Optional[int]:
    if isinstance(user_id, bool):
        return None
    if isinstance(user_id, int):
        return user_id
    if isinstance(user_id, str) and user_id.strip().isdigit():
        return int(user_id.strip())
    return None


# Resolve a numeric identifier (or its string form) to a user record
def get_user(db: Session, user_id) -> Optional[User]:
    uid = _as_id(user_id)
    if uid is None:
        return None
    return db.get(User, uid)


def require_user(db: Session, user_id) -> User:
    user = get_user(db, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


def display_names(db: Session, ids: Iterable[int]) -> Dict[int, str]:
    """Map user ids to display names; unknown ids are left out."""
    wanted = {i for i in ids if i is not None}
    if not wanted:
        return {}
    rows = db.query(User.id, User.name).filter(User.id.in_(wanted)).all()
    return {row.id: row.name for row in rows}
