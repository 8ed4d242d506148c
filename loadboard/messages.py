"""Direct message persistence.

Messages are append-only: there is no edit or delete. A conversation is not
stored anywhere; it is the set of messages exchanged between one unordered pair
of users, in either direction.
"""
import logging
from typing import List

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from loadboard.database import MessageDB
from loadboard.directory import display_names, get_user
from loadboard.errors import ValidationError
from loadboard.helpers.time import utcnow

logger = logging.getLogger(__name__)


def send_message(db: Session, sender_id: int, receiver_id: int, content: str) -> MessageDB:
    """Store a new message and return the stored record.

    Raises ValidationError when the content is empty or either party does not
    resolve to an existing user. Nothing is written in that case.
    """
    if content is None or not str(content).strip():
        raise ValidationError("Message content is required")
    if get_user(db, sender_id) is None:
        raise ValidationError(f"Unknown sender {sender_id}")
    if get_user(db, receiver_id) is None:
        raise ValidationError(f"Unknown receiver {receiver_id}")

    message = MessageDB(
        sender_id=int(sender_id),
        receiver_id=int(receiver_id),
        content=content,
        created_at=utcnow(),
    )
    db.add(message)
    db.commit()
    db.refresh(message)

    logger.info("Message %s stored (%s -> %s)", message.id, message.sender_id, message.receiver_id)
    return message


def conversation_history(db: Session, user_a: int, user_b: int) -> List[MessageDB]:
    """All messages between two users, oldest first. Ties keep insertion order."""
    return (
        db.query(MessageDB)
        .filter(
            or_(
                and_(MessageDB.sender_id == user_a, MessageDB.receiver_id == user_b),
                and_(MessageDB.sender_id == user_b, MessageDB.receiver_id == user_a),
            )
        )
        .order_by(MessageDB.created_at.asc(), MessageDB.id.asc())
        .all()
    )


def list_conversations(db: Session, user_id: int) -> List[dict]:
    # Newest first so the latest message per partner is the first one seen
    messages = (
        db.query(MessageDB)
        .filter(or_(MessageDB.sender_id == user_id, MessageDB.receiver_id == user_id))
        .order_by(MessageDB.created_at.desc(), MessageDB.id.desc())
        .all()
    )

    latest = {}
    for message in messages:
        partner = message.receiver_id if message.sender_id == user_id else message.sender_id
        if partner not in latest:
            latest[partner] = message

    names = display_names(db, latest.keys())
    return [
        {"user_id": partner, "name": names.get(partner), "last_message": message}
        for partner, message in latest.items()
    ]
