from datetime import timedelta, datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what SQLite hands back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# Helper function to format the time a message was received
def format_received_time(received_at: datetime, now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    today = now.date()
    yesterday = today - timedelta(days=1)

    # Check if the message was received today
    if received_at.date() == today:
        return received_at.strftime("%I:%M %p")  # E.g., "10:00 AM"
    # Check if the message was received yesterday
    elif received_at.date() == yesterday:
        return "yesterday"
    # Otherwise, return the full date
    else:
        return received_at.strftime("%B %d, %Y")  # E.g., "October 16, 2024"
