from typing import List
import json
import logging

from fastapi import FastAPI, Depends, Request, WebSocket, WebSocketDisconnect, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as SchemaError
from sqlalchemy.orm import Session
import sentry_sdk

from loadboard import config
from loadboard.auth import get_current_user
from loadboard.database import get_db, init_db, SessionLocal, User
from loadboard.directory import get_user
from loadboard.errors import ValidationError
from loadboard.fanout import FanOut
from loadboard.marketplace import router as marketplace_router
from loadboard.messages import conversation_history, list_conversations, send_message
from loadboard.models import ConversationSummary, Message, MessageCreate, SocketMessage

# Sentry initialization
sentry_sdk.init(
    dsn=config.SENTRY_DSN,
    traces_sample_rate=0.2,
    profiles_sample_rate=0.1,
)

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="TruckFlow load board")

# Add CORS middleware; the browser app may be served from anywhere
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Live connections, keyed by the user whose channel they joined
app.state.fanout = FanOut()

# Initialize the database
init_db()

app.include_router(marketplace_router)


def get_fanout(request: Request) -> FanOut:
    return request.app.state.fanout


# Malformed bodies are reported as plain 400s like every other validation failure
@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    detail = f"{field}: {first.get('msg')}" if field else str(first.get("msg", "Invalid request"))
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": detail})


# Send a message as the authenticated caller and push it to both parties
@app.post("/api/messages/send", response_model=Message)
async def send(
    data: MessageCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    fanout: FanOut = Depends(get_fanout),
):
    message = send_message(db, user.id, data.receiverId, data.content)
    await fanout.publish(message)
    return message


@app.get("/api/messages", response_model=List[ConversationSummary])
async def conversations(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return [
        ConversationSummary(
            user_id=item["user_id"],
            name=item["name"],
            last_message=Message.model_validate(item["last_message"]),
        )
        for item in list_conversations(db, user.id)
    ]


# Conversation between the caller and another user, oldest first
@app.get("/api/messages/{other_id}", response_model=List[Message])
async def history(other_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return conversation_history(db, user.id, other_id)


async def _socket_error(websocket: WebSocket, detail: str):
    await websocket.send_json({"event": "error", "data": {"detail": detail}})


@app.websocket("/ws")
async def realtime(websocket: WebSocket):
    """Realtime channel.

    Frames are JSON objects ``{"event": ..., "data": ...}``. ``join`` binds the
    connection to a user's channel, ``send_message`` stores a message and
    pushes ``receive_message`` to both participants. Each frame gets its own
    short session; an idle listener holds no database connection.
    """
    fanout: FanOut = websocket.app.state.fanout
    await websocket.accept()
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                frame = None
            if not isinstance(frame, dict):
                await _socket_error(websocket, "Malformed frame")
                continue
            event = frame.get("event")
            data = frame.get("data")

            if event == "join":
                # The channel is not bound to any credential; anyone may join any id
                with SessionLocal() as db:
                    user = get_user(db, data)
                    user_id = user.id if user is not None else None
                if user_id is None:
                    await _socket_error(websocket, f"Unknown user {data}")
                    continue
                fanout.join(user_id, websocket)
                await websocket.send_json({"event": "joined", "data": user_id})

            elif event == "send_message":
                try:
                    payload = SocketMessage.model_validate(data)
                    with SessionLocal() as db:
                        message = send_message(db, payload.senderId, payload.receiverId, payload.content)
                except SchemaError:
                    await _socket_error(websocket, "senderId, receiverId and content are required")
                    continue
                except ValidationError as exc:
                    await _socket_error(websocket, exc.detail)
                    continue
                await fanout.publish(message)

            else:
                await _socket_error(websocket, f"Unknown event {event!r}")
    except WebSocketDisconnect:
        pass
    finally:
        fanout.leave(websocket)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=3000)
