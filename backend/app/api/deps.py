"""FastAPI dependencies for the API layer."""

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from starlette.requests import HTTPConnection

from app.core.security import decode_access_token
from app.database import get_db
from app.models import User
from lionsphere.realtime import MessageRelay, PresenceTable, TypingRelay

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    """Retrieve the current user from the JWT token."""

    return get_user_from_token(token, db)


def get_user_from_token(token: str, db: Session) -> User:
    """Resolve a user from a JWT token or raise an HTTP 401 error."""

    payload = decode_access_token(token)
    # tokens minted by the legacy auth service carry the user id as "id"
    sub = payload.get("sub", payload.get("id"))
    if sub is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )

    try:
        user_id = int(sub)
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        ) from None

    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )
    return user


def get_presence_table(connection: HTTPConnection) -> PresenceTable:
    return connection.app.state.presence_table


def get_message_relay(connection: HTTPConnection) -> MessageRelay:
    return connection.app.state.message_relay


def get_typing_relay(connection: HTTPConnection) -> TypingRelay:
    return connection.app.state.typing_relay
