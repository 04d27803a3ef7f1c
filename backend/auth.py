"""Login and bearer-token resolution.

Tokens are ``base64("<user id>:<issued at, epoch ms>")``; the user id is the
only part that is checked.
"""

import base64
import binascii
import logging
import time
import uuid

from fastapi import Depends, Header
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

import config
from db import get_session
from errors import AuthenticationError, ValidationError
from models import UserProfile

logger = logging.getLogger(__name__)


def issue_token(user: UserProfile) -> str:
    raw = f"{user.id}:{int(time.time() * 1000)}"
    return base64.b64encode(raw.encode("utf-8")).decode("ascii")


def resolve_token(session: Session, token: str | None) -> UserProfile | None:
    if not token:
        return None
    try:
        user_id = base64.b64decode(token, validate=True).decode("utf-8").split(":")[0]
    except (binascii.Error, UnicodeDecodeError):
        return None
    if not user_id:
        return None
    return session.get(UserProfile, user_id)


def login(session: Session, username: str, password: str) -> tuple[str, UserProfile]:
    """Check the shared password and return a token, creating the user on first login."""
    if not username or not username.strip():
        raise ValidationError("Username is required")
    if not password:
        raise ValidationError("Password is required")
    if password != config.LOGIN_PASSWORD:
        raise AuthenticationError("Incorrect password")

    username = username.strip().lower()
    user = session.exec(select(UserProfile).where(UserProfile.username == username)).first()
    if not user:
        user = UserProfile(id=str(uuid.uuid4()), username=username, display_name=username)
        session.add(user)
        try:
            session.commit()
        except IntegrityError:
            # Created concurrently by another login
            session.rollback()
            user = session.exec(select(UserProfile).where(UserProfile.username == username)).one()
        else:
            session.refresh(user)
            logger.info(f"Created user profile {user.id} for {username!r}")

    return issue_token(user), user


def get_current_user(
    authorization: str | None = Header(default=None),
    session: Session = Depends(get_session),
) -> UserProfile:
    """FastAPI dependency resolving the ``Authorization: Bearer`` header to a user."""
    token = authorization.replace("Bearer ", "", 1).strip() if authorization else None
    user = resolve_token(session, token)
    if not user:
        raise AuthenticationError("Unauthorized")
    return user
