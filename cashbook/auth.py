# cashbook/auth.py
import os
from dataclasses import dataclass
from typing import Optional
from jose import jwt, JWTError
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from cashbook.db import get_db
from sqlalchemy.orm import Session
from cashbook import models
from dotenv import load_dotenv

load_dotenv()

IDENTITY_JWT_SECRET = os.getenv("IDENTITY_JWT_SECRET")
IDENTITY_JWT_ALGORITHM = os.getenv("IDENTITY_JWT_ALGORITHM", "HS256")
IDENTITY_JWT_AUDIENCE = os.getenv("IDENTITY_JWT_AUDIENCE") or None

if not IDENTITY_JWT_SECRET:
    raise RuntimeError("IDENTITY_JWT_SECRET not set in .env")

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    """A caller verified by the identity provider."""
    external_ref: str
    email: Optional[str] = None


def verify_identity_token(token: str) -> Identity:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized: Invalid token",
        headers={"WWW-Authenticate": "Bearer"},
    )
    options = {"verify_aud": IDENTITY_JWT_AUDIENCE is not None}
    try:
        payload = jwt.decode(token, IDENTITY_JWT_SECRET, algorithms=[IDENTITY_JWT_ALGORITHM],
                             audience=IDENTITY_JWT_AUDIENCE, options=options)
    except JWTError:
        raise credentials_exception
    external_ref = payload.get("sub") or payload.get("uid")
    if not external_ref:
        raise credentials_exception
    return Identity(external_ref=str(external_ref), email=payload.get("email"))


def get_identity(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> Identity:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized: No token provided",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return verify_identity_token(credentials.credentials)


def get_current_user(identity: Identity = Depends(get_identity), db: Session = Depends(get_db)) -> models.User:
    user = db.query(models.User).filter(models.User.external_ref == identity.external_ref).first()
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found in system")
    return user
