from typing import Dict, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..core.security import verify_token

security = HTTPBearer()


def get_token_payload(credentials: HTTPAuthorizationCredentials = Depends(security)) -> dict:
    """Verified access token claims. Tokens are issued elsewhere."""
    payload = verify_token(credentials.credentials, "access")
    if payload.get("sub") is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials"
        )
    return payload


def get_current_user_id(payload: dict = Depends(get_token_payload)) -> str:
    return str(payload["sub"])


def get_actor(payload: dict = Depends(get_token_payload)) -> Dict[str, Optional[str]]:
    """Actor snapshot recorded on rollback and redo activities"""
    return {
        "actor_email": payload.get("email"),
        "actor_display_name": payload.get("name"),
    }
