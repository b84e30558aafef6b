from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
import jwt

from bazart.core.config import settings
from bazart.core.permissions import Capability, capabilities_for
from bazart.errors import ForbiddenError

security = HTTPBearer(auto_error=False)


class Identity(BaseModel):
    user_id: int
    email: str
    role: str
    capabilities: frozenset[Capability] = frozenset()

    def can(self, capability: Capability) -> bool:
        return capability in self.capabilities


def identity_from_claims(payload: dict) -> Identity:
    role = payload.get("role") or ""
    return Identity(
        user_id=int(payload["uid"]),
        email=payload.get("sub") or "",
        role=role,
        capabilities=capabilities_for(role),
    )


def get_current_identity(creds: HTTPAuthorizationCredentials = Depends(security)) -> Identity:
    if not creds:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = jwt.decode(creds.credentials, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid access token")
    try:
        return identity_from_claims(payload)
    except (KeyError, TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Token has no user id")


def require_capability(*required: Capability):
    """Caller must hold at least one of ``required``."""
    def _checker(identity: Identity = Depends(get_current_identity)) -> Identity:
        if not any(identity.can(c) for c in required):
            raise ForbiddenError("Missing permission for this operation")
        return identity
    return _checker
