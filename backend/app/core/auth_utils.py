import logging
import os

from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError

from app.lib.api_client import supabase

logger = logging.getLogger("journalportal.auth")

# === Auth settings ===
# The secret comes from the Supabase project's JWT settings; tokens arrive as HTTP Bearer.
SUPABASE_JWT_SECRET = os.environ.get("SUPABASE_JWT_SECRET", "mock-secret-replace-later")
ALGORITHM = "HS256"

security = HTTPBearer()


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)) -> dict:
    """
    Verify the bearer token and return `{"id": <auth uid>, "email": ...}`.

    HS256 tokens are checked locally; anything else (asymmetric signing keys) is checked
    against the Supabase Auth API.
    """
    token = credentials.credentials
    try:
        header = jwt.get_unverified_header(token)
        if header.get("alg") == ALGORITHM and SUPABASE_JWT_SECRET:
            payload = jwt.decode(token, SUPABASE_JWT_SECRET, algorithms=[ALGORITHM], audience="authenticated")
            user_id = payload.get("sub")
            if user_id is None:
                raise HTTPException(status_code=401, detail="Invalid token payload")
            return {"id": str(user_id), "email": payload.get("email")}

        try:
            response = supabase.auth.get_user(token)
            user = response.user if response else None
        except Exception as e:
            # missing config / network errors must not leak as a 500
            logger.warning("Auth API token check failed: %s", e)
            raise HTTPException(status_code=401, detail="Token is invalid or expired")

        if not user:
            raise HTTPException(status_code=401, detail="Invalid token payload")
        return {"id": str(user.id), "email": user.email}
    except JWTError as e:
        logger.info("JWT verification failed: %s", e)
        raise HTTPException(status_code=401, detail="Token is invalid or expired")
