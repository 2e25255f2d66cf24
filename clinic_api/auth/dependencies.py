from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from clinic_api.auth import jwt_handler
from clinic_api.core import config

security = HTTPBearer(auto_error=False)


def verify_api_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> dict | None:
    if request.method == "OPTIONS" or not config.API_AUTH_REQUIRED:
        return None

    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing authorization header")

    try:
        payload = jwt_handler.decode_access_token(credentials.credentials)
    except Exception as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    if not payload.get("role"):
        raise HTTPException(status_code=401, detail="Invalid token role")
    return payload
