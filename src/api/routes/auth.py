"""Password check used by the management UI before it stores the bearer token."""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from src.auth.middleware import check_password

router = APIRouter()


class VerifyRequest(BaseModel):
    password: str


@router.post("/auth/verify")
async def verify_password(body: VerifyRequest):
    """Return success if the password matches the shared secret."""
    if check_password(body.password):
        return {"success": True}
    return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"success": False})
