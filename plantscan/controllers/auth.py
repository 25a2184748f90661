from fastapi import APIRouter
from pydantic import BaseModel

from plantscan.services.validation import (
    PasswordRequirements,
    validate_name,
    validate_password,
)

router = APIRouter(prefix="/auth")


class SignupCheckRequest(BaseModel):
    full_name: str = ""
    password: str = ""


class NameCheck(BaseModel):
    valid: bool
    error: str


class SignupCheckResponse(BaseModel):
    name: NameCheck
    password: PasswordRequirements
    valid: bool


@router.post("/validate-signup", response_model=SignupCheckResponse)
async def validate_signup(body: SignupCheckRequest):
    """Run the signup form rules server-side; no account is created."""
    name = validate_name(body.full_name)
    password = validate_password(body.password)
    return SignupCheckResponse(
        name=NameCheck(valid=name.valid, error=name.error),
        password=password,
        valid=name.valid and password.meets_all,
    )
