"""Pydantic models for presentation-layer request bodies."""

from pydantic import BaseModel


class SignUpRequest(BaseModel):
    """Sign-up form fields."""

    first_name: str
    last_name: str
    email: str
    password: str
    confirm_password: str
    city: str
    country: str | None = None


class LoginRequest(BaseModel):
    """Login form fields."""

    email: str
    password: str
