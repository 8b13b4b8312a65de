from pydantic import BaseModel
from typing import Optional


class LoginRequest(BaseModel):
    """Google Sign-In credential (an ID token)"""
    credential: Optional[str] = None


class UserInfo(BaseModel):
    email: str
    name: Optional[str] = None
    picture: Optional[str] = None


class LoginResponse(BaseModel):
    user: UserInfo


class AuthStatusResponse(BaseModel):
    authenticated: bool
    user: Optional[UserInfo] = None
    error: Optional[str] = None
