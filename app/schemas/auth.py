from pydantic import BaseModel, Field


class RegisterRequest(BaseModel):
    email: str  # plain str to allow .local and other dev domains
    password: str = Field(min_length=8)
    fullName: str = ""
    phone: str = ""


class LoginRequest(BaseModel):
    email: str
    password: str


class RefreshRequest(BaseModel):
    refreshToken: str


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class UserOut(BaseModel):
    id: str
    email: str
    fullName: str = ""
    phone: str = ""
    role: str
