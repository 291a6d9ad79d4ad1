from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import Optional, List

GOOGLE_ISSUER = "https://accounts.google.com"

class Identity(BaseModel):
    """What a session carries about its user: {id, username, name}."""
    model_config = ConfigDict(from_attributes=True)
    id: str
    username: str
    name: str

class ProviderProfile(BaseModel):
    """A verified external identity, with every provider field optional."""
    subject: Optional[str] = None
    display_name: Optional[str] = None
    given_name: Optional[str] = None
    emails: List[EmailStr] = Field(default_factory=list)

    @classmethod
    def from_userinfo(cls, info: dict) -> "ProviderProfile":
        # OpenID Connect userinfo claims
        email = info.get("email")
        return cls(
            subject=str(info["sub"]) if info.get("sub") else None,
            display_name=info.get("name") or None,
            given_name=info.get("given_name") or None,
            emails=[email] if email else [],
        )

    @property
    def resolved_name(self) -> str:
        return self.display_name or self.given_name or "Unknown User"

    @property
    def primary_email(self) -> Optional[str]:
        return self.emails[0] if self.emails else None

class UserEnvelope(BaseModel):
    user: Optional[Identity] = None

class AuthCheckOut(BaseModel):
    isAuthenticated: bool
    user: Optional[Identity] = None

class LoginInfoOut(BaseModel):
    message: str
    loginUrl: str

class MessageOut(BaseModel):
    message: str
