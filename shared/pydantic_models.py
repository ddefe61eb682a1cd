# shared/pydantic_models.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Literal, Optional


class ContactInfo(BaseModel):
    """Member-supplied contact details stored on CommunityMember.contact_info."""
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    phone: Optional[str] = Field(None, max_length=40, description="Phone number")
    email: Optional[str] = Field(None, max_length=254, description="Contact email")
    preferred_method: Optional[Literal['email', 'phone', 'sms']] = Field(
        None, description="How the member prefers to be contacted"
    )
    notes: Optional[str] = Field(None, max_length=1000)

    def is_empty(self) -> bool:
        return not any(self.model_dump().values())
