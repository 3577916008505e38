"""
User API Backend — Email Request Schema
========================================

What:  Pydantic model for POST /email/send bodies.
"""

from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field


class EmailMessage(BaseModel):
    to: List[EmailStr] = Field(min_length=1, max_length=50, description="Recipients (max 50)")
    subject: str = Field(min_length=1, max_length=200)
    body: str = Field(min_length=1, max_length=10_000, description="Plain-text body")
    html: Optional[str] = Field(default=None, max_length=50_000)


class EmailSentResponse(BaseModel):
    message: str = "Email sent successfully"
    recipients: int
