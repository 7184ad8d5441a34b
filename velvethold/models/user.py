"""User identity models."""

from pydantic import BaseModel
from typing import Optional


class CurrentUser(BaseModel):
    """Authenticated caller resolved from a Supabase access token."""
    id: str
    email: Optional[str] = None
