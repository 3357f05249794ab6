"""
Request models for the HTTP routes
"""

from typing import Optional

from pydantic import BaseModel, Field


class MessageCreate(BaseModel):
    """
    Body of POST /rooms/{slug}/messages.

    Emptiness and length are checked by the message pipeline so that the
    route answers with the same errors as the WebSocket event.
    """
    body: Optional[str] = Field(None, description="Message text")
