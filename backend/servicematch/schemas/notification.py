"""
ServiceMatch Backend - Notification Intent
===========================================

What:  The message pushed onto the notification queue for one provider.
Who:   Built by NotificationFanout, serialized by the publisher, consumed by
       the mailer service (outside this codebase).

Wire format (JSON, one list element per intent):
    {
        "type": "service_request_match",
        "recipient_email": "...",
        "recipient_name": "...",
        "subject": "New service request matches your service",
        "message": "A customer has posted a service request that matches your ...",
        "metadata": {
            "service_request_id": "...", "service_id": "...",
            "match_percentage": 87, "service_title": "...",
            "customer_name": "...", "request_title": "...",
            "description": "first 200 chars...", "customer_location": "Austin, TX"
        },
        "created_at": "2026-01-01T12:00:00Z"
    }
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

DESCRIPTION_PREVIEW_CHARS = 200
NOTIFICATION_TYPE = "service_request_match"


def description_preview(description: Optional[str]) -> str:
    text = description or ""
    if len(text) <= DESCRIPTION_PREVIEW_CHARS:
        return text
    return text[:DESCRIPTION_PREVIEW_CHARS] + "..."


def match_message(service_title: Optional[str], percentage: int) -> str:
    return (
        "A customer has posted a service request that matches your "
        f'"{service_title or "untitled"}" service with {percentage}% similarity.'
    )


class IntentMetadata(BaseModel):
    service_request_id: uuid.UUID
    service_id: uuid.UUID
    match_percentage: int = Field(ge=0, le=100)
    service_title: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    request_title: Optional[str] = None
    description: str = ""
    customer_location: Optional[str] = None


class NotificationIntent(BaseModel):
    type: str = NOTIFICATION_TYPE
    recipient_email: str
    recipient_name: Optional[str] = None
    subject: str = "New service request matches your service"
    message: str
    metadata: IntentMetadata
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
