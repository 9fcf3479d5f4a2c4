# salon_booking/schemas/task_payloads.py
from pydantic import BaseModel, Field
from typing import Dict, Any
from datetime import datetime, timezone
import uuid


class NotificationPayload(BaseModel):
    """Body posted to the notification service"""
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Unique event identifier")
    event_type: str = Field(..., description="Event name, e.g. appointment.confirmed")
    salon_id: str = Field(..., description="Salon the event belongs to")
    data: Dict[str, Any] = Field(default_factory=dict, description="Event body")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
