from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, SQLModel


class WorkspaceAvailability(SQLModel, table=True):
    """Stored availability config for one workspace (JSON-shaped, validated on write)."""

    __tablename__ = "workspace_availability"

    id: Optional[int] = Field(default=None, primary_key=True)
    workspace_id: str = Field(index=True, unique=True, max_length=64)
    timezone: str
    slot_minutes: int = Field(default=30)
    weekly_availability: Dict[str, List[Dict[str, str]]] = Field(default_factory=dict, sa_column=Column(JSON))
    exceptions: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    locations: List[Dict[str, Optional[str]]] = Field(default_factory=list, sa_column=Column(JSON))
    version: int = Field(default=1)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
