from datetime import datetime, timezone
from sqlmodel import SQLModel, Field, Column, JSON

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

class StoredDocument(SQLModel, table=True):
    """One whole JSON document per domain (nodes, relay_commands, schedules, timers)."""
    domain: str = Field(primary_key=True, index=True)
    body: dict = Field(sa_column=Column(JSON))
    updated_at: datetime = Field(default_factory=utcnow)
