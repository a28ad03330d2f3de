from typing import Any
from pydantic import BaseModel

class NodeCreate(BaseModel):
    nodeId: str | None = None
    name: str | None = None

class NodeSettings(BaseModel):
    threshold: Any = None
    autoCutoff: bool | None = None

class NodeRename(BaseModel):
    name: str | None = None

class NodeOut(BaseModel):
    name: str
    voltage: float | None = None
    current: float | None = None
    power: float | None = None
    timestamp: int | None = None
    threshold: float | None = None
    autoCutoff: bool = False

class TelemetryIn(BaseModel):
    voltage: Any = None
    current: Any = None
    power: Any = None

class RelayIn(BaseModel):
    state: str | None = None

class RelayOut(BaseModel):
    state: str
    timestamp: int

class ScheduleIn(BaseModel):
    time: str | None = None
    action: str | None = None

class ScheduleToggle(BaseModel):
    enabled: bool

class ScheduleOut(BaseModel):
    id: str
    time: str
    action: str
    enabled: bool

class TimerIn(BaseModel):
    duration: float | None = None
    action: str | None = None

class TimerStatus(BaseModel):
    active: bool
    remainingTime: int
    action: str | None = None

class AlertIn(BaseModel):
    nodeId: str | None = None
    power: Any = None
