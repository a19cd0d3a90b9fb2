from typing import List, Optional

from pydantic import BaseModel, Field


class CrontabLine(BaseModel):
    index: int
    # "entry" | "comment" | "blank"
    kind: str
    text: str
    original_index: int


class CrontabView(BaseModel):
    user: str
    # Ergebnis des Loads: success, no_existing_crontab, access_denied, ...
    status: str
    lines: List[CrontabLine] = Field(default_factory=list)
    detail: Optional[str] = None


class EntryCreate(BaseModel):
    schedule: str
    command: str


class CrontabReplace(BaseModel):
    content: str


class UserSelect(BaseModel):
    user: Optional[str] = None


class InstallResult(BaseModel):
    status: str
    stage: Optional[str] = None
    detail: Optional[str] = None
    reload_error: Optional[str] = None
    crontab: Optional[CrontabView] = None


class CapabilitiesView(BaseModel):
    crontab_available: bool
    systemctl_available: bool = False
    service_active: bool = False
    warnings: List[str] = Field(default_factory=list)
