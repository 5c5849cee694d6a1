from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator


MINUTES_PER_DAY = 24 * 60


class NotificationChannels(BaseModel):

    in_app: bool = True
    sound: bool = False
    email: bool = False


class NotificationKinds(BaseModel):

    dm: bool = True
    follows: bool = True
    comments: bool = True
    likes: bool = True


class DndWindow(BaseModel):
    """Do-not-disturb window as half-open [start, end) minutes of the day.

    A window with start > end wraps past midnight; start == end is empty.
    """

    enabled: bool = False
    start_minute_of_day: int = Field(default=22 * 60, ge=0, lt=MINUTES_PER_DAY)
    end_minute_of_day: int = Field(default=8 * 60, ge=0, lt=MINUTES_PER_DAY)

    def contains(self, minute_of_day: int) -> bool:
        if not self.enabled:
            return False
        start, end = self.start_minute_of_day, self.end_minute_of_day
        if start <= end:
            return start <= minute_of_day < end
        return minute_of_day >= start or minute_of_day < end


class NotificationPreferences(BaseModel):

    channels: NotificationChannels = Field(default_factory=NotificationChannels)
    kinds: NotificationKinds = Field(default_factory=NotificationKinds)
    dnd: DndWindow = Field(default_factory=DndWindow)
    timezone: str = "UTC"

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown timezone {value!r}") from exc
        return value

    def kind_enabled(self, kind: str) -> bool:
        return bool(getattr(self.kinds, kind, True))


class NotificationOut(BaseModel):

    id: str
    kind: str
    text: str
    time: datetime
    sound: bool = False
    email: bool = False
    thread_id: Optional[str] = None
    message_id: Optional[int] = None
    sender_id: Optional[str] = None
    read: bool = False
