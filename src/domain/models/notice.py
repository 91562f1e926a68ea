"""User-facing notices.

Notices are recoverable, non-blocking notifications (a failed turn, an
analysis fallback, a story that could not be saved). They never change
session state on their own.
"""

from enum import Enum

from pydantic import BaseModel


class NoticeLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class Notice(BaseModel):
    model_config = {"frozen": True}

    level: NoticeLevel
    title: str
    message: str
