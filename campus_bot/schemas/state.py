from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

IDLE_STEP = ""
COMPLETED_STEP = "completed"

# Registration substeps
STEP_FIRST_NAME = "first_name"
STEP_LAST_NAME = "last_name"
STEP_AGE = "age"
STEP_GENDER = "gender"
STEP_EMAIL = "email"
STEP_EMAIL_VERIFICATION = "email_verification"

# Steps owned by feature handlers
STEP_TICKET_REPLY = "ticket_reply"
STEP_TICKET_USER_REPLY = "ticket_user_reply"
STEP_DOC_RESPONSE = "doc_response"
STEP_SEND_NEWS = "send_news"
STEP_MOODLE_TOKEN = "moodle_token"
STEP_REMINDER_CREATE = "reminder_create"


class ConversationState(BaseModel):
    """Per-user session record persisted between events.

    Serialized field names match the records already written by the
    production bot (``user_registration_step`` / ``user_registration_data``),
    so existing sessions in redis keep working.
    """

    model_config = ConfigDict(populate_by_name=True)

    last_command: str = ""
    last_updated_at: Optional[datetime] = Field(default=None, alias="last_updated")
    step: str = Field(default=IDLE_STEP, alias="user_registration_step")
    data: dict[str, str] = Field(default_factory=dict, alias="user_registration_data")

    @field_validator("data", mode="before")
    @classmethod
    def _none_data_is_empty(cls, value):
        return {} if value is None else value

    @field_validator("step", mode="before")
    @classmethod
    def _none_step_is_idle(cls, value):
        return IDLE_STEP if value is None else value

    @property
    def is_idle(self) -> bool:
        """Idle means no flow owns the next free-text message."""
        return self.step in (IDLE_STEP, COMPLETED_STEP)

    def ensure_data(self) -> dict[str, str]:
        if self.data is None:
            self.data = {}
        return self.data

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, raw: str) -> "ConversationState":
        return cls.model_validate_json(raw)
