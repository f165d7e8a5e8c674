"""Context package handed to a response producer for one turn."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from diychat.schemas.content import Role


class ContextMessage(BaseModel):
    """One active (unsummarized) message as the producer sees it."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str


class ContextPackage(BaseModel):
    """Prior summary plus the unsummarized tail of a session.

    ``active_messages`` never contains a message already folded into a
    summary. ``has_summary`` reflects the session's current summary pointer,
    so it stays true even when the summary blob could not be read.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    summary_text: str | None = None
    active_messages: list[ContextMessage] = Field(default_factory=list)
    has_summary: bool = False
    active_message_count: int = 0

