"""Email message model."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Message:
    """An email to deliver.

    ``id`` is the idempotency key: two messages with the same id are the
    same logical send, whatever their other fields say.
    """

    id: str
    to: str
    subject: str = ""
    body: str = ""

    def __post_init__(self):
        if not self.id:
            raise ValueError("Message id must be a non-empty string")
