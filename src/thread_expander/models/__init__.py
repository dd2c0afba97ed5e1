"""Data models for the expansion pipeline."""

from thread_expander.models.expansion import AuthorDisplay, ExpansionRecord, MaterializedMessage
from thread_expander.models.slack import MessageSubtype, ThreadEvent

__all__ = [
    "AuthorDisplay",
    "ExpansionRecord",
    "MaterializedMessage",
    "MessageSubtype",
    "ThreadEvent",
]
