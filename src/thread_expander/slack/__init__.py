"""Slack side of the expander: event intake, classification, materialization, publishing."""

from thread_expander.slack.classifier import Classification, SkipReason, classify
from thread_expander.slack.handlers import ExpansionPipeline
from thread_expander.slack.materializer import Materializer, UserDirectory
from thread_expander.slack.publisher import Publisher
from thread_expander.slack.receiver import EventReceiver, decode_event

__all__ = [
    "Classification",
    "EventReceiver",
    "ExpansionPipeline",
    "Materializer",
    "Publisher",
    "SkipReason",
    "UserDirectory",
    "classify",
    "decode_event",
]
