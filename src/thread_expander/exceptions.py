"""Exception types raised by the expander."""


class ThreadExpanderError(Exception):
    """Base class for expander errors."""


class EventDecodeError(ThreadExpanderError):
    """A Socket Mode payload did not have the shape of a Slack event."""


class StartupError(ThreadExpanderError):
    """The service could not start (bad credentials, identity lookup failed)."""
