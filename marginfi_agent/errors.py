"""Exception hierarchy shared by every layer."""


class MarginfiAgentError(Exception):
    """Base class for all application errors."""


class ConfigurationError(MarginfiAgentError):
    """Missing or invalid startup parameters. Fatal."""


class FetchError(MarginfiAgentError):
    """A chain read did not complete or returned malformed data."""


class DecodeError(MarginfiAgentError):
    """A single bank account could not be interpreted."""


class UpstreamError(MarginfiAgentError):
    """The completion service failed or timed out."""


class ValidationError(MarginfiAgentError):
    """Malformed request input."""
