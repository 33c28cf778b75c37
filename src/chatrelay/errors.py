from __future__ import annotations


class RelayError(Exception):
    """Base class for failures raised inside the chat relay."""


class StoreError(RelayError):
    """The conversation store could not complete a read or write."""


class GenerationError(RelayError):
    """The answer generator failed, timed out, or returned nothing usable."""


class SystemPromptMissingError(RelayError):
    """The system instruction resource could not be loaded at startup."""


class InvalidRequestError(RelayError):
    """A caller supplied a request that cannot be served."""
