"""Errors raised by the quick connect engine."""


class QuickConnectError(Exception):
    """Base class for caller-recoverable quick connect failures."""


class ForbiddenError(QuickConnectError):
    """A state precondition was not met (e.g. quick connect is not active)."""


class BadRequestError(QuickConnectError):
    """The caller supplied malformed input."""


class CodeGenerationError(RuntimeError):
    """Unique code or secret allocation failed; the configuration is unusable."""
