"""
Error taxonomy for the command layer.

Everything under CommandError is a user-actionable failure of a single
command. StoreError is its own root: the document store failed or was
asked for a key outside the whitelist.
"""

from __future__ import annotations


class CommandError(Exception):
    """A command could not be applied."""
    pass


class CommandValidationError(CommandError):
    """Input did not match any command variant."""

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__("Invalid command: " + "; ".join(problems))


class NotFoundError(CommandError):
    """Natural-key lookup failed. Carries the keys that do exist."""

    def __init__(self, what: str, key: str, available: list[str] | None = None):
        self.what = what
        self.key = key
        self.available = available or []
        message = f'{what} "{key}" not found'
        if self.available:
            message += ". Available: " + ", ".join(self.available)
        else:
            message += ". Nothing to match against yet"
        super().__init__(message)


class AlreadyExistsError(CommandError):
    def __init__(self, what: str, key: str):
        self.what = what
        self.key = key
        super().__init__(f'{what} "{key}" already exists')


class UnsupportedOperationError(CommandError):
    """Strategy, intent or command type the executor has no handler for."""
    pass


class ConfirmationRequiredError(CommandError):
    pass


class StoreError(Exception):
    """The document store could not read or replace a document."""
    pass
