"""Error taxonomy for the command processor.

ParseError and StateError are expected failures: the dispatcher turns them
into ``error: <message>`` results. CollaboratorError covers anything the
browser engine raises and is caught once at the loop boundary.
"""
from __future__ import annotations


class BrowserCommandError(Exception):
    """Base class for all cfagentbrowser errors."""


class ConfigError(BrowserCommandError):
    """Invalid configuration detected at startup."""


class ParseError(BrowserCommandError):
    """Malformed verb or arguments."""


class StateError(BrowserCommandError):
    """The registry cannot satisfy the request in its current state."""


class NoActiveSessionError(StateError):
    def __init__(self) -> None:
        super().__init__("no active session. create one with new-session first")


class StaleActiveError(StateError):
    def __init__(self) -> None:
        super().__init__("active session does not exist")


class NotFoundError(StateError):
    """Session id is malformed or not present in the registry."""


class CollaboratorError(BrowserCommandError):
    """The browser engine failed."""


class LaunchError(CollaboratorError):
    """The shared browser could not be started."""
