"""
Bind to an LDAP directory, run a filter query and inspect the entries it
returns, one attribute at a time.
"""

from .config import ConnectionConfig
from .exceptions import (
    ConnectionError,
    LdapQueryError,
    ProtocolError,
    SessionBusy,
    SessionClosed,
    UnexpectedError,
    ValidationError,
)
from .session import DirectorySession, Entry, SearchResultSet, SessionState

__version__ = "1.0.0"

__all__ = [
    "ConnectionConfig",
    "ConnectionError",
    "DirectorySession",
    "Entry",
    "LdapQueryError",
    "ProtocolError",
    "SearchResultSet",
    "SessionBusy",
    "SessionClosed",
    "SessionState",
    "UnexpectedError",
    "ValidationError",
]
