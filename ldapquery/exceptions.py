"""
Exceptions raised by :py:class:`ldapquery.session.DirectorySession`.

python-ldap raises one exception class per LDAP result code.  We collapse
those into a handful of failures a caller can act on, each carrying a message
suitable for showing to an operator.
"""

from typing import Any

import ldap

#: python-ldap errors that mean we could not reach or bind to the server
CONNECTION_ERRORS: tuple[type[Exception], ...] = (
    ldap.SERVER_DOWN,  # type: ignore[attr-defined]
    ldap.CONNECT_ERROR,  # type: ignore[attr-defined]
    ldap.TIMEOUT,  # type: ignore[attr-defined]
    ldap.INVALID_CREDENTIALS,  # type: ignore[attr-defined]
    ldap.INAPPROPRIATE_AUTH,  # type: ignore[attr-defined]
    ldap.STRONG_AUTH_REQUIRED,  # type: ignore[attr-defined]
    ldap.CONFIDENTIALITY_REQUIRED,  # type: ignore[attr-defined]
    ldap.UNAVAILABLE,  # type: ignore[attr-defined]
    ldap.BUSY,  # type: ignore[attr-defined]
)

#: python-ldap errors that mean the server refused the query itself
PROTOCOL_ERRORS: tuple[type[Exception], ...] = (
    ldap.FILTER_ERROR,  # type: ignore[attr-defined]
    ldap.PROTOCOL_ERROR,  # type: ignore[attr-defined]
    ldap.NO_SUCH_OBJECT,  # type: ignore[attr-defined]
    ldap.INVALID_DN_SYNTAX,  # type: ignore[attr-defined]
    ldap.UNDEFINED_TYPE,  # type: ignore[attr-defined]
    ldap.INAPPROPRIATE_MATCHING,  # type: ignore[attr-defined]
    ldap.UNWILLING_TO_PERFORM,  # type: ignore[attr-defined]
)


def ldap_error_details(exc: Exception) -> tuple[str, int | None]:
    """
    Pull the most specific diagnostic text out of a python-ldap exception.

    python-ldap puts a dict in ``exc.args[0]`` with ``desc`` (the generic
    description of the result code), ``result`` (the result code) and,
    when the server supplied one, ``info`` (the server's diagnostic message).
    We prefer ``info`` over ``desc``, and ``desc`` over ``str(exc)``.

    Args:
        exc: the exception to inspect

    Returns:
        A ``(diagnostic, result_code)`` tuple.  ``result_code`` is ``None``
        if the exception did not carry one.

    """
    details: dict[str, Any] = {}
    if exc.args and isinstance(exc.args[0], dict):
        details = exc.args[0]
    diagnostic = details.get("info") or details.get("desc") or str(exc)
    if isinstance(diagnostic, bytes):
        diagnostic = diagnostic.decode("utf-8", errors="replace")
    code = details.get("result")
    return diagnostic or exc.__class__.__name__, code


class LdapQueryError(Exception):
    """
    Base class for every failure this package reports.

    Args:
        diagnostic: the most specific description of what went wrong

    Keyword Args:
        code: the LDAP result code, if the failure came from the server

    """

    #: Prepended to :py:attr:`diagnostic` to build :py:attr:`message`
    prefix: str = ""

    def __init__(self, diagnostic: str, code: int | None = None) -> None:
        self.diagnostic = diagnostic
        self.code = code
        super().__init__(self.message)

    @property
    def message(self) -> str:
        """The human readable message for this failure."""
        return f"{self.prefix}{self.diagnostic}"

    @classmethod
    def from_ldap_error(cls, exc: Exception) -> "LdapQueryError":
        """
        Build one of us from a python-ldap exception.
        """
        diagnostic, code = ldap_error_details(exc)
        return cls(diagnostic, code=code)


class ValidationError(LdapQueryError):
    """
    A required input was missing.  Raised before any network traffic.

    Args:
        field: the name of the missing input

    """

    #: Messages for each input we validate, in the order we validate them
    MESSAGES: dict[str, str] = {  # noqa: RUF012
        "server_address": "Please, enter the LDAP server address",
        "username": "Please, enter the user name",
        "password": "Please, enter the user's password",
        "filter": "Please, enter a query filter",
    }

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(self.MESSAGES.get(field, f"Please, enter the {field}"))


class ConnectionError(LdapQueryError):  # noqa: A001
    """
    We could not connect or bind to the directory server.
    """

    prefix = "Unable to connect to the LDAP server: "


class ProtocolError(LdapQueryError):
    """
    The server rejected the query: a malformed filter, an unknown attribute
    type, a search base that does not exist.
    """

    prefix = "Query error: "


class UnexpectedError(LdapQueryError):
    """
    Anything else that went wrong while talking to the server.  If the
    server sent an LDAP result code, it is part of the message.
    """

    prefix = "Unexpected error: "

    @property
    def message(self) -> str:
        if self.code is None:
            return super().message
        return f"{self.prefix}Error {self.code}: {self.diagnostic}"


class SessionBusy(LdapQueryError):
    """
    A search was started while another one is still running on the same
    session.
    """


class SessionClosed(LdapQueryError):
    """
    The session was used after :py:meth:`DirectorySession.close`.
    """


def translate_ldap_error(exc: Exception) -> LdapQueryError:
    """
    Map a python-ldap exception raised during a search onto our taxonomy.

    Args:
        exc: the python-ldap exception

    Returns:
        A :py:class:`ConnectionError`, :py:class:`ProtocolError` or
        :py:class:`UnexpectedError`, ready to be raised.

    """
    if isinstance(exc, CONNECTION_ERRORS):
        return ConnectionError.from_ldap_error(exc)
    if isinstance(exc, PROTOCOL_ERRORS):
        return ProtocolError.from_ldap_error(exc)
    return UnexpectedError.from_ldap_error(exc)
