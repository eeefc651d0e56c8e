"""
Directory query sessions.

A :py:class:`DirectorySession` owns one connection to a directory server and
at most one :py:class:`SearchResultSet`.  Each call to
:py:meth:`DirectorySession.search` throws away the previous result set before
it talks to the server, runs a paged subtree search and keeps every entry it
gets back.  Callers then pick entries by path and read their attributes.
"""

import enum
import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import suppress
from dataclasses import dataclass, field
from functools import wraps
from typing import Any

from ldap.controls import SimplePagedResultsControl

from ldapquery import ldap

from .config import ConnectionConfig, parse_path
from .exceptions import (
    ConnectionError,
    LdapQueryError,
    SessionBusy,
    SessionClosed,
    UnexpectedError,
    ValidationError,
    translate_ldap_error,
)
from .typing import LDAPAttributes, LDAPData

logger = logging.getLogger(__name__)

#: Number of entries we ask the server for per page
PAGE_SIZE: int = 255


def wrap_filter(text: str) -> str:
    """
    Wrap operator-supplied filter text in one pair of parentheses.

    Example:
        >>> wrap_filter("samAccountName=jdoe")
        '(samAccountName=jdoe)'

    """
    return f"({text})"


def to_text(value: Any) -> str:
    """
    Return the string form of one attribute value.

    python-ldap gives us ``bytes``.  Values that are valid UTF-8 are decoded;
    anything else (``objectGUID``, ``objectSid``, ``jpegPhoto``) is rendered
    as hex.
    """
    if isinstance(value, bytes):
        try:
            return value.decode("utf-8")
        except UnicodeDecodeError:
            return value.hex()
    return str(value)


# -----------------------
# Results
# -----------------------


@dataclass
class Entry:
    """
    One directory object returned by a search.

    Attribute lookups are case-insensitive, as they are in Active Directory;
    :py:meth:`attribute_names` reports names as the server sent them.
    """

    #: The distinguished name of the entry.  Unique within a result set.
    path: str
    #: Attribute name to list of raw values
    properties: LDAPAttributes = field(default_factory=dict)

    def _lookup(self, name: str) -> list[bytes]:
        if name in self.properties:
            return self.properties[name]
        folded = name.casefold()
        for key, values in self.properties.items():
            if key.casefold() == folded:
                return values
        return []

    def attribute_names(self) -> list[str]:
        """
        Return our attribute names in ordinal (code point) order.
        """
        return sorted(self.properties)

    def get_values(self, name: str) -> list[str]:
        """
        Return the string form of every value of attribute ``name``, or an
        empty list if we don't have that attribute.
        """
        return [to_text(value) for value in self._lookup(name)]

    def get_value(self, name: str) -> str | None:
        """
        Return the string form of the first value of attribute ``name``.

        A missing attribute is not an error: we return ``None`` if we don't
        have the attribute or it has no values.
        """
        values = self._lookup(name)
        if not values:
            return None
        return to_text(values[0])


@dataclass
class SearchResultSet:
    """
    Every entry returned by one search, in the order the server sent them.
    """

    #: The filter, as sent to the server
    searchfilter: str
    #: The entries we got back
    entries: list[Entry] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[Entry]:
        return iter(self.entries)

    @property
    def count(self) -> int:
        """The number of entries in the result set."""
        return len(self.entries)

    @property
    def empty(self) -> bool:
        """``True`` if the search matched nothing."""
        return not self.entries

    def paths(self) -> list[str]:
        """
        Return the path of each entry, in ordinal (code point) order.
        """
        return sorted(entry.path for entry in self.entries)

    def get(self, path: str) -> Entry | None:
        """
        Return the entry whose path is exactly ``path``, or ``None``.
        """
        for entry in self.entries:
            if entry.path == path:
                return entry
        return None


# -----------------------
# Session
# -----------------------


class SessionState(enum.Enum):
    #: No bound connection: freshly opened (binding is lazy), or the last
    #: bind or transport operation failed
    UNBOUND = "unbound"
    #: Bound, with no results loaded
    BOUND = "bound"
    #: Bound, and the last search returned at least one entry
    HAS_RESULTS = "has_results"
    #: :py:meth:`DirectorySession.close` was called
    CLOSED = "closed"


def exclusive(func: Callable) -> Callable:
    """
    Decorator for session methods that must not run concurrently on the
    same session.

    A caller on another thread gets :py:exc:`SessionBusy` instead of waiting;
    a caller on a closed session gets :py:exc:`SessionClosed`.  The lock is
    reentrant so :py:meth:`DirectorySession.close` can run on the searching
    thread.
    """

    @wraps(func)
    def wrapper(self, *args, **kwargs) -> Any:
        if self.state == SessionState.CLOSED:
            msg = "This session has been closed"
            raise SessionClosed(msg)
        if not self._lock.acquire(blocking=False):
            msg = "A search is already running on this session"
            raise SessionBusy(msg)
        try:
            return func(self, *args, **kwargs)
        finally:
            self._lock.release()

    return wrapper


class DirectorySession:
    """
    A connection to one directory server plus the results of the last search
    run against it.

    Use :py:meth:`open` to build one.  Sessions are context managers; leaving
    the ``with`` block closes the session.

    Example::

        config = ConnectionConfig("dc01.example.com", "CORP\\\\alice", "secret")
        with DirectorySession.open(config) as session:
            session.search("samAccountName=alice")
            entry = session.select_entry(session.list_entries()[0])
            print(entry.get_value("mail"))

    Args:
        config: the connection settings

    """

    #: Number of entries we ask the server for per page
    page_size: int = PAGE_SIZE

    def __init__(self, config: ConnectionConfig) -> None:
        self.logger = logger
        self.config = config
        #: The URI we hand to :py:func:`ldap.initialize`, and the base DN we
        #: search from.  An empty base DN is replaced by the server's default
        #: naming context when we bind.
        self.uri, self.basedn = parse_path(config.bind_target)
        #: The results of the last search, or ``None``
        self.results: SearchResultSet | None = None
        self.state: SessionState = SessionState.UNBOUND
        self._connection: ldap.ldapobject.LDAPObject | None = None  # type: ignore[name-defined]
        self._bound: bool = False
        self._lock = threading.RLock()

    @classmethod
    def open(cls, config: ConnectionConfig) -> "DirectorySession":
        """
        Validate ``config`` and build a session for it.

        Binding is deferred to the first :py:meth:`search` unless
        ``config.bind_on_open`` is set, so bad credentials are reported no
        later than the first search.

        Args:
            config: the connection settings

        Raises:
            ValidationError: server address, username or password is blank
            ConnectionError: we could not initialize the connection, or
                ``bind_on_open`` is set and the bind failed

        Returns:
            A new session.

        """
        config.validate()
        session = cls(config)
        session._connection = session._initialize()
        session.logger.info(
            "session.open uri=%s basedn=%s user=%s",
            session.uri,
            session.basedn or "<default>",
            config.username,
        )
        if config.bind_on_open:
            session._bind()
        return session

    def __enter__(self) -> "DirectorySession":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self.state == SessionState.CLOSED

    def _initialize(self) -> ldap.ldapobject.LDAPObject:  # type: ignore[name-defined]
        """
        Create the python-ldap connection object and set its options.  No
        network traffic happens here.

        Raises:
            ConnectionError: python-ldap rejected the URI

        Returns:
            An unbound LDAPObject.

        """
        config = self.config
        try:
            ldap_object = ldap.initialize(self.uri)
        except ldap.LDAPError as e:  # type: ignore[attr-defined]
            raise ConnectionError.from_ldap_error(e) from e
        ldap_object.set_option(ldap.OPT_PROTOCOL_VERSION, ldap.VERSION3)  # type: ignore[attr-defined]
        if config.follow_referrals:
            ldap_object.set_option(ldap.OPT_REFERRALS, 1)  # type: ignore[attr-defined]
        else:
            ldap_object.set_option(ldap.OPT_REFERRALS, 0)  # type: ignore[attr-defined]
        if config.timeout is not None:
            ldap_object.set_option(ldap.OPT_NETWORK_TIMEOUT, float(config.timeout))  # type: ignore[attr-defined]
        if config.tls_verify == "always":
            ldap_object.set_option(ldap.OPT_X_TLS_REQUIRE_CERT, ldap.OPT_X_TLS_DEMAND)  # type: ignore[attr-defined]
        else:
            ldap_object.set_option(ldap.OPT_X_TLS_REQUIRE_CERT, ldap.OPT_X_TLS_NEVER)  # type: ignore[attr-defined]
        if config.tls_ca_certfile:
            ldap_object.set_option(ldap.OPT_X_TLS_CACERTFILE, config.tls_ca_certfile)  # type: ignore[attr-defined]
        ldap_object.set_option(ldap.OPT_X_TLS_NEWCTX, 0)  # type: ignore[attr-defined]
        return ldap_object

    def _bind(self) -> None:
        """
        Bind with the configured credentials, reconnecting first if an earlier
        failure dropped our connection.  If no base DN was given, look up the
        server's default naming context.

        Raises:
            ConnectionError: StartTLS, the bind or the RootDSE read failed
            UnexpectedError: the server does not advertise a naming context

        """
        if self._connection is None:
            self._connection = self._initialize()
        try:
            if self.config.use_starttls:
                self._connection.start_tls_s()
            self._connection.simple_bind_s(self.config.username, self.config.password)
            if not self.basedn:
                self.basedn = self._default_naming_context()
        except ldap.LDAPError as e:  # type: ignore[attr-defined]
            self.logger.warning(
                "session.bind.failed uri=%s user=%s error=%s",
                self.uri,
                self.config.username,
                e,
            )
            self._drop_connection()
            raise ConnectionError.from_ldap_error(e) from e
        self._bound = True
        self.state = SessionState.BOUND
        self.logger.info(
            "session.bind.success uri=%s user=%s", self.uri, self.config.username
        )

    def _default_naming_context(self) -> str:
        """
        Read the RootDSE and return ``defaultNamingContext``, or the first
        of ``namingContexts`` for servers that are not Active Directory.
        """
        keys = ["defaultNamingContext", "namingContexts"]
        rdata = self.connection.search_s(
            "",
            ldap.SCOPE_BASE,  # type: ignore[attr-defined]
            "(objectClass=*)",
            keys,
        )
        for _, attrs in rdata:
            if not isinstance(attrs, dict):
                continue
            for key in keys:
                if attrs.get(key):
                    basedn = to_text(attrs[key][0])
                    self.logger.debug("session.rootdse %s=%s", key, basedn)
                    return basedn
        msg = f"{self.uri} does not advertise a default naming context"
        raise UnexpectedError(msg)

    def _drop_connection(self) -> None:
        """
        Unbind and forget our connection, ignoring errors from the unbind.
        The next search will reconnect.
        """
        ldap_object, self._connection = self._connection, None
        self._bound = False
        if self.state != SessionState.CLOSED:
            self.state = SessionState.UNBOUND
        if ldap_object is not None:
            with suppress(ldap.LDAPError):  # type: ignore[attr-defined]
                ldap_object.unbind_s()

    @property
    def connection(self) -> ldap.ldapobject.LDAPObject:  # type: ignore[name-defined]
        """
        The python-ldap connection object.

        Raises:
            SessionClosed: the session has been closed

        """
        if self._connection is None:
            msg = "This session has no connection"
            raise SessionClosed(msg)
        return self._connection

    def _get_pctrls(self, serverctrls):
        """
        Return the paged results controls from the controls the server sent
        back with a page.
        """
        return [
            c
            for c in serverctrls or []
            if c.controlType == SimplePagedResultsControl.controlType
        ]

    def _paged_search(self, basedn: str, searchfilter: str) -> list[LDAPData]:
        """
        Run a subtree search for all user attributes, following the paged
        results cookie until the server has sent every page.

        Args:
            basedn: The base DN to search from.
            searchfilter: The LDAP search filter string.

        Returns:
            List of LDAPData tuples (dn, attrs).

        """
        # The cookie starts out empty; the server hands us a new one with
        # each page until there are no more.
        paging = SimplePagedResultsControl(True, size=self.page_size, cookie="")  # noqa: FBT003
        controls = [paging]
        results: list[LDAPData] = []
        pages = 0
        while True:
            msgid = self.connection.search_ext(
                basedn,
                ldap.SCOPE_SUBTREE,  # type: ignore[attr-defined]
                searchfilter,
                None,
                serverctrls=controls,
            )
            _, rdata, _, serverctrls = self.connection.result3(msgid)
            pages += 1
            for dn, attrs in rdata:
                # Search references come back as (None, [urls]); skip them
                if isinstance(attrs, dict):
                    results.append((dn, attrs))
            paged_controls = self._get_pctrls(serverctrls)
            if not paged_controls:
                break
            controls[0].cookie = paged_controls[0].cookie
            if not paged_controls[0].cookie:
                break
        self.logger.debug(
            "session.search.pages filter=%s pages=%d entries=%d",
            searchfilter,
            pages,
            len(results),
        )
        return results

    def _clear_results(self) -> None:
        self.results = None
        if self.state == SessionState.HAS_RESULTS:
            self.state = SessionState.BOUND

    @exclusive
    def search(self, filter_text: str) -> SearchResultSet:
        """
        Run ``filter_text`` against the server and keep the results.

        The previous result set is discarded *before* the search is sent, so
        if the search fails the session is left with no results at all.

        Args:
            filter_text: an LDAP filter without its enclosing parentheses,
                e.g. ``samAccountName=jdoe``

        Raises:
            ValidationError: ``filter_text`` is blank
            SessionBusy: another search is running on this session
            SessionClosed: the session has been closed
            ConnectionError: we could not reach or bind to the server
            ProtocolError: the server rejected the query
            UnexpectedError: anything else went wrong

        Returns:
            The new result set, which may be empty.

        """
        if filter_text is None or not filter_text.strip():
            raise ValidationError("filter")
        self._clear_results()
        searchfilter = wrap_filter(filter_text)
        if not self._bound:
            self._bind()
        self.logger.info(
            "session.search.start basedn=%s filter=%s", self.basedn, searchfilter
        )
        try:
            rdata = self._paged_search(self.basedn, searchfilter)
        except LdapQueryError:
            raise
        except ldap.LDAPError as e:  # type: ignore[attr-defined]
            error = translate_ldap_error(e)
            self.logger.warning(
                "session.search.failed filter=%s error=%s", searchfilter, error.message
            )
            if isinstance(error, ConnectionError):
                self._drop_connection()
            raise error from e
        except Exception as e:
            self.logger.exception("session.search.unexpected filter=%s", searchfilter)
            raise UnexpectedError(str(e) or e.__class__.__name__) from e
        if self.closed:
            # close() was called from within the search on this thread
            msg = "This session was closed during the search"
            raise SessionClosed(msg)
        results = SearchResultSet(searchfilter)
        seen: set[str] = set()
        for dn, attrs in rdata:
            if dn in seen:
                self.logger.warning("session.search.duplicate_path dn=%s", dn)
            seen.add(dn)
            results.entries.append(Entry(path=dn, properties=dict(attrs)))
        self.results = results
        self.state = SessionState.BOUND if results.empty else SessionState.HAS_RESULTS
        self.logger.info(
            "session.search.success filter=%s count=%d", searchfilter, results.count
        )
        return results

    def list_entries(self) -> list[str]:
        """
        Return the paths of the current results in ordinal order, or an empty
        list if no results are loaded.
        """
        if self.results is None:
            return []
        return self.results.paths()

    def select_entry(self, path: str) -> Entry | None:
        """
        Return the entry in the current results whose path is exactly
        ``path``, or ``None`` if there is no such entry or no results.
        """
        if self.results is None:
            return None
        return self.results.get(path)

    def close(self) -> None:
        """
        Unbind, drop the current results and mark the session closed.  Calling
        this more than once is harmless.

        If another thread is running a search, wait for it to finish first.
        """
        with self._lock:
            if self.closed:
                return
            self.results = None
            self.state = SessionState.CLOSED
            self._drop_connection()
        self.logger.info("session.close uri=%s", self.uri)
