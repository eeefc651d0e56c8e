"""
Connection settings for :py:class:`ldapquery.session.DirectorySession`.

This module provides :py:class:`ConnectionConfig`, the helpers that turn an
operator-supplied server address into something python-ldap can connect to,
and the defaults we offer at startup: the local machine's domain, the logged
on user, and a filter that finds that user.
"""

import getpass
import socket
from dataclasses import dataclass
from pathlib import Path

import environ
from ldap_filter import Filter

from .exceptions import ValidationError

#: The scheme token every bind target starts with
LDAP_PREFIX: str = "LDAP://"

#: Valid values for :py:attr:`ConnectionConfig.tls_verify`
TLS_VERIFY_CHOICES: tuple[str, ...] = ("never", "always")

env: environ.Env = environ.Env()


def is_blank(value: str | None) -> bool:
    """
    Return ``True`` if ``value`` is ``None``, empty or only whitespace.
    """
    return value is None or not value.strip()


def normalize_address(address: str) -> str:
    """
    Prefix ``address`` with ``LDAP://`` unless it already starts with it.

    The check is case-insensitive, and an address that already has the
    prefix is returned unchanged.

    Example:
        >>> normalize_address("dc01.example.com")
        'LDAP://dc01.example.com'
        >>> normalize_address("ldap://dc01.example.com")
        'ldap://dc01.example.com'

    Args:
        address: a server address, possibly already a bind target

    Returns:
        The bind target.

    """
    if address.upper().startswith(LDAP_PREFIX):
        return address
    return f"{LDAP_PREFIX}{address}"


def parse_path(path: str) -> tuple[str, str]:
    """
    Split a bind target of the form ``LDAP://host[:port][/basedn]`` into the
    URI we hand to :py:func:`ldap.initialize` and the base DN to search from.

    Example:
        >>> parse_path("LDAP://dc01:389/OU=Users,DC=corp,DC=com")
        ('ldap://dc01:389', 'OU=Users,DC=corp,DC=com')
        >>> parse_path("dc01")
        ('ldap://dc01', '')

    Args:
        path: a bind target or bare server address

    Returns:
        A ``(uri, basedn)`` tuple.  ``basedn`` is empty when the path did not
        name one; the session then asks the server for its default naming
        context.

    """
    remainder = normalize_address(path)[len(LDAP_PREFIX) :]
    host, _, basedn = remainder.partition("/")
    return f"ldap://{host.strip()}", basedn.strip()


@dataclass
class ConnectionConfig:
    """
    Everything we need to open a :py:class:`ldapquery.session.DirectorySession`.

    ``server_address``, ``username`` and ``password`` are required; the rest
    are transport options.
    """

    #: The server address or bind target, e.g. ``dc01.example.com`` or
    #: ``LDAP://dc01.example.com/OU=Users,DC=example,DC=com``
    server_address: str
    #: The bind principal: a DN, ``DOMAIN\\user`` or ``user@domain``
    username: str
    #: The password for :py:attr:`username`
    password: str
    #: Issue a StartTLS before binding
    use_starttls: bool = False
    #: ``"never"`` or ``"always"``: whether to verify the server certificate
    tls_verify: str = "never"
    #: Path to a CA certificate file to verify the server certificate with
    tls_ca_certfile: str | None = None
    #: Network timeout in seconds.  ``None`` leaves the library default alone.
    timeout: float | None = None
    #: Let libldap chase referrals
    follow_referrals: bool = False
    #: Bind in :py:meth:`DirectorySession.open` instead of on the first search
    bind_on_open: bool = False

    @property
    def bind_target(self) -> str:
        """The normalized server address: always starts with ``LDAP://``."""
        return normalize_address(self.server_address)

    def validate(self) -> None:
        """
        Check that the required fields are filled in.

        The fields are checked in this order: server address, username,
        password.  Nothing here touches the network.

        Raises:
            ValidationError: a required field is blank
            ValueError: ``tls_verify`` is not one of ``never`` or ``always``
            OSError: ``tls_ca_certfile`` is set but is not an existing file

        """
        for field in ("server_address", "username", "password"):
            if is_blank(getattr(self, field)):
                raise ValidationError(field)
        if self.tls_verify not in TLS_VERIFY_CHOICES:
            msg = f"Invalid tls_verify value: {self.tls_verify}"
            raise ValueError(msg)
        if self.tls_ca_certfile:
            ca_certfile = Path(self.tls_ca_certfile)
            if not ca_certfile.is_file():
                msg = f"CA Certificate file does not exist or is not a file: {self.tls_ca_certfile}"
                raise OSError(msg)


# -----------------------
# Startup defaults
# -----------------------


def current_user() -> str:
    """Return the name of the logged on user."""
    return getpass.getuser()


def default_server_address() -> str:
    """
    Return the DNS domain of the local machine, or ``""`` if it has none.
    """
    _, _, domain = socket.getfqdn().partition(".")
    return domain


def default_username() -> str:
    """
    Return ``DOMAIN\\user`` if we know the logon domain, else ``user``.

    The logon domain comes from the ``USERDOMAIN`` environment variable,
    which Windows sets for every session.
    """
    user = current_user()
    domain = env.str("USERDOMAIN", default="").strip()
    if domain:
        return f"{domain}\\{user}"
    return user


def default_filter(user: str | None = None) -> str:
    """
    Return a filter that finds ``user`` (by default the logged on user) by
    ``samAccountName``.  The value is escaped; the enclosing parentheses are
    left off, as the session adds them.
    """
    if user is None:
        user = current_user()
    return Filter.attribute("samAccountName").equal_to(user).to_string()[1:-1]


def settings_from_env() -> dict[str, object]:
    """
    Read our settings from ``LDAPQUERY_*`` environment variables, falling back
    to the startup defaults.

    Returns:
        A dict with the keys ``server_address``, ``username``, ``password``,
        ``filter``, ``use_starttls``, ``tls_verify``, ``tls_ca_certfile``,
        ``timeout`` and ``follow_referrals``.

    """
    server_address = env.str("LDAPQUERY_SERVER", default="")
    username = env.str("LDAPQUERY_USER", default="")
    searchfilter = env.str("LDAPQUERY_FILTER", default="")
    timeout = env.str("LDAPQUERY_TIMEOUT", default="")
    return {
        "server_address": server_address or default_server_address(),
        "username": username or default_username(),
        "password": env.str("LDAPQUERY_PASSWORD", default="") or None,
        "filter": searchfilter or default_filter(),
        "use_starttls": env.bool("LDAPQUERY_STARTTLS", default=False),
        "tls_verify": env.str("LDAPQUERY_TLS_VERIFY", default="never"),
        "tls_ca_certfile": env.str("LDAPQUERY_TLS_CA_CERTFILE", default="") or None,
        "timeout": float(timeout) if timeout else None,
        "follow_referrals": env.bool("LDAPQUERY_FOLLOW_REFERRALS", default=False),
    }
