"""
The ``ldapquery`` command.

Bind to a directory server, run one filter query, and print either the paths
of the entries it found, the attribute names of one entry, or the value of
one attribute of one entry.  Options not given on the command line come from
``LDAPQUERY_*`` environment variables, then from the logged on user's
environment.
"""

import argparse
import getpass
import sys

import structlog

from .config import TLS_VERIFY_CHOICES, ConnectionConfig, is_blank, settings_from_env
from .exceptions import LdapQueryError, ValidationError
from .logging import configure_logging
from .session import DirectorySession, Entry

logger = structlog.get_logger("ldapquery.cli")


def build_parser(defaults: dict[str, object]) -> argparse.ArgumentParser:
    """
    Build our argument parser, using ``defaults`` (see
    :py:func:`ldapquery.config.settings_from_env`) for the option defaults.
    """
    parser = argparse.ArgumentParser(
        prog="ldapquery",
        description="Run an LDAP filter query and inspect the entries it returns.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "filter",
        nargs="?",
        default=defaults["filter"],
        help="LDAP filter, without the enclosing parentheses.",
    )
    parser.add_argument(
        "--server",
        dest="server_address",
        default=defaults["server_address"],
        help="Server address or bind target, e.g. LDAP://dc01/DC=corp,DC=com.",
    )
    parser.add_argument(
        "--user",
        dest="username",
        default=defaults["username"],
        help="Bind principal: a DN, DOMAIN\\user or user@domain.",
    )
    parser.add_argument(
        "--password",
        default=defaults["password"],
        help="Bind password.  Prompted for if not given.",
    )
    parser.add_argument(
        "--starttls",
        dest="use_starttls",
        action=argparse.BooleanOptionalAction,
        default=defaults["use_starttls"],
        help="Issue a StartTLS before binding (--no-starttls turns off LDAPQUERY_STARTTLS).",
    )
    parser.add_argument(
        "--tls-verify",
        choices=TLS_VERIFY_CHOICES,
        default=defaults["tls_verify"],
        help="Whether to verify the server certificate.",
    )
    parser.add_argument(
        "--ca-certfile",
        dest="tls_ca_certfile",
        default=defaults["tls_ca_certfile"],
        help="CA certificate file to verify the server certificate with.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=defaults["timeout"],
        help="Network timeout in seconds.",
    )
    parser.add_argument(
        "--follow-referrals",
        action=argparse.BooleanOptionalAction,
        default=defaults["follow_referrals"],
        help="Chase referrals returned by the server.",
    )
    parser.add_argument(
        "--entry",
        metavar="PATH",
        help="Show the attribute names of the entry with this path.",
    )
    parser.add_argument(
        "--attribute",
        metavar="NAME",
        help="With --entry: show the first value of this attribute.",
    )
    parser.add_argument(
        "--all",
        dest="show_all",
        action="store_true",
        help="With --entry: show every attribute with its first value.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Log more; repeat for debug output.",
    )
    return parser


def print_entry(entry: Entry, attribute: str | None, show_all: bool) -> None:
    if attribute:
        value = entry.get_value(attribute)
        print("" if value is None else value)
    elif show_all:
        for name in entry.attribute_names():
            value = entry.get_value(name)
            print(f"{name}: {'' if value is None else value}")
    else:
        for name in entry.attribute_names():
            print(name)


def main(argv: list[str] | None = None) -> int:
    """
    Run the command.

    Returns:
        0 on success (an empty result set included), 2 if a required input
        is missing, 1 on any other failure.

    """
    parser = build_parser(settings_from_env())
    args = parser.parse_args(argv)
    if (args.attribute or args.show_all) and not args.entry:
        parser.error("--attribute and --all need --entry")
    configure_logging(args.verbose)

    password = args.password
    if (
        password is None
        and not is_blank(args.server_address)
        and not is_blank(args.username)
    ):
        password = getpass.getpass(f"Password for {args.username}: ")
    config = ConnectionConfig(
        server_address=args.server_address,
        username=args.username,
        password=password or "",
        use_starttls=args.use_starttls,
        tls_verify=args.tls_verify,
        tls_ca_certfile=args.tls_ca_certfile,
        timeout=args.timeout,
        follow_referrals=args.follow_referrals,
    )
    try:
        with DirectorySession.open(config) as session:
            results = session.search(args.filter)
            if args.entry is None:
                if results.empty:
                    print("No results found", file=sys.stderr)
                    return 0
                for path in session.list_entries():
                    print(path)
                return 0
            entry = session.select_entry(args.entry)
            if entry is None:
                print(f"No entry with path {args.entry} in the results", file=sys.stderr)
                return 1
            print_entry(entry, args.attribute, args.show_all)
    except ValidationError as e:
        print(e.message, file=sys.stderr)
        return 2
    except LdapQueryError as e:
        logger.debug("cli.failed", error=e.message, code=e.code)
        print(e.message, file=sys.stderr)
        return 1
    except (ValueError, OSError) as e:
        print(str(e), file=sys.stderr)
        return 2
    return 0


def run() -> None:
    sys.exit(main())
