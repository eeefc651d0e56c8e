# This module exists so that tests can patch python-ldap through
# ``ldapquery.ldap``.  python-ldap-faker patches ``<module>.ldap`` for each
# entry in ``LDAPFakerMixin.ldap_modules``, so every call into python-ldap
# made by this package goes through here.
import ldap
from ldap import *  # noqa: F403

__version__ = ldap.__version__
