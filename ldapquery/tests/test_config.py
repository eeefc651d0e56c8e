"""
Tests for connection settings, bind target parsing and startup defaults.
"""

import os
import tempfile
import unittest
from unittest.mock import patch

from ldapquery.config import (
    ConnectionConfig,
    default_filter,
    default_server_address,
    default_username,
    normalize_address,
    parse_path,
    settings_from_env,
)
from ldapquery.exceptions import ValidationError


class TestNormalizeAddress(unittest.TestCase):
    """Test the LDAP:// prefixing of server addresses."""

    def test_bare_host_gets_prefix(self):
        self.assertEqual(
            normalize_address("dc01.example.com"), "LDAP://dc01.example.com"
        )

    def test_prefixed_address_is_unchanged(self):
        self.assertEqual(
            normalize_address("LDAP://dc01.example.com"), "LDAP://dc01.example.com"
        )

    def test_prefix_check_is_case_insensitive(self):
        for address in ("ldap://dc01.example.com", "Ldap://dc01.example.com"):
            with self.subTest(address=address):
                self.assertEqual(normalize_address(address), address)

    def test_bind_target_property(self):
        config = ConnectionConfig("dc01.example.com", "alice", "secret")
        self.assertEqual(config.bind_target, "LDAP://dc01.example.com")


class TestParsePath(unittest.TestCase):
    """Test splitting bind targets into a URI and a base DN."""

    def test_host_only(self):
        self.assertEqual(parse_path("dc01"), ("ldap://dc01", ""))

    def test_host_and_port(self):
        self.assertEqual(parse_path("LDAP://dc01:3268"), ("ldap://dc01:3268", ""))

    def test_host_and_basedn(self):
        self.assertEqual(
            parse_path("LDAP://dc01.corp.com/OU=Users,DC=corp,DC=com"),
            ("ldap://dc01.corp.com", "OU=Users,DC=corp,DC=com"),
        )

    def test_lowercase_prefix(self):
        self.assertEqual(
            parse_path("ldap://localhost:389/dc=example,dc=com"),
            ("ldap://localhost:389", "dc=example,dc=com"),
        )


class TestConnectionConfigValidation(unittest.TestCase):
    """Test that required fields are checked in order before anything else."""

    def assertMissing(self, config, field):
        with self.assertRaises(ValidationError) as cm:
            config.validate()
        self.assertEqual(cm.exception.field, field)
        return cm.exception

    def test_valid_config(self):
        ConnectionConfig("dc01", "CORP\\alice", "x").validate()

    def test_blank_server_address_is_reported_first(self):
        error = self.assertMissing(ConnectionConfig("", "", ""), "server_address")
        self.assertEqual(error.message, "Please, enter the LDAP server address")

    def test_whitespace_counts_as_blank(self):
        self.assertMissing(ConnectionConfig("   ", "alice", "x"), "server_address")

    def test_blank_username_is_reported_before_password(self):
        error = self.assertMissing(ConnectionConfig("dc01", "", ""), "username")
        self.assertEqual(error.message, "Please, enter the user name")

    def test_blank_password(self):
        error = self.assertMissing(ConnectionConfig("dc01", "alice", " "), "password")
        self.assertEqual(error.message, "Please, enter the user's password")

    def test_invalid_tls_verify(self):
        config = ConnectionConfig("dc01", "alice", "x", tls_verify="sometimes")
        with self.assertRaises(ValueError):
            config.validate()

    def test_missing_ca_certfile(self):
        config = ConnectionConfig(
            "dc01", "alice", "x", tls_ca_certfile="/nonexistent/ca.pem"
        )
        with self.assertRaises(OSError):
            config.validate()

    def test_existing_ca_certfile(self):
        with tempfile.NamedTemporaryFile(suffix=".pem") as fd:
            ConnectionConfig("dc01", "alice", "x", tls_ca_certfile=fd.name).validate()


class TestDefaults(unittest.TestCase):
    """Test the defaults offered at startup."""

    @patch("ldapquery.config.socket.getfqdn", return_value="ws042.corp.example.com")
    def test_default_server_address_is_machine_domain(self, _):
        self.assertEqual(default_server_address(), "corp.example.com")

    @patch("ldapquery.config.socket.getfqdn", return_value="localhost")
    def test_default_server_address_without_domain(self, _):
        self.assertEqual(default_server_address(), "")

    @patch("ldapquery.config.current_user", return_value="alice")
    def test_default_username_with_domain(self, _):
        with patch.dict(os.environ, {"USERDOMAIN": "CORP"}):
            self.assertEqual(default_username(), "CORP\\alice")

    @patch("ldapquery.config.current_user", return_value="alice")
    def test_default_username_without_domain(self, _):
        with patch.dict(os.environ, {"USERDOMAIN": ""}):
            self.assertEqual(default_username(), "alice")

    @patch("ldapquery.config.current_user", return_value="alice")
    def test_default_filter_uses_current_user(self, _):
        self.assertEqual(default_filter(), "samAccountName=alice")

    def test_default_filter_for_named_user(self):
        self.assertEqual(default_filter("jdoe"), "samAccountName=jdoe")

    def test_default_filter_escapes_value(self):
        searchfilter = default_filter("j*doe")
        self.assertTrue(searchfilter.startswith("samAccountName="))
        self.assertNotIn("*", searchfilter)


class TestSettingsFromEnv(unittest.TestCase):
    """Test reading LDAPQUERY_* environment variables."""

    def test_environment_overrides_defaults(self):
        environment = {
            "LDAPQUERY_SERVER": "LDAP://dc02/DC=corp,DC=com",
            "LDAPQUERY_USER": "CORP\\bob",
            "LDAPQUERY_PASSWORD": "hunter2",
            "LDAPQUERY_FILTER": "objectClass=group",
            "LDAPQUERY_STARTTLS": "true",
            "LDAPQUERY_TIMEOUT": "7.5",
        }
        with patch.dict(os.environ, environment):
            settings = settings_from_env()
        self.assertEqual(settings["server_address"], "LDAP://dc02/DC=corp,DC=com")
        self.assertEqual(settings["username"], "CORP\\bob")
        self.assertEqual(settings["password"], "hunter2")
        self.assertEqual(settings["filter"], "objectClass=group")
        self.assertTrue(settings["use_starttls"])
        self.assertEqual(settings["timeout"], 7.5)
        self.assertEqual(settings["tls_verify"], "never")

    @patch("ldapquery.config.current_user", return_value="alice")
    @patch("ldapquery.config.socket.getfqdn", return_value="ws042.corp.example.com")
    def test_defaults_when_environment_is_empty(self, *_):
        environment = {
            "LDAPQUERY_SERVER": "",
            "LDAPQUERY_USER": "",
            "LDAPQUERY_PASSWORD": "",
            "LDAPQUERY_FILTER": "",
            "LDAPQUERY_TIMEOUT": "",
            "USERDOMAIN": "",
        }
        with patch.dict(os.environ, environment):
            settings = settings_from_env()
        self.assertEqual(settings["server_address"], "corp.example.com")
        self.assertEqual(settings["username"], "alice")
        self.assertIsNone(settings["password"])
        self.assertEqual(settings["filter"], "samAccountName=alice")
        self.assertIsNone(settings["timeout"])
        self.assertFalse(settings["follow_referrals"])


if __name__ == "__main__":
    unittest.main()
