"""
Tests for the command line logging setup.
"""

import logging
import unittest

from ldapquery.logging import censor_password_processor, configure_logging


class TestLogging(unittest.TestCase):

    def tearDown(self):
        configure_logging(0)

    def test_password_is_censored(self):
        event_dict = censor_password_processor(
            None, None, {"event": "session.bind", "password": "secret", "user": "alice"}
        )
        self.assertEqual(event_dict["password"], "*CENSORED*")
        self.assertEqual(event_dict["user"], "alice")

    def test_verbosity_sets_level(self):
        self.assertEqual(configure_logging(0), "WARNING")
        self.assertEqual(logging.getLogger("ldapquery").level, logging.WARNING)
        self.assertEqual(configure_logging(1), "INFO")
        self.assertEqual(configure_logging(5), "DEBUG")
        self.assertEqual(logging.getLogger("ldapquery").level, logging.DEBUG)
