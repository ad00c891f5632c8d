import unittest
from txnflow.constants import (
    FIELD_ALIASES,
    FORM_SELECTORS,
    SECONDARY_FIELDS,
    SELECTORS,
    STATUS_HEADER,
)

class TestConstants(unittest.TestCase):
    def test_links_have_primary_and_fallback(self):
        for key in ("transactions_link", "new_transaction_link"):
            self.assertEqual(len(SELECTORS[key]), 2)
            self.assertNotEqual(SELECTORS[key][0], SELECTORS[key][1])

    def test_secondary_fields_are_form_fields(self):
        for name in SECONDARY_FIELDS:
            self.assertIn(name, FORM_SELECTORS)

    def test_status_aliases_cover_header(self):
        self.assertIn(STATUS_HEADER, FIELD_ALIASES["status"])

    def test_every_logical_field_has_aliases(self):
        for name, aliases in FIELD_ALIASES.items():
            self.assertTrue(aliases, name)

if __name__ == '__main__':
    unittest.main()
