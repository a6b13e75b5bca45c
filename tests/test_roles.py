from __future__ import annotations

import unittest

from pharmacy_rota.roles import (
    ASSISTANT_PHARMACIST,
    PHARMACIST,
    canonical_role,
    defined_roles,
    role_group,
    role_in,
    role_matches,
)


class RoleMatchingTests(unittest.TestCase):
    def test_canonical_role_prefers_assistant(self) -> None:
        self.assertEqual(canonical_role("assistant pharmacist"), ASSISTANT_PHARMACIST)
        self.assertEqual(canonical_role("Asst-Pharmacist"), ASSISTANT_PHARMACIST)
        self.assertEqual(canonical_role(" pharmacist "), PHARMACIST)
        self.assertEqual(canonical_role("RPh"), PHARMACIST)
        self.assertEqual(canonical_role("Cashier"), "")

    def test_substitution_is_strict(self) -> None:
        self.assertTrue(role_matches(PHARMACIST, "pharmacist"))
        self.assertFalse(role_matches(ASSISTANT_PHARMACIST, PHARMACIST))
        self.assertFalse(role_matches(PHARMACIST, ASSISTANT_PHARMACIST))
        self.assertFalse(role_matches("Cashier", "Cashier"))

    def test_groups_and_membership(self) -> None:
        self.assertEqual(role_group(PHARMACIST), "Pharmacists")
        self.assertEqual(role_group("asst"), "Assistants")
        self.assertEqual(role_group("Driver"), "Other")
        self.assertEqual(defined_roles(), [ASSISTANT_PHARMACIST, PHARMACIST])
        self.assertTrue(role_in("pharmacist", [PHARMACIST]))
        self.assertFalse(role_in(ASSISTANT_PHARMACIST, [PHARMACIST]))
        self.assertFalse(role_in("Driver", []))


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
