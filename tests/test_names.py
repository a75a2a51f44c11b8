import random
import unittest

from santadraw.draw.names import (
    dedupe_names,
    name_key,
    normalize_email,
    validate_new_name,
)
from santadraw.errors import DuplicateNameError, EmptyNameError, ValidationError


class TestNameHelpers(unittest.TestCase):
    def test_name_key(self):
        self.assertEqual(name_key("  Alice "), "alice")
        self.assertEqual(name_key("STRASSE"), name_key("straße"))
        with self.assertRaises(TypeError):
            name_key(None)  # type: ignore[arg-type]

    def test_validate_new_name_trims(self):
        self.assertEqual(validate_new_name("  Dave ", ["Alice"]), "Dave")

    def test_validate_new_name_rejects_blank(self):
        with self.assertRaises(EmptyNameError):
            validate_new_name("   ", [])

    def test_validate_new_name_rejects_duplicates(self):
        with self.assertRaises(DuplicateNameError) as ctx:
            validate_new_name(" alice", ["Bob", "Alice"])
        self.assertIsInstance(ctx.exception, ValidationError)
        self.assertEqual(ctx.exception.name, "alice")

    def test_dedupe_first_occurrence_wins(self):
        self.assertEqual(
            dedupe_names(["Alice", " bob ", "", "ALICE", "Bob", "  ", "Carol"]),
            ["Alice", "bob", "Carol"],
        )

    def test_roster_stays_unique_under_random_edits(self):
        rng = random.Random(7)
        pool = ["Alice", "alice ", "Bob", " BOB", "Carol", "", "Dave"]
        roster: list[str] = []
        for _ in range(300):
            if roster and rng.random() < 0.3:
                roster.remove(rng.choice(roster))
                continue
            try:
                roster.append(validate_new_name(rng.choice(pool), roster))
            except ValidationError:
                pass
            keys = [name_key(n) for n in roster]
            self.assertEqual(len(keys), len(set(keys)))
            self.assertTrue(all(n == n.strip() and n for n in roster))

    def test_normalize_email(self):
        self.assertEqual(normalize_email("  Someone@Example.COM "), "someone@example.com")
        self.assertEqual(normalize_email(None), "")


if __name__ == "__main__":
    unittest.main()
