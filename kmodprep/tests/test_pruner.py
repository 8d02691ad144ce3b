from __future__ import annotations

import unittest

from kmodprep.src.pruner import partition, prune


class PruneTests(unittest.TestCase):
    def test_removes_excluded_modules(self) -> None:
        result = prune({"x.ko", "y.ko"}, ["y.ko"])

        self.assertEqual(result.kept, {"x.ko"})
        self.assertEqual(result.removed, {"y.ko"})
        self.assertEqual(result.count, 1)

    def test_exclusions_outside_the_set_are_ignored(self) -> None:
        result = prune({"x.ko"}, ["y.ko", "z.ko", "y.ko"])

        self.assertEqual(result.kept, {"x.ko"})
        self.assertEqual(result.count, 0)

    def test_no_excluded_module_survives(self) -> None:
        modules = {f"m{index}.ko" for index in range(20)}
        exclusions = [f"m{index}.ko" for index in range(0, 30, 3)]

        result = prune(modules, exclusions)

        self.assertFalse(result.kept & set(exclusions))
        self.assertEqual(result.kept | result.removed, modules)


class PartitionTests(unittest.TestCase):
    def test_splits_into_selected_and_remaining(self) -> None:
        selected, remaining = partition({"a.ko", "b.ko", "c.ko"}, ["b.ko", "other.ko"])

        self.assertEqual(selected, {"b.ko"})
        self.assertEqual(remaining, {"a.ko", "c.ko"})

    def test_empty_selection_keeps_everything_remaining(self) -> None:
        selected, remaining = partition({"a.ko"}, [])

        self.assertEqual(selected, frozenset())
        self.assertEqual(remaining, {"a.ko"})


if __name__ == "__main__":
    unittest.main()
