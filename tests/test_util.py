from __future__ import annotations

import contextlib
import enum
import io
import json
import unittest

import networkx as nx

from relq import util


class CollectionsTests(unittest.TestCase):
    def test_flatten(self) -> None:
        self.assertEqual(util.flatten([["a", "b"], "c", ("d", "e")]), ["a", "b", "c", ("d", "e")])
        self.assertEqual(util.flatten([[["a"]], []]), [["a"]])

    def test_simplify(self) -> None:
        self.assertEqual(util.simplify([1]), 1)
        self.assertEqual(util.simplify((1,)), 1)
        self.assertEqual(util.simplify([1, 2]), [1, 2])
        self.assertEqual(util.simplify("abc"), "abc")
        self.assertEqual(util.simplify(42), 42)


class DeferredTests(unittest.TestCase):
    def test_memoization(self) -> None:
        calls = []
        deferred = util.Deferred(lambda: calls.append(1) or len(calls))
        self.assertFalse(deferred.realized())
        self.assertEqual(deferred.force(), 1)
        self.assertEqual(deferred.force(), 1)
        self.assertTrue(deferred.realized())
        self.assertEqual(repr(deferred), "Deferred(1)")

    def test_failures_are_not_memoized(self) -> None:
        attempts = []

        def flaky() -> str:
            attempts.append(1)
            if len(attempts) == 1:
                raise LookupError("not yet")
            return "done"

        deferred = util.Deferred(flaky)
        self.assertRaises(LookupError, deferred.force)
        self.assertFalse(deferred.realized())
        self.assertEqual(deferred.force(), "done")


class JsonizeTests(unittest.TestCase):
    class Color(enum.Enum):
        Red = "red"

    class Point:
        def __init__(self, x: int, y: int) -> None:
            self.x, self.y = x, y

        def __json__(self) -> util.jsondict:
            return {"x": self.x, "y": self.y}

    def test_custom_types(self) -> None:
        def double(row):
            return row

        encoded = util.to_json({"color": self.Color.Red, "point": self.Point(1, 2), "tags": {"b", "a"}, "hook": double})
        decoded = json.loads(encoded)
        self.assertEqual(decoded["color"], "red")
        self.assertEqual(decoded["point"], {"x": 1, "y": 2})
        self.assertEqual(decoded["tags"], ["a", "b"])
        self.assertTrue(decoded["hook"].endswith("double"))

    def test_none(self) -> None:
        self.assertIsNone(util.to_json(None))


class NetworkxTests(unittest.TestCase):
    def test_cycles(self) -> None:
        graph = nx.DiGraph([("a", "b"), ("b", "a"), ("b", "c")])
        cycles = util.nx_cycles(graph)
        self.assertEqual(len(cycles), 1)
        self.assertEqual(set(cycles[0]), {"a", "b"})

    def test_acyclic(self) -> None:
        self.assertEqual(list(util.nx_cycles(nx.DiGraph([("a", "b")]))), [])


class LoggingTests(unittest.TestCase):
    def test_logger_prefix(self) -> None:
        output = io.StringIO()
        log = util.make_logger(True, file=output, prefix="[relq]")
        log("hello", 42)
        self.assertEqual(output.getvalue(), "[relq] hello 42\n")

    def test_disabled_logger(self) -> None:
        output = io.StringIO()
        util.make_logger(False, file=output)("hello")
        self.assertEqual(output.getvalue(), "")

    def test_default_stream_is_resolved_lazily(self) -> None:
        log = util.make_logger(True)
        output = io.StringIO()
        with contextlib.redirect_stderr(output):
            log("hello")
        self.assertEqual(output.getvalue(), "hello\n")


if __name__ == "__main__":
    unittest.main()
