#!/usr/bin/env python3
"""Unit tests for KeyEqualityCompiler"""
import unittest

from key_equality import KeyEqualityCompiler, value_shape_for, SCALAR, COMPOSITE
from schema_registry import SchemaRegistry


class Customer(object):
    def __init__(self, id=None, name=None):
        self.id = id
        self.name = name


class OrderLine(object):
    def __init__(self, order_id=None, line_no=None):
        self.order_id = order_id
        self.line_no = line_no


class TestKeyEqualityCompiler(unittest.TestCase):
    """Test cases for compiled key predicates"""

    def setUp(self):
        self.registry = SchemaRegistry()
        self.registry.register(Customer, "customers", {"id": "int", "name": "varchar(50)"}, ["id"])
        self.registry.register(OrderLine, "order_lines",
                               {"order_id": "int", "line_no": "int"}, ["order_id", "line_no"])
        self.compiler = KeyEqualityCompiler(self.registry)

    def test_value_shape(self):
        """One key property is scalar, several are composite"""
        self.assertEqual(value_shape_for(["id"]), SCALAR)
        self.assertEqual(value_shape_for(["order_id", "line_no"]), COMPOSITE)

    def test_scalar_equality(self):
        """Scalar predicate compares the single key value"""
        equals = self.compiler.compile(Customer, ["id"], SCALAR)
        self.assertTrue(equals(Customer(id=7), 7))
        self.assertFalse(equals(Customer(id=7), 8))

    def test_composite_equality_is_positional(self):
        """Composite predicate compares tuple elements in key order"""
        equals = self.compiler.compile(OrderLine, ["order_id", "line_no"], COMPOSITE)
        line = OrderLine(order_id=1, line_no=2)
        self.assertTrue(equals(line, (1, 2)))
        self.assertFalse(equals(line, (2, 1)))
        self.assertFalse(equals(line, (1, 3)))

    def test_composite_length_mismatch(self):
        """A candidate of the wrong length never matches"""
        equals = self.compiler.compile(OrderLine, ["order_id", "line_no"], COMPOSITE)
        self.assertFalse(equals(OrderLine(order_id=1, line_no=2), (1,)))

    def test_missing_property_never_matches(self):
        """An unknown key property makes the predicate false"""
        equals = self.compiler.compile(Customer, ["code"], SCALAR)
        self.assertFalse(equals(Customer(id=1), 1))

    def test_unreadable_attribute_never_matches(self):
        """An instance missing the attribute compares false"""
        equals = self.compiler.compile(Customer, ["id"], SCALAR)
        broken = Customer()
        del broken.id
        self.assertFalse(equals(broken, None))

    def test_predicates_are_cached(self):
        """Compiling the same shape twice returns the cached predicate"""
        first = self.compiler.compile(OrderLine, ["order_id", "line_no"], COMPOSITE)
        second = self.compiler.compile(OrderLine, ("order_id", "line_no"), COMPOSITE)
        self.assertIs(first, second)
        self.assertEqual(self.compiler.cached_count(), 1)

        self.compiler.compile(OrderLine, ["line_no", "order_id"], COMPOSITE)
        self.assertEqual(self.compiler.cached_count(), 2)

    def test_scalar_shape_rejects_composite_names(self):
        """Scalar shape with several key properties is a programming error"""
        with self.assertRaises(ValueError):
            self.compiler.compile(OrderLine, ["order_id", "line_no"], SCALAR)

    def test_contains(self):
        """contains() scans a sequence of instances"""
        lines = [OrderLine(1, 1), OrderLine(1, 2)]
        self.assertTrue(self.compiler.contains(OrderLine, ["order_id", "line_no"], lines, (1, 2)))
        self.assertFalse(self.compiler.contains(OrderLine, ["order_id", "line_no"], lines, (2, 2)))
        customers = [Customer(id=3)]
        self.assertTrue(self.compiler.contains(Customer, ["id"], customers, (3,)))
        self.assertTrue(self.compiler.contains(Customer, ["id"], customers, 3))


if __name__ == '__main__':
    unittest.main()
