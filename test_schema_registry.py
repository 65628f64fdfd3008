#!/usr/bin/env python3
"""Unit tests for SchemaRegistry"""
import unittest

from schema_registry import (
    SchemaRegistry, GeneratedEntity, make_entity_class, class_name_for_table
)
from generate_synthetic_entities_utils import (
    TableMeta, ColumnMeta, ForeignKeyGroup, column_from_type,
    KIND_INTEGER, KIND_LARGE_INTEGER, KIND_STRING
)
from seeding_errors import MetadataNotFound, FieldAccessFailure


class Customer(object):
    def __init__(self):
        self.id = None
        self.name = None


class Order(object):
    def __init__(self):
        self.id = None
        self.customer_id = None
        self.customer = None
        self.total = None


class Audited(object):
    """Entity with a read-only key property"""

    def __init__(self):
        self._id = 5
        self.note = None

    @property
    def id(self):
        return self._id


class Slotted(object):
    __slots__ = ("id",)


class TestSchemaRegistry(unittest.TestCase):
    """Test cases for registrations and metadata lookup"""

    def setUp(self):
        self.registry = SchemaRegistry()
        self.registry.register(Customer, "customers", {"id": "bigint", "name": "varchar(50)"}, "id")
        self.registry.register(
            Order, "orders",
            [("id", "int"), ("customer_id", "bigint"), ("total", "decimal(10,2)")],
            ["id"],
            foreign_keys=[("customer_id", Customer)],
            relationships={"customer": Customer})

    def test_resolve_by_class_and_name(self):
        """Registered types resolve by class, table, schema.table and class name"""
        self.assertIs(self.registry.resolve(Order), Order)
        self.assertIs(self.registry.resolve("orders"), Order)
        self.assertIs(self.registry.resolve("main.orders"), Order)
        self.assertIs(self.registry.resolve("Order"), Order)

    def test_unregistered_type(self):
        """Unknown types raise MetadataNotFound and are not contained"""
        with self.assertRaises(MetadataNotFound):
            self.registry.metadata_for(Slotted)
        with self.assertRaises(MetadataNotFound):
            self.registry.resolve("missing_table")
        self.assertNotIn(Slotted, self.registry)
        self.assertIn(Customer, self.registry)

    def test_metadata(self):
        """Primary keys are ordered tuples and FK tuples are normalized to groups"""
        meta = self.registry.metadata_for(Order)
        self.assertEqual(meta.primary_keys, ("id",))
        self.assertEqual(len(meta.foreign_keys), 1)
        group = meta.foreign_keys[0]
        self.assertEqual(group.foreign_key_properties, ("customer_id",))
        self.assertIs(group.principal_type, Customer)
        self.assertEqual(self.registry.principal_key_properties(group), ("id",))

    def test_accessor_kinds(self):
        """Accessors carry the key kind derived from the column type"""
        self.assertEqual(self.registry.accessor(Order, "id").kind, KIND_INTEGER)
        self.assertEqual(self.registry.accessor(Customer, "id").kind, KIND_LARGE_INTEGER)
        self.assertEqual(self.registry.accessor(Customer, "name").kind, KIND_STRING)

    def test_missing_accessor(self):
        """Unknown property names raise FieldAccessFailure"""
        with self.assertRaises(FieldAccessFailure):
            self.registry.accessor(Order, "does_not_exist")

    def test_read_only_property(self):
        """A property without setter is readable but not writable"""
        self.registry.register(Audited, "audited", {"id": "int", "note": "text"}, ["id"])
        accessor = self.registry.accessor(Audited, "id")
        self.assertFalse(accessor.writable)
        self.assertEqual(accessor.get(Audited()), 5)
        with self.assertRaises(FieldAccessFailure):
            self.registry.writable_accessor(Audited, "id")
        with self.assertRaises(FieldAccessFailure):
            accessor.set(Audited(), 6)

    def test_slotted_class_without_column(self):
        """Columns not allowed by __slots__ get no accessor"""
        self.registry.register(Slotted, "slotted", {"id": "int", "extra": "int"}, ["id"])
        self.registry.accessor(Slotted, "id")
        with self.assertRaises(FieldAccessFailure):
            self.registry.accessor(Slotted, "extra")

    def test_key_property_names(self):
        """Key property names list PK then FK properties without duplicates"""
        self.assertEqual(self.registry.key_property_names(Order), ["id", "customer_id"])

    def test_composite_key_extractor(self):
        """Extractor returns the ordered key tuple and caches per type and names"""
        order = Order()
        order.id = 3
        order.customer_id = 9
        extract = self.registry.composite_key_extractor(Order, ["customer_id", "id"])
        self.assertEqual(extract(order), (9, 3))
        self.assertIs(extract, self.registry.composite_key_extractor(Order, ("customer_id", "id")))

    def test_composite_key_extractor_unreadable(self):
        """Unreadable key properties yield None"""
        extract = self.registry.composite_key_extractor(Order, ["id", "nope"])
        order = Order()
        order.id = 1
        self.assertEqual(extract(order), (1, None))

    def test_relationships(self):
        """Relationship attributes are recorded with their principal"""
        self.assertEqual(self.registry.relationships(Order), {"customer": Customer})
        self.assertEqual(self.registry.relationships(Customer), {})

    def test_columns_parsed_from_type(self):
        """Declared types are parsed into column metadata"""
        columns = dict((c.name, c) for c in self.registry.columns(Order))
        self.assertEqual(columns["total"].data_type, "decimal")
        self.assertEqual(columns["total"].numeric_precision, 10)
        self.assertEqual(columns["total"].numeric_scale, 2)

    def test_create_uses_factory(self):
        """create() uses the registered factory"""
        self.registry.register(Customer, "customers", {"id": "bigint"}, ["id"],
                               factory=lambda: Customer())
        self.assertIsInstance(self.registry.create(Customer), Customer)


class TestGeneratedEntities(unittest.TestCase):
    """Test cases for entity classes created from tables"""

    def test_class_name_for_table(self):
        self.assertEqual(class_name_for_table("order_lines"), "OrderLines")
        self.assertEqual(class_name_for_table("2fa-codes"), "T2faCodes")
        self.assertEqual(class_name_for_table(""), "Entity")

    def test_make_entity_class(self):
        """Generated classes are slotted over identifier columns"""
        cls = make_entity_class("order_lines", ["order_id", "line_no", "bad name"])
        self.assertTrue(issubclass(cls, GeneratedEntity))
        self.assertEqual(cls.__slots__, ("order_id", "line_no"))
        instance = cls(order_id=1)
        self.assertEqual(instance.as_dict(), {"order_id": 1, "line_no": None})

    def test_map_table(self):
        """map_table registers an introspected table under a generated class"""
        registry = SchemaRegistry()
        columns = [column_from_type("order_id", "int", "NO", "PRI"),
                   column_from_type("line_no", "int", "NO", "PRI"),
                   column_from_type("sku", "varchar(20)")]
        table = TableMeta("shop", "order_lines", columns, ["order_id", "line_no"], False, None)
        cls = registry.map_table(table, foreign_keys=[ForeignKeyGroup(("order_id",), "shop.orders", ("id",))])
        self.assertIs(registry.resolve("shop.order_lines"), cls)
        meta = registry.metadata_for(cls)
        self.assertEqual(meta.primary_keys, ("order_id", "line_no"))
        self.assertEqual(meta.foreign_keys[0].principal_type, "shop.orders")
        self.assertEqual(registry.table_meta(cls).schema, "shop")
        self.assertIsInstance(registry.columns(cls)[0], ColumnMeta)


if __name__ == '__main__':
    unittest.main()
