#!/usr/bin/env python3
"""Unit tests for SqlEntityStore against an in-memory SQLite database"""
import unittest
import uuid
from datetime import datetime

from entity_store import (
    SqlEntityStore, connect_sqlite, render_create_table,
    placeholder_for, to_db_value, from_db_value
)
from schema_registry import SchemaRegistry
from seeding_errors import EntityStoreError, MetadataNotFound
from generate_synthetic_entities_utils import KIND_INTEGER, KIND_UUID, KIND_TIMESTAMP


class Customer(object):
    def __init__(self, id=None, name=None):
        self.id = id
        self.name = name


class Order(object):
    def __init__(self, id=None, customer_id=None):
        self.id = id
        self.customer_id = customer_id


class Token(object):
    def __init__(self, id=None, issued_at=None):
        self.id = id
        self.issued_at = issued_at


class Unregistered(object):
    pass


class TestValueConversion(unittest.TestCase):
    """Test cases for DB value conversion"""

    def test_to_db_value(self):
        u = uuid.uuid4()
        self.assertEqual(to_db_value(u), str(u))
        self.assertEqual(to_db_value(datetime(2024, 1, 2, 3, 4, 5, 6)), "2024-01-02 03:04:05.000006")
        self.assertEqual(to_db_value(7), 7)

    def test_from_db_value(self):
        u = uuid.uuid4()
        self.assertEqual(from_db_value(str(u), KIND_UUID), u)
        self.assertEqual(from_db_value("2024-01-02 03:04:05.000006", KIND_TIMESTAMP),
                         datetime(2024, 1, 2, 3, 4, 5, 6))
        self.assertEqual(from_db_value("12", KIND_INTEGER), 12)
        self.assertIsNone(from_db_value(None, KIND_INTEGER))
        self.assertEqual(from_db_value("not-a-uuid", KIND_UUID), "not-a-uuid")

    def test_placeholder(self):
        conn = connect_sqlite()
        try:
            self.assertEqual(placeholder_for(conn), "?")
        finally:
            conn.close()
        self.assertEqual(placeholder_for(object()), "%s")


class TestSqlEntityStore(unittest.TestCase):
    """Test cases for querying and committing entities"""

    def setUp(self):
        self.conn = connect_sqlite()
        self.registry = SchemaRegistry()
        self.registry.register(Customer, "customers", {"id": "integer", "name": "varchar(50)"}, ["id"])
        self.registry.register(Order, "orders", {"id": "integer", "customer_id": "integer"}, ["id"],
                               foreign_keys=[("customer_id", Customer)])
        self.registry.register(Token, "tokens", {"id": "uuid", "issued_at": "timestamp"}, ["id"])
        self.store = SqlEntityStore(self.conn, self.registry)
        self.store.create_tables()

    def tearDown(self):
        self.conn.close()

    def test_commit_and_query(self):
        """Committed instances are returned by query()"""
        self.store.add(Customer(1, "Alice Smith"))
        self.store.add(Customer(2, "Bob Jones"))
        self.assertEqual(len(self.store.pending), 2)
        self.assertEqual(self.store.commit(), 2)
        self.assertEqual(self.store.pending, [])

        customers = sorted(self.store.query(Customer), key=lambda c: c.id)
        self.assertEqual([(c.id, c.name) for c in customers], [(1, "Alice Smith"), (2, "Bob Jones")])
        self.assertEqual(self.store.count(Customer), 2)

    def test_commit_with_nothing_pending(self):
        self.assertEqual(self.store.commit(), 0)

    def test_uuid_and_timestamp_round_trip(self):
        """uuid and timestamp keys are restored to their Python types"""
        token_id = uuid.uuid4()
        issued = datetime(2023, 5, 6, 7, 8, 9, 123456)
        self.store.add(Token(token_id, issued))
        self.store.commit()
        token = self.store.query(Token)[0]
        self.assertEqual(token.id, token_id)
        self.assertEqual(token.issued_at, issued)

    def test_is_persisted(self):
        """is_persisted() checks the primary key against the table"""
        customer = Customer(5, "Eve Brown")
        self.assertFalse(self.store.is_persisted(customer))
        self.store.add(customer)
        self.assertFalse(self.store.is_persisted(customer))
        self.store.commit()
        self.assertTrue(self.store.is_persisted(customer))
        self.assertFalse(self.store.is_persisted(Customer(None, "x")))
        self.assertFalse(self.store.is_persisted(None))
        self.assertFalse(self.store.is_persisted(Unregistered()))

    def test_duplicate_primary_key_rolls_back(self):
        """A constraint violation raises EntityStoreError and persists nothing"""
        self.store.add(Customer(1, "a"))
        self.store.add(Customer(1, "b"))
        with self.assertRaises(EntityStoreError):
            self.store.commit()
        self.assertEqual(self.store.count(Customer), 0)
        self.assertEqual(self.store.pending, [])

    def test_foreign_key_enforced(self):
        """SQLite foreign key enforcement rejects dangling references"""
        self.store.add(Order(1, 99))
        with self.assertRaises(EntityStoreError):
            self.store.commit()

    def test_add_unregistered(self):
        with self.assertRaises(MetadataNotFound):
            self.store.add(Unregistered())

    def test_describe(self):
        self.assertEqual(self.store.describe(Order), "main.orders")


class TestRenderCreateTable(unittest.TestCase):
    """Test cases for DDL rendering"""

    def test_render_with_foreign_key(self):
        registry = SchemaRegistry()
        registry.register(Customer, "customers", {"id": "integer", "name": "varchar(50)"}, ["id"])
        registry.register(Order, "orders", {"id": "integer", "customer_id": "integer"}, ["id"],
                          foreign_keys=[("customer_id", Customer)])
        ddl = render_create_table(registry, Order)
        self.assertIn("CREATE TABLE IF NOT EXISTS `main`.`orders`", ddl)
        self.assertIn("`id` integer NOT NULL", ddl)
        self.assertIn("PRIMARY KEY (`id`)", ddl)
        self.assertIn("FOREIGN KEY (`customer_id`) REFERENCES `customers` (`id`)", ddl)

    def test_render_skips_unregistered_principal(self):
        registry = SchemaRegistry()
        registry.register(Order, "orders", {"id": "integer", "customer_id": "integer"}, ["id"],
                          foreign_keys=[("customer_id", "customers")])
        self.assertNotIn("FOREIGN KEY", render_create_table(registry, Order))


if __name__ == '__main__':
    unittest.main()
