#!/usr/bin/env python3
"""Backing store persisting entities through a DB-API connection (SQLite or MySQL)"""
import sqlite3
import uuid
from datetime import datetime

import pymysql

from generate_synthetic_entities_utils import (
    debug_print, parse_date, node_name, INTEGER_KINDS,
    KIND_UUID, KIND_TIMESTAMP, TIMESTAMP_FORMAT
)
from seeding_errors import EntityStoreError, FieldAccessFailure

DB_ERRORS = (sqlite3.Error, pymysql.MySQLError)


def connect_sqlite(path=":memory:", uri=False):
    """Open a SQLite connection with foreign key enforcement turned on."""
    conn = sqlite3.connect(path, check_same_thread=False, uri=uri)
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def placeholder_for(conn):
    return "?" if isinstance(conn, sqlite3.Connection) else "%s"


def to_db_value(value):
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.strftime(TIMESTAMP_FORMAT)
    return value


def from_db_value(value, kind):
    if value is None:
        return None
    if kind in INTEGER_KINDS and not isinstance(value, int):
        try:
            return int(value)
        except (TypeError, ValueError):
            return value
    if kind == KIND_UUID and not isinstance(value, uuid.UUID):
        try:
            return uuid.UUID(str(value))
        except ValueError:
            return value
    if kind == KIND_TIMESTAMP and isinstance(value, str):
        parsed = parse_date(value)
        return parsed if parsed is not None else value
    return value


class SqlEntityStore(object):
    """
    Responsible for reading and writing registered entities.

    Handles:
    - Querying all persisted instances of an entity type
    - Queueing new instances and inserting them on commit
    - Checking whether an instance's primary key is already persisted
    """

    def __init__(self, conn, registry, placeholder=None):
        """
        Initialize entity store.

        Args:
            conn: DB-API connection (sqlite3 or PyMySQL)
            registry: SchemaRegistry describing the tables
            placeholder: Parameter placeholder ("?" or "%s"), detected from conn when omitted
        """
        self.conn = conn
        self.registry = registry
        self.placeholder = placeholder or placeholder_for(conn)
        self._pending = []

    @property
    def pending(self):
        return list(self._pending)

    def _readable_columns(self, registration):
        return [c.name for c in registration.table.columns if c.name in registration.accessors]

    def _table_ref(self, registration):
        return "`{0}`.`{1}`".format(registration.table.schema, registration.table.name)

    def _execute(self, sql, params=()):
        cur = self.conn.cursor()
        try:
            cur.execute(sql, params)
            return cur.fetchall()
        finally:
            cur.close()

    def query(self, entity_type):
        """Return every persisted instance of the entity type."""
        registration = self.registry.registration(entity_type)
        columns = self._readable_columns(registration)
        if not columns:
            return []
        sql = "SELECT {0} FROM {1}".format(
            ", ".join("`{0}`".format(c) for c in columns), self._table_ref(registration))
        return [self._materialize(registration, columns, row) for row in self._execute(sql)]

    def _materialize(self, registration, columns, row):
        instance = registration.factory()
        for name, value in zip(columns, row):
            accessor = registration.accessors[name]
            if not accessor.writable:
                continue
            try:
                accessor.set(instance, from_db_value(value, accessor.kind))
            except FieldAccessFailure as e:
                debug_print("Skipping column on load: {0}".format(e))
        return instance

    def count(self, entity_type):
        registration = self.registry.registration(entity_type)
        rows = self._execute("SELECT COUNT(*) FROM {0}".format(self._table_ref(registration)))
        return int(rows[0][0]) if rows else 0

    def is_persisted(self, instance):
        """True when a row with the instance's primary key exists."""
        if instance is None or type(instance) not in self.registry:
            return False
        registration = self.registry.registration(type(instance))
        pk_names = registration.metadata.primary_keys
        if not pk_names:
            return False
        values = self.registry.composite_key_extractor(type(instance), pk_names)(instance)
        if any(v is None for v in values):
            return False
        where = " AND ".join("`{0}` = {1}".format(n, self.placeholder) for n in pk_names)
        sql = "SELECT 1 FROM {0} WHERE {1} LIMIT 1".format(self._table_ref(registration), where)
        return bool(self._execute(sql, tuple(to_db_value(v) for v in values)))

    def add(self, instance):
        """Queue an instance for insertion on the next commit."""
        self.registry.registration(type(instance))
        self._pending.append(instance)

    def commit(self):
        """
        Insert all pending instances and commit the transaction.

        Returns:
            Number of inserted records

        Raises:
            EntityStoreError: the backing store rejected a record (e.g. a constraint violation)
        """
        if not self._pending:
            return 0
        pending, self._pending = self._pending, []
        count = 0
        cur = self.conn.cursor()
        try:
            for instance in pending:
                sql, params = self._insert_statement(instance)
                cur.execute(sql, params)
                count += cur.rowcount if cur.rowcount and cur.rowcount > 0 else 1
            self.conn.commit()
        except DB_ERRORS as e:
            self.conn.rollback()
            raise EntityStoreError("Commit failed after {0} of {1} records: {2}".format(
                count, len(pending), e)) from e
        finally:
            cur.close()
        debug_print("Committed {0} record(s)".format(count))
        return count

    def _insert_statement(self, instance):
        registration = self.registry.registration(type(instance))
        names, values = [], []
        for name in self._readable_columns(registration):
            try:
                value = registration.accessors[name].get(instance)
            except FieldAccessFailure as e:
                debug_print("Skipping column on insert: {0}".format(e))
                continue
            names.append(name)
            values.append(to_db_value(value))
        sql = "INSERT INTO {0} ({1}) VALUES ({2})".format(
            self._table_ref(registration),
            ", ".join("`{0}`".format(n) for n in names),
            ", ".join([self.placeholder] * len(names)))
        return sql, tuple(values)

    def create_tables(self):
        """Create a table for every registered entity type (CREATE TABLE IF NOT EXISTS)."""
        cur = self.conn.cursor()
        try:
            for entity_type in self.registry.entity_types():
                sql = render_create_table(self.registry, entity_type)
                debug_print("Creating {0}".format(self.describe(entity_type)))
                cur.execute(sql)
            self.conn.commit()
        finally:
            cur.close()

    def describe(self, entity_type):
        registration = self.registry.registration(entity_type)
        return node_name(registration.table.schema, registration.table.name)


def render_create_table(registry, entity_type):
    """Render CREATE TABLE DDL from registered metadata; FK targets are referenced by bare table name."""
    registration = registry.registration(entity_type)
    table, meta = registration.table, registration.metadata
    lines = []
    for col in table.columns:
        not_null = " NOT NULL" if col.name in meta.primary_keys or col.is_nullable == "NO" else ""
        lines.append("`{0}` {1}{2}".format(col.name, col.column_type or col.data_type or "", not_null))
    if meta.primary_keys:
        lines.append("PRIMARY KEY ({0})".format(", ".join("`{0}`".format(k) for k in meta.primary_keys)))
    for group in meta.foreign_keys:
        if group.principal_type not in registry:
            continue
        principal = registry.table_meta(group.principal_type)
        lines.append("FOREIGN KEY ({0}) REFERENCES `{1}` ({2})".format(
            ", ".join("`{0}`".format(c) for c in group.foreign_key_properties),
            principal.name,
            ", ".join("`{0}`".format(c) for c in registry.principal_key_properties(group))))
    return "CREATE TABLE IF NOT EXISTS `{0}`.`{1}` (\n  {2}\n)".format(
        table.schema, table.name, ",\n  ".join(lines))
