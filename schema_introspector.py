#!/usr/bin/env python3
"""Schema introspection module for loading database metadata into a registry"""
import sqlite3
import sys
from collections import OrderedDict

import pymysql

from generate_synthetic_entities_utils import (
    debug_print, column_from_type, node_name, key_kind,
    ColumnMeta, FKMeta, TableMeta, ForeignKeyGroup, INTEGER_KINDS
)
from seeding_errors import MetadataNotFound

DIALECT_SQLITE = "sqlite"
DIALECT_MYSQL = "mysql"


def dialect_for(conn):
    return DIALECT_SQLITE if isinstance(conn, sqlite3.Connection) else DIALECT_MYSQL


def load_table_columns(conn, schema, table):
    """Load column metadata from information_schema"""
    cur = conn.cursor()
    cur.execute(
        "SELECT COLUMN_NAME, DATA_TYPE, IS_NULLABLE, COLUMN_TYPE, "
        "COLUMN_KEY, EXTRA, CHARACTER_MAXIMUM_LENGTH, NUMERIC_PRECISION, "
        "NUMERIC_SCALE, COLUMN_DEFAULT FROM information_schema.COLUMNS "
        "WHERE TABLE_SCHEMA=%s AND TABLE_NAME=%s ORDER BY ORDINAL_POSITION",
        (schema, table)
    )
    return [ColumnMeta(*r) for r in cur.fetchall()]


def load_table_pk(conn, schema, table):
    """Load primary key column names"""
    cur = conn.cursor()
    cur.execute(
        "SELECT COLUMN_NAME FROM information_schema.KEY_COLUMN_USAGE "
        "WHERE TABLE_SCHEMA=%s AND TABLE_NAME=%s AND CONSTRAINT_NAME='PRIMARY' "
        "ORDER BY ORDINAL_POSITION",
        (schema, table)
    )
    return [r[0] for r in cur.fetchall()]


def load_table_engine_and_ai(conn, schema, table):
    """Load table engine and auto_increment status"""
    try:
        cur = conn.cursor()
        cur.execute(
            "SELECT ENGINE, AUTO_INCREMENT FROM information_schema.TABLES "
            "WHERE TABLE_SCHEMA=%s AND TABLE_NAME=%s",
            (schema, table)
        )
        r = cur.fetchone()
        return (r[0], r[1]) if r else (None, None)
    except pymysql.MySQLError:
        return None, None


def load_fk_constraints_for_schema(conn, schema):
    """Load declared FK constraints for every table of a schema"""
    cur = conn.cursor()
    cur.execute(
        "SELECT CONSTRAINT_NAME, TABLE_SCHEMA, TABLE_NAME, COLUMN_NAME, "
        "REFERENCED_TABLE_SCHEMA, REFERENCED_TABLE_NAME, REFERENCED_COLUMN_NAME "
        "FROM information_schema.KEY_COLUMN_USAGE "
        "WHERE TABLE_SCHEMA=%s AND REFERENCED_TABLE_NAME IS NOT NULL "
        "ORDER BY CONSTRAINT_NAME, ORDINAL_POSITION",
        (schema,)
    )
    return [FKMeta(*r, is_logical=False) for r in cur.fetchall()]


def load_sqlite_table(conn, schema, table):
    """Load a TableMeta from SQLite's table_info pragma"""
    cur = conn.cursor()
    cur.execute('PRAGMA "{0}".table_info("{1}")'.format(schema, table))
    rows = cur.fetchall()
    cur.close()
    columns = []
    pk_positions = []
    for cid, name, decl_type, notnull, default, pk in rows:
        columns.append(column_from_type(name, decl_type, "NO" if notnull or pk else "YES",
                                        "PRI" if pk else ""))
        if pk:
            pk_positions.append((pk, name))
    pk_columns = [name for _, name in sorted(pk_positions)]
    auto_increment = (len(pk_columns) == 1 and
                      next(c for c in columns if c.name == pk_columns[0]).data_type == "integer")
    return TableMeta(schema, table, columns, pk_columns, auto_increment, "sqlite")


def load_sqlite_fks(conn, schema, table):
    """Load FK constraints of one SQLite table"""
    cur = conn.cursor()
    cur.execute('PRAGMA "{0}".foreign_key_list("{1}")'.format(schema, table))
    rows = cur.fetchall()
    cur.close()
    fks = []
    for fk_id, seq, ref_table, from_col, to_col, on_update, on_delete, match in rows:
        fks.append(FKMeta("fk_{0}_{1}".format(table, fk_id), schema, table, from_col,
                          schema, ref_table, to_col, False))
    return fks


def load_logical_fks_from_config(config):
    """Read single-column and composite logical FKs declared in the table config"""
    single_fks, composite_fks = [], []
    for table_cfg in config:
        tschema, tname = table_cfg["schema"], table_cfg["table"]
        ignore_self_refs = table_cfg.get("ignore_self_referential_fks", False)
        for lfk in table_cfg.get("logical_fks", []):
            if "column" in lfk:
                cname = lfk["column"]
                ref_schema, ref_table = lfk.get("referenced_schema", tschema), lfk["referenced_table"]
                ref_column = lfk.get("referenced_column")
                if ignore_self_refs and ref_schema == tschema and ref_table == tname:
                    continue
                single_fks.append(FKMeta(
                    lfk.get("constraint_name", "LOGICAL_{0}_{1}".format(tname, cname)),
                    tschema, tname, cname, ref_schema, ref_table, ref_column, True))
            elif "child_columns" in lfk and "referenced_columns" in lfk:
                child_cols, parent_cols = tuple(lfk["child_columns"]), tuple(lfk["referenced_columns"])
                ref_schema, ref_table = lfk.get("referenced_schema", tschema), lfk["referenced_table"]
                if ignore_self_refs and ref_schema == tschema and ref_table == tname:
                    continue
                composite_fks.append({
                    "constraint_name": lfk.get("constraint_name", "LOGICAL_{0}_{1}".format(tname, '_'.join(child_cols))),
                    "table_schema": tschema, "table_name": tname, "child_columns": child_cols,
                    "referenced_table_schema": ref_schema, "referenced_table_name": ref_table,
                    "referenced_columns": parent_cols})
    return single_fks, composite_fks


class SchemaIntrospector(object):
    """
    Responsible for loading database schema metadata and registering it.

    Handles:
    - Loading table columns and primary keys (MySQL information_schema or SQLite pragmas)
    - Loading declared and logical FK relationships
    - Registering every configured table as an entity type
    - Seeding key counters from the current MAX(pk) of populated tables
    """

    def __init__(self, conn, config, dialect=None):
        """
        Initialize schema introspector.

        Args:
            conn: Database connection (sqlite3 or PyMySQL)
            config: List of table configuration dicts
            dialect: "sqlite" or "mysql", detected from conn when omitted
        """
        self.conn = conn
        self.config = config
        self.dialect = dialect or dialect_for(conn)
        self.table_map = OrderedDict((node_name(t["schema"], t["table"]), t) for t in config)

        # Table metadata indexed by "schema.table"
        self.metadata = OrderedDict()

        # FK relationships
        self.fks = []
        self.logical_composite_fks = []

    def introspect_schemas(self, config_table_names=None):
        """
        Load metadata for all tables in config.

        Returns:
            Dict of "schema.table" -> TableMeta
        """
        for key in config_table_names or list(self.table_map):
            schema, table = key.split(".", 1)
            if self.dialect == DIALECT_SQLITE:
                tmeta = load_sqlite_table(self.conn, schema, table)
            else:
                cols = load_table_columns(self.conn, schema, table)
                pkcols = load_table_pk(self.conn, schema, table)
                engine, auto_inc = load_table_engine_and_ai(self.conn, schema, table)
                tmeta = TableMeta(schema, table, cols, pkcols, auto_inc is not None, engine) if cols else None

            if tmeta is None or not tmeta.columns:
                raise MetadataNotFound(key)
            if not tmeta.pk_columns:
                print("WARNING: {0} has no primary key; keys will be left as-is".format(key), file=sys.stderr)
            self.metadata[key] = tmeta
            debug_print("{0}: {1} columns, PK {2}".format(key, len(tmeta.columns), tmeta.pk_columns))
        return self.metadata

    def load_foreign_keys(self):
        """Load declared FKs plus logical FKs from config, dropping ignored self references."""
        fk_list = []
        if self.dialect == DIALECT_SQLITE:
            for key in self.metadata:
                schema, table = key.split(".", 1)
                fk_list.extend(load_sqlite_fks(self.conn, schema, table))
        else:
            for schema in OrderedDict.fromkeys(t["schema"] for t in self.config):
                fk_list.extend(load_fk_constraints_for_schema(self.conn, schema))

        single_logical, composite_logical = load_logical_fks_from_config(self.config)
        fk_list.extend(single_logical)
        self.logical_composite_fks = composite_logical

        self.fks = []
        for fk in fk_list:
            child = node_name(fk.table_schema, fk.table_name)
            parent = node_name(fk.referenced_table_schema, fk.referenced_table_name)
            if child not in self.table_map:
                continue
            if self.table_map[child].get("ignore_self_referential_fks", False) and child == parent:
                debug_print("{0}: Ignoring self-referential FK {1}".format(child, fk.constraint_name))
                continue
            self.fks.append(fk)
        return self.fks

    def foreign_key_groups(self, table_key):
        """Group FK columns of a table by constraint into ForeignKeyGroup objects."""
        grouped = OrderedDict()
        for fk in self.fks:
            if node_name(fk.table_schema, fk.table_name) != table_key:
                continue
            parent = node_name(fk.referenced_table_schema, fk.referenced_table_name)
            entry = grouped.setdefault(fk.constraint_name, (parent, [], []))
            entry[1].append(fk.column_name)
            entry[2].append(fk.referenced_column_name)

        groups = []
        for parent, cols, ref_cols in grouped.values():
            ref_cols = tuple(ref_cols) if all(ref_cols) else None
            groups.append(ForeignKeyGroup(tuple(cols), parent, ref_cols))
        for comp in self.logical_composite_fks:
            if node_name(comp["table_schema"], comp["table_name"]) == table_key:
                groups.append(ForeignKeyGroup(
                    comp["child_columns"],
                    node_name(comp["referenced_table_schema"], comp["referenced_table_name"]),
                    comp["referenced_columns"]))
        return groups

    def build_registry(self, registry, entity_types=None):
        """
        Register every introspected table.

        Args:
            registry: SchemaRegistry to fill
            entity_types: Optional dict "schema.table" -> hand-written class

        Returns:
            Dict "schema.table" -> registered entity type
        """
        entity_types = entity_types or {}
        registered = OrderedDict()
        for key, tmeta in self.metadata.items():
            registered[key] = registry.map_table(tmeta, self.foreign_key_groups(key),
                                                 entity_type=entity_types.get(key))
        return registered

    def validate_not_null_fks(self):
        """Return (child, column, parent) for NOT NULL FK columns whose parent is not configured."""
        errors = []
        for fk in self.fks:
            child = node_name(fk.table_schema, fk.table_name)
            parent = node_name(fk.referenced_table_schema, fk.referenced_table_name)
            tmeta = self.metadata.get(child)
            if not tmeta:
                continue
            colmeta = next((c for c in tmeta.columns if c.name == fk.column_name), None)
            if colmeta and colmeta.is_nullable == "NO" and parent not in self.table_map:
                errors.append((child, fk.column_name, parent))
        return errors

    def prepare_pk_sequences(self, registry, counter_store):
        """
        Seed integer key counters past the rows already present.

        Determines the last issued value from MAX(pk) and, on MySQL, the
        table's AUTO_INCREMENT value.
        """
        for key, tmeta in self.metadata.items():
            if len(tmeta.pk_columns) != 1:
                continue
            pk_col = tmeta.pk_columns[0]
            col = next((c for c in tmeta.columns if c.name == pk_col), None)
            if col is None or key_kind(col.data_type) not in INTEGER_KINDS:
                continue

            cur = self.conn.cursor()
            cur.execute("SELECT MAX(`{0}`) FROM `{1}`.`{2}`".format(pk_col, tmeta.schema, tmeta.name))
            r = cur.fetchone()
            current_max = r[0] if r and r[0] else 0

            if self.dialect == DIALECT_MYSQL:
                engine, auto_inc_next = load_table_engine_and_ai(self.conn, tmeta.schema, tmeta.name)
                if isinstance(auto_inc_next, int) and auto_inc_next - 1 > current_max:
                    current_max = auto_inc_next - 1

            if current_max:
                counter_store.seed(registry.resolve(key), pk_col, int(current_max))
