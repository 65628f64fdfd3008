#!/usr/bin/env python3
"""Generate referentially consistent synthetic entities into SQLite or MySQL"""
import argparse, json, sys, random
from getpass import getpass

import pymysql

from generate_synthetic_entities_utils import (
    GLOBALS, debug_print, node_name,
    parse_populate_columns_config, validate_populate_column_config
)
from entity_store import SqlEntityStore, connect_sqlite
from generation_orchestrator import GenerationOrchestrator
from key_counter_store import KeyCounterStore
from key_seeder import KeySeeder, DEFAULT_EXISTING_REFERENCE_CHANCE
from schema_introspector import SchemaIntrospector
from schema_registry import SchemaRegistry
from value_generator import ValueGenerator


def shared_memory_uri(name):
    return "file:{0}?mode=memory&cache=shared".format(name)


class SyntheticEntityContext(object):
    """
    Wraps a connection, a schema registry and the generation pipeline.

    Entities are generated through generate_entity/generate_entities; the
    backing store keeps every generated record. Uses an in-memory SQLite
    database when no connection is given; contexts created with the same
    name share one in-memory database while any of them is open.
    """

    def __init__(self, conn=None, registry=None, seed=None,
                 existing_reference_chance=DEFAULT_EXISTING_REFERENCE_CHANCE,
                 allow_existing_foreign_keys=True, populate_columns_config=None,
                 counter_store=None, custom_key_fetcher=None, name=None):
        self.name = name
        self._owns_connection = conn is None
        if conn is None:
            conn = connect_sqlite(shared_memory_uri(name), uri=True) if name else connect_sqlite()
        self.conn = conn
        self.registry = registry if registry is not None else SchemaRegistry()
        self.populate_columns_config = populate_columns_config
        self.rng = random.Random(seed)
        self.store = SqlEntityStore(self.conn, self.registry)
        self.value_generator = ValueGenerator(self.registry, populate_columns_config, self.rng)
        self.key_seeder = KeySeeder(
            self.registry, self.store, self.value_generator,
            counter_store=counter_store if counter_store is not None else KeyCounterStore(),
            rng=self.rng,
            existing_reference_chance=existing_reference_chance,
            allow_existing_foreign_keys=allow_existing_foreign_keys,
            custom_key_fetcher=custom_key_fetcher)
        self.orchestrator = GenerationOrchestrator(
            self.registry, self.store, self.value_generator, self.key_seeder)

    @property
    def counter_store(self):
        return self.key_seeder.counter_store

    def register(self, entity_type, table, columns, primary_keys, foreign_keys=(), **kwargs):
        return self.registry.register(entity_type, table, columns, primary_keys, foreign_keys, **kwargs)

    def create_tables(self):
        self.store.create_tables()

    def generate_entity(self, entity_type, customize=None):
        return self.orchestrator.generate_one(entity_type, customize)

    def generate_entities(self, entity_type, quantity, customize=None):
        return self.orchestrator.generate(entity_type, quantity, customize)

    def query(self, entity_type):
        return self.store.query(entity_type)

    def save_changes(self):
        return self.store.commit()

    def copy(self):
        """
        New context on the same connection, registry and key counters.
        Closing the copy leaves the shared connection open.
        """
        return SyntheticEntityContext(
            conn=self.conn, registry=self.registry,
            existing_reference_chance=self.key_seeder.existing_reference_chance,
            allow_existing_foreign_keys=self.key_seeder.allow_existing_foreign_keys,
            populate_columns_config=self.populate_columns_config,
            counter_store=self.counter_store,
            custom_key_fetcher=self.key_seeder.custom_key_fetcher,
            name=self.name)

    def close(self):
        if self._owns_connection:
            self.conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


def load_config(path):
    try:
        with open(path, "r", encoding="utf-8") as f:
            cfg = json.load(f)
        if not isinstance(cfg, list):
            raise ValueError("Config must be an array")
        for entry in cfg:
            if "schema" not in entry or "table" not in entry:
                raise ValueError("Each entry must have 'schema' and 'table'")
        return cfg
    except IOError:
        print("Error: Config file not found: {0}".format(path), file=sys.stderr)
        sys.exit(1)
    except ValueError as e:
        print("Error: Invalid config: {0}".format(e), file=sys.stderr)
        sys.exit(1)


def connect_mysql(args):
    pwd = args.src_password
    if args.ask_pass and not pwd:
        pwd = getpass("Password for {0}@{1}: ".format(args.src_user, args.src_host))
    try:
        return pymysql.connect(host=args.src_host, port=args.src_port, user=args.src_user,
                               password=pwd, charset="utf8mb4", autocommit=False)
    except pymysql.MySQLError as e:
        print("Error: Failed to connect to MySQL: {0}".format(e), file=sys.stderr)
        sys.exit(1)


def connect(args):
    if args.sqlite:
        return connect_sqlite(args.sqlite)
    if not args.src_host or not args.src_user:
        print("Error: Either --sqlite or --src-host/--src-user is required", file=sys.stderr)
        sys.exit(1)
    return connect_mysql(args)


def build_context(conn, config, args):
    """Introspect the configured tables and wire a SyntheticEntityContext for them."""
    introspector = SchemaIntrospector(conn, config)
    metadata = introspector.introspect_schemas()
    introspector.load_foreign_keys()

    errors = introspector.validate_not_null_fks()
    if errors:
        print("Error: NOT NULL FK columns reference parents not in config:", file=sys.stderr)
        for child, col, parent in errors:
            print("  - {0}.{1} -> {2}".format(child, col, parent), file=sys.stderr)
        sys.exit(1)

    populate_columns_config = {}
    for table_cfg in config:
        node = node_name(table_cfg["schema"], table_cfg["table"])
        populate_cols = parse_populate_columns_config(table_cfg)
        columns = dict((c.name, c) for c in metadata[node].columns)
        for col_name, col_cfg in populate_cols.items():
            col_meta = columns.get(col_name)
            if col_meta is None:
                print("WARNING: {0}: populate_columns refers to unknown column {1}".format(
                    node, col_name), file=sys.stderr)
            elif not validate_populate_column_config(col_meta, col_cfg):
                sys.exit(1)
        populate_columns_config[node] = populate_cols

    ctx = SyntheticEntityContext(
        conn=conn, seed=args.seed,
        existing_reference_chance=args.existing_reference_chance,
        allow_existing_foreign_keys=not args.no_existing_fks,
        populate_columns_config=populate_columns_config)
    introspector.build_registry(ctx.registry)
    introspector.prepare_pk_sequences(ctx.registry, ctx.counter_store)
    return ctx


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Generate referentially consistent synthetic rows into SQLite or MySQL")
    p.add_argument("--config", required=True, help="JSON config file path")
    p.add_argument("--sqlite", default=None, help="SQLite database file")
    p.add_argument("--src-host", default=None, help="MySQL host")
    p.add_argument("--src-user", default=None, help="MySQL user")
    p.add_argument("--src-port", type=int, default=3306, help="MySQL port (default: 3306)")
    p.add_argument("--src-password", default=None, help="MySQL password")
    p.add_argument("--ask-pass", action="store_true", help="Prompt for password")
    p.add_argument("--rows", type=int, default=None, help="Rows per table (default: 10)")
    p.add_argument("--seed", type=int, default=42, help="Random seed")
    p.add_argument("--existing-reference-chance", type=float, default=DEFAULT_EXISTING_REFERENCE_CHANCE,
                   help="Chance to reuse an existing parent row for a FK (default: 0.7)")
    p.add_argument("--no-existing-fks", action="store_true", help="Always generate new parent rows")
    p.add_argument("--debug", action="store_true", help="Enable debug output")
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    GLOBALS["debug"] = args.debug
    cfg = load_config(args.config)
    conn = connect(args)
    default_rows = args.rows if args.rows is not None else 10
    try:
        ctx = build_context(conn, cfg, args)
        total = 0
        for table_cfg in cfg:
            node = node_name(table_cfg["schema"], table_cfg["table"])
            rows = int(table_cfg.get("rows") or default_rows)
            generated = ctx.generate_entities(node, rows)
            total += len(generated)
            debug_print("Generated {0} rows for {1}".format(len(generated), node))
        print(" Generated {0} row(s) for {1} table(s)".format(total, len(cfg)))
    except Exception as e:
        print("Error: {0}".format(e), file=sys.stderr)
        if GLOBALS["debug"]:
            import traceback
            traceback.print_exc()
        sys.exit(1)
    finally:
        conn.close()

if __name__ == "__main__":
    main()
