#!/usr/bin/env python3
"""Utility functions and data structures for synthetic entity generation"""
import re, sys, uuid
from datetime import datetime, timedelta
from collections import namedtuple

GLOBALS = {"debug": False}

# Key kinds understood by the key counter store and the key seeder
KIND_INTEGER = "integer"
KIND_LARGE_INTEGER = "large_integer"
KIND_UUID = "uuid"
KIND_STRING = "string"
KIND_TIMESTAMP = "timestamp"
KIND_OTHER = "other"

INTEGER_KINDS = (KIND_INTEGER, KIND_LARGE_INTEGER)

INTEGER_TYPES = ("int", "integer", "smallint", "mediumint", "tinyint")
LARGE_INTEGER_TYPES = ("bigint",)
UUID_TYPES = ("uuid", "uniqueidentifier", "guid")
STRING_TYPES = ("varchar", "char", "text", "mediumtext", "longtext", "nvarchar", "nchar", "string")
TIMESTAMP_TYPES = ("date", "datetime", "timestamp")
DECIMAL_TYPES = ("decimal", "numeric", "float", "double", "real")

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"
NIL_UUID = uuid.UUID(int=0)

COLUMN_TYPE_PATTERN = re.compile(r"^\s*([A-Za-z ]+?)\s*(?:\(([^)]*)\))?\s*(unsigned)?\s*$", re.I)
ENUM_PATTERN = re.compile(r"'((?:[^']|(?:''))*)'")
AGE_PATTERN = re.compile(r"age|years? ", re.I)


def debug_print(*args, **kwargs):
    if GLOBALS["debug"]:
        print("[DEBUG]", *args, **kwargs)


def parse_date(date_str):
    """
    Parse date string in various formats.
    Supports: YYYY-MM-DD, YYYY-MM-DD HH:MM:SS[.ffffff], ISO format

    Returns: datetime object or None if parsing fails
    """
    if not date_str:
        return None
    formats = [
        "%Y-%m-%d",
        "%Y-%m-%d %H:%M:%S",
        "%Y-%m-%d %H:%M:%S.%f",
        "%Y-%m-%dT%H:%M:%S",
        "%Y-%m-%dT%H:%M:%S.%f"
    ]
    for fmt in formats:
        try:
            return datetime.strptime(date_str, fmt)
        except ValueError:
            continue
    return None


def key_kind(data_type):
    """Map a column data type to the key kind used for key generation."""
    dtype = (data_type or "").lower().strip()
    if dtype in LARGE_INTEGER_TYPES:
        return KIND_LARGE_INTEGER
    if dtype in INTEGER_TYPES:
        return KIND_INTEGER
    if dtype in UUID_TYPES:
        return KIND_UUID
    if dtype in STRING_TYPES:
        return KIND_STRING
    if dtype in TIMESTAMP_TYPES:
        return KIND_TIMESTAMP
    return KIND_OTHER


def default_for_kind(kind):
    """Empty value written into cleared key fields (None for every kind)."""
    return None


def is_default_or_empty(value, kind):
    if value is None:
        return True
    if kind in INTEGER_KINDS:
        return value == 0
    if kind == KIND_STRING:
        return value == ""
    if kind == KIND_UUID:
        return value == NIL_UUID or value == ""
    return False


def column_from_type(name, column_type, is_nullable="YES", column_key=""):
    """
    Build a ColumnMeta from a declared type such as "varchar(50)" or "decimal(10,2)".

    Args:
        name: Column name
        column_type: Declared column type string
        is_nullable: "YES" or "NO"
        column_key: "PRI", "MUL" or ""

    Returns: ColumnMeta
    """
    column_type = column_type or ""
    m = COLUMN_TYPE_PATTERN.match(column_type)
    data_type = column_type.lower()
    char_max_length = numeric_precision = numeric_scale = None
    if m:
        data_type = m.group(1).lower().strip()
        args = [a.strip() for a in (m.group(2) or "").split(",") if a.strip()]
        if data_type in ("enum", "set"):
            pass
        elif data_type in STRING_TYPES and args and args[0].isdigit():
            char_max_length = int(args[0])
        elif data_type in DECIMAL_TYPES and args and args[0].isdigit():
            numeric_precision = int(args[0])
            numeric_scale = int(args[1]) if len(args) > 1 and args[1].isdigit() else 0
    return ColumnMeta(name, data_type, is_nullable, column_type.lower(), column_key, "",
                      char_max_length, numeric_precision, numeric_scale, None)


def parse_populate_columns_config(table_cfg):
    """
    Parse populate_columns configuration supporting both formats:
    - String: "column_name" (backward compatible)
    - Object: {"column": "name", "min": X, "max": Y} or {"column": "name", "values": [...]}

    Returns: dict mapping column_name -> config_object
    """
    populate_cols = {}
    for item in table_cfg.get("populate_columns", []):
        if isinstance(item, str):
            populate_cols[item] = {"column": item}
        elif isinstance(item, dict):
            col_name = item.get("column")
            if col_name:
                populate_cols[col_name] = item
            else:
                print("WARNING: populate_columns entry missing 'column' field: {0}".format(item), file=sys.stderr)
    return populate_cols


def validate_populate_column_config(col_meta, config):
    """
    Validate that the configuration is appropriate for the column type.

    Args:
        col_meta: ColumnMeta object
        config: dict with configuration for the column

    Returns: bool indicating if configuration is valid (warnings are printed but don't fail)
    """
    if not config:
        return True

    dtype = (col_meta.data_type or "").lower()

    if "values" in config and "min" in config:
        print("WARNING: Column {0} has both 'values' and 'min/max' - 'values' will take precedence".format(
            col_meta.name), file=sys.stderr)

    if "min" in config and "max" in config:
        min_val = config["min"]
        max_val = config["max"]

        if dtype in INTEGER_TYPES + LARGE_INTEGER_TYPES:
            if not isinstance(min_val, int) or not isinstance(max_val, int):
                print("WARNING: Column {0} is integer type but min/max are not integers".format(
                    col_meta.name), file=sys.stderr)

        if dtype in INTEGER_TYPES + LARGE_INTEGER_TYPES + DECIMAL_TYPES:
            if min_val >= max_val:
                print("ERROR: Column {0} has min >= max ({1} >= {2})".format(
                    col_meta.name, min_val, max_val), file=sys.stderr)
                return False

        if dtype in TIMESTAMP_TYPES:
            min_date = parse_date(str(min_val))
            max_date = parse_date(str(max_val))
            if min_date is None:
                print("ERROR: Column {0} has invalid min date format: {1}".format(
                    col_meta.name, min_val), file=sys.stderr)
                return False
            if max_date is None:
                print("ERROR: Column {0} has invalid max date format: {1}".format(
                    col_meta.name, max_val), file=sys.stderr)
                return False
            if min_date >= max_date:
                print("ERROR: Column {0} has min date >= max date ({1} >= {2})".format(
                    col_meta.name, min_val, max_val), file=sys.stderr)
                return False

    return True


def rand_decimal_str(rng, precision, scale):
    whole_digits = precision - scale
    max_whole = 10**whole_digits - 1 if whole_digits > 0 else 0
    whole_part = 0 if max_whole <= 0 else rng.randint(0, max_whole)
    if scale > 0:
        frac_part = rng.randint(0, 10**scale - 1)
        return "{0}.{1}".format(whole_part, str(frac_part).zfill(scale))
    return str(whole_part)

def rand_string(rng, length=12):
    return "".join(rng.choice("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789") for _ in range(length))

def rand_name(rng):
    firsts = ["Alice","Bob","Charlie","Dana","Eve","Frank","Grace","Heidi","Ivan","Judy"]
    lasts = ["Smith","Johnson","Williams","Jones","Brown","Davis","Miller","Wilson"]
    return "{0} {1}".format(rng.choice(firsts), rng.choice(lasts))

def rand_email(rng, name=None):
    domains = ["example.com","example.org","test.com"]
    if name:
        uname = re.sub(r"[^a-z0-9]", ".", name.lower()).strip(".")
        return "{0}@{1}".format(uname[:16], rng.choice(domains))
    return "{0}@{1}".format(rand_string(rng, 8).lower(), rng.choice(domains))

def rand_phone(rng):
    return "{0}-{1}-{2}".format(rng.randint(200,999), rng.randint(200,999), str(rng.randint(0,9999)).zfill(4))

def rand_datetime(rng, start_year=2010, end_year=None):
    if end_year is None:
        end_year = datetime.utcnow().year
    start = datetime(start_year,1,1)
    end = datetime(end_year,12,31,23,59,59)
    delta = end - start
    secs = rng.randint(0, int(delta.total_seconds()))
    return (start + timedelta(seconds=secs)).strftime("%Y-%m-%d %H:%M:%S")


def generate_value_with_config(rng, col, config=None):
    """
    Generate a random value for a non-key column, optionally using extended configuration.

    Args:
        rng: Random number generator
        col: ColumnMeta object
        config: Optional dict with 'min', 'max', or 'values' keys

    Returns: Generated value appropriate for the column type
    """
    if config is None:
        config = {}

    dtype = (col.data_type or "").lower()

    if "values" in config:
        debug_print("Column {0}: Using values list {1}".format(col.name, config["values"]))
        return rng.choice(config["values"])

    min_val = config.get("min")
    max_val = config.get("max")
    has_range = min_val is not None and max_val is not None

    if dtype in INTEGER_TYPES + LARGE_INTEGER_TYPES:
        if has_range:
            debug_print("Column {0}: Using int range [{1}, {2}]".format(col.name, min_val, max_val))
            return rng.randint(int(min_val), int(max_val))
        if AGE_PATTERN.search(col.name):
            return rng.randint(18, 80)
        return rng.randint(0, 10000)

    elif dtype in DECIMAL_TYPES:
        if has_range:
            debug_print("Column {0}: Using decimal range [{1}, {2}]".format(col.name, min_val, max_val))
            return round(rng.uniform(float(min_val), float(max_val)), 2)
        prec = int(col.numeric_precision or 10)
        scale = int(col.numeric_scale or 0)
        return rand_decimal_str(rng, prec, scale)

    elif dtype in TIMESTAMP_TYPES:
        if has_range:
            min_date = parse_date(str(min_val))
            max_date = parse_date(str(max_val))
            if min_date and max_date:
                debug_print("Column {0}: Using date range [{1}, {2}]".format(col.name, min_val, max_val))
                delta = max_date - min_date
                random_date = min_date + timedelta(days=rng.randint(0, max(0, delta.days)))
                if dtype == "date":
                    return random_date.strftime("%Y-%m-%d")
                random_datetime = random_date + timedelta(seconds=rng.randint(0, 86399))
                return random_datetime.strftime("%Y-%m-%d %H:%M:%S")
        return rand_datetime(rng).split(" ")[0] if dtype == "date" else rand_datetime(rng)

    elif dtype in UUID_TYPES:
        return uuid.UUID(int=rng.getrandbits(128), version=4)

    elif dtype in STRING_TYPES:
        lname = col.name.lower()
        if "email" in lname:
            return rand_email(rng)
        elif "name" in lname:
            return rand_name(rng)
        elif "phone" in lname:
            return rand_phone(rng)
        maxlen = int(col.char_max_length) if col.char_max_length else 24
        return rand_string(rng, min(maxlen, 24))

    elif dtype == "enum":
        vals = [v.replace("''", "'") for v in ENUM_PATTERN.findall(col.column_type or "")]
        return rng.choice(vals) if vals else None

    elif dtype in ("bool", "boolean"):
        return rng.random() < 0.5

    elif col.is_nullable == "NO":
        return rand_string(rng, 8)

    return None


ColumnMeta = namedtuple("ColumnMeta", ["name","data_type","is_nullable","column_type","column_key","extra","char_max_length","numeric_precision","numeric_scale","column_default"])
FKMeta = namedtuple("FKMeta", ["constraint_name","table_schema","table_name","column_name","referenced_table_schema","referenced_table_name","referenced_column_name","is_logical"])
TableMeta = namedtuple("TableMeta", ["schema","name","columns","pk_columns","auto_increment","engine"])
EntityMetadata = namedtuple("EntityMetadata", ["entity_type","primary_keys","foreign_keys"])
ForeignKeyGroup = namedtuple("ForeignKeyGroup", ["foreign_key_properties","principal_type","principal_key_properties"])
ForeignKeyGroup.__new__.__defaults__ = (None,)


def node_name(schema, table):
    return "{0}.{1}".format(schema, table)
