#!/usr/bin/env python3
"""Schema metadata provider: entity registrations and property accessors"""
import operator
import re
import threading
from generate_synthetic_entities_utils import (
    debug_print, key_kind, column_from_type, node_name,
    ColumnMeta, TableMeta, EntityMetadata, ForeignKeyGroup
)
from seeding_errors import MetadataNotFound, FieldAccessFailure


class PropertyAccessor(object):
    """Getter/setter pair for one property of a registered entity type."""

    __slots__ = ("entity_type", "name", "kind", "writable", "_getter")

    def __init__(self, entity_type, name, kind, writable):
        self.entity_type = entity_type
        self.name = name
        self.kind = kind
        self.writable = writable
        self._getter = operator.attrgetter(name)

    def get(self, instance):
        try:
            return self._getter(instance)
        except AttributeError:
            raise FieldAccessFailure(self.entity_type, self.name, "not readable")

    def set(self, instance, value):
        if not self.writable:
            raise FieldAccessFailure(self.entity_type, self.name, "not writable")
        try:
            setattr(instance, self.name, value)
        except (AttributeError, TypeError):
            raise FieldAccessFailure(self.entity_type, self.name, "not writable")

    def __repr__(self):
        return "PropertyAccessor({0}.{1}, kind={2})".format(
            self.entity_type.__name__, self.name, self.kind)


class EntityRegistration(object):
    """Everything the seeder needs to know about one entity type."""

    def __init__(self, entity_type, table, metadata, accessors, relationships, factory):
        self.entity_type = entity_type
        self.table = table
        self.metadata = metadata
        self.accessors = accessors
        self.relationships = relationships
        self.factory = factory


class GeneratedEntity(object):
    """Base class for entity types created from introspected tables."""

    __slots__ = ()
    __table__ = None

    def __init__(self, **values):
        for name in self.__slots__:
            setattr(self, name, values.get(name))

    def as_dict(self):
        return dict((name, getattr(self, name)) for name in self.__slots__)

    def __repr__(self):
        return "{0}({1})".format(type(self).__name__, ", ".join(
            "{0}={1!r}".format(k, v) for k, v in self.as_dict().items()))


def class_name_for_table(table_name):
    parts = [p for p in re.split(r"[^0-9A-Za-z]+", table_name or "") if p]
    name = "".join(p[:1].upper() + p[1:] for p in parts) or "Entity"
    if name[0].isdigit():
        name = "T" + name
    return name


def make_entity_class(table_name, column_names):
    """Create a slotted entity class for a table with no hand-written class."""
    slots = tuple(c for c in column_names if c.isidentifier())
    skipped = [c for c in column_names if not c.isidentifier()]
    if skipped:
        debug_print("{0}: Columns not usable as attributes: {1}".format(table_name, skipped))
    return type(class_name_for_table(table_name), (GeneratedEntity,),
                {"__slots__": slots, "__table__": table_name})


def _allows_attribute(entity_type, name):
    for klass in entity_type.__mro__:
        slots = klass.__dict__.get("__slots__")
        if slots is None:
            if klass is not object:
                return True
            continue
        if isinstance(slots, str):
            slots = (slots,)
        if name in slots or "__dict__" in slots:
            return True
    return False


def _build_accessor(entity_type, name, kind):
    descriptor = getattr(entity_type, name, None)
    if isinstance(descriptor, property):
        if descriptor.fget is None:
            return None
        return PropertyAccessor(entity_type, name, kind, descriptor.fset is not None)
    if not _allows_attribute(entity_type, name):
        return None
    return PropertyAccessor(entity_type, name, kind, True)


def _normalize_columns(columns):
    """Accept ColumnMeta sequences, {name: column_type} dicts or (name, column_type) pairs."""
    if isinstance(columns, dict):
        columns = list(columns.items())
    normalized = []
    for col in columns:
        if isinstance(col, ColumnMeta):
            normalized.append(col)
        else:
            name, column_type = col
            normalized.append(column_from_type(name, column_type))
    return normalized


def _normalize_foreign_keys(foreign_keys):
    groups = []
    for fk in foreign_keys or ():
        if not isinstance(fk, ForeignKeyGroup):
            fk = ForeignKeyGroup(*fk)
        props = fk.foreign_key_properties
        if isinstance(props, str):
            props = (props,)
        principal_props = fk.principal_key_properties
        if isinstance(principal_props, str):
            principal_props = (principal_props,)
        groups.append(ForeignKeyGroup(
            tuple(props), fk.principal_type,
            tuple(principal_props) if principal_props else None))
    return tuple(groups)


class SchemaRegistry(object):
    """
    Registry of entity types and their key metadata.

    Handles:
    - Registration of hand-written classes and introspected tables
    - Property accessors built once at registration time
    - Primary/foreign key metadata lookup
    - Composite key extraction
    """

    def __init__(self):
        self._registrations = {}
        self._by_name = {}
        self._extractors = {}
        self._lock = threading.Lock()

    def register(self, entity_type, table, columns, primary_keys, foreign_keys=(),
                 relationships=None, schema="main", factory=None, auto_increment=False):
        """
        Register an entity type.

        Args:
            entity_type: Class whose instances are generated
            table: Table name in the backing store
            columns: ColumnMeta list, {name: column_type} dict or (name, column_type) pairs
            primary_keys: Ordered primary key property names
            foreign_keys: ForeignKeyGroup objects or (properties, principal[, principal_keys]) tuples
            relationships: Dict mapping relationship attribute -> principal type
            schema: Schema (database) name
            factory: Zero-argument callable creating a blank instance (default: entity_type)

        Returns:
            The registered entity type
        """
        if isinstance(primary_keys, str):
            primary_keys = (primary_keys,)
        columns = _normalize_columns(columns)
        table_meta = TableMeta(schema, table, columns, list(primary_keys), auto_increment, None)
        metadata = EntityMetadata(entity_type, tuple(primary_keys),
                                  _normalize_foreign_keys(foreign_keys))

        accessors = {}
        for col in columns:
            accessor = _build_accessor(entity_type, col.name, key_kind(col.data_type))
            if accessor is None:
                debug_print("{0}: No accessor for column {1}".format(entity_type.__name__, col.name))
                continue
            accessors[col.name] = accessor

        relationships = dict(relationships or {})
        for attr in relationships:
            accessor = _build_accessor(entity_type, attr, None)
            if accessor is not None:
                accessors.setdefault(attr, accessor)

        registration = EntityRegistration(entity_type, table_meta, metadata, accessors,
                                          relationships, factory or entity_type)
        with self._lock:
            self._registrations[entity_type] = registration
            self._by_name[table] = entity_type
            self._by_name[node_name(schema, table)] = entity_type
            self._by_name.setdefault(entity_type.__name__, entity_type)
            self._extractors = dict((k, v) for k, v in self._extractors.items() if k[0] is not entity_type)
        debug_print("Registered {0} -> {1} (PK {2}, {3} FK groups)".format(
            entity_type.__name__, node_name(schema, table), list(primary_keys),
            len(metadata.foreign_keys)))
        return entity_type

    def map_table(self, table_meta, foreign_keys=(), entity_type=None, relationships=None):
        """Register an introspected table, creating an entity class when none is given."""
        if entity_type is None:
            entity_type = make_entity_class(table_meta.name, [c.name for c in table_meta.columns])
        return self.register(entity_type, table_meta.name, table_meta.columns,
                             table_meta.pk_columns, foreign_keys, relationships,
                             schema=table_meta.schema, auto_increment=table_meta.auto_increment)

    def resolve(self, entity_type):
        """Resolve a class, table name, "schema.table" or class name to a registered class."""
        if isinstance(entity_type, str):
            resolved = self._by_name.get(entity_type)
            if resolved is None:
                raise MetadataNotFound(entity_type)
            return resolved
        if entity_type not in self._registrations:
            raise MetadataNotFound(entity_type)
        return entity_type

    def registration(self, entity_type):
        return self._registrations[self.resolve(entity_type)]

    def entity_types(self):
        return list(self._registrations)

    def __contains__(self, entity_type):
        try:
            self.resolve(entity_type)
        except MetadataNotFound:
            return False
        return True

    def metadata_for(self, entity_type):
        return self.registration(entity_type).metadata

    def table_meta(self, entity_type):
        return self.registration(entity_type).table

    def columns(self, entity_type):
        return list(self.registration(entity_type).table.columns)

    def relationships(self, entity_type):
        return dict(self.registration(entity_type).relationships)

    def accessor(self, entity_type, property_name):
        accessor = self.registration(entity_type).accessors.get(property_name)
        if accessor is None:
            raise FieldAccessFailure(self.resolve(entity_type), property_name)
        return accessor

    def writable_accessor(self, entity_type, property_name):
        accessor = self.accessor(entity_type, property_name)
        if not accessor.writable:
            raise FieldAccessFailure(accessor.entity_type, property_name, "not writable")
        return accessor

    def key_property_names(self, entity_type):
        """Primary key and foreign key property names, in declaration order."""
        meta = self.metadata_for(entity_type)
        names = list(meta.primary_keys)
        for group in meta.foreign_keys:
            names.extend(p for p in group.foreign_key_properties if p not in names)
        return names

    def principal_key_properties(self, group):
        """Principal properties referenced by a foreign key group."""
        if group.principal_key_properties:
            return group.principal_key_properties
        return self.metadata_for(group.principal_type).primary_keys

    def composite_key_extractor(self, entity_type, key_property_names):
        """
        Return a function mapping an instance to the ordered tuple of its key values.
        Properties that cannot be read yield None.
        """
        entity_type = self.resolve(entity_type)
        cache_key = (entity_type, tuple(key_property_names))
        extractor = self._extractors.get(cache_key)
        if extractor is not None:
            return extractor

        getters = []
        for name in key_property_names:
            try:
                getters.append(self.accessor(entity_type, name).get)
            except FieldAccessFailure as e:
                debug_print("Key extractor: {0}".format(e))
                getters.append(None)

        def extract(instance):
            values = []
            for getter in getters:
                if getter is None:
                    values.append(None)
                    continue
                try:
                    values.append(getter(instance))
                except FieldAccessFailure:
                    values.append(None)
            return tuple(values)

        self._extractors[cache_key] = extract
        return extract

    def create(self, entity_type):
        return self.registration(entity_type).factory()
