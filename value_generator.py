#!/usr/bin/env python3
"""Value generation module for fabricating raw entity instances"""
import random
from generate_synthetic_entities_utils import (
    debug_print, generate_value_with_config, node_name
)
from seeding_errors import FieldAccessFailure


class ValueGenerator(object):
    """
    Responsible for fabricating entity instances with plausible non-key values.

    Handles:
    - Populating non-key, non-relationship columns per column type
    - Extended populate_columns config (min/max ranges, value lists)
    - Clearing relationship references before key seeding
    - Clearing relationship references to unpersisted objects before commit
    """

    def __init__(self, registry, populate_columns_config=None, rng=None):
        """
        Initialize value generator.

        Args:
            registry: SchemaRegistry
            populate_columns_config: Dict of "schema.table" -> {column: config}
            rng: Random number generator
        """
        self.registry = registry
        self.populate_columns_config = populate_columns_config or {}
        self.rng = rng or random.Random()

    def _column_config(self, entity_type):
        table = self.registry.table_meta(entity_type)
        return self.populate_columns_config.get(node_name(table.schema, table.name), {})

    def fabricate(self, entity_type):
        """
        Create an instance with every non-key column populated.
        Key columns and relationship references are left unset.

        Args:
            entity_type: Registered entity type (class or table name)

        Returns:
            New entity instance
        """
        entity_type = self.registry.resolve(entity_type)
        instance = self.registry.create(entity_type)
        key_names = set(self.registry.key_property_names(entity_type))
        populate_config = self._column_config(entity_type)

        for col in self.registry.columns(entity_type):
            if col.name in key_names:
                continue
            try:
                accessor = self.registry.writable_accessor(entity_type, col.name)
                accessor.set(instance, generate_value_with_config(self.rng, col, populate_config.get(col.name)))
            except FieldAccessFailure as e:
                debug_print("Skipping column while fabricating: {0}".format(e))
        return instance

    def strip_relationship_references(self, instance):
        """Set every declared single-valued relationship reference to None."""
        entity_type = type(instance)
        for attr in self.registry.relationships(entity_type):
            try:
                self.registry.writable_accessor(entity_type, attr).set(instance, None)
            except FieldAccessFailure as e:
                debug_print("Skipping relationship: {0}".format(e))
        return instance

    def strip_unpersisted_relationship_references(self, instance, store):
        """Set relationship references to None where they point at objects not yet persisted."""
        entity_type = type(instance)
        for attr in self.registry.relationships(entity_type):
            try:
                accessor = self.registry.writable_accessor(entity_type, attr)
                target = accessor.get(instance)
                if target is not None and not store.is_persisted(target):
                    debug_print("{0}.{1}: Clearing reference to unpersisted {2}".format(
                        entity_type.__name__, attr, type(target).__name__))
                    accessor.set(instance, None)
            except FieldAccessFailure as e:
                debug_print("Skipping relationship: {0}".format(e))
        return instance
