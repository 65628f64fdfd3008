#!/usr/bin/env python3
"""Coordinates fabrication, key seeding and persistence of entities"""
from generate_synthetic_entities_utils import debug_print, is_default_or_empty
from seeding_errors import MetadataNotFound, FieldAccessFailure


class GenerationOrchestrator(object):
    """
    fabricate -> strip relationship references -> clear keys -> customize
    -> seed keys -> persist, once per requested instance.
    """

    def __init__(self, registry, store, value_generator, key_seeder):
        self.registry = registry
        self.store = store
        self.value_generator = value_generator
        self.key_seeder = key_seeder

    def all_keys_set(self, instance):
        """
        Tuple (all_primary_keys_set, all_foreign_keys_set) evaluated per group.
        A group with no properties, or with any empty or unreadable property, is not set.
        """
        entity_type = type(instance)
        try:
            meta = self.registry.metadata_for(entity_type)
        except MetadataNotFound:
            return False, False

        def group_set(names):
            if not names:
                return False
            for name in names:
                try:
                    accessor = self.registry.accessor(entity_type, name)
                    if is_default_or_empty(accessor.get(instance), accessor.kind):
                        return False
                except FieldAccessFailure:
                    return False
            return True

        fk_names = [n for group in meta.foreign_keys for n in group.foreign_key_properties]
        return group_set(meta.primary_keys), group_set(fk_names)

    def generate_one(self, entity_type, customize=None):
        """
        Generate, seed and persist one instance.

        Args:
            entity_type: Registered entity type (class or table name)
            customize: Optional callable(instance) applied after keys are cleared;
                key groups it fills completely are kept as-is

        Returns:
            The persisted instance
        """
        entity_type = self.registry.resolve(entity_type)
        instance = self.value_generator.fabricate(entity_type)
        self.value_generator.strip_relationship_references(instance)

        self.key_seeder.clear_key_properties(instance)
        if customize is not None:
            customize(instance)
        all_pk_set, all_fk_set = self.all_keys_set(instance)
        self.key_seeder.assign_keys(instance, 0, all_pk_set, all_fk_set)

        self.store.add(instance)
        self.value_generator.strip_unpersisted_relationship_references(instance, self.store)
        self.store.commit()
        return instance

    def generate(self, entity_type, quantity, customize=None):
        """Generate and persist quantity instances; all are persisted before returning."""
        if quantity < 0:
            raise ValueError("quantity must be >= 0, got {0}".format(quantity))
        instances = []
        for _ in range(quantity):
            instances.append(self.generate_one(entity_type, customize))
        debug_print("Generated {0} {1} instance(s)".format(
            len(instances), getattr(entity_type, "__name__", entity_type)))
        return instances
