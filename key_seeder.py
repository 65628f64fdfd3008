#!/usr/bin/env python3
"""Key seeding: unique primary keys and referentially consistent foreign keys"""
import random
from generate_synthetic_entities_utils import debug_print
from key_counter_store import KeyCounterStore
from key_equality import KeyEqualityCompiler, value_shape_for, SCALAR
from seeding_errors import (
    UniqueKeyGenerationFailure, RecursionDepthExceeded,
    MetadataNotFound, FieldAccessFailure
)

MAX_RECURSION_DEPTH = 5
MAX_KEY_ATTEMPTS = 1000
DEFAULT_EXISTING_REFERENCE_CHANCE = 0.7


class KeySeeder(object):
    """
    Assigns primary and foreign keys to entity instances.

    Primary keys are issued by the key counter store (or a custom key
    fetcher) and retried until the whole key tuple is unique against the
    backing store. Foreign keys either reuse a random persisted principal
    (with probability existing_reference_chance) or point at a principal
    fabricated on the spot, recursively, up to MAX_RECURSION_DEPTH.
    """

    def __init__(self, registry, store, value_generator, counter_store=None,
                 equality_compiler=None, rng=None,
                 existing_reference_chance=DEFAULT_EXISTING_REFERENCE_CHANCE,
                 allow_existing_foreign_keys=True, custom_key_fetcher=None):
        """
        Initialize key seeder.

        Args:
            registry: SchemaRegistry (schema metadata provider)
            store: Backing store with query/add/commit
            value_generator: ValueGenerator used to fabricate new principals
            counter_store: KeyCounterStore (a fresh one when omitted)
            equality_compiler: KeyEqualityCompiler (a fresh one when omitted)
            rng: Random number generator for reuse decisions
            existing_reference_chance: Chance in [0, 1] to reuse an existing principal
            allow_existing_foreign_keys: False always fabricates new principals
            custom_key_fetcher: Optional callable (entity_type, property_name) -> key value
        """
        self.registry = registry
        self.store = store
        self.value_generator = value_generator
        self.counter_store = counter_store if counter_store is not None else KeyCounterStore()
        self.equality_compiler = equality_compiler or KeyEqualityCompiler(registry)
        self.rng = rng or random.Random()
        self.existing_reference_chance = existing_reference_chance
        self.allow_existing_foreign_keys = allow_existing_foreign_keys
        self.custom_key_fetcher = custom_key_fetcher

    @property
    def existing_reference_chance(self):
        return self._existing_reference_chance

    @existing_reference_chance.setter
    def existing_reference_chance(self, value):
        value = float(value)
        if not 0.0 <= value <= 1.0:
            raise ValueError("existing_reference_chance must be within [0, 1], got {0}".format(value))
        self._existing_reference_chance = value

    def _metadata(self, entity_type):
        try:
            return self.registry.metadata_for(entity_type)
        except MetadataNotFound as e:
            debug_print("{0}; leaving keys as-is".format(e))
            return None

    def _writable(self, entity_type, property_name):
        try:
            return self.registry.writable_accessor(entity_type, property_name)
        except FieldAccessFailure as e:
            debug_print("Skipping key field: {0}".format(e))
            return None

    def clear_key_properties(self, instance):
        """Set every primary key and foreign key field to its empty value."""
        entity_type = type(instance)
        meta = self._metadata(entity_type)
        if meta is None:
            return instance
        names = list(meta.primary_keys)
        for group in meta.foreign_keys:
            names.extend(group.foreign_key_properties)
        for name in names:
            accessor = self._writable(entity_type, name)
            if accessor is None:
                continue
            try:
                accessor.set(instance, None)
            except FieldAccessFailure as e:
                debug_print("Skipping key field: {0}".format(e))
        return instance

    def assign_keys(self, instance, depth=0, all_primary_keys_set=False, all_foreign_keys_set=False):
        """
        Assign primary keys, then resolve foreign keys.

        Args:
            instance: Entity instance with cleared (or caller-set) keys
            depth: Current recursion depth of dependent generation
            all_primary_keys_set: Skip primary key assignment
            all_foreign_keys_set: Skip foreign key resolution

        Raises:
            RecursionDepthExceeded: depth reached MAX_RECURSION_DEPTH
            UniqueKeyGenerationFailure: no unique primary key within MAX_KEY_ATTEMPTS
        """
        entity_type = type(instance)
        if depth >= MAX_RECURSION_DEPTH:
            raise RecursionDepthExceeded(entity_type, depth)
        if self._metadata(entity_type) is None:
            return instance
        attempts = self._assign_primary_keys(instance, all_primary_keys_set)
        self.assign_foreign_keys(instance, depth, all_foreign_keys_set)
        if not all_primary_keys_set and not all_foreign_keys_set:
            self._recheck_overlapping_keys(instance, depth, attempts)
        return instance

    def _next_key(self, entity_type, accessor):
        if self.custom_key_fetcher is not None:
            return self.custom_key_fetcher(entity_type, accessor.name)
        return self.counter_store.next(entity_type, accessor.name, accessor.kind)

    def _primary_key_taken(self, entity_type, pk_names, instance):
        """Return (taken, candidate) for the instance's current primary key tuple."""
        shape = value_shape_for(pk_names)
        key_equals = self.equality_compiler.compile(entity_type, pk_names, shape)
        candidate = self.registry.composite_key_extractor(entity_type, pk_names)(instance)
        if shape == SCALAR:
            candidate = candidate[0]
        existing = self.store.query(entity_type)
        return any(key_equals(e, candidate) for e in existing), candidate

    def assign_primary_keys(self, instance, already_set=False):
        """
        Regenerate every primary key component until the key tuple is unique
        among persisted instances of the type.
        """
        self._assign_primary_keys(instance, already_set)
        return instance

    def _assign_primary_keys(self, instance, already_set):
        """Assign primary keys; returns the number of attempts used."""
        if already_set:
            return 0
        entity_type = type(instance)
        meta = self._metadata(entity_type)
        if meta is None or not meta.primary_keys:
            return 0

        pk_names = meta.primary_keys
        accessors = [self._writable(entity_type, name) for name in pk_names]
        if not any(accessors):
            return 0

        attempts = 0
        while True:
            for accessor in accessors:
                if accessor is not None:
                    accessor.set(instance, self._next_key(entity_type, accessor))
            attempts += 1
            if attempts > MAX_KEY_ATTEMPTS:
                raise UniqueKeyGenerationFailure(entity_type, MAX_KEY_ATTEMPTS)

            taken, candidate = self._primary_key_taken(entity_type, pk_names, instance)
            if not taken:
                return attempts
            debug_print("{0}: Duplicate key {1}, retrying (attempt {2})".format(
                entity_type.__name__, candidate, attempts))

    def _recheck_overlapping_keys(self, instance, depth, attempts):
        """
        Re-check the primary key when foreign keys overwrote some of its
        components. On a collision the remaining primary key components are
        regenerated; when every component is a foreign key the overlapping
        groups are resolved again. Shares the primary key attempt budget.
        """
        entity_type = type(instance)
        meta = self._metadata(entity_type)
        if meta is None or not meta.primary_keys:
            return instance
        pk_names = meta.primary_keys
        overlapping = [g for g in meta.foreign_keys
                       if set(g.foreign_key_properties) & set(pk_names)]
        if not overlapping:
            return instance

        fk_names = set(n for g in overlapping for n in g.foreign_key_properties)
        free = [self._writable(entity_type, n) for n in pk_names if n not in fk_names]
        free = [a for a in free if a is not None]

        while True:
            taken, candidate = self._primary_key_taken(entity_type, pk_names, instance)
            if not taken:
                return instance
            attempts += 1
            if attempts > MAX_KEY_ATTEMPTS:
                raise UniqueKeyGenerationFailure(entity_type, MAX_KEY_ATTEMPTS)
            debug_print("{0}: Key {1} taken after FK resolution, retrying (attempt {2})".format(
                entity_type.__name__, candidate, attempts))
            if free:
                for accessor in free:
                    accessor.set(instance, self._next_key(entity_type, accessor))
            else:
                for group in overlapping:
                    self._assign_group(instance, group, depth)

    def assign_foreign_keys(self, instance, depth=0, already_set=False):
        """
        Point every foreign key group at a persisted principal, reusing an
        existing one or fabricating a new one.
        """
        if already_set:
            return instance
        entity_type = type(instance)
        meta = self._metadata(entity_type)
        if meta is None:
            return instance

        for group in meta.foreign_keys:
            self._assign_group(instance, group, depth)
        return instance

    def _assign_group(self, instance, group, depth):
        entity_type = type(instance)
        accessors = [self._writable(entity_type, name) for name in group.foreign_key_properties]
        if not any(accessors):
            return
        try:
            principal_type = self.registry.resolve(group.principal_type)
            principal_keys = self.registry.principal_key_properties(group)
        except MetadataNotFound as e:
            debug_print("{0}: Skipping FK {1}: {2}".format(
                entity_type.__name__, group.foreign_key_properties, e))
            return

        principal = self._resolve_principal(principal_type, depth)
        values = self.registry.composite_key_extractor(principal_type, principal_keys)(principal)
        for accessor, value in zip(accessors, values):
            if accessor is not None:
                accessor.set(instance, value)

    def _resolve_principal(self, principal_type, depth):
        existing = self.store.query(principal_type) if self.allow_existing_foreign_keys else []
        if existing:
            if self.rng.random() < self.existing_reference_chance:
                debug_print("{0}: Reusing one of {1} existing instances".format(
                    principal_type.__name__, len(existing)))
                return self.rng.choice(existing)
        return self.generate_dependent(principal_type, depth + 1)

    def generate_dependent(self, entity_type, depth):
        """
        Fabricate, seed and persist a new principal instance.

        Raises:
            RecursionDepthExceeded: depth reached MAX_RECURSION_DEPTH
        """
        entity_type = self.registry.resolve(entity_type)
        if depth >= MAX_RECURSION_DEPTH:
            raise RecursionDepthExceeded(entity_type, depth)
        debug_print("Generating dependent {0} at depth {1}".format(entity_type.__name__, depth))

        instance = self.value_generator.fabricate(entity_type)
        self.value_generator.strip_relationship_references(instance)
        self.clear_key_properties(instance)
        self.assign_keys(instance, depth, False, False)
        self.store.add(instance)
        self.store.commit()
        return instance
