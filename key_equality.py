#!/usr/bin/env python3
"""Cached key comparison predicates used for primary key uniqueness checks"""
import threading
from generate_synthetic_entities_utils import debug_print
from seeding_errors import FieldAccessFailure

SCALAR = "scalar"
COMPOSITE = "composite"


def value_shape_for(key_property_names):
    return SCALAR if len(key_property_names) == 1 else COMPOSITE


def _never_equal(existing, candidate):
    return False


class KeyEqualityCompiler(object):
    """
    Builds predicate(existing_instance, candidate_value) -> bool once per
    (entity type, key property names, value shape) and memoizes it.

    For SCALAR keys the candidate is a single value. For COMPOSITE keys the
    candidate is an ordered tuple compared positionally against the key
    properties; the predicate is the conjunction of those equalities.
    """

    def __init__(self, registry):
        self.registry = registry
        self._cache = {}
        self._lock = threading.Lock()

    def compile(self, entity_type, key_property_names, value_shape=None):
        names = tuple(key_property_names)
        if value_shape is None:
            value_shape = value_shape_for(names)
        cache_key = (entity_type, names, value_shape)

        predicate = self._cache.get(cache_key)
        if predicate is not None:
            return predicate

        with self._lock:
            predicate = self._cache.get(cache_key)
            if predicate is None:
                predicate = self._build(entity_type, names, value_shape)
                self._cache[cache_key] = predicate
        return predicate

    def contains(self, entity_type, key_property_names, instances, candidate):
        """True when any of the instances carries the candidate key."""
        names = tuple(key_property_names)
        shape = value_shape_for(names)
        if shape == SCALAR and isinstance(candidate, tuple):
            candidate = candidate[0]
        predicate = self.compile(entity_type, names, shape)
        return any(predicate(instance, candidate) for instance in instances)

    def cached_count(self):
        return len(self._cache)

    def _build(self, entity_type, names, value_shape):
        getters = []
        for name in names:
            try:
                getters.append(self.registry.accessor(entity_type, name).get)
            except FieldAccessFailure as e:
                debug_print("Key comparison for {0} always false: {1}".format(names, e))
                return _never_equal

        if value_shape == SCALAR:
            if len(getters) != 1:
                raise ValueError("Scalar key shape needs exactly one key property, got {0}".format(names))
            getter = getters[0]

            def scalar_equals(existing, candidate):
                try:
                    return getter(existing) == candidate
                except FieldAccessFailure:
                    return False

            return scalar_equals

        def composite_equals(existing, candidate):
            try:
                if len(candidate) != len(getters):
                    return False
                for getter, value in zip(getters, candidate):
                    if getter(existing) != value:
                        return False
                return True
            except (FieldAccessFailure, TypeError):
                return False

        return composite_equals
