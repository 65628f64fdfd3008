#!/usr/bin/env python3
"""Thread-safe store of the last key value issued per (entity type, property)"""
import threading
import uuid
from datetime import datetime, timedelta
from generate_synthetic_entities_utils import (
    debug_print, default_for_kind, INTEGER_KINDS,
    KIND_UUID, KIND_STRING, KIND_TIMESTAMP
)


class KeyCounterStore(object):
    """
    Issues fresh key values per key kind.

    Integer kinds count up from 1 per (entity type, property). Identifier
    kinds need no counter; the issued value is still recorded. Timestamps are
    the current time truncated to seconds, moved one second past the last
    issued value when the clock has not advanced.
    Callers needing isolated sequences create a fresh store.
    """

    def __init__(self):
        self._current = {}
        self._lock = threading.Lock()

    def next(self, entity_type, property_name, kind):
        """
        Issue the next key value.

        Args:
            entity_type: Entity class the key belongs to
            property_name: Key property name
            kind: Key kind (see generate_synthetic_entities_utils.key_kind)

        Returns:
            Freshly issued value
        """
        key = (entity_type, property_name)
        with self._lock:
            if kind in INTEGER_KINDS:
                value = (self._current.get(key) or 0) + 1
            elif kind == KIND_UUID:
                value = uuid.uuid4()
            elif kind == KIND_STRING:
                value = str(uuid.uuid4())
            elif kind == KIND_TIMESTAMP:
                # Whole seconds: the precision a DATETIME column keeps
                value = datetime.utcnow().replace(microsecond=0)
                previous = self._current.get(key)
                if isinstance(previous, datetime) and value <= previous:
                    value = previous + timedelta(seconds=1)
            else:
                value = default_for_kind(kind)
            self._current[key] = value
        return value

    def current(self, entity_type, property_name):
        with self._lock:
            return self._current.get((entity_type, property_name))

    def seed(self, entity_type, property_name, last_value):
        """Continue an integer sequence after last_value (e.g. MAX(pk) of a populated table)."""
        key = (entity_type, property_name)
        with self._lock:
            previous = self._current.get(key)
            if isinstance(previous, int) and previous >= last_value:
                return
            self._current[key] = last_value
        debug_print("Seeded key counter {0}.{1} at {2}".format(
            getattr(entity_type, "__name__", entity_type), property_name, last_value))

    def reset(self):
        with self._lock:
            self._current.clear()

    def __len__(self):
        with self._lock:
            return len(self._current)
