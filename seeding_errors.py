#!/usr/bin/env python3
"""Error kinds raised while seeding keys and persisting synthetic entities"""


class SeedingError(Exception):
    """Base class for all entity seeding errors."""


class UniqueKeyGenerationFailure(SeedingError):
    """Primary key uniqueness could not be satisfied within the attempt budget."""

    def __init__(self, entity_type, attempts):
        self.entity_type = entity_type
        self.attempts = attempts
        super(UniqueKeyGenerationFailure, self).__init__(
            "Unable to generate unique key for {0} after {1} attempts".format(
                _type_name(entity_type), attempts))


class RecursionDepthExceeded(SeedingError):
    """A dependency chain needed a principal deeper than the recursion limit."""

    def __init__(self, entity_type, depth):
        self.entity_type = entity_type
        self.depth = depth
        super(RecursionDepthExceeded, self).__init__(
            "Maximum recursion depth {0} reached for type {1}".format(
                depth, _type_name(entity_type)))


class MetadataNotFound(SeedingError):
    """No schema metadata is registered for the entity type."""

    def __init__(self, entity_type):
        self.entity_type = entity_type
        super(MetadataNotFound, self).__init__(
            "No metadata registered for {0}".format(_type_name(entity_type)))


class FieldAccessFailure(SeedingError):
    """A named property does not exist or is not writable on the entity type."""

    def __init__(self, entity_type, property_name, reason="not found"):
        self.entity_type = entity_type
        self.property_name = property_name
        super(FieldAccessFailure, self).__init__(
            "{0}.{1}: {2}".format(_type_name(entity_type), property_name, reason))


class EntityStoreError(SeedingError):
    """The backing store rejected pending entities on commit."""


def _type_name(entity_type):
    return getattr(entity_type, "__name__", str(entity_type))
