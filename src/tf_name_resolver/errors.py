#!/usr/bin/env python3
"""
Resolution Errors

Every error carries the entity type, workspace and logical name involved so an
operator can find the typo or the missing upstream resource from the message
alone.
"""

from typing import Optional


class ResolverError(Exception):
    """Base class for all name resolution errors"""


class UnresolvedReference(ResolverError):
    """A logical name has no registered identifier"""

    def __init__(self, entity_type, workspace: str, name, spec_name: Optional[str] = None,
                 field: Optional[str] = None):
        self.entity_type = entity_type
        self.workspace = workspace
        self.name = name
        self.spec_name = spec_name
        self.field = field

        label = getattr(entity_type, 'label', entity_type)
        message = f"Unresolved {label} reference {name!r} in workspace {workspace!r}"
        if spec_name is not None:
            message += f" (spec {spec_name!r}"
            message += f", field {field!r})" if field else ")"
        super().__init__(message)


class DuplicateRegistration(ResolverError):
    """A logical name was registered twice with conflicting identifiers"""

    def __init__(self, entity_type, workspace: str, name: str, existing_id: str, new_id: str):
        self.entity_type = entity_type
        self.workspace = workspace
        self.name = name
        self.existing_id = existing_id
        self.new_id = new_id

        label = getattr(entity_type, 'label', entity_type)
        super().__init__(
            f"{label} {name!r} in workspace {workspace!r} is already registered "
            f"as {existing_id!r}, refusing to rebind it to {new_id!r}"
        )


class InvalidFieldMapping(ResolverError):
    """
    A reference field mapping does not fit the specification

    Raised when a declared field is absent from the specification, or when its
    resolved value would be written over another field.
    """

    def __init__(self, field: str, spec_name: Optional[str] = None, reason: Optional[str] = None):
        self.field = field
        self.spec_name = spec_name
        super().__init__(
            f"Reference field {field!r} of spec {spec_name!r} {reason}" if reason
            else f"Reference field {field!r} is not present on spec {spec_name!r}"
        )


class AmbiguousTargetType(ResolverError):
    """A route supplied a target_key without a target_type"""

    def __init__(self, target_key: str, spec_name: Optional[str] = None):
        self.target_key = target_key
        self.spec_name = spec_name
        super().__init__(
            f"Route in spec {spec_name!r} has target_key {target_key!r} but no target_type"
        )


class UnknownTargetType(ResolverError):
    """A route target_type is not accepted in strict mode"""

    def __init__(self, target_type: str, spec_name: Optional[str] = None):
        self.target_type = target_type
        self.spec_name = spec_name
        super().__init__(
            f"Route in spec {spec_name!r} has unknown target_type {target_type!r}"
        )


class InvalidRegistration(ResolverError, ValueError):
    """A registration was attempted with an empty or non-string value"""


class SpecificationError(ResolverError):
    """A specification document is malformed"""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"{path}: {message}" if path else message)
