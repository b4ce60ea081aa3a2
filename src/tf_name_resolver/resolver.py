#!/usr/bin/env python3
"""
Name Resolver

This module implements the reference resolution layer: it replaces the logical
names a user writes in a specification (vpc_name, subnet_name, sg_name, ...)
with the identifiers the provisioning backend assigned to those entities, using
whatever registries are populated at the time of the call.

Resolution is all-or-nothing. The input specification is never modified and a
resolved specification is only returned once every reference has resolved.
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from .entities import EntityType, ROUTE_TARGET_TYPES
from .errors import (
    AmbiguousTargetType,
    InvalidFieldMapping,
    SpecificationError,
    UnknownTargetType,
    UnresolvedReference,
)
from .registry import RegistryStore

logger = logging.getLogger(__name__)


@dataclass
class Specification:
    """User-authored description of an entity, possibly holding name references"""
    name: str
    workspace: str
    fields: Dict[str, Any] = field(default_factory=dict)
    kind: Optional[str] = None


@dataclass
class RouteSpecification:
    """A single route whose target is selected by target_type"""
    destination_cidr: Optional[str] = None
    target_type: Optional[str] = None
    target_key: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)
    name: Optional[str] = None
    workspace: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], name: Optional[str] = None,
                  workspace: Optional[str] = None) -> "RouteSpecification":
        """Build a route from a field map using cidr_block or destination_cidr"""
        extra = {
            key: value for key, value in data.items()
            if key not in ('cidr_block', 'destination_cidr', 'target_type', 'target_key')
        }
        return cls(
            destination_cidr=data.get('cidr_block', data.get('destination_cidr')),
            target_type=data.get('target_type'),
            target_key=data.get('target_key'),
            extra=extra,
            name=name,
            workspace=workspace,
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'cidr_block': self.destination_cidr,
            'target_type': self.target_type,
            'target_key': self.target_key,
        }
        result.update(copy.deepcopy(self.extra))
        return result


@dataclass
class ResolvedSpecification:
    """A specification whose reference fields hold identifiers"""
    name: str
    workspace: str
    fields: Dict[str, Any] = field(default_factory=dict)
    kind: Optional[str] = None


@dataclass(frozen=True)
class ReferenceField:
    """
    A field holding one logical name or a list of them

    The resolved value is written under target, or under the original field
    name when target is not set.
    """
    entity_type: EntityType
    target: Optional[str] = None


@dataclass(frozen=True)
class RouteListField:
    """A field holding a list of route specifications"""
    target: Optional[str] = None


FieldMapping = Mapping[str, Union[EntityType, ReferenceField, RouteListField]]


def _normalize_field(value) -> Union[ReferenceField, RouteListField]:
    if isinstance(value, (ReferenceField, RouteListField)):
        return value
    return ReferenceField(EntityType.parse(value))


class NameResolver:
    """
    Resolves logical names against per-workspace registries

    The resolver holds no ordering logic. Callers populate registries in
    dependency order and every lookup reads only what is registered at call
    time.
    """

    def __init__(self,
                 store: Optional[RegistryStore] = None,
                 strict_target_types: bool = False,
                 literal_target_types: Iterable[str] = ()):
        """
        Initialize the resolver

        Args:
            store: Registry store to read and write, a fresh one by default
            strict_target_types: Reject route target types that are neither
                registry backed nor listed in literal_target_types
            literal_target_types: Route target types whose target_key is
                already an identifier
        """
        self.store = store or RegistryStore()
        self.strict_target_types = strict_target_types
        self.literal_target_types = frozenset(literal_target_types)

    def register(self, entity_type: EntityType, workspace: str, name: str, identifier: str) -> bool:
        """Bind name to identifier in the workspace registry of entity_type"""
        return self.store.workspace(workspace).register(entity_type, name, identifier)

    def resolve(self, entity_type: EntityType, workspace: str, name: str) -> str:
        """Return the identifier registered for name"""
        return self._lookup(EntityType.parse(entity_type), workspace, name)

    def resolve_many(self, entity_type: EntityType, workspace: str, names: Sequence[str]) -> List[str]:
        """
        Resolve an ordered sequence of names

        The result has the same order and length as names. The first missing
        name raises; no partial list is ever returned.
        """
        if isinstance(names, str):
            raise TypeError("names must be a sequence of logical names, not a string")
        entity_type = EntityType.parse(entity_type)
        return [self._lookup(entity_type, workspace, name) for name in names]

    def resolve_spec(self,
                     spec: Union[Specification, RouteSpecification],
                     reference_fields: Optional[FieldMapping] = None,
                     workspace: Optional[str] = None) -> ResolvedSpecification:
        """
        Replace the reference fields of a specification with identifiers

        Args:
            spec: Specification to resolve, left unmodified
            reference_fields: Field name to EntityType, ReferenceField or
                RouteListField. Fields not listed are copied through untouched.
            workspace: Workspace override, defaults to spec.workspace

        Returns:
            ResolvedSpecification with the same field order as spec
        """
        target_workspace = workspace if workspace is not None else spec.workspace

        if isinstance(spec, RouteSpecification):
            return ResolvedSpecification(
                name=spec.name,
                workspace=target_workspace,
                fields=self.resolve_route(spec, target_workspace, spec.name),
                kind='route',
            )

        mapping = {name: _normalize_field(value) for name, value in (reference_fields or {}).items()}
        self._check_mapping(spec, mapping)

        resolved: Dict[str, Any] = {}
        for field_name, value in spec.fields.items():
            declared = mapping.get(field_name)
            if declared is None:
                resolved[field_name] = copy.deepcopy(value)
                continue

            target = declared.target or field_name
            if isinstance(declared, RouteListField):
                resolved[target] = self._resolve_routes(value, target_workspace, spec.name, field_name)
            else:
                resolved[target] = self._resolve_value(
                    declared.entity_type, target_workspace, value, spec.name, field_name
                )

        logger.debug(f"Resolved {len(mapping)} reference field(s) of {spec.kind or 'spec'} "
                     f"{spec.name} in {target_workspace}")
        return ResolvedSpecification(
            name=spec.name,
            workspace=target_workspace,
            fields=resolved,
            kind=spec.kind,
        )

    def resolve_route(self,
                      route: Union[RouteSpecification, Mapping[str, Any]],
                      workspace: str,
                      spec_name: Optional[str] = None) -> Dict[str, Any]:
        """
        Resolve the target of a single route

        igw and nat targets are looked up in their registries. Any other
        target type is a literal passthrough whose target_key is already an
        identifier, unless strict target types are enabled.
        """
        if not isinstance(route, RouteSpecification):
            if not isinstance(route, Mapping):
                raise SpecificationError(spec_name or "", f"route must be a mapping, got {route!r}")
            route = RouteSpecification.from_dict(route, name=spec_name, workspace=workspace)

        target_type = route.target_type.strip() if isinstance(route.target_type, str) else route.target_type
        target_key = route.target_key
        has_key = target_key not in (None, '')

        resolved = route.to_dict()
        if not target_type:
            if has_key:
                raise AmbiguousTargetType(target_key, spec_name)
            return resolved

        entity_type = ROUTE_TARGET_TYPES.get(target_type)
        if entity_type is not None:
            resolved['target_key'] = self._lookup(entity_type, workspace, target_key, spec_name, 'target_key')
        elif self.strict_target_types and target_type not in self.literal_target_types:
            raise UnknownTargetType(target_type, spec_name)

        return resolved

    def registered(self, entity_type: EntityType, workspace: str) -> Dict[str, str]:
        """Snapshot of one registry"""
        registry = self.store.get(workspace)
        return registry.snapshot(entity_type) if registry else {}

    def workspaces(self) -> List[str]:
        return self.store.workspaces()

    def _check_mapping(self, spec: Specification, mapping: Dict[str, Any]):
        """Reject mappings whose resolved values would overwrite another field"""
        targets: Dict[str, str] = {}
        for field_name, declared in mapping.items():
            if field_name not in spec.fields:
                raise InvalidFieldMapping(field_name, spec.name)

            target = declared.target or field_name
            if target in targets:
                raise InvalidFieldMapping(
                    field_name, spec.name,
                    f"resolves into {target!r}, already the target of {targets[target]!r}"
                )
            if target != field_name and target in spec.fields and target not in mapping:
                raise InvalidFieldMapping(
                    field_name, spec.name,
                    f"resolves into {target!r}, which the spec already sets"
                )
            targets[target] = field_name

    def _resolve_value(self, entity_type: EntityType, workspace: str, value: Any,
                       spec_name: str, field_name: str) -> Union[str, List[str]]:
        if isinstance(value, (list, tuple)):
            return [self._lookup(entity_type, workspace, item, spec_name, field_name) for item in value]
        return self._lookup(entity_type, workspace, value, spec_name, field_name)

    def _resolve_routes(self, routes: Any, workspace: str, spec_name: str,
                        field_name: str) -> List[Dict[str, Any]]:
        if not isinstance(routes, (list, tuple)):
            raise SpecificationError(spec_name or "", f"field {field_name!r} must be a list of routes")
        return [self.resolve_route(route, workspace, spec_name) for route in routes]

    def _lookup(self, entity_type: EntityType, workspace: str, name: Any,
                spec_name: Optional[str] = None, field_name: Optional[str] = None) -> str:
        if not isinstance(name, str) or not name:
            raise UnresolvedReference(entity_type, workspace, name, spec_name, field_name)
        if not isinstance(workspace, str) or not workspace:
            raise UnresolvedReference(entity_type, workspace, name, spec_name, field_name)

        registry = self.store.get(workspace)
        if registry is None:
            raise UnresolvedReference(entity_type, workspace, name, spec_name, field_name)

        try:
            return registry.lookup(entity_type, name)
        except UnresolvedReference:
            raise UnresolvedReference(entity_type, workspace, name, spec_name, field_name) from None
