"""
Terraform Name Resolver

Resolves the logical names used to wire network and EKS resources together
(vpc_name, subnet_name, sg_name, ...) into the identifiers assigned by the
provisioning backend, one isolated registry per workspace.
"""

__version__ = "1.0.0"

from .entities import EntityType
from .errors import (
    ResolverError,
    UnresolvedReference,
    DuplicateRegistration,
    InvalidFieldMapping,
    AmbiguousTargetType,
    UnknownTargetType,
    InvalidRegistration,
    SpecificationError,
)
from .registry import RegistryStore, WorkspaceRegistry
from .resolver import (
    NameResolver,
    Specification,
    RouteSpecification,
    ResolvedSpecification,
    ReferenceField,
    RouteListField,
)
from .pipeline import ProvisioningPipeline, ProvisioningBackend, DryRunBackend

__all__ = [
    "EntityType",
    "ResolverError",
    "UnresolvedReference",
    "DuplicateRegistration",
    "InvalidFieldMapping",
    "AmbiguousTargetType",
    "UnknownTargetType",
    "InvalidRegistration",
    "SpecificationError",
    "RegistryStore",
    "WorkspaceRegistry",
    "NameResolver",
    "Specification",
    "RouteSpecification",
    "ResolvedSpecification",
    "ReferenceField",
    "RouteListField",
    "ProvisioningPipeline",
    "ProvisioningBackend",
    "DryRunBackend",
]
