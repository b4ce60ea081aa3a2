#!/usr/bin/env python3
"""
Resource Kind Catalog

Reference fields of every resource kind provisioned by the network and EKS
modules, and the registry each kind publishes its identifiers to.
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional

from .entities import EntityType, PROVISIONING_ORDER
from .resolver import FieldMapping, ReferenceField, RouteListField, Specification


@dataclass(frozen=True)
class ResourceKind:
    """A kind of resource that can appear in a specification document"""
    name: str
    produces: Optional[EntityType] = None
    reference_fields: Dict[str, object] = field(default_factory=dict)
    required: FrozenSet[str] = frozenset()
    description: str = ""


RESOURCE_KINDS: Dict[str, ResourceKind] = {
    kind.name: kind for kind in [
        ResourceKind(
            name='vpcs',
            produces=EntityType.VPC,
            description="VPCs",
        ),
        ResourceKind(
            name='subnets',
            produces=EntityType.SUBNET,
            reference_fields={
                'vpc_name': ReferenceField(EntityType.VPC, 'vpc_id'),
            },
            required=frozenset({'vpc_name'}),
            description="Subnets",
        ),
        ResourceKind(
            name='security_groups',
            produces=EntityType.SECURITY_GROUP,
            reference_fields={
                'vpc_name': ReferenceField(EntityType.VPC, 'vpc_id'),
            },
            required=frozenset({'vpc_name'}),
            description="Security groups",
        ),
        ResourceKind(
            name='internet_gateways',
            produces=EntityType.INTERNET_GATEWAY,
            reference_fields={
                'vpc_name': ReferenceField(EntityType.VPC, 'vpc_id'),
            },
            required=frozenset({'vpc_name'}),
            description="Internet gateways",
        ),
        ResourceKind(
            name='elastic_ips',
            produces=EntityType.ELASTIC_IP,
            description="Elastic IPs",
        ),
        ResourceKind(
            name='nat_gateways',
            produces=EntityType.NAT_GATEWAY,
            reference_fields={
                'subnet_name': ReferenceField(EntityType.SUBNET, 'subnet_id'),
                'eip_name': ReferenceField(EntityType.ELASTIC_IP, 'allocation_id'),
            },
            required=frozenset({'subnet_name', 'eip_name'}),
            description="NAT gateways",
        ),
        ResourceKind(
            name='route_tables',
            produces=EntityType.ROUTE_TABLE,
            reference_fields={
                'vpc_name': ReferenceField(EntityType.VPC, 'vpc_id'),
                'routes': RouteListField(),
            },
            required=frozenset({'vpc_name'}),
            description="Route tables",
        ),
        ResourceKind(
            name='route_table_associations',
            reference_fields={
                'subnet_name': ReferenceField(EntityType.SUBNET, 'subnet_id'),
                'route_table_name': ReferenceField(EntityType.ROUTE_TABLE, 'route_table_id'),
            },
            required=frozenset({'subnet_name', 'route_table_name'}),
            description="Route table associations",
        ),
        ResourceKind(
            name='vpc_endpoints',
            reference_fields={
                'vpc_name': ReferenceField(EntityType.VPC, 'vpc_id'),
                'subnet_name': ReferenceField(EntityType.SUBNET, 'subnet_ids'),
                'sg_name': ReferenceField(EntityType.SECURITY_GROUP, 'security_group_ids'),
                'route_table_name': ReferenceField(EntityType.ROUTE_TABLE, 'route_table_ids'),
            },
            required=frozenset({'vpc_name'}),
            description="VPC endpoints",
        ),
        ResourceKind(
            name='eks_clusters',
            reference_fields={
                'subnet_name': ReferenceField(EntityType.SUBNET, 'subnet_ids'),
                'sg_name': ReferenceField(EntityType.SECURITY_GROUP, 'security_group_ids'),
            },
            required=frozenset({'subnet_name'}),
            description="EKS clusters",
        ),
        ResourceKind(
            name='eks_node_groups',
            reference_fields={
                'subnet_name': ReferenceField(EntityType.SUBNET, 'subnet_ids'),
            },
            required=frozenset({'subnet_name'}),
            description="EKS node groups",
        ),
    ]
}


def get_kind(name: str) -> ResourceKind:
    try:
        return RESOURCE_KINDS[name]
    except KeyError:
        raise KeyError(f"Unknown resource kind: {name}") from None


def reference_fields_for(kind: str, spec: Specification) -> FieldMapping:
    """
    Reference fields of a kind to resolve on spec

    Required fields are always declared, so a spec missing one fails with
    InvalidFieldMapping. Other reference fields are only declared when the spec
    sets them, e.g. an interface endpoint has no route tables and a gateway
    endpoint has no security groups.
    """
    resource_kind = get_kind(kind)
    return {
        field_name: declared
        for field_name, declared in resource_kind.reference_fields.items()
        if field_name in spec.fields or field_name in resource_kind.required
    }


def ordered_kinds() -> List[str]:
    """All kinds flattened in provisioning order"""
    return [kind for stage in PROVISIONING_ORDER for kind in stage]
