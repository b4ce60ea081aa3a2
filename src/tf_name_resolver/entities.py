#!/usr/bin/env python3
"""
Entity Types

This module defines the entity types that can be registered and resolved by
logical name, and the order in which a workspace has to be provisioned so that
every registry a later stage reads is already populated.
"""

from enum import Enum
from typing import List


class EntityType(Enum):
    """Types of entities that own a name registry"""
    VPC = "vpc"
    SUBNET = "subnet"
    SECURITY_GROUP = "security_group"
    ROUTE_TABLE = "route_table"
    INTERNET_GATEWAY = "internet_gateway"
    NAT_GATEWAY = "nat_gateway"
    ELASTIC_IP = "elastic_ip"

    @classmethod
    def parse(cls, value) -> "EntityType":
        """
        Parse an entity type from its value or member name

        Accepts an EntityType, 'security_group', 'SECURITY_GROUP' or
        'SecurityGroup' style spellings.
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Invalid entity type: {value!r}")

        normalized = value.strip().replace('-', '_')
        for member in cls:
            if normalized.lower() == member.value:
                return member
            if normalized.upper() == member.name:
                return member
            if normalized == member.label.replace(' ', ''):
                return member

        raise ValueError(f"Invalid entity type: {value!r}")

    @property
    def label(self) -> str:
        """Human readable name used in error messages"""
        return _LABELS[self]


_LABELS = {
    EntityType.VPC: "VPC",
    EntityType.SUBNET: "Subnet",
    EntityType.SECURITY_GROUP: "SecurityGroup",
    EntityType.ROUTE_TABLE: "RouteTable",
    EntityType.INTERNET_GATEWAY: "InternetGateway",
    EntityType.NAT_GATEWAY: "NatGateway",
    EntityType.ELASTIC_IP: "ElasticIP",
}


# Route target types with a registry of their own
ROUTE_TARGET_TYPES = {
    'igw': EntityType.INTERNET_GATEWAY,
    'nat': EntityType.NAT_GATEWAY,
}

# Provisioning stages; kinds within a stage have no dependencies on each other
PROVISIONING_ORDER: List[List[str]] = [
    ['vpcs'],
    ['subnets', 'security_groups', 'internet_gateways', 'elastic_ips'],
    ['nat_gateways'],
    ['route_tables'],
    ['route_table_associations', 'vpc_endpoints'],
    ['eks_clusters'],
    ['eks_node_groups'],
]
