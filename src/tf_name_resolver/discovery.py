#!/usr/bin/env python3
"""
Tag Discovery

Registers existing AWS networking resources under the logical name found in
their Name tag, so that specifications can reference infrastructure that was
not created by the current provisioning run.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import boto3
from botocore.exceptions import ClientError, NoCredentialsError

from .entities import EntityType
from .resolver import NameResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DescribeCall:
    """How to list one entity type with the EC2 API"""
    operation: str
    collection: str
    id_key: str
    paginated: bool = True
    filter_param: str = 'Filters'


DESCRIBE_CALLS: Dict[EntityType, DescribeCall] = {
    EntityType.VPC: DescribeCall('describe_vpcs', 'Vpcs', 'VpcId'),
    EntityType.SUBNET: DescribeCall('describe_subnets', 'Subnets', 'SubnetId'),
    EntityType.SECURITY_GROUP: DescribeCall('describe_security_groups', 'SecurityGroups', 'GroupId'),
    EntityType.ROUTE_TABLE: DescribeCall('describe_route_tables', 'RouteTables', 'RouteTableId'),
    EntityType.INTERNET_GATEWAY: DescribeCall('describe_internet_gateways', 'InternetGateways',
                                              'InternetGatewayId'),
    EntityType.NAT_GATEWAY: DescribeCall('describe_nat_gateways', 'NatGateways', 'NatGatewayId',
                                         filter_param='Filter'),
    EntityType.ELASTIC_IP: DescribeCall('describe_addresses', 'Addresses', 'AllocationId', paginated=False),
}

# NAT gateways linger in these states after deletion
INACTIVE_NAT_STATES = {'deleting', 'deleted', 'failed'}


class TagDiscovery:
    """
    Discovers tagged EC2 networking resources and registers them by name

    Two resources of one type sharing a Name tag in the same workspace raise
    DuplicateRegistration rather than one silently shadowing the other.
    """

    def __init__(self,
                 resolver: NameResolver,
                 region: str = 'us-east-1',
                 profile: Optional[str] = None,
                 name_tag: str = 'Name',
                 session=None):
        """
        Initialize tag discovery

        Args:
            resolver: Resolver whose registries are populated
            region: AWS region to scan
            profile: AWS profile to use for authentication
            name_tag: Tag key holding the logical name
            session: Pre-built boto3 session
        """
        self.resolver = resolver
        self.region = region
        self.profile = profile
        self.name_tag = name_tag
        self.session = session or (boto3.Session(profile_name=profile) if profile else boto3.Session())

        logger.debug(f"Initialized TagDiscovery for region {region}")

    def discover(self,
                 workspace: str,
                 entity_types: Optional[List[EntityType]] = None,
                 tag_filters: Optional[Dict[str, str]] = None) -> Dict[str, Dict[str, str]]:
        """
        Register the tagged resources of a region in a workspace

        Args:
            workspace: Workspace whose registries are populated
            entity_types: Entity types to scan, all by default
            tag_filters: Additional tag key/value filters, e.g. {'Environment': 'qe'}

        Returns:
            Mapping of entity type value to the name -> id bindings discovered
        """
        entity_types = [EntityType.parse(t) for t in (entity_types or list(EntityType))]
        client = self.session.client('ec2', region_name=self.region)
        filters = [
            {'Name': f'tag:{key}', 'Values': [value]}
            for key, value in (tag_filters or {}).items()
        ]

        discovered = {}
        for entity_type in entity_types:
            bindings = {}
            for name, identifier in self._discover_type(client, entity_type, filters):
                self.resolver.register(entity_type, workspace, name, identifier)
                bindings[name] = identifier
            discovered[entity_type.value] = bindings
            logger.info(f"Registered {len(bindings)} {entity_type.label} name(s) in {workspace}")

        return discovered

    def _discover_type(self, client, entity_type: EntityType, filters: List[Dict]) -> List[Tuple[str, str]]:
        call = DESCRIBE_CALLS[entity_type]
        kwargs = {call.filter_param: filters} if filters else {}

        try:
            if call.paginated:
                paginator = client.get_paginator(call.operation)
                items = [
                    item
                    for page in paginator.paginate(**kwargs)
                    for item in page.get(call.collection, [])
                ]
            else:
                items = getattr(client, call.operation)(**kwargs).get(call.collection, [])
        except NoCredentialsError:
            logger.error("AWS credentials not found")
            raise
        except ClientError as e:
            logger.error(f"AWS API error listing {entity_type.label} in {self.region}: {str(e)}")
            raise

        bindings = []
        for item in items:
            if entity_type is EntityType.NAT_GATEWAY and item.get('State') in INACTIVE_NAT_STATES:
                continue
            identifier = item.get(call.id_key)
            name = self._name_of(item)
            if not name or not identifier:
                logger.debug(f"Skipping untagged {entity_type.label} {identifier}")
                continue
            bindings.append((name, identifier))

        return bindings

    def _name_of(self, item: Dict) -> Optional[str]:
        for tag in item.get('Tags', []):
            if tag.get('Key') == self.name_tag:
                return tag.get('Value')
        return None
