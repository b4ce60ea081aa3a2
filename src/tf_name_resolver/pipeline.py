#!/usr/bin/env python3
"""
Provisioning Pipeline

This module drives the specifications of one or more workspaces through the
provisioning stages in dependency order. Each stage resolves the name references
of its specifications, hands the resolved specifications to a provisioning
backend and registers the identifiers the backend assigns, so that the next
stage can resolve references to them.
"""

import hashlib
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Dict, List, Optional, Tuple

from .catalog import get_kind, reference_fields_for
from .config import ToolConfig
from .entities import PROVISIONING_ORDER
from .loader import SpecificationSet
from .registry import RegistryStore
from .resolver import NameResolver, ResolvedSpecification

logger = logging.getLogger(__name__)


class ProvisioningBackend:
    """
    Boundary to the system that creates resources

    create() is called with a fully resolved specification and returns the
    identifier assigned to the new resource. Kinds that do not publish to a
    registry may return None.
    """

    def create(self, kind: str, spec: ResolvedSpecification) -> Optional[str]:
        raise NotImplementedError


class DryRunBackend(ProvisioningBackend):
    """Backend that creates nothing and assigns deterministic fake identifiers"""

    ID_PREFIXES = {
        'vpcs': 'vpc',
        'subnets': 'subnet',
        'security_groups': 'sg',
        'internet_gateways': 'igw',
        'elastic_ips': 'eipalloc',
        'nat_gateways': 'nat',
        'route_tables': 'rtb',
        'route_table_associations': 'rtbassoc',
        'vpc_endpoints': 'vpce',
        'eks_clusters': 'eks',
        'eks_node_groups': 'ng',
    }

    def __init__(self):
        self._lock = threading.Lock()
        self.created: List[Tuple[str, ResolvedSpecification, str]] = []

    def create(self, kind: str, spec: ResolvedSpecification) -> str:
        identifier = self.make_id(kind, spec.workspace, spec.name)
        with self._lock:
            self.created.append((kind, spec, identifier))
        return identifier

    @classmethod
    def make_id(cls, kind: str, workspace: str, name: str) -> str:
        digest = hashlib.sha256(f"{workspace}/{kind}/{name}".encode('utf-8')).hexdigest()
        return f"{cls.ID_PREFIXES.get(kind, 'res')}-0{digest[:16]}"


class ProvisioningPipeline:
    """
    Stage by stage provisioning of workspaces

    The resolver itself never orders anything; this class is the caller that
    populates the registries in dependency order.
    """

    def __init__(self,
                 config: Optional[ToolConfig] = None,
                 backend: Optional[ProvisioningBackend] = None,
                 resolver: Optional[NameResolver] = None):
        """
        Initialize the pipeline

        Args:
            config: Tool configuration object
            backend: Backend creating the resources, dry run by default
            resolver: Resolver holding the registries, built from config by default
        """
        self.config = config or ToolConfig()
        self.backend = backend or DryRunBackend()
        self.resolver = resolver or NameResolver(
            store=RegistryStore(),
            strict_target_types=self.config.resolver.strict_target_types,
            literal_target_types=self.config.resolver.literal_target_types
        )

        logger.debug(f"Initialized ProvisioningPipeline with {type(self.backend).__name__}")

    def run(self, spec_set: SpecificationSet,
            workspaces: Optional[List[str]] = None,
            keep_registries: bool = False) -> Dict[str, Any]:
        """
        Provision every requested workspace

        Args:
            spec_set: Loaded specifications
            workspaces: Workspaces to provision, all workspaces of spec_set by default
            keep_registries: Keep the workspace registries after the run

        Returns:
            Dictionary with one result per workspace and overall success
        """
        workspaces = list(workspaces or spec_set.workspaces())
        start_time = time.time()

        result = {
            'success': False,
            'workspaces': {},
            'errors': []
        }

        if self.config.pipeline.parallel_workspaces and len(workspaces) > 1:
            max_workers = min(self.config.pipeline.max_parallel_workspaces, len(workspaces))
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                futures = {
                    executor.submit(self.run_workspace, spec_set, workspace): workspace
                    for workspace in workspaces
                }
                for future in as_completed(futures):
                    result['workspaces'][futures[future]] = future.result()
        else:
            for workspace in workspaces:
                result['workspaces'][workspace] = self.run_workspace(spec_set, workspace)

        for workspace in workspaces:
            ws_result = result['workspaces'][workspace]
            result['errors'].extend(f"[{workspace}] {error}" for error in ws_result['errors'])
            if not keep_registries:
                self.resolver.store.discard(workspace)

        result['success'] = all(ws['success'] for ws in result['workspaces'].values())
        result['total_time'] = time.time() - start_time
        return result

    def run_workspace(self, spec_set: SpecificationSet, workspace: str) -> Dict[str, Any]:
        """Provision one workspace stage by stage, stopping at the first failed stage"""
        logger.info(f"Provisioning workspace {workspace}")
        start_time = time.time()

        result = {
            'success': False,
            'workspace': workspace,
            'stages': [],
            'resolved': {},
            'identifiers': {},
            'failed_stage': None,
            'errors': []
        }

        # Registries the caller pre-populated (e.g. from tag discovery) are kept
        self.resolver.store.workspace(workspace)

        for index, kinds in enumerate(PROVISIONING_ORDER, start=1):
            pending = [
                (kind, spec)
                for kind in kinds
                for spec in spec_set.specs(workspace, kind)
            ]
            if not pending:
                continue

            logger.info(f"[{workspace}] Stage {index}: {', '.join(kinds)} ({len(pending)} spec(s))")
            stage_result = self._run_stage(index, kinds, pending)
            result['stages'].append(stage_result)

            for kind, resolved_spec, identifier in stage_result['provisioned']:
                result['resolved'].setdefault(kind, {})[resolved_spec.name] = resolved_spec.fields
                if identifier is not None:
                    result['identifiers'].setdefault(kind, {})[resolved_spec.name] = identifier

            if not stage_result['success']:
                result['failed_stage'] = index
                result['errors'].extend(stage_result['errors'])
                logger.error(f"[{workspace}] Stage {index} failed, later stages were not provisioned")
                break
        else:
            result['success'] = True

        result['duration'] = time.time() - start_time
        if result['success']:
            logger.info(f"[{workspace}] Provisioned {spec_set.count(workspace)} spec(s) "
                        f"in {result['duration']:.2f} seconds")
        return result

    def _run_stage(self, index: int, kinds: List[str],
                   pending: List[Tuple[str, Any]]) -> Dict[str, Any]:
        """Resolve every spec of a stage, then create and register them concurrently"""
        stage_result = {
            'stage': index,
            'kinds': list(kinds),
            'success': False,
            'provisioned': [],
            'errors': []
        }

        # No backend call is made for a stage with an unresolved reference
        resolved: List[Tuple[str, ResolvedSpecification]] = []
        for kind, spec in pending:
            try:
                resolved.append((kind, self.resolver.resolve_spec(spec, reference_fields_for(kind, spec))))
            except Exception as e:
                error_msg = f"Failed to resolve {kind} {spec.name}: {str(e)}"
                logger.error(error_msg)
                stage_result['errors'].append(error_msg)

        if stage_result['errors']:
            return stage_result

        with ThreadPoolExecutor(max_workers=self.config.pipeline.max_workers) as executor:
            futures = {
                executor.submit(self._provision, kind, resolved_spec): (kind, resolved_spec)
                for kind, resolved_spec in resolved
            }
            for future in as_completed(futures):
                kind, resolved_spec = futures[future]
                try:
                    identifier = future.result()
                    stage_result['provisioned'].append((kind, resolved_spec, identifier))
                except Exception as e:
                    error_msg = f"Failed to provision {kind} {resolved_spec.name}: {str(e)}"
                    logger.error(error_msg)
                    stage_result['errors'].append(error_msg)

        stage_result['success'] = not stage_result['errors']
        return stage_result

    def _provision(self, kind: str, resolved_spec: ResolvedSpecification) -> Optional[str]:
        identifier = self.backend.create(kind, resolved_spec)

        entity_type = get_kind(kind).produces
        if entity_type is not None:
            self.resolver.register(entity_type, resolved_spec.workspace, resolved_spec.name, identifier)

        return identifier
