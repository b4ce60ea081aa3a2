#!/usr/bin/env python3
"""
Name Registries

A registry maps logical names to the identifiers a provisioning backend assigned
to them. Every workspace owns one WorkspaceRegistry holding a name map per
entity type. Registries are append-only: a binding cannot change once made.
"""

import logging
import threading
from typing import Dict, List, Optional

from .entities import EntityType
from .errors import DuplicateRegistration, InvalidRegistration, UnresolvedReference

logger = logging.getLogger(__name__)


def _require_text(value, what: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidRegistration(f"{what} must be a non-empty string, got {value!r}")
    return value


class WorkspaceRegistry:
    """
    Name registries of a single workspace

    Writers to distinct names may run concurrently. The duplicate check and the
    insert happen under one lock, so two conflicting registrations of the same
    name cannot both succeed.
    """

    def __init__(self, workspace: str):
        self.workspace = _require_text(workspace, "workspace")
        self._lock = threading.Lock()
        self._entries: Dict[EntityType, Dict[str, str]] = {
            entity_type: {} for entity_type in EntityType
        }

    def register(self, entity_type: EntityType, name: str, identifier: str) -> bool:
        """
        Bind a logical name to an identifier

        Returns:
            True if a new binding was created, False if the identical binding
            already existed
        """
        entity_type = EntityType.parse(entity_type)
        _require_text(name, "name")
        _require_text(identifier, "identifier")

        with self._lock:
            entries = self._entries[entity_type]
            existing = entries.get(name)
            if existing is None:
                entries[name] = identifier
                created = True
            elif existing == identifier:
                created = False
            else:
                raise DuplicateRegistration(entity_type, self.workspace, name, existing, identifier)

        if created:
            logger.debug(f"Registered {entity_type.label} {name} -> {identifier} in {self.workspace}")
        return created

    def lookup(self, entity_type: EntityType, name: str) -> str:
        """Return the identifier bound to a name or raise UnresolvedReference"""
        entity_type = EntityType.parse(entity_type)
        # dict.get is atomic; a concurrent insert is either visible whole or not at all
        identifier = self._entries[entity_type].get(name) if isinstance(name, str) else None
        if identifier is None:
            raise UnresolvedReference(entity_type, self.workspace, name)
        return identifier

    def snapshot(self, entity_type: Optional[EntityType] = None) -> Dict:
        """Copy of one registry, or of all registries keyed by entity type value"""
        with self._lock:
            if entity_type is not None:
                return dict(self._entries[EntityType.parse(entity_type)])
            return {
                etype.value: dict(entries)
                for etype, entries in self._entries.items()
            }

    def __len__(self) -> int:
        with self._lock:
            return sum(len(entries) for entries in self._entries.values())


class RegistryStore:
    """
    Owner of the per-workspace registries

    Workspaces never share a registry object, so resolution in one workspace
    can never be satisfied by a binding made in another.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._workspaces: Dict[str, WorkspaceRegistry] = {}

    def workspace(self, name: str) -> WorkspaceRegistry:
        """Return the registry of a workspace, creating it empty on first use"""
        _require_text(name, "workspace")
        with self._lock:
            registry = self._workspaces.get(name)
            if registry is None:
                registry = WorkspaceRegistry(name)
                self._workspaces[name] = registry
                logger.debug(f"Created registry for workspace {name}")
            return registry

    def get(self, name: str) -> Optional[WorkspaceRegistry]:
        return self._workspaces.get(name)

    def discard(self, name: str):
        """Drop a workspace registry at the end of its provisioning run"""
        with self._lock:
            self._workspaces.pop(name, None)

    def workspaces(self) -> List[str]:
        with self._lock:
            return sorted(self._workspaces)
