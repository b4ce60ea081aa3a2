#!/usr/bin/env python3
"""
Specification Loader

Loads specification documents shaped like the per-workspace variable tables of
a Terraform root module:

    subnets:
      default:
        pub_a:
          vpc_name: app_vpc
          cidr_block: 10.0.1.0/24

Top-level keys are resource kinds, then workspace, then logical name, then the
field map of the entity.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from jsonschema import Draft7Validator

from .catalog import RESOURCE_KINDS, ordered_kinds
from .errors import SpecificationError
from .resolver import ReferenceField, RouteListField, Specification

logger = logging.getLogger(__name__)


NAME_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9_.\-]*$"

REFERENCE_SCHEMA = {
    "oneOf": [
        {"type": "string", "minLength": 1},
        {"type": "array", "items": {"type": "string", "minLength": 1}},
    ]
}

ROUTES_SCHEMA = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "cidr_block": {"type": "string"},
            "destination_cidr": {"type": "string"},
            "target_type": {"type": ["string", "null"]},
            "target_key": {"type": ["string", "null"]},
        },
    },
}


def _entity_schema(kind: str) -> Dict[str, Any]:
    resource_kind = RESOURCE_KINDS[kind]
    properties = {}
    for field_name, declared in resource_kind.reference_fields.items():
        if isinstance(declared, RouteListField):
            properties[field_name] = ROUTES_SCHEMA
        elif isinstance(declared, ReferenceField):
            properties[field_name] = REFERENCE_SCHEMA

    if resource_kind.required:
        return {
            "type": "object",
            "properties": properties,
            "required": sorted(resource_kind.required),
        }
    return {"type": ["object", "null"], "properties": properties}


def build_schema() -> Dict[str, Any]:
    """JSON Schema of a specification document"""
    kinds = {}
    for kind in ordered_kinds():
        kinds[kind] = {
            "type": "object",
            "propertyNames": {"pattern": NAME_PATTERN},
            "additionalProperties": {
                "type": "object",
                "propertyNames": {"pattern": NAME_PATTERN},
                "additionalProperties": _entity_schema(kind),
            },
        }
    return {
        "type": "object",
        "properties": kinds,
        "additionalProperties": False,
    }


SPECIFICATION_SCHEMA = build_schema()


class SpecificationSet:
    """Specifications of a document indexed by workspace and kind"""

    def __init__(self, document: Optional[Dict[str, Any]] = None, source: str = "<memory>"):
        self.source = source
        self.document = document or {}

    def workspaces(self) -> List[str]:
        names = set()
        for tables in self.document.values():
            names.update((tables or {}).keys())
        return sorted(names)

    def specs(self, workspace: str, kind: str) -> List[Specification]:
        """Specifications of one kind in one workspace, in document order"""
        table = (self.document.get(kind) or {}).get(workspace) or {}
        return [
            Specification(name=name, workspace=workspace, fields=dict(fields or {}), kind=kind)
            for name, fields in table.items()
        ]

    def count(self, workspace: Optional[str] = None) -> int:
        total = 0
        for tables in self.document.values():
            for ws, table in (tables or {}).items():
                if workspace is None or ws == workspace:
                    total += len(table or {})
        return total

    def __contains__(self, workspace: str) -> bool:
        return workspace in self.workspaces()


class SpecificationLoader:
    """Loads and validates specification documents"""

    def __init__(self, schema: Optional[Dict[str, Any]] = None):
        self.validator = Draft7Validator(schema or SPECIFICATION_SCHEMA)

    def load_file(self, path: str) -> SpecificationSet:
        """Load a YAML or JSON specification document"""
        spec_path = Path(path).expanduser()
        if not spec_path.exists():
            raise SpecificationError(str(path), "file not found")

        with open(spec_path, 'r') as f:
            if spec_path.suffix.lower() in ['.yaml', '.yml']:
                document = yaml.safe_load(f)
            elif spec_path.suffix.lower() == '.json':
                document = json.load(f)
            else:
                raise SpecificationError(str(path), f"unsupported file format {spec_path.suffix!r}")

        spec_set = self.load_document(document, source=str(path))
        logger.info(f"Loaded {spec_set.count()} specification(s) from {path}")
        return spec_set

    def load_document(self, document: Any, source: str = "<memory>") -> SpecificationSet:
        """Validate an already parsed document"""
        if document is None:
            document = {}
        errors = self.validate(document)
        if errors:
            raise SpecificationError(source, "; ".join(errors))
        return SpecificationSet(document, source=source)

    def validate(self, document: Any) -> List[str]:
        """Return human readable validation errors, empty when valid"""
        messages = []
        for error in sorted(self.validator.iter_errors(document), key=lambda e: str(list(e.path))):
            location = "/".join(str(part) for part in error.path) or "<root>"
            messages.append(f"{location}: {error.message}")
        return messages
