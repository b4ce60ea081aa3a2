#!/usr/bin/env python3
"""
Resolved Specification Writer

Writes the resolved specifications of a workspace where Terraform can pick them
up: a <workspace>.auto.tfvars file with one map variable per resource kind, or a
plain JSON/YAML dump.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict

import yaml
from jinja2 import Template

from .catalog import ordered_kinds

logger = logging.getLogger(__name__)


class ResolvedWriter:
    """Writes pipeline results to disk"""

    TFVARS_TEMPLATE = """# Resolved specifications for workspace {{ workspace }}
# Generated by tfresolve, do not edit
{% for kind, specs in resolved.items() %}

{{ kind }} = {
{% for name, fields in specs.items() %}
  {{ name | tojson }} = {{ fields | tojson }}
{% endfor %}
}
{% endfor %}
"""

    EXTENSIONS = {
        'tfvars': '.auto.tfvars',
        'json': '.resolved.json',
        'yaml': '.resolved.yaml',
    }

    def __init__(self, output_directory: str, format: str = 'tfvars', overwrite: bool = False):
        if format not in self.EXTENSIONS:
            raise ValueError(f"Unsupported format: {format}")
        self.output_directory = Path(output_directory)
        self.format = format
        self.overwrite = overwrite

    def render(self, workspace: str, resolved: Dict[str, Dict[str, Any]]) -> str:
        """Render the resolved specifications of one workspace"""
        ordered = {kind: resolved[kind] for kind in ordered_kinds() if resolved.get(kind)}

        if self.format == 'json':
            return json.dumps(ordered, indent=2) + "\n"
        if self.format == 'yaml':
            return yaml.safe_dump(ordered, default_flow_style=False, sort_keys=False)

        template = Template(self.TFVARS_TEMPLATE, trim_blocks=True, lstrip_blocks=True)
        return template.render(workspace=workspace, resolved=ordered)

    def write(self, workspace_result: Dict[str, Any]) -> Path:
        """Write one workspace result produced by ProvisioningPipeline.run_workspace"""
        workspace = workspace_result['workspace']
        path = self.output_directory / f"{workspace}{self.EXTENSIONS[self.format]}"

        if path.exists() and not self.overwrite:
            raise FileExistsError(f"Output file already exists: {path}")

        self.output_directory.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            f.write(self.render(workspace, workspace_result['resolved']))

        logger.info(f"Wrote resolved specifications of {workspace} to {path}")
        return path
