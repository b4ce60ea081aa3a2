#!/usr/bin/env python3
"""
Configuration Management Module

This module handles configuration loading, validation, and management for the
name resolver tool.
"""

import os
import yaml
import json
import logging
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field, asdict
from pathlib import Path
from jsonschema import validate, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class ResolverConfig:
    """Configuration for name resolution"""
    default_workspace: str = "default"
    strict_target_types: bool = False
    literal_target_types: List[str] = field(default_factory=lambda: [
        'pcx', 'tgw', 'vgw', 'eni', 'egress_only_igw'
    ])


@dataclass
class PipelineConfig:
    """Configuration for stage by stage provisioning"""
    max_workers: int = 4
    parallel_workspaces: bool = False
    max_parallel_workspaces: int = 4


@dataclass
class DiscoveryConfig:
    """Configuration for registering existing AWS resources"""
    region: str = "us-east-1"
    profile: Optional[str] = None
    name_tag: str = "Name"


@dataclass
class OutputConfig:
    """Configuration for output generation"""
    output_directory: str = "./resolved"
    format: str = "tfvars"  # tfvars, json, yaml
    overwrite_existing: bool = False


@dataclass
class LoggingConfig:
    """Configuration for logging"""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[str] = None
    max_file_size: int = 10485760  # 10MB
    backup_count: int = 5


@dataclass
class ToolConfig:
    """Main configuration class for the name resolver tool"""
    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


class ConfigManager:
    """Configuration manager for the name resolver tool"""

    # JSON Schema for configuration validation
    CONFIG_SCHEMA = {
        "type": "object",
        "properties": {
            "resolver": {
                "type": "object",
                "properties": {
                    "default_workspace": {"type": "string", "minLength": 1},
                    "strict_target_types": {"type": "boolean"},
                    "literal_target_types": {"type": "array", "items": {"type": "string"}}
                },
                "additionalProperties": False
            },
            "pipeline": {
                "type": "object",
                "properties": {
                    "max_workers": {"type": "integer", "minimum": 1, "maximum": 64},
                    "parallel_workspaces": {"type": "boolean"},
                    "max_parallel_workspaces": {"type": "integer", "minimum": 1, "maximum": 32}
                },
                "additionalProperties": False
            },
            "discovery": {
                "type": "object",
                "properties": {
                    "region": {"type": "string"},
                    "profile": {"type": ["string", "null"]},
                    "name_tag": {"type": "string", "minLength": 1}
                },
                "additionalProperties": False
            },
            "output": {
                "type": "object",
                "properties": {
                    "output_directory": {"type": "string"},
                    "format": {"type": "string", "enum": ["tfvars", "json", "yaml"]},
                    "overwrite_existing": {"type": "boolean"}
                },
                "additionalProperties": False
            },
            "logging": {
                "type": "object",
                "properties": {
                    "level": {
                        "type": "string",
                        "enum": ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
                    },
                    "format": {"type": "string"},
                    "file": {"type": ["string", "null"]},
                    "max_file_size": {"type": "integer", "minimum": 1024},
                    "backup_count": {"type": "integer", "minimum": 1}
                },
                "additionalProperties": False
            }
        },
        "additionalProperties": False
    }

    DEFAULT_LOCATIONS = [
        './tfresolve-config.yaml',
        './tfresolve-config.yml',
        './config/tfresolve-config.yaml',
        '~/.tfresolve/config.yaml'
    ]

    def __init__(self):
        self.config = ToolConfig()
        self._config_sources = []

    def load_config(self,
                    config_file: Optional[str] = None,
                    cli_args: Optional[Dict[str, Any]] = None,
                    env_vars: bool = True) -> ToolConfig:
        """
        Load configuration from multiple sources with precedence:
        1. CLI arguments (highest priority)
        2. Environment variables
        3. Configuration file
        4. Default values (lowest priority)
        """
        logger.debug("Loading configuration")

        self._config_sources = ["defaults"]
        config_dict = asdict(ToolConfig())

        if config_file:
            self._merge(config_dict, self._load_from_file(config_file), f"file:{config_file}")
        else:
            for location in self.DEFAULT_LOCATIONS:
                expanded_path = os.path.expanduser(location)
                if os.path.exists(expanded_path):
                    self._merge(config_dict, self._load_from_file(expanded_path), f"file:{expanded_path}")
                    break

        if env_vars:
            self._merge(config_dict, self._load_from_env(), "environment")

        if cli_args:
            self._merge(config_dict, self._cli_args_to_dict(cli_args), "cli_args")

        self._validate_config(config_dict)
        self.config = self._dict_to_config(config_dict)

        logger.debug(f"Configuration loaded from sources: {', '.join(self._config_sources)}")
        return self.config

    def _load_from_file(self, config_file: str) -> Dict[str, Any]:
        """Load configuration from YAML or JSON file"""
        config_path = Path(config_file).expanduser()
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_file}")

        with open(config_path, 'r') as f:
            if config_path.suffix.lower() in ['.yaml', '.yml']:
                file_config = yaml.safe_load(f)
            elif config_path.suffix.lower() == '.json':
                file_config = json.load(f)
            else:
                raise ValueError(f"Unsupported configuration file format: {config_path.suffix}")

        logger.debug(f"Loaded configuration from {config_file}")
        return file_config or {}

    def _load_from_env(self) -> Dict[str, Any]:
        """Load configuration from environment variables"""
        env_config = {}

        if os.getenv('TFRESOLVE_WORKSPACE'):
            env_config.setdefault('resolver', {})['default_workspace'] = os.getenv('TFRESOLVE_WORKSPACE')

        if os.getenv('TFRESOLVE_STRICT_TARGETS'):
            env_config.setdefault('resolver', {})['strict_target_types'] = \
                os.getenv('TFRESOLVE_STRICT_TARGETS').lower() == 'true'

        if os.getenv('TFRESOLVE_MAX_WORKERS'):
            try:
                env_config.setdefault('pipeline', {})['max_workers'] = int(os.getenv('TFRESOLVE_MAX_WORKERS'))
            except ValueError:
                raise ValueError("Invalid configuration: TFRESOLVE_MAX_WORKERS must be an integer") from None

        if os.getenv('TFRESOLVE_REGION'):
            env_config.setdefault('discovery', {})['region'] = os.getenv('TFRESOLVE_REGION')

        if os.getenv('TFRESOLVE_PROFILE'):
            env_config.setdefault('discovery', {})['profile'] = os.getenv('TFRESOLVE_PROFILE')

        if os.getenv('TFRESOLVE_OUTPUT_DIR'):
            env_config.setdefault('output', {})['output_directory'] = os.getenv('TFRESOLVE_OUTPUT_DIR')

        if os.getenv('TFRESOLVE_LOG_LEVEL'):
            env_config.setdefault('logging', {})['level'] = os.getenv('TFRESOLVE_LOG_LEVEL').upper()

        if os.getenv('TFRESOLVE_LOG_FILE'):
            env_config.setdefault('logging', {})['file'] = os.getenv('TFRESOLVE_LOG_FILE')

        return env_config

    def _cli_args_to_dict(self, cli_args: Dict[str, Any]) -> Dict[str, Any]:
        """Map CLI arguments to configuration structure"""
        cli_config = {}

        if cli_args.get('workspace'):
            cli_config.setdefault('resolver', {})['default_workspace'] = cli_args['workspace']

        if cli_args.get('strict_targets'):
            cli_config.setdefault('resolver', {})['strict_target_types'] = True

        if cli_args.get('max_workers'):
            cli_config.setdefault('pipeline', {})['max_workers'] = cli_args['max_workers']

        if cli_args.get('region'):
            cli_config.setdefault('discovery', {})['region'] = cli_args['region']

        if cli_args.get('profile'):
            cli_config.setdefault('discovery', {})['profile'] = cli_args['profile']

        if cli_args.get('output_dir'):
            cli_config.setdefault('output', {})['output_directory'] = cli_args['output_dir']

        if cli_args.get('overwrite'):
            cli_config.setdefault('output', {})['overwrite_existing'] = True

        if cli_args.get('verbose'):
            cli_config.setdefault('logging', {})['level'] = 'DEBUG'
        elif cli_args.get('quiet'):
            cli_config.setdefault('logging', {})['level'] = 'WARNING'

        return cli_config

    def _merge(self, base: Dict[str, Any], update: Dict[str, Any], source: str):
        """Merge a configuration layer into base in place"""
        if not update:
            return

        def merge_dict(target: Dict, layer: Dict):
            for key, value in layer.items():
                if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                    merge_dict(target[key], value)
                else:
                    target[key] = value

        merge_dict(base, update)
        self._config_sources.append(source)

    def _dict_to_config(self, config_dict: Dict[str, Any]) -> ToolConfig:
        """Convert dictionary to configuration dataclass"""
        return ToolConfig(
            resolver=ResolverConfig(**config_dict.get('resolver', {})),
            pipeline=PipelineConfig(**config_dict.get('pipeline', {})),
            discovery=DiscoveryConfig(**config_dict.get('discovery', {})),
            output=OutputConfig(**config_dict.get('output', {})),
            logging=LoggingConfig(**config_dict.get('logging', {}))
        )

    def _validate_config(self, config_dict: Dict[str, Any]):
        """Validate configuration against schema"""
        try:
            validate(instance=config_dict, schema=self.CONFIG_SCHEMA)
            logger.debug("Configuration validation passed")
        except ValidationError as e:
            logger.error(f"Configuration validation failed: {e.message}")
            raise ValueError(f"Invalid configuration: {e.message}")

    def save_config(self, output_file: str, format: str = 'yaml'):
        """Save current configuration to file"""
        config_dict = asdict(self.config)

        with open(output_file, 'w') as f:
            if format.lower() == 'yaml':
                yaml.dump(config_dict, f, default_flow_style=False, indent=2)
            elif format.lower() == 'json':
                json.dump(config_dict, f, indent=2)
            else:
                raise ValueError(f"Unsupported format: {format}")

        logger.info(f"Configuration saved to {output_file}")

    def get_config_summary(self) -> Dict[str, Any]:
        """Get a summary of current configuration"""
        return {
            'sources': self._config_sources,
            'default_workspace': self.config.resolver.default_workspace,
            'strict_target_types': self.config.resolver.strict_target_types,
            'max_workers': self.config.pipeline.max_workers,
            'discovery_region': self.config.discovery.region,
            'output_directory': self.config.output.output_directory,
            'logging_level': self.config.logging.level
        }


# Default configuration template
DEFAULT_CONFIG_TEMPLATE = """
# Name resolver configuration

resolver:
  default_workspace: default
  strict_target_types: false  # reject route target types not listed below
  literal_target_types:  # target_key is already an identifier
    - pcx
    - tgw
    - vgw
    - eni
    - egress_only_igw

pipeline:
  max_workers: 4
  parallel_workspaces: false
  max_parallel_workspaces: 4

discovery:
  region: us-east-1
  profile: null  # AWS profile to use
  name_tag: Name

output:
  output_directory: "./resolved"
  format: tfvars  # tfvars, json, yaml
  overwrite_existing: false

logging:
  level: INFO  # DEBUG, INFO, WARNING, ERROR, CRITICAL
  format: "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
  file: null  # Log file path (null for no file logging)
  max_file_size: 10485760  # 10MB
  backup_count: 5
"""
