#!/usr/bin/env python3
"""
Command Line Interface for the name resolver

This module provides the tfresolve command group.
"""

import click
import logging
import logging.handlers
import sys
import os
import json
import yaml
from typing import Any, Dict, List
from tabulate import tabulate
from botocore.exceptions import BotoCoreError, ClientError

from .config import ConfigManager, DEFAULT_CONFIG_TEMPLATE, LoggingConfig, ToolConfig
from .discovery import TagDiscovery
from .errors import ResolverError
from .loader import SpecificationLoader, SpecificationSet
from .pipeline import DryRunBackend, ProvisioningPipeline
from .render import ResolvedWriter
from .resolver import NameResolver

logger = logging.getLogger(__name__)


def configure_logging(logging_config: LoggingConfig):
    """Configure the root logger from the logging configuration section"""
    root = logging.getLogger()
    root.setLevel(getattr(logging, logging_config.level))
    formatter = logging.Formatter(logging_config.format)

    for handler in list(root.handlers):
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    root.addHandler(console)

    if logging_config.file:
        file_handler = logging.handlers.RotatingFileHandler(
            logging_config.file,
            maxBytes=logging_config.max_file_size,
            backupCount=logging_config.backup_count
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)


def _load_config(ctx, **cli_args) -> ToolConfig:
    config_manager = ConfigManager()
    cli_args.update({
        'verbose': ctx.obj.get('verbose', False),
        'quiet': ctx.obj.get('quiet', False)
    })
    config = config_manager.load_config(
        config_file=ctx.obj.get('config_file'),
        cli_args=cli_args
    )
    configure_logging(config.logging)
    return config


def _select_workspaces(spec_set: SpecificationSet, config: ToolConfig,
                       workspaces: List[str], all_workspaces: bool) -> List[str]:
    if all_workspaces:
        return spec_set.workspaces()
    return list(workspaces) or [config.resolver.default_workspace]


def _run_pipeline(config: ToolConfig, spec_file: str, workspaces: List[str],
                  all_workspaces: bool, discover: bool) -> Dict[str, Any]:
    spec_set = SpecificationLoader().load_file(spec_file)
    selected = _select_workspaces(spec_set, config, workspaces, all_workspaces)

    pipeline = ProvisioningPipeline(config, backend=DryRunBackend())
    if discover:
        discovery = TagDiscovery(
            pipeline.resolver,
            region=config.discovery.region,
            profile=config.discovery.profile,
            name_tag=config.discovery.name_tag
        )
        for workspace in selected:
            discovery.discover(workspace)

    return pipeline.run(spec_set, workspaces=selected)


@click.group()
@click.version_option(version="1.0.0")
@click.option('--config', '-c', type=click.Path(exists=True),
              help='Configuration file path')
@click.option('--verbose', '-v', is_flag=True,
              help='Enable verbose logging')
@click.option('--quiet', '-q', is_flag=True,
              help='Enable quiet mode (warnings and errors only)')
@click.pass_context
def cli(ctx, config, verbose, quiet):
    """
    Terraform name resolver

    Resolves the logical names used in per-workspace network and EKS
    specifications (vpc_name, subnet_name, sg_name, ...) into resource ids.
    """
    ctx.ensure_object(dict)

    ctx.obj['config_file'] = config
    ctx.obj['verbose'] = verbose
    ctx.obj['quiet'] = quiet


@cli.command()
@click.argument('spec_file', type=click.Path(exists=True))
@click.option('--workspace', '-w', 'workspaces', multiple=True,
              help='Workspace to resolve (can be specified multiple times)')
@click.option('--all-workspaces', is_flag=True,
              help='Resolve every workspace of the specification file')
@click.option('--strict-targets', is_flag=True,
              help='Reject route target types that are not igw, nat or a configured literal type')
@click.option('--discover', is_flag=True,
              help='Register existing tagged AWS resources before resolving')
@click.option('--format', 'output_format', type=click.Choice(['table', 'json', 'yaml']),
              default='table', help='Output format')
@click.pass_context
def plan(ctx, spec_file, workspaces, all_workspaces, strict_targets, discover, output_format):
    """
    Resolve a specification file without provisioning anything

    Every workspace goes through the provisioning stages with a dry run
    backend that assigns placeholder ids, so references between resources
    created in the same run resolve as they would for real.
    """
    try:
        config = _load_config(ctx, strict_targets=strict_targets)
        result = _run_pipeline(config, spec_file, workspaces, all_workspaces, discover)

        if output_format == 'table':
            _display_plan_table(result)
        else:
            payload = {
                workspace: {
                    'success': ws['success'],
                    'resolved': ws['resolved'],
                    'identifiers': ws['identifiers'],
                    'errors': ws['errors']
                }
                for workspace, ws in result['workspaces'].items()
            }
            if output_format == 'json':
                click.echo(json.dumps(payload, indent=2))
            else:
                click.echo(yaml.safe_dump(payload, default_flow_style=False, sort_keys=False))

        if not result['success']:
            for error in result['errors']:
                click.echo(f"Error {error}", err=True)
            sys.exit(1)

    except (ResolverError, ValueError, OSError, BotoCoreError, ClientError) as e:
        click.echo(f"Error Plan failed: {str(e)}", err=True)
        sys.exit(1)


@cli.command()
@click.argument('spec_file', type=click.Path(exists=True))
@click.option('--workspace', '-w', 'workspaces', multiple=True,
              help='Workspace to render (can be specified multiple times)')
@click.option('--all-workspaces', is_flag=True,
              help='Render every workspace of the specification file')
@click.option('--output-dir', '-o',
              help='Output directory for the rendered files')
@click.option('--format', 'output_format', type=click.Choice(['tfvars', 'json', 'yaml']),
              help='Output file format')
@click.option('--overwrite', is_flag=True,
              help='Overwrite existing output files')
@click.option('--discover', is_flag=True,
              help='Register existing tagged AWS resources before resolving')
@click.pass_context
def render(ctx, spec_file, workspaces, all_workspaces, output_dir, output_format, overwrite, discover):
    """
    Write resolved specifications for Terraform

    Produces one <workspace>.auto.tfvars file (or JSON/YAML dump) per
    resolved workspace.
    """
    try:
        config = _load_config(ctx, output_dir=output_dir, overwrite=overwrite)
        result = _run_pipeline(config, spec_file, workspaces, all_workspaces, discover)

        if not result['success']:
            for error in result['errors']:
                click.echo(f"Error {error}", err=True)
            sys.exit(1)

        writer = ResolvedWriter(
            config.output.output_directory,
            format=output_format or config.output.format,
            overwrite=config.output.overwrite_existing
        )
        for workspace_result in result['workspaces'].values():
            path = writer.write(workspace_result)
            click.echo(f"Success Wrote {path}")

    except (ResolverError, ValueError, OSError, BotoCoreError, ClientError) as e:
        click.echo(f"Error Render failed: {str(e)}", err=True)
        sys.exit(1)


@cli.command()
@click.option('--workspace', '-w', help='Workspace to register the resources in')
@click.option('--region', '-r', help='AWS region to scan')
@click.option('--profile', '-p', help='AWS profile to use')
@click.option('--tag', 'tags', multiple=True,
              help='Only resources with this tag, as KEY=VALUE (can be specified multiple times)')
@click.option('--format', 'output_format', type=click.Choice(['table', 'json']),
              default='table', help='Output format')
@click.pass_context
def discover(ctx, workspace, region, profile, tags, output_format):
    """
    List the registries populated from existing AWS resources

    Resources are registered under the value of their Name tag; untagged
    resources are skipped.
    """
    try:
        config = _load_config(ctx, workspace=workspace, region=region, profile=profile)
        tag_filters = {}
        for tag in tags:
            key, sep, value = tag.partition('=')
            if not sep or not key:
                raise click.BadParameter(f"expected KEY=VALUE, got {tag!r}", param_hint='--tag')
            tag_filters[key] = value

        discovery = TagDiscovery(
            NameResolver(),
            region=config.discovery.region,
            profile=config.discovery.profile,
            name_tag=config.discovery.name_tag
        )
        discovered = discovery.discover(config.resolver.default_workspace, tag_filters=tag_filters)

        if output_format == 'json':
            click.echo(json.dumps(discovered, indent=2))
        else:
            rows = [
                [entity_type, name, identifier]
                for entity_type, bindings in discovered.items()
                for name, identifier in sorted(bindings.items())
            ]
            click.echo(tabulate(rows, headers=['Entity Type', 'Name', 'Id'], tablefmt='grid'))

    except click.BadParameter:
        raise
    except Exception as e:
        click.echo(f"Error Discovery failed: {str(e)}", err=True)
        sys.exit(1)


@cli.command()
@click.argument('spec_file', type=click.Path(exists=True))
def validate_specs(spec_file):
    """
    Validate a specification file

    Checks the document structure and that every reference field holds a
    logical name or a list of logical names.
    """
    try:
        spec_set = SpecificationLoader().load_file(spec_file)
        click.echo("Success Specification validation passed!")
        for workspace in spec_set.workspaces():
            click.echo(f"   {workspace}: {spec_set.count(workspace)} spec(s)")
    except ResolverError as e:
        click.echo(f"Error Specification validation failed: {str(e)}", err=True)
        sys.exit(1)


@cli.command()
@click.option('--output-file', '-o', default='tfresolve-config.yaml',
              help='Output configuration file')
@click.option('--format', 'config_format', type=click.Choice(['yaml', 'json']),
              default='yaml', help='Configuration file format')
def init_config(output_file, config_format):
    """
    Generate a default configuration file
    """
    try:
        if os.path.exists(output_file):
            if not click.confirm(f"Configuration file {output_file} already exists. Overwrite?"):
                click.echo("Configuration file creation cancelled.")
                return

        with open(output_file, 'w') as f:
            if config_format == 'yaml':
                f.write(DEFAULT_CONFIG_TEMPLATE)
            else:
                config_dict = yaml.safe_load(DEFAULT_CONFIG_TEMPLATE)
                json.dump(config_dict, f, indent=2)

        click.echo(f"Success Default configuration file created: {output_file}")

    except OSError as e:
        click.echo(f"Error Failed to create configuration file: {str(e)}", err=True)
        sys.exit(1)


@cli.command()
@click.pass_context
def validate_config(ctx):
    """
    Validate configuration file
    """
    try:
        config_manager = ConfigManager()
        config_manager.load_config(config_file=ctx.obj.get('config_file'))

        click.echo("Success Configuration validation passed!")

        summary = config_manager.get_config_summary()
        click.echo("\nConfiguration Summary:")
        for key, value in summary.items():
            click.echo(f"   {key}: {value}")

    except (ValueError, OSError, yaml.YAMLError) as e:
        click.echo(f"Error Configuration validation failed: {str(e)}", err=True)
        sys.exit(1)


def _display_plan_table(result: Dict[str, Any]):
    """Display resolved specifications in table format"""
    for workspace, ws_result in result['workspaces'].items():
        status = "ok" if ws_result['success'] else f"failed at stage {ws_result['failed_stage']}"
        click.echo(f"\nWorkspace {workspace} ({status})")

        rows = []
        for kind, specs in ws_result['resolved'].items():
            for name, fields in sorted(specs.items()):
                rows.append([
                    kind,
                    name,
                    ws_result['identifiers'].get(kind, {}).get(name, ''),
                    json.dumps(fields, sort_keys=True)
                ])

        if rows:
            click.echo(tabulate(rows, headers=['Kind', 'Name', 'Id', 'Resolved Fields'], tablefmt='grid'))


def main():
    """Main entry point for the CLI"""
    try:
        cli()
    except KeyboardInterrupt:
        click.echo("\nWarning Operation cancelled by user.")
        sys.exit(1)


if __name__ == '__main__':
    main()
