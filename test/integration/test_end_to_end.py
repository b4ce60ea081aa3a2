#!/usr/bin/env python3
"""
Integration tests for the provisioning pipeline and the CLI
"""

import unittest
import sys
import os
import json
import logging
import shutil
import tempfile
from pathlib import Path
from unittest.mock import Mock, patch

import yaml
from botocore.exceptions import ClientError, NoCredentialsError
from click.testing import CliRunner

# Add src directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../../src'))

from tf_name_resolver.cli import cli
from tf_name_resolver.config import ToolConfig, PipelineConfig
from tf_name_resolver.entities import EntityType
from tf_name_resolver.loader import SpecificationLoader, SpecificationSet
from tf_name_resolver.pipeline import DryRunBackend, ProvisioningPipeline
from tf_name_resolver.resolver import NameResolver

FIXTURE = str(Path(__file__).parent.parent / 'fixtures' / 'network.yaml')

make_id = DryRunBackend.make_id


def _load_fixture():
    with open(FIXTURE) as f:
        return yaml.safe_load(f)


class TestProvisioningPipeline(unittest.TestCase):
    """Test stage by stage provisioning of the network fixture"""

    def setUp(self):
        self.spec_set = SpecificationLoader().load_file(FIXTURE)

    def test_default_workspace(self):
        """Test every reference of the default workspace resolves"""
        pipeline = ProvisioningPipeline()

        result = pipeline.run(self.spec_set, workspaces=['default'])

        self.assertTrue(result['success'], result['errors'])
        ws = result['workspaces']['default']
        self.assertIsNone(ws['failed_stage'])
        self.assertEqual(len(ws['stages']), 7)

        subnet = ws['resolved']['subnets']['pub_a']
        self.assertEqual(subnet['vpc_id'], make_id('vpcs', 'default', 'app_vpc'))
        self.assertNotIn('vpc_name', subnet)
        self.assertEqual(subnet['cidr_block'], '10.0.1.0/24')

        nat = ws['resolved']['nat_gateways']['nat_a']
        self.assertEqual(nat['subnet_id'], make_id('subnets', 'default', 'pub_a'))
        self.assertEqual(nat['allocation_id'], make_id('elastic_ips', 'default', 'nat_eip'))

        private_routes = ws['resolved']['route_tables']['private']['routes']
        self.assertEqual(private_routes[0]['target_key'], make_id('nat_gateways', 'default', 'nat_a'))
        self.assertEqual(private_routes[1]['target_key'], 'pcx-0123456789abcdef0')
        public_routes = ws['resolved']['route_tables']['public']['routes']
        self.assertEqual(public_routes[0]['target_key'], make_id('internet_gateways', 'default', 'app_igw'))

        association = ws['resolved']['route_table_associations']['priv_a_private']
        self.assertEqual(association['route_table_id'], make_id('route_tables', 'default', 'private'))

        endpoint = ws['resolved']['vpc_endpoints']['s3']
        self.assertEqual(endpoint['route_table_ids'], [make_id('route_tables', 'default', 'private')])

        cluster = ws['resolved']['eks_clusters']['main']
        self.assertEqual(cluster['subnet_ids'], [make_id('subnets', 'default', 'pub_a'),
                                                 make_id('subnets', 'default', 'pub_b')])
        self.assertEqual(cluster['security_group_ids'], [make_id('security_groups', 'default', 'cluster_sg')])
        self.assertEqual(cluster['version'], '1.29')

        workers = ws['resolved']['eks_node_groups']['workers']
        self.assertEqual(workers['subnet_ids'], [make_id('subnets', 'default', 'priv_a')])
        self.assertEqual(workers['cluster_name'], 'main')

    def test_workspaces_do_not_share_registries(self):
        """Test the same logical names resolve to per-workspace ids"""
        config = ToolConfig(pipeline=PipelineConfig(parallel_workspaces=True, max_parallel_workspaces=2))
        pipeline = ProvisioningPipeline(config)

        result = pipeline.run(self.spec_set)

        self.assertTrue(result['success'], result['errors'])
        default_subnet = result['workspaces']['default']['resolved']['subnets']['pub_a']
        qe_subnet = result['workspaces']['qe']['resolved']['subnets']['pub_a']
        self.assertEqual(qe_subnet['vpc_id'], make_id('vpcs', 'qe', 'app_vpc'))
        self.assertNotEqual(default_subnet['vpc_id'], qe_subnet['vpc_id'])

        qe_routes = result['workspaces']['qe']['resolved']['route_tables']['public']['routes']
        self.assertEqual(qe_routes[0]['target_key'], make_id('internet_gateways', 'qe', 'app_igw'))

    def test_registries_discarded_after_run(self):
        """Test registries only survive the run when asked to"""
        pipeline = ProvisioningPipeline()
        pipeline.run(self.spec_set)
        self.assertEqual(pipeline.resolver.workspaces(), [])

        pipeline.run(self.spec_set, workspaces=['qe'], keep_registries=True)
        self.assertEqual(pipeline.resolver.workspaces(), ['qe'])
        self.assertEqual(pipeline.resolver.registered(EntityType.ROUTE_TABLE, 'qe'),
                         {'public': make_id('route_tables', 'qe', 'public')})

    def test_unresolved_reference_stops_the_workspace(self):
        """Test a typo fails its stage and no later stage is provisioned"""
        document = _load_fixture()
        document['route_tables']['default']['private']['routes'][0]['target_key'] = 'nat_typo'
        spec_set = SpecificationLoader().load_document(document)
        backend = DryRunBackend()
        pipeline = ProvisioningPipeline(backend=backend)

        result = pipeline.run(spec_set, workspaces=['default'])

        self.assertFalse(result['success'])
        ws = result['workspaces']['default']
        self.assertEqual(ws['failed_stage'], 4)
        self.assertNotIn('route_tables', ws['resolved'])
        self.assertNotIn('eks_clusters', ws['resolved'])
        self.assertEqual(len(result['errors']), 1)
        self.assertIn('[default] Failed to resolve route_tables private', result['errors'][0])
        self.assertIn("'nat_typo'", result['errors'][0])
        # The valid public route table of the failed stage is not created either
        self.assertNotIn('route_tables', [kind for kind, _, _ in backend.created])

    def test_failure_is_isolated_to_its_workspace(self):
        """Test a broken workspace does not fail the other one"""
        document = _load_fixture()
        document['subnets']['qe']['pub_a']['vpc_name'] = 'missing_vpc'
        spec_set = SpecificationLoader().load_document(document)

        result = ProvisioningPipeline().run(spec_set)

        self.assertFalse(result['success'])
        self.assertTrue(result['workspaces']['default']['success'])
        self.assertEqual(result['workspaces']['qe']['failed_stage'], 2)
        self.assertTrue(all(error.startswith('[qe]') for error in result['errors']))

    def test_missing_required_reference_fails_the_stage(self):
        """Test specs built without validation still need their required references"""
        spec_set = SpecificationSet({
            'vpcs': {'default': {'app_vpc': {'cidr_block': '10.0.0.0/16'}}},
            'subnets': {'default': {'pub_a': {'cidr_block': '10.0.1.0/24'}}},
            'eks_clusters': {'default': {'main': {'version': '1.29'}}},
        })

        result = ProvisioningPipeline().run(spec_set)

        self.assertFalse(result['success'])
        ws = result['workspaces']['default']
        self.assertEqual(ws['failed_stage'], 2)
        self.assertNotIn('subnets', ws['resolved'])
        self.assertNotIn('eks_clusters', ws['resolved'])
        self.assertIn("Failed to resolve subnets pub_a: Reference field 'vpc_name'", ws['errors'][0])

    def test_pre_registered_names(self):
        """Test names registered before the run satisfy references"""
        resolver = NameResolver()
        resolver.register(EntityType.VPC, 'prod', 'shared_vpc', 'vpc-0shared')
        spec_set = SpecificationLoader().load_document({
            'subnets': {'prod': {'app_a': {'vpc_name': 'shared_vpc', 'cidr_block': '10.20.1.0/24'}}}
        })

        result = ProvisioningPipeline(resolver=resolver).run(spec_set)

        self.assertTrue(result['success'], result['errors'])
        self.assertEqual(result['workspaces']['prod']['resolved']['subnets']['app_a']['vpc_id'], 'vpc-0shared')

    def test_backend_failure(self):
        """Test a backend error fails the stage"""
        backend = Mock()
        backend.create.side_effect = RuntimeError("quota exceeded")

        result = ProvisioningPipeline(backend=backend).run(self.spec_set, workspaces=['qe'])

        ws = result['workspaces']['qe']
        self.assertEqual(ws['failed_stage'], 1)
        self.assertIn('Failed to provision vpcs app_vpc: quota exceeded', ws['errors'][0])

    def test_strict_target_types(self):
        """Test strict mode rejects a mistyped target type"""
        document = _load_fixture()
        document['route_tables']['default']['private']['routes'][0]['target_type'] = 'ngw'
        spec_set = SpecificationLoader().load_document(document)

        lenient = ProvisioningPipeline().run(spec_set, workspaces=['default'])
        self.assertTrue(lenient['success'])

        config = ToolConfig()
        config.resolver.strict_target_types = True
        strict = ProvisioningPipeline(config).run(spec_set, workspaces=['default'])
        self.assertFalse(strict['success'])
        self.assertIn("'ngw'", strict['errors'][0])


class TestCommandLine(unittest.TestCase):
    """Test the tfresolve command group"""

    def setUp(self):
        self.runner = CliRunner()
        self.temp_dir = tempfile.mkdtemp()
        self.previous_handlers = list(logging.getLogger().handlers)

    def tearDown(self):
        root = logging.getLogger()
        for handler in list(root.handlers):
            root.removeHandler(handler)
        for handler in self.previous_handlers:
            root.addHandler(handler)
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_validate_specs(self):
        """Test a valid specification file"""
        result = self.runner.invoke(cli, ['validate-specs', FIXTURE])

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn('Specification validation passed', result.output)
        self.assertIn('qe: 5 spec(s)', result.output)

    def test_validate_specs_failure(self):
        """Test an invalid specification file"""
        path = os.path.join(self.temp_dir, 'bad.yaml')
        with open(path, 'w') as f:
            yaml.dump({'subnets': {'default': {'pub_a': {'vpc_name': 7}}}}, f)

        result = self.runner.invoke(cli, ['validate-specs', path])

        self.assertEqual(result.exit_code, 1)

    def test_plan_json(self):
        """Test the plan of one workspace as JSON"""
        with self.runner.isolated_filesystem(temp_dir=self.temp_dir):
            result = self.runner.invoke(cli, ['--quiet', 'plan', FIXTURE, '-w', 'qe', '--format', 'json'])

        self.assertEqual(result.exit_code, 0, result.output)
        payload = json.loads(result.output)
        self.assertEqual(list(payload), ['qe'])
        self.assertTrue(payload['qe']['success'])
        self.assertEqual(payload['qe']['resolved']['subnets']['pub_a']['vpc_id'],
                         make_id('vpcs', 'qe', 'app_vpc'))

    def test_plan_table(self):
        """Test the default table output"""
        with self.runner.isolated_filesystem(temp_dir=self.temp_dir):
            result = self.runner.invoke(cli, ['--quiet', 'plan', FIXTURE, '--all-workspaces'])

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn('Workspace default (ok)', result.output)
        self.assertIn('Workspace qe (ok)', result.output)

    def test_plan_failure_exit_code(self):
        """Test an unresolved reference fails the command"""
        path = os.path.join(self.temp_dir, 'broken.yaml')
        with open(path, 'w') as f:
            yaml.dump({'subnets': {'default': {'pub_a': {'vpc_name': 'missing_vpc'}}}}, f)

        with self.runner.isolated_filesystem(temp_dir=self.temp_dir):
            result = self.runner.invoke(cli, ['--quiet', 'plan', path])

        self.assertEqual(result.exit_code, 1)
        self.assertIn('missing_vpc', result.output)

    def test_render(self):
        """Test tfvars files are written per workspace"""
        output_dir = os.path.join(self.temp_dir, 'resolved')

        with self.runner.isolated_filesystem(temp_dir=self.temp_dir):
            result = self.runner.invoke(cli, ['--quiet', 'render', FIXTURE, '--all-workspaces',
                                              '-o', output_dir])

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertTrue(os.path.exists(os.path.join(output_dir, 'default.auto.tfvars')))
        self.assertTrue(os.path.exists(os.path.join(output_dir, 'qe.auto.tfvars')))
        with open(os.path.join(output_dir, 'qe.auto.tfvars')) as f:
            self.assertIn('route_table_associations = {', f.read())

    def _mock_ec2(self, mock_session, pages=None, error=None):
        client = Mock()
        mock_session.return_value.client.return_value = client

        def get_paginator(operation):
            if error is not None:
                raise error
            paginator = Mock()
            paginator.paginate.return_value = (pages or {}).get(operation, [])
            return paginator

        client.get_paginator.side_effect = get_paginator
        client.describe_addresses.return_value = {'Addresses': []}
        return client

    @patch('boto3.Session')
    def test_discover_command(self, mock_session):
        """Test tagged resources are listed by entity type"""
        self._mock_ec2(mock_session, pages={
            'describe_vpcs': [{'Vpcs': [{'VpcId': 'vpc-0a1', 'Tags': [{'Key': 'Name', 'Value': 'app_vpc'}]}]}],
        })

        with self.runner.isolated_filesystem(temp_dir=self.temp_dir):
            result = self.runner.invoke(cli, ['--quiet', 'discover', '-w', 'prod', '--region', 'eu-west-1',
                                              '--tag', 'Environment=prod', '--format', 'json'])

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(json.loads(result.output)['vpc'], {'app_vpc': 'vpc-0a1'})
        mock_session.return_value.client.assert_called_once_with('ec2', region_name='eu-west-1')

    @patch('boto3.Session')
    def test_discover_command_bad_tag(self, mock_session):
        """Test tag filters must be KEY=VALUE"""
        self._mock_ec2(mock_session)

        with self.runner.isolated_filesystem(temp_dir=self.temp_dir):
            result = self.runner.invoke(cli, ['--quiet', 'discover', '--tag', 'Environment'])

        self.assertEqual(result.exit_code, 2)

    @patch('boto3.Session')
    def test_plan_discover_without_credentials(self, mock_session):
        """Test missing AWS credentials are reported, not raised"""
        self._mock_ec2(mock_session, error=NoCredentialsError())

        with self.runner.isolated_filesystem(temp_dir=self.temp_dir):
            result = self.runner.invoke(cli, ['--quiet', 'plan', FIXTURE, '--discover'])

        self.assertEqual(result.exit_code, 1)
        self.assertIsInstance(result.exception, SystemExit)
        self.assertIn('Error Plan failed', result.output)

    @patch('boto3.Session')
    def test_render_discover_api_error(self, mock_session):
        """Test AWS API errors during discovery fail render cleanly"""
        error = ClientError({'Error': {'Code': 'UnauthorizedOperation', 'Message': 'denied'}}, 'DescribeVpcs')
        self._mock_ec2(mock_session, error=error)

        with self.runner.isolated_filesystem(temp_dir=self.temp_dir):
            result = self.runner.invoke(cli, ['--quiet', 'render', FIXTURE, '--discover',
                                              '-o', os.path.join(self.temp_dir, 'out')])

        self.assertEqual(result.exit_code, 1)
        self.assertIsInstance(result.exception, SystemExit)
        self.assertIn('Error Render failed', result.output)
        self.assertFalse(os.path.exists(os.path.join(self.temp_dir, 'out')))

    @patch('boto3.Session')
    def test_plan_discover_registers_existing_resources(self, mock_session):
        """Test discovered names satisfy references the spec file does not create"""
        self._mock_ec2(mock_session, pages={
            'describe_vpcs': [{'Vpcs': [{'VpcId': 'vpc-0shared', 'Tags': [{'Key': 'Name', 'Value': 'shared_vpc'}]}]}],
        })
        path = os.path.join(self.temp_dir, 'subnets.yaml')
        with open(path, 'w') as f:
            yaml.dump({'subnets': {'default': {'app_a': {'vpc_name': 'shared_vpc'}}}}, f)

        with self.runner.isolated_filesystem(temp_dir=self.temp_dir):
            result = self.runner.invoke(cli, ['--quiet', 'plan', path, '--discover', '--format', 'json'])

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(json.loads(result.output)['default']['resolved']['subnets']['app_a']['vpc_id'],
                         'vpc-0shared')

    def test_init_and_validate_config(self):
        """Test the generated configuration validates"""
        with self.runner.isolated_filesystem(temp_dir=self.temp_dir):
            result = self.runner.invoke(cli, ['init-config'])
            self.assertEqual(result.exit_code, 0, result.output)
            self.assertTrue(os.path.exists('tfresolve-config.yaml'))

            result = self.runner.invoke(cli, ['-c', 'tfresolve-config.yaml', 'validate-config'])

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn('Configuration validation passed', result.output)


if __name__ == '__main__':
    unittest.main()
