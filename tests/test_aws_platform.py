import json
import unittest
from unittest import mock

from queue_processing.aws.platform import EcsPlatform, QUEUE_CONSUME_ACTIONS, role_name_from_arn
from queue_processing.errors import InvalidResourceHints, MissingRunnableUnit
from queue_processing.platform import Cooldowns, QueueIdentity, ScalableTargetHandle, ServiceHandle
from queue_processing.queues import sqs
from queue_processing.sizing import CapacityProviderStrategy, DeploymentCircuitBreaker, ServiceSizingParams
from queue_processing.units import (ImageBundle, LogSink, PrebuiltUnit, ResolvedUnit, ResourceHints,
                                    RunnableUnitSpec, resolve)

QUEUE = QueueIdentity(
    url='https://sqs.us-east-1.amazonaws.com/123456789012/work',
    arn='arn:aws:sqs:us-east-1:123456789012:work',
    name='work'
)


class TestEcsPlatform(unittest.TestCase):
    """Tests for the boto3 requests issued by the ECS platform."""

    def setUp(self):
        self.clients = {
            'ecs': mock.MagicMock(),
            'application-autoscaling': mock.MagicMock(),
            'iam': mock.MagicMock(),
        }
        self.aws_wrapper = mock.MagicMock()
        self.aws_wrapper.create_aws_client.side_effect = lambda name: self.clients[name]
        self.clients['ecs'].register_task_definition.return_value = {
            'taskDefinition': {'taskDefinitionArn': 'arn:aws:ecs:us-east-1:123456789012:task-definition/worker:1'}
        }
        self.clients['ecs'].create_service.return_value = {
            'service': {
                'serviceName': 'worker',
                'serviceArn': 'arn:aws:ecs:us-east-1:123456789012:service/jobs/worker'
            }
        }
        self.platform = EcsPlatform(self.aws_wrapper)

    def _bundle_unit(self):
        bundle = ImageBundle(
            image='worker:1',
            execution_role_arn='arn:aws:iam::123456789012:role/exec',
            task_role_arn='arn:aws:iam::123456789012:role/task',
            family='worker'
        )
        return resolve(RunnableUnitSpec(image_bundle=bundle), ResourceHints(cpu=256, memory_limit_mib=512),
                       LogSink.aws_logs(stream_prefix='worker'))

    def test_create_service_registers_task_definition(self):
        handle = self.platform.create_service('jobs', self._bundle_unit(),
                                              ServiceSizingParams(service_name='worker', desired_count=2,
                                                                  min_healthy_percent=50,
                                                                  max_healthy_percent=200))

        registered = self.clients['ecs'].register_task_definition.call_args[1]
        self.assertEqual(registered['family'], 'worker')
        self.assertEqual(registered['executionRoleArn'], 'arn:aws:iam::123456789012:role/exec')
        self.assertEqual(registered['taskRoleArn'], 'arn:aws:iam::123456789012:role/task')
        self.assertEqual(registered['requiresCompatibilities'], ['EC2'])
        self.assertEqual(registered['containerDefinitions'][0]['name'], 'QueueProcessingContainer')
        self.assertEqual(registered['containerDefinitions'][0]['cpu'], 256)

        request = self.clients['ecs'].create_service.call_args[1]
        self.assertEqual(request['cluster'], 'jobs')
        self.assertEqual(request['taskDefinition'], 'arn:aws:ecs:us-east-1:123456789012:task-definition/worker:1')
        self.assertEqual(request['desiredCount'], 2)
        self.assertEqual(request['deploymentConfiguration'],
                         {'minimumHealthyPercent': 50, 'maximumPercent': 200})
        self.assertEqual(request['launchType'], 'EC2')
        self.assertIn('clientToken', request)

        self.assertEqual(handle.service_name, 'worker')
        self.assertEqual(handle.resource_id, 'service/jobs/worker')

    def test_create_service_with_prebuilt_unit(self):
        unit = ResolvedUnit(task_definition=PrebuiltUnit('arn:aws:ecs:us-east-1:123456789012:task-definition/x:7'))
        sizing = ServiceSizingParams(
            service_name='worker',
            deployment_controller='ECS',
            circuit_breaker=DeploymentCircuitBreaker(enable=True, rollback=True),
            propagate_tags='SERVICE',
            enable_ecs_managed_tags=True,
            capacity_provider_strategies=(CapacityProviderStrategy('spot', weight=2, base=1),)
        )

        self.platform.create_service('jobs', unit, sizing)

        self.clients['ecs'].register_task_definition.assert_not_called()
        request = self.clients['ecs'].create_service.call_args[1]
        self.assertEqual(request['taskDefinition'], 'arn:aws:ecs:us-east-1:123456789012:task-definition/x:7')
        self.assertNotIn('desiredCount', request)
        self.assertNotIn('launchType', request)
        self.assertEqual(request['capacityProviderStrategy'],
                         [{'capacityProvider': 'spot', 'weight': 2, 'base': 1}])
        self.assertEqual(request['deploymentController'], {'type': 'ECS'})
        self.assertEqual(request['deploymentConfiguration'],
                         {'deploymentCircuitBreaker': {'enable': True, 'rollback': True}})
        self.assertEqual(request['propagateTags'], 'SERVICE')
        self.assertTrue(request['enableECSManagedTags'])

    def test_create_service_without_unit(self):
        with self.assertRaises(MissingRunnableUnit):
            self.platform.create_service('jobs', ResolvedUnit(), ServiceSizingParams(service_name='worker'))

        self.clients['ecs'].create_service.assert_not_called()

    def test_container_without_memory_is_rejected(self):
        bundle = ImageBundle(image='worker:1', task_role_arn='arn:aws:iam::123456789012:role/task')
        unit = resolve(RunnableUnitSpec(image_bundle=bundle), ResourceHints(cpu=256))

        with self.assertRaises(InvalidResourceHints):
            self.platform.create_service('jobs', unit, ServiceSizingParams(service_name='worker'))

        self.aws_wrapper.create_aws_client.assert_not_called()

    def test_memory_reservation_is_enough(self):
        unit = resolve(RunnableUnitSpec(image_bundle=ImageBundle(image='worker:1')),
                       ResourceHints(memory_reservation_mib=256))

        self.platform.create_service('jobs', unit, ServiceSizingParams(service_name='worker'))

        registered = self.clients['ecs'].register_task_definition.call_args[1]
        self.assertEqual(registered['containerDefinitions'][0]['memoryReservation'], 256)

    def test_scaling_requests(self):
        service = ServiceHandle('jobs', 'worker', None, ResolvedUnit())
        target = self.platform.register_scalable_target(service, (1, 10))
        cooldowns = Cooldowns(scale_in=120, scale_out=60)

        self.platform.add_queue_depth_trigger(target, QUEUE, 100, cooldowns)
        self.platform.add_cpu_trigger(target, 50, cooldowns)

        autoscaling = self.clients['application-autoscaling']
        autoscaling.register_scalable_target.assert_called_once_with(
            ServiceNamespace='ecs',
            ResourceId='service/jobs/worker',
            ScalableDimension='ecs:service:DesiredCount',
            MinCapacity=1,
            MaxCapacity=10
        )
        self.assertEqual(target, ScalableTargetHandle(service=service, bounds=(1, 10)))

        queue_policy, cpu_policy = [c[1] for c in autoscaling.put_scaling_policy.call_args_list]
        self.assertEqual(queue_policy['PolicyName'], 'worker-QueueMessagesVisibleScaling')
        self.assertEqual(queue_policy['PolicyType'], 'TargetTrackingScaling')
        queue_config = queue_policy['TargetTrackingScalingPolicyConfiguration']
        self.assertEqual(queue_config['TargetValue'], 100.0)
        self.assertEqual(queue_config['ScaleInCooldown'], 120)
        self.assertEqual(queue_config['ScaleOutCooldown'], 60)
        metrics = {m['Id']: m for m in queue_config['CustomizedMetricSpecification']['Metrics']}
        self.assertEqual(metrics['visible']['MetricStat']['Metric']['Dimensions'],
                         [{'Name': 'QueueName', 'Value': 'work'}])
        self.assertTrue(metrics['backlog_per_task']['ReturnData'])

        cpu_config = cpu_policy['TargetTrackingScalingPolicyConfiguration']
        self.assertEqual(cpu_policy['PolicyName'], 'worker-CpuScaling')
        self.assertEqual(cpu_config['TargetValue'], 50.0)
        self.assertEqual(cpu_config['PredefinedMetricSpecification'],
                         {'PredefinedMetricType': 'ECSServiceAverageCPUUtilization'})

    def test_cooldowns_left_to_platform(self):
        target = ScalableTargetHandle(ServiceHandle('jobs', 'worker', None, ResolvedUnit()), (1, 2))

        self.platform.add_cpu_trigger(target, 70, Cooldowns())

        config = self.clients['application-autoscaling'].put_scaling_policy.call_args[1][
            'TargetTrackingScalingPolicyConfiguration']
        self.assertNotIn('ScaleInCooldown', config)
        self.assertNotIn('ScaleOutCooldown', config)

    def test_grant_puts_named_role_policy(self):
        self.platform.grant_queue_consume_permissions('arn:aws:iam::123456789012:role/service/worker-task', QUEUE)

        request = self.clients['iam'].put_role_policy.call_args[1]
        self.assertEqual(request['RoleName'], 'worker-task')
        self.assertEqual(request['PolicyName'], 'work-consume')
        document = json.loads(request['PolicyDocument'])
        self.assertEqual(document['Statement'][0]['Action'], QUEUE_CONSUME_ACTIONS)
        self.assertEqual(document['Statement'][0]['Resource'], QUEUE.arn)
        self.assertEqual(document['Statement'][1]['Action'], ['cloudwatch:PutMetricData'])

    def test_role_name_from_arn(self):
        self.assertEqual(role_name_from_arn('arn:aws:iam::123456789012:role/worker'), 'worker')


class TestDescribeQueue(unittest.TestCase):

    def test_describe_queue(self):
        aws_wrapper = mock.MagicMock()
        aws_wrapper.create_aws_client.return_value.get_queue_attributes.return_value = {
            'Attributes': {'QueueArn': QUEUE.arn}
        }

        queue = sqs.describe_queue(aws_wrapper, QUEUE.url)

        self.assertEqual(queue, QUEUE)
        aws_wrapper.create_aws_client.assert_called_once_with('sqs')

    def test_queue_name_from_url(self):
        self.assertEqual(sqs.queue_name_from_url(QUEUE.url), 'work')
        self.assertEqual(sqs.queue_name_from_url(QUEUE.url + '/'), 'work')


if __name__ == '__main__':
    unittest.main()
