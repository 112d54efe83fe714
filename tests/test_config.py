import unittest
from unittest import mock

from queue_processing.config import load_config


class TestLoadConfig(unittest.TestCase):
    """Tests for loading configuration from the environment and the event."""

    @mock.patch.dict('os.environ', {
        'ECS_CLUSTER': 'jobs',
        'SERVICE_NAME': 'worker',
        'SQS_QUEUE_URL': 'https://sqs.us-east-1.amazonaws.com/123456789012/work',
        'CONTAINER_IMAGE': 'worker:1',
        'TASK_CPU': '256',
        'DESIRED_TASK_COUNT': '2',
        'CONTAINER_ENV_STAGE': 'prod',
        'FEATURE_FLAGS': '@aws-cdk/aws-ecs-patterns:removeDefaultDesiredCount',
        'ENABLE_LOGGING': 'false',
    }, clear=True)
    def test_environment(self):
        config = load_config()

        self.assertEqual(config.cluster_name, 'jobs')
        self.assertEqual(config.image, 'worker:1')
        self.assertEqual(config.cpu, 256)
        self.assertIsNone(config.memory_limit_mib)
        self.assertEqual(config.desired_task_count, 2)
        self.assertEqual(config.container_environment, {'STAGE': 'prod'})
        self.assertEqual(config.feature_flags, ('@aws-cdk/aws-ecs-patterns:removeDefaultDesiredCount',))
        self.assertFalse(config.enable_logging)
        self.assertEqual(config.visible_messages_per_task, 100.0)
        self.assertEqual(config.cpu_target_utilization, 50.0)
        self.assertEqual(config.scale_in_cooldown, 300)
        self.assertEqual(config.region, 'us-east-1')

    @mock.patch.dict('os.environ', {'ECS_CLUSTER': 'jobs', 'TASK_CPU': '256'}, clear=True)
    def test_event_overrides_environment(self):
        config = load_config({'config': {
            'cluster_name': 'batch',
            'cpu': 1024,
            'desired_task_count': 0,
            'max_scaling_capacity': 8,
            'container_environment': {'MODE': 'fast'},
            'feature_flags': ['a', 'b'],
            'enable_logging': True,
        }})

        self.assertEqual(config.cluster_name, 'batch')
        self.assertEqual(config.cpu, 1024)
        self.assertEqual(config.desired_task_count, 0)
        self.assertEqual(config.max_scaling_capacity, 8)
        self.assertEqual(config.container_environment, {'MODE': 'fast'})
        self.assertEqual(config.feature_flags, ('a', 'b'))
        self.assertTrue(config.enable_logging)
        self.assertIsNone(config.queue_url)


if __name__ == '__main__':
    unittest.main()
