import json
import logging
import uuid
from typing import Any, Dict, Tuple

from botocore.exceptions import ClientError
from retry import retry

from queue_processing.aws.wrapper import AWSWrapper, RETRIES_NUMBER
from queue_processing.errors import InvalidResourceHints, MissingRunnableUnit
from queue_processing.platform import (Cooldowns, Platform, QueueIdentity, ScalableTargetHandle,
                                       ServiceHandle)
from queue_processing.sizing import ServiceSizingParams
from queue_processing.units import PrebuiltUnit, ResolvedUnit

DEFAULT_SERVICE_NAME = 'QueueProcessingService'

QUEUE_CONSUME_ACTIONS = [
    'sqs:ReceiveMessage',
    'sqs:ChangeMessageVisibility',
    'sqs:GetQueueUrl',
    'sqs:DeleteMessage',
    'sqs:GetQueueAttributes',
]


def role_name_from_arn(role_arn: str) -> str:
    """arn:aws:iam::123456789012:role/path/name -> name"""
    return role_arn.rsplit('/', 1)[-1]


def queue_consume_policy(queue: QueueIdentity) -> Dict[str, Any]:
    return {
        'Version': '2012-10-17',
        'Statement': [
            {
                'Effect': 'Allow',
                'Action': QUEUE_CONSUME_ACTIONS,
                'Resource': queue.arn,
            },
            {
                'Effect': 'Allow',
                'Action': ['cloudwatch:PutMetricData'],
                'Resource': '*',
            },
        ],
    }


class EcsPlatform(Platform):
    """
    Platform implementation backed by ECS, Application Auto Scaling and IAM.
    """

    def __init__(self, aws_wrapper: AWSWrapper):
        self._aws = aws_wrapper

    @retry(exceptions=ClientError, tries=RETRIES_NUMBER, delay=3)
    def _invoke(self, service_name: str, operation: str, **kwargs) -> Dict[str, Any]:
        client = self._aws.create_aws_client(service_name)
        try:
            return getattr(client, operation)(**kwargs)
        except ClientError as e:
            logging.error(f"Error calling {service_name}.{operation}: {e}")
            raise

    def _register_task_definition(self, unit: ResolvedUnit, service_name: str) -> str:
        task_definition = unit.task_definition
        request = {
            'family': task_definition.family or f"{service_name}TaskDef",
            'containerDefinitions': [c.to_container_definition() for c in task_definition.containers],
            'requiresCompatibilities': ['EC2'],
            'networkMode': 'bridge',
        }
        if task_definition.execution_role_arn:
            request['executionRoleArn'] = task_definition.execution_role_arn
        if task_definition.task_role_arn:
            request['taskRoleArn'] = task_definition.task_role_arn

        response = self._invoke('ecs', 'register_task_definition', **request)
        task_definition_arn = response['taskDefinition']['taskDefinitionArn']
        logging.info(f"Registered task definition {task_definition_arn}")
        return task_definition_arn

    def create_service(self, cluster: str, unit: ResolvedUnit, sizing: ServiceSizingParams) -> ServiceHandle:
        service_name = sizing.service_name or DEFAULT_SERVICE_NAME
        if unit.is_empty:
            raise MissingRunnableUnit(
                f"Service {service_name} needs a task definition; "
                "specify exactly one of taskDefinition or taskImageOptions")

        if isinstance(unit.task_definition, PrebuiltUnit):
            task_definition_arn = unit.task_definition.task_definition_arn
        else:
            # EC2 tasks need a hard or soft memory limit on every container
            for container in unit.task_definition.containers:
                if container.memory_limit_mib is None and container.memory_reservation_mib is None:
                    raise InvalidResourceHints(
                        f"Container {container.name} needs memoryLimitMiB or memoryReservationMiB "
                        "for an EC2 task definition")
            task_definition_arn = self._register_task_definition(unit, service_name)

        request = {
            'cluster': cluster,
            'serviceName': service_name,
            'taskDefinition': task_definition_arn,
            'enableECSManagedTags': sizing.enable_ecs_managed_tags,
            # Same token across retries so a retried call does not create a second service
            'clientToken': uuid.uuid4().hex,
        }
        if sizing.desired_count is not None:
            request['desiredCount'] = sizing.desired_count

        deployment_configuration = {}
        if sizing.min_healthy_percent is not None:
            deployment_configuration['minimumHealthyPercent'] = sizing.min_healthy_percent
        if sizing.max_healthy_percent is not None:
            deployment_configuration['maximumPercent'] = sizing.max_healthy_percent
        if sizing.circuit_breaker is not None:
            deployment_configuration['deploymentCircuitBreaker'] = {
                'enable': sizing.circuit_breaker.enable,
                'rollback': sizing.circuit_breaker.rollback,
            }
        if deployment_configuration:
            request['deploymentConfiguration'] = deployment_configuration

        if sizing.deployment_controller:
            request['deploymentController'] = {'type': sizing.deployment_controller}
        if sizing.propagate_tags:
            request['propagateTags'] = sizing.propagate_tags

        # launchType and capacityProviderStrategy are mutually exclusive in ECS
        if sizing.capacity_provider_strategies:
            request['capacityProviderStrategy'] = [
                {'capacityProvider': s.capacity_provider, 'weight': s.weight, 'base': s.base}
                for s in sizing.capacity_provider_strategies
            ]
        else:
            request['launchType'] = 'EC2'

        response = self._invoke('ecs', 'create_service', **request)
        service = response['service']
        logging.info(f"Created service {service['serviceName']} in cluster {cluster} "
                     f"with desired count {request.get('desiredCount', 'platform default')}")

        return ServiceHandle(
            cluster=cluster,
            service_name=service['serviceName'],
            service_arn=service.get('serviceArn'),
            unit=unit,
        )

    def register_scalable_target(self, service: ServiceHandle, bounds: Tuple[int, int]) -> ScalableTargetHandle:
        handle = ScalableTargetHandle(service=service, bounds=bounds)
        self._invoke(
            'application-autoscaling', 'register_scalable_target',
            ServiceNamespace=handle.service_namespace,
            ResourceId=handle.resource_id,
            ScalableDimension=handle.scalable_dimension,
            MinCapacity=bounds[0],
            MaxCapacity=bounds[1],
        )
        return handle

    def _put_target_tracking_policy(self, target: ScalableTargetHandle, policy_name: str,
                                    configuration: Dict[str, Any], cooldowns: Cooldowns) -> None:
        if cooldowns.scale_in is not None:
            configuration['ScaleInCooldown'] = cooldowns.scale_in
        if cooldowns.scale_out is not None:
            configuration['ScaleOutCooldown'] = cooldowns.scale_out

        self._invoke(
            'application-autoscaling', 'put_scaling_policy',
            PolicyName=f"{target.service.service_name}-{policy_name}",
            ServiceNamespace=target.service_namespace,
            ResourceId=target.resource_id,
            ScalableDimension=target.scalable_dimension,
            PolicyType='TargetTrackingScaling',
            TargetTrackingScalingPolicyConfiguration=configuration,
        )
        logging.debug(f"Put scaling policy {policy_name} on {target.resource_id}: {configuration}")

    def add_queue_depth_trigger(self, target: ScalableTargetHandle, queue: QueueIdentity, ratio: float,
                                cooldowns: Cooldowns) -> None:
        service = target.service
        configuration = {
            'TargetValue': float(ratio),
            'CustomizedMetricSpecification': {
                'Metrics': [
                    {
                        'Id': 'visible',
                        'MetricStat': {
                            'Metric': {
                                'Namespace': 'AWS/SQS',
                                'MetricName': 'ApproximateNumberOfMessagesVisible',
                                'Dimensions': [{'Name': 'QueueName', 'Value': queue.name}],
                            },
                            'Stat': 'Average',
                        },
                        'ReturnData': False,
                    },
                    {
                        'Id': 'tasks',
                        'MetricStat': {
                            'Metric': {
                                'Namespace': 'ECS/ContainerInsights',
                                'MetricName': 'RunningTaskCount',
                                'Dimensions': [
                                    {'Name': 'ClusterName', 'Value': service.cluster},
                                    {'Name': 'ServiceName', 'Value': service.service_name},
                                ],
                            },
                            'Stat': 'Average',
                        },
                        'ReturnData': False,
                    },
                    {
                        'Id': 'backlog_per_task',
                        # A service scaled to zero reports the whole backlog
                        'Expression': 'IF(tasks > 0, visible / tasks, visible)',
                        'Label': 'Visible messages per task',
                        'ReturnData': True,
                    },
                ],
            },
        }
        self._put_target_tracking_policy(target, 'QueueMessagesVisibleScaling', configuration, cooldowns)

    def add_cpu_trigger(self, target: ScalableTargetHandle, percent: float, cooldowns: Cooldowns) -> None:
        configuration = {
            'TargetValue': float(percent),
            'PredefinedMetricSpecification': {'PredefinedMetricType': 'ECSServiceAverageCPUUtilization'},
        }
        self._put_target_tracking_policy(target, 'CpuScaling', configuration, cooldowns)

    def grant_queue_consume_permissions(self, identity: str, queue: QueueIdentity) -> None:
        # put_role_policy replaces a policy of the same name, so granting twice is harmless
        self._invoke(
            'iam', 'put_role_policy',
            RoleName=role_name_from_arn(identity),
            PolicyName=f"{queue.name}-consume",
            PolicyDocument=json.dumps(queue_consume_policy(queue)),
        )
