import logging
from typing import Dict, Any, Optional

from queue_processing.aws.platform import EcsPlatform
from queue_processing.aws.wrapper import AWSWrapper
from queue_processing.config import load_config, Config
from queue_processing.errors import QueueServiceError
from queue_processing.flags import FeatureFlagContext
from queue_processing.queues import sqs
from queue_processing.scaling import ScalingKnobs
from queue_processing.service import QueueProcessingService
from queue_processing.sizing import ServiceSizingParams, derive_capacity_bounds
from queue_processing.units import ImageBundle, LogSink, PrebuiltUnit, ResourceHints


def build_log_sink(config: Config) -> Optional[LogSink]:
    """Shared awslogs driver for the service's container, None when logging is disabled."""
    if not config.enable_logging:
        return None
    return LogSink.aws_logs(
        stream_prefix=config.service_name or 'QueueProcessing',
        log_group=config.log_group,
        region=config.region
    )


def build_service(platform, config: Config, queue) -> QueueProcessingService:
    """
    Construct the queue processing service described by the configuration.

    Args:
        platform: Platform that performs the AWS calls
        config: Configuration object
        queue: Identity of the queue the service consumes

    Returns:
        QueueProcessingService: The constructed service

    Raises:
        QueueServiceError: If the configuration is inconsistent
    """
    flags = FeatureFlagContext.from_keys(config.feature_flags)

    desired_count, min_capacity, max_capacity = derive_capacity_bounds(
        config.desired_task_count,
        config.min_scaling_capacity,
        config.max_scaling_capacity,
        flags
    )

    task_definition = None
    if config.task_definition_arn:
        task_definition = PrebuiltUnit(
            task_definition_arn=config.task_definition_arn,
            execution_role_arn=config.execution_role_arn,
            task_role_arn=config.task_role_arn
        )

    task_image_options = None
    if config.image:
        task_image_options = ImageBundle(
            image=config.image,
            execution_role_arn=config.execution_role_arn,
            task_role_arn=config.task_role_arn,
            family=config.family,
            container_name=config.container_name,
            environment=config.container_environment
        )

    return QueueProcessingService(
        platform,
        cluster=config.cluster_name,
        queue=queue,
        knobs=ScalingKnobs(
            min_capacity=min_capacity,
            max_capacity=max_capacity,
            visible_messages_per_task=config.visible_messages_per_task,
            cpu_target_utilization_percent=config.cpu_target_utilization,
            scale_in_cooldown=config.scale_in_cooldown,
            scale_out_cooldown=config.scale_out_cooldown
        ),
        task_definition=task_definition,
        task_image_options=task_image_options,
        resource_hints=ResourceHints(
            cpu=config.cpu,
            memory_limit_mib=config.memory_limit_mib,
            memory_reservation_mib=config.memory_reservation_mib,
            gpu_count=config.gpu_count
        ),
        sizing=ServiceSizingParams(
            service_name=config.service_name,
            desired_count=desired_count,
            min_healthy_percent=config.min_healthy_percent,
            max_healthy_percent=config.max_healthy_percent
        ),
        log_sink=build_log_sink(config),
        flags=flags
    )


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda handler that creates a queue processing ECS service with autoscaling.

    Configuration can be provided via environment variables or in the event payload.

    Args:
        event: AWS Lambda event object, can contain configuration overrides
        context: AWS Lambda context object

    Returns:
        dict: Outputs of the created service, or a status code and error message
    """
    config = load_config(event)

    logging.info(f"Creating queue processing service {config.service_name} in cluster {config.cluster_name}")

    if not config.queue_url:
        logging.error("SQS_QUEUE_URL must be configured")
        return {"statusCode": 400, "error": "SQS_QUEUE_URL must be configured"}

    if not config.cluster_name:
        logging.error("ECS_CLUSTER must be configured")
        return {"statusCode": 400, "error": "ECS_CLUSTER must be configured"}

    aws_wrapper = AWSWrapper(
        sso_profile_name=config.sso_profile,
        region_name=config.region
    )

    try:
        queue = sqs.describe_queue(aws_wrapper, config.queue_url)
        service = build_service(EcsPlatform(aws_wrapper), config, queue)

        outputs = service.outputs()
        logging.info(f"Created service {outputs['service_name']} scaling between "
                     f"{outputs['min_capacity']} and {outputs['max_capacity']} tasks")
        return {"statusCode": 200, **outputs}

    except QueueServiceError as e:
        logging.error(f"Invalid queue processing service configuration: {e}")
        return {"statusCode": 400, "error": str(e)}
    except Exception as e:
        logging.error(f"Error creating queue processing service: {e}", exc_info=True)
        return {"statusCode": 500, "error": str(e)}
