import os
from typing import Dict, Any, Optional, NamedTuple, Tuple

CONTAINER_ENV_PREFIX = 'CONTAINER_ENV_'
TRUE_VALUES = ('true', '1', 't', 'yes')


class Config(NamedTuple):
    """Configuration for one queue processing service construction."""
    # ECS configuration
    cluster_name: str
    service_name: Optional[str]

    # Queue configuration
    queue_url: str

    # Task definition, either an existing one or an image to build one from
    task_definition_arn: Optional[str]
    image: Optional[str]
    execution_role_arn: Optional[str]
    task_role_arn: Optional[str]
    family: Optional[str]
    container_name: Optional[str]
    container_environment: Dict[str, str]

    # Container resources
    cpu: Optional[int]
    memory_limit_mib: Optional[int]
    memory_reservation_mib: Optional[int]
    gpu_count: Optional[int]

    # Sizing
    desired_task_count: Optional[int]
    min_healthy_percent: Optional[int]
    max_healthy_percent: Optional[int]

    # Scaling parameters
    min_scaling_capacity: Optional[int]
    max_scaling_capacity: Optional[int]
    visible_messages_per_task: float
    cpu_target_utilization: float
    scale_in_cooldown: int
    scale_out_cooldown: int

    # Logging
    enable_logging: bool
    log_group: Optional[str]

    # Feature flags enabled for this construction
    feature_flags: Tuple[str, ...]

    # AWS configuration
    region: str
    sso_profile: Optional[str]


def _optional_int(value) -> Optional[int]:
    if value is None or value == '':
        return None
    return int(value)


def load_config(event: Dict[str, Any] = None) -> Config:
    """
    Load configuration from environment variables and optional event payload.

    Event payload values override environment variables when present.

    Args:
        event: Optional Lambda event that may contain configuration overrides

    Returns:
        Config: Configuration object with all service settings
    """
    event = event or {}
    config_from_event = event.get('config', {})

    def setting(key, env_name, default=None):
        value = config_from_event.get(key)
        if value is None:
            value = os.environ.get(env_name, default)
        return value

    # ECS configuration
    cluster_name = setting('cluster_name', 'ECS_CLUSTER')
    service_name = setting('service_name', 'SERVICE_NAME')

    # Queue configuration
    queue_url = setting('queue_url', 'SQS_QUEUE_URL')

    # Container environment: CONTAINER_ENV_FOO=bar becomes FOO=bar, event entries win
    container_environment = {
        name[len(CONTAINER_ENV_PREFIX):]: value
        for name, value in os.environ.items()
        if name.startswith(CONTAINER_ENV_PREFIX) and len(name) > len(CONTAINER_ENV_PREFIX)
    }
    container_environment.update(config_from_event.get('container_environment', {}))

    enable_logging_str = str(setting('enable_logging', 'ENABLE_LOGGING', 'True'))
    enable_logging = enable_logging_str.lower() in TRUE_VALUES

    feature_flags = setting('feature_flags', 'FEATURE_FLAGS', '')
    if isinstance(feature_flags, str):
        feature_flags = feature_flags.split(',')
    feature_flags = tuple(flag.strip() for flag in feature_flags if flag and flag.strip())

    return Config(
        cluster_name=cluster_name,
        service_name=service_name,
        queue_url=queue_url,
        task_definition_arn=setting('task_definition_arn', 'TASK_DEFINITION_ARN'),
        image=setting('image', 'CONTAINER_IMAGE'),
        execution_role_arn=setting('execution_role_arn', 'EXECUTION_ROLE_ARN'),
        task_role_arn=setting('task_role_arn', 'TASK_ROLE_ARN'),
        family=setting('family', 'TASK_FAMILY'),
        container_name=setting('container_name', 'CONTAINER_NAME'),
        container_environment=container_environment,
        cpu=_optional_int(setting('cpu', 'TASK_CPU')),
        memory_limit_mib=_optional_int(setting('memory_limit_mib', 'MEMORY_LIMIT_MIB')),
        memory_reservation_mib=_optional_int(setting('memory_reservation_mib', 'MEMORY_RESERVATION_MIB')),
        gpu_count=_optional_int(setting('gpu_count', 'GPU_COUNT')),
        desired_task_count=_optional_int(setting('desired_task_count', 'DESIRED_TASK_COUNT')),
        min_healthy_percent=_optional_int(setting('min_healthy_percent', 'MIN_HEALTHY_PERCENT')),
        max_healthy_percent=_optional_int(setting('max_healthy_percent', 'MAX_HEALTHY_PERCENT')),
        min_scaling_capacity=_optional_int(setting('min_scaling_capacity', 'MIN_SCALING_CAPACITY')),
        max_scaling_capacity=_optional_int(setting('max_scaling_capacity', 'MAX_SCALING_CAPACITY')),
        visible_messages_per_task=float(setting('visible_messages_per_task', 'VISIBLE_MESSAGES_PER_TASK', '100')),
        cpu_target_utilization=float(setting('cpu_target_utilization', 'CPU_TARGET_UTILIZATION', '50')),
        scale_in_cooldown=int(setting('scale_in_cooldown', 'SCALE_IN_COOLDOWN', '300')),
        scale_out_cooldown=int(setting('scale_out_cooldown', 'SCALE_OUT_COOLDOWN', '300')),
        enable_logging=enable_logging,
        log_group=setting('log_group', 'LOG_GROUP'),
        feature_flags=feature_flags,
        region=setting('region', 'AWS_REGION', 'us-east-1'),
        sso_profile=setting('sso_profile', 'SSO_PROFILE'),
    )
