import logging
from typing import NamedTuple, Optional, Tuple

from queue_processing.errors import InvalidScalingRange
from queue_processing.flags import REMOVE_DEFAULT_DESIRED_COUNT, FeatureFlagContext

DEFAULT_DESIRED_COUNT = 1


class CapacityProviderStrategy(NamedTuple):
    capacity_provider: str
    weight: int = 1
    base: int = 0


class DeploymentCircuitBreaker(NamedTuple):
    enable: bool = True
    rollback: bool = False


class ServiceSizingParams(NamedTuple):
    """Service-level settings consumed once when the ECS service is created."""
    service_name: Optional[str] = None
    # Deprecated, superseded by the platform default when the flag is set
    desired_count: Optional[int] = None
    min_healthy_percent: Optional[int] = None
    max_healthy_percent: Optional[int] = None
    # ECS, CODE_DEPLOY or EXTERNAL
    deployment_controller: Optional[str] = None
    circuit_breaker: Optional[DeploymentCircuitBreaker] = None
    # SERVICE or TASK_DEFINITION
    propagate_tags: Optional[str] = None
    enable_ecs_managed_tags: bool = False
    capacity_provider_strategies: Tuple[CapacityProviderStrategy, ...] = ()


def resolve_desired_count(legacy_desired_count: Optional[int],
                          flags: FeatureFlagContext) -> Optional[int]:
    """
    Decide which desired count the service is created with.

    Args:
        legacy_desired_count: The deprecated desired count, possibly None
        flags: Feature flags for this construction

    Returns:
        None when the removal flag is set, so ECS applies its own default,
        otherwise the legacy value unchanged
    """
    if flags.lookup(REMOVE_DEFAULT_DESIRED_COUNT):
        return None
    return legacy_desired_count


def derive_capacity_bounds(desired_task_count: Optional[int], min_scaling_capacity: Optional[int],
                           max_scaling_capacity: Optional[int],
                           flags: FeatureFlagContext) -> Tuple[Optional[int], int, int]:
    """
    Fill in the legacy desired count and the scaling bounds left unset by the caller.

    Without the removal flag the desired count defaults to 1, the minimum capacity
    to the desired count and the maximum capacity to twice the desired count. With
    the flag, the desired count is left as given and the minimum defaults to 1.

    Returns:
        tuple: (legacy desired count, min capacity, max capacity)

    Raises:
        InvalidScalingRange: If the maximum is not positive, or the desired count is 0 and no
        maximum is set
    """
    if max_scaling_capacity is not None and max_scaling_capacity <= 0:
        raise InvalidScalingRange(f"maxScalingCapacity must be greater than 0, got {max_scaling_capacity}")

    if flags.lookup(REMOVE_DEFAULT_DESIRED_COUNT):
        desired_count = desired_task_count
        min_capacity = min_scaling_capacity if min_scaling_capacity is not None else 1
        fallback_max = 2 * desired_count if desired_count is not None else 2
    else:
        if desired_task_count is not None:
            logging.warning(f"desiredTaskCount ({desired_task_count}) is deprecated, the service is created "
                            f"with it until {REMOVE_DEFAULT_DESIRED_COUNT} is enabled")
        desired_count = desired_task_count if desired_task_count is not None else DEFAULT_DESIRED_COUNT
        min_capacity = min_scaling_capacity if min_scaling_capacity is not None else desired_count
        fallback_max = 2 * desired_count

    max_capacity = max_scaling_capacity if max_scaling_capacity is not None else fallback_max
    if max_capacity <= 0:
        raise InvalidScalingRange('maxScalingCapacity must be set and greater than 0 if desiredCount is 0')

    return desired_count, min_capacity, max_capacity
