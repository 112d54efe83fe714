import logging
from typing import NamedTuple, Optional, Set, Tuple

from queue_processing.errors import InvalidScalingRange, MissingIdentity
from queue_processing.platform import (Cooldowns, Platform, QueueIdentity, ScalableTargetHandle,
                                       ServiceHandle)
from queue_processing.units import ResolvedUnit

QUEUE_DEPTH_TRIGGER = 'QueueMessagesVisibleScaling'
CPU_TRIGGER = 'CpuScaling'


def grant_identity(unit: ResolvedUnit, service_name: str) -> str:
    """
    Return the role queue access is granted to: the task role, else the execution role.

    Raises:
        MissingIdentity: If the unit has neither role
    """
    identity = unit.task_role_arn or unit.execution_role_arn
    if not identity:
        raise MissingIdentity(f"Service {service_name} has no task role to grant queue access to")
    return identity


class ScalingKnobs(NamedTuple):
    """Bounds and targets for the service's scalable target."""
    min_capacity: int
    max_capacity: int
    # Visible messages per running task the service is scaled to hold
    visible_messages_per_task: float = 100.0
    cpu_target_utilization_percent: float = 50.0
    scale_in_cooldown: Optional[int] = 300
    scale_out_cooldown: Optional[int] = 300

    @property
    def cooldowns(self) -> Cooldowns:
        return Cooldowns(scale_in=self.scale_in_cooldown, scale_out=self.scale_out_cooldown)

    def validate(self) -> None:
        """
        Check the knobs describe a usable scalable target.

        Raises:
            InvalidScalingRange: If the bounds are inverted or negative, or a target is out of range
        """
        if self.min_capacity < 0:
            raise InvalidScalingRange(f"minCapacity must not be negative, got {self.min_capacity}")
        if self.min_capacity > self.max_capacity:
            raise InvalidScalingRange(
                f"minCapacity ({self.min_capacity}) must not be greater than maxCapacity ({self.max_capacity})")
        if self.visible_messages_per_task <= 0:
            raise InvalidScalingRange(
                f"Visible messages per task must be positive, got {self.visible_messages_per_task}")
        if not 0 < self.cpu_target_utilization_percent <= 100:
            raise InvalidScalingRange(
                f"CPU target utilization must be in (0, 100], got {self.cpu_target_utilization_percent}")
        for name, value in (('scale-in', self.scale_in_cooldown), ('scale-out', self.scale_out_cooldown)):
            if value is not None and value < 0:
                raise InvalidScalingRange(f"The {name} cooldown must not be negative, got {value}")


class Trigger(NamedTuple):
    name: str
    metric: str
    target_value: float
    cooldowns: Cooldowns


class ScalingTarget(NamedTuple):
    handle: ScalableTargetHandle
    bounds: Tuple[int, int]
    triggers: Tuple[Trigger, ...]

    def trigger(self, name: str) -> Optional[Trigger]:
        return next((t for t in self.triggers if t.name == name), None)


class ScalingPolicyComposer:
    """
    Attaches queue-depth and CPU based scaling to a created service and grants
    its tasks access to the queue.

    How the two triggers are reconciled at runtime is left to the platform's
    autoscaler; this class only registers them.
    """

    def __init__(self, platform: Platform):
        self._platform = platform
        self._granted: Set[Tuple[str, str]] = set()

    def attach(self, service: ServiceHandle, queue: QueueIdentity, knobs: ScalingKnobs) -> ScalingTarget:
        """
        Register a scalable target on the service with one queue-depth and one CPU trigger.

        Args:
            service: Handle of the created service
            queue: Queue the service consumes
            knobs: Scaling bounds, targets and cooldowns

        Returns:
            ScalingTarget: The registered target and its two triggers

        Raises:
            InvalidScalingRange: If the knobs are invalid; nothing is registered in that case
        """
        knobs.validate()

        bounds = (knobs.min_capacity, knobs.max_capacity)
        cooldowns = knobs.cooldowns

        handle = self._platform.register_scalable_target(service, bounds)
        logging.info(f"Registered scalable target for {service.resource_id} with bounds {bounds}")

        self._platform.add_queue_depth_trigger(handle, queue, knobs.visible_messages_per_task, cooldowns)
        self._platform.add_cpu_trigger(handle, knobs.cpu_target_utilization_percent, cooldowns)
        logging.info(f"Attached queue depth trigger ({knobs.visible_messages_per_task} visible messages per task "
                     f"on {queue.name}) and CPU trigger ({knobs.cpu_target_utilization_percent}%)")

        return ScalingTarget(
            handle=handle,
            bounds=bounds,
            triggers=(
                Trigger(QUEUE_DEPTH_TRIGGER, 'ApproximateNumberOfMessagesVisible/RunningTaskCount',
                        knobs.visible_messages_per_task, cooldowns),
                Trigger(CPU_TRIGGER, 'ECSServiceAverageCPUUtilization',
                        knobs.cpu_target_utilization_percent, cooldowns),
            ),
        )

    def grant(self, service: ServiceHandle, queue: QueueIdentity) -> bool:
        """
        Grant the service's task role permission to consume the queue.

        The execution role is used when the task definition has no task role.
        Repeated grants for the same role and queue are skipped.

        Returns:
            bool: True if the platform was called, False if the grant already happened

        Raises:
            MissingIdentity: If the task definition has neither a task nor an execution role
        """
        identity = grant_identity(service.unit, service.service_name)

        key = (identity, queue.arn)
        if key in self._granted:
            logging.debug(f"Queue consume permissions on {queue.arn} already granted to {identity}")
            return False

        self._platform.grant_queue_consume_permissions(identity, queue)
        self._granted.add(key)
        logging.info(f"Granted {identity} permission to consume {queue.arn}")
        return True
