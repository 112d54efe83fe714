from abc import ABC, abstractmethod
from typing import NamedTuple, Optional, Tuple

from queue_processing.sizing import ServiceSizingParams
from queue_processing.units import ResolvedUnit

SERVICE_NAMESPACE = 'ecs'
SCALABLE_DIMENSION = 'ecs:service:DesiredCount'


class QueueIdentity(NamedTuple):
    url: str
    arn: str
    name: str


class Cooldowns(NamedTuple):
    """Seconds to wait after a scaling activity, None leaves the platform default."""
    scale_in: Optional[int] = None
    scale_out: Optional[int] = None


class ServiceHandle(NamedTuple):
    cluster: str
    service_name: str
    service_arn: Optional[str]
    unit: ResolvedUnit

    @property
    def resource_id(self) -> str:
        return f"service/{self.cluster}/{self.service_name}"


class ScalableTargetHandle(NamedTuple):
    service: ServiceHandle
    bounds: Tuple[int, int]
    service_namespace: str = SERVICE_NAMESPACE
    scalable_dimension: str = SCALABLE_DIMENSION

    @property
    def resource_id(self) -> str:
        return self.service.resource_id


class Platform(ABC):
    """
    Calls made into the orchestration platform while a service is constructed.

    Implementations own every side effect; the construction logic only decides
    which calls are made and with what arguments.
    """

    @abstractmethod
    def create_service(self, cluster: str, unit: ResolvedUnit, sizing: ServiceSizingParams) -> ServiceHandle:
        """Create the service running the resolved unit; raises MissingRunnableUnit if it is empty."""

    @abstractmethod
    def register_scalable_target(self, service: ServiceHandle, bounds: Tuple[int, int]) -> ScalableTargetHandle:
        pass

    @abstractmethod
    def add_queue_depth_trigger(self, target: ScalableTargetHandle, queue: QueueIdentity, ratio: float,
                                cooldowns: Cooldowns) -> None:
        pass

    @abstractmethod
    def add_cpu_trigger(self, target: ScalableTargetHandle, percent: float, cooldowns: Cooldowns) -> None:
        pass

    @abstractmethod
    def grant_queue_consume_permissions(self, identity: str, queue: QueueIdentity) -> None:
        """Allow the identity to consume messages from the queue and publish metrics."""
