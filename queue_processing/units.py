import logging
from typing import Dict, List, NamedTuple, Optional, Tuple, Union

from queue_processing.errors import ConfigurationConflict

DEFAULT_CONTAINER_NAME = 'QueueProcessingContainer'


class PrebuiltUnit(NamedTuple):
    """Reference to a task definition that already exists."""
    task_definition_arn: str
    execution_role_arn: Optional[str] = None
    task_role_arn: Optional[str] = None


class ImageBundle(NamedTuple):
    """Declarative description of the single container a task should run."""
    image: str
    execution_role_arn: Optional[str] = None
    task_role_arn: Optional[str] = None
    family: Optional[str] = None
    container_name: Optional[str] = None
    environment: Optional[Dict[str, str]] = None
    secrets: Optional[Dict[str, str]] = None
    docker_labels: Optional[Dict[str, str]] = None
    command: Optional[List[str]] = None


class ResourceHints(NamedTuple):
    cpu: Optional[int] = None
    memory_limit_mib: Optional[int] = None
    memory_reservation_mib: Optional[int] = None
    gpu_count: Optional[int] = None


class LogSink(NamedTuple):
    """Log driver built by the enclosing system and shared with the container."""
    driver: str = 'awslogs'
    options: Optional[Dict[str, str]] = None

    @classmethod
    def aws_logs(cls, stream_prefix: str, log_group: Optional[str] = None,
                 region: Optional[str] = None) -> 'LogSink':
        options = {'awslogs-stream-prefix': stream_prefix}
        if log_group:
            options['awslogs-group'] = log_group
        if region:
            options['awslogs-region'] = region
        return cls(driver='awslogs', options=options)

    def to_log_configuration(self) -> Dict:
        return {'logDriver': self.driver, 'options': dict(self.options or {})}


class RunnableUnitSpec(NamedTuple):
    """
    Input for the resolver: at most one of the two shapes should be set.

    Both shapes set and neither set are separate states; see resolve().
    """
    prebuilt: Optional[PrebuiltUnit] = None
    image_bundle: Optional[ImageBundle] = None


class ContainerSpec(NamedTuple):
    name: str
    image: str
    cpu: Optional[int] = None
    memory_limit_mib: Optional[int] = None
    memory_reservation_mib: Optional[int] = None
    gpu_count: Optional[int] = None
    environment: Optional[Dict[str, str]] = None
    secrets: Optional[Dict[str, str]] = None
    log_sink: Optional[LogSink] = None
    docker_labels: Optional[Dict[str, str]] = None
    command: Optional[List[str]] = None

    def to_container_definition(self) -> Dict:
        """Render the container in the shape ECS RegisterTaskDefinition expects."""
        definition = {
            'name': self.name,
            'image': self.image,
            'essential': True,
            'environment': [{'name': k, 'value': v} for k, v in sorted((self.environment or {}).items())],
            'secrets': [{'name': k, 'valueFrom': v} for k, v in sorted((self.secrets or {}).items())],
        }
        if self.cpu is not None:
            definition['cpu'] = self.cpu
        if self.memory_limit_mib is not None:
            definition['memory'] = self.memory_limit_mib
        if self.memory_reservation_mib is not None:
            definition['memoryReservation'] = self.memory_reservation_mib
        if self.gpu_count:
            definition['resourceRequirements'] = [{'type': 'GPU', 'value': str(self.gpu_count)}]
        if self.log_sink is not None:
            definition['logConfiguration'] = self.log_sink.to_log_configuration()
        if self.docker_labels:
            definition['dockerLabels'] = dict(self.docker_labels)
        if self.command:
            definition['command'] = list(self.command)
        return definition


class TaskDefinition:
    """A task definition synthesized in memory, registered later by the platform."""

    def __init__(self, execution_role_arn: Optional[str] = None, task_role_arn: Optional[str] = None,
                 family: Optional[str] = None):
        self.execution_role_arn = execution_role_arn
        self.task_role_arn = task_role_arn
        self.family = family
        self._containers: List[ContainerSpec] = []

    @property
    def containers(self) -> Tuple[ContainerSpec, ...]:
        return tuple(self._containers)

    def add_container(self, container: ContainerSpec) -> ContainerSpec:
        if any(existing.name == container.name for existing in self._containers):
            raise ConfigurationConflict(f"Container {container.name} is already part of this task definition")
        self._containers.append(container)
        return container

    def __repr__(self):
        return (f"TaskDefinition(family={self.family!r}, "
                f"containers={[c.name for c in self._containers]!r})")


class ResolvedUnit(NamedTuple):
    """The task definition a service will run, with the container synthesized for it, if any."""
    task_definition: Optional[Union[PrebuiltUnit, TaskDefinition]] = None
    container: Optional[ContainerSpec] = None

    @property
    def is_empty(self) -> bool:
        return self.task_definition is None

    @property
    def containers(self) -> Tuple[ContainerSpec, ...]:
        return (self.container,) if self.container is not None else ()

    @property
    def task_role_arn(self) -> Optional[str]:
        return getattr(self.task_definition, 'task_role_arn', None)

    @property
    def execution_role_arn(self) -> Optional[str]:
        return getattr(self.task_definition, 'execution_role_arn', None)


def check_exclusive(spec: RunnableUnitSpec) -> None:
    """Raise ConfigurationConflict when both input shapes are present."""
    if spec.prebuilt is not None and spec.image_bundle is not None:
        raise ConfigurationConflict('specify exactly one of taskDefinition or taskImageOptions')


def resolve(spec: RunnableUnitSpec, resource_hints: Optional[ResourceHints] = None,
            log_sink: Optional[LogSink] = None) -> ResolvedUnit:
    """
    Resolve the task definition a queue processing service should run.

    Args:
        spec: Pre-built task definition or image bundle, not both
        resource_hints: Container cpu/memory/gpu settings, only used for an image bundle
        log_sink: Log driver already built by the caller, injected into the container

    Returns:
        ResolvedUnit: The pre-built unit unchanged, a new single-container unit, or an
        empty unit when neither shape was supplied

    Raises:
        ConfigurationConflict: If both a pre-built unit and an image bundle are given
    """
    check_exclusive(spec)

    if spec.prebuilt is not None:
        logging.debug(f"Using pre-built task definition {spec.prebuilt.task_definition_arn}")
        return ResolvedUnit(task_definition=spec.prebuilt)

    if spec.image_bundle is None:
        # ECS rejects the service later if it really has nothing to run
        return ResolvedUnit()

    bundle = spec.image_bundle
    hints = resource_hints or ResourceHints()

    task_definition = TaskDefinition(
        execution_role_arn=bundle.execution_role_arn,
        task_role_arn=bundle.task_role_arn,
        family=bundle.family,
    )
    container = task_definition.add_container(ContainerSpec(
        name=bundle.container_name or DEFAULT_CONTAINER_NAME,
        image=bundle.image,
        cpu=hints.cpu,
        memory_limit_mib=hints.memory_limit_mib,
        memory_reservation_mib=hints.memory_reservation_mib,
        gpu_count=hints.gpu_count,
        environment=dict(bundle.environment or {}),
        secrets=dict(bundle.secrets or {}),
        log_sink=log_sink,
        docker_labels=dict(bundle.docker_labels or {}),
        command=list(bundle.command) if bundle.command else None,
    ))

    logging.debug(f"Synthesized task definition with container {container.name} for image {bundle.image}")
    return ResolvedUnit(task_definition=task_definition, container=container)
