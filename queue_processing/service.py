from typing import Any, Dict, Optional

from queue_processing.flags import FeatureFlagContext
from queue_processing.platform import Platform, QueueIdentity
from queue_processing.scaling import ScalingKnobs, ScalingPolicyComposer, grant_identity
from queue_processing.sizing import ServiceSizingParams, resolve_desired_count
from queue_processing.units import (ImageBundle, LogSink, PrebuiltUnit, ResourceHints, RunnableUnitSpec,
                                    resolve)


class QueueProcessingService:
    """
    An ECS service consuming an SQS queue, scaled on queue depth and CPU utilization.

    Construction is a single pass: the task definition is resolved, the legacy
    desired count reconciled, the scaling knobs validated and the role to grant
    queue access to checked before the platform is asked to create anything.
    """

    def __init__(self, platform: Platform, cluster: str, queue: QueueIdentity, knobs: ScalingKnobs,
                 task_definition: Optional[PrebuiltUnit] = None,
                 task_image_options: Optional[ImageBundle] = None,
                 resource_hints: Optional[ResourceHints] = None,
                 sizing: Optional[ServiceSizingParams] = None,
                 log_sink: Optional[LogSink] = None,
                 flags: Optional[FeatureFlagContext] = None):
        sizing = sizing or ServiceSizingParams()
        flags = flags or FeatureFlagContext()
        self.queue = queue

        spec = RunnableUnitSpec(prebuilt=task_definition, image_bundle=task_image_options)
        self.unit = resolve(spec, resource_hints, log_sink)

        sizing = sizing._replace(desired_count=resolve_desired_count(sizing.desired_count, flags))

        knobs.validate()
        # An empty unit is rejected by the platform itself
        if not self.unit.is_empty:
            grant_identity(self.unit, sizing.service_name or cluster)

        self.service = platform.create_service(cluster, self.unit, sizing)

        composer = ScalingPolicyComposer(platform)
        self.scaling_target = composer.attach(self.service, queue, knobs)
        composer.grant(self.service, queue)

    @property
    def task_definition(self):
        return self.unit.task_definition

    def outputs(self) -> Dict[str, Any]:
        """Summary of what was created, returned to the caller of the construction."""
        return {
            'service_name': self.service.service_name,
            'service_arn': self.service.service_arn,
            'cluster': self.service.cluster,
            'queue_url': self.queue.url,
            'queue_arn': self.queue.arn,
            'min_capacity': self.scaling_target.bounds[0],
            'max_capacity': self.scaling_target.bounds[1],
            'triggers': [trigger.name for trigger in self.scaling_target.triggers],
        }
