from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional

# When enabled, the legacy desired count is dropped and ECS applies its own default
REMOVE_DEFAULT_DESIRED_COUNT = '@aws-cdk/aws-ecs-patterns:removeDefaultDesiredCount'

TRUE_VALUES = ('true', '1', 't', 'yes')


def _is_truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.lower() in TRUE_VALUES
    return bool(value)


class FeatureFlagContext:
    """
    Immutable set of feature flags passed explicitly into construction.

    Lookups are plain reads of a read-only mapping, so one context can be
    shared between unrelated constructions without locking.
    """

    def __init__(self, flags: Optional[Mapping[str, Any]] = None):
        self._flags = MappingProxyType(dict(flags or {}))

    @classmethod
    def from_keys(cls, keys: Iterable[str]) -> 'FeatureFlagContext':
        """Build a context where each of the given keys is enabled."""
        return cls({key.strip(): True for key in keys if key and key.strip()})

    def lookup(self, key: str) -> bool:
        return _is_truthy(self._flags.get(key, False))

    def __repr__(self):
        enabled = sorted(key for key in self._flags if self.lookup(key))
        return f"FeatureFlagContext(enabled={enabled})"
