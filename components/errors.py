"""
Errors raised while building the topology.

All of them are structural: they are detected by the pure transforms (or
inside an ``Output.apply`` callback) before anything reaches the provider,
and none is retried. Raising one aborts the Pulumi run; resources already
registered are left to the engine.
"""


class TopologyError(Exception):
    """Base class for every error raised by this project."""


class ConfigShapeError(TopologyError):
    """The sidecar config document lacks the expected nesting."""


class NameCollisionError(TopologyError):
    """A workload already uses a container or volume name reserved for the sidecar."""


class InvariantViolationError(TopologyError):
    """A workload spec is not in the shape a transform requires."""


class DeferredResolutionError(TopologyError):
    """A deferred value resolved without a value."""
