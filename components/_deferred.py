"""
Combinators over deferred values (``pulumi.Output``).

Values such as a certificate's secret name or a Service's external IP are
only known once the engine has created the underlying resource. These
helpers wrap ``Output.all``/``Output.apply`` so that a value which resolves
to nothing fails the run with DeferredResolutionError instead of reaching a
consumer as ``None``.
"""

from typing import Any, Callable, Sequence

import pulumi

from components.errors import DeferredResolutionError


def resolve_all(
    values: Sequence[Any],
    what: str,
) -> list[Any]:
    """
    Return ``values`` as a list, failing if any of them is missing.

    Raises:
        DeferredResolutionError: A value is None.
    """
    missing = [i for i, value in enumerate(values) if value is None]
    if missing:
        raise DeferredResolutionError(f"{what}: inputs {missing} resolved without a value")
    return list(values)


def combine(
    *inputs: pulumi.Input[Any],
    fn: Callable[..., Any],
    what: str,
) -> pulumi.Output[Any]:
    """Wait for every input, then call ``fn`` with the resolved values."""
    return pulumi.Output.all(*inputs).apply(lambda values: fn(*resolve_all(values, what)))


def map_value(
    value: pulumi.Input[Any],
    fn: Callable[[Any], Any],
    what: str,
) -> pulumi.Output[Any]:
    return pulumi.Output.from_input(value).apply(lambda v: fn(resolve_all([v], what)[0]))


def load_balancer_ip(
    status: Any,
) -> str:
    """
    Read ``status.load_balancer.ingress[0].ip`` from a Service status.

    Raises:
        DeferredResolutionError: The load balancer has no IP yet.
    """
    load_balancer = getattr(status, "load_balancer", None)
    ingress = getattr(load_balancer, "ingress", None) or []
    ip = getattr(ingress[0], "ip", None) if ingress else None
    if not ip:
        raise DeferredResolutionError("service load balancer has no ingress IP")
    return ip
