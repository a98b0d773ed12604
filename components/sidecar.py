"""
Envoy sidecar injection and service exposure. Testable without Pulumi runtime.

A workload is a Kubernetes DeploymentSpec in manifest form (camelCase keys,
plain dicts and lists). The transforms here turn it into a TLS-terminated,
sidecar-fronted workload:

- ``rewrite_domains`` points the Envoy virtual host at the app's hostnames.
- ``inject`` adds the ``envoy`` container, its ``envoy-conf`` and ``cert``
  volumes, and pins the pod labels/selector to the app labels.
- ``plan_exposure`` derives the Service selector and ports from the result.

Every function returns a new value; inputs are never mutated.
"""

import copy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Sequence

import yaml

from components.errors import (
    ConfigShapeError,
    InvariantViolationError,
    NameCollisionError,
)

DEFAULT_TEMPLATE_PATH = Path(__file__).with_name("sidecar.yaml")

CONFIG_MAP_NAME = "sidecar"
CONFIG_KEY = "sidecar.yaml"
CA_KEY = "cloudflare-ca.pem"

ENVOY_CONTAINER = "envoy"
ENVOY_CONF_VOLUME = "envoy-conf"
CERT_VOLUME = "cert"
RESERVED_NAMES = frozenset({ENVOY_CONTAINER, ENVOY_CONF_VOLUME, CERT_VOLUME})

ENVOY_IMAGE = "envoyproxy/envoy:v1.12.2"
ENVOY_PORT = 443
ENVOY_PROTOCOL = "TCP"


def load_sidecar_template(
    path: str | Path | None = None,
) -> dict[str, Any]:
    """
    Load the Envoy bootstrap document used as the sidecar config template.

    Args:
        path: YAML file to read; defaults to the sidecar.yaml shipped with
            this package.

    Raises:
        ConfigShapeError: The file does not hold a YAML mapping.
    """
    with open(path or DEFAULT_TEMPLATE_PATH, encoding="utf-8") as f:
        document = yaml.safe_load(f)
    if not isinstance(document, dict):
        raise ConfigShapeError(f"sidecar template {path or DEFAULT_TEMPLATE_PATH} is not a mapping")
    return document


def _pick(
    items: Any,
    name: str | None,
    what: str,
) -> dict[str, Any]:
    if not isinstance(items, list) or not items:
        raise ConfigShapeError(f"sidecar template has no {what}")
    if name is None:
        item = items[0]
    else:
        item = next((i for i in items if isinstance(i, dict) and i.get("name") == name), None)
        if item is None:
            raise ConfigShapeError(f"sidecar template has no {what} named {name!r}")
    if not isinstance(item, dict):
        raise ConfigShapeError(f"sidecar template {what} is not a mapping: {item!r}")
    return item


def _key(
    node: Any,
    key: str,
    what: str,
) -> Any:
    if not isinstance(node, dict) or key not in node:
        raise ConfigShapeError(f"sidecar template {what} has no {key!r}")
    return node[key]


def _virtual_host(
    document: dict[str, Any],
    listener_name: str | None,
    virtual_host_name: str | None,
) -> dict[str, Any]:
    listeners = _key(_key(document, "static_resources", "document"), "listeners", "static_resources")
    listener = _pick(listeners, listener_name, "listener")
    chain = _pick(_key(listener, "filter_chains", "listener"), None, "filter chain")
    hcm = _pick(_key(chain, "filters", "filter chain"), None, "filter")
    # Older bootstraps use "config", newer ones "typed_config".
    config_key = "config" if "config" in hcm else "typed_config"
    filter_config = _key(hcm, config_key, f"filter {hcm.get('name')!r}")
    route_config = _key(filter_config, "route_config", "filter config")
    return _pick(
        _key(route_config, "virtual_hosts", "route_config"),
        virtual_host_name,
        "virtual host",
    )


def rewrite_domains(
    template: Mapping[str, Any],
    domains: Sequence[str],
    listener_name: str | None = None,
    virtual_host_name: str | None = None,
) -> dict[str, Any]:
    """
    Return a copy of ``template`` whose target virtual host serves ``domains``.

    The target is found at
    ``static_resources.listeners[*].filter_chains[0].filters[0].config
    .route_config.virtual_hosts[*].domains``. Listener and virtual host are
    looked up by name when given; otherwise the first of each is used, which
    only suits single-listener, single-host templates. Nothing else in the
    document changes and re-applying with the same domains is a no-op.

    Raises:
        ValueError: ``domains`` is empty or a bare string.
        ConfigShapeError: A level of the path is missing or empty, or a named
            listener/virtual host does not exist, or an entry on the path is
            not a mapping.
    """
    if isinstance(domains, str):
        raise ValueError(f"domains must be a sequence of names, not the string {domains!r}")
    if not domains:
        raise ValueError("domains must not be empty")
    document = copy.deepcopy(dict(template))
    host = _virtual_host(document, listener_name, virtual_host_name)
    host["domains"] = list(domains)
    return document


def render_sidecar_config(
    template: Mapping[str, Any],
    hostname: str,
    alias: str,
) -> str:
    """Rewrite the template for ``hostname`` and ``alias`` and dump it as YAML."""
    return yaml.safe_dump(rewrite_domains(template, [hostname, alias]))


def sidecar_config_data(
    template: Mapping[str, Any],
    hostname: str,
    alias: str,
    ca_pem: str,
) -> dict[str, str]:
    """
    Build the data of the ``sidecar`` ConfigMap.

    Holds the rewritten Envoy config and the CA bundle Envoy uses to verify
    the CDN's client certificates (mounted together under /etc/envoy).
    """
    return {
        CONFIG_KEY: render_sidecar_config(template, hostname, alias),
        CA_KEY: ca_pem,
    }


def envoy_container() -> dict[str, Any]:
    return {
        "name": ENVOY_CONTAINER,
        "image": ENVOY_IMAGE,
        "command": ["/usr/local/bin/envoy"],
        "args": [
            "--config-path /etc/envoy/sidecar.yaml",
            "--mode serve",
            "-l debug",
        ],
        "ports": [{"containerPort": ENVOY_PORT, "protocol": ENVOY_PROTOCOL}],
        "resources": {
            "limits": {"cpu": "200m", "memory": "128Mi"},
            "requests": {"cpu": "100m", "memory": "64Mi"},
        },
        "volumeMounts": [
            {"name": ENVOY_CONF_VOLUME, "mountPath": "/etc/envoy"},
            {"name": CERT_VOLUME, "mountPath": "/var/run/certs"},
        ],
    }


def validate_pod_spec(
    pod: Mapping[str, Any],
) -> None:
    """
    Check the pod-level invariants of a workload.

    Container names and volume names must be unique and every volume mount
    must name an existing volume.

    Raises:
        InvariantViolationError: An invariant does not hold.
    """
    containers = pod.get("containers") or []
    volumes = pod.get("volumes") or []
    for kind, items in (("container", containers), ("volume", volumes)):
        names = [item.get("name") for item in items]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise InvariantViolationError(f"duplicate {kind} names: {duplicates}")
    volume_names = {v.get("name") for v in volumes}
    for container in containers:
        for mount in container.get("volumeMounts") or []:
            if mount.get("name") not in volume_names:
                raise InvariantViolationError(
                    f"container {container.get('name')!r} mounts unknown volume {mount.get('name')!r}"
                )


def inject(
    spec: Mapping[str, Any],
    name: str,
    app_labels: Mapping[str, str],
    config_map_name: str,
    cert_secret_name: str,
) -> dict[str, Any]:
    """
    Return a copy of a DeploymentSpec fronted by an Envoy sidecar.

    The copy differs from ``spec`` only in that:

    - ``selector.matchLabels`` and the pod template labels are exactly
      ``app_labels`` (replaced, not merged);
    - an ``envoy`` container listening on 443/TCP is appended;
    - volumes ``envoy-conf`` (ConfigMap ``config_map_name``) and ``cert``
      (Secret ``cert_secret_name``) are appended.

    Caller containers and volumes are kept as given, in order.

    Args:
        spec: DeploymentSpec mapping with a ``template`` entry.
        name: Workload name, used in error messages.
        app_labels: Labels identifying the workload's pods.
        config_map_name: ConfigMap holding the Envoy config and CA bundle.
        cert_secret_name: Secret holding the TLS key pair.

    Raises:
        InvariantViolationError: ``name`` is empty, the template is missing,
            or the result breaks a pod invariant.
        NameCollisionError: The workload already uses ``envoy``,
            ``envoy-conf`` or ``cert`` as a container or volume name.
    """
    if not name:
        raise InvariantViolationError("workload name must not be empty")
    if not isinstance(spec.get("template"), Mapping):
        raise InvariantViolationError(f"workload {name!r} has no pod template")

    augmented = copy.deepcopy(dict(spec))
    template = augmented["template"]
    # Null lists count as empty.
    pod = template["spec"] = dict(template.get("spec") or {})
    containers = pod["containers"] = list(pod.get("containers") or [])
    volumes = pod["volumes"] = list(pod.get("volumes") or [])

    taken = {c.get("name") for c in containers} | {v.get("name") for v in volumes}
    collisions = sorted(RESERVED_NAMES & taken)
    if collisions:
        raise NameCollisionError(f"workload {name!r} already defines {collisions}")

    labels = dict(app_labels)
    augmented["selector"] = {"matchLabels": labels}
    template["metadata"] = {**(template.get("metadata") or {}), "labels": dict(labels)}

    containers.append(envoy_container())
    volumes.append({"name": ENVOY_CONF_VOLUME, "configMap": {"name": config_map_name}})
    volumes.append({"name": CERT_VOLUME, "secret": {"secretName": cert_secret_name}})

    validate_pod_spec(pod)
    return augmented


@dataclass(frozen=True)
class ServicePort:
    name: str
    port: int
    protocol: str = ENVOY_PROTOCOL


@dataclass(frozen=True)
class ExposureDescriptor:
    """Selector and ports routing external traffic to a workload's sidecar."""

    selector: dict[str, str] = field(default_factory=dict)
    ports: tuple[ServicePort, ...] = ()

    def service_spec(
        self,
        service_type: str = "LoadBalancer",
    ) -> dict[str, Any]:
        """Return a ServiceSpec mapping for this descriptor."""
        return {
            "type": service_type,
            "ports": [
                {"name": p.name, "port": p.port, "protocol": p.protocol}
                for p in self.ports
            ],
            "selector": dict(self.selector),
        }


def plan_exposure(
    augmented_spec: Mapping[str, Any],
) -> ExposureDescriptor:
    """
    Derive the exposure of a workload that went through ``inject``.

    Raises:
        InvariantViolationError: The workload has no ``envoy`` container.
    """
    template = augmented_spec.get("template") or {}
    containers = (template.get("spec") or {}).get("containers") or []
    envoy = next((c for c in containers if c.get("name") == ENVOY_CONTAINER), None)
    if envoy is None:
        raise InvariantViolationError("workload has no envoy sidecar; run inject() first")

    labels = (template.get("metadata") or {}).get("labels") or {}
    ports = tuple(
        ServicePort(
            name=ENVOY_CONTAINER,
            port=p["containerPort"],
            protocol=p.get("protocol", ENVOY_PROTOCOL),
        )
        for p in envoy.get("ports") or []
    )
    return ExposureDescriptor(selector=dict(labels), ports=ports)
