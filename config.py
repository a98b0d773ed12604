"""
Stack configuration loaded from pulumi.Config().

Provides a typed, immutable view of stack settings read from Pulumi config
(e.g. Pulumi.<stack>.yaml or pulumi config set). ``domain``,
``lets_encrypt_email`` and ``cloudflare_account_id`` are required; the other
keys fall back to defaults. GCP project and credentials are read by the
provider from the ``gcp:`` namespace. Used by __main__.main() to place the
cluster, name the namespace and locate the CDN origin-pull CA.
"""

from dataclasses import dataclass
from typing import Any, Callable

import pulumi


def _require_str(config: pulumi.Config, key: str) -> str:
    return config.require(key)


def _optional(default: Any) -> Callable[[pulumi.Config, str], Any]:
    """Return a parser reading ``key`` as the type of ``default``, or ``default`` if unset."""

    def parse(config: pulumi.Config, key: str) -> Any:
        raw = config.get(key)
        if raw is None or raw == "":
            return default
        return type(default)(raw)

    return parse


# (key, parser); parser receives (config, key) and returns value.
_CONFIG_SPEC: list[tuple[str, Callable[[pulumi.Config, str], Any]]] = [
    ("domain", _require_str),
    ("lets_encrypt_email", _require_str),
    ("cloudflare_account_id", _require_str),
    ("cluster_zone", _optional("us-west2-b")),
    ("cluster_version", _optional("1.27")),
    ("node_count", _optional(3)),
    ("machine_type", _optional("n1-standard-1")),
    ("namespace", _optional("my-namespace")),
    ("cert_manager_version", _optional("v1.14.4")),
    ("origin_pull_ca_path", _optional("origin-pull-ca.pem")),
]


@dataclass(frozen=True)
class StackConfig:
    """
    Stack configuration from Pulumi config.

    Attributes:
        domain: Public apex domain served through Cloudflare (required).
        lets_encrypt_email: Let's Encrypt account e-mail (required).
        cloudflare_account_id: Cloudflare account owning the zone (required).
        cluster_zone: GCP zone of the GKE cluster.
        cluster_version: Minimum GKE master version.
        node_count: Initial node count of the node pool.
        machine_type: Machine type of the pool's nodes.
        namespace: Kubernetes namespace for the applications.
        cert_manager_version: cert-manager release installed in the cluster.
        origin_pull_ca_path: PEM file with Cloudflare's origin-pull CA.
    """

    domain: str
    lets_encrypt_email: str
    cloudflare_account_id: str
    cluster_zone: str
    cluster_version: str
    node_count: int
    machine_type: str
    namespace: str
    cert_manager_version: str
    origin_pull_ca_path: str

    @classmethod
    def from_pulumi_config(cls, config: pulumi.Config) -> "StackConfig":
        """
        Build StackConfig from pulumi.Config(). Keys are parsed per _CONFIG_SPEC.
        """
        kwargs = {key: parser(config, key) for key, parser in _CONFIG_SPEC}
        return cls(**kwargs)

    @property
    def gcp_subdomain(self) -> str:
        """Subdomain served by Cloud DNS for in-cloud hostnames."""
        return f"gcp.internal.{self.domain}"

    def read_origin_pull_ca(self) -> str:
        """Return the origin-pull CA bundle verbatim."""
        with open(self.origin_pull_ca_path, encoding="utf-8") as f:
            return f.read()
