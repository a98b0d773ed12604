"""
Cloud application topology components.

Each concern is encapsulated in its own ComponentResource that holds its
provider resources by composition. Use from the Pulumi entrypoint
(e.g. __main__.py) with config and output chaining:

- **CloudflareCdn**: public zone, TLS settings, proxied records; delegates
  subdomains to any DnsZone.
- **GcpDnsZone**: Cloud DNS zone for in-cloud hostnames; exposes name_servers.
- **PublicCluster**: GKE cluster, node pool, admin provider, cert-manager;
  ``new_containers`` creates a namespaced **Containers** group.
- **Containers**: wildcard certificate per namespace; ``new_service``
  creates a **StandardApp** (Envoy-sidecar Deployment + LoadBalancer Service).

The sidecar transform itself lives in ``components.sidecar`` and runs without
the Pulumi runtime.
"""

from components.app import StandardApp
from components.cloudflare import CloudflareCdn
from components.containers import Containers
from components.gcp import GcpDnsZone
from components.gke import PublicCluster
from components.interface import DnsZone

__all__ = [
    "CloudflareCdn",
    "Containers",
    "DnsZone",
    "GcpDnsZone",
    "PublicCluster",
    "StandardApp",
]
