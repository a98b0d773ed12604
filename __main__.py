"""
Cloud application topology - IaC entrypoint.

Wires the components using Pulumi config and output chaining:

- **Cloudflare**: zone for ``domain``; the public app host is a proxied CNAME
  to the app's internal hostname.
- **GCP DNS**: zone for ``gcp.internal.<domain>``, delegated from Cloudflare.
  The app's internal hostname gets an A record once its load balancer IP is
  known.
- **GKE**: cluster in ``cluster_zone`` with a namespace whose apps share a
  wildcard certificate for ``<namespace>.gcp.internal.<domain>``.
- **App**: a sample nginx Deployment fronted by the Envoy sidecar.

Stack exports: appInternalURL, appPublicURL, gcpNameServers.
"""

import pulumi

from components import CloudflareCdn, GcpDnsZone, PublicCluster
from config import StackConfig

APP_RECORD_TTL = 300

# Selector and pod labels are overwritten by StandardApp.
NGINX_SPEC = {
    "selector": {},
    "replicas": 1,
    "template": {
        "spec": {
            "containers": [
                {
                    "name": "nginx",
                    "image": "nginx:1.7.9",
                    "ports": [{"containerPort": 80}],
                }
            ],
        },
    },
}


def main():
    """
    Build the DNS, CDN, cluster and application components and export URLs.
    """
    config = StackConfig.from_pulumi_config(pulumi.Config())

    cdn = CloudflareCdn(config.domain, config.cloudflare_account_id)

    gcp_dns = GcpDnsZone("gcp/dns/subdomain", config.gcp_subdomain)
    cdn.add_subdomain(gcp_dns)

    gke = PublicCluster(
        f"gcp/cluster/{config.cluster_zone}",
        zone=config.cluster_zone,
        version=config.cluster_version,
        node_count=config.node_count,
        machine_type=config.machine_type,
        cert_manager_version=config.cert_manager_version,
    )

    containers = gke.new_containers(
        config.namespace,
        f"{config.namespace}.{config.gcp_subdomain}",
        config.lets_encrypt_email,
        config.read_origin_pull_ca(),
    )

    host = f"nginx.{config.domain}"
    app = containers.new_service("nginx", host, NGINX_SPEC)
    gcp_dns.add_record("A", app.hostname, app.external_ip(), APP_RECORD_TTL)
    cdn.add_proxy(host, app.hostname)

    for output_name, value in [
        ("appInternalURL", f"https://{app.hostname}"),
        ("appPublicURL", f"https://{host}"),
        ("gcpNameServers", gcp_dns.name_servers),
    ]:
        pulumi.export(output_name, value)


if __name__ == "__main__":
    main()
