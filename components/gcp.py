"""
GCP Cloud DNS: a managed zone serving a (sub)domain for in-cloud workloads.

This component creates a Cloud DNS managed zone for a domain and lets callers
add records to it. It is designed to be wired with outputs from other
components: ``add_record`` accepts an ``Output[str]`` value (e.g. a Service's
external IP) so the record is created once that value is known.

The zone only answers once the parent domain delegates to its name servers
(exposed via ``get_nameservers``); ``CloudflareCdn.add_subdomain`` does that
delegation.
"""

import pulumi
import pulumi_gcp as gcp

from components._helpers import ensure_trailing_dot, managed_zone_name

ID = "cloudapp:gcp:GcpDnsZone"

# A record value may be known now (str) or only after another resource is
# created (pulumi.Output[str]), e.g. a LoadBalancer IP.
RecordValue = str | pulumi.Output[str]


class GcpDnsZone(pulumi.ComponentResource):
    """
    Cloud DNS managed zone for ``domain_name``.

    Implements the DnsZone capabilities (get_domain, get_nameservers) so a
    parent zone can delegate to it.
    """

    def __init__(
        self,
        name: str,
        domain_name: str,
        opts: pulumi.ResourceOptions | None = None,
    ):
        """
        Create the managed zone.

        Args:
            name: Pulumi resource name for the component.
            domain_name: Domain served by the zone (e.g.
                "gcp.internal.example.com"); trailing dot is added.
            opts: Options for the component itself.

        Outputs (registered for the component):
            name_servers: Zone name servers.
        """
        super().__init__(ID, name, None, opts)

        self._domain = ensure_trailing_dot(domain_name)
        self._child_opts = pulumi.ResourceOptions(parent=self)

        self.zone = gcp.dns.ManagedZone(
            resource_name=f"{name}/zone",
            name=managed_zone_name(self._domain),
            dns_name=self._domain,
            description=f"Managed zone for {self._domain}",
            opts=self._child_opts,
        )

        self.name_servers: pulumi.Output[list[str]] = self.zone.name_servers
        self.register_outputs({"name_servers": self.name_servers})

    def get_domain(self) -> str:
        return self._domain

    def get_nameservers(self) -> pulumi.Output[list[str]]:
        return self.name_servers

    def add_record(
        self,
        record_type: str,
        name: str,
        value: RecordValue,
        ttl: int,
    ) -> gcp.dns.RecordSet:
        """
        Add a single-value record set to this zone.

        Args:
            record_type: Record type (e.g. "A", "CNAME").
            name: Record name, fully qualified; trailing dot is added.
            value: Record data, str or Output[str].
            ttl: TTL in seconds.
        """
        pulumi.log.info(f"Adding {record_type} record {name} to {self._domain}", resource=self)
        return gcp.dns.RecordSet(
            resource_name=f"record/{record_type}/{name}",
            managed_zone=self.zone.name,
            name=ensure_trailing_dot(name),
            type=record_type,
            ttl=ttl,
            rrdatas=[value],
            opts=self._child_opts,
        )
