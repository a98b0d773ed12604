"""
Cloudflare CDN: zone for the public domain, TLS settings, records and proxies.

The zone fronts public hosts with Cloudflare's proxy (``add_proxy``) and
delegates subdomains to other DNS zones (``add_subdomain``). Zone settings
force HTTPS, require a valid origin certificate (``ssl=strict``) and turn on
authenticated origin pulls (``tls_client_auth``), which the Envoy sidecar
checks against Cloudflare's origin-pull CA.
"""

import pulumi
import pulumi_cloudflare as cloudflare

from components.interface import DnsZone

ID = "cloudapp:cloudflare:CloudflareCdn"

# Applied to every zone this component creates.
ZONE_SETTINGS: dict[str, str] = {
    "always_use_https": "on",
    "min_tls_version": "1.0",
    "ssl": "strict",
    "tls_client_auth": "on",
}

NS_TTL = 3600


class CloudflareCdn(pulumi.ComponentResource):
    """Cloudflare zone (free plan) with ZONE_SETTINGS applied."""

    def __init__(
        self,
        domain_name: str,
        account_id: str,
        opts: pulumi.ResourceOptions | None = None,
    ):
        """
        Create the zone and override its settings.

        Args:
            domain_name: Apex domain of the zone (e.g. "example.com").
            account_id: Cloudflare account owning the zone.
            opts: Options for the component itself.
        """
        name = f"cloudflare/cdn/{domain_name}"
        super().__init__(ID, name, None, opts)

        self._domain = domain_name
        self._child_opts = pulumi.ResourceOptions(parent=self)

        self.zone = cloudflare.Zone(
            resource_name=name,
            account_id=account_id,
            zone=domain_name,
            plan="free",
            jump_start=False,
            paused=False,
            opts=self._child_opts,
        )

        cloudflare.ZoneSettingsOverride(
            resource_name=f"{name}/setting",
            zone_id=self.zone.id,
            settings=cloudflare.ZoneSettingsOverrideSettingsArgs(**ZONE_SETTINGS),
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
        value: str,
        ttl: int,
    ) -> cloudflare.Record:
        return cloudflare.Record(
            resource_name=f"cloudflare/cdn/record/{name}/{value}",
            zone_id=self.zone.id,
            type=record_type,
            name=name,
            content=value,
            ttl=ttl,
            opts=self._child_opts,
        )

    def add_proxy(
        self,
        host: str,
        alias: str,
    ) -> cloudflare.Record:
        """
        Serve ``host`` through Cloudflare's proxy, pulling from ``alias``.

        Args:
            host: Public hostname (e.g. "nginx.example.com").
            alias: Origin hostname the CNAME points at.
        """
        pulumi.log.info(f"Proxying {host} to {alias}", resource=self)
        return cloudflare.Record(
            resource_name=f"cloudflare/cdn/record/{host}/{alias}",
            zone_id=self.zone.id,
            type="CNAME",
            name=host,
            content=alias,
            proxied=True,
            opts=self._child_opts,
        )

    def add_subdomain(
        self,
        subdomain: DnsZone,
    ) -> pulumi.Output[list[cloudflare.Record]]:
        """
        Delegate a subdomain by adding one NS record per name server of its zone.

        Records are declared once the subdomain's name servers are known,
        since their number is only known then.
        """
        domain = subdomain.get_domain().rstrip(".")

        def _delegate(servers: list[str]) -> list[cloudflare.Record]:
            pulumi.log.info(f"Delegating {domain} to {len(servers)} name servers", resource=self)
            return [self.add_record("NS", domain, server, NS_TTL) for server in servers]

        return subdomain.get_nameservers().apply(_delegate)
