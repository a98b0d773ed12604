"""Container group: applications sharing a namespace and a wildcard certificate."""

from typing import Any

import pulumi
import pulumi_kubernetes as k8s

from components.app import StandardApp
from components.certificate import WildcardCertificate

ID = "cloudapp:container:Containers"


class Containers(pulumi.ComponentResource):
    """
    Applications deployed into one namespace.

    Every app gets the internal hostname ``<app>.<domain>`` and is served with
    the group's ``*.<domain>`` certificate.
    """

    def __init__(
        self,
        name: str,
        provider: k8s.Provider,
        domain: str,
        email: str,
        ca_pem: str,
        opts: pulumi.ResourceOptions | None = None,
    ):
        """
        Args:
            name: Pulumi resource name for the component.
            provider: Kubernetes provider bound to the group's namespace.
            domain: Internal domain of the group (e.g.
                "my-namespace.gcp.internal.example.com").
            email: Let's Encrypt account e-mail.
            ca_pem: CA bundle the sidecars use to verify CDN client certificates.
            opts: Options for the component itself.
        """
        super().__init__(ID, name, None, opts)

        self._provider = provider
        self._domain = domain.rstrip(".")
        self._ca_pem = ca_pem

        self.certificate = WildcardCertificate(
            f"{name}/certificate",
            domain=self._domain,
            email=email,
            provider=provider,
            opts=pulumi.ResourceOptions(parent=self),
        )
        self.register_outputs({"secret_name": self.certificate.reference.secret_name})

    def new_service(
        self,
        name: str,
        host: str,
        spec: pulumi.Input[dict[str, Any]],
    ) -> StandardApp:
        """
        Deploy an application serving ``host``.

        Args:
            name: Application name.
            host: Public FQDN routed to the app.
            spec: DeploymentSpec in manifest form.
        """
        return StandardApp(
            name,
            hostname=f"{name}.{self._domain}",
            alias=host,
            spec=spec,
            provider=self._provider,
            certificate=self.certificate.reference,
            ca_pem=self._ca_pem,
            opts=pulumi.ResourceOptions(parent=self),
        )
