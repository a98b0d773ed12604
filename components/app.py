"""
Standard application: a Deployment fronted by an Envoy sidecar and exposed
through a LoadBalancer Service on 443.

The caller supplies a plain DeploymentSpec; this component declares the
``sidecar`` ConfigMap (Envoy config rewritten for the app's hostnames plus the
CDN origin-pull CA), the Deployment with the sidecar injected once the
certificate's secret name is known, and the Service whose selector and ports
are planned from the injected spec.
"""

from typing import Any

import pulumi
import pulumi_kubernetes as k8s

from components import sidecar
from components._deferred import combine, load_balancer_ip, map_value
from components.certificate import CertificateReference

ID = "cloudapp:app:StandardApp"


class StandardApp(pulumi.ComponentResource):
    """
    Sidecar-fronted Deployment plus its LoadBalancer Service.

    Resources: ConfigMap ``sidecar``, Deployment ``name``, Service ``name``.
    """

    def __init__(
        self,
        name: str,
        hostname: str,
        alias: str,
        spec: pulumi.Input[dict[str, Any]],
        provider: k8s.Provider,
        certificate: CertificateReference,
        ca_pem: str,
        sidecar_template: dict[str, Any] | None = None,
        opts: pulumi.ResourceOptions | None = None,
    ):
        """
        Create the ConfigMap, Deployment and Service.

        Args:
            name: Application name; names the Deployment and Service and is
                the value of the ``app`` label.
            hostname: Internal hostname the app is served on.
            alias: Public hostname routed to the app through the CDN.
            spec: DeploymentSpec in manifest form. Its selector and pod
                labels are replaced.
            provider: Namespaced Kubernetes provider.
            certificate: Certificate whose Secret the sidecar serves.
            ca_pem: CA bundle used to verify CDN client certificates.
            sidecar_template: Envoy config template; the packaged one if None.
            opts: Options for the component itself.

        Outputs (registered for the component):
            external_ip: Service load balancer IP.
        """
        super().__init__(ID, name, None, opts)

        k8s_opts = pulumi.ResourceOptions(parent=self, provider=provider)
        template = sidecar_template or sidecar.load_sidecar_template()

        self.config_map = k8s.core.v1.ConfigMap(
            f"configmap/{name}",
            metadata={"name": sidecar.CONFIG_MAP_NAME},
            data=sidecar.sidecar_config_data(template, hostname, alias, ca_pem),
            opts=k8s_opts,
        )

        app_labels = {"app": name}

        def _inject(workload: dict[str, Any], secret_name: str) -> dict[str, Any]:
            pulumi.log.debug(f"Injecting envoy sidecar into {name}", resource=self)
            return sidecar.inject(
                workload, name, app_labels, sidecar.CONFIG_MAP_NAME, secret_name
            )

        augmented = combine(
            spec,
            certificate.secret_name,
            fn=_inject,
            what=f"deployment spec of {name}",
        )
        self.deployment = k8s.apps.v1.Deployment(
            f"deployment/{name}",
            metadata={"name": name},
            spec=augmented,
            opts=k8s_opts,
        )

        # The selector comes from labels set by injection, so the Service is
        # declared after the Deployment and its ConfigMap.
        exposure = map_value(augmented, sidecar.plan_exposure, what=f"exposure of {name}")
        self.service = k8s.core.v1.Service(
            f"service/{name}",
            metadata={"name": name},
            spec=exposure.apply(lambda e: e.service_spec()),
            opts=pulumi.ResourceOptions(
                parent=self,
                provider=provider,
                depends_on=[self.config_map, self.deployment],
            ),
        )

        self._hostname = hostname
        self.register_outputs({"external_ip": self.external_ip()})

    @property
    def hostname(self) -> str:
        """Internal hostname of this app."""
        return self._hostname

    def external_ip(self) -> pulumi.Output[str]:
        """Return the external IP of the app's load balancer."""
        return self.service.status.apply(load_balancer_ip)
