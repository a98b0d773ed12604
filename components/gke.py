"""
GKE: a public cluster with a managed node pool, ready to issue certificates.

This component creates a zonal GKE cluster whose default node pool is
replaced by a dedicated one (with its own service account allowed to write
logs and metrics), an admin Kubernetes provider built from the cluster's
endpoint and CA, a ``cluster-admin`` binding for the deploying account, and
cert-manager installed from its release manifest. ``new_containers`` then
carves out namespaces for applications.
"""

import pulumi
import pulumi_gcp as gcp
import pulumi_kubernetes as k8s

from components import _helpers
from components.containers import Containers

ID = "cloudapp:gke:PublicCluster"

CERT_MANAGER_MANIFEST = "https://github.com/cert-manager/cert-manager/releases/download/{version}/cert-manager.yaml"

NODE_POOL_ROLES: dict[str, str] = {
    "logging": "roles/logging.logWriter",
    "monitoring": "roles/monitoring.editor",
}


class PublicCluster(pulumi.ComponentResource):
    """
    GKE cluster, node pool, admin provider and cert-manager.

    Namespaced resources created through ``new_containers`` wait for the node
    pool, the admin binding and cert-manager.
    """

    def __init__(
        self,
        name: str,
        zone: str,
        version: str,
        node_count: int = 3,
        machine_type: str = "n1-standard-1",
        cert_manager_version: str = "v1.14.4",
        opts: pulumi.ResourceOptions | None = None,
    ):
        """
        Create the cluster and everything needed to deploy into it.

        Args:
            name: Pulumi resource name; slashes become dashes in the GKE name.
            zone: GCP zone (e.g. "us-west2-b").
            version: Minimum master version.
            node_count: Initial node count of the node pool.
            machine_type: Machine type of the pool's nodes.
            cert_manager_version: cert-manager release to install.
            opts: Options for the component itself.

        Outputs (registered for the component):
            endpoint: Cluster API endpoint.
        """
        super().__init__(ID, name, None, opts)

        self._zone = zone
        child_opts = pulumi.ResourceOptions(parent=self)
        project = gcp.config.project

        self.cluster = gcp.container.Cluster(
            resource_name=name,
            name=_helpers.resource_safe_name(name),
            location=zone,
            initial_node_count=1,
            min_master_version=version,
            logging_service="logging.googleapis.com/kubernetes",
            monitoring_service="monitoring.googleapis.com/kubernetes",
            addons_config=gcp.container.ClusterAddonsConfigArgs(
                http_load_balancing=gcp.container.ClusterAddonsConfigHttpLoadBalancingArgs(
                    disabled=True,
                ),
            ),
            remove_default_node_pool=True,
            opts=child_opts,
        )

        self.kubeconfig: pulumi.Output[str] = pulumi.Output.all(
            self.cluster.name,
            self.cluster.endpoint,
            self.cluster.master_auth,
        ).apply(
            lambda args: _helpers.render_kubeconfig(
                project, zone, args[0], args[1], args[2].cluster_ca_certificate
            )
        )
        admin_provider = k8s.Provider(
            f"k8sprovider/gcp/{zone}",
            kubeconfig=self.kubeconfig,
            opts=child_opts,
        )

        # GKE only lets cluster-admins create ClusterRoles, which cert-manager needs.
        binding = k8s.rbac.v1.ClusterRoleBinding(
            "admin-binding-deploy",
            role_ref=k8s.rbac.v1.RoleRefArgs(
                api_group="rbac.authorization.k8s.io",
                kind="ClusterRole",
                name="cluster-admin",
            ),
            subjects=[
                k8s.rbac.v1.SubjectArgs(
                    api_group="rbac.authorization.k8s.io",
                    kind="User",
                    name=_helpers.account_email(gcp.config.credentials),
                )
            ],
            opts=pulumi.ResourceOptions(parent=self, provider=admin_provider),
        )
        pool = self._add_node_pool(f"{name}/nodepool/default", node_count, machine_type)

        pulumi.log.info(f"Installing cert-manager {cert_manager_version}", resource=self)
        cert_manager = k8s.yaml.ConfigFile(
            "cert-manager",
            file=CERT_MANAGER_MANIFEST.format(version=cert_manager_version),
            opts=pulumi.ResourceOptions(
                parent=self,
                provider=admin_provider,
                depends_on=[binding, pool],
            ),
        )

        self._admin_provider = admin_provider
        self._admin_depends_on = [binding, pool, cert_manager]

        self.endpoint: pulumi.Output[str] = self.cluster.endpoint
        self.register_outputs({"endpoint": self.endpoint})

    def _add_node_pool(
        self,
        name: str,
        initial_node_count: int,
        machine_type: str,
    ) -> gcp.container.NodePool:
        account = gcp.serviceaccount.Account(
            resource_name="serviceAccount/gcpcluster",
            account_id="gcpcluster",
            display_name="Node Pool GCP Cluster Service Account",
            opts=pulumi.ResourceOptions(parent=self),
        )
        member = account.email.apply(_helpers.service_account_member)
        for purpose, role in NODE_POOL_ROLES.items():
            gcp.projects.IAMMember(
                resource_name=f"iamRole/gcpcluster/{purpose}",
                project=gcp.config.project,
                role=role,
                member=member,
                opts=pulumi.ResourceOptions(parent=account),
            )

        return gcp.container.NodePool(
            resource_name=name,
            name=_helpers.resource_safe_name(name),
            location=self.cluster.location,
            cluster=self.cluster.name,
            initial_node_count=initial_node_count,
            node_config=gcp.container.NodePoolNodeConfigArgs(
                machine_type=machine_type,
                service_account=account.email,
            ),
            management=gcp.container.NodePoolManagementArgs(
                auto_repair=True,
                auto_upgrade=True,
            ),
            opts=pulumi.ResourceOptions(parent=self),
        )

    def new_containers(
        self,
        namespace: str,
        domain: str,
        email: str,
        ca_pem: str,
    ) -> Containers:
        """
        Create a namespace and a container group deploying into it.

        Args:
            namespace: Kubernetes namespace to create.
            domain: Internal domain of the group's apps.
            email: Let's Encrypt account e-mail for the group's certificate.
            ca_pem: CA bundle the group's sidecars trust for client certificates.
        """
        ns = k8s.core.v1.Namespace(
            f"namespace/{namespace}",
            metadata={"name": namespace},
            opts=pulumi.ResourceOptions(
                parent=self,
                provider=self._admin_provider,
                depends_on=self._admin_depends_on,
            ),
        )

        # TODO: bind a namespace-scoped service account instead of reusing the admin kubeconfig.
        provider = k8s.Provider(
            f"k8sprovider/gcp/{self._zone}/{namespace}",
            kubeconfig=self.kubeconfig,
            namespace=ns.metadata.apply(lambda meta: meta.name),
            opts=pulumi.ResourceOptions(parent=ns),
        )

        return Containers(
            f"containers/{namespace}",
            provider=provider,
            domain=domain,
            email=email,
            ca_pem=ca_pem,
            opts=pulumi.ResourceOptions(parent=ns),
        )
