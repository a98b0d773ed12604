"""
Pure helpers for DNS, naming and cluster access. Testable without Pulumi runtime.

Used by the GCP DNS component (ensure_trailing_dot, managed_zone_name), the
GKE component (resource_safe_name, service_account_member, account_email,
render_kubeconfig) and the Cloudflare component. No Pulumi types; all
functions accept and return plain Python types so they can be unit-tested
without a Pulumi stack.
"""

import json


def ensure_trailing_dot(
    domain: str,
) -> str:
    """
    Return domain with a single trailing dot for DNS FQDN.

    Cloud DNS (and many DNS APIs) expect zone and record names with a trailing
    dot when they are fully qualified. Idempotent if already present.
    """
    return domain if domain.endswith(".") else f"{domain}."


def managed_zone_name(
    domain: str,
) -> str:
    """
    Derive a Cloud DNS managed zone name from a domain.

    Zone names may not contain dots, so "gcp.internal.example.com." becomes
    "gcp-internal-example-com".
    """
    return ensure_trailing_dot(domain)[:-1].replace(".", "-")


def resource_safe_name(
    name: str,
) -> str:
    """Replace slashes, which GCP resource names reject, with dashes."""
    return name.replace("/", "-")


def service_account_member(
    email: str,
) -> str:
    """Return the IAM member string for a service account e-mail."""
    return f"serviceAccount:{email}"


def account_email(
    credentials: str | None,
) -> str:
    """
    Return the client e-mail of the service account deploying this stack.

    Args:
        credentials: Contents of the ``gcp:credentials`` config (a service
            account key JSON).

    Raises:
        ValueError: No credentials are configured or they carry no e-mail.
    """
    if not credentials:
        raise ValueError("gcp:credentials is not set; cannot tell the deploying account")
    email = json.loads(credentials).get("client_email")
    if not email:
        raise ValueError("gcp:credentials has no client_email")
    return email


def render_kubeconfig(
    project: str,
    zone: str,
    cluster_name: str,
    endpoint: str,
    ca_certificate: str,
) -> str:
    """
    Render a kubeconfig for a GKE cluster.

    Authentication goes through gke-gcloud-auth-plugin, so the kubeconfig
    holds no secret and only works where gcloud is logged in.
    """
    context = f"{project}_{zone}_{cluster_name}"
    return f"""apiVersion: v1
clusters:
- cluster:
    certificate-authority-data: {ca_certificate}
    server: https://{endpoint}
  name: {context}
contexts:
- context:
    cluster: {context}
    user: {context}
  name: {context}
current-context: {context}
kind: Config
preferences: {{}}
users:
- name: {context}
  user:
    exec:
      apiVersion: client.authentication.k8s.io/v1beta1
      command: gke-gcloud-auth-plugin
      installHint: Install gke-gcloud-auth-plugin for use with kubectl
      provideClusterInfo: true
"""
