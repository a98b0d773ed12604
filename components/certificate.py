"""
Wildcard TLS certificate issued by cert-manager through Let's Encrypt.

This component creates a GCP service account allowed to edit Cloud DNS, stores
its key in a Kubernetes Secret, and declares a cert-manager ``Issuer``
(ACME, DNS-01 via Cloud DNS) and a ``Certificate`` for ``*.<domain>``.
cert-manager then writes the issued key pair into the Secret named by
``reference.secret_name``.
"""

from dataclasses import dataclass
from typing import Any

import pulumi
import pulumi_gcp as gcp
import pulumi_kubernetes as k8s

from components import _helpers

ID = "cloudapp:certificate:WildcardCertificate"

CERT_MANAGER_API = "cert-manager.io/v1"
LETS_ENCRYPT_SERVER = "https://acme-v02.api.letsencrypt.org/directory"
ISSUER_NAME = "letsencrypt-issuer"
CERTIFICATE_NAME = "wildcard-certificate"
KEY_FILE = "key.json"


def acme_issuer_spec(
    email: str,
    project: str,
    credentials_secret: str,
) -> dict[str, Any]:
    """
    Return the spec of an ACME Issuer solving DNS-01 challenges in Cloud DNS.

    Args:
        email: Let's Encrypt account e-mail.
        project: GCP project hosting the DNS zone.
        credentials_secret: Secret holding the service account key under
            KEY_FILE.
    """
    return {
        "acme": {
            "server": LETS_ENCRYPT_SERVER,
            "email": email,
            "privateKeySecretRef": {"name": ISSUER_NAME},
            "solvers": [
                {
                    "dns01": {
                        "cloudDNS": {
                            "project": project,
                            "serviceAccountSecretRef": {
                                "name": credentials_secret,
                                "key": KEY_FILE,
                            },
                        }
                    }
                }
            ],
        }
    }


def wildcard_certificate_spec(
    domain: str,
    secret_name: str = CERTIFICATE_NAME,
    issuer_name: str = ISSUER_NAME,
) -> dict[str, Any]:
    """Return the spec of a Certificate covering every host directly under ``domain``."""
    return {
        "secretName": secret_name,
        "issuerRef": {"name": issuer_name, "kind": "Issuer"},
        "dnsNames": [f"*.{domain.rstrip('.')}"],
    }


@dataclass(frozen=True)
class CertificateReference:
    """
    Handle on an issued certificate.

    ``secret_name`` resolves once the Certificate resource is registered, so
    anything built from it is declared after the certificate.
    """

    secret_name: pulumi.Output[str]


class WildcardCertificate(pulumi.ComponentResource):
    """cert-manager Issuer and wildcard Certificate for one namespace."""

    def __init__(
        self,
        name: str,
        domain: str,
        email: str,
        provider: k8s.Provider,
        opts: pulumi.ResourceOptions | None = None,
    ):
        """
        Create the DNS service account, its key Secret, the Issuer and the Certificate.

        Args:
            name: Pulumi resource name for the component.
            domain: Domain whose direct subdomains the certificate covers.
            email: Let's Encrypt account e-mail.
            provider: Namespaced Kubernetes provider.
            opts: Options for the component itself.

        Outputs (registered for the component):
            secret_name: Secret the issued key pair is written to.
        """
        super().__init__(ID, name, None, opts)

        child_opts = pulumi.ResourceOptions(parent=self)
        k8s_opts = pulumi.ResourceOptions(parent=self, provider=provider)

        account = gcp.serviceaccount.Account(
            resource_name="account/cert-manager",
            account_id="cert-manager",
            display_name="Cert-Manager Service Account",
            opts=child_opts,
        )
        gcp.projects.IAMMember(
            resource_name="iamRole/cert/dns",
            project=gcp.config.project,
            role="roles/dns.admin",
            member=account.email.apply(_helpers.service_account_member),
            opts=pulumi.ResourceOptions(parent=account),
        )
        key = gcp.serviceaccount.Key(
            resource_name="account/cert-manager/key",
            service_account_id=account.name,
            private_key_type="TYPE_GOOGLE_CREDENTIALS_FILE",
            opts=pulumi.ResourceOptions(parent=account),
        )

        # private_key is already base64-encoded, as Secret.data expects.
        secret = k8s.core.v1.Secret(
            "cert/secret",
            metadata={"name": "cert-secret"},
            data=key.private_key.apply(lambda private_key: {KEY_FILE: private_key}),
            opts=k8s_opts,
        )

        issuer = k8s.apiextensions.CustomResource(
            "cert/issuer",
            api_version=CERT_MANAGER_API,
            kind="Issuer",
            metadata={"name": ISSUER_NAME},
            spec=secret.metadata.apply(
                lambda meta: acme_issuer_spec(email, gcp.config.project, meta.name)
            ),
            opts=k8s_opts,
        )

        certificate = k8s.apiextensions.CustomResource(
            "cert/wildcard-certificate",
            api_version=CERT_MANAGER_API,
            kind="Certificate",
            metadata={"name": CERTIFICATE_NAME},
            spec=wildcard_certificate_spec(domain),
            opts=pulumi.ResourceOptions(parent=self, provider=provider, depends_on=[issuer]),
        )

        self.reference = CertificateReference(
            secret_name=certificate.id.apply(lambda _: CERTIFICATE_NAME),
        )
        self.register_outputs({"secret_name": self.reference.secret_name})
