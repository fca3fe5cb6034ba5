"""CSR factory and a fake cluster client for the approver tests."""

import base64
import copy
import ipaddress
from functools import lru_cache
from typing import List, Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import NameOID

from csrapprover.errors import ClusterError, ConflictError
from csrapprover.kubernetes import Condition, Pod, Service, SigningRequest


@lru_cache(maxsize=None)
def rsa_key(key_size: int = 2048) -> rsa.RSAPrivateKey:
    """Generating RSA keys is slow, share one per size."""
    return rsa.generate_private_key(public_exponent=65537, key_size=key_size)


@lru_cache(maxsize=None)
def ec_key() -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(ec.SECP256R1())


def build_csr(
    common_name: str = "example.invalid",
    extra_names: Optional[List[x509.NameAttribute]] = None,
    dns_names: Optional[List[str]] = None,
    ip_addresses: Optional[List[str]] = None,
    emails: Optional[List[str]] = None,
    uris: Optional[List[str]] = None,
    extensions: Optional[List[x509.ExtensionType]] = None,
    key=None,
    hash_algorithm=None,
) -> x509.CertificateSigningRequest:
    """Create a signed certificate request."""
    if key is None:
        key = rsa_key()
    if hash_algorithm is None:
        hash_algorithm = hashes.SHA256()

    attributes = [x509.NameAttribute(NameOID.COMMON_NAME, common_name)]
    attributes.extend(extra_names or [])
    builder = x509.CertificateSigningRequestBuilder().subject_name(x509.Name(attributes))

    alt_names = [x509.DNSName(name) for name in dns_names or []]
    alt_names.extend(x509.IPAddress(ipaddress.ip_address(ip)) for ip in ip_addresses or [])
    alt_names.extend(x509.RFC822Name(email) for email in emails or [])
    alt_names.extend(x509.UniformResourceIdentifier(uri) for uri in uris or [])
    if alt_names:
        builder = builder.add_extension(x509.SubjectAlternativeName(alt_names), critical=False)

    for extension in extensions or []:
        builder = builder.add_extension(extension, critical=False)

    return builder.sign(key, hash_algorithm)


def csr_pem(**kwargs) -> bytes:
    return build_csr(**kwargs).public_bytes(serialization.Encoding.PEM)


def signing_request(
    name: str = "csr-1",
    username: str = "system:serviceaccount:ns:default",
    groups: Optional[List[str]] = None,
    usages: Optional[List[str]] = None,
    request: bytes = b"",
    conditions: Optional[List[Condition]] = None,
) -> SigningRequest:
    """Build a SigningRequest through the same path API objects take."""
    obj = {
        "apiVersion": "certificates.k8s.io/v1",
        "kind": "CertificateSigningRequest",
        "metadata": {"name": name, "resourceVersion": "1"},
        "spec": {
            "username": username,
            "groups": groups if groups is not None else ["system:serviceaccounts"],
            "usages": usages if usages is not None else ["digital signature", "server auth"],
            "request": base64.b64encode(request).decode("utf-8"),
            "signerName": "example.com/serving",
        },
        "status": {"conditions": [c.to_obj() for c in conditions or []]},
    }
    return SigningRequest.from_obj(obj)


def make_pod(
    ip: str = "172.1.0.3",
    namespace: str = "ns",
    name: str = "pod-1",
    service_account_name: str = "default",
    phase: str = "Running",
    labels: Optional[dict] = None,
    hostname: str = "",
    subdomain: str = "",
    terminating: bool = False,
) -> Pod:
    return Pod(
        name=name,
        namespace=namespace,
        ip=ip,
        phase=phase,
        hostname=hostname,
        subdomain=subdomain,
        service_account_name=service_account_name,
        labels=labels if labels is not None else {"app": "x"},
        terminating=terminating,
    )


def make_service(
    name: str = "web",
    namespace: str = "ns",
    selector: Optional[dict] = None,
    cluster_ip: str = "10.0.0.10",
    type: str = "ClusterIP",
    external_name: str = "",
    external_ips: Optional[List[str]] = None,
) -> Service:
    return Service(
        name=name,
        namespace=namespace,
        selector=selector,
        type=type,
        cluster_ip=cluster_ip,
        external_name=external_name,
        external_ips=external_ips or [],
    )


class FakeClusterClient:
    """In-memory stand-in for ClusterClient."""

    def __init__(self, pods=None, services=None, requests=None):
        self.pods = list(pods or [])
        self.services = list(services or [])
        self.requests = {request.name: request for request in requests or []}
        self.updates = []
        self.deleted = []
        self.pod_lookups = 0
        self.conflicts = 0
        self.fail_pods = False
        self.fail_services = False
        self.fail_update = False
        self.fail_delete = False

    def list_pods(self, namespace, pod_ip):
        self.pod_lookups += 1
        if self.fail_pods:
            raise ClusterError("pods are unavailable")
        return [pod for pod in self.pods if pod.namespace == namespace and pod.ip == pod_ip]

    def list_services(self, namespace):
        if self.fail_services:
            raise ClusterError("services are unavailable")
        return [service for service in self.services if service.namespace == namespace]

    def list_signing_requests(self):
        return list(self.requests.values()), "1"

    def watch_signing_requests(self, since=None, timeout=30):
        return iter([])

    def get_signing_request(self, name):
        if name not in self.requests:
            raise ClusterError(f"{name} not found", code=404)
        return copy.deepcopy(self.requests[name])

    def update_approval(self, request):
        self.updates.append(request)
        if self.conflicts:
            self.conflicts -= 1
            raise ConflictError(
                "Operation cannot be fulfilled: the object has been modified", code=409
            )
        if self.fail_update:
            raise ClusterError("update failed", code=500)
        self.requests[request.name] = request
        return request

    def delete_signing_request(self, name):
        if self.fail_delete:
            raise ClusterError("delete failed", code=500)
        self.deleted.append(name)
        self.requests.pop(name, None)
