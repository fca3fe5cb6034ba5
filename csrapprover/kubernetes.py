import base64
import copy
import json
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import wraps
from typing import Dict, Iterator, List, Optional, Tuple

import requests
from pykube import HTTPClient, Pod as PodObject, Service as ServiceObject
from pykube.exceptions import HTTPError, KubernetesError, ObjectDoesNotExist
from pykube.objects import APIObject

from csrapprover.errors import ClusterError, ConflictError

CONDITION_APPROVED = "Approved"
CONDITION_DENIED = "Denied"

SERVICE_TYPE_EXTERNAL_NAME = "ExternalName"


class CertificateSigningRequest(APIObject):
    version = "certificates.k8s.io/v1"
    endpoint = "certificatesigningrequests"
    kind = "CertificateSigningRequest"

    def update_approval(self):
        """
        Submit the status conditions of this object.

        Conditions can only be written through the approval operation endpoint.
        The stored resourceVersion travels with the object, so the apiserver
        answers 409 if someone else changed it in the meantime.
        """
        r = self.api.put(
            **self.api_kwargs(
                operation="approval",
                headers={"Content-Type": "application/json"},
                data=json.dumps(self.obj),
            )
        )
        self.api.raise_for_status(r)
        self.set_obj(r.json())


@dataclass
class Condition:
    type: str
    reason: str
    message: str
    status: str = "True"
    last_update_time: Optional[str] = None

    @classmethod
    def from_obj(cls, obj: dict) -> "Condition":
        return cls(
            type=obj.get("type", ""),
            reason=obj.get("reason", ""),
            message=obj.get("message", ""),
            status=obj.get("status", "True"),
            last_update_time=obj.get("lastUpdateTime"),
        )

    def to_obj(self) -> dict:
        obj = {
            "type": self.type,
            "status": self.status,
            "reason": self.reason,
            "message": self.message,
        }
        if self.last_update_time:
            obj["lastUpdateTime"] = self.last_update_time
        return obj


@dataclass
class SigningRequest:
    """
    Snapshot of a CertificateSigningRequest as far as the approver cares about it.
    The original API object is kept so an update can send it back unchanged
    apart from the conditions.
    """

    name: str
    username: str = ""
    groups: List[str] = field(default_factory=list)
    usages: List[str] = field(default_factory=list)
    request: bytes = b""
    conditions: List[Condition] = field(default_factory=list)
    resource_version: Optional[str] = None
    obj: dict = field(default_factory=dict, repr=False)

    @classmethod
    def from_obj(cls, obj: dict) -> "SigningRequest":
        metadata = obj.get("metadata", {})
        spec = obj.get("spec", {})
        status = obj.get("status") or {}
        try:
            raw = base64.b64decode(spec.get("request", ""))
        except ValueError:
            # Left for the extractor to reject
            raw = spec.get("request", "").encode("utf-8", "replace")
        return cls(
            name=metadata.get("name", ""),
            username=spec.get("username", ""),
            groups=list(spec.get("groups") or []),
            usages=list(spec.get("usages") or []),
            request=raw,
            conditions=[Condition.from_obj(c) for c in status.get("conditions") or []],
            resource_version=metadata.get("resourceVersion"),
            obj=obj,
        )

    def to_obj(self) -> dict:
        obj = copy.deepcopy(self.obj) if self.obj else {
            "apiVersion": CertificateSigningRequest.version,
            "kind": CertificateSigningRequest.kind,
            "metadata": {"name": self.name},
            "spec": {
                "username": self.username,
                "groups": list(self.groups),
                "usages": list(self.usages),
                "request": base64.b64encode(self.request).decode("utf-8"),
            },
        }
        if self.resource_version:
            obj.setdefault("metadata", {})["resourceVersion"] = self.resource_version
        obj.setdefault("status", {})
        obj["status"] = dict(obj["status"] or {})
        obj["status"]["conditions"] = [c.to_obj() for c in self.conditions]
        return obj

    @property
    def is_decided(self) -> bool:
        return len(self.conditions) > 0


@dataclass
class Pod:
    name: str
    namespace: str
    ip: str = ""
    phase: str = ""
    hostname: str = ""
    subdomain: str = ""
    service_account_name: str = ""
    labels: Dict[str, str] = field(default_factory=dict)
    terminating: bool = False

    @classmethod
    def from_obj(cls, obj: dict) -> "Pod":
        metadata = obj.get("metadata", {})
        spec = obj.get("spec", {})
        status = obj.get("status", {})
        return cls(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", ""),
            ip=status.get("podIP", ""),
            phase=status.get("phase", ""),
            hostname=spec.get("hostname", ""),
            subdomain=spec.get("subdomain", ""),
            service_account_name=spec.get("serviceAccountName", ""),
            labels=dict(metadata.get("labels") or {}),
            terminating=metadata.get("deletionTimestamp") is not None,
        )


@dataclass
class Service:
    name: str
    namespace: str
    selector: Optional[Dict[str, str]] = None
    type: str = "ClusterIP"
    cluster_ip: str = ""
    external_name: str = ""
    external_ips: List[str] = field(default_factory=list)

    @classmethod
    def from_obj(cls, obj: dict) -> "Service":
        metadata = obj.get("metadata", {})
        spec = obj.get("spec", {})
        selector = spec.get("selector")
        return cls(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", ""),
            selector=dict(selector) if selector is not None else None,
            type=spec.get("type", "ClusterIP"),
            cluster_ip=spec.get("clusterIP", ""),
            external_name=spec.get("externalName", ""),
            external_ips=list(spec.get("externalIPs") or []),
        )


def now_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@contextmanager
def _cluster_errors():
    """
    Turn pykube and transport failures into ClusterError, and HTTP 409 into ConflictError
    """
    try:
        yield
    except HTTPError as e:
        if e.code == 409:
            raise ConflictError(str(e), code=e.code) from e
        raise ClusterError(str(e), code=e.code) from e
    except ObjectDoesNotExist as e:
        raise ClusterError(str(e), code=404) from e
    except (KubernetesError, requests.RequestException) as e:
        raise ClusterError(str(e)) from e


def _translate_errors(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        with _cluster_errors():
            return func(*args, **kwargs)

    return wrapper


class ClusterClient:
    """
    The handful of cluster operations the approver needs, on top of a pykube HTTPClient
    """

    def __init__(self, api: HTTPClient):
        self.api = api

    @_translate_errors
    def list_pods(self, namespace: str, pod_ip: str) -> List[Pod]:
        query = PodObject.objects(self.api).filter(
            namespace=namespace, field_selector={"status.podIP": pod_ip}
        )
        return [Pod.from_obj(pod.obj) for pod in query]

    @_translate_errors
    def list_services(self, namespace: str) -> List[Service]:
        query = ServiceObject.objects(self.api).filter(namespace=namespace)
        return [Service.from_obj(service.obj) for service in query]

    @_translate_errors
    def list_signing_requests(self) -> Tuple[List[SigningRequest], Optional[str]]:
        """
        List every CSR, returning them together with the list's resourceVersion
        so a watch can continue from there.
        """
        response = CertificateSigningRequest.objects(self.api).response
        items = [SigningRequest.from_obj(item) for item in response.get("items") or []]
        return items, response.get("metadata", {}).get("resourceVersion")

    def watch_signing_requests(
        self, since: Optional[str] = None, timeout: int = 30
    ) -> Iterator[Tuple[str, SigningRequest]]:
        with _cluster_errors():
            watch = CertificateSigningRequest.objects(self.api).watch(
                since=since, params={"timeoutSeconds": timeout}
            )
            for event in watch:
                yield event.type, SigningRequest.from_obj(event.object.obj)

    @_translate_errors
    def get_signing_request(self, name: str) -> SigningRequest:
        k8s_csr = CertificateSigningRequest.objects(self.api).get_by_name(name)
        return SigningRequest.from_obj(k8s_csr.obj)

    @_translate_errors
    def update_approval(self, request: SigningRequest) -> SigningRequest:
        k8s_csr = CertificateSigningRequest(self.api, request.to_obj())
        k8s_csr.update_approval()
        return SigningRequest.from_obj(k8s_csr.obj)

    @_translate_errors
    def delete_signing_request(self, name: str):
        CertificateSigningRequest(self.api, {"metadata": {"name": name}}).delete()
