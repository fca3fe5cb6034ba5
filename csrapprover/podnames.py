import ipaddress
from typing import Dict, List, Optional, Tuple

from csrapprover.csr import IPAddress
from csrapprover.kubernetes import SERVICE_TYPE_EXTERNAL_NAME, Pod


def ip_to_name(ip: str) -> str:
    return ip.replace(".", "-")


def parse_ip(value) -> Optional[IPAddress]:
    """
    Parse value into an address, unwrapping IPv4-mapped IPv6 addresses so that
    ::ffff:10.0.0.1 and 10.0.0.1 compare equal. Returns None if unparseable.
    """
    if isinstance(value, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        address = value
    else:
        try:
            address = ipaddress.ip_address(value)
        except ValueError:
            return None
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        return address.ipv4_mapped
    return address


def selector_matches(selector: Dict[str, str], labels: Dict[str, str]) -> bool:
    """
    Equality-based label selection: every selector key must be present with the same value.
    An empty selector matches everything.
    """
    return all(key in labels and labels[key] == value for key, value in selector.items())


def get_names_for_pod(
    client, pod: Pod, cluster_domain: str
) -> Tuple[List[str], List[IPAddress]]:
    """
    Return the DNS names and IPs a pod is permitted to present, either in its own
    right or by dint of services selecting it.

    Static Endpoints are not taken into account. Raises ClusterError if the
    services of the pod's namespace cannot be listed.
    """
    dns_names = [f"{ip_to_name(pod.ip)}.{pod.namespace}.pod.{cluster_domain}"]
    if pod.hostname and pod.subdomain:
        dns_names.append(
            f"{pod.hostname}.{pod.subdomain}.{pod.namespace}.svc.{cluster_domain}"
        )

    ips = []
    _append_ip(ips, pod.ip)

    for service in client.list_services(pod.namespace):
        if service.selector is None:
            continue
        if service.namespace and service.namespace != pod.namespace:
            continue
        if not selector_matches(service.selector, pod.labels):
            continue

        _append_name(dns_names, f"{service.name}.{pod.namespace}.svc.{cluster_domain}")

        if service.type == SERVICE_TYPE_EXTERNAL_NAME:
            if service.external_name:
                _append_name(dns_names, service.external_name)
        else:
            _append_ip(ips, service.cluster_ip)

        for external_ip in service.external_ips:
            _append_ip(ips, external_ip)

    return dns_names, ips


def _append_name(names: List[str], name: str):
    if name not in names:
        names.append(name)


def _append_ip(ips: List[IPAddress], value: str):
    address = parse_ip(value)
    if address is not None and address not in ips:
        ips.append(address)
