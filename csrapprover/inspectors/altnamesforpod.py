from csrapprover.csr import extract, get_pod_ip_and_namespace
from csrapprover.inspectors.base import Inspector
from csrapprover.inspectors.pods import find_pod
from csrapprover.podnames import get_names_for_pod, parse_ip


class AltNamesForPod(Inspector):
    """
    Verifies every Subject Alt Name in the CSR is one the pod named in the
    subject may present: its own name and IP, its headless service name, or
    the names and IPs of services selecting it. Email and other SAN types are
    never permitted.
    """

    name = "altnamesforpod"

    def __init__(self, cluster_domain: str = "cluster.local"):
        super().__init__()
        self.cluster_domain = cluster_domain

    def _from_config(self, config):
        return AltNamesForPod(config)

    def inspect(self, client, request):
        certificate_request, msg = extract(request.request)
        if msg:
            return msg

        pod_ip, namespace, msg = get_pod_ip_and_namespace(
            self.cluster_domain, certificate_request
        )
        if msg:
            return msg

        # Only the phase matters here, subjectispodforuser rejects terminating pods
        pod = find_pod(client, namespace, pod_ip, self.name, include_terminating=True)
        if pod is None:
            return f'No running POD in namespace "{namespace}" with IP "{pod_ip}"'

        permitted_names, permitted_ips = get_names_for_pod(client, pod, self.cluster_domain)

        bad_names = []
        for alt_name in certificate_request.alt_names:
            if alt_name.kind == "dns":
                if alt_name.value not in permitted_names:
                    bad_names.append(alt_name.value)
            elif alt_name.kind == "ip":
                if parse_ip(alt_name.value) not in permitted_ips:
                    bad_names.append(str(alt_name.value))
            elif alt_name.kind == "email":
                bad_names.append(alt_name.value)
            else:
                bad_names.append(f"Name of type {alt_name.tag}")

        if not bad_names:
            return ""

        msg = "Subject Alt Name contains disallowed name"
        if len(bad_names) > 1:
            msg += "s"
        return f"{msg}: {','.join(bad_names)}"
