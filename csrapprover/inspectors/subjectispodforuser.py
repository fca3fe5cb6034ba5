from csrapprover.csr import extract, get_pod_ip_and_namespace
from csrapprover.inspectors.base import Inspector
from csrapprover.inspectors.pods import find_pod


class SubjectIsPodForUser(Inspector):
    """
    Verifies the CSR subject is nothing but the DNS name of a live pod whose
    service account is the requesting user
    """

    name = "subjectispodforuser"

    def __init__(self, cluster_domain: str = "cluster.local"):
        super().__init__()
        self.cluster_domain = cluster_domain

    def _from_config(self, config):
        return SubjectIsPodForUser(config)

    def inspect(self, client, request):
        certificate_request, msg = extract(request.request)
        if msg:
            return msg

        pod_ip, namespace, msg = get_pod_ip_and_namespace(
            self.cluster_domain, certificate_request
        )
        if msg:
            return msg

        pod = find_pod(client, namespace, pod_ip, self.name)
        if pod is None:
            return f'No pending or running POD in namespace "{namespace}" with IP "{pod_ip}"'

        expected = f"system:serviceaccount:{namespace}:{pod.service_account_name}"
        if request.username != expected:
            return f'Requesting user "{request.username}" is not "{expected}"'
        return ""
