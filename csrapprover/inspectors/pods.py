import logging
from typing import List

from csrapprover.kubernetes import Pod

logger = logging.getLogger(__name__)

LIVE_PHASES = ("Pending", "Running")


def live_pods(pods: List[Pod], include_terminating: bool = False) -> List[Pod]:
    """
    Pods that are pending or running and, unless include_terminating is set,
    not being deleted. An IP can briefly belong to both a terminating pod and
    its successor.
    """
    return [
        pod
        for pod in pods
        if pod.phase in LIVE_PHASES and (include_terminating or not pod.terminating)
    ]


def find_pod(client, namespace: str, pod_ip: str, inspector: str, include_terminating: bool = False):
    """
    The live pod in namespace holding pod_ip, or None.
    Raises ClusterError if pods cannot be listed.
    """
    pods = live_pods(client.list_pods(namespace, pod_ip), include_terminating)
    if not pods:
        return None
    if len(pods) > 1:
        logger.warning(
            "%s found multiple pods for IP %s: %s",
            inspector,
            pod_ip,
            ", ".join(pod.name for pod in pods),
        )
    return pods[0]
