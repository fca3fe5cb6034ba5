import logging
import os

from pykube import HTTPClient, KubeConfig

from csrapprover.approver import Approver
from csrapprover.config import Config
from csrapprover.inspectors.base import InspectorChain
from csrapprover.inspectors.defaults import default_registry
from csrapprover.kubernetes import ClusterClient
from csrapprover.metrics import Metrics
from csrapprover.scheduler import DeletionScheduler

logger = logging.getLogger(__name__)


def load_kube_config(path: str = None) -> KubeConfig:
    """
    An explicit kubeconfig wins, then $KUBECONFIG, then the pod's service account
    """
    if path:
        return KubeConfig.from_file(path)
    if os.environ.get("KUBECONFIG"):
        return KubeConfig.from_file()
    return KubeConfig.from_service_account()


class ApprovalController:
    def __init__(self, config: Config, client=None):
        """
        Build the inspector chains and everything the approver needs.
        Raises ConfigurationError for an unusable inspector spec before touching the cluster.
        """
        self.config = config

        registry = default_registry(config.cluster_domain)
        self.filters = InspectorChain.parse(registry, config.filters)
        self.deniers = InspectorChain.parse(registry, config.deniers)
        self.warners = InspectorChain.parse(registry, config.warners)

        if client is None:
            client = ClusterClient(HTTPClient(load_kube_config(config.kubeconfig)))
        self.client = client

        self.metrics = Metrics()
        self.scheduler = DeletionScheduler(self.client, config.delete_after)
        self.approver = Approver(
            self.client,
            self.filters,
            self.deniers,
            self.warners,
            self.scheduler,
            self.metrics,
            max_conflict_retries=config.max_conflict_retries,
        )

    def run(self):
        logger.info(
            "Handling requests with filters [%s], deniers [%s], warners [%s]",
            self.filters,
            self.deniers,
            self.warners,
        )
        if self.config.metrics_port:
            self.metrics.serve(self.config.metrics_port)
            logger.info("Serving metrics on port %d", self.config.metrics_port)
        try:
            self.approver.run()
        finally:
            self.scheduler.cancel_all()

    def stop(self):
        self.approver.stop()
