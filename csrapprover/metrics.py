from prometheus_client import CollectorRegistry, Counter, start_http_server


class Metrics:
    """
    Request counters, registered on a registry of their own so that several
    approvers can live in one process
    """

    def __init__(self, registry: CollectorRegistry = None):
        self.registry = registry or CollectorRegistry()
        self.approved = Counter(
            "csr_approver_requests_approved",
            "Number of approved requests.",
            registry=self.registry,
        )
        self.denied = Counter(
            "csr_approver_requests_denied",
            "Number of denied requests.",
            ["reason"],
            registry=self.registry,
        )
        self.warned = Counter(
            "csr_approver_requests_warned",
            "Number of warnings on approved requests.",
            ["reason"],
            registry=self.registry,
        )
        self.filtered = Counter(
            "csr_approver_requests_filtered",
            "Number of filtered requests.",
            ["reason"],
            registry=self.registry,
        )
        self.error = Counter(
            "csr_approver_requests_error",
            "Number of requests encountering an error.",
            ["reason"],
            registry=self.registry,
        )

    def value(self, name: str, reason: str = None) -> float:
        """
        Current value of a counter, 0 if it was never incremented
        """
        labels = {"reason": reason} if reason is not None else {}
        value = self.registry.get_sample_value(f"csr_approver_requests_{name}_total", labels)
        return value or 0.0

    def serve(self, port: int):
        start_http_server(port, registry=self.registry)
