from csrapprover.inspectors.base import Inspector


class Username(Inspector):
    """
    Verifies the CSR was submitted by the configured user
    """

    name = "username"

    def __init__(self, required_username: str = "kubelet-bootstrap"):
        super().__init__()
        self.required_username = required_username

    def _from_config(self, config):
        return Username(config)

    def inspect(self, client, request):
        if request.username != self.required_username:
            return f"Requesting user is not {self.required_username}"
        return ""
