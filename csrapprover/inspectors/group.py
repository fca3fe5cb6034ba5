from csrapprover.inspectors.base import Inspector


class Group(Inspector):
    """
    Verifies the CSR was submitted by a user in the configured group
    """

    name = "group"

    def __init__(self, required_group: str = "system:kubelet-bootstrap"):
        super().__init__()
        self.required_group = required_group

    def _from_config(self, config):
        return Group(config)

    def inspect(self, client, request):
        if self.required_group not in request.groups:
            return f"Requesting user is not in the {self.required_group} group"
        return ""
