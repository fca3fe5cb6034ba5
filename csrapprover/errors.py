class ConfigurationError(Exception):
    """
    An inspector or chain specification that cannot be understood.
    Raised at startup only, never while handling requests.
    """


class ClusterError(Exception):
    """
    A read or write against the cluster API failed for reasons unrelated
    to the content of the request being inspected
    """

    def __init__(self, message: str, code: int = None):
        super().__init__(message)
        self.code = code


class ConflictError(ClusterError):
    """
    The object was modified since it was read (HTTP 409).
    """
