from typing import FrozenSet

from csrapprover.csr import extract
from csrapprover.errors import ConfigurationError
from csrapprover.inspectors.base import Inspector

# MD2WithRSA is deliberately absent
SUPPORTED_ALGORITHMS = {
    name.lower(): name
    for name in [
        "MD5WithRSA",
        "SHA1WithRSA",
        "SHA256WithRSA",
        "SHA384WithRSA",
        "SHA512WithRSA",
        "ECDSAWithSHA1",
        "ECDSAWithSHA256",
        "ECDSAWithSHA384",
        "ECDSAWithSHA512",
        "SHA256WithRSAPSS",
        "SHA384WithRSAPSS",
        "SHA512WithRSAPSS",
        "Ed25519",
    ]
}

DEFAULT_ALGORITHMS = frozenset(
    [
        "SHA256WithRSA",
        "SHA384WithRSA",
        "SHA512WithRSA",
        "SHA256WithRSAPSS",
        "SHA384WithRSAPSS",
        "SHA512WithRSAPSS",
    ]
)


class SignatureAlgorithm(Inspector):
    """
    Verifies that the CSR's signature algorithm is in a permitted set. As the
    signature algorithm constrains the key type, this also restricts the public
    key type.
    """

    name = "signaturealgorithm"

    def __init__(self, permitted: FrozenSet[str] = DEFAULT_ALGORITHMS):
        super().__init__()
        self.permitted = frozenset(permitted)

    def _from_config(self, config):
        permitted = set()
        for algorithm in config.split(","):
            canonical = SUPPORTED_ALGORITHMS.get(algorithm.strip().lower())
            if canonical is None:
                raise ConfigurationError(f"unsupported SignatureAlgorithm {algorithm}")
            permitted.add(canonical)
        return SignatureAlgorithm(frozenset(permitted))

    def inspect(self, client, request):
        certificate_request, msg = extract(request.request)
        if msg:
            return msg

        if certificate_request.signature_algorithm in self.permitted:
            return ""
        return f"SignatureAlgorithm is {certificate_request.signature_algorithm}"
