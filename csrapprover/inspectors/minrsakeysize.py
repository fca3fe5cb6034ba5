from cryptography.hazmat.primitives.asymmetric import rsa

from csrapprover.csr import extract
from csrapprover.errors import ConfigurationError
from csrapprover.inspectors.base import Inspector


class MinRSAKeySize(Inspector):
    """
    Verifies that the CSR either has a non-RSA public key or an RSA public key of
    at least the configured size in bits. To restrict the key type itself use the
    signaturealgorithm inspector.
    """

    name = "minrsakeysize"

    def __init__(self, min_size: int = 3072):
        super().__init__()
        self.min_size = min_size

    def _from_config(self, config):
        if not config.isdigit():
            raise ConfigurationError(f"invalid minimum key size {config}")
        return MinRSAKeySize(int(config))

    def inspect(self, client, request):
        certificate_request, msg = extract(request.request)
        if msg:
            return msg

        if not isinstance(certificate_request.public_key, rsa.RSAPublicKey):
            return ""

        bitsize = certificate_request.public_key.key_size
        if bitsize < self.min_size:
            return f"Public key too small: {bitsize} < {self.min_size}"
        return ""
