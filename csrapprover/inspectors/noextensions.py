from typing import FrozenSet

from cryptography import x509
from cryptography.x509.oid import ExtensionOID

from csrapprover.csr import extract
from csrapprover.errors import ConfigurationError
from csrapprover.inspectors.base import Inspector

# Subject Alt Names are policed by altnamesforpod
ALWAYS_PERMITTED = frozenset([ExtensionOID.SUBJECT_ALTERNATIVE_NAME.dotted_string])


class NoExtensions(Inspector):
    """
    Verifies that the CSR carries no X.509 extensions other than Subject Alt Name
    and those whitelisted by OID, e.g. noextensions=2.5.29.15,2.5.29.37
    """

    name = "noextensions"

    def __init__(self, permitted: FrozenSet[str] = frozenset()):
        super().__init__()
        self.permitted = ALWAYS_PERMITTED | frozenset(permitted)

    def _from_config(self, config):
        permitted = set()
        for oid in config.split(","):
            try:
                permitted.add(x509.ObjectIdentifier(oid.strip()).dotted_string)
            except ValueError as e:
                raise ConfigurationError(f"invalid extension OID {oid}") from e
        return NoExtensions(frozenset(permitted))

    def inspect(self, client, request):
        certificate_request, msg = extract(request.request)
        if msg:
            return msg

        extensions = [
            extension.oid
            for extension in certificate_request.extensions
            if extension.oid not in self.permitted
        ]
        if not extensions:
            return ""

        msg = "Contains X.509 extension"
        if len(extensions) > 1:
            msg += "s"
        return f"{msg} {','.join(extensions)}"
