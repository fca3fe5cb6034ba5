from typing import FrozenSet

from csrapprover.errors import ConfigurationError
from csrapprover.inspectors.base import Inspector

SUPPORTED_KEY_USAGES = frozenset(
    [
        "signing",
        "digital signature",
        "content commitment",
        "key encipherment",
        "key agreement",
        "data encipherment",
        "cert sign",
        "crl sign",
        "encipher only",
        "decipher only",
        "any",
        "server auth",
        "client auth",
        "code signing",
        "email protection",
        "s/mime",
        "ipsec end system",
        "ipsec tunnel",
        "ipsec user",
        "timestamping",
        "ocsp signing",
        "microsoft sgc",
        "netscape sgc",
    ]
)

DEFAULT_KEY_USAGES = frozenset(
    ["digital signature", "key encipherment", "server auth", "client auth"]
)


def normalize_usage(usage: str) -> str:
    """
    "Server_Auth" and "server auth" name the same usage
    """
    return usage.strip().lower().replace("_", " ")


class KeyUsage(Inspector):
    """
    Verifies that all of the requested key usages are permitted.

    Configured with a comma separated list of usages, e.g.
    keyusage=digital_signature,server_auth
    """

    name = "keyusage"

    def __init__(self, permitted: FrozenSet[str] = DEFAULT_KEY_USAGES):
        super().__init__()
        self.permitted = frozenset(permitted)

    def _from_config(self, config):
        permitted = set()
        for usage in config.split(","):
            normalized = normalize_usage(usage)
            if normalized not in SUPPORTED_KEY_USAGES:
                raise ConfigurationError(f"unsupported usage {usage}")
            permitted.add(normalized)
        return KeyUsage(frozenset(permitted))

    def inspect(self, client, request):
        bad_usages = [
            usage for usage in request.usages if normalize_usage(usage) not in self.permitted
        ]
        if not bad_usages:
            return ""

        msg = "Contains key usage"
        if len(bad_usages) > 1:
            msg += "s"
        return f"{msg} {','.join(bad_usages)}"
