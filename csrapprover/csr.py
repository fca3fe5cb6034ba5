import base64
import binascii
import ipaddress
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric import dsa, ec, ed448, ed25519, rsa
from cryptography.x509.oid import NameOID, SignatureAlgorithmOID

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

PEM_BLOCK = re.compile(
    rb"-----BEGIN (?P<label>[^\r\n-]*)-----\r?\n(?P<body>.*?)-----END (?P=label)-----",
    re.DOTALL,
)

# General name tags from RFC 5280, used when reporting unsupported SAN types
GENERAL_NAME_TAGS = {
    x509.OtherName: 0,
    x509.RFC822Name: 1,
    x509.DNSName: 2,
    x509.DirectoryName: 4,
    x509.UniformResourceIdentifier: 6,
    x509.IPAddress: 7,
    x509.RegisteredID: 8,
}

SIGNATURE_ALGORITHM_NAMES = {
    SignatureAlgorithmOID.RSA_WITH_MD5: "MD5WithRSA",
    SignatureAlgorithmOID.RSA_WITH_SHA1: "SHA1WithRSA",
    SignatureAlgorithmOID.RSA_WITH_SHA224: "SHA224WithRSA",
    SignatureAlgorithmOID.RSA_WITH_SHA256: "SHA256WithRSA",
    SignatureAlgorithmOID.RSA_WITH_SHA384: "SHA384WithRSA",
    SignatureAlgorithmOID.RSA_WITH_SHA512: "SHA512WithRSA",
    SignatureAlgorithmOID.ECDSA_WITH_SHA1: "ECDSAWithSHA1",
    SignatureAlgorithmOID.ECDSA_WITH_SHA224: "ECDSAWithSHA224",
    SignatureAlgorithmOID.ECDSA_WITH_SHA256: "ECDSAWithSHA256",
    SignatureAlgorithmOID.ECDSA_WITH_SHA384: "ECDSAWithSHA384",
    SignatureAlgorithmOID.ECDSA_WITH_SHA512: "ECDSAWithSHA512",
    SignatureAlgorithmOID.DSA_WITH_SHA1: "DSAWithSHA1",
    SignatureAlgorithmOID.DSA_WITH_SHA256: "DSAWithSHA256",
    SignatureAlgorithmOID.ED25519: "Ed25519",
    SignatureAlgorithmOID.ED448: "Ed448",
}


@dataclass(frozen=True)
class AltName:
    """
    A single Subject Alternative Name. kind is one of "dns", "ip", "email" or "other";
    tag is the RFC 5280 GeneralName tag.
    """

    kind: str
    value: object
    tag: int


@dataclass(frozen=True)
class Extension:
    oid: str
    critical: bool
    value: bytes


@dataclass(frozen=True)
class CertificateRequest:
    """
    The parts of a PKCS#10 request the inspectors look at, read once at extraction time
    """

    raw: bytes
    common_name: str
    name_count: int
    alt_names: Tuple[AltName, ...]
    extensions: Tuple[Extension, ...]
    public_key: object
    public_key_algorithm: str
    signature_algorithm: str

    @property
    def has_extra_names(self) -> bool:
        return self.name_count > 1

    @property
    def dns_names(self) -> List[str]:
        return [name.value for name in self.alt_names if name.kind == "dns"]

    @property
    def ip_addresses(self) -> List[IPAddress]:
        return [name.value for name in self.alt_names if name.kind == "ip"]

    @property
    def email_addresses(self) -> List[str]:
        return [name.value for name in self.alt_names if name.kind == "email"]

    @property
    def other_names(self) -> List[AltName]:
        return [name for name in self.alt_names if name.kind == "other"]

    @classmethod
    def from_der(cls, der: bytes) -> "CertificateRequest":
        """
        Parse a DER request. Raises ValueError on anything structurally wrong,
        including malformed extension contents.
        """
        request = x509.load_der_x509_csr(der)

        common_names = request.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
        common_name = common_names[0].value if common_names else ""

        extensions = []
        alt_names = []
        try:
            for extension in request.extensions:
                extensions.append(
                    Extension(
                        oid=extension.oid.dotted_string,
                        critical=extension.critical,
                        value=_extension_bytes(extension),
                    )
                )
                if isinstance(extension.value, x509.SubjectAlternativeName):
                    alt_names.extend(_alt_name(name) for name in extension.value)
        except x509.DuplicateExtension as e:
            raise ValueError(f"duplicate extension {e.oid.dotted_string}") from e
        except x509.UnsupportedGeneralNameType as e:
            raise ValueError(f"unsupported Subject Alt Name: {e}") from e

        public_key, public_key_algorithm = _public_key(request)

        return cls(
            raw=der,
            common_name=common_name,
            name_count=len(list(request.subject)),
            alt_names=tuple(alt_names),
            extensions=tuple(extensions),
            public_key=public_key,
            public_key_algorithm=public_key_algorithm,
            signature_algorithm=_signature_algorithm(request),
        )


def _extension_bytes(extension: x509.Extension) -> bytes:
    if isinstance(extension.value, x509.UnrecognizedExtension):
        return extension.value.value
    try:
        return extension.value.public_bytes()
    except NotImplementedError:
        return b""


def _alt_name(name) -> AltName:
    tag = GENERAL_NAME_TAGS.get(type(name), -1)
    if isinstance(name, x509.DNSName):
        return AltName("dns", name.value, tag)
    if isinstance(name, x509.IPAddress):
        return AltName("ip", name.value, tag)
    if isinstance(name, x509.RFC822Name):
        return AltName("email", name.value, tag)
    return AltName("other", name.value, tag)


def _public_key(request: x509.CertificateSigningRequest):
    try:
        key = request.public_key()
    except (UnsupportedAlgorithm, ValueError):
        return None, "Unknown"
    if isinstance(key, rsa.RSAPublicKey):
        return key, "RSA"
    if isinstance(key, ec.EllipticCurvePublicKey):
        return key, "ECDSA"
    if isinstance(key, dsa.DSAPublicKey):
        return key, "DSA"
    if isinstance(key, ed25519.Ed25519PublicKey):
        return key, "Ed25519"
    if isinstance(key, ed448.Ed448PublicKey):
        return key, "Ed448"
    return key, "Unknown"


def _signature_algorithm(request: x509.CertificateSigningRequest) -> str:
    oid = request.signature_algorithm_oid
    if oid == SignatureAlgorithmOID.RSASSA_PSS:
        try:
            hash_algorithm = request.signature_hash_algorithm
        except (UnsupportedAlgorithm, ValueError):
            hash_algorithm = None
        if hash_algorithm is None:
            return "RSAPSS"
        return f"{hash_algorithm.name.upper()}WithRSAPSS"
    return SIGNATURE_ALGORITHM_NAMES.get(oid, oid.dotted_string)


def _pem_blocks(data: bytes):
    """
    Yield (der, end offset) for every PEM block whose body is valid base64
    """
    for match in PEM_BLOCK.finditer(data):
        lines = [
            line.strip()
            for line in match.group("body").splitlines()
            if line.strip() and b":" not in line
        ]
        try:
            der = base64.b64decode(b"".join(lines), validate=True)
        except (binascii.Error, ValueError):
            continue
        yield der, match.end()


def extract(data: bytes) -> Tuple[Optional[CertificateRequest], str]:
    """
    Decode the single PEM certificate request in data.

    Returns the parsed request and an empty message, or None and the reason
    the request should be rejected. Never raises for bad input.
    """
    if isinstance(data, str):
        data = data.encode("utf-8", "replace")

    blocks = _pem_blocks(data)
    first = next(blocks, None)
    if first is None:
        return None, "Request did not have a parseable PEM object"

    der, end = first
    if next(_pem_blocks(data[end:]), None) is not None:
        return None, "Request had more than one PEM object"

    try:
        return CertificateRequest.from_der(der), ""
    except (ValueError, x509.DuplicateExtension, x509.UnsupportedGeneralNameType) as e:
        return None, f"Request had invalid certificate request: {e}"


def _not_pod_format(common_name: str) -> Tuple[str, str, str]:
    return "", "", f'Subject "{common_name}" is not a POD-format name'


def get_pod_ip_and_namespace(
    cluster_domain: str, request: CertificateRequest
) -> Tuple[str, str, str]:
    """
    Derive the pod IP and namespace named by a subject of the form
    a-b-c-d.<namespace>.pod.<cluster_domain>.

    Every octet must be canonical decimal: "01" or "256" are rejected so that
    two different subjects can never name the same pod.
    """
    if request.has_extra_names:
        return "", "", "Subject has more than one name component"

    common_name = request.common_name
    suffix = ".pod." + cluster_domain
    if not common_name.endswith(suffix):
        return "", "", f'Subject "{common_name}" is not in the pod.{cluster_domain} domain'

    split_name = common_name[: -len(suffix)].split(".")
    if len(split_name) != 2:
        return _not_pod_format(common_name)

    ip_part, namespace = split_name
    split_ip = ip_part.split("-")
    if len(split_ip) != 4:
        return _not_pod_format(common_name)

    for octet in split_ip:
        if not octet or not all("0" <= c <= "9" for c in octet):
            return _not_pod_format(common_name)
        if int(octet) > 255 or (octet[0] == "0" and octet != "0"):
            return _not_pod_format(common_name)

    return ".".join(split_ip), namespace, ""
