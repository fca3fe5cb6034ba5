"""Unit tests for CSR extraction and pod identity derivation."""

import base64
import ipaddress
import textwrap

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.x509.oid import ExtensionOID, NameOID

from csrapprover.csr import extract, get_pod_ip_and_namespace

from .helpers import build_csr, csr_pem, ec_key, rsa_key


def pem_block(der: bytes, label: str = "CERTIFICATE REQUEST") -> bytes:
    body = "\n".join(textwrap.wrap(base64.b64encode(der).decode("ascii"), 64))
    return f"-----BEGIN {label}-----\n{body}\n-----END {label}-----\n".encode("ascii")


class TestExtract:
    def test_extract(self):
        csr = build_csr(common_name="example.invalid")
        der = csr.public_bytes(serialization.Encoding.DER)

        request, message = extract(csr.public_bytes(serialization.Encoding.PEM))

        assert message == ""
        assert request.raw == der
        assert request.common_name == "example.invalid"
        assert request.has_extra_names is False

    def test_no_pem(self):
        request, message = extract(b"nothing here")
        assert request is None
        assert message == "Request did not have a parseable PEM object"

    def test_empty(self):
        request, message = extract(b"")
        assert request is None
        assert message == "Request did not have a parseable PEM object"

    def test_bad_base64_is_not_a_pem_object(self):
        data = b"-----BEGIN CERTIFICATE REQUEST-----\n!!!!\n-----END CERTIFICATE REQUEST-----\n"
        request, message = extract(data)
        assert request is None
        assert message == "Request did not have a parseable PEM object"

    def test_two_objects(self):
        pem = csr_pem()
        request, message = extract(pem + pem)
        assert request is None
        assert message == "Request had more than one PEM object"

    def test_trailing_object_of_other_type(self):
        pem = csr_pem()
        request, message = extract(pem + pem_block(b"\x01\x02\x03", "CERTIFICATE"))
        assert request is None
        assert message == "Request had more than one PEM object"

    def test_trailing_garbage_is_ignored(self):
        request, message = extract(csr_pem() + b"trailing text\n")
        assert message == ""
        assert request is not None

    def test_not_csr(self):
        key_der = rsa_key().private_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        )
        request, message = extract(pem_block(key_der))
        assert request is None
        assert message.startswith("Request had invalid certificate request: ")

    def test_unsupported_alt_name_type(self):
        # x400Address is not representable, the request is rejected rather than raising
        pem = csr_pem(
            extensions=[
                x509.UnrecognizedExtension(
                    ExtensionOID.SUBJECT_ALTERNATIVE_NAME, bytes.fromhex("3004a3023000")
                )
            ]
        )
        request, message = extract(pem)
        assert request is None
        assert message.startswith("Request had invalid certificate request: ")

    def test_alt_names(self):
        pem = csr_pem(
            dns_names=["a.example.com"],
            ip_addresses=["10.0.0.1", "::1"],
            emails=["someone@example.com"],
            uris=["spiffe://example.com/x"],
        )
        request, message = extract(pem)

        assert message == ""
        assert request.dns_names == ["a.example.com"]
        assert request.ip_addresses == [
            ipaddress.ip_address("10.0.0.1"),
            ipaddress.ip_address("::1"),
        ]
        assert request.email_addresses == ["someone@example.com"]
        assert [(n.kind, n.tag) for n in request.other_names] == [("other", 6)]
        assert [e.oid for e in request.extensions] == ["2.5.29.17"]

    def test_extra_names(self):
        pem = csr_pem(extra_names=[x509.NameAttribute(NameOID.ORGANIZATION_NAME, "org")])
        request, _ = extract(pem)
        assert request.name_count == 2
        assert request.has_extra_names is True

    @pytest.mark.parametrize(
        "key,hash_algorithm,expected_key,expected_signature",
        [
            (lambda: rsa_key(), hashes.SHA256(), "RSA", "SHA256WithRSA"),
            (lambda: rsa_key(), hashes.SHA512(), "RSA", "SHA512WithRSA"),
            (lambda: ec_key(), hashes.SHA384(), "ECDSA", "ECDSAWithSHA384"),
        ],
    )
    def test_algorithms(self, key, hash_algorithm, expected_key, expected_signature):
        request, _ = extract(csr_pem(key=key(), hash_algorithm=hash_algorithm))
        assert request.public_key_algorithm == expected_key
        assert request.signature_algorithm == expected_signature


def request_for(common_name, **kwargs):
    request, message = extract(csr_pem(common_name=common_name, **kwargs))
    assert message == ""
    return request


class TestPodIpAndNamespace:
    @pytest.mark.parametrize(
        "common_name,ip,namespace",
        [
            ("172-1-0-3.ns.pod.cluster.local", "172.1.0.3", "ns"),
            ("0-0-0-0.kube-system.pod.cluster.local", "0.0.0.0", "kube-system"),
            ("255-255-255-255.a.pod.cluster.local", "255.255.255.255", "a"),
            ("10-20-100-9.b.pod.cluster.local", "10.20.100.9", "b"),
        ],
    )
    def test_pod_names(self, common_name, ip, namespace):
        assert get_pod_ip_and_namespace("cluster.local", request_for(common_name)) == (
            ip,
            namespace,
            "",
        )

    def test_other_domain(self):
        request = request_for("1-2-3-4.ns.pod.example.org")
        assert get_pod_ip_and_namespace("example.org", request) == ("1.2.3.4", "ns", "")

    def test_extra_names(self):
        request = request_for(
            "1-2-3-4.ns.pod.cluster.local",
            extra_names=[x509.NameAttribute(NameOID.ORGANIZATION_NAME, "system:nodes")],
        )
        assert get_pod_ip_and_namespace("cluster.local", request) == (
            "",
            "",
            "Subject has more than one name component",
        )

    @pytest.mark.parametrize(
        "common_name",
        [
            "1-2-3-4.ns.svc.cluster.local",
            "1-2-3-4.ns.pod.cluster.local.evil.com",
            "1-2-3-4.ns.pod.xcluster.local",
            "cluster.local",
        ],
    )
    def test_wrong_domain(self, common_name):
        assert get_pod_ip_and_namespace("cluster.local", request_for(common_name)) == (
            "",
            "",
            f'Subject "{common_name}" is not in the pod.cluster.local domain',
        )

    @pytest.mark.parametrize(
        "common_name",
        [
            "1-2-3-4.pod.cluster.local",
            "1-2-3-4.ns.extra.pod.cluster.local",
            "1-2-3.ns.pod.cluster.local",
            "1-2-3-4-5.ns.pod.cluster.local",
            "01-2-3-4.ns.pod.cluster.local",
            "1-2-3-00.ns.pod.cluster.local",
            "1-2-3-256.ns.pod.cluster.local",
            "1-2--4.ns.pod.cluster.local",
            "1-2-3-+4.ns.pod.cluster.local",
            "1-2-3- 4.ns.pod.cluster.local",
            "1-2-3-x.ns.pod.cluster.local",
        ],
    )
    def test_not_pod_format(self, common_name):
        assert get_pod_ip_and_namespace("cluster.local", request_for(common_name)) == (
            "",
            "",
            f'Subject "{common_name}" is not a POD-format name',
        )
