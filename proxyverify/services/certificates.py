"""Test certificate generation and node certificate store queries."""

from __future__ import annotations

import base64
import datetime
import ipaddress
import re

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

_PEM_BLOCK_RE = re.compile(
    r"-----BEGIN (?P<kind>[A-Z0-9 ]+)-----.*?-----END (?P=kind)-----",
    re.DOTALL,
)

# Temporary file the PowerShell X509Certificate2 constructor reads from.
_NODE_CERT_PATH = r"C:\Temp\cert.pem"


def generate_certificate() -> str:
    """Return a new self-signed, PEM-encoded certificate."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    subject = x509.Name([
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "New Test Cert Org."),
        x509.NameAttribute(NameOID.COUNTRY_NAME, "US"),
        x509.NameAttribute(NameOID.STATE_OR_PROVINCE_NAME, "MA"),
        x509.NameAttribute(NameOID.LOCALITY_NAME, "Boston"),
        x509.NameAttribute(NameOID.STREET_ADDRESS, "New Test Cert St."),
        x509.NameAttribute(NameOID.POSTAL_CODE, "02115"),
    ])
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + datetime.timedelta(days=3650))
        .add_extension(
            x509.SubjectAlternativeName([
                x509.IPAddress(ipaddress.ip_address("127.0.0.1")),
                x509.IPAddress(ipaddress.ip_address("::1")),
            ]),
            critical=False,
        )
        .add_extension(
            x509.ExtendedKeyUsage([
                ExtendedKeyUsageOID.CLIENT_AUTH,
                ExtendedKeyUsageOID.SERVER_AUTH,
            ]),
            critical=False,
        )
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .sign(key, hashes.SHA256())
    )
    return cert.public_bytes(serialization.Encoding.PEM).decode("ascii")


def split_pem_bundle(bundle: str) -> list[str]:
    """Split a CA bundle into its individual PEM blocks, in order."""
    return [m.group(0) + "\n" for m in _PEM_BLOCK_RE.finditer(bundle)]


def cert_count_script(cert_pem: str) -> str:
    """PowerShell that prints how many root-store certs equal *cert_pem*.

    The certificate travels base64 encoded since multi-line data breaks the
    remote command line.
    """
    encoded = base64.b64encode(cert_pem.encode("ascii")).decode("ascii")
    return (
        f'$base64Data="{encoded}";'
        "$certString=[Text.Encoding]::Utf8.GetString([Convert]::FromBase64String($base64Data));"
        f"Set-Content {_NODE_CERT_PATH} $certString;"
        "$expectedCert=[System.Security.Cryptography.X509Certificates.X509Certificate2]"
        f'::new("{_NODE_CERT_PATH}");'
        r"(Get-ChildItem -Path Cert:\LocalMachine\Root | "
        "Where-Object {$expectedCert.Equals($_)}).Count"
    )
