"""Certificate generation and inspection, and TLS version helpers."""

from __future__ import annotations

import ipaddress
import logging
import os
import ssl
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional, Union

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]

SSL3_VERSION = 0x0300
TLS1_VERSION = 0x0301
TLS1_1_VERSION = 0x0302
TLS1_2_VERSION = 0x0303
TLS1_3_VERSION = 0x0304

_VERSION_NAMES = {
    TLS1_VERSION: "TLSv1.0",
    TLS1_1_VERSION: "TLSv1.1",
    TLS1_2_VERSION: "TLSv1.2",
    TLS1_3_VERSION: "TLSv1.3",
    SSL3_VERSION: "SSLv3",
}
_VERSION_NUMBERS = {name: number for number, name in _VERSION_NAMES.items()}


class CertificateError(ValueError):
    """A certificate file is missing, unreadable or not a PEM certificate."""


@dataclass
class CertificateInfo:
    """Subject fields, key size and lifetime of a self-signed certificate."""

    country: str = "US"
    organization: str = "Ishikura"
    common_name: str = "localhost"
    key_size: int = 2048
    validity_days: int = 365


def _load_certificate(cert_file: PathLike) -> x509.Certificate:
    try:
        data = Path(cert_file).read_bytes()
    except OSError as exc:
        raise CertificateError(f"cannot read certificate {cert_file}: {exc}") from exc
    try:
        return x509.load_pem_x509_certificate(data)
    except ValueError as exc:
        raise CertificateError(f"invalid certificate in {cert_file}: {exc}") from exc


def _load_private_key(key_file: PathLike):
    data = Path(key_file).read_bytes()
    return serialization.load_pem_private_key(data, password=None)


def _not_after(cert: x509.Certificate) -> datetime:
    value = getattr(cert, "not_valid_after_utc", None)
    if value is None:
        value = cert.not_valid_after.replace(tzinfo=timezone.utc)
    return value


def _public_key_der(key) -> bytes:
    return key.public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def _oneline(name: x509.Name) -> str:
    parts = []
    for rdn in name.rdns:
        parts.append(
            "+".join(f"{attr.rfc4514_attribute_name}={attr.value}" for attr in rdn)
        )
    return "".join(f"/{part}" for part in parts)


def generate_self_signed_certificate(
    cert_file: PathLike, key_file: PathLike, info: Optional[CertificateInfo] = None
) -> None:
    """Create an RSA key and a self-signed certificate and write both as PEM files."""
    info = info if info is not None else CertificateInfo()

    key = rsa.generate_private_key(public_exponent=65537, key_size=info.key_size)

    name = x509.Name(
        [
            x509.NameAttribute(NameOID.COUNTRY_NAME, info.country),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, info.organization),
            x509.NameAttribute(NameOID.COMMON_NAME, info.common_name),
        ]
    )

    alt_names: List[x509.GeneralName] = [x509.DNSName(info.common_name)]
    if info.common_name != "localhost":
        alt_names.append(x509.DNSName("localhost"))
    alt_names.append(x509.IPAddress(ipaddress.ip_address("127.0.0.1")))

    now = datetime.now(timezone.utc)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(1)
        .not_valid_before(now)
        .not_valid_after(now + timedelta(days=info.validity_days))
        .add_extension(x509.SubjectAlternativeName(alt_names), critical=False)
        .sign(key, hashes.SHA256())
    )

    Path(cert_file).write_bytes(certificate.public_bytes(serialization.Encoding.PEM))

    key_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    descriptor = os.open(key_file, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(descriptor, "wb") as handle:
        handle.write(key_pem)

    logger.info(
        "Generated self-signed certificate %s with key %s for %s, valid for %d days",
        cert_file,
        key_file,
        info.common_name,
        info.validity_days,
    )


def validate_certificate_file(cert_file: PathLike) -> bool:
    """True when the file holds a PEM certificate that has not yet expired."""
    try:
        cert = _load_certificate(cert_file)
    except CertificateError:
        return False
    return _not_after(cert) > datetime.now(timezone.utc)


def validate_private_key_file(key_file: PathLike) -> bool:
    """True when the file holds an unencrypted PEM private key that passes its checks."""
    try:
        _load_private_key(key_file)
    except (OSError, ValueError, TypeError, UnsupportedAlgorithm):
        return False
    return True


def validate_certificate_key_pair(cert_file: PathLike, key_file: PathLike) -> bool:
    """True when the private key belongs to the certificate's public key."""
    try:
        cert = _load_certificate(cert_file)
        key = _load_private_key(key_file)
    except (CertificateError, OSError, ValueError, TypeError, UnsupportedAlgorithm):
        return False
    return _public_key_der(key.public_key()) == _public_key_der(cert.public_key())


def get_certificate_expiry(cert_file: PathLike) -> datetime:
    """Return the certificate's expiry time as an aware UTC datetime."""
    return _not_after(_load_certificate(cert_file))


def get_certificate_subject(cert_file: PathLike) -> str:
    """Return the subject in one-line form, such as ``/C=US/O=Org/CN=host``."""
    return _oneline(_load_certificate(cert_file).subject)


def get_certificate_issuer(cert_file: PathLike) -> str:
    """Return the issuer in one-line form."""
    return _oneline(_load_certificate(cert_file).issuer)


def get_certificate_san_list(cert_file: PathLike) -> List[str]:
    """Return the DNS names and IP addresses of the subject alternative names, in order."""
    cert = _load_certificate(cert_file)
    try:
        extension = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    except x509.ExtensionNotFound:
        return []
    names: List[str] = []
    for general_name in extension.value:
        if isinstance(general_name, x509.DNSName):
            names.append(general_name.value)
        elif isinstance(general_name, x509.IPAddress):
            names.append(str(general_name.value))
    return names


def tls_version_to_string(version: int) -> str:
    """Return the protocol name for a version number, or ``Unknown``."""
    return _VERSION_NAMES.get(int(version), "Unknown")


def string_to_tls_version(version: str) -> int:
    """Return the protocol version number for a name such as ``TLSv1.2``."""
    try:
        return _VERSION_NUMBERS[version]
    except KeyError:
        raise ValueError(f"unknown TLS version: {version!r}") from None


def get_supported_ciphers(context: ssl.SSLContext) -> List[str]:
    """Return the names of the ciphers enabled in ``context``."""
    return [cipher["name"] for cipher in context.get_ciphers() if cipher.get("name")]