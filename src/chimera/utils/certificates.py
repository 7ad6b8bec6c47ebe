"""
Certificate generation for admission webhook serving.

This module generates the trust material an admission webhook needs:
- A self-signed certificate authority (CA)
- A CA-signed serving certificate whose SANs cover the callback address
- PEM encoding and decoding of raw (DER) certificates and RSA keys

All failures raise CertificateError. They are fatal: no admission decision
can be served without trust material, so nothing here is retried.
"""

import ipaddress
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from chimera.constants import (
    CA_KEY_SIZE,
    CERTIFICATE_VALIDITY_DAYS,
    DEFAULT_CA_COMMON_NAME,
    DEFAULT_SERVING_KEY_SIZE,
    LOOPBACK_ALIASES,
    LOOPBACK_DNS_NAME,
    LOOPBACK_IPV4,
    LOOPBACK_IPV6,
    MIN_SERVING_KEY_SIZE,
    RSA_PUBLIC_EXPONENT,
)
from chimera.errors import CertificateError

logger = logging.getLogger(__name__)

HostAddress = ipaddress.IPv4Address | ipaddress.IPv6Address

# X.509 limits commonName to 64 characters. Clients verify the callback
# host against the SANs, never the CN, so truncation is harmless.
_MAX_COMMON_NAME_LENGTH = 64


@dataclass(frozen=True)
class CertificateAuthority:
    """A self-signed CA certificate together with its private key."""

    certificate: x509.Certificate
    private_key: rsa.RSAPrivateKey

    @property
    def certificate_der(self) -> bytes:
        return self.certificate.public_bytes(serialization.Encoding.DER)

    @property
    def certificate_pem(self) -> bytes:
        """PEM encoded CA certificate, suitable as a webhook caBundle."""
        return self.certificate.public_bytes(serialization.Encoding.PEM)

    @property
    def private_key_pem(self) -> bytes:
        return _private_key_to_pem(self.private_key)


@dataclass(frozen=True)
class ServingCertificate:
    """A CA-signed TLS serving certificate together with its private key."""

    certificate: x509.Certificate
    private_key: rsa.RSAPrivateKey

    @property
    def certificate_der(self) -> bytes:
        return self.certificate.public_bytes(serialization.Encoding.DER)

    @property
    def certificate_pem(self) -> bytes:
        return self.certificate.public_bytes(serialization.Encoding.PEM)

    @property
    def private_key_pem(self) -> bytes:
        return _private_key_to_pem(self.private_key)

    @property
    def dns_names(self) -> list[str]:
        """DNS names listed in the certificate's SubjectAlternativeName."""
        return self._sans().get_values_for_type(x509.DNSName)

    @property
    def ip_addresses(self) -> list[HostAddress]:
        """IP addresses listed in the certificate's SubjectAlternativeName."""
        return self._sans().get_values_for_type(x509.IPAddress)

    def _sans(self) -> x509.SubjectAlternativeName:
        return self.certificate.extensions.get_extension_for_class(
            x509.SubjectAlternativeName
        ).value


def _parse_ip(value: str) -> HostAddress | None:
    try:
        return ipaddress.ip_address(value)
    except ValueError:
        return None


def subject_alternative_names(
    primary_host: str, extra_sans: Iterable[str] = ()
) -> list[x509.GeneralName]:
    """
    Compute the SAN entries for a serving certificate.

    The loopback aliases ``localhost`` and ``127.0.0.1`` both expand to the
    IPv4 and IPv6 loopback addresses plus the ``localhost`` DNS name, since
    TLS clients check IP SANs and DNS SANs separately. Any other host, and
    every extra SAN, is added as an IP SAN when it parses as an IP address
    and as a DNS SAN otherwise.

    Args:
        primary_host: Callback host the API server will connect to
        extra_sans: Additional host names or IP addresses

    Returns:
        Ordered, de-duplicated list of DNS names followed by IP addresses

    Raises:
        CertificateError: If a name is not an ASCII (A-label) DNS name
    """
    dns_names: list[str] = []
    ip_addresses: list[HostAddress] = []

    def add(value: str) -> None:
        ip = _parse_ip(value)
        if ip is None:
            if value not in dns_names:
                dns_names.append(value)
        elif ip not in ip_addresses:
            ip_addresses.append(ip)

    if primary_host in LOOPBACK_ALIASES:
        add(LOOPBACK_DNS_NAME)
        add(LOOPBACK_IPV4)
        add(LOOPBACK_IPV6)
    else:
        add(primary_host)

    for san in extra_sans:
        add(san)

    try:
        return [x509.DNSName(name) for name in dns_names] + [
            x509.IPAddress(ip) for ip in ip_addresses
        ]
    except ValueError as e:
        raise CertificateError(f"Invalid SAN entry: {e}", cause=e) from e


def _generate_key(key_size: int) -> rsa.RSAPrivateKey:
    try:
        return rsa.generate_private_key(
            public_exponent=RSA_PUBLIC_EXPONENT, key_size=key_size
        )
    except (ValueError, UnsupportedAlgorithm) as e:
        raise CertificateError(
            f"Failed to generate {key_size}-bit RSA key: {e}", cause=e
        ) from e


def _common_name(value: str) -> x509.Name:
    try:
        attribute = x509.NameAttribute(
            NameOID.COMMON_NAME, value[:_MAX_COMMON_NAME_LENGTH]
        )
    except ValueError as e:
        raise CertificateError(f"Invalid common name {value!r}: {e}", cause=e) from e
    return x509.Name([attribute])


def generate_ca(
    common_name: str = DEFAULT_CA_COMMON_NAME, key_size: int = CA_KEY_SIZE
) -> CertificateAuthority:
    """
    Generate a new self-signed certificate authority.

    The CA is valid for one year from now and may only sign leaf
    certificates (path length 0).

    Args:
        common_name: Subject common name of the CA certificate
        key_size: RSA key size in bits

    Returns:
        The generated CertificateAuthority

    Raises:
        CertificateError: If key generation or signing fails
    """
    subject = _common_name(common_name)
    private_key = _generate_key(key_size)
    public_key = private_key.public_key()
    now = datetime.now(UTC)

    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(subject)
        .public_key(public_key)
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + timedelta(days=CERTIFICATE_VALIDITY_DAYS))
        .add_extension(x509.BasicConstraints(ca=True, path_length=0), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=True,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(
            x509.SubjectKeyIdentifier.from_public_key(public_key), critical=False
        )
    )

    try:
        certificate = builder.sign(private_key=private_key, algorithm=hashes.SHA256())
    except (ValueError, TypeError) as e:
        raise CertificateError(f"Failed to sign CA certificate: {e}", cause=e) from e

    logger.debug(f"Generated CA certificate {common_name!r} ({key_size}-bit key)")
    return CertificateAuthority(certificate=certificate, private_key=private_key)


def _authority_key_identifier(ca: CertificateAuthority) -> x509.AuthorityKeyIdentifier:
    try:
        ski = ca.certificate.extensions.get_extension_for_class(
            x509.SubjectKeyIdentifier
        ).value
        return x509.AuthorityKeyIdentifier.from_issuer_subject_key_identifier(ski)
    except x509.ExtensionNotFound:
        return x509.AuthorityKeyIdentifier.from_issuer_public_key(
            ca.private_key.public_key()
        )


def _check_ca(ca: CertificateAuthority) -> None:
    try:
        constraints = ca.certificate.extensions.get_extension_for_class(
            x509.BasicConstraints
        ).value
    except x509.ExtensionNotFound as e:
        raise CertificateError(
            "CA certificate has no BasicConstraints extension", cause=e
        ) from e
    except ValueError as e:
        raise CertificateError(f"CA certificate is corrupt: {e}", cause=e) from e

    if not constraints.ca:
        raise CertificateError("CA certificate is not marked as a CA")

    if ca.certificate.public_key().public_numbers() != (
        ca.private_key.public_key().public_numbers()
    ):
        raise CertificateError("CA private key does not match the CA certificate")


def generate_serving_certificate(
    ca: CertificateAuthority,
    primary_host: str,
    extra_sans: Sequence[str] = (),
    key_size: int = DEFAULT_SERVING_KEY_SIZE,
) -> ServingCertificate:
    """
    Generate a serving certificate signed by ``ca``.

    The certificate is valid for one year and is marked for both TLS server
    and TLS client authentication.

    Args:
        ca: Signing certificate authority
        primary_host: Callback host (name or IP) the certificate must cover
        extra_sans: Additional SAN entries, each classified as IP or DNS
        key_size: RSA key size in bits, at least 1024

    Returns:
        The generated ServingCertificate

    Raises:
        CertificateError: If the CA is unusable, or key generation or
            signing fails
    """
    if key_size < MIN_SERVING_KEY_SIZE:
        raise CertificateError(
            f"Serving key size {key_size} is below the minimum of "
            f"{MIN_SERVING_KEY_SIZE} bits"
        )

    _check_ca(ca)

    sans = subject_alternative_names(primary_host, extra_sans)
    subject = _common_name(primary_host)
    private_key = _generate_key(key_size)
    public_key = private_key.public_key()
    now = datetime.now(UTC)

    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(ca.certificate.subject)
        .public_key(public_key)
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + timedelta(days=CERTIFICATE_VALIDITY_DAYS))
        .add_extension(x509.SubjectAlternativeName(sans), critical=False)
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=True,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(
            x509.ExtendedKeyUsage(
                [ExtendedKeyUsageOID.SERVER_AUTH, ExtendedKeyUsageOID.CLIENT_AUTH]
            ),
            critical=False,
        )
        .add_extension(
            x509.SubjectKeyIdentifier.from_public_key(public_key), critical=False
        )
        .add_extension(_authority_key_identifier(ca), critical=False)
    )

    try:
        certificate = builder.sign(private_key=ca.private_key, algorithm=hashes.SHA256())
    except (ValueError, TypeError) as e:
        raise CertificateError(
            f"Failed to sign serving certificate for {primary_host}: {e}", cause=e
        ) from e

    logger.debug(
        f"Generated serving certificate for {primary_host} "
        f"with SANs {[str(san.value) for san in sans]}"
    )
    return ServingCertificate(certificate=certificate, private_key=private_key)


def load_certificate_authority(cert_pem: bytes, key_pem: bytes) -> CertificateAuthority:
    """
    Load an existing CA from PEM encoded certificate and key.

    Raises:
        CertificateError: If either buffer cannot be parsed or the key is not RSA
    """
    try:
        certificate = x509.load_pem_x509_certificate(cert_pem)
        private_key = serialization.load_pem_private_key(key_pem, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise CertificateError(f"Failed to load CA material: {e}", cause=e) from e

    if not isinstance(private_key, rsa.RSAPrivateKey):
        raise CertificateError("CA private key must be an RSA key")

    ca = CertificateAuthority(certificate=certificate, private_key=private_key)
    _check_ca(ca)
    return ca


def _private_key_to_pem(private_key: rsa.RSAPrivateKey) -> bytes:
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )


def pem_encode_certificate(certificate_der: bytes) -> bytes:
    """Wrap a DER certificate in a ``CERTIFICATE`` PEM block."""
    try:
        certificate = x509.load_der_x509_certificate(certificate_der)
    except ValueError as e:
        raise CertificateError(f"Invalid DER certificate: {e}", cause=e) from e
    return certificate.public_bytes(serialization.Encoding.PEM)


def pem_encode_private_key(private_key_der: bytes) -> bytes:
    """Wrap a DER (PKCS#1) RSA key in an ``RSA PRIVATE KEY`` PEM block."""
    try:
        private_key = serialization.load_der_private_key(private_key_der, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise CertificateError(f"Invalid DER private key: {e}", cause=e) from e
    if not isinstance(private_key, rsa.RSAPrivateKey):
        raise CertificateError("Only RSA private keys are supported")
    return _private_key_to_pem(private_key)


def pem_decode_certificate(certificate_pem: bytes) -> bytes:
    """Return the DER bytes of a PEM encoded certificate."""
    try:
        certificate = x509.load_pem_x509_certificate(certificate_pem)
    except ValueError as e:
        raise CertificateError(f"Invalid PEM certificate: {e}", cause=e) from e
    return certificate.public_bytes(serialization.Encoding.DER)


def pem_decode_private_key(private_key_pem: bytes) -> bytes:
    """Return the DER (PKCS#1) bytes of a PEM encoded RSA key."""
    try:
        private_key = serialization.load_pem_private_key(private_key_pem, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise CertificateError(f"Invalid PEM private key: {e}", cause=e) from e
    if not isinstance(private_key, rsa.RSAPrivateKey):
        raise CertificateError("Only RSA private keys are supported")
    return private_key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )
