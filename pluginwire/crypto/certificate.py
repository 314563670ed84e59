"""Per-process TLS identity and host certificate handling.

The server key pair is ECDSA P-384 with a self-signed certificate valid for
``localhost``; it is generated at startup and never written to disk. The host
hands its own certificate over in ``PLUGIN_CLIENT_CERT`` and expects ours back
on the negotiation line as unpadded base64 DER.
"""

from __future__ import annotations

import base64
import datetime as dt
from dataclasses import dataclass

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import Encoding, NoEncryption, PrivateFormat
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID
from loguru import logger

from pluginwire.utils.exceptions import StartupFailure

DEFAULT_COMMON_NAME = "localhost"
DEFAULT_ORGANIZATION = "pluginwire"
# same lifetime go-plugin hosts use for their own certificates
DEFAULT_VALIDITY = dt.timedelta(hours=262980)
_CLOCK_SKEW = dt.timedelta(seconds=30)


@dataclass(frozen=True, slots=True)
class Identity:
    """A private key with its self-signed certificate, both PEM encoded."""

    private_key_pem: bytes
    certificate_pem: bytes
    certificate_der: bytes


@dataclass(frozen=True, slots=True)
class TrustMaterial:
    """Server identity plus the (optional) certificate the host trusts us with."""

    server: Identity
    client_certificate_pem: bytes | None = None

    @property
    def mutual(self) -> bool:
        return bool(self.client_certificate_pem)

    @property
    def handshake_certificate(self) -> str:
        return encode_handshake_certificate(self.server.certificate_der)


def generate_identity(
    common_name: str = DEFAULT_COMMON_NAME,
    organization: str = DEFAULT_ORGANIZATION,
    validity: dt.timedelta = DEFAULT_VALIDITY,
) -> Identity:
    """Generate a fresh key pair and self-signed certificate usable for client and server auth."""
    try:
        key = ec.generate_private_key(ec.SECP384R1())
        subject = x509.Name(
            [
                x509.NameAttribute(NameOID.ORGANIZATION_NAME, organization),
                x509.NameAttribute(NameOID.COMMON_NAME, common_name),
            ]
        )
        now = dt.datetime.now(dt.timezone.utc)
        cert = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(subject)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - _CLOCK_SKEW)
            .not_valid_after(now + validity)
            .add_extension(x509.SubjectAlternativeName([x509.DNSName(common_name)]), critical=False)
            .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
            .add_extension(
                x509.KeyUsage(
                    digital_signature=True,
                    content_commitment=False,
                    key_encipherment=True,
                    data_encipherment=False,
                    key_agreement=True,
                    key_cert_sign=True,
                    crl_sign=False,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=True,
            )
            .add_extension(
                x509.ExtendedKeyUsage([ExtendedKeyUsageOID.CLIENT_AUTH, ExtendedKeyUsageOID.SERVER_AUTH]),
                critical=False,
            )
            .sign(key, hashes.SHA384())
        )
    except (ValueError, TypeError) as exc:
        raise StartupFailure(f"Failed to generate the plugin TLS certificate: {exc}", code="CERT_GENERATION_FAILED") from exc
    key_pem = key.private_bytes(Encoding.PEM, PrivateFormat.PKCS8, NoEncryption())
    return Identity(
        private_key_pem=key_pem,
        certificate_pem=cert.public_bytes(Encoding.PEM),
        certificate_der=cert.public_bytes(Encoding.DER),
    )


def load_client_certificate(pem: str | bytes) -> x509.Certificate:
    """Parse the host's certificate; malformed material is fatal at startup."""
    data = pem.encode("utf-8") if isinstance(pem, str) else pem
    try:
        cert = x509.load_pem_x509_certificate(data.strip() + b"\n")
    except ValueError as exc:
        raise StartupFailure(
            "The plugin could not read the client certificate passed in PLUGIN_CLIENT_CERT: "
            f"{exc}. The host may be incompatible with this plugin.",
            code="CLIENT_CERT_INVALID",
        ) from exc
    now = dt.datetime.now(dt.timezone.utc)
    if not cert.not_valid_before_utc - _CLOCK_SKEW <= now <= cert.not_valid_after_utc:
        logger.warning(
            "Client certificate is outside its validity window ({} - {})",
            cert.not_valid_before_utc.isoformat(),
            cert.not_valid_after_utc.isoformat(),
        )
    return cert


def build_trust_material(client_certificate: str | None, common_name: str = DEFAULT_COMMON_NAME) -> TrustMaterial:
    """Create this process's TrustMaterial from the inherited client certificate (if any)."""
    client_pem: bytes | None = None
    if client_certificate and client_certificate.strip():
        cert = load_client_certificate(client_certificate)
        client_pem = cert.public_bytes(Encoding.PEM)
        logger.debug("Loaded client certificate subject={}", cert.subject.rfc4514_string())
    else:
        logger.warning("No client certificate provided; serving TLS without client authentication")
    return TrustMaterial(server=generate_identity(common_name=common_name), client_certificate_pem=client_pem)


def encode_handshake_certificate(der: bytes) -> str:
    """Standard base64 without '=' padding; the host parser rejects padding characters."""
    return base64.b64encode(der).rstrip(b"=").decode("ascii")


def decode_handshake_certificate(text: str) -> bytes:
    pad = -len(text) % 4
    try:
        return base64.b64decode(text + "=" * pad, validate=True)
    except ValueError as exc:
        raise ValueError(f"invalid certificate encoding: {exc}") from exc


def handshake_certificate_to_pem(text: str) -> bytes:
    """Rebuild a PEM certificate from the negotiation line field."""
    cert = x509.load_der_x509_certificate(decode_handshake_certificate(text))
    return cert.public_bytes(Encoding.PEM)
