"""TLS identity generation and host certificate handling."""

from .certificate import (
    Identity,
    TrustMaterial,
    build_trust_material,
    decode_handshake_certificate,
    encode_handshake_certificate,
    generate_identity,
    handshake_certificate_to_pem,
    load_client_certificate,
)

__all__ = [
    "Identity",
    "TrustMaterial",
    "build_trust_material",
    "generate_identity",
    "load_client_certificate",
    "encode_handshake_certificate",
    "decode_handshake_certificate",
    "handshake_certificate_to_pem",
]
