"""Key lookup interfaces consumed by signature verification.

Providers are typically implemented on top of a trust list (JSON Web Key
Set, DID document) or by pinning a specific government certificate;
fetching and caching those is left to the caller.
"""

import hashlib
from typing import Protocol, Union, runtime_checkable

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import ec, rsa

PublicKey = Union[ec.EllipticCurvePublicKey, rsa.RSAPublicKey]

KID_LENGTH = 8


@runtime_checkable
class PublicKeyProvider(Protocol):
    def get_public_key(self, country: str, kid: bytes) -> PublicKey:
        """Return the public key for ``kid`` (or ``country``); raise if not found.

        ``country`` is an ISO 3166 alpha-2 code, e.g. CH. ``kid`` is the
        first 8 bytes of the SHA-256 digest of the DER-encoded certificate.
        """
        ...


@runtime_checkable
class CertificateProvider(Protocol):
    def get_certificate(self, country: str, kid: bytes) -> x509.Certificate:
        """Return the signer certificate for ``country``/``kid``; raise if not found."""
        ...


def calculate_kid(encoded_cert: bytes) -> bytes:
    """Key identifier of a DER-encoded certificate."""
    return hashlib.sha256(encoded_cert).digest()[:KID_LENGTH]
