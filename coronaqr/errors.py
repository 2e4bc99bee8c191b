"""Exceptions raised while decoding and verifying EUDCC QR payloads."""

from typing import Optional


class CoronaQRError(Exception):
    """Base exception for all decode and verification failures."""

    pass


class FormatError(CoronaQRError, ValueError):
    """Malformed input at one of the decoding stages.

    ``stage`` names where decoding stopped: ``prefix``, ``base45``,
    ``zlib``, ``cose`` or ``claims``. ``position`` is the index of the
    first offending character for base-45 alphabet violations.
    """

    def __init__(self, stage: str, details: str, position: Optional[int] = None):
        self.stage = stage
        self.details = details
        self.position = position
        super().__init__(f"{stage}: {details}")


class VerificationError(CoronaQRError):
    """Base exception for signature verification failures."""

    pass


class KeyNotFound(VerificationError):
    """The key provider has no key or certificate for the country/kid."""

    pass


class UnsupportedAlgorithm(VerificationError):
    """COSE algorithm is neither ES256 (-7) nor PS256 (-37)."""

    def __init__(self, algorithm: Optional[int]):
        self.algorithm = algorithm
        super().__init__(f"unknown alg: {algorithm}")


class SignatureInvalid(VerificationError):
    """Signature does not match the reconstructed Sig_structure."""

    pass


class CertificateExpired(VerificationError):
    """Signature is valid but the CWT expiration has passed."""

    def __init__(self, expiration):
        self.expiration = expiration
        super().__init__(f"certificate expired at {expiration.isoformat()}")
