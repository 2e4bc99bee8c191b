"""Decoder and verifier for EU Digital COVID Certificate (EUDCC) QR code data.

See https://github.com/eu-digital-green-certificates for the specs and test data.
"""

from coronaqr.cose import EnvelopeHeader, SigningEnvelope
from coronaqr.decoder import DEFAULT_DECODER, Decoder, Unverified, decode, default_expired
from coronaqr.errors import (
    CertificateExpired,
    CoronaQRError,
    FormatError,
    KeyNotFound,
    SignatureInvalid,
    UnsupportedAlgorithm,
    VerificationError,
)
from coronaqr.models import (
    ClaimSet,
    CovidCert,
    Decoded,
    Name,
    RecoveryRecord,
    TestRecord,
    VaccineRecord,
)
from coronaqr.providers import CertificateProvider, PublicKeyProvider, calculate_kid

__all__ = [
    "DEFAULT_DECODER",
    "CertificateExpired",
    "CertificateProvider",
    "ClaimSet",
    "CoronaQRError",
    "CovidCert",
    "Decoded",
    "Decoder",
    "EnvelopeHeader",
    "FormatError",
    "KeyNotFound",
    "Name",
    "PublicKeyProvider",
    "RecoveryRecord",
    "SignatureInvalid",
    "SigningEnvelope",
    "TestRecord",
    "UnsupportedAlgorithm",
    "Unverified",
    "VaccineRecord",
    "VerificationError",
    "calculate_kid",
    "decode",
    "default_expired",
]

__version__ = "0.1.0"
