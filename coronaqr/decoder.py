"""EUDCC decoder: QR text to an Unverified handle, and on to a Decoded record."""

import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from cryptography import x509

from .cose import SigningEnvelope, decode_cose_sign1, decode_payload, scheme_for, verify_signature
from .errors import CertificateExpired, KeyNotFound
from .models import ClaimSet, CovidCert, Decoded
from .providers import CertificateProvider, PublicKeyProvider
from .transport import base45_decode, decompress, unprefix

logger = logging.getLogger(__name__)

# Country passed to key providers; not yet derived from the claims.
DEFAULT_COUNTRY = os.getenv("COVIDQR_COUNTRY", "CH")

ExpiryPolicy = Callable[[datetime], bool]

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def default_expired(expiration: datetime) -> bool:
    """Expired once the current wall-clock time is after ``expiration``."""
    return datetime.now(timezone.utc) > expiration


def to_datetime(timestamp: Optional[int]) -> datetime:
    """Convert a CWT NumericDate to an aware UTC datetime; absent means the epoch.

    Decoded claims are range-checked, so this never overflows for them.
    """
    return EPOCH + timedelta(seconds=timestamp or 0)


def assemble(claims: ClaimSet, signed_by: Optional[x509.Certificate] = None) -> Decoded:
    """Build the public record, preferring the light certificate when it carries data."""
    cert = claims.hcert
    if claims.light_cert is not None and not claims.light_cert.is_empty():
        cert = claims.light_cert
    if cert is None:
        cert = CovidCert()
    return Decoded(
        certificate=cert,
        issued_at=to_datetime(claims.issued_at),
        expiration=to_datetime(claims.expiration),
        signed_by=signed_by,
    )


class Unverified:
    """A decoded EUDCC whose signature has not been checked yet."""

    def __init__(self, envelope: SigningEnvelope, claims: ClaimSet, decoder: "Decoder"):
        self._envelope = envelope
        self._claims = claims
        self._decoder = decoder

    @property
    def envelope(self) -> SigningEnvelope:
        return self._envelope

    @property
    def claims(self) -> ClaimSet:
        return self._claims

    @property
    def key_id(self) -> Optional[bytes]:
        return self._envelope.key_id

    @property
    def algorithm(self) -> Optional[int]:
        return self._envelope.algorithm

    def skip_verification(self) -> Decoded:
        """Return the certificate data without any cryptographic check."""
        return assemble(self._claims)

    def verify(self, provider: PublicKeyProvider) -> Decoded:
        """Check the signature and expiry, returning the verified certificate.

        ``provider`` may additionally implement ``CertificateProvider``, in
        which case the signer certificate ends up in ``Decoded.signed_by``.
        """
        envelope = self._envelope
        kid = envelope.key_id or b""
        alg = envelope.algorithm
        country = self._decoder.country
        logger.info(f"[verify] Looking for KID: hex={kid.hex()} country={country} alg={alg}")

        try:
            public_key = provider.get_public_key(country, kid)
        except KeyNotFound:
            raise
        except Exception as e:
            logger.warning(f"[verify] No public key for KID {kid.hex()}: {e}")
            raise KeyNotFound(f"public key for {country}/{kid.hex()}: {e}") from e

        signed_by = None
        if isinstance(provider, CertificateProvider):
            try:
                signed_by = provider.get_certificate(country, kid)
            except KeyNotFound:
                raise
            except Exception as e:
                logger.warning(f"[verify] No certificate for KID {kid.hex()}: {e}")
                raise KeyNotFound(f"certificate for {country}/{kid.hex()}: {e}") from e

        scheme = scheme_for(alg)
        verify_signature(public_key, scheme, envelope)
        logger.info(f"[verify] {scheme.name} signature valid with KID: {kid.hex()}")

        expiration = to_datetime(self._claims.expiration)
        if self._decoder.expired(expiration):
            logger.warning(f"[verify] Certificate expired at {expiration.isoformat()}")
            raise CertificateExpired(expiration)

        return assemble(self._claims, signed_by)


class Decoder:
    """EU Digital COVID Certificate (EUDCC) decoder.

    ``expired`` overrides the expiry check applied by ``Unverified.verify``;
    ``country`` is handed to the key provider on every lookup.
    """

    def __init__(self, expired: Optional[ExpiryPolicy] = None, country: str = DEFAULT_COUNTRY):
        self.expired = expired or default_expired
        self.country = country

    def decode(self, qr_data: str) -> Unverified:
        """Decode the specified EUDCC QR code text."""
        logger.debug(f"[hcert] Raw input length={len(qr_data)}")
        unprefixed = unprefix(qr_data)
        compressed = base45_decode(unprefixed)
        cose_data = decompress(compressed)
        envelope = decode_cose_sign1(cose_data)
        claims = ClaimSet.from_cbor(decode_payload(envelope.payload))
        logger.debug(f"[hcert] COSE decoded: iss={claims.issuer} alg={envelope.algorithm}")
        return Unverified(envelope, claims, self)


# Ready-to-use decoder with the default expiry policy.
DEFAULT_DECODER = Decoder()


def decode(qr_data: str) -> Unverified:
    """Decode the specified EUDCC QR code text with the default decoder."""
    return DEFAULT_DECODER.decode(qr_data)
