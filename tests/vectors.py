"""Builders for signed EUDCC test vectors and in-memory key providers."""

import zlib
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import base45
import cbor2
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature
from cryptography.x509.oid import NameOID

from coronaqr.cose import ALG_ES256, ALG_PS256, sig_structure
from coronaqr.models import ClaimSet, CovidCert, Name, VaccineRecord
from coronaqr.providers import calculate_kid

ISSUED_AT = 1624458597  # 2021-06-23T14:29:57Z
FAR_FUTURE = 4102444800  # 2100-01-01T00:00:00Z
LONG_AGO = 1625063397  # 2021-06-30T14:29:57Z


def self_signed_certificate(private_key, common_name: str = "DSC Test", country: str = "CH") -> x509.Certificate:
    subject = x509.Name([
        x509.NameAttribute(NameOID.COUNTRY_NAME, country),
        x509.NameAttribute(NameOID.COMMON_NAME, common_name),
    ])
    now = datetime.now(timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(subject)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=365))
        .sign(private_key, hashes.SHA256())
    )


@dataclass
class Signer:
    private_key: Any
    certificate: x509.Certificate

    @classmethod
    def ec(cls) -> "Signer":
        key = ec.generate_private_key(ec.SECP256R1())
        return cls(key, self_signed_certificate(key, "DSC EC Test"))

    @classmethod
    def rsa(cls) -> "Signer":
        key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        return cls(key, self_signed_certificate(key, "DSC RSA Test"))

    @property
    def kid(self) -> bytes:
        return calculate_kid(self.certificate.public_bytes(serialization.Encoding.DER))

    @property
    def public_key(self):
        return self.private_key.public_key()

    def sign(self, to_be_signed: bytes, alg: int) -> bytes:
        if alg == ALG_ES256:
            der = self.private_key.sign(to_be_signed, ec.ECDSA(hashes.SHA256()))
            r, s = decode_dss_signature(der)
            return r.to_bytes(32, "big") + s.to_bytes(32, "big")
        if alg == ALG_PS256:
            return self.private_key.sign(
                to_be_signed,
                padding.PSS(mgf=padding.MGF1(hashes.SHA256()), salt_length=32),
                hashes.SHA256(),
            )
        raise ValueError(f"cannot sign with alg {alg}")


def sample_certificate() -> CovidCert:
    return CovidCert(
        version="1.3.0",
        name=Name(
            family_name="Musterfrau-Gößinger",
            family_name_std="MUSTERFRAU<GOESSINGER",
            given_name="Gabriele",
            given_name_std="GABRIELE",
        ),
        date_of_birth="1998-02-26",
        vaccinations=[
            VaccineRecord(
                target="840539006",
                vaccine="1119349007",
                product="EU/1/20/1528",
                manufacturer="ORG-100030215",
                doses=1,
                dose_series=2,
                date="2021-02-18",
                country="AT",
                issuer="Ministry of Health, Austria",
                certificate_id="URN:UVCI:01:AT:10807843F94AEE0EE5093FBC254BD813#B",
            )
        ],
    )


def sample_claims(expiration: int = FAR_FUTURE, **overrides) -> ClaimSet:
    values = dict(
        issuer="AT",
        issued_at=ISSUED_AT,
        expiration=expiration,
        hcert=sample_certificate(),
    )
    values.update(overrides)
    return ClaimSet(**values)


def make_cose(
    claims: ClaimSet,
    signer: Signer,
    alg: int = ALG_ES256,
    protected: Optional[Dict[int, Any]] = None,
    unprotected: Optional[Dict[int, Any]] = None,
    protected_bstr: Optional[bytes] = None,
    sign_alg: Optional[int] = None,
    tag: bool = True,
) -> bytes:
    """Encode and sign a COSE_Sign1 message carrying ``claims``."""
    if protected_bstr is None:
        if protected is None:
            protected = {1: alg, 4: signer.kid}
        protected_bstr = cbor2.dumps(protected) if protected else b""
    payload = cbor2.dumps(claims.to_cbor())
    signature = signer.sign(sig_structure(protected_bstr, payload), sign_alg or alg)
    message = [protected_bstr, unprotected or {}, payload, signature]
    return cbor2.dumps(cbor2.CBORTag(18, message) if tag else message)


def replace_signature(cose: bytes, signature: bytes) -> bytes:
    message = cbor2.loads(cose)
    if isinstance(message, cbor2.CBORTag):
        message = message.value
    message = list(message)
    message[3] = signature
    return cbor2.dumps(cbor2.CBORTag(18, message))


def signature_of(cose: bytes) -> bytes:
    message = cbor2.loads(cose)
    if isinstance(message, cbor2.CBORTag):
        message = message.value
    return message[3]


def to_qr(data: bytes, prefix: str = "HC1:", compress: bool = True) -> str:
    """Compress and Base45-encode COSE bytes into QR text."""
    if compress:
        data = zlib.compress(data, 9)
    return prefix + base45.b45encode(data).decode("ascii")


class KeyProvider:
    """Looks up bare public keys by kid."""

    def __init__(self, *signers: Signer):
        self.keys = {s.kid: s.public_key for s in signers}
        self.lookups = []

    def get_public_key(self, country: str, kid: bytes):
        self.lookups.append((country, kid))
        try:
            return self.keys[kid]
        except KeyError:
            raise LookupError(f"no public key for kid {kid.hex()}")


class PinnedCertificateProvider(KeyProvider):
    """Pins signer certificates and serves both keys and certificates."""

    def __init__(self, *signers: Signer, missing_certificates: bool = False):
        super().__init__(*signers)
        self.certificates = {} if missing_certificates else {s.kid: s.certificate for s in signers}

    def get_certificate(self, country: str, kid: bytes) -> x509.Certificate:
        try:
            return self.certificates[kid]
        except KeyError:
            raise LookupError(f"no certificate for kid {kid.hex()}")
