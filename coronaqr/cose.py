"""COSE_Sign1 envelope decoding and signature verification.

The Sig_structure is built from the protected header bytes exactly as
received. Generic COSE libraries re-encode the protected header first,
which does not pass issuers using a non-canonical CBOR encoding
(e.g. dgc-testdata common/2DCode/raw/CO1.json).
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import cbor2
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed, encode_dss_signature

from .errors import FormatError, SignatureInvalid, UnsupportedAlgorithm

logger = logging.getLogger(__name__)

# COSE header labels, see https://www.iana.org/assignments/cose/cose.xhtml
HEADER_ALG = 1
HEADER_KID = 4
HEADER_IV = 5

# COSE algorithm identifiers
ALG_ES256 = -7
ALG_PS256 = -37


@dataclass(frozen=True)
class EnvelopeHeader:
    algorithm: Optional[int] = None
    key_id: Optional[bytes] = None
    iv: Optional[bytes] = None

    @classmethod
    def from_cbor(cls, data: Any, where: str) -> "EnvelopeHeader":
        if not isinstance(data, Mapping):
            raise FormatError("cose", f"{where} header: expected map, got {type(data).__name__}")
        alg = data.get(HEADER_ALG)
        kid = data.get(HEADER_KID)
        iv = data.get(HEADER_IV)
        if alg is not None and (isinstance(alg, bool) or not isinstance(alg, int)):
            raise FormatError("cose", f"{where} header: alg must be an integer, got {type(alg).__name__}")
        if kid is not None and not isinstance(kid, bytes):
            raise FormatError("cose", f"{where} header: kid must be a byte string, got {type(kid).__name__}")
        if iv is not None and not isinstance(iv, bytes):
            raise FormatError("cose", f"{where} header: IV must be a byte string, got {type(iv).__name__}")
        return cls(algorithm=alg, key_id=kid, iv=iv)


@dataclass(frozen=True)
class SigningEnvelope:
    """A COSE_Sign1 message; ``protected`` holds the header bytes as received."""

    protected: bytes
    unprotected: EnvelopeHeader
    payload: bytes
    signature: bytes
    protected_header: EnvelopeHeader = field(default_factory=EnvelopeHeader)

    @property
    def key_id(self) -> Optional[bytes]:
        """Key identifier from the protected header, else the unprotected one."""
        return self.protected_header.key_id or self.unprotected.key_id

    @property
    def algorithm(self) -> Optional[int]:
        """Algorithm from the protected header, else the unprotected one."""
        return self.protected_header.algorithm or self.unprotected.algorithm


def unwrap_cbor_tags(data: Any) -> Any:
    """Recursively unwrap CBOR tags until we get to the actual data."""
    while isinstance(data, cbor2.CBORTag):
        logger.debug(f"[cose] Unwrapping CBOR Tag {data.tag}")
        data = data.value
    return data


def is_cbor_array(value: Any) -> bool:
    """True for decoded CBOR arrays; cbor2 6 yields tuples inside tags."""
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


def decode_cose_sign1(data: bytes) -> SigningEnvelope:
    """Decode COSE_Sign1 structure."""
    try:
        cbor_data = cbor2.loads(data)
    except cbor2.CBORDecodeError as e:
        raise FormatError("cose", f"cbor2.loads: {e}") from e
    return envelope_from_cbor(cbor_data)


def envelope_from_cbor(cbor_data: Any) -> SigningEnvelope:
    """Build a SigningEnvelope from an already decoded (possibly tagged) COSE_Sign1 value."""
    cbor_data = unwrap_cbor_tags(cbor_data)
    if not is_cbor_array(cbor_data) or len(cbor_data) != 4:
        size = len(cbor_data) if is_cbor_array(cbor_data) else "N/A"
        raise FormatError(
            "cose",
            f"Invalid COSE_Sign1 structure: expected 4-element array, got {type(cbor_data).__name__} with {size} elements",
        )

    protected_bstr, unprotected_map, payload_bstr, signature_bstr = cbor_data
    for label, value in (("protected", protected_bstr), ("payload", payload_bstr), ("signature", signature_bstr)):
        if not isinstance(value, bytes):
            raise FormatError("cose", f"{label}: expected byte string, got {type(value).__name__}")

    protected_header = EnvelopeHeader()
    if protected_bstr:
        try:
            protected_map = cbor2.loads(protected_bstr)
        except cbor2.CBORDecodeError as e:
            raise FormatError("cose", f"cbor2.loads(protected): {e}") from e
        protected_header = EnvelopeHeader.from_cbor(protected_map, "protected")

    if unprotected_map is None:
        unprotected_map = {}
    unprotected = EnvelopeHeader.from_cbor(unprotected_map, "unprotected")

    return SigningEnvelope(
        protected=protected_bstr,
        unprotected=unprotected,
        payload=payload_bstr,
        signature=signature_bstr,
        protected_header=protected_header,
    )


def decode_payload(payload: bytes) -> Any:
    """Decode the CWT payload bytes into a CBOR map."""
    try:
        return cbor2.loads(payload)
    except cbor2.CBORDecodeError as e:
        raise FormatError("claims", f"cbor2.loads(payload): {e}") from e


def sig_structure(protected_bstr: bytes, payload_bstr: bytes) -> bytes:
    """Build the COSE Sig_structure for a Sign1 message (RFC 8152, section 4.4)."""
    return cbor2.dumps(["Signature1", protected_bstr, b"", payload_bstr], canonical=True)


def hash_sig_structure(to_be_signed: bytes, algorithm: hashes.HashAlgorithm) -> bytes:
    digest = hashes.Hash(algorithm)
    digest.update(to_be_signed)
    return digest.finalize()


def _verify_es256(public_key, digest: bytes, signature: bytes) -> None:
    if not isinstance(public_key, ec.EllipticCurvePublicKey):
        raise SignatureInvalid(f"ES256 requires an EC public key, got {type(public_key).__name__}")
    # Convert raw r||s to DER for cryptography
    if len(signature) == 0 or len(signature) % 2 != 0:
        raise SignatureInvalid(f"Unexpected ECDSA signature length: {len(signature)}")
    half = len(signature) // 2
    r = int.from_bytes(signature[:half], "big")
    s = int.from_bytes(signature[half:], "big")
    der_sig = encode_dss_signature(r, s)
    public_key.verify(der_sig, digest, ec.ECDSA(Prehashed(hashes.SHA256())))


def _verify_ps256(public_key, digest: bytes, signature: bytes) -> None:
    if not isinstance(public_key, rsa.RSAPublicKey):
        raise SignatureInvalid(f"PS256 requires an RSA public key, got {type(public_key).__name__}")
    public_key.verify(
        signature,
        digest,
        padding.PSS(mgf=padding.MGF1(hashes.SHA256()), salt_length=padding.PSS.AUTO),
        Prehashed(hashes.SHA256()),
    )


@dataclass(frozen=True)
class SignatureScheme:
    name: str
    hash_algorithm: hashes.HashAlgorithm
    verify: Callable[[Any, bytes, bytes], None]


SCHEMES: Dict[int, SignatureScheme] = {
    ALG_ES256: SignatureScheme("ES256", hashes.SHA256(), _verify_es256),
    ALG_PS256: SignatureScheme("PS256", hashes.SHA256(), _verify_ps256),
}


def scheme_for(algorithm: Optional[int]) -> SignatureScheme:
    """Map a COSE algorithm identifier to a supported signature scheme."""
    scheme = SCHEMES.get(algorithm)
    if scheme is None:
        raise UnsupportedAlgorithm(algorithm)
    return scheme


def verify_signature(public_key, scheme: SignatureScheme, envelope: SigningEnvelope) -> None:
    """Verify the envelope signature; raises SignatureInvalid on mismatch."""
    to_be_signed = sig_structure(envelope.protected, envelope.payload)
    digest = hash_sig_structure(to_be_signed, scheme.hash_algorithm)
    logger.debug(f"[verify] {scheme.name} Sig_structure bytes={len(to_be_signed)} digest={digest.hex()}")
    try:
        scheme.verify(public_key, digest, envelope.signature)
    except InvalidSignature as e:
        raise SignatureInvalid(f"{scheme.name} signature verification failed") from e
