"""EUDCC record types and their CBOR field mappings.

Field names follow the ehn-dcc-schema (release 1.3.0); the CBOR key of
each field is carried in its dataclass metadata. Absent fields decode to
``None`` and are omitted again when encoding.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, Dict, List, Optional

from cryptography import x509

from .errors import FormatError

# CWT claim labels (RFC 8392) and the HCERT container labels
CWT_ISS = 1
CWT_SUB = 2
CWT_AUD = 3
CWT_EXP = 4
CWT_NBF = 5
CWT_IAT = 6
CWT_CTI = 7
CWT_HCERT = -260
CWT_LIGHT_CERT = -250
HCERT_DCC = 1

# NumericDate range representable as a datetime: 0001-01-01T00:00:00Z to 9999-12-31T23:59:59Z
MIN_NUMERIC_DATE = -62135596800
MAX_NUMERIC_DATE = 253402300799


def wire(key: Any, kind: type = str):
    """Declare a dataclass field stored under ``key`` on the wire."""
    return field(default=None, metadata={"cbor": key, "kind": kind})


def check_type(value: Any, kind: type, where: str) -> Any:
    """Return ``value`` if it has the wire type ``kind``, else raise FormatError."""
    if value is None:
        return None
    if kind is float:
        # int per the schema, but float e.g. in IE
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    elif kind is int:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    elif isinstance(value, kind):
        return value
    raise FormatError("claims", f"{where}: expected {kind.__name__}, got {type(value).__name__}")


def check_map(value: Any, where: str) -> Mapping:
    if not isinstance(value, Mapping):
        raise FormatError("claims", f"{where}: expected map, got {type(value).__name__}")
    return value


def check_numeric_date(value: Any, where: str) -> Optional[int]:
    value = check_type(value, int, where)
    if value is not None and not MIN_NUMERIC_DATE <= value <= MAX_NUMERIC_DATE:
        raise FormatError("claims", f"{where}: timestamp {value} out of range")
    return value


class WireRecord:
    """Flat record whose fields all carry ``wire()`` metadata."""

    @classmethod
    def from_cbor(cls, data: Any, where: str = ""):
        where = where or cls.__name__
        data = check_map(data, where)
        values = {}
        for f in fields(cls):
            key = f.metadata["cbor"]
            values[f.name] = check_type(data.get(key), f.metadata["kind"], f"{where}.{key}")
        return cls(**values)

    def to_cbor(self) -> Dict[Any, Any]:
        out = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is not None:
                out[f.metadata["cbor"]] = value
        return out


@dataclass
class Name(WireRecord):
    family_name: Optional[str] = wire("fn")
    family_name_std: Optional[str] = wire("fnt")
    given_name: Optional[str] = wire("gn")
    given_name_std: Optional[str] = wire("gnt")


@dataclass
class VaccineRecord(WireRecord):
    target: Optional[str] = wire("tg")
    vaccine: Optional[str] = wire("vp")
    product: Optional[str] = wire("mp")
    manufacturer: Optional[str] = wire("ma")
    doses: Optional[float] = wire("dn", float)
    dose_series: Optional[float] = wire("sd", float)
    date: Optional[str] = wire("dt")
    country: Optional[str] = wire("co")
    issuer: Optional[str] = wire("is")
    certificate_id: Optional[str] = wire("ci")


@dataclass
class TestRecord(WireRecord):
    target: Optional[str] = wire("tg")
    test_type: Optional[str] = wire("tt")
    # NAA test name
    name: Optional[str] = wire("nm")
    # RAT test name and manufacturer
    manufacturer: Optional[str] = wire("ma")
    sample_datetime: Optional[str] = wire("sc")
    test_result: Optional[str] = wire("tr")
    testing_centre: Optional[str] = wire("tc")
    country: Optional[str] = wire("co")
    issuer: Optional[str] = wire("is")
    certificate_id: Optional[str] = wire("ci")


@dataclass
class RecoveryRecord(WireRecord):
    target: Optional[str] = wire("tg")
    # ISO 8601 complete dates
    first_positive_test_date: Optional[str] = wire("fr")
    valid_from_date: Optional[str] = wire("df")
    valid_until_date: Optional[str] = wire("du")
    country: Optional[str] = wire("co")
    issuer: Optional[str] = wire("is")
    certificate_id: Optional[str] = wire("ci")


def records_from_cbor(cls, value: Any, where: str) -> list:
    if value is None:
        return []
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes, bytearray)):
        raise FormatError("claims", f"{where}: expected array, got {type(value).__name__}")
    return [cls.from_cbor(item, f"{where}[{i}]") for i, item in enumerate(value)]


@dataclass
class CovidCert:
    """The DCC itself: holder, date of birth and vaccination/test/recovery entries."""

    version: Optional[str] = None
    name: Name = field(default_factory=Name)
    date_of_birth: Optional[str] = None
    vaccinations: List[VaccineRecord] = field(default_factory=list)
    tests: List[TestRecord] = field(default_factory=list)
    recoveries: List[RecoveryRecord] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.version

    @classmethod
    def from_cbor(cls, data: Any, where: str = "dcc") -> "CovidCert":
        data = check_map(data, where)
        name = data.get("nam")
        return cls(
            version=check_type(data.get("ver"), str, f"{where}.ver"),
            name=Name.from_cbor(name, f"{where}.nam") if name is not None else Name(),
            date_of_birth=check_type(data.get("dob"), str, f"{where}.dob"),
            vaccinations=records_from_cbor(VaccineRecord, data.get("v"), f"{where}.v"),
            tests=records_from_cbor(TestRecord, data.get("t"), f"{where}.t"),
            recoveries=records_from_cbor(RecoveryRecord, data.get("r"), f"{where}.r"),
        )

    def to_cbor(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if self.version is not None:
            out["ver"] = self.version
        name = self.name.to_cbor()
        if name:
            out["nam"] = name
        if self.date_of_birth is not None:
            out["dob"] = self.date_of_birth
        if self.vaccinations:
            out["v"] = [v.to_cbor() for v in self.vaccinations]
        if self.tests:
            out["t"] = [t.to_cbor() for t in self.tests]
        if self.recoveries:
            out["r"] = [r.to_cbor() for r in self.recoveries]
        return out


def hcert_from_cbor(value: Any, where: str) -> Optional[CovidCert]:
    if value is None:
        return None
    container = check_map(value, where)
    if HCERT_DCC not in container:
        return None
    return CovidCert.from_cbor(container[HCERT_DCC], f"{where}/{HCERT_DCC}")


@dataclass
class ClaimSet:
    """CWT claims carried in the COSE payload, keyed by integer label."""

    issuer: Optional[str] = None
    subject: Optional[str] = None
    audience: Optional[str] = None
    expiration: Optional[int] = None
    not_before: Optional[int] = None
    issued_at: Optional[int] = None
    cwt_id: Optional[bytes] = None
    hcert: Optional[CovidCert] = None
    light_cert: Optional[CovidCert] = None

    @classmethod
    def from_cbor(cls, data: Any) -> "ClaimSet":
        data = check_map(data, "payload")
        return cls(
            issuer=check_type(data.get(CWT_ISS), str, "iss"),
            subject=check_type(data.get(CWT_SUB), str, "sub"),
            audience=check_type(data.get(CWT_AUD), str, "aud"),
            expiration=check_numeric_date(data.get(CWT_EXP), "exp"),
            not_before=check_numeric_date(data.get(CWT_NBF), "nbf"),
            issued_at=check_numeric_date(data.get(CWT_IAT), "iat"),
            cwt_id=check_type(data.get(CWT_CTI), bytes, "cti"),
            hcert=hcert_from_cbor(data.get(CWT_HCERT), str(CWT_HCERT)),
            light_cert=hcert_from_cbor(data.get(CWT_LIGHT_CERT), str(CWT_LIGHT_CERT)),
        )

    def to_cbor(self) -> Dict[int, Any]:
        out: Dict[int, Any] = {}
        for label, value in (
            (CWT_ISS, self.issuer),
            (CWT_SUB, self.subject),
            (CWT_AUD, self.audience),
            (CWT_EXP, self.expiration),
            (CWT_NBF, self.not_before),
            (CWT_IAT, self.issued_at),
            (CWT_CTI, self.cwt_id),
        ):
            if value is not None:
                out[label] = value
        if self.hcert is not None:
            out[CWT_HCERT] = {HCERT_DCC: self.hcert.to_cbor()}
        if self.light_cert is not None:
            out[CWT_LIGHT_CERT] = {HCERT_DCC: self.light_cert.to_cbor()}
        return out


@dataclass
class Decoded:
    """A decoded, and possibly verified, EU Digital COVID Certificate."""

    certificate: CovidCert
    issued_at: datetime
    expiration: datetime
    # Set only by a successful verify() against a provider that also
    # supplies certificates (as opposed to bare public keys).
    signed_by: Optional[x509.Certificate] = None
