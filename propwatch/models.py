from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class SessionStatus(Enum):
    UNAUTHENTICATED = "unauthenticated"
    PENDING = "pending"
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"


# verification_status values as sent by the service
SUSPICIOUS = "suspicious"
CONFIRMED_FRAUD = "confirmed_fraud"
NOT_FRAUD = "not_fraud"
VERIFICATION_ERROR = "error"

RISK_LEVELS = ("CRITICAL", "HIGH", "MEDIUM", "LOW")


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


@dataclass(frozen=True)
class Identity:
    subject_id: str
    agency_id: str
    agency_name: str


@dataclass(frozen=True)
class Session:
    raw_token: str = ""
    subject_id: str = ""
    agency_id: str = ""
    agency_name: str = ""
    expires_at: Optional[datetime] = None
    status: SessionStatus = SessionStatus.UNAUTHENTICATED

    @property
    def identity(self) -> Optional[Identity]:
        if self.status is not SessionStatus.AUTHENTICATED:
            return None
        return Identity(self.subject_id, self.agency_id, self.agency_name)


@dataclass(frozen=True)
class UploadStats:
    upload_id: str
    status: str
    records_processed: int
    records_skipped: int
    message: str = ""

    @classmethod
    def from_api(cls, data: Dict) -> "UploadStats":
        return cls(
            upload_id=str(data.get("upload_id", "")),
            status=data.get("status", ""),
            records_processed=int(data.get("records_processed") or 0),
            records_skipped=int(data.get("records_skipped") or 0),
            message=data.get("message", "") or "",
        )


@dataclass(frozen=True)
class UploadJob:
    id: str
    filename: str
    source_year: int
    status: str  # uploaded|processing|completed|failed
    records_processed: int
    records_skipped: int
    uploaded_at: Optional[datetime]
    source_month: Optional[int] = None
    error_message: Optional[str] = None
    processed_at: Optional[datetime] = None

    @classmethod
    def from_api(cls, data: Dict) -> "UploadJob":
        month = data.get("month")
        return cls(
            id=str(data.get("upload_id") or data.get("id", "")),
            filename=data.get("filename", ""),
            source_year=int(data.get("year") or 0),
            source_month=int(month) if month else None,
            status=data.get("status", ""),
            records_processed=int(data.get("records_processed") or 0),
            records_skipped=int(data.get("records_skipped") or 0),
            error_message=data.get("error_message"),
            uploaded_at=_parse_timestamp(data.get("uploaded_at")),
            processed_at=_parse_timestamp(data.get("processed_at")),
        )


@dataclass(frozen=True)
class FraudReport:
    id: str
    property_address: str
    client_name: str
    confidence_score: float
    verification_status: str
    risk_level: Optional[str] = None
    official_record_price: Optional[float] = None
    property_listing_id: str = ""
    withdrawn_date: str = ""
    official_transfer_date: Optional[str] = None
    official_postcode: Optional[str] = None
    official_full_address: Optional[str] = None
    address_similarity: float = 0.0
    verified_owner_name: Optional[str] = None
    is_confirmed_fraud: bool = False
    detected_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None

    @classmethod
    def from_api(cls, data: Dict) -> "FraudReport":
        risk = data.get("risk_level")
        return cls(
            id=str(data["id"]),
            property_address=data.get("property_address", ""),
            client_name=data.get("client_name", ""),
            confidence_score=float(data.get("confidence_score") or 0.0),
            verification_status=data.get("verification_status", SUSPICIOUS),
            risk_level=risk.upper() if risk else None,
            official_record_price=data.get("ppd_price"),
            property_listing_id=str(data.get("property_listing_id", "")),
            withdrawn_date=data.get("withdrawn_date", "") or "",
            official_transfer_date=data.get("ppd_transfer_date"),
            official_postcode=data.get("ppd_postcode"),
            official_full_address=data.get("ppd_full_address"),
            address_similarity=float(data.get("address_similarity") or 0.0),
            verified_owner_name=data.get("verified_owner_name"),
            is_confirmed_fraud=bool(data.get("is_confirmed_fraud", False)),
            detected_at=_parse_timestamp(data.get("detected_at")),
            verified_at=_parse_timestamp(data.get("verified_at")),
        )


@dataclass(frozen=True)
class VerificationResult:
    confirmed_fraud: int
    not_fraud: int
    errors: int

    @property
    def total(self) -> int:
        return self.confirmed_fraud + self.not_fraud + self.errors

    @classmethod
    def from_api(cls, data: Dict) -> "VerificationResult":
        return cls(
            confirmed_fraud=int(data.get("confirmed_fraud") or 0),
            not_fraud=int(data.get("not_fraud") or 0),
            errors=int(data.get("errors") or 0),
        )


@dataclass(frozen=True)
class PropertyListing:
    id: str
    address: str
    postcode: str
    client_name: str
    status: str
    withdrawn_date: str
    created_at: Optional[datetime] = None

    @classmethod
    def from_api(cls, data: Dict) -> "PropertyListing":
        return cls(
            id=str(data["id"]),
            address=data.get("address", ""),
            postcode=data.get("postcode", ""),
            client_name=data.get("client_name", ""),
            status=data.get("status", ""),
            withdrawn_date=data.get("withdrawn_date", "") or "",
            created_at=_parse_timestamp(data.get("created_at")),
        )


@dataclass(frozen=True)
class ImportResult:
    imported: int
    errors: List[str] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: Dict) -> "ImportResult":
        imported = data.get("imported")
        if imported is None:
            imported = data.get("imported_count", 0)
        return cls(imported=int(imported or 0), errors=[str(e) for e in data.get("errors") or []])


@dataclass(frozen=True)
class AgencyStats:
    total_listings: int
    suspicious_matches: int
    confirmed_fraud: int
    potential_savings: float

    @classmethod
    def from_api(cls, data: Dict) -> "AgencyStats":
        return cls(
            total_listings=int(data.get("total_listings") or 0),
            suspicious_matches=int(data.get("suspicious_matches") or 0),
            confirmed_fraud=int(data.get("confirmed_fraud") or 0),
            potential_savings=float(data.get("potential_savings") or 0),
        )


@dataclass(frozen=True)
class AltoAgency:
    id: str
    name: str
    username: str
    alto_env: str
    alto_status: str
    alto_agency_ref: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict) -> "AltoAgency":
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            username=data.get("username", ""),
            alto_env=data.get("alto_env", ""),
            alto_status=data.get("alto_status", ""),
            alto_agency_ref=data.get("alto_agency_ref"),
        )
