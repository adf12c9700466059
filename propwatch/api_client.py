import json
import logging
from typing import Any, Dict, List, Optional, Sequence

import requests

from propwatch.errors import AuthError, NetworkError, RemoteError
from propwatch.models import (
    AgencyStats,
    AltoAgency,
    FraudReport,
    ImportResult,
    PropertyListing,
    UploadJob,
    UploadStats,
    VerificationResult,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8000/api/v1"

ENDPOINTS = {
    "login": "/auth/login",
    "signup": "/auth/signup",
    "logout": "/auth/logout",
    "me": "/auth/me",
    "agency_stats": "/agencies/stats",
    "upload": "/documents/upload",
    "listings": "/documents/listings",
    "fraud_scan": "/fraud/scan",
    "fraud_reports": "/fraud/reports",
    "verify": "/verification/verify",
    "alto_import": "/integrations/alto/import",
    "alto_agencies": "/admin/alto/agencies",
    "ppd_upload": "/ppd/upload",
    "ppd_uploads": "/ppd/uploads",
}


def _error_detail(response) -> Optional[str]:
    """Pull the human readable detail out of an error body, if there is one."""
    try:
        body = response.json()
    except ValueError:
        text = (response.text or "").strip()
        return text[:200] or None
    if not isinstance(body, dict):
        return None
    detail = body.get("detail") or body.get("message")
    if isinstance(detail, list):
        # validation errors come back as [{"loc": [...], "msg": "..."}]
        messages = [d.get("msg", str(d)) if isinstance(d, dict) else str(d) for d in detail]
        return "; ".join(messages) or None
    return str(detail) if detail else None


class RemoteServiceClient:
    """Fraud-detection service API client."""

    def __init__(self, session_store, base_url: str = DEFAULT_BASE_URL, timeout: float = 30):
        self.session_store = session_store
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def request(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        params: Optional[Dict] = None,
        data: Optional[Dict] = None,
        files: Optional[Dict] = None,
        auth: bool = True,
    ) -> Any:
        """Send one request and return the decoded JSON body (None when empty)."""
        url = f"{self.base_url}{path}"
        headers = {"Accept": "application/json"}
        token = None
        if auth:
            token = self.session_store.active_token()
            if not token:
                raise AuthError("Not logged in")
            headers["Authorization"] = f"Bearer {token}"

        logger.debug("%s %s", method, path)
        try:
            response = requests.request(
                method,
                url,
                headers=headers,
                json=json_body,
                params=params,
                data=data,
                files=files,
                timeout=self.timeout,
            )
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            raise NetworkError(f"Could not reach {self.base_url}: {e}") from e
        except requests.exceptions.RequestException as e:
            raise NetworkError(str(e)) from e

        if response.status_code == 401:
            detail = _error_detail(response)
            if token:
                self.session_store.invalidate(token)
            raise AuthError(detail)
        if not 200 <= response.status_code < 300:
            detail = _error_detail(response)
            logger.warning("%s %s failed with %s: %s", method, path, response.status_code, detail)
            raise RemoteError(response.status_code, detail)

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise RemoteError(response.status_code, "Response was not valid JSON") from e

    # --- auth -------------------------------------------------------------

    def login(self, username: str, password: str) -> Dict:
        return self.request("POST", ENDPOINTS["login"], json_body={"username": username, "password": password}, auth=False)

    def signup(self, name: str, username: str, password: str) -> Dict:
        body = {"name": name, "username": username, "password": password}
        return self.request("POST", ENDPOINTS["signup"], json_body=body, auth=False) or {}

    def logout(self):
        self.request("POST", ENDPOINTS["logout"])

    def fetch_profile(self) -> Dict:
        return self.request("GET", ENDPOINTS["me"]) or {}

    def agency_stats(self) -> AgencyStats:
        return AgencyStats.from_api(self.request("GET", ENDPOINTS["agency_stats"]) or {})

    # --- listings ---------------------------------------------------------

    def upload_listings(self, filename: str, content: bytes, field_mapping: Dict[str, str]) -> UploadStats:
        files = {"file": (filename, content, "text/csv")}
        data = {"field_mapping": json.dumps(field_mapping)}
        return UploadStats.from_api(self.request("POST", ENDPOINTS["upload"], data=data, files=files) or {})

    def list_listings(self) -> List[PropertyListing]:
        return [PropertyListing.from_api(item) for item in self.request("GET", ENDPOINTS["listings"]) or []]

    def update_listing(self, listing_id: str, **fields) -> PropertyListing:
        path = f"{ENDPOINTS['listings']}/{listing_id}"
        return PropertyListing.from_api(self.request("PATCH", path, json_body=fields))

    def delete_listing(self, listing_id: str):
        self.request("DELETE", f"{ENDPOINTS['listings']}/{listing_id}")

    # --- fraud ------------------------------------------------------------

    def trigger_fraud_scan(self) -> Any:
        return self.request("POST", ENDPOINTS["fraud_scan"])

    def list_fraud_reports(self, params: Optional[Dict] = None) -> List[FraudReport]:
        items = self.request("GET", ENDPOINTS["fraud_reports"], params=params or {"limit": 100})
        return [FraudReport.from_api(item) for item in items or []]

    def verify_matches(self, match_ids: Sequence[str]) -> VerificationResult:
        body = {"match_ids": list(match_ids)}
        return VerificationResult.from_api(self.request("POST", ENDPOINTS["verify"], json_body=body) or {})

    # --- third-party import -----------------------------------------------

    def import_from_alto(self) -> ImportResult:
        return ImportResult.from_api(self.request("POST", ENDPOINTS["alto_import"]) or {})

    def list_alto_agencies(self) -> List[AltoAgency]:
        data = self.request("GET", ENDPOINTS["alto_agencies"]) or {}
        items = data.get("items", []) if isinstance(data, dict) else data
        return [AltoAgency.from_api(item) for item in items]

    def update_alto_settings(self, agency_id: str, alto_agency_ref: Optional[str], enable_production: bool) -> Dict:
        path = f"{ENDPOINTS['alto_agencies']}/{agency_id}/settings"
        body = {"alto_agency_ref": alto_agency_ref or None, "enable_production": enable_production}
        return self.request("PATCH", path, json_body=body) or {}

    # --- official reference data ------------------------------------------

    def upload_reference_dataset(self, year: int, month: int, filename: str, content: bytes) -> Dict:
        files = {"file": (filename, content, "text/csv")}
        data = {"year": str(year), "month": str(month)}
        return self.request("POST", ENDPOINTS["ppd_upload"], data=data, files=files) or {}

    def list_reference_jobs(self) -> List[UploadJob]:
        return [UploadJob.from_api(item) for item in self.request("GET", ENDPOINTS["ppd_uploads"]) or []]

    def delete_reference_job(self, job_id: str):
        self.request("DELETE", f"{ENDPOINTS['ppd_uploads']}/{job_id}")
