import logging
from datetime import date
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from attendance_engine.core.config import BackendConfig
from attendance_engine.core.errors import TransportError
from attendance_engine.models.common import ApiEnvelope

logger = logging.getLogger(__name__)

class AttendanceApiClient:
    """
    Thin client for the hospital attendance backend.

    Reads go through a session whose adapter retries GETs with backoff.
    Check-in and check-out are POSTs and are never retried: a repeated
    check-in would come back as ALREADY_CHECKED_IN.
    """

    def __init__(self, base_url: str = None, token: str = None, timeout: float = None,
                 retry_total: int = None, backoff_factor: float = None, verify: bool = None,
                 session: Optional[requests.Session] = None):
        self.base_url = (base_url or BackendConfig.BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else BackendConfig.REQUEST_TIMEOUT_SECONDS
        self.verify = BackendConfig.VERIFY_TLS if verify is None else verify
        self.session = session or requests.Session()

        retry = Retry(
            total=BackendConfig.READ_RETRY_TOTAL if retry_total is None else retry_total,
            backoff_factor=BackendConfig.READ_RETRY_BACKOFF_FACTOR if backoff_factor is None else backoff_factor,
            status_forcelist=(429, 502, 503, 504),
            allowed_methods=frozenset(["GET"]),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

        token = token if token is not None else BackendConfig.API_TOKEN
        self.session.headers.update({"Accept": "application/json"})
        if token:
            self.session.headers.update({"Authorization": f"Bearer {token}"})

    def _request(self, method: str, path: str, **kwargs) -> ApiEnvelope:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, verify=self.verify, **kwargs)
        except requests.Timeout as e:
            raise TransportError(f"{method} {path} timed out after {self.timeout}s", "NETWORK_TIMEOUT") from e
        except requests.RequestException as e:
            raise TransportError(f"{method} {path} failed: {e}", "NETWORK_CONNECTION") from e

        try:
            body = response.json()
        except ValueError:
            body = None

        # Business rejections come back as 4xx with an envelope; anything else is transport
        if isinstance(body, dict) and "success" in body:
            return ApiEnvelope(
                success=bool(body.get("success")),
                code=body.get("code"),
                message=body.get("message"),
                data=body.get("data"),
            )

        if response.status_code >= 500:
            raise TransportError(f"{method} {path} returned HTTP {response.status_code}", "NETWORK_SERVER_ERROR")
        if not response.ok:
            raise TransportError(f"{method} {path} returned HTTP {response.status_code}: {response.text[:200]}", f"HTTP_{response.status_code}")
        if body is None:
            raise TransportError(f"{method} {path} returned a non-JSON body", "INVALID_RESPONSE")

        return ApiEnvelope(success=True, data=body)

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> ApiEnvelope:
        return self._request("GET", path, params=params)

    def _post(self, path: str, payload: Dict[str, Any]) -> ApiEnvelope:
        return self._request("POST", path, json=payload)

    def get_today_schedule(self) -> ApiEnvelope:
        return self._get(BackendConfig.TODAY_SCHEDULE_PATH)

    def get_today_records(self) -> ApiEnvelope:
        return self._get(BackendConfig.TODAY_RECORDS_PATH)

    def get_work_location(self) -> ApiEnvelope:
        return self._get(BackendConfig.WORK_LOCATION_PATH)

    def get_attendance_history(self, start: date, end: date) -> ApiEnvelope:
        return self._get(BackendConfig.HISTORY_PATH, params={"start": start.isoformat(), "end": end.isoformat()})

    def check_in(self, payload: Dict[str, Any]) -> ApiEnvelope:
        return self._post(BackendConfig.CHECKIN_PATH, payload)

    def check_out(self, payload: Dict[str, Any]) -> ApiEnvelope:
        return self._post(BackendConfig.CHECKOUT_PATH, payload)

    def close(self):
        self.session.close()
