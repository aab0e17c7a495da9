"""
HTTP client for the Volunteer Platform API.

The browser app keeps its token in shared storage and navigates through a
globally injected callback. Here that state lives in an explicit `Session`
owned by one `ApiClient`: it starts on login/registration and is torn down on
logout or on any 401 from the server.

    with ApiClient("http://localhost:8000") as api:
        api.login("a@b.com", "secret1")
        api.session.landing_path      # "/volunteer/dashboard"
        api.donate(500, ngo_id)
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import httpx

import config

logger = logging.getLogger(__name__)

LANDING_PATHS = {
    config.ROLE_ADMIN: "/admin/dashboard",
    config.ROLE_NGO: "/ngo/dashboard",
    config.ROLE_VOLUNTEER: "/volunteer/dashboard",
}
LOGIN_PATH = "/login"
RETRYABLE_METHODS = {"GET", "PUT", "DELETE"}


class ApiError(Exception):
    """Non-2xx response; `message` is the server's user-facing text"""

    def __init__(self, status_code: int, message: str, code: Optional[str] = None):
        self.status_code = status_code
        self.message = message
        self.code = code
        super().__init__(f"{status_code}: {message}")


@dataclass
class Session:
    token: Optional[str] = None
    user: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token) and bool(self.user)

    @property
    def role(self) -> Optional[str]:
        return self.user.get("role")

    def has_role(self, *roles: str) -> bool:
        return self.role in roles

    @property
    def landing_path(self) -> str:
        if not self.is_authenticated:
            return LOGIN_PATH
        return LANDING_PATHS.get(self.role, LANDING_PATHS[config.ROLE_VOLUNTEER])

    def start(self, token: str, user: Dict[str, Any]) -> None:
        self.token = token
        self.user = dict(user)

    def end(self) -> None:
        self.token = None
        self.user = {}


class ApiClient:
    def __init__(
        self,
        base_url_or_client: Union[str, httpx.Client],
        session: Optional[Session] = None,
        processing_delay: float = 2.0,
        max_retries: int = 2,
        retry_backoff: float = 1.0,
        timeout: float = 10.0,
    ):
        if isinstance(base_url_or_client, httpx.Client):
            self.http = base_url_or_client
            self._owns_http = False
        else:
            self.http = httpx.Client(base_url=base_url_or_client, timeout=timeout)
            self._owns_http = True
        self.session = session or Session()
        self.processing_delay = processing_delay
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff

    def close(self) -> None:
        if self._owns_http:
            self.http.close()

    def __enter__(self) -> "ApiClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ===== Transport =====

    def request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        headers = dict(kwargs.pop("headers", None) or {})
        if self.session.token:
            headers["Authorization"] = f"Bearer {self.session.token}"
        url = f"{config.API_PREFIX}{path}"

        attempt = 0
        while True:
            try:
                response = self.http.request(method, url, headers=headers, **kwargs)
            except httpx.TransportError as e:
                if not self._should_retry(method, attempt):
                    raise
                attempt += 1
                logger.warning(f"{method} {path} failed ({e}), retry {attempt}/{self.max_retries}")
                time.sleep(self.retry_backoff * 2 ** attempt)
                continue
            if response.status_code >= 500 and self._should_retry(method, attempt):
                attempt += 1
                logger.warning(f"{method} {path} -> {response.status_code}, retry {attempt}/{self.max_retries}")
                time.sleep(self.retry_backoff * 2 ** attempt)
                continue
            break

        body = self._json_body(response)
        if response.status_code == 401:
            # expired or revoked credential: drop the session, caller goes back to login
            self.session.end()
        if response.is_error:
            raise ApiError(response.status_code, body.get("message") or response.reason_phrase or "An error occurred", body.get("code"))
        return body

    @staticmethod
    def _json_body(response: httpx.Response) -> Dict[str, Any]:
        """Parsed body, or {} for empty and non-JSON bodies (e.g. a proxy's HTML 502)"""
        if not response.content or "json" not in response.headers.get("content-type", ""):
            return {}
        try:
            body = response.json()
        except ValueError:
            logger.warning(f"Unparseable JSON body in {response.status_code} response")
            return {}
        return body if isinstance(body, dict) else {"data": body}

    def _should_retry(self, method: str, attempt: int) -> bool:
        return method.upper() in RETRYABLE_METHODS and attempt < self.max_retries

    # ===== Auth =====

    def register(self, name: str, email: str, password: str, role: str = config.ROLE_VOLUNTEER) -> Dict[str, Any]:
        body = self.request("POST", "/auth/register", json={"name": name, "email": email, "password": password, "role": role})
        self.session.start(body["token"], body["user"])
        return body["user"]

    def login(self, email: str, password: str) -> Dict[str, Any]:
        body = self.request("POST", "/auth/login", json={"email": email, "password": password})
        self.session.start(body["token"], body["user"])
        return body["user"]

    def logout(self) -> str:
        self.session.end()
        return LOGIN_PATH

    # ===== NGOs & events =====

    def register_ngo(self, **fields) -> Dict[str, Any]:
        return self.request("POST", "/ngo/register", json=fields)["data"]

    def approved_ngos(self) -> List[Dict[str, Any]]:
        return self.request("GET", "/ngo")["data"]

    def approve_ngo(self, ngo_id: str) -> Dict[str, Any]:
        return self.request("PUT", f"/ngo/{ngo_id}/approve")["data"]

    def create_event(self, **fields) -> Dict[str, Any]:
        return self.request("POST", "/event", json=fields)["data"]

    def events(self) -> List[Dict[str, Any]]:
        return self.request("GET", "/event")["data"]

    def join_event(self, event_id: str) -> Dict[str, Any]:
        return self.request("PUT", f"/event/join/{event_id}")["data"]

    # ===== Donations =====

    def initiate_donation(self, amount: int, ngo_id: str, event_id: Optional[str] = None) -> Dict[str, Any]:
        payload = {"amount": amount, "organizationId": ngo_id}
        if event_id:
            payload["eventId"] = event_id
        return self.request("POST", "/payment/initiate", json=payload)["data"]

    def verify_donation(self, donation_id: str, payment_id: str, order_id: str) -> Dict[str, Any]:
        return self.request(
            "POST", "/payment/verify",
            json={"donationId": donation_id, "paymentId": payment_id, "orderId": order_id},
        )["data"]

    def donate(self, amount: int, ngo_id: str, event_id: Optional[str] = None) -> Dict[str, Any]:
        """Initiate, wait out the simulated gateway, then verify"""
        order = self.initiate_donation(amount, ngo_id, event_id)
        if self.processing_delay:
            time.sleep(self.processing_delay)
        return self.verify_donation(order["donationId"], order["paymentId"], order["orderId"])

    def donation_status(self, donation_id: str) -> Dict[str, Any]:
        return self.request("GET", f"/payment/{donation_id}")["data"]
