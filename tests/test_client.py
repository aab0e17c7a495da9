"""
Tests for the HTTP client and its session handling
"""
import httpx
import pytest

from client import ApiClient, ApiError, Session
from conftest import PASSWORD, future_date


@pytest.fixture
def api(client):
    return ApiClient(client, processing_delay=0, retry_backoff=0)


class TestSession:
    def test_unauthenticated_lands_on_login(self):
        assert Session().landing_path == "/login"

    @pytest.mark.parametrize("role,path", [
        ("admin", "/admin/dashboard"),
        ("ngo", "/ngo/dashboard"),
        ("volunteer", "/volunteer/dashboard"),
    ])
    def test_landing_path_by_role(self, role, path):
        session = Session()
        session.start("token", {"id": "1", "role": role})
        assert session.landing_path == path
        assert session.has_role(role)

    def test_end_clears_state(self):
        session = Session()
        session.start("token", {"id": "1", "role": "ngo"})
        session.end()
        assert session.is_authenticated is False
        assert session.role is None


class TestApiClient:
    def test_register_starts_session(self, api):
        user = api.register("Cli User", "cli@example.com", PASSWORD)
        assert api.session.is_authenticated
        assert api.session.user == user
        assert api.session.landing_path == "/volunteer/dashboard"

    def test_logout(self, api):
        api.register("Cli User", "cli@example.com", PASSWORD)
        assert api.logout() == "/login"
        assert api.session.token is None

    def test_error_surfaces_server_message(self, api):
        api.register("Cli User", "cli@example.com", PASSWORD)
        api.logout()
        with pytest.raises(ApiError) as exc:
            api.login("cli@example.com", "wrong-password")
        assert exc.value.status_code == 401
        assert exc.value.message == "Invalid email or password"

    def test_unauthorized_response_ends_session(self, api):
        api.session.start("expired-or-bogus", {"id": "1", "role": "volunteer"})
        with pytest.raises(ApiError):
            api.join_event("665f1c2e8a1b2c3d4e5f6a7b")
        assert api.session.is_authenticated is False
        assert api.session.landing_path == "/login"

    def test_full_donation_journey(self, client):
        admin = ApiClient(client, processing_delay=0)
        admin.register("Ada Admin", "admin@example.com", PASSWORD, role="admin")

        owner = ApiClient(client, processing_delay=0)
        owner.register("Olu Owner", "owner@example.com", PASSWORD, role="ngo")
        ngo = owner.register_ngo(name="Helping Hands", email="contact@helpinghands.org")
        admin.approve_ngo(ngo["id"])
        event = owner.create_event(title="Beach Cleanup", date=future_date(), location="Marina Beach")

        donor = ApiClient(client, processing_delay=0)
        donor.register("Vera Volunteer", "vera@example.com", PASSWORD)
        assert [n["id"] for n in donor.approved_ngos()] == [ngo["id"]]
        assert donor.join_event(event["id"])["volunteerCount"] == 1

        donation = donor.donate(750, ngo["id"], event_id=event["id"])
        assert donation["paymentStatus"] == "completed"
        assert donation["event"]["title"] == "Beach Cleanup"
        assert donor.donation_status(donation["id"])["paymentStatus"] == "completed"

    def test_declined_donation_raises_payment_error(self, client, decider, approved_ngo):
        decider.outcome = False
        api = ApiClient(client, processing_delay=0)
        with pytest.raises(ApiError) as exc:
            api.donate(100, approved_ngo["id"])
        assert exc.value.status_code == 402


class TestRetries:
    """Idempotent requests retry on transport errors and 5xx"""

    def _api(self, handler, **kwargs):
        http = httpx.Client(base_url="http://testserver", transport=httpx.MockTransport(handler))
        return ApiClient(http, processing_delay=0, retry_backoff=0, **kwargs)

    def test_get_retries_server_errors(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503, json={"success": False, "message": "busy"})
            return httpx.Response(200, json={"success": True, "data": []})

        assert self._api(handler).events() == []
        assert len(calls) == 3

    def test_get_gives_up_after_max_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500, json={"success": False, "message": "down"})

        with pytest.raises(ApiError) as exc:
            self._api(handler, max_retries=1).events()
        assert exc.value.status_code == 500
        assert len(calls) == 2

    def test_post_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503, json={"success": False, "message": "busy"})

        with pytest.raises(ApiError):
            self._api(handler).initiate_donation(100, "665f1c2e8a1b2c3d4e5f6a7b")
        assert len(calls) == 1

    def test_transport_errors_are_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ConnectError("connection refused")
            return httpx.Response(200, json={"success": True, "data": []})

        assert self._api(handler).approved_ngos() == []
        assert len(calls) == 2

    def test_bearer_token_and_prefix(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"success": True, "data": []})

        api = self._api(handler)
        api.session.start("tok123", {"id": "1", "role": "volunteer"})
        api.events()
        assert seen == {"path": "/api/event", "auth": "Bearer tok123"}

    def test_non_json_error_body(self):
        def handler(request):
            return httpx.Response(502, text="<html>Bad Gateway</html>", headers={"content-type": "text/html"})

        with pytest.raises(ApiError) as exc:
            self._api(handler).initiate_donation(100, "665f1c2e8a1b2c3d4e5f6a7b")
        assert exc.value.status_code == 502
        assert exc.value.message == "Bad Gateway"

    def test_rate_limited_response(self):
        def handler(request):
            return httpx.Response(429, json={"success": False, "message": "Too many requests", "code": "RATE_LIMITED"})

        with pytest.raises(ApiError) as exc:
            self._api(handler).events()
        assert exc.value.status_code == 429
        assert exc.value.code == "RATE_LIMITED"
