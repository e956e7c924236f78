from datetime import date
from unittest.mock import MagicMock

import pytest
import requests

from attendance_engine.core.errors import TransportError
from attendance_engine.services.api_client import AttendanceApiClient


def fake_response(status_code=200, body=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.text = text
    if body is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = body
    return response


@pytest.fixture
def session():
    session = MagicMock()
    session.headers = {}
    return session


@pytest.fixture
def client(session):
    return AttendanceApiClient(base_url="https://absensi.example.org/", token="secret", timeout=3, session=session)


class TestAttendanceApiClient:

    def test_bearer_token_and_base_url(self, client, session):
        session.request.return_value = fake_response(body={"success": True, "data": []})
        client.get_today_schedule()
        assert session.headers["Authorization"] == "Bearer secret"
        method, url = session.request.call_args[0]
        assert method == "GET"
        assert url == "https://absensi.example.org/api/v2/attendance/today-schedule"
        assert session.request.call_args[1]["timeout"] == 3

    def test_envelope_is_passed_through(self, client, session):
        session.request.return_value = fake_response(
            422, {"success": False, "code": "OUTSIDE_GEOFENCE", "message": "Di luar area"})
        envelope = client.check_in({"latitude": 1.0})
        assert not envelope.success
        assert envelope.code == "OUTSIDE_GEOFENCE"
        assert session.request.call_args[1]["json"] == {"latitude": 1.0}

    def test_bare_json_is_wrapped(self, client, session):
        session.request.return_value = fake_response(body=[{"id": 1}])
        envelope = client.get_today_records()
        assert envelope.success
        assert envelope.data == [{"id": 1}]

    def test_history_sends_range(self, client, session):
        session.request.return_value = fake_response(body={"success": True, "data": []})
        client.get_attendance_history(date(2024, 4, 1), date(2024, 4, 30))
        assert session.request.call_args[1]["params"] == {"start": "2024-04-01", "end": "2024-04-30"}

    def test_timeout(self, client, session):
        session.request.side_effect = requests.Timeout()
        with pytest.raises(TransportError) as exc:
            client.get_work_location()
        assert exc.value.code == "NETWORK_TIMEOUT"

    def test_connection_error(self, client, session):
        session.request.side_effect = requests.ConnectionError("refused")
        with pytest.raises(TransportError) as exc:
            client.check_out({})
        assert exc.value.code == "NETWORK_CONNECTION"

    def test_server_error_without_envelope(self, client, session):
        session.request.return_value = fake_response(503, text="Service Unavailable")
        with pytest.raises(TransportError) as exc:
            client.get_today_records()
        assert exc.value.code == "NETWORK_SERVER_ERROR"

    def test_non_json_success(self, client, session):
        session.request.return_value = fake_response(200, text="<html>")
        with pytest.raises(TransportError) as exc:
            client.get_today_records()
        assert exc.value.code == "INVALID_RESPONSE"
