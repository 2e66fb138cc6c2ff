import pytest

from inventory_api_client import ApiError, DuplicateShipmentId, InventoryApiClient, make_client_from_env


class FakeResponse:
    def __init__(self, status_code, body=None):
        self.status_code = status_code
        self._body = body
        self.text = str(body)

    def json(self):
        if self._body is None:
            raise ValueError("no body")
        return self._body


class FakeSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def post(self, url, **kwargs):
        return self.request("POST", url, **kwargs)

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        return self.responses.pop(0)


def _client(*responses, token=None):
    return InventoryApiClient(
        base_url="https://inv.example.com/api/",
        email="bot@example.com",
        password="pw",
        token=token,
        session=FakeSession(responses),
    )


def test_logs_in_then_posts_shipment():
    c = _client(
        FakeResponse(200, {"access_token": "tok"}),
        FakeResponse(201, {"outcome": "applied"}),
    )

    out = c.log_shipment(shipment_id="20250440", type="incoming", lines=[{"sku": "DF44", "quantity": 10}])

    assert out == {"outcome": "applied"}
    login, post = c.session.calls
    assert login[1] == "https://inv.example.com/api/auth/jwt/login"
    assert login[2]["data"] == {"username": "bot@example.com", "password": "pw"}
    assert post[:2] == ("POST", "https://inv.example.com/api/shipments/")
    assert post[2]["headers"]["Authorization"] == "Bearer tok"
    assert post[2]["json"]["confirm_duplicate"] is False


def test_relogs_once_on_401():
    c = _client(
        FakeResponse(401, {"detail": "Unauthorized"}),
        FakeResponse(200, {"access_token": "fresh"}),
        FakeResponse(200, [{"sku": "DF44"}]),
        token="stale",
    )

    assert c.search_inventory("df") == [{"sku": "DF44"}]
    assert c.token == "fresh"
    assert c.session.calls[-1][2]["params"] == {"q": "df"}


def test_duplicate_warning_raises_dedicated_error():
    body = {"warning": "duplicate_shipment_id", "shipment_id": "S1", "matches": [{"id": "x"}]}
    c = _client(FakeResponse(409, body), token="tok")

    with pytest.raises(DuplicateShipmentId) as exc:
        c.log_shipment(shipment_id="S1", type="incoming", lines=[])

    assert exc.value.status_code == 409
    assert exc.value.matches == [{"id": "x"}]


def test_other_errors_raise_api_error():
    c = _client(FakeResponse(409, {"detail": {"error": "InsufficientStock"}}), token="tok")

    with pytest.raises(ApiError) as exc:
        c.approve_request("abc")

    assert not isinstance(exc.value, DuplicateShipmentId)
    assert exc.value.body == {"detail": {"error": "InsufficientStock"}}


def test_login_failure():
    c = _client(FakeResponse(400, {"detail": "LOGIN_BAD_CREDENTIALS"}))
    with pytest.raises(ApiError):
        c.login()


def test_make_client_from_env(monkeypatch):
    monkeypatch.delenv("INVENTORY_API_URL", raising=False)
    with pytest.raises(RuntimeError):
        make_client_from_env()

    monkeypatch.setenv("INVENTORY_API_URL", "https://inv.example.com/api")
    monkeypatch.setenv("INVENTORY_API_EMAIL", "bot@example.com")
    monkeypatch.setenv("INVENTORY_API_PASSWORD", "pw")
    monkeypatch.setenv("INVENTORY_API_TOKEN", "preset")

    c = make_client_from_env()
    assert (c.base_url, c.token) == ("https://inv.example.com/api", "preset")
