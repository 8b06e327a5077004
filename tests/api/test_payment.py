import pytest
from fastapi.testclient import TestClient
from unittest.mock import patch
from api import app
from api.dependencies import get_gateway
from managers.auth_manager import get_current_user
from managers.table_manager import ARTWORKS, COURSES, USER_PROFILES
from models.payment import PaymentAuthorization


@pytest.fixture
def client(table_service, gateway):
    table_service.seed_item(COURSES, "c1", title="Gouache Basics", artistId="a1")
    table_service.seed_item(ARTWORKS, "art1", title="Harbor", artistId="a1", sold=True)
    table_service.table(USER_PROFILES).create_entity(
        {"PartitionKey": "profile", "RowKey": "a1", "stripeAccountId": "acct_artist"})
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_current_user] = lambda: {"oid": "u1", "scp": "payments.write"}
    yield TestClient(app)
    app.dependency_overrides.clear()


PAYMENT = {"amount": 5000, "currency": "usd", "itemId": "c1", "itemType": "course",
           "buyerId": "u1", "artistId": "a1", "itemTitle": "Gouache Basics"}


class TestCreateAuthorization:

    def test_manual_capture_hold(self, client, gateway):
        authorization = PaymentAuthorization(id="pi_new", status="requires_payment_method", amount=5000,
                                             client_secret="pi_new_secret")
        with patch.object(gateway, "create_authorization", return_value=authorization) as mock_create:
            response = client.post("/payments/authorize", json=PAYMENT)

        assert response.status_code == 201
        assert response.json() == {"payment_intent_id": "pi_new", "client_secret": "pi_new_secret",
                                   "status": "requires_payment_method"}
        args = mock_create.call_args
        assert args.args[2].buyerId == "u1"
        assert args.kwargs["destination"] == "acct_artist"

    def test_unknown_item(self, client):
        response = client.post("/payments/authorize", json={**PAYMENT, "itemId": "missing"})

        assert response.status_code == 404

    def test_sold_original(self, client):
        response = client.post("/payments/authorize", json={**PAYMENT, "itemId": "art1", "itemType": "original"})

        assert response.status_code == 400

    def test_wrong_artist(self, client):
        response = client.post("/payments/authorize", json={**PAYMENT, "artistId": "a2"})

        assert response.status_code == 403

    def test_buyer_must_match_token(self, client):
        response = client.post("/payments/authorize", json={**PAYMENT, "buyerId": "u2"})

        assert response.status_code == 403

    def test_amount_below_minimum(self, client):
        response = client.post("/payments/authorize", json={**PAYMENT, "amount": 10})

        assert response.status_code == 422


class TestCreateCheckout:

    def test_checkout_session(self, client, gateway):
        with patch.object(gateway, "create_checkout_session", return_value=("cs_1", "https://checkout/cs_1")):
            response = client.post("/payments/checkout", json={
                **PAYMENT, "success_url": "https://a/ok", "cancel_url": "https://a/cancel"})

        assert response.status_code == 201
        assert response.json() == {"session_id": "cs_1", "url": "https://checkout/cs_1"}
