import json

import pytest
from sqlalchemy.exc import OperationalError

from custody.services import storage_service


def register(client, email="alice@example.com", password="correct-horse"):
    return client.post("/api/v1/auth/register", json={"email": email, "password": password})


@pytest.fixture
def registered(client):
    body = register(client).get_json()
    return body["user"]["id"], body["wallet"]["address"]


def test_health(client):
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "ok"


class TestAuth:

    def test_register_returns_user_and_wallet(self, client):
        resp = register(client)
        body = resp.get_json()
        assert resp.status_code == 201
        assert body["success"] is True
        assert body["user"]["email"] == "alice@example.com"
        assert body["wallet"]["address"].startswith("T")
        assert "password_hash" not in json.dumps(body)

    def test_register_duplicate(self, client, registered):
        resp = register(client)
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "DUPLICATE_RESOURCE"

    @pytest.mark.parametrize("payload", [
        {},
        {"email": "not-an-email", "password": "correct-horse"},
        {"email": "bob@example.com", "password": "123"},
    ])
    def test_register_validation(self, client, payload):
        resp = client.post("/api/v1/auth/register", json=payload)
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "VALIDATION_ERROR"

    def test_login(self, client, registered):
        user_id, address = registered
        resp = client.post("/api/v1/auth/login", json={"email": "alice@example.com", "password": "correct-horse"})
        body = resp.get_json()
        assert resp.status_code == 200
        assert body["user"]["id"] == user_id
        assert body["wallet"]["address"] == address

    def test_login_wrong_password(self, client, registered):
        resp = client.post("/api/v1/auth/login", json={"email": "alice@example.com", "password": "nope"})
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "AUTH_FAILED"

    def test_change_password(self, client, registered):
        user_id, _ = registered
        url = f"/api/v1/user/{user_id}/change-password"
        bad = client.post(url, json={"currentPassword": "nope", "newPassword": "battery-staple"})
        assert bad.status_code == 401
        ok = client.post(url, json={"currentPassword": "correct-horse", "newPassword": "battery-staple"})
        assert ok.status_code == 200
        login = client.post("/api/v1/auth/login", json={"email": "alice@example.com", "password": "battery-staple"})
        assert login.status_code == 200


class TestWallet:

    def test_get_wallet(self, client, registered):
        user_id, address = registered
        body = client.get(f"/api/v1/wallet/{user_id}").get_json()
        assert body["address"] == address
        assert body["balances"] == {"TRX": "0.000000", "USDT": "0.000000"}

    def test_unknown_wallet(self, client):
        resp = client.get("/api/v1/wallet/usr-missing")
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "WALLET_NOT_FOUND"

    def test_update_balances(self, client, gateway, registered):
        user_id, address = registered
        gateway.native[address] = "3.5"
        resp = client.post(f"/api/v1/wallet/{user_id}/update-balances")
        body = resp.get_json()
        assert body["TRX"] == "3.500000"
        assert body["USDT"] == "0.000000"

    def test_update_balances_unknown_wallet(self, client):
        assert client.post("/api/v1/wallet/usr-missing/update-balances").status_code == 404

    def test_detect_transactions(self, client, registered):
        user_id, _ = registered
        body = client.post(f"/api/v1/wallet/{user_id}/detect-transactions").get_json()
        assert body["message"] == "Transactions detected successfully"
        assert body["created"] == 0

    def test_detect_transactions_gateway_down(self, client, gateway, registered):
        user_id, _ = registered
        gateway.fail_head = True
        resp = client.post(f"/api/v1/wallet/{user_id}/detect-transactions")
        assert resp.status_code == 502
        assert resp.get_json()["error"]["code"] == "RECONCILIATION_ERROR"

    def test_export_private_key(self, client, registered):
        user_id, _ = registered
        url = f"/api/v1/wallet/{user_id}/private-key"
        assert client.post(url, json={"password": "wrong"}).status_code == 401
        body = client.post(url, json={"password": "correct-horse"}).get_json()
        assert len(bytes.fromhex(body["privateKey"])) == 32


class TestTransactions:

    def send(self, client, user_id, to, amount, token="TRX"):
        return client.post("/api/v1/transactions/send", json={
            "userId": user_id, "recipientAddress": to, "amount": amount, "tokenType": token,
        })

    def test_register_then_send_scenario(self, client, gateway, registered, other_address):
        user_id, address = registered

        rejected = self.send(client, user_id, other_address, "1")
        assert rejected.status_code == 400
        error = rejected.get_json()["error"]
        assert error["code"] == "INSUFFICIENT_FUNDS"
        assert error["details"]["reason"] == "principal"

        gateway.native[address] = "10"
        resp = self.send(client, user_id, other_address, "1")
        body = resp.get_json()
        assert resp.status_code == 200
        assert body["hash"] == body["transaction"]["txHash"]
        assert body["transaction"]["status"] == "pending"
        assert body["transaction"]["direction"] == "send"
        assert body["transaction"]["amount"] == "1.000000"

        listing = client.get(f"/api/v1/transactions/{user_id}").get_json()
        assert [t["txHash"] for t in listing["transactions"]] == [body["hash"]]
        assert listing["pagination"]["total"] == 1

    def test_send_fee_shortfall(self, client, gateway, registered, other_address):
        user_id, address = registered
        gateway.native[address] = "10"
        resp = self.send(client, user_id, other_address, "9")
        assert resp.get_json()["error"]["details"]["reason"] == "fee"

    def test_send_invalid_address(self, client, gateway, registered):
        user_id, address = registered
        gateway.native[address] = "10"
        resp = self.send(client, user_id, "T-bogus", "1")
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_ADDRESS"

    @pytest.mark.parametrize("amount", ["0", "-5", "1.1234567", "abc"])
    def test_send_invalid_amount(self, client, registered, other_address, amount):
        user_id, _ = registered
        resp = self.send(client, user_id, other_address, amount)
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "VALIDATION_ERROR"

    def test_send_unknown_token(self, client, registered, other_address):
        user_id, _ = registered
        resp = self.send(client, user_id, other_address, "1", token="ETH")
        assert resp.status_code == 400

    def test_send_rejected_by_node(self, client, gateway, registered, other_address):
        user_id, address = registered
        gateway.native[address] = "10"
        gateway.reject_with = "Contract validate error"
        resp = self.send(client, user_id, other_address, "1")
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "TRANSFER_REJECTED"

    def test_send_node_timeout(self, client, gateway, registered, other_address):
        user_id, address = registered
        gateway.native[address] = "10"
        gateway.fail_submit = True
        resp = self.send(client, user_id, other_address, "1")
        assert resp.status_code == 502
        assert client.get(f"/api/v1/transactions/{user_id}").get_json()["transactions"] == []

    def test_send_not_recorded_returns_hash(self, client, gateway, registered, other_address, monkeypatch):
        user_id, address = registered
        gateway.native[address] = "10"

        def database_down(**fields):
            raise OperationalError("INSERT INTO transactions", {}, Exception("disk I/O error"))

        monkeypatch.setattr(storage_service, "create_transaction", database_down)
        resp = self.send(client, user_id, other_address, "1")

        assert resp.status_code == 500
        error = resp.get_json()["error"]
        assert error["code"] == "TRANSFER_NOT_RECORDED"
        assert error["details"]["tx_hash"] == format(1, "064x")

    def test_receive_is_idempotent(self, client, registered, other_address):
        user_id, address = registered
        payload = {
            "userId": user_id, "txHash": "abc123", "fromAddress": other_address,
            "amount": "4.2", "tokenType": "USDT",
        }
        first = client.post("/api/v1/transactions/receive", json=payload)
        second = client.post("/api/v1/transactions/receive", json=dict(payload, amount="99"))

        assert first.status_code == 201 and first.get_json()["created"] is True
        assert second.status_code == 200 and second.get_json()["created"] is False
        tx = second.get_json()["transaction"]
        assert (tx["amount"], tx["status"], tx["direction"], tx["toAddress"]) == (
            "4.200000", "confirmed", "receive", address,
        )

    def test_get_by_hash(self, client, registered, other_address):
        user_id, _ = registered
        client.post("/api/v1/transactions/receive", json={
            "userId": user_id, "txHash": "lookup-me", "fromAddress": other_address,
            "amount": "1", "tokenType": "TRX",
        })
        assert client.get("/api/v1/transactions/hash/lookup-me").get_json()["transaction"]["txHash"] == "lookup-me"
        assert client.get("/api/v1/transactions/hash/missing").status_code == 404

    def test_status_update(self, client, gateway, registered, other_address):
        user_id, address = registered
        gateway.native[address] = "10"
        tx_hash = self.send(client, user_id, other_address, "1").get_json()["hash"]

        url = f"/api/v1/transactions/{tx_hash}/status"
        assert client.put(url, json={"status": "confirmed"}).get_json()["status"] == "confirmed"
        assert client.put(url, json={"status": "pending"}).get_json()["status"] == "confirmed"
        assert client.put(url, json={"status": "done"}).status_code == 400
        assert client.put("/api/v1/transactions/missing/status", json={"status": "failed"}).status_code == 404

    def test_pagination_params(self, client, registered):
        user_id, _ = registered
        body = client.get(f"/api/v1/transactions/{user_id}?page=2&limit=500").get_json()
        assert body["pagination"]["page"] == 2
        assert body["pagination"]["limit"] == 100
        assert client.get(f"/api/v1/transactions/{user_id}?page=x").status_code == 400

    @pytest.mark.parametrize("token,fee", [("TRX", "1.1"), ("usdt", "13.8~30")])
    def test_gas_fee(self, client, token, fee):
        body = client.get(f"/api/v1/gas-fee/{token}").get_json()
        assert body["fee"] == fee
        assert body["tokenType"] == token.upper()

    def test_gas_fee_unknown_token(self, client):
        assert client.get("/api/v1/gas-fee/ETH").status_code == 400


def test_unknown_route_uses_error_envelope(client):
    resp = client.get("/api/v1/nowhere")
    assert resp.status_code == 404
    assert resp.get_json()["error"]["code"] == "NOT_FOUND"


def test_wrong_method(client):
    resp = client.delete("/api/v1/health")
    assert resp.status_code == 405
    assert resp.get_json()["error"]["code"] == "METHOD_NOT_ALLOWED"


def test_unknown_fee_bound_fails_start_up(monkeypatch):
    from custody.config import TestingConfig
    from custody.main import create_app

    monkeypatch.setattr(TestingConfig, "FEE_SOLVENCY_BOUND", "middle")
    with pytest.raises(ValueError):
        create_app("testing")
