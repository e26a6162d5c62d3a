"""
Tests for the errand payment endpoints (/api/payment)
"""
import pytest
from httpx import AsyncClient

PROOF = "data:image/png;base64,iVBORw0KGgoAAAANSUhEUg=="


class TestHealth:

    @pytest.mark.integration
    async def test_health(self, test_client: AsyncClient):
        response = await test_client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}
        assert "x-correlation-id" in response.headers


class TestPaymentAuth:

    @pytest.mark.integration
    async def test_invalid_token(self, test_client: AsyncClient):
        response = await test_client.get(
            "/api/payment/history", headers={"Authorization": "Bearer not-a-token"}
        )
        assert response.status_code == 401

    @pytest.mark.integration
    async def test_banned_user_blocked(self, test_client: AsyncClient, user_factory, auth_headers):
        banned = await user_factory(name="Banned Runner", is_banned=True)
        headers = auth_headers(banned)

        response = await test_client.get("/api/payment/history", headers=headers)

        assert response.status_code == 403
        assert "banned" in response.json()["detail"]

    @pytest.mark.integration
    async def test_legacy_listing_requires_admin(self, test_client: AsyncClient, runner, auth_headers):
        response = await test_client.get("/api/payment/legacy", headers=auth_headers(runner))
        assert response.status_code == 403
        assert response.json()["detail"] == "Admin access required"


class TestSubmitAndVerify:

    @pytest.mark.integration
    async def test_full_flow(self, test_client: AsyncClient, accepted_errand, runner, customer, auth_headers):
        errand_id = accepted_errand.id
        runner_headers = auth_headers(runner)
        customer_headers = auth_headers(customer)

        response = await test_client.post(
            "/api/payment/submit",
            json={"errand_id": errand_id, "original_amount": 100, "proof_of_purchase": PROOF},
            headers=runner_headers,
        )
        assert response.status_code == 201
        data = response.json()
        assert data["status_display"] == "Pending Customer Verification"
        assert data["payment"]["total_amount"] == 120.0
        assert data["payment"]["platform_commission"] == 3.0
        assert data["payment"]["payment_method_display"] == "GCash"
        assert data["payment"]["can_modify"] is True

        check = await test_client.get(
            f"/api/payment/errand/{errand_id}/completion-check", headers=runner_headers
        )
        assert check.status_code == 200
        assert check.json()["can_complete"] is False
        assert check.json()["status_display"] == "Payment Not Approved"

        response = await test_client.patch(
            "/api/payment/verify",
            json={"errand_id": errand_id, "verified": True},
            headers=customer_headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status_display"] == "Approved"
        assert data["payment"]["payment_verified"] is True
        assert data["payment"]["can_modify"] is False

        check = await test_client.get(
            f"/api/payment/errand/{errand_id}/completion-check", headers=runner_headers
        )
        assert check.json()["can_complete"] is True

        balance = await test_client.get("/api/balance/status", headers=runner_headers)
        assert balance.json()["current_balance"] == 3.0
        assert balance.json()["total_earned"] == 17.0

    @pytest.mark.integration
    async def test_second_verify_conflicts(self, test_client: AsyncClient, accepted_errand, runner, customer, auth_headers):
        errand_id = accepted_errand.id
        await test_client.post(
            "/api/payment/submit",
            json={"errand_id": errand_id, "original_amount": "250.00", "proof_of_purchase": PROOF},
            headers=auth_headers(runner),
        )
        body = {"errand_id": errand_id, "verified": True}
        first = await test_client.patch("/api/payment/verify", json=body, headers=auth_headers(customer))
        assert first.status_code == 200

        second = await test_client.patch("/api/payment/verify", json=body, headers=auth_headers(customer))

        assert second.status_code == 409
        error = second.json()["error"]
        assert error["name"] == "AlreadyProcessed"
        assert error["details"]["status"] == "approved"

    @pytest.mark.integration
    async def test_reject_lets_runner_resubmit(self, test_client: AsyncClient, accepted_errand, runner, customer, auth_headers):
        errand_id = accepted_errand.id
        runner_headers = auth_headers(runner)
        payload = {"errand_id": errand_id, "original_amount": 80, "proof_of_purchase": PROOF}
        await test_client.post("/api/payment/submit", json=payload, headers=runner_headers)

        rejected = await test_client.patch(
            "/api/payment/verify",
            json={"errand_id": errand_id, "verified": False, "notes": "Receipt is blurry"},
            headers=auth_headers(customer),
        )
        assert rejected.json()["payment"]["status"] == "rejected"
        assert rejected.json()["payment"]["rejection_reason"] == "Receipt is blurry"

        again = await test_client.post("/api/payment/submit", json=payload, headers=runner_headers)
        assert again.status_code == 201

        listing = await test_client.get(f"/api/payment/errand/{errand_id}", headers=runner_headers)
        assert [p["status"] for p in listing.json()] == ["pending"]

    @pytest.mark.integration
    async def test_duplicate_submit_conflicts(self, test_client: AsyncClient, accepted_errand, runner, auth_headers):
        payload = {"errand_id": accepted_errand.id, "original_amount": 50, "proof_of_purchase": PROOF}
        headers = auth_headers(runner)
        await test_client.post("/api/payment/submit", json=payload, headers=headers)

        response = await test_client.post("/api/payment/submit", json=payload, headers=headers)

        assert response.status_code == 409
        assert response.json()["error"]["name"] == "AlreadyProcessed"


class TestSubmitValidation:

    @pytest.mark.integration
    async def test_bad_amount(self, test_client: AsyncClient, accepted_errand, runner, auth_headers):
        response = await test_client.post(
            "/api/payment/submit",
            json={"errand_id": accepted_errand.id, "original_amount": "abc", "proof_of_purchase": PROOF},
            headers=auth_headers(runner),
        )
        assert response.status_code == 422
        assert response.json()["error"]["name"] == "ValidationError"

    @pytest.mark.integration
    async def test_missing_field_reshaped(self, test_client: AsyncClient, accepted_errand, runner, auth_headers):
        response = await test_client.post(
            "/api/payment/submit",
            json={"errand_id": accepted_errand.id, "original_amount": 10},
            headers=auth_headers(runner),
        )
        assert response.status_code == 422
        fields = [e["field"] for e in response.json()["error"]["details"]["errors"]]
        assert "proof_of_purchase" in fields

    @pytest.mark.integration
    async def test_other_runner_not_assigned(self, test_client: AsyncClient, accepted_errand, user_factory, auth_headers):
        stranger = await user_factory(name="Other Runner")
        response = await test_client.post(
            "/api/payment/submit",
            json={"errand_id": accepted_errand.id, "original_amount": 10, "proof_of_purchase": PROOF},
            headers=auth_headers(stranger),
        )
        assert response.status_code == 403
        assert response.json()["error"]["name"] == "NotAssigned"

    @pytest.mark.integration
    async def test_unknown_errand(self, test_client: AsyncClient, runner, auth_headers):
        response = await test_client.post(
            "/api/payment/submit",
            json={"errand_id": 9999, "original_amount": 10, "proof_of_purchase": PROOF},
            headers=auth_headers(runner),
        )
        assert response.status_code == 404


class TestHistoryAndLegacy:

    @pytest.mark.integration
    async def test_runner_history(self, test_client: AsyncClient, accepted_errand, runner, errand_payment_factory, auth_headers):
        await errand_payment_factory(accepted_errand, original_amount="40.00")

        response = await test_client.get("/api/payment/history?limit=5", headers=auth_headers(runner))

        assert response.status_code == 200
        assert len(response.json()) == 1
        assert response.json()[0]["original_amount"] == 40.0

    @pytest.mark.integration
    async def test_errand_listing_forbidden_to_strangers(self, test_client: AsyncClient, accepted_errand, user_factory, auth_headers):
        stranger = await user_factory(name="Nosy")
        response = await test_client.get(
            f"/api/payment/errand/{accepted_errand.id}", headers=auth_headers(stranger)
        )
        assert response.status_code == 403

    @pytest.mark.integration
    async def test_admin_normalizes_legacy(self, test_client: AsyncClient, accepted_errand, admin, errand_payment_factory, auth_headers):
        from errands.db.models.errand_payment import ErrandPaymentStatus

        await errand_payment_factory(accepted_errand, status=ErrandPaymentStatus.CUSTOMER_VERIFIED)
        headers = auth_headers(admin)

        legacy = await test_client.get("/api/payment/legacy", headers=headers)
        assert len(legacy.json()) == 1
        assert legacy.json()[0]["status_display"] == "Customer Verified - Auto-Approved (Legacy)"

        response = await test_client.post("/api/payment/legacy/normalize", headers=headers)
        assert response.json() == {"normalized": 1, "status_display": "Approved"}

        legacy = await test_client.get("/api/payment/legacy", headers=headers)
        assert legacy.json() == []
