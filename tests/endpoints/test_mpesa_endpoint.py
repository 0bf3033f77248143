from schoolfin.config import settings
from schoolfin.domain.mpesa_enums import MpesaReviewReason
from tests.helpers.auth import auth_header, school_header, token_for_user
from tests.helpers.factories import create_student_fee, list_mpesa_transactions


def _stk_body(checkout_request_id: str, result_code: int = 0) -> dict:
    return {
        "Body": {
            "stkCallback": {
                "MerchantRequestID": "m-1",
                "CheckoutRequestID": checkout_request_id,
                "ResultCode": result_code,
                "ResultDesc": "The service request is processed successfully.",
                "CallbackMetadata": {
                    "Item": [
                        {"Name": "Amount", "Value": 10.0},
                        {"Name": "MpesaReceiptNumber", "Value": "RGH7XYZ"},
                        {"Name": "PhoneNumber", "Value": 254712345678},
                    ]
                },
            }
        }
    }


def test_stk_request_and_callback_flow(client, seeded_users, db_session):
    """
    Validate the STK push round trip.

    1. Register an STK request for a north fee row as the accountant.
    2. Deliver the provider success callback.
    3. Validate the callback is acknowledged as SUCCESS.
    4. Validate the fee row now shows the payment.
    """
    fee = create_student_fee(
        db_session,
        school_id=seeded_users["north_school"].id,
        student_id=seeded_users["child_one"].id,
        category_id=seeded_users["tuition"].id,
        amount_due_minor=1000,
    )
    headers = school_header(token_for_user(seeded_users["accountant"].id), seeded_users["north_school"].id)
    response = client.post(
        "/api/v1/mpesa/stk-requests",
        headers=headers,
        json={
            "student_fee_id": fee.id,
            "phone_number": "0712345678",
            "amount_minor": 1000,
            "checkout_request_id": "ws_CO_77",
        },
    )
    assert response.status_code == 201
    assert response.json()["status"] == "PENDING"

    response = client.post("/api/v1/mpesa/callback", json=_stk_body("ws_CO_77"))
    assert response.status_code == 200
    assert response.json() == {"ok": True, "status": "SUCCESS"}

    fees = client.get(f"/api/v1/students/{seeded_users['child_one'].id}/fees", headers=headers).json()["items"]
    assert [(item["amount_paid_minor"], item["status"]) for item in fees] == [(1000, "paid")]


def test_stk_callback_unknown_and_malformed(client, seeded_users):
    """
    Validate STK callback error responses.

    1. Deliver a callback for an unknown checkout id.
    2. Receive not found response.
    3. Deliver a callback without a body.
    4. Receive request validation error.
    """
    assert client.post("/api/v1/mpesa/callback", json=_stk_body("ws_CO_unknown")).status_code == 404
    assert client.post("/api/v1/mpesa/callback", json={"Body": {}}).status_code == 422


def test_callback_token_is_enforced_when_configured(client, seeded_users, monkeypatch):
    """
    Validate webhook token checks.

    1. Configure a callback token.
    2. Deliver a paybill validation without a token and receive 401.
    3. Deliver it with the header token and receive the acceptance payload.
    4. Deliver a confirmation with the query token and receive the acknowledgement.
    """
    monkeypatch.setattr(settings, "mpesa_callback_token", "hook-secret")
    assert client.post("/api/v1/mpesa/c2b/validate").status_code == 401
    assert client.post("/api/v1/mpesa/c2b/validate", headers={"X-Callback-Token": "wrong"}).status_code == 401

    response = client.post("/api/v1/mpesa/c2b/validate", headers={"X-Callback-Token": "hook-secret"})
    assert response.json() == {"ResultCode": "0", "ResultDesc": "Accepted"}

    response = client.post(
        "/api/v1/mpesa/c2b/confirm",
        params={"token": "hook-secret"},
        json={"TransID": "RKX1", "TransAmount": "5.00", "BusinessShortCode": "600000", "BillRefNumber": "UNKNOWN"},
    )
    assert response.status_code == 200
    assert response.json()["ResultCode"] == "0"


def test_c2b_confirmation_lands_in_review_queue(client, seeded_users, db_session):
    """
    Validate unmatched paybill payments are reviewable.

    1. Deliver a confirmation for ADM002 who has no outstanding fees.
    2. Validate it is acknowledged and stored with NO_FEES.
    3. List the review queue as the accountant.
    4. Validate the entry is visible in the north scope and the teacher is forbidden.
    """
    response = client.post(
        "/api/v1/mpesa/c2b/confirm",
        json={"TransID": "RKX2", "TransAmount": "12.50", "BusinessShortCode": "600000", "BillRefNumber": "ADM002"},
    )
    assert response.json() == {"ResultCode": "0", "ResultDesc": "Received"}
    [transaction] = list_mpesa_transactions(db_session)
    assert transaction.review_reason == MpesaReviewReason.no_fees
    assert transaction.amount_minor == 1250

    headers = school_header(token_for_user(seeded_users["accountant"].id), seeded_users["north_school"].id)
    response = client.get("/api/v1/mpesa/review", headers=headers)
    assert response.status_code == 200
    assert [item["mpesa_receipt_number"] for item in response.json()["items"]] == ["RKX2"]

    teacher = auth_header(token_for_user(seeded_users["teacher"].id))
    assert client.get("/api/v1/mpesa/review", headers=teacher).status_code == 403
