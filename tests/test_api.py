from sqlmodel import select

from app.constants.payment_status import MovieStatus, PaymentStatus
from app.models.access import Access
from app.models.payment import Payment

from conftest import auth_header, sign


def purchase(client, movie_id, device_id="D1", headers=None, signature=None):
    order = client.post(
        "/payments/create-order",
        json={"movieId": movie_id, "deviceId": device_id},
        headers=headers or {},
    )
    assert order.status_code == 200, order.text
    body = order.json()

    verify = client.post(
        "/payments/verify",
        json={
            "orderId": body["orderId"],
            "razorpayOrderId": body["razorpayOrderId"],
            "razorpayPaymentId": "pay_0001",
            "razorpaySignature": signature or sign(body["razorpayOrderId"], "pay_0001"),
            "movieId": movie_id,
        },
        headers=headers or {},
    )
    return body, verify


def validate(client, token, device_id):
    res = client.post("/payments/validate-access", json={"token": token, "deviceId": device_id})
    assert res.status_code == 200
    return res.json()


# ---------------- purchase flow ----------------

def test_guest_purchase_and_playback(client, movie):
    order, verify = purchase(client, movie.movie_id)

    assert order["success"] is True
    assert order["orderId"] == "PAY10001"
    assert order["amount"] == 100.0
    assert order["currency"] == "INR"
    assert order["key"] == "rzp_test_key"

    assert verify.status_code == 200, verify.text
    access = verify.json()["access"]
    assert access["accessId"] == "ACC10001"
    assert access["movieId"] == movie.movie_id
    assert access["moviePath"] == f"https://media.example.com/movies/{movie.movie_id}.mp4"

    played = validate(client, access["token"], "D1")
    assert played["valid"] is True
    assert played["success"] is True
    assert played["access"]["accessId"] == "ACC10001"
    assert "serverTime" in played

    elsewhere = validate(client, access["token"], "D2")
    assert elsewhere["valid"] is False
    assert elsewhere["reason"] == "not_found"
    assert elsewhere["message"] == "Access not found"


def test_second_order_on_same_device_conflicts(client, movie, session):
    _, verify = purchase(client, movie.movie_id)
    access_id = verify.json()["access"]["accessId"]

    res = client.post(
        "/payments/create-order",
        json={"movieId": movie.movie_id, "deviceId": "D1"},
    )

    assert res.status_code == 409
    assert res.json()["access"]["accessId"] == access_id
    assert len(session.exec(select(Payment)).all()) == 1


def test_retried_verify_returns_same_token(client, movie):
    order, first = purchase(client, movie.movie_id)

    again = client.post(
        "/payments/verify",
        json={
            "orderId": order["orderId"],
            "razorpayOrderId": order["razorpayOrderId"],
            "razorpayPaymentId": "pay_0001",
            "razorpaySignature": sign(order["razorpayOrderId"], "pay_0001"),
        },
    )

    assert again.status_code == 200
    assert again.json()["access"]["token"] == first.json()["access"]["token"]


def test_retried_verify_with_forged_signature_gets_no_token(client, movie, session):
    order, first = purchase(client, movie.movie_id)
    assert first.status_code == 200

    forged = client.post(
        "/payments/verify",
        json={
            "orderId": order["orderId"],
            "razorpayOrderId": order["razorpayOrderId"],
            "razorpayPaymentId": "pay_x",
            "razorpaySignature": "garbage",
        },
    )

    assert forged.status_code == 400
    assert "access" not in forged.json()
    assert first.json()["access"]["token"] not in forged.text

    session.expire_all()
    assert session.exec(select(Payment)).one().status == PaymentStatus.success


def test_draft_movie_cannot_be_bought(client, make_movie):
    draft = make_movie(status=MovieStatus.draft)

    res = client.post("/payments/create-order", json={"movieId": draft.movie_id, "deviceId": "D1"})

    assert res.status_code == 404


def test_bad_signature_is_rejected(client, movie, session):
    _, verify = purchase(client, movie.movie_id, signature="f" * 64)

    assert verify.status_code == 400
    assert verify.json()["detail"] == "Payment could not be confirmed"

    session.expire_all()
    payment = session.exec(select(Payment)).one()
    assert payment.status == PaymentStatus.failed
    assert session.exec(select(Access)).all() == []


def test_verify_unknown_order(client, movie):
    res = client.post(
        "/payments/verify",
        json={
            "orderId": "PAY77777",
            "razorpayOrderId": "order_x",
            "razorpayPaymentId": "pay_x",
            "razorpaySignature": "sig",
        },
    )
    assert res.status_code == 404


def test_unknown_movie(client):
    res = client.post("/payments/create-order", json={"movieId": "M55555", "deviceId": "D1"})
    assert res.status_code == 404


def test_gateway_outage(client, movie, gateway, session):
    gateway.down = True

    res = client.post("/payments/create-order", json={"movieId": movie.movie_id, "deviceId": "D1"})

    assert res.status_code == 502
    assert session.exec(select(Payment)).all() == []


def test_missing_device_is_a_validation_error(client, movie):
    res = client.post("/payments/create-order", json={"movieId": movie.movie_id})
    assert res.status_code == 422


def test_my_purchases(client, movie, make_user):
    headers = auth_header(make_user())
    purchase(client, movie.movie_id, headers=headers)

    res = client.get("/payments/my-purchases", headers=headers)

    assert res.status_code == 200
    purchases = res.json()["purchases"]
    assert len(purchases) == 1
    assert purchases[0]["movie"]["movieId"] == movie.movie_id
    assert purchases[0]["access"]["isActive"] is True


def test_my_purchases_requires_login(client):
    assert client.get("/payments/my-purchases").status_code == 401


# ---------------- admin ----------------

def test_admin_lists_and_revokes_access(client, movie, admin_headers):
    _, verify = purchase(client, movie.movie_id)
    access = verify.json()["access"]

    listed = client.get("/admin/access", params={"status": "active"}, headers=admin_headers)
    assert listed.status_code == 200
    body = listed.json()
    assert body["total_items"] == 1
    assert body["accessList"][0]["accessId"] == access["accessId"]
    assert body["accessList"][0]["user"] is None

    revoked = client.delete(f"/admin/access/{access['accessId']}", headers=admin_headers)
    assert revoked.status_code == 200

    check = validate(client, access["token"], "D1")
    assert check["valid"] is False
    assert check["reason"] == "expired"

    expired = client.get("/admin/access", params={"status": "expired"}, headers=admin_headers).json()
    assert [a["accessId"] for a in expired["accessList"]] == [access["accessId"]]
    assert expired["accessList"][0]["isActive"] is False

    # revoking frees the device for a new purchase
    res = client.post("/payments/create-order", json={"movieId": movie.movie_id, "deviceId": "D1"})
    assert res.status_code == 200


def test_revoke_unknown_access(client, admin_headers):
    assert client.delete("/admin/access/ACC99999", headers=admin_headers).status_code == 404


def test_admin_routes_need_admin(client, make_user):
    assert client.get("/admin/access").status_code == 401

    viewer = auth_header(make_user())
    assert client.get("/admin/access", headers=viewer).status_code == 403
    assert client.delete("/admin/access/ACC10001", headers=viewer).status_code == 403


def test_admin_refund(client, movie, admin_headers, gateway):
    order, verify = purchase(client, movie.movie_id)
    token = verify.json()["access"]["token"]

    res = client.post(f"/admin/payments/{order['orderId']}/refund", headers=admin_headers)

    assert res.status_code == 200
    assert res.json()["status"] == "refunded"
    assert gateway.refunds[0]["payment_id"] == "pay_0001"
    assert validate(client, token, "D1")["reason"] == "expired"

    again = client.post(f"/admin/payments/{order['orderId']}/refund", headers=admin_headers)
    assert again.status_code == 400


def test_admin_payment_listing(client, movie, admin_headers):
    purchase(client, movie.movie_id)
    purchase(client, movie.movie_id, device_id="D2", signature="bad")

    succeeded = client.get(
        "/admin/payments", params={"status": "success"}, headers=admin_headers
    ).json()
    failed = client.get(
        "/admin/payments", params={"status": "failed"}, headers=admin_headers
    ).json()

    assert [p["accessId"] for p in succeeded["payments"]] == ["ACC10001"]
    assert [p["deviceId"] for p in failed["payments"]] == ["D2"]

    detail = client.get("/admin/payments/PAY10002", headers=admin_headers).json()
    assert detail["payment"]["meta"]["failure"]["reason"] == "invalid_signature"


# ---------------- movies ----------------

def test_admin_uploads_and_publishes_movie(client, admin_headers, media_store):
    res = client.post(
        "/movies",
        data={"title": "Monsoon Wedding", "price": "149", "durationSeconds": "6840"},
        files={"movieFile": ("monsoon.mp4", b"\x00\x00\x00\x18ftypmp42", "video/mp4")},
        headers=admin_headers,
    )

    assert res.status_code == 201, res.text
    created = res.json()
    assert created["status"] == "draft"
    assert created["durationSeconds"] == 6840
    assert created["filePath"] == "movies/monsoon-wedding.mp4"
    assert media_store.uploaded == ["movies/monsoon-wedding.mp4"]

    movie_id = created["movieId"]
    assert client.get(f"/movies/{movie_id}").status_code == 404

    toggled = client.put(f"/movies/{movie_id}/toggle-publish", headers=admin_headers)
    assert toggled.json()["status"] == "published"

    public = client.get(f"/movies/{movie_id}").json()
    assert public["title"] == "Monsoon Wedding"
    assert "filePath" not in public


def test_purchased_movie_is_archived_not_deleted(client, movie, admin_headers, media_store):
    purchase(client, movie.movie_id)

    res = client.delete(f"/movies/{movie.movie_id}", headers=admin_headers)

    assert res.json()["archived"] is True
    assert media_store.deleted == []
    assert client.get(f"/movies/{movie.movie_id}").status_code == 404
    res = client.post("/payments/create-order", json={"movieId": movie.movie_id, "deviceId": "D9"})
    assert res.status_code == 404


def test_unpurchased_movie_is_deleted(client, movie, admin_headers, media_store):
    file_path = movie.file_path

    res = client.delete(f"/movies/{movie.movie_id}", headers=admin_headers)

    assert res.json()["archived"] is False
    assert media_store.deleted == [file_path]


# ---------------- auth ----------------

def test_signup_login_refresh(client):
    signup = client.post(
        "/auth/signup",
        json={"name": "Asha", "email": "asha@moviepurchase.com", "password": "secret123", "deviceId": "D1"},
    )
    assert signup.status_code == 201
    assert signup.json()["user"]["userId"] == "U10001"

    duplicate = client.post(
        "/auth/signup",
        json={"name": "Asha", "email": "asha@moviepurchase.com", "password": "secret123"},
    )
    assert duplicate.status_code == 409

    bad = client.post("/auth/login", json={"email": "asha@moviepurchase.com", "password": "nope"})
    assert bad.status_code == 401

    login = client.post(
        "/auth/login",
        json={"email": "asha@moviepurchase.com", "password": "secret123", "deviceId": "D2"},
    )
    assert login.status_code == 200
    tokens = login.json()

    profile = client.get(
        "/auth/profile", headers={"Authorization": f"Bearer {tokens['accessToken']}"}
    )
    assert profile.json()["user"]["email"] == "asha@moviepurchase.com"

    refreshed = client.post("/auth/refresh-token", json={"refreshToken": tokens["refreshToken"]})
    assert refreshed.status_code == 200
    assert refreshed.json()["accessToken"]

    # an access token is not a refresh token
    wrong = client.post("/auth/refresh-token", json={"refreshToken": tokens["accessToken"]})
    assert wrong.status_code == 401


def test_health(client):
    res = client.get("/health/check")
    assert res.json()["database"] == "ok"
