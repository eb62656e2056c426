from .conftest import PASSWORD, bearer, fetch_user, register, register_verified


def test_register_normalizes_email_and_name(client, app):
    resp = register(client, email="  Alice@Example.COM ", name="  Alice  ")
    assert resp.status_code == 201
    assert resp.json()["email"] == "alice@example.com"
    assert resp.json()["name"] == "Alice"
    assert fetch_user(app, "alice@example.com") is not None


def test_register_duplicate_email_conflicts(client):
    assert register(client).status_code == 201
    dup = register(client, email="A@x.com")
    assert dup.status_code == 409
    assert dup.json()["code"] == "conflict"


def test_register_missing_fields(client):
    resp = client.post("/user", json={"email": "a@x.com"})
    assert resp.status_code == 422


def test_register_rejects_weak_password(client):
    for password in ("short1A", "alllowercase1", "ALLUPPERCASE1", "NoDigitsOrSymbols"):
        resp = register(client, password=password)
        assert resp.status_code == 422, password


def test_register_rejects_invalid_email(client):
    resp = register(client, email="not-an-email")
    assert resp.status_code == 422


def test_register_delivery_failure_keeps_account_without_code(client, app, sink):
    sink.fail = True
    resp = register(client)
    assert resp.status_code == 502

    user = fetch_user(app, "a@x.com")
    assert user is not None
    assert user.otp_code is None and user.otp_expires_at is None

    # The client can ask for a new code once mail works again
    sink.fail = False
    assert client.post("/auth/resend-otp", json={"email": "a@x.com"}).status_code == 200


def test_user_endpoints_require_authentication(client):
    register(client)
    assert client.get("/user").status_code == 401
    assert client.get("/user/me").status_code == 401
    assert client.get("/user/me", headers={"Authorization": "Bearer nonsense"}).status_code == 401


def test_list_and_get_users(client, sink):
    tokens = register_verified(client, sink)
    register(client, email="b@x.com", name="Bob Example")

    listing = client.get("/user", headers=bearer(tokens["token"]))
    assert listing.status_code == 200
    assert {u["email"] for u in listing.json()} == {"a@x.com", "b@x.com"}

    me = client.get("/user/me", headers=bearer(tokens["token"])).json()
    one = client.get(f"/user/{me['id']}", headers=bearer(tokens["token"]))
    assert one.status_code == 200
    assert one.json()["email"] == "a@x.com"

    missing = client.get("/user/does-not-exist", headers=bearer(tokens["token"]))
    assert missing.status_code == 404


def test_refresh_token_cannot_authenticate_requests(client, sink):
    tokens = register_verified(client, sink)
    assert client.get("/user/me", headers=bearer(tokens["refreshToken"])).status_code == 401


def test_update_self_changes_profile_and_clears_pending_otp(client, app, sink):
    tokens = register_verified(client, sink)
    client.post("/auth/resend-otp", json={"email": "a@x.com"})
    assert fetch_user(app, "a@x.com").otp_code is not None

    me = client.get("/user/me", headers=bearer(tokens["token"])).json()
    resp = client.patch(
        f"/user/{me['id']}",
        json={"name": "Alice Renamed", "image": "/uploads/avatar.png"},
        headers=bearer(tokens["token"]),
    )
    assert resp.status_code == 200
    assert resp.json()["name"] == "Alice Renamed"
    assert resp.json()["image"] == "/uploads/avatar.png"

    user = fetch_user(app, "a@x.com")
    assert user.otp_code is None and user.otp_expires_at is None
    assert user.is_verified is True


def test_update_password_is_hashed(client, app, sink):
    tokens = register_verified(client, sink)
    me = client.get("/user/me", headers=bearer(tokens["token"])).json()

    resp = client.patch(f"/user/{me['id']}", json={"password": "Changed1!"}, headers=bearer(tokens["token"]))
    assert resp.status_code == 200
    assert fetch_user(app, "a@x.com").password_hash != "Changed1!"

    assert client.post("/auth/sign-in", json={"email": "a@x.com", "password": PASSWORD}).status_code == 401
    assert client.post("/auth/sign-in", json={"email": "a@x.com", "password": "Changed1!"}).status_code == 200


def test_update_email_to_taken_address_conflicts(client, sink):
    tokens = register_verified(client, sink)
    register(client, email="b@x.com", name="Bob Example")
    me = client.get("/user/me", headers=bearer(tokens["token"])).json()

    resp = client.patch(f"/user/{me['id']}", json={"email": "B@x.com"}, headers=bearer(tokens["token"]))
    assert resp.status_code == 409


def test_update_email_requires_new_verification(client, app, sink):
    tokens = register_verified(client, sink)
    me = client.get("/user/me", headers=bearer(tokens["token"])).json()

    resp = client.patch(f"/user/{me['id']}", json={"email": "New@x.com"}, headers=bearer(tokens["token"]))
    assert resp.status_code == 200
    assert resp.json()["email"] == "new@x.com"
    assert resp.json()["isVerified"] is False

    user = fetch_user(app, "new@x.com")
    assert user.is_verified is False
    assert user.otp_code == sink.last_code("new@x.com")
    assert sink.messages_to("new@x.com")[-1]["template_id"] == "verify-account"

    signin = client.post("/auth/sign-in", json={"email": "new@x.com", "password": PASSWORD})
    assert signin.status_code == 401
    assert signin.json()["code"] == "pending_verification"

    verify = client.post("/auth/verify-otp", json={"email": "new@x.com", "otpCode": sink.last_code("new@x.com")})
    assert verify.status_code == 200
    assert fetch_user(app, "new@x.com").is_verified is True


def test_update_to_own_email_keeps_verification(client, app, sink):
    tokens = register_verified(client, sink)
    sent = len(sink.sent)
    me = client.get("/user/me", headers=bearer(tokens["token"])).json()

    resp = client.patch(f"/user/{me['id']}", json={"email": "A@x.com"}, headers=bearer(tokens["token"]))
    assert resp.status_code == 200
    assert fetch_user(app, "a@x.com").is_verified is True
    assert len(sink.sent) == sent


def test_cannot_modify_other_users(client, app, sink):
    tokens = register_verified(client, sink)
    register(client, email="b@x.com", name="Bob Example")
    other = fetch_user(app, "b@x.com")

    patch = client.patch(f"/user/{other.id}", json={"name": "Hacked"}, headers=bearer(tokens["token"]))
    assert patch.status_code == 403
    delete = client.delete(f"/user/{other.id}", headers=bearer(tokens["token"]))
    assert delete.status_code == 403
    assert fetch_user(app, "b@x.com").name == "Bob Example"


def test_delete_self(client, app, sink):
    tokens = register_verified(client, sink)
    me = client.get("/user/me", headers=bearer(tokens["token"])).json()

    resp = client.delete(f"/user/{me['id']}", headers=bearer(tokens["token"]))
    assert resp.status_code == 200
    assert resp.json()["email"] == "a@x.com"
    assert fetch_user(app, "a@x.com") is None
    assert client.get("/user/me", headers=bearer(tokens["token"])).status_code == 401
