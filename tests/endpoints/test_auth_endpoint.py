from tests.helpers.auth import auth_header, login


def test_login_returns_token_usable_on_protected_endpoint(client, seeded_users):
    """
    Validate the password login flow.

    1. Log in as the accountant through the token endpoint.
    2. Receive a bearer token.
    3. Call the context endpoint with the token.
    4. Validate the resolved user is the accountant.
    """
    token = login(client, "accountant", "accountant123")
    response = client.get("/api/v1/me/context", headers=auth_header(token))
    assert response.status_code == 200
    assert response.json()["user_id"] == seeded_users["accountant"].id


def test_login_rejects_bad_credentials(client, seeded_users):
    """
    Validate invalid credentials are rejected.

    1. Post a wrong password for an existing user.
    2. Receive unauthorized response.
    3. Validate the bearer challenge header is present.
    4. Validate an unknown user is rejected the same way.
    """
    response = client.post("/api/v1/auth/token", data={"username": "accountant", "password": "wrong"})
    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"

    response = client.post("/api/v1/auth/token", data={"username": "ghost", "password": "ghost"})
    assert response.status_code == 401
