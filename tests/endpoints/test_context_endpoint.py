from schoolfin.config import settings
from tests.helpers.auth import auth_header, school_header, token_for_user


def test_me_context_requires_authentication(client):
    """
    Validate anonymous context requests.

    1. Call the context endpoint without a token.
    2. Receive unauthorized response.
    3. Call it with a garbage token.
    4. Validate it is also unauthorized.
    """
    assert client.get("/api/v1/me/context").status_code == 401
    assert client.get("/api/v1/me/context", headers=auth_header("garbage")).status_code == 401


def test_me_context_resolves_header_selection(client, seeded_users):
    """
    Validate tenant selection through the header.

    1. Call the context endpoint as the admin selecting the south school.
    2. Receive the resolved context.
    3. Validate the south school is the active tenant.
    4. Validate an unknown school header falls back to the first membership.
    """
    token = token_for_user(seeded_users["admin"].id)
    response = client.get("/api/v1/me/context", headers=school_header(token, seeded_users["south_school"].id))
    assert response.status_code == 200
    payload = response.json()
    assert payload["role"] == "admin"
    assert payload["scope"] == {"tenant_id": seeded_users["south_school"].id, "is_super_admin": False, "mode": "school"}
    assert "fees.write" in payload["permissions"]

    response = client.get("/api/v1/me/context", headers=school_header(token, 999999))
    assert response.json()["scope"]["tenant_id"] == seeded_users["north_school"].id


def test_me_context_for_super_admin_and_outsider(client, seeded_users):
    """
    Validate global and empty scopes.

    1. Call the context endpoint as the super admin without a selection.
    2. Validate the scope is global.
    3. Call it as a user without memberships.
    4. Validate the scope grants no tenant.
    """
    response = client.get("/api/v1/me/context", headers=auth_header(token_for_user(seeded_users["super_admin"].id)))
    assert response.json()["scope"] == {"tenant_id": None, "is_super_admin": True, "mode": "global"}

    response = client.get("/api/v1/me/context", headers=auth_header(token_for_user(seeded_users["outsider"].id)))
    assert response.json()["scope"] == {"tenant_id": None, "is_super_admin": False, "mode": "no_access"}


def test_current_school_cookie_selects_tenant(client, seeded_users):
    """
    Validate the current school cookie.

    1. Select the south school as the admin.
    2. Validate the cookie is set.
    3. Call the context endpoint without a school header.
    4. Validate the cookie selection wins over the header.
    """
    token = token_for_user(seeded_users["admin"].id)
    response = client.post(
        "/api/v1/current-school",
        headers=auth_header(token),
        json={"school_id": seeded_users["south_school"].id},
    )
    assert response.status_code == 200
    assert response.json() == {"ok": True, "school_id": seeded_users["south_school"].id}
    assert response.cookies.get(settings.tenant_cookie_name) == str(seeded_users["south_school"].id)

    response = client.get("/api/v1/me/context", headers=school_header(token, seeded_users["north_school"].id))
    assert response.json()["scope"]["tenant_id"] == seeded_users["south_school"].id


def test_current_school_rejects_foreign_school_and_clear(client, seeded_users):
    """
    Validate current school guard rails.

    1. Select the south school as the accountant who has no membership there.
    2. Receive forbidden response.
    3. Clear the selection as the accountant.
    4. Validate clearing is forbidden for non super admins.
    """
    token = token_for_user(seeded_users["accountant"].id)
    response = client.post(
        "/api/v1/current-school",
        headers=auth_header(token),
        json={"school_id": seeded_users["south_school"].id},
    )
    assert response.status_code == 403

    response = client.post("/api/v1/current-school", headers=auth_header(token), json={"school_id": None})
    assert response.status_code == 403
