from tests.helpers.auth import school_header, token_for_user


def test_audit_logs_paginated_and_scoped(client, seeded_users):
    """
    Validate the audit log listing.

    1. Create two structure lines in the north school and one in the south school as the admin.
    2. List north audit logs one per page.
    3. Validate pagination metadata and that only north entries count.
    4. Validate the teacher cannot read the audit log.
    """
    north = school_header(token_for_user(seeded_users["admin"].id), seeded_users["north_school"].id)
    south = school_header(token_for_user(seeded_users["admin"].id), seeded_users["south_school"].id)
    for category_key in ("tuition", "meals"):
        client.post(
            "/api/v1/fee-structures",
            headers=north,
            json={
                "class_id": seeded_users["north_class"].id,
                "category_id": seeded_users[category_key].id,
                "academic_year": 2026,
                "amount_minor": 100,
            },
        )
    client.post(
        "/api/v1/fee-structures",
        headers=south,
        json={
            "class_id": seeded_users["south_class"].id,
            "category_id": seeded_users["south_tuition"].id,
            "academic_year": 2026,
            "amount_minor": 100,
        },
    )

    response = client.get("/api/v1/audit-logs", headers=north, params={"limit": 1})
    assert response.status_code == 200
    payload = response.json()
    assert len(payload["items"]) == 1
    assert payload["items"][0]["entity"] == "fee_structure_line"
    assert payload["pagination"]["total"] == 2
    assert payload["pagination"]["has_next"] is True

    teacher = school_header(token_for_user(seeded_users["teacher"].id), seeded_users["north_school"].id)
    assert client.get("/api/v1/audit-logs", headers=teacher).status_code == 403
