from schoolfin.config import settings
from schoolfin.domain.permissions import CATALOG_VERSION


def test_ping_endpoint_reports_connectivity(client):
    """
    Validate the public health endpoint payload.

    1. Call the public ping endpoint without authentication.
    2. Parse the response payload returned by the backend.
    3. Validate the message and permission catalog version.
    4. Validate DB and Redis connectivity flags are true.
    """
    response = client.get("/api/v1/ping")
    assert response.status_code == 200

    payload = response.json()
    assert payload["message"] == f"{settings.app_name} is running"
    assert payload["permission_catalog_version"] == CATALOG_VERSION
    assert payload["db_connected"] is True
    assert payload["redis_connected"] is True
