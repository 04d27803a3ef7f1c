import config
import registry
from conftest import default_category


def test_login_creates_user_and_me_resolves_token(client):
    response = client.post("/users/login", json={"username": "  Carol ", "password": config.LOGIN_PASSWORD})
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["user"]["username"] == "carol"

    me = client.get("/users/me", headers={"Authorization": f"Bearer {data['token']}"})
    assert me.status_code == 200
    assert me.json()["user"]["id"] == data["user"]["id"]

    again = client.post("/users/login", json={"username": "carol", "password": config.LOGIN_PASSWORD})
    assert again.json()["user"]["id"] == data["user"]["id"]


def test_login_wrong_password(client):
    response = client.post("/users/login", json={"username": "carol", "password": "wrong"})
    assert response.status_code == 401
    assert response.json() == {"success": False, "error": "Incorrect password"}


def test_login_missing_username(client):
    response = client.post("/users/login", json={"username": " ", "password": config.LOGIN_PASSWORD})
    assert response.status_code == 400


def test_requests_without_token_are_unauthorized(client):
    assert client.get("/categories").status_code == 401
    assert client.get("/records", headers={"Authorization": "Bearer not-a-token"}).status_code == 401


def test_category_crud(client, auth_headers):
    response = client.post("/categories", json={"name": "Sleep", "icon": "😴"}, headers=auth_headers)
    assert response.status_code == 201
    category = response.json()["category"]
    assert category["aggregation_strategy"] == "generic"

    listed = client.get("/categories", headers=auth_headers).json()["categories"]
    assert category["id"] in [c["id"] for c in listed]
    assert listed[0]["is_default"] is True

    response = client.put(f"/categories/{category['id']}", json={"name": "Naps"}, headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["category"]["name"] == "Naps"

    response = client.delete(f"/categories/{category['id']}", headers=auth_headers)
    assert response.status_code == 200
    assert client.delete(f"/categories/{category['id']}", headers=auth_headers).status_code == 404


def test_category_validation_and_forbidden(client, auth_headers, test_session):
    assert client.post("/categories", json={"name": "  "}, headers=auth_headers).status_code == 400

    diet = default_category(test_session, "Diet")
    response = client.put(f"/categories/{diet.id}", json={"name": "Food"}, headers=auth_headers)
    assert response.status_code == 403
    assert response.json()["success"] is False


def test_fields_and_form(client, auth_headers):
    category = client.post("/categories", json={"name": "Mood"}, headers=auth_headers).json()["category"]
    response = client.post(
        f"/categories/{category['id']}/fields",
        json={"field_name": "feeling", "field_label": "Feeling", "field_type": "select",
              "field_options": ["Good", "Bad"], "is_required": True},
        headers=auth_headers,
    )
    assert response.status_code == 201

    fields = client.get(f"/categories/{category['id']}/fields", headers=auth_headers).json()["fields"]
    assert [(f["field_name"], f["field_options"]) for f in fields] == [("feeling", ["Good", "Bad"])]

    form = client.get(f"/categories/{category['id']}/form", headers=auth_headers).json()["form"]
    assert form[0]["widget"] == "select"
    assert form[0]["choices"] == ["Good", "Bad"]

    response = client.delete(f"/categories/{category['id']}/fields/{fields[0]['id']}", headers=auth_headers)
    assert response.status_code == 200


def test_record_lifecycle(client, auth_headers, test_session):
    bp = default_category(test_session, "Blood Pressure")
    response = client.post(
        "/records",
        json={"category_id": bp.id, "record_date": "2024-01-15", "record_time": "08:00",
              "data": {"systolic": "120", "diastolic": "80"}},
        headers=auth_headers,
    )
    assert response.status_code == 201
    record_id = response.json()["record"]["id"]

    record = client.get(f"/records/{record_id}", headers=auth_headers).json()["record"]
    assert record["category_name"] == "Blood Pressure"
    assert record["data"] == {"systolic": "120", "diastolic": "80"}

    response = client.put(f"/records/{record_id}", json={"notes": "calm"}, headers=auth_headers)
    assert response.status_code == 200
    record = client.get(f"/records/{record_id}", headers=auth_headers).json()["record"]
    assert record["notes"] == "calm"
    assert record["data"] == {"systolic": "120", "diastolic": "80"}

    client.put(f"/records/{record_id}", json={"data": {}}, headers=auth_headers)
    assert client.get(f"/records/{record_id}", headers=auth_headers).json()["record"]["data"] == {}

    assert client.delete(f"/records/{record_id}", headers=auth_headers).status_code == 200
    assert client.get(f"/records/{record_id}", headers=auth_headers).status_code == 404


def test_create_record_validation(client, auth_headers):
    response = client.post("/records", json={"record_date": "2024-01-15"}, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "Category is required"

    response = client.post("/records", json={"category_id": "abc", "record_date": "2024-01-15"}, headers=auth_headers)
    assert response.status_code == 400

    response = client.post("/records", json={"category_id": 1}, headers=auth_headers)
    assert response.status_code == 400


def test_get_records_with_filters(client, auth_headers, test_session):
    hr = default_category(test_session, "Heart Rate")
    for record_date in ("2024-01-15", "2024-01-20"):
        client.post("/records", json={"category_id": hr.id, "record_date": record_date,
                                      "data": {"heart_rate": "70"}}, headers=auth_headers)

    response = client.get("/records?start_date=2024-01-15&end_date=2024-01-16", headers=auth_headers)
    assert response.status_code == 200
    data = response.json()["records"]
    assert len(data) == 1
    assert data[0]["record_date"] == "2024-01-15"


def test_week_view(client, auth_headers, test_session):
    hr = default_category(test_session, "Heart Rate")
    client.post("/records", json={"category_id": hr.id, "record_date": "2024-01-17",
                                  "data": {"heart_rate": "70"}}, headers=auth_headers)

    response = client.get("/records/week?week_start=2024-01-15", headers=auth_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["week_end"] == "2024-01-21"
    assert [len(day["records"]) for day in data["days"]] == [0, 0, 1, 0, 0, 0, 0]


def test_week_view_invalid_date(client, auth_headers):
    response = client.get("/records/week?week_start=invalid-date", headers=auth_headers)
    assert response.status_code == 400


def test_delete_record_not_found(client, auth_headers):
    response = client.delete("/records/99999", headers=auth_headers)
    assert response.status_code == 404


def test_stats_endpoint(client, auth_headers, test_session):
    bp = default_category(test_session, "Blood Pressure")
    client.post("/records", json={"category_id": bp.id, "record_date": "2024-01-02",
                                  "data": {"systolic": "118", "diastolic": "76"}}, headers=auth_headers)

    response = client.get("/stats?period=7&end_date=2024-01-02", headers=auth_headers)
    assert response.status_code == 200
    data = response.json()
    assert (data["start_date"], data["end_date"]) == ("2023-12-27", "2024-01-02")
    series = data["stats"][str(bp.id)]
    assert series["type"] == "time-series"
    assert series["data"][0]["systolic"] == 118

    day = client.get("/stats?date=2024-01-02", headers=auth_headers).json()
    assert day["start_date"] == day["end_date"] == "2024-01-02"

    bad = client.get("/stats?start_date=2024-01-05&end_date=2024-01-01", headers=auth_headers)
    assert bad.status_code == 400


def test_export_csv(client, auth_headers, test_session):
    diet = default_category(test_session, "Diet")
    client.post("/records", json={"category_id": diet.id, "record_date": "2024-01-15",
                                  "data": {"name": "Rice"}}, headers=auth_headers)

    response = client.get("/export?format=csv&start_date=2024-01-15&end_date=2024-01-21", headers=auth_headers)
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "health_records_2024-01-15_2024-01-21.csv" in response.headers["content-disposition"]
    body = response.content.decode("utf-8")
    assert body.startswith("\ufeff")
    assert '"Diet"' in body and '"Rice"' in body


def test_export_pdf_and_unsupported_format(client, auth_headers):
    response = client.get("/export?format=pdf", headers=auth_headers)
    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert response.content.startswith(b"%PDF")

    assert client.get("/export?format=xml", headers=auth_headers).status_code == 400


def test_root_endpoint(client):
    """Test root endpoint."""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert "message" in data
    assert "docs" in data


def test_private_category_schema_is_hidden_from_other_users(client, auth_headers, test_session, other_user):
    private = registry.create_category(test_session, other_user, "Bob Secret")
    registry.create_field(test_session, other_user, private.id, "diagnosis", field_type="text")

    response = client.get(f"/categories/{private.id}/fields", headers=auth_headers)
    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Category not found"}
    assert client.get(f"/categories/{private.id}/form", headers=auth_headers).status_code == 404

    diet = default_category(test_session, "Diet")
    assert client.get(f"/categories/{diet.id}/fields", headers=auth_headers).status_code == 200


def test_cannot_file_record_under_another_users_category(client, auth_headers, test_session, other_user):
    private = registry.create_category(test_session, other_user, "Bob Secret")

    response = client.post("/records", json={"category_id": private.id, "record_date": "2024-01-15"},
                           headers=auth_headers)

    assert response.status_code == 404
    assert client.get("/records", headers=auth_headers).json()["records"] == []


def test_stats_period_must_be_positive(client, auth_headers):
    response = client.get("/stats?period=0&end_date=2024-01-02", headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["success"] is False
