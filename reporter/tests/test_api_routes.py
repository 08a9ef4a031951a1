import pytest
from fastapi.testclient import TestClient

from reporter.app.codecs.docx_codec import DOCX_MEDIA_TYPE, extract_text
from reporter.app.main import create_app
from reporter.tests.fixtures.factories import (
    docx_bytes,
    make_form,
    make_response,
    make_settings,
)


ADMIN = {"X-User-Id": "admin", "X-User-Role": "director"}
STUDENT = {"X-User-Id": "u1", "X-User-Role": "student"}
OUTSIDER = {"X-User-Id": "nobody"}


@pytest.fixture
def client(tmp_path):
    app = create_app(make_settings(tmp_path))
    with TestClient(app) as test_client:
        test_client.put("/forms/form-1", json=make_form().model_dump(mode="json"))
        response = test_client.post(
            "/responses",
            json=make_response(user_id="u1").model_dump(mode="json"),
        )
        assert response.status_code == 201
        yield test_client


def upload(name, content, media_type=DOCX_MEDIA_TYPE):
    return {"template": (name, content, media_type)}


def open_individual_wizard(client):
    response = client.post(
        "/wizards",
        json={"form_ids": ["form-1"], "mode": "individual"},
        headers=ADMIN,
    )
    assert response.status_code == 201
    return response.json()["id"]


def prepare_wizard(client):
    wizard_id = open_individual_wizard(client)
    response = client.post(
        f"/wizards/{wizard_id}/template",
        files=upload("saludo.docx", docx_bytes("Hola <<nombre>>")),
        headers=ADMIN,
    )
    assert response.json()["placeholders"] == ["nombre"]
    response = client.put(
        f"/wizards/{wizard_id}/mapping",
        json={"mappings": {"nombre": "_userName"}},
        headers=ADMIN,
    )
    assert response.json()["unmapped"] == []
    return wizard_id


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_identity_header_is_required(client):
    assert client.get("/reports").status_code == 401


def test_template_extraction_endpoint(client):
    response = client.post(
        "/templates/extract",
        files=upload("p.docx", docx_bytes("<<a>> <<b>> <<a>>")),
        headers=ADMIN,
    )

    assert response.status_code == 200
    assert response.json() == {"file_name": "p.docx", "placeholders": ["a", "b"]}


def test_wrong_template_type_is_a_bad_request(client):
    response = client.post(
        "/templates/extract",
        files=upload("p.pdf", b"%PDF", "application/pdf"),
        headers=ADMIN,
    )

    assert response.status_code == 400


def test_wizard_generation_and_viewer(client):
    wizard_id = prepare_wizard(client)
    client.put(
        f"/wizards/{wizard_id}/permissions",
        json={"users": [], "roles": ["student"], "subnets": []},
        headers=ADMIN,
    )

    response = client.post(f"/wizards/{wizard_id}/generate", headers=ADMIN)

    assert response.status_code == 200
    result = response.json()
    assert result["status"] == "success"
    [report_id] = result["report_ids"]

    # Wizard is gone after generation
    assert client.get(f"/wizards/{wizard_id}", headers=ADMIN).status_code == 404

    listed = client.get("/reports", params={"search": "ana"}, headers=STUDENT).json()
    assert [r["id"] for r in listed] == [report_id]
    assert client.get("/reports", headers=OUTSIDER).json() == []
    assert client.get(f"/reports/{report_id}", headers=OUTSIDER).status_code == 404

    artifact = client.get(f"/reports/{report_id}/artifact", headers=STUDENT)
    assert artifact.status_code == 200
    assert artifact.headers["content-type"] == DOCX_MEDIA_TYPE
    assert extract_text(artifact.content) == "Hola Ana"

    assert client.delete(f"/reports/{report_id}", headers=ADMIN).status_code == 204
    assert client.get(f"/reports/{report_id}", headers=ADMIN).status_code == 404


def test_generation_with_unmapped_placeholders_is_refused(client):
    wizard_id = open_individual_wizard(client)
    client.post(
        f"/wizards/{wizard_id}/template",
        files=upload("p.docx", docx_bytes("<<nombre>> <<ciudad>>")),
        headers=ADMIN,
    )

    response = client.post(f"/wizards/{wizard_id}/generate", headers=ADMIN)

    assert response.status_code == 422
    assert response.json()["detail"]["unmapped"] == ["nombre", "ciudad"]
    # Still open so the user can finish the mapping
    assert client.get(f"/wizards/{wizard_id}", headers=ADMIN).status_code == 200
    assert client.get("/reports", headers=ADMIN).json() == []


def test_unknown_mapping_target_is_rejected(client):
    wizard_id = prepare_wizard(client)

    response = client.put(
        f"/wizards/{wizard_id}/mapping",
        json={"mappings": {"nombre": "no_such_field"}},
        headers=ADMIN,
    )

    assert response.status_code == 422


def test_wizard_belongs_to_its_opener(client):
    wizard_id = open_individual_wizard(client)

    assert client.get(f"/wizards/{wizard_id}", headers=STUDENT).status_code == 404
    assert client.delete(f"/wizards/{wizard_id}", headers=ADMIN).status_code == 204
    assert client.get(f"/wizards/{wizard_id}", headers=ADMIN).status_code == 404


def test_catalog_lists_form_and_metadata_fields(client):
    wizard_id = open_individual_wizard(client)

    catalog = client.get(f"/wizards/{wizard_id}/catalog", headers=ADMIN).json()

    assert [entry["field_id"] for entry in catalog] == [
        "name",
        "city",
        "_userName",
        "_userRole",
        "_timestamp",
    ]


def test_streaming_generation_ends_with_completed_event(client):
    wizard_id = prepare_wizard(client)

    response = client.post(f"/wizards/{wizard_id}/generate/stream", headers=ADMIN)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    body = response.text
    assert "event: generation_started" in body
    assert "event: report_generated" in body
    assert body.rstrip().splitlines()[-2] == "event: generation_completed"


def test_response_update_regenerates_report_in_background(client):
    wizard_id = prepare_wizard(client)
    client.post(f"/wizards/{wizard_id}/generate", headers=ADMIN)

    updated = make_response(user_id="u1", values={"name": "Ana", "city": "Cusco"})
    response = client.put("/responses/resp-1", json=updated.model_dump(mode="json"))

    assert response.status_code == 200
    events = client.get(
        "/notifications",
        params={"event_type": "auto_generation_completed"},
        headers=ADMIN,
    ).json()
    assert len(events) == 1
    own = client.get("/reports", headers=STUDENT).json()
    assert [r["auto_generated"] for r in own] == [True]


def test_duplicate_response_conflicts(client):
    response = client.post(
        "/responses",
        json=make_response("resp-2", user_id="u1").model_dump(mode="json"),
    )

    assert response.status_code == 409


def test_deleting_a_form_drops_its_responses_and_template(client):
    wizard_id = prepare_wizard(client)
    [report_id] = client.post(f"/wizards/{wizard_id}/generate", headers=ADMIN).json()[
        "report_ids"
    ]
    container = client.app.state.container
    assert container.templates.get("form-1") is not None

    assert client.delete("/forms/form-1").status_code == 204

    assert client.get("/forms").json() == []
    assert container.responses.by_form("form-1") == []
    assert container.templates.get("form-1") is None
    # Generated reports keep their own snapshot
    assert client.get(f"/reports/{report_id}", headers=ADMIN).status_code == 200
    assert client.delete("/forms/form-1").status_code == 404
