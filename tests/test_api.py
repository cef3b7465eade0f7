"""API tests for forms, public submission, responses, and internal endpoints."""

import uuid

import pytest

from formbridge.db.models import Form, FormResponse


def _question_payload(key, field_id, question_type="shortText", **extra):
    return {"key": key, "external_field_id": field_id, "label": key.title(), "type": question_type} | extra


# =============================================================================
# Owner identity
# =============================================================================


@pytest.mark.asyncio
async def test_forms_require_owner_header(client):
    res = await client.get("/forms")
    assert res.status_code == 401


@pytest.mark.asyncio
async def test_invalid_owner_header(client):
    res = await client.get("/forms", headers={"X-Owner-Id": "not-a-uuid"})
    assert res.status_code == 401

    res = await client.get("/forms", headers={"X-Owner-Id": str(uuid.uuid4())})
    assert res.status_code == 401


# =============================================================================
# Forms
# =============================================================================


@pytest.mark.asyncio
async def test_create_and_get_form(owner_client, db):
    payload = {
        "title": "Signup",
        "airtable_base_id": "appTestBase",
        "airtable_table_id": "tblTestTable",
        "questions": [
            _question_payload("name", "fldName", required=True),
            _question_payload(
                "plan",
                "fldPlan",
                "singleSelect",
                options=[{"value": "basic", "label": "Basic"}, {"value": "pro", "label": "Pro"}],
            ),
        ],
    }

    res = await owner_client.post("/forms", json=payload)

    assert res.status_code == 201
    data = res.json()
    assert data["version"] == 1
    assert data["published_at"] is not None
    assert [q["key"] for q in data["questions"]] == ["name", "plan"]

    res = await owner_client.get(f"/forms/{data['id']}")
    assert res.status_code == 200
    assert res.json()["title"] == "Signup"


@pytest.mark.asyncio
async def test_create_form_with_cycle_returns_400(owner_client, db):
    rule = lambda key: {  # noqa: E731
        "logic": "AND",
        "conditions": [{"question_key": key, "operator": "equals", "value": "x"}],
    }
    payload = {
        "title": "Loop",
        "airtable_base_id": "appTestBase",
        "airtable_table_id": "tblTestTable",
        "questions": [
            _question_payload("name", "fldName", conditional_rule=rule("email")),
            _question_payload("email", "fldEmail", conditional_rule=rule("name")),
        ],
    }

    res = await owner_client.post("/forms", json=payload)

    assert res.status_code == 400
    assert res.json()["error"] == "Circular dependency detected in conditional logic"
    assert db.query(Form).count() == 0


@pytest.mark.asyncio
async def test_create_form_with_expired_token(client, owner_factory):
    expired = owner_factory(expires_in=-10)
    res = await client.post(
        "/forms",
        headers={"X-Owner-Id": str(expired.id)},
        json={
            "title": "x",
            "airtable_base_id": "appTestBase",
            "airtable_table_id": "tblTestTable",
            "questions": [],
        },
    )
    assert res.status_code == 401
    assert res.json()["detail"] == "Airtable token expired, please reauthenticate"


@pytest.mark.asyncio
async def test_update_form_bumps_version(owner_client, form):
    res = await owner_client.patch(f"/forms/{form.id}", json={"title": "Renamed"})
    assert res.status_code == 200
    assert res.json()["version"] == 2


@pytest.mark.asyncio
async def test_public_form_view_and_unpublish(owner_client, client, form):
    res = await client.get(f"/public/forms/{form.id}")
    assert res.status_code == 200
    assert "external_field_id" not in res.json()["questions"][0]

    res = await owner_client.post(f"/forms/{form.id}/unpublish")
    assert res.status_code == 200

    res = await client.get(f"/public/forms/{form.id}")
    assert res.status_code == 404


@pytest.mark.asyncio
async def test_duplicate_and_stats(owner_client, form):
    res = await owner_client.post(f"/forms/{form.id}/duplicate", json={"title": "Copy A"})
    assert res.status_code == 201
    assert res.json()["title"] == "Copy A"
    assert res.json()["published_at"] is None

    res = await owner_client.get(f"/forms/{form.id}/stats")
    assert res.status_code == 200
    assert res.json()["total_responses"] == 0
    assert res.json()["question_count"] == 3


@pytest.mark.asyncio
async def test_delete_form_retires_it(owner_client, db, form):
    res = await owner_client.delete(f"/forms/{form.id}")
    assert res.status_code == 200

    res = await owner_client.get(f"/forms/{form.id}")
    assert res.status_code == 404
    db.refresh(form)
    assert form.is_active is False


# =============================================================================
# Responses
# =============================================================================


@pytest.mark.asyncio
async def test_public_submission(client, db, form, airtable):
    res = await client.post(
        f"/public/forms/{form.id}/responses",
        json={"answers": {"name": "Ada", "email": "ada@example.com"}},
    )

    assert res.status_code == 201
    data = res.json()
    assert data["synced"] is True
    assert data["message"] == "Response submitted successfully"
    assert data["response"]["status"] == "synced"
    stored = db.query(FormResponse).one()
    assert stored.submitted_by["user_agent"]
    assert airtable.records[stored.external_record_id] == {
        "fldName": "Ada",
        "fldEmail": "ada@example.com",
    }


@pytest.mark.asyncio
async def test_public_submission_validation_error(client, form):
    res = await client.post(f"/public/forms/{form.id}/responses", json={"answers": {"email": "a@b.c"}})

    assert res.status_code == 400
    assert res.json()["error"] == "Validation failed"
    assert res.json()["details"] == [{"question_key": "name", "error": "This field is required"}]


@pytest.mark.asyncio
async def test_public_submission_with_failed_sync(client, form, airtable):
    airtable.fail_create = True

    res = await client.post(f"/public/forms/{form.id}/responses", json={"answers": {"name": "Ada"}})

    assert res.status_code == 201
    assert res.json()["synced"] is False
    assert res.json()["response"]["status"] == "failed"


@pytest.mark.asyncio
async def test_submission_to_unknown_form(client):
    res = await client.post(f"/public/forms/{uuid.uuid4()}/responses", json={"answers": {}})
    assert res.status_code == 404


@pytest.mark.asyncio
async def test_list_get_update_delete_response(owner_client, client, db, form, airtable):
    submitted = await client.post(f"/public/forms/{form.id}/responses", json={"answers": {"name": "Ada"}})
    response_id = submitted.json()["response"]["id"]

    res = await owner_client.get(f"/forms/{form.id}/responses", params={"status": "synced"})
    assert res.status_code == 200
    assert res.json()["total"] == 1
    assert res.json()["by_status"] == {"synced": 1}

    res = await owner_client.get(f"/responses/{response_id}")
    assert res.status_code == 200

    res = await owner_client.patch(f"/responses/{response_id}", json={"answers": {"name": "Grace"}})
    assert res.status_code == 200
    assert res.json()["response"]["sync_attempts"] == 2

    res = await owner_client.delete(f"/responses/{response_id}", params={"delete_from_airtable": "true"})
    assert res.status_code == 200
    assert airtable.records == {}
    assert db.query(FormResponse).one().status == "deleted"


@pytest.mark.asyncio
async def test_manual_sync_retries_failed_response(owner_client, client, db, form, airtable):
    airtable.fail_create = True
    submitted = await client.post(f"/public/forms/{form.id}/responses", json={"answers": {"name": "Ada"}})
    response_id = submitted.json()["response"]["id"]
    airtable.fail_create = False

    res = await owner_client.post(f"/responses/{response_id}/sync")

    assert res.status_code == 200
    data = res.json()
    assert data["synced"] is True
    assert data["message"] == "Response synced to Airtable"
    assert data["response"]["status"] == "synced"
    assert data["response"]["sync_attempts"] == 2
    assert airtable.records[data["response"]["external_record_id"]] == {"fldName": "Ada"}


@pytest.mark.asyncio
async def test_manual_sync_failure_is_recorded(owner_client, client, form, airtable):
    submitted = await client.post(f"/public/forms/{form.id}/responses", json={"answers": {"name": "Ada"}})
    response_id = submitted.json()["response"]["id"]
    airtable.fail_update = True

    res = await owner_client.post(f"/responses/{response_id}/sync")

    assert res.status_code == 200
    data = res.json()
    assert data["synced"] is False
    assert "update failed" in data["sync_error"]
    assert data["response"]["status"] == "failed"


@pytest.mark.asyncio
async def test_manual_sync_of_deleted_response(owner_client, client, form):
    submitted = await client.post(f"/public/forms/{form.id}/responses", json={"answers": {"name": "Ada"}})
    response_id = submitted.json()["response"]["id"]
    await owner_client.delete(f"/responses/{response_id}")

    res = await owner_client.post(f"/responses/{response_id}/sync")
    assert res.status_code == 404

@pytest.mark.asyncio
async def test_response_of_other_owner_is_forbidden(owner_client, db, owner_factory, form_factory):
    other_form = form_factory(form_owner=owner_factory())
    response = FormResponse(
        form_id=other_form.id,
        owner_id=other_form.owner_id,
        external_record_id="recOther",
        answers=[],
    )
    db.add(response)
    db.commit()

    res = await owner_client.get(f"/responses/{response.id}")
    assert res.status_code == 403


# =============================================================================
# Internal
# =============================================================================


@pytest.mark.asyncio
async def test_retry_endpoint_requires_secret(client):
    res = await client.post("/internal/scheduled/retry-syncs")
    assert res.status_code == 403


@pytest.mark.asyncio
async def test_retry_endpoint_runs_sweep(client, db, form, airtable):
    db.add(
        FormResponse(
            form_id=form.id,
            owner_id=form.owner_id,
            external_record_id="local_retry",
            status="failed",
            answers=[{"question_key": "name", "value": "Ada"}],
            sync_attempts=1,
        )
    )
    db.commit()

    res = await client.post(
        "/internal/scheduled/retry-syncs",
        headers={"X-Internal-Secret": "test-internal-secret"},
    )

    assert res.status_code == 200
    assert res.json() == {"attempted": 1, "succeeded": 1, "failed": 0, "skipped": 0}
    assert db.query(FormResponse).one().status == "synced"


# =============================================================================
# Airtable browsing
# =============================================================================


@pytest.mark.asyncio
async def test_list_bases(owner_client, airtable):
    res = await owner_client.get("/airtable/bases")

    assert res.status_code == 200
    assert res.json() == [{"id": "appTestBase", "name": "Test Base", "permission_level": "create"}]
    assert ("clear_cache",) not in airtable.calls


@pytest.mark.asyncio
async def test_list_tables_hides_unsupported_fields(owner_client, airtable):
    res = await owner_client.get("/airtable/bases/appTestBase/tables", params={"refresh": "true"})

    assert res.status_code == 200
    (table,) = res.json()
    assert table["id"] == "tblTestTable"
    assert [f["id"] for f in table["fields"]] == ["fldName", "fldEmail", "fldNotes", "fldPlan"]
    plan = table["fields"][3]
    assert plan["type"] == "singleSelect"
    assert [o["value"] for o in plan["options"]] == ["basic", "pro"]
    assert airtable.calls[0] == ("clear_cache",)


@pytest.mark.asyncio
async def test_browsing_needs_a_valid_token(client, owner_factory):
    expired = owner_factory(expires_in=-5)

    res = await client.get("/airtable/bases", headers={"X-Owner-Id": str(expired.id)})
    assert res.status_code == 401
