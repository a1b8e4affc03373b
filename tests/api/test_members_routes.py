def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_list_members_empty(client):
    response = client.get("/members")

    assert response.status_code == 200
    assert response.json() == []


def test_create_member_then_get(client):
    response = client.post("/members", json={
        "user_name": "Siti",
        "companies": [{"company_name": "PT Example", "branch_id": 3}],
    })

    assert response.status_code == 200
    body = response.json()
    assert body["user_id"] == 1
    assert body["companies"][0]["member_status"] == "pending"
    assert body["companies"][0]["application_date"] is not None

    fetched = client.get("/members/1")
    assert fetched.status_code == 200
    assert fetched.json() == body


def test_get_unknown_member_is_404(client):
    assert client.get("/members/42").status_code == 404


def test_upsert_without_user_is_400(client):
    response = client.post("/members", json={"company": {"branch_id": 3}})

    assert response.status_code == 400


def test_upsert_merges_same_branch(client, write_collection, pending_member):
    write_collection("members", [pending_member])

    response = client.post("/members", json={"user_id": 12, "company": {"branch_id": 3, "member_tier": "Gold"}})

    companies = response.json()["companies"]
    assert len(companies) == 1
    assert companies[0]["member_tier"] == "Gold"
    assert companies[0]["company_name"] == "CV Sumber Makmur"


def test_upsert_status_change_is_400(client, write_collection, pending_member):
    write_collection("members", [pending_member])

    response = client.post("/members", json={"user_id": 12, "company": {"branch_id": 3, "member_status": "approved"}})

    assert response.status_code == 400


def test_approve_action(client, write_collection, pending_member):
    write_collection("members", [pending_member])

    response = client.post("/members/action", json={
        "action": "approve", "user_id": 12, "branch_id": 3, "admin_id": 7,
    })

    assert response.status_code == 200
    body = response.json()
    assert body["user_id"] == 12
    assert body["member_status"] == "approved"
    assert body["member_since"] is not None
    assert body["approved_rejected_by_admin_id"] == 7


def test_reject_action_requires_reason(client, store, write_collection, pending_member):
    write_collection("members", [pending_member])
    before = store.revision("members")

    response = client.post("/members/action", json={
        "action": "reject", "user_id": 12, "branch_id": 3, "admin_id": 7, "reject_reason": "  ",
    })

    assert response.status_code == 400
    assert store.revision("members") == before


def test_reject_action_with_reason(client, write_collection, pending_member):
    write_collection("members", [pending_member])

    response = client.post("/members/action", json={
        "action": "reject", "user_id": 12, "branch_id": 3, "admin_id": 7,
        "reject_reason": "Dokumen tidak lengkap",
    })

    assert response.status_code == 200
    assert response.json()["reject_reason"] == "Dokumen tidak lengkap"


def test_action_missing_fields_is_400(client):
    assert client.post("/members/action", json={"user_id": 12}).status_code == 400
    assert client.post("/members/action", json={"action": "approve"}).status_code == 400


def test_action_unknown_membership_is_404(client, write_collection, pending_member):
    write_collection("members", [pending_member])

    response = client.post("/members/action", json={"action": "approve", "user_id": 12, "branch_id": 99})

    assert response.status_code == 404


def test_delete_membership(client, write_collection, pending_member):
    write_collection("members", [pending_member])

    response = client.request("DELETE", "/members", json={"user_id": 12, "branch_id": 3})

    assert response.status_code == 204
    assert client.get("/members").json() == []


def test_delete_unknown_membership_is_404(client):
    response = client.request("DELETE", "/members", json={"user_id": 12, "branch_id": 3})

    assert response.status_code == 404


def test_metrics_exposed(client):
    response = client.get("/metrics")

    assert response.status_code == 200
    assert "ekatalog_membership_transition_total" in response.text


def test_action_body_posted_to_members_leaves_companies_alone(client, write_collection, pending_member):
    write_collection("members", [pending_member])

    response = client.post("/members", json={"action": "approve", "user_id": 12, "admin_id": 1})

    assert response.status_code == 200
    companies = response.json()["companies"]
    assert len(companies) == 1
    assert companies[0]["member_status"] == "pending"
