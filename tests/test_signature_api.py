import pytest

from compliance.errors import InvalidCodeError
from compliance.signatures.controllers.signature_controller import _device


async def intake(client, headers, **fields):
    body = {"firstName": "Mario", "lastName": "Rossi", "email": "mario@example.com",
            "contractType": "occasional"}
    body.update(fields)
    resp = await client.post("/collaborators", json=body, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


async def sign(client, collaborator_id, document_ids, **overrides):
    body = {
        "collaboratorId": collaborator_id,
        "signerName": "Mario Rossi",
        "signerEmail": "mario@example.com",
        "acceptedDocumentIds": document_ids,
    }
    body.update(overrides)
    return await client.post("/sign", json=body, headers={"User-Agent": "Mozilla/5.0 (iPhone)"})


async def test_full_signing_flow(client, admin_headers, dispatcher):
    created = await intake(client, admin_headers)
    collaborator_id = created["collaborator"]["id"]
    assert created["emailSent"] is True
    assert len(dispatcher.of_kind("documents_ready")) == 1

    portal = await client.get(f"/portal/{collaborator_id}")
    assert portal.status_code == 200
    assert portal.json()["status"] == "awaiting_signature"
    document_ids = [doc["id"] for doc in portal.json()["documents"]]

    resp = await sign(client, collaborator_id, document_ids)
    assert resp.status_code == 201, resp.text
    assert resp.json()["emailSentTo"] == "mario@example.com"
    batch_token = resp.json()["batchToken"]

    code = dispatcher.of_kind("verification")[-1]["data"]["verification_code"]
    resp = await client.get("/confirm", params={"code": code})
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["signerName"] == "Mario Rossi"
    assert len(body["documents"]) == 3
    first = body["documents"][0]
    assert set(first) >= {"title", "signedAt", "verificationCode", "hash"}
    assert len(first["hash"]) == 64
    assert body["downloadLink"].endswith(f"/downloads?token={batch_token}")

    downloads = await client.get("/downloads", params={"token": batch_token})
    assert downloads.status_code == 200
    assert downloads.json()["certificateUrl"] == body["certificateUrl"]

    pdf = await client.get(f"/documents/{document_ids[0]}/download")
    assert pdf.status_code == 200
    assert pdf.headers["content-type"] == "application/pdf"
    assert pdf.content.startswith(b"%PDF")

    detail = await client.get(f"/collaborators/{collaborator_id}", headers=admin_headers)
    assert detail.json()["status"] == "completed"
    assert {doc["state"] for doc in detail.json()["documents"]} == {"signed"}


async def test_reused_link_returns_generic_message(client, admin_headers, dispatcher):
    created = await intake(client, admin_headers)
    document_ids = [doc["id"] for doc in created["documents"]]
    await sign(client, created["collaborator"]["id"], document_ids)
    code = dispatcher.of_kind("verification")[-1]["data"]["verification_code"]

    assert (await client.get("/confirm", params={"code": code})).status_code == 200
    resp = await client.get("/confirm", params={"code": code})
    assert resp.status_code == 404
    assert resp.json() == {"message": InvalidCodeError.GENERIC_MESSAGE}

    unknown = await client.get("/confirm", params={"code": "VER-NOPE-00000-0"})
    assert unknown.status_code == 404
    assert unknown.json() == resp.json()


async def test_sign_error_codes(client, admin_headers):
    created = await intake(client, admin_headers)
    collaborator_id = created["collaborator"]["id"]
    document_ids = [doc["id"] for doc in created["documents"]]

    resp = await sign(client, "missing", document_ids)
    assert resp.status_code == 404
    assert "message" in resp.json()

    resp = await sign(client, collaborator_id, document_ids[:1])
    assert resp.status_code == 400

    resp = await sign(client, collaborator_id, document_ids, signerEmail="not-an-email")
    assert resp.status_code == 400
    assert "signerEmail" in resp.json()["message"]

    assert (await sign(client, collaborator_id, document_ids)).status_code == 201
    resp = await sign(client, collaborator_id, document_ids)
    assert resp.status_code == 409


async def test_dispatch_failure_returns_token_for_resend(client, admin_headers, dispatcher):
    created = await intake(client, admin_headers)
    document_ids = [doc["id"] for doc in created["documents"]]
    dispatcher.fail_kinds.add("verification")

    resp = await sign(client, created["collaborator"]["id"], document_ids)
    assert resp.status_code == 500
    batch_token = resp.json()["batchToken"]

    dispatcher.fail_kinds.clear()
    resp = await client.post(f"/sign/{batch_token}/resend")
    assert resp.status_code == 200
    assert resp.json()["batchToken"] == batch_token
    assert len(dispatcher.of_kind("verification")) == 1


async def test_tampered_document_download_is_conflict(client, admin_headers, blob_store):
    created = await intake(client, admin_headers)
    document = created["documents"][0]
    path = document["contentUrl"].split("/files/", 1)[1]
    await blob_store.put(path, b"%PDF-1.4 replaced")

    resp = await client.get(f"/documents/{document['id']}/download")
    assert resp.status_code == 409
    assert "Integrity" in resp.json()["message"]


async def test_download_unknown_document(client):
    resp = await client.get("/documents/missing/download")
    assert resp.status_code == 404


@pytest.mark.parametrize("user_agent, device", [
    ("Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X) AppleWebKit/605.1.15 Mobile/15E148 Safari/604.1", "tablet"),
    ("Mozilla/5.0 (Linux; Android 13; SM-X700) Tablet Safari/537.36", "tablet"),
    ("Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) Mobile/15E148", "mobile"),
    ("Mozilla/5.0 (Linux; Android 14; Pixel 8) Mobile Safari/537.36", "mobile"),
    ("Mozilla/5.0 (X11; Linux x86_64) Firefox/128.0", "desktop"),
    ("", "desktop"),
])
def test_device_from_user_agent(user_agent, device):
    assert _device(user_agent) == device
