import io

import pytest
from PyPDF2 import PdfReader

from compliance.collaborators.services.status_aggregator import ComplianceStatus
from compliance.documents.models.document import DocumentState
from compliance.errors import (
    ConfigurationError, DispatchError, InvalidCodeError, InvalidStateError, NotFoundError,
    PartialValidationError, StorageError, ValidationError,
)
from compliance.signatures.services.signature_ledger import SignatureLedger

SIGNER = ("Mario Rossi", "mario@example.com")


async def sign_all(services, collaborator, documents):
    return await services.verification.sign_batch(
        collaborator.id, *SIGNER, [doc.id for doc in documents], user_agent="pytest"
    )


async def count_actions(services, action):
    return len(await services.audit.history(action=action))


async def test_sign_then_confirm_round_trip(services, dispatcher, make_collaborator):
    collaborator, documents = await make_collaborator("occasional")
    batch = await sign_all(services, collaborator, documents)

    entries = await services.ledger.find_by_token(batch.batch_token)
    assert len(entries) == len(documents)
    assert all(not e.valid for e in entries)
    for doc in await services.registry.documents_for(collaborator.id):
        assert doc.state == DocumentState.AWAITING_CONFIRMATION
        assert doc.signed_at is not None
    assert await services.aggregator.status(collaborator.id) == ComplianceStatus.AWAITING_CONFIRMATION

    email = dispatcher.of_kind("verification")[-1]
    assert email["to"] == "mario@example.com"
    assert email["data"]["verification_code"] == entries[0].verification_code
    assert email["data"]["verification_link"].endswith(f"/confirm?code={entries[0].verification_code}")

    result = await services.verification.confirm(entries[0].verification_code)

    assert result.signer_name == "Mario Rossi"
    assert {d.document_id for d in result.documents} == {doc.id for doc in documents}
    assert result.download_link.endswith(f"/downloads?token={batch.batch_token}")
    for doc in await services.registry.documents_for(collaborator.id):
        assert doc.state == DocumentState.SIGNED
    for entry in await services.ledger.find_by_token(batch.batch_token):
        assert entry.valid and entry.email_verified and entry.validated_at is not None
    assert await count_actions(services, "document_signed") == len(documents)
    assert await count_actions(services, "email_verified") == len(documents)
    assert await services.aggregator.status(collaborator.id) == ComplianceStatus.COMPLETED
    assert len(dispatcher.of_kind("documents_completed")) == 1


async def test_first_code_validates_whole_batch(services, make_collaborator):
    # an unrecognised contract type leaves exactly the two universal documents
    with pytest.raises(ConfigurationError):
        await make_collaborator("employee")
    collaborator = (await services.collaborators.list_collaborators())[0][0]
    documents = await services.registry.documents_for(collaborator.id)
    assert len(documents) == 2

    batch = await sign_all(services, collaborator, documents)
    entries = await services.ledger.find_by_token(batch.batch_token)
    await services.verification.confirm(entries[0].verification_code)

    for doc in await services.registry.documents_for(collaborator.id):
        assert doc.state == DocumentState.SIGNED
    assert all(e.valid for e in await services.ledger.find_by_token(batch.batch_token))
    assert await services.aggregator.status(collaborator.id) == ComplianceStatus.COMPLETED

async def test_consumed_code_is_rejected_without_changes(services, make_collaborator):
    collaborator, documents = await make_collaborator("occasional")
    await sign_all(services, collaborator, documents)
    code = (await services.ledger.signature_repository.find_all())[0].verification_code
    await services.verification.confirm(code)

    audit_before = len(await services.audit.history(limit=1000))
    with pytest.raises(InvalidCodeError) as exc_info:
        await services.verification.confirm(code)

    assert exc_info.value.message == InvalidCodeError.GENERIC_MESSAGE
    assert len(await services.audit.history(limit=1000)) == audit_before
    assert await count_actions(services, "email_verified") == len(documents)


async def test_unknown_code_is_rejected(services):
    with pytest.raises(InvalidCodeError):
        await services.verification.confirm("VER-NOPE-00000-0")


async def test_partial_failure_reports_entries_and_retry_completes(services, monkeypatch, make_collaborator):
    collaborator, documents = await make_collaborator("occasional")
    batch = await sign_all(services, collaborator, documents)
    entries = await services.ledger.find_by_token(batch.batch_token)
    # ids up front: the failed entry rolls the session back
    entry_ids = [e.id for e in entries]
    failing_document = entries[1].document_id
    failing_entry = entry_ids[1]
    first_code = entries[0].verification_code

    original_mark_signed = services.registry.mark_signed
    calls = {"failed": False}

    async def flaky_mark_signed(document):
        if document.id == failing_document and not calls["failed"]:
            calls["failed"] = True
            raise StorageError("Storage write failed")
        return await original_mark_signed(document)

    monkeypatch.setattr(services.registry, "mark_signed", flaky_mark_signed)

    with pytest.raises(PartialValidationError) as exc_info:
        await services.verification.confirm(first_code)

    error = exc_info.value
    assert error.failed_entry_ids == [failing_entry]
    assert set(error.validated_entry_ids) == set(entry_ids) - {failing_entry}
    assert error.to_payload()["failedEntryIds"] == [failing_entry]

    pending = await services.ledger.find_pending_by_token(batch.batch_token)
    assert [e.id for e in pending] == [failing_entry]
    assert await count_actions(services, "email_verified") == len(entry_ids) - 1

    # the same link retries only the failed entry
    result = await services.verification.confirm(first_code)
    assert len(result.documents) == len(entry_ids)
    assert await count_actions(services, "email_verified") == len(entry_ids)
    assert await services.ledger.find_pending_by_token(batch.batch_token) == []
    assert await services.aggregator.status(collaborator.id) == ComplianceStatus.COMPLETED


async def test_dispatch_failure_keeps_signatures_and_allows_resend(services, dispatcher, make_collaborator):
    collaborator, documents = await make_collaborator("occasional")
    dispatcher.fail_kinds.add("verification")

    with pytest.raises(DispatchError) as exc_info:
        await sign_all(services, collaborator, documents)

    token = exc_info.value.batch_token
    assert token
    assert len(await services.ledger.find_pending_by_token(token)) == len(documents)
    assert await count_actions(services, "email_failed_verification") == 1

    dispatcher.fail_kinds.clear()
    result = await services.verification.resend_verification(token)
    assert result.email_sent_to == "mario@example.com"
    assert len(dispatcher.of_kind("verification")) == 1
    assert await count_actions(services, "email_sent_verification") == 1


async def test_completion_email_failure_does_not_fail_confirmation(services, dispatcher, make_collaborator):
    collaborator, documents = await make_collaborator("occasional")
    await sign_all(services, collaborator, documents)
    dispatcher.fail_kinds.add("documents_completed")
    code = (await services.ledger.signature_repository.find_all())[0].verification_code

    result = await services.verification.confirm(code)

    assert len(result.documents) == len(documents)
    assert await count_actions(services, "email_failed_documents_completed") == 1


async def test_every_pending_document_must_be_accepted(services, make_collaborator):
    collaborator, documents = await make_collaborator("occasional")
    with pytest.raises(ValidationError):
        await services.verification.sign_batch(collaborator.id, *SIGNER, [documents[0].id])
    assert await services.ledger.signature_repository.find_all() == []


async def test_signing_twice_is_invalid_state(services, make_collaborator):
    collaborator, documents = await make_collaborator("occasional")
    await sign_all(services, collaborator, documents)
    with pytest.raises(InvalidStateError):
        await sign_all(services, collaborator, documents)


async def test_unknown_document_and_collaborator(services, make_collaborator):
    collaborator, _ = await make_collaborator("occasional")
    with pytest.raises(ValidationError):
        await services.verification.sign_batch(collaborator.id, *SIGNER, ["not-a-document"])
    with pytest.raises(NotFoundError):
        await services.verification.sign_batch("missing", *SIGNER, ["x"])


async def test_ledger_entries_are_reproducible_and_never_reset(services, make_collaborator):
    collaborator, documents = await make_collaborator("occasional")
    batch = await sign_all(services, collaborator, documents)
    entries = await services.ledger.find_by_token(batch.batch_token)
    assert all(SignatureLedger.verify_hash(e) for e in entries)
    assert len({e.verification_code for e in entries}) == len(entries)
    assert {e.verification_token for e in entries} == {batch.batch_token}

    await services.verification.confirm(entries[0].verification_code)
    entry = await services.ledger.get(entries[0].id)
    with pytest.raises(ValueError):
        entry.valid = False


async def test_signed_documents_include_certificate(services, blob_store, make_collaborator):
    collaborator, documents = await make_collaborator("occasional")
    batch = await sign_all(services, collaborator, documents)
    code = (await services.ledger.find_by_token(batch.batch_token))[0].verification_code
    confirmed = await services.verification.confirm(code)

    assert confirmed.certificate_url.startswith("http://testserver/files/certificates/")
    downloads = await services.verification.signed_documents(batch.batch_token)
    assert downloads.certificate_url == confirmed.certificate_url
    assert await count_actions(services, "certificate_generated") == 1

    path = confirmed.certificate_url.split("/files/", 1)[1]
    reader = PdfReader(io.BytesIO(await blob_store.get(path)))
    assert code in "".join(page.extract_text() for page in reader.pages)


async def test_downloads_require_validated_batch(services, make_collaborator):
    collaborator, documents = await make_collaborator("occasional")
    batch = await sign_all(services, collaborator, documents)
    with pytest.raises(InvalidCodeError):
        await services.verification.signed_documents(batch.batch_token)


async def test_certificate_waits_for_the_whole_batch(services, blob_store, monkeypatch, make_collaborator):
    collaborator, documents = await make_collaborator("occasional")
    batch = await sign_all(services, collaborator, documents)
    entries = await services.ledger.find_by_token(batch.batch_token)
    codes = [e.verification_code for e in entries]
    failing_document = entries[-1].document_id

    original_mark_signed = services.registry.mark_signed
    calls = {"failed": False}

    async def flaky_mark_signed(document):
        if document.id == failing_document and not calls["failed"]:
            calls["failed"] = True
            raise StorageError("Storage write failed")
        return await original_mark_signed(document)

    monkeypatch.setattr(services.registry, "mark_signed", flaky_mark_signed)

    with pytest.raises(PartialValidationError):
        await services.verification.confirm(codes[0])

    partial = await services.verification.signed_documents(batch.batch_token)
    assert len(partial.documents) == len(codes) - 1
    assert partial.certificate_url is None
    assert await count_actions(services, "certificate_generated") == 0

    result = await services.verification.confirm(codes[0])
    assert len(result.documents) == len(codes)

    path = result.certificate_url.split("/files/", 1)[1]
    reader = PdfReader(io.BytesIO(await blob_store.get(path)))
    text = "".join(page.extract_text() for page in reader.pages)
    assert all(code in text for code in codes)
