"""
Tests for generated documents, evidence uploads and the proof packet export.
"""
import io
import zipfile
from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient

from conftest import TEST_USER_ID
from landlordcomply.core.database import get_db_session
from landlordcomply.models.models import Attachment, User
from landlordcomply.services import documents
from landlordcomply.services.cases import get_owned_case
from landlordcomply.services.storage import get_file_store

PHOTO = b"\xff\xd8\xff\xe0 not really a jpeg"


async def generate(client: AsyncClient, case_id: str, doc_type: str) -> dict:
    response = await client.post(f"/api/cases/{case_id}/documents/generate", json={"type": doc_type})
    assert response.status_code == 201, response.text
    return response.json()["document"]


@pytest.fixture
async def case_with_deduction(client: AsyncClient, ca_case: dict) -> dict:
    response = await client.post(
        f"/api/cases/{ca_case['id']}/deductions",
        json={"description": "Patch and paint two holes in hallway drywall", "category": "REPAIRS",
              "amount": 180, "notes": "Invoice #1042"},
    )
    assert response.status_code == 201
    return ca_case


class TestGeneratedDocuments:

    @pytest.mark.asyncio
    async def test_generate_notice_letter(self, client: AsyncClient, ca_case: dict):
        document = await generate(client, ca_case["id"], "NOTICE_LETTER")
        assert document["type"] == "NOTICE_LETTER"
        assert document["version"] == 1
        assert document["file_name"].startswith(f"notice-letter-{ca_case['id'][:8]}-")
        assert len(document["sha256_hash"]) == 64

        case = (await client.get(f"/api/cases/{ca_case['id']}")).json()
        item = next(i for i in case["checklist"] if i["label"] == "Generate notice letter")
        assert item["completed"] is True
        assert case["audit_events"][0]["description"] == "Generated notice letter (v1)"

    @pytest.mark.asyncio
    async def test_versions_count_per_type(self, client: AsyncClient, case_with_deduction: dict):
        case_id = case_with_deduction["id"]
        await generate(client, case_id, "ITEMIZED_STATEMENT")
        second = await generate(client, case_id, "ITEMIZED_STATEMENT")
        letter = await generate(client, case_id, "NOTICE_LETTER")
        assert second["version"] == 2
        assert letter["version"] == 1

        response = await client.get(f"/api/cases/{case_id}/documents")
        assert len(response.json()["documents"]) == 3

    @pytest.mark.asyncio
    async def test_download(self, client: AsyncClient, case_with_deduction: dict):
        document = await generate(client, case_with_deduction["id"], "ITEMIZED_STATEMENT")
        response = await client.get(
            f"/api/cases/{case_with_deduction['id']}/documents/{document['id']}/download"
        )
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.content.startswith(b"%PDF")
        assert document["file_name"] in response.headers["content-disposition"]

    @pytest.mark.asyncio
    async def test_unknown_type(self, client: AsyncClient, ca_case: dict):
        response = await client.post(
            f"/api/cases/{ca_case['id']}/documents/generate", json={"type": "LEASE"}
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_document(self, client: AsyncClient, ca_case: dict):
        response = await client.get(f"/api/cases/{ca_case['id']}/documents/nope/download")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_failed_write_leaves_no_file(self, client: AsyncClient, ca_case: dict, monkeypatch):
        monkeypatch.setattr(documents, "record_audit_event", AsyncMock(side_effect=RuntimeError("db down")))

        with pytest.raises(RuntimeError):
            async with get_db_session() as db:
                case = await get_owned_case(db, ca_case["id"], TEST_USER_ID)
                user = await db.get(User, TEST_USER_ID)
                await documents.generate_document(db, case, user, "NOTICE_LETTER")

        documents_dir = get_file_store().root / TEST_USER_ID / ca_case["id"] / "documents"
        assert not documents_dir.exists() or not any(documents_dir.iterdir())
        assert (await client.get(f"/api/cases/{ca_case['id']}/documents")).json()["documents"] == []


class TestAttachments:

    @pytest.mark.asyncio
    async def test_upload_download_delete(self, client: AsyncClient, ca_case: dict):
        base = f"/api/cases/{ca_case['id']}/attachments"
        response = await client.post(
            base,
            files={"file": ("kitchen.jpg", PHOTO, "image/jpeg")},
            data={"type": "photo", "tags": "kitchen, move-out"},
        )
        assert response.status_code == 201, response.text
        attachment = response.json()
        assert attachment["type"] == "PHOTO"
        assert attachment["file_size"] == len(PHOTO)
        assert attachment["tags"] == ["kitchen", "move-out"]

        response = await client.get(f"{base}/{attachment['id']}/download")
        assert response.status_code == 200
        assert response.content == PHOTO

        response = await client.delete(f"{base}/{attachment['id']}")
        assert response.status_code == 200
        assert (await client.get(base)).json()["attachments"] == []

    @pytest.mark.asyncio
    async def test_delete_unlinks_deductions(self, client: AsyncClient, ca_case: dict):
        base = f"/api/cases/{ca_case['id']}/attachments"
        photo = (await client.post(
            base, files={"file": ("stain.jpg", PHOTO, "image/jpeg")}, data={"type": "PHOTO"}
        )).json()
        response = await client.post(
            f"/api/cases/{ca_case['id']}/deductions",
            json={"description": "Replace stained carpet in bedroom", "category": "REPAIRS",
                  "amount": 300, "attachment_ids": [photo["id"]]},
        )
        assert response.json()["has_evidence"] is True

        assert (await client.delete(f"{base}/{photo['id']}")).status_code == 200

        deduction = (await client.get(f"/api/cases/{ca_case['id']}/deductions")).json()["deductions"][0]
        assert deduction["attachment_ids"] == []
        assert deduction["has_evidence"] is False

        checks = (await client.get(f"/api/cases/{ca_case['id']}/quality-check")).json()["checks"]
        evidence = next(c for c in checks if c["id"] == "deduction_evidence")
        assert evidence["passed"] is False

        case = (await client.get(f"/api/cases/{ca_case['id']}")).json()
        assert case["audit_events"][0]["metadata"]["unlinked_deductions"] == [deduction["id"]]

    @pytest.mark.asyncio
    async def test_delete_removes_stored_file(self, client: AsyncClient, ca_case: dict):
        base = f"/api/cases/{ca_case['id']}/attachments"
        photo = (await client.post(base, files={"file": ("door.jpg", PHOTO, "image/jpeg")})).json()

        async with get_db_session() as db:
            stored = await db.get(Attachment, photo["id"])
            file_path = stored.file_path
        assert get_file_store().exists(file_path)

        await client.delete(f"{base}/{photo['id']}")
        assert not get_file_store().exists(file_path)

    @pytest.mark.asyncio
    async def test_unknown_type_becomes_other(self, client: AsyncClient, ca_case: dict):
        response = await client.post(
            f"/api/cases/{ca_case['id']}/attachments",
            files={"file": ("notes.txt", b"walkthrough notes", "text/plain")},
            data={"type": "SELFIE"},
        )
        assert response.json()["type"] == "OTHER"

    @pytest.mark.asyncio
    async def test_disallowed_extension(self, client: AsyncClient, ca_case: dict):
        response = await client.post(
            f"/api/cases/{ca_case['id']}/attachments",
            files={"file": ("payload.exe", b"MZ", "application/octet-stream")},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "bad_request"


class TestProofPacket:

    @pytest.mark.asyncio
    async def test_requires_both_documents(self, client: AsyncClient, ca_case: dict):
        await generate(client, ca_case["id"], "NOTICE_LETTER")
        response = await client.get(f"/api/cases/{ca_case['id']}/proof-packet")
        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "missing_precondition"
        assert data["missing"] == {"notice_letter": False, "itemized_statement": True}

    @pytest.mark.asyncio
    async def test_export(self, client: AsyncClient, case_with_deduction: dict):
        case_id = case_with_deduction["id"]
        await client.post(
            f"/api/cases/{case_id}/attachments",
            files={"file": ("hallway wall.jpg", PHOTO, "image/jpeg")},
            data={"type": "PHOTO"},
        )
        await generate(client, case_id, "NOTICE_LETTER")
        await generate(client, case_id, "ITEMIZED_STATEMENT")

        response = await client.get(f"/api/cases/{case_id}/proof-packet")
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/zip"
        assert 'filename="ProofPacket_742_Evergreen_Terrace_' in response.headers["content-disposition"]

        archive = zipfile.ZipFile(io.BytesIO(response.content))
        names = archive.namelist()
        assert names == [
            "00_CASE_SUMMARY.txt",
            "01_LEGAL_CITATIONS.txt",
            "02_AUDIT_LOG.txt",
            "03_Notice_Letter_v1.pdf",
            "04_Itemized_Statement_v1.pdf",
            "evidence/01_photo_hallway_wall.jpg",
            "05_DEDUCTIONS_SUMMARY.txt",
        ]

        summary = archive.read("00_CASE_SUMMARY.txt").decode()
        assert "Address: 742 Evergreen Terrace, Unit 2B" in summary
        assert "Refund Due: $1820.00" in summary

        deductions = archive.read("05_DEDUCTIONS_SUMMARY.txt").decode()
        assert "Patch and paint two holes in hallway drywall" in deductions

        citations = archive.read("01_LEGAL_CITATIONS.txt").decode()
        assert "Cal. Civ. Code § 1950.5" in citations

        case = (await client.get(f"/api/cases/{case_id}")).json()
        assert case["audit_events"][0]["action"] == "proof_packet_exported"
