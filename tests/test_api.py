import json

import pytest
from fastapi.testclient import TestClient


class FakeChatClient:
    """Records prompts and returns canned replies instead of calling the provider."""

    model = "fake-model"

    def __init__(self, reply="The mitochondria is the powerhouse of the cell."):
        self.reply = reply
        self.prompts = []

    def complete(self, prompt, *, system="", max_tokens=900, temperature=0.35):
        self.prompts.append(prompt)
        return self.reply


@pytest.fixture
def fake_llm():
    return FakeChatClient()


@pytest.fixture
def client(tmp_path, fake_llm):
    from app import main as app_main

    app_main.app.dependency_overrides[app_main.get_upload_dir] = lambda: str(tmp_path)
    app_main.app.dependency_overrides[app_main.get_llm_client] = lambda: fake_llm
    yield TestClient(app_main.app)
    app_main.app.dependency_overrides.clear()


def _upload(client, name, content, content_type="text/plain"):
    resp = client.post("/api/upload", files={"file": (name, content, content_type)})
    assert resp.status_code == 200
    return resp.json()


def test_upload_and_file_qa(client, fake_llm, tmp_path):
    text = "The mitochondria is the powerhouse of the cell.\nPhotosynthesis occurs in chloroplasts."
    data = _upload(client, "bio notes.txt", text.encode("utf-8"))
    meta = data["meta"]
    assert data["ok"] is True
    assert meta["originalName"] == "bio notes.txt"
    assert meta["storageKey"].endswith("-bio_notes.txt")
    assert meta["sizeBytes"] == len(text)
    assert [c["text"] for c in meta["chunks"]] == text.split("\n")
    assert data["aiResponse"] == fake_llm.reply
    # Uploaded bytes sit in the upload dir; the record lives in its meta subdirectory.
    assert (tmp_path / meta["storageKey"]).exists()
    assert (tmp_path / "meta" / f"{meta['storageKey']}.meta.json").exists()
    assert not (tmp_path / f"{meta['storageKey']}.meta.json").exists()

    resp = client.post(
        "/api/file-qa",
        json={"fileFilename": meta["storageKey"], "question": "What is the powerhouse of the cell?"},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["text"] == fake_llm.reply
    # "the" also occurs inside "Photosynthesis", so both chunks score; the
    # mitochondria chunk scores higher and comes first.
    assert [c["id"] for c in body["usedChunks"]] == [c["id"] for c in meta["chunks"]]
    assert "Context 1: The mitochondria" in fake_llm.prompts[-1]
    assert "Question: What is the powerhouse of the cell?" in fake_llm.prompts[-1]


def test_file_qa_by_document_id(client):
    meta = _upload(client, "notes.md", b"Entropy always increases.")["meta"]
    resp = client.post(
        "/api/file-qa", json={"fileFilename": meta["documentId"], "question": "entropy?"}
    )
    assert resp.status_code == 200
    assert resp.json()["usedChunks"][0]["preview"] == "Entropy always increases."


def test_file_qa_missing_fields(client):
    resp = client.post("/api/file-qa", json={"question": "anything"})
    assert resp.status_code == 400
    assert resp.json() == {"ok": False, "error": "Missing fileFilename"}
    resp = client.post("/api/file-qa", json={"fileFilename": "x"})
    assert resp.status_code == 400


def test_file_qa_unknown_file(client):
    resp = client.post("/api/file-qa", json={"fileFilename": "nonexistent-key", "question": "why?"})
    assert resp.status_code == 404
    assert resp.json()["ok"] is False


def test_unsupported_upload_has_no_content(client, fake_llm):
    data = _upload(client, "archive.zip", b"PK\x03\x04binary", "application/zip")
    assert data["meta"]["chunks"] == []
    assert data["aiResponse"] is None
    key = data["meta"]["storageKey"]

    resp = client.post("/api/file-qa", json={"fileFilename": key, "question": "What is inside?"})
    assert resp.status_code == 200
    assert resp.json()["usedChunks"] == []
    assert resp.json()["context"] == ""

    resp = client.post("/api/file-quiz", json={"fileFilename": key})
    assert resp.status_code == 422
    assert fake_llm.prompts == []


def test_file_quiz_parses_json(client, fake_llm):
    key = _upload(client, "a.txt", b"Cells divide by mitosis.\nDNA replicates first.")["meta"]["storageKey"]
    quiz = {"mcq": [{"question": "How do cells divide?", "options": ["A", "B", "C", "D"], "answer": "A"}]}
    fake_llm.reply = "Here you go:\n```json\n" + json.dumps(quiz) + "\n```"
    resp = client.post("/api/file-quiz", json={"fileFilename": key})
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "quiz": quiz}
    assert "Context 1: Cells divide by mitosis." in fake_llm.prompts[-1]
    assert "Context 2: DNA replicates first." in fake_llm.prompts[-1]


def test_file_quiz_unparseable_reply(client, fake_llm):
    key = _upload(client, "a.txt", b"Some content.")["meta"]["storageKey"]
    fake_llm.reply = "no json here"
    resp = client.post("/api/file-quiz", json={"fileFilename": key})
    assert resp.status_code == 502
    assert resp.json()["aillm_response"] == "no json here"


def test_context_endpoint(client):
    text = "Alpha paragraph.\nBeta paragraph about gravity.\nGamma paragraph."
    key = _upload(client, "c.txt", text.encode())["meta"]["storageKey"]

    resp = client.get(f"/api/files/{key}/context", params={"question": "gravity"})
    assert resp.status_code == 200
    assert [c["preview"] for c in resp.json()["usedChunks"]] == ["Beta paragraph about gravity."]

    resp = client.get(f"/api/files/{key}/context", params={"limit": 2})
    assert resp.json()["context"] == "Context 1: Alpha paragraph.\n\n---\n\nContext 2: Beta paragraph about gravity."

    resp = client.get(f"/api/files/{key}/context", params={"limit": 0})
    assert resp.status_code == 400


def test_model_endpoints_without_provider(tmp_path):
    from app import main as app_main

    app_main.app.dependency_overrides[app_main.get_upload_dir] = lambda: str(tmp_path)
    app_main.app.dependency_overrides[app_main.get_llm_client] = lambda: None
    try:
        client = TestClient(app_main.app)
        data = _upload(client, "n.txt", b"Some notes.")
        assert data["aiResponse"] is None
        resp = client.post(
            "/api/file-qa", json={"fileFilename": data["meta"]["storageKey"], "question": "notes?"}
        )
        assert resp.status_code == 503
        ping = client.get("/api/ping").json()
        assert ping["provider"] == "none"
        assert ping["model"] is None
    finally:
        app_main.app.dependency_overrides.clear()


def test_ping_and_health(client):
    ping = client.get("/api/ping")
    assert ping.status_code == 200
    assert ping.json()["provider"] == "Groq"
    assert ping.json()["model"] == "fake-model"
    health_resp = client.get("/health")
    assert health_resp.status_code == 200
    assert health_resp.json().get("status") == "ok"


def test_upload_named_like_a_record_cannot_forge_one(client):
    forged = {
        "documentId": "forged",
        "originalName": "n.txt",
        "storageKey": "x",
        "sizeBytes": 6,
        "mimeType": "text/plain",
        "uploadedAt": "2024-01-01T00:00:00+00:00",
        "chunks": [{"id": "f", "text": "FORGED", "ordinal": 0}],
    }
    data = _upload(client, "n.meta.json", json.dumps(forged).encode(), "application/json")
    stored_key = data["meta"]["storageKey"]
    assert stored_key.endswith("-n.meta.json")

    resp = client.get(f"/api/files/{stored_key[: -len('.meta.json')]}/context")
    assert resp.status_code == 404
    resp = client.get("/api/files/forged/context")
    assert resp.status_code == 404
    # The upload itself is an ordinary record under its own key.
    resp = client.get(f"/api/files/{stored_key}/context")
    assert resp.status_code == 200
    assert resp.json()["usedChunks"][0]["preview"].startswith('{"documentId": "forged"')


def test_garbage_upload_does_not_break_document_id_lookup(client):
    _upload(client, "a.meta.json", b"garbage", "application/json")
    meta = _upload(client, "z.txt", b"Zebras have stripes.")["meta"]
    resp = client.get(f"/api/files/{meta['documentId']}/context")
    assert resp.status_code == 200
    assert resp.json()["usedChunks"][0]["preview"] == "Zebras have stripes."
