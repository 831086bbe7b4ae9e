import json
from io import BytesIO

import pytest
from werkzeug.datastructures import FileStorage

import proofs
from errors import ValidationError


def _upload(name="proof.png"):
    return FileStorage(stream=BytesIO(b"data"), filename=name, content_type="image/png")


def test_file_wins_over_url_and_text():
    upload = _upload()
    kind, value = proofs.select_proof(upload, "https://example.com/x", "done")
    assert kind == proofs.FILE
    assert value is upload


def test_url_wins_over_text():
    kind, value = proofs.select_proof(None, "https://example.com/x", "done")
    assert (kind, value) == (proofs.URL, "https://example.com/x")


def test_text_used_when_alone():
    assert proofs.select_proof(text="done") == (proofs.TEXT, "done")


def test_empty_file_field_and_blank_strings_count_as_absent():
    empty = FileStorage(stream=BytesIO(b""), filename="", content_type="application/octet-stream")
    assert proofs.select_proof(empty, "   ", "done") == (proofs.TEXT, "done")


def test_nothing_supplied_is_rejected():
    with pytest.raises(ValidationError):
        proofs.select_proof(None, "", None)


@pytest.mark.parametrize("url", ["example.com/x", "ftp://example.com/x", "javascript:alert(1)"])
def test_url_must_be_absolute_http(url):
    with pytest.raises(ValidationError):
        proofs.select_proof(url=url)


def test_url_record_serializes_with_type_tag():
    record = proofs.UrlProof(url="https://example.com/x")
    data = json.loads(proofs.serialize(record))
    assert data["type"] == "url"
    assert data["url"] == "https://example.com/x"
    assert data["submittedAt"].endswith("Z")
    assert set(data) == {"type", "url", "submittedAt"}


def test_parse_restores_file_record():
    record = proofs.FileProof(
        filename="1700000000000-abc.png",
        original_name="me.png",
        path="uploads/1700000000000-abc.png",
        mimetype="image/png",
        size=42,
    )
    restored = proofs.parse(proofs.serialize(record))
    assert restored == record


def test_parse_empty_proof_is_none():
    assert proofs.parse(None) is None
    assert proofs.parse("") is None


def test_url_record_rejects_non_http_on_load():
    with pytest.raises(proofs.CorruptProof):
        proofs.parse('{"type": "url", "url": "ftp://example.com/x", "submittedAt": "2025-01-01T00:00:00Z"}')


@pytest.mark.parametrize("raw", [
    '{"type": "file", "filename": "a.png", "submittedAt": "2025-01-01T00:00:00Z"}',
    '{"type": "video", "url": "https://example.com/x", "submittedAt": "2025-01-01T00:00:00Z"}',
    "done",
])
def test_malformed_stored_proof_is_reported(raw):
    with pytest.raises(proofs.CorruptProof):
        proofs.parse(raw)


def test_text_record_uses_camel_case_keys():
    data = proofs.TextProof(content="done").to_dict()
    assert set(data) == {"type", "content", "submittedAt"}
