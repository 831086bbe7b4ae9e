"""Proof-of-completion records.

A task's proof is exactly one of three variants (file, url, text), stored on
``Task.proof`` as JSON text. A new submission replaces the whole record.
"""
from datetime import datetime, timezone
from typing import Annotated, Literal, Union

import pydantic
from pydantic import BaseModel, ConfigDict, Field, HttpUrl, TypeAdapter

from errors import ValidationError

FILE = 'file'
URL = 'url'
TEXT = 'text'


def utc_now_iso():
    return datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')


class CorruptProof(ValueError):
    """A stored proof value that does not match any record shape."""


class ProofRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    submitted_at: str = Field(default_factory=utc_now_iso, alias='submittedAt')

    def to_dict(self):
        return self.model_dump(mode='json', by_alias=True)


class FileProof(ProofRecord):
    type: Literal['file'] = FILE
    filename: str
    original_name: str = Field(..., alias='originalName')
    path: str
    mimetype: str
    size: int = Field(..., ge=0)


class UrlProof(ProofRecord):
    type: Literal['url'] = URL
    url: HttpUrl


class TextProof(ProofRecord):
    type: Literal['text'] = TEXT
    content: str


Proof = Annotated[Union[FileProof, UrlProof, TextProof], Field(discriminator='type')]

proof_adapter = TypeAdapter(Proof)
url_adapter = TypeAdapter(HttpUrl)


def serialize(record):
    return record.model_dump_json(by_alias=True)


def parse(raw):
    """Load a stored proof back into its record, or None if there is none."""
    if not raw:
        return None
    try:
        return proof_adapter.validate_json(raw)
    except pydantic.ValidationError as e:
        raise CorruptProof(f"Stored proof is not a valid record: {e.error_count()} error(s)") from e


def _present(value):
    return isinstance(value, str) and value.strip() != ''


def select_proof(upload=None, url=None, text=None):
    """Pick the proof variant to record.

    Precedence is file, then URL, then text: the first one supplied wins and
    the rest are ignored. Returns ``(kind, value)``.
    """
    if upload is not None and getattr(upload, 'filename', ''):
        return FILE, upload
    if _present(url):
        url = url.strip()
        try:
            url_adapter.validate_python(url)
        except pydantic.ValidationError as e:
            raise ValidationError('urlProof must be an absolute http(s) URL') from e
        return URL, url
    if _present(text):
        return TEXT, text
    raise ValidationError('Provide a proof file, URL or text')
