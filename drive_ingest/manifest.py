"""Read discovered file descriptors from JSON, YAML or CSV manifests."""

from __future__ import annotations

import csv
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ManifestError

MANIFEST_EXTENSIONS = (".json", ".yaml", ".yml", ".csv")


class FileDescriptor(BaseModel):
    """One remote file as reported by the discovery collaborator.

    Google Drive field names (``id``, ``mimeType``, ``webContentLink``,
    ``createdTime``, ``modifiedTime``) are accepted as aliases.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    remote_id: str = Field(alias="id")
    name: str | None = None
    url: str | None = Field(default=None, alias="webContentLink")
    size: int | None = None
    content_type: str | None = Field(default=None, alias="mimeType")
    created_time: str | None = Field(default=None, alias="createdTime")
    modified_time: str | None = Field(default=None, alias="modifiedTime")

    @field_validator("remote_id", mode="before")
    @classmethod
    def _require_id(cls, value: Any) -> str:
        text = str(value).strip() if value is not None else ""
        if not text:
            raise ValueError("remote_id cannot be empty")
        return text

    @field_validator("size", mode="before")
    @classmethod
    def _coerce_size(cls, value: Any) -> int | None:
        if value in (None, ""):
            return None
        return int(value)

    @field_validator(
        "name", "url", "content_type", "created_time", "modified_time", mode="before"
    )
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if value == "":
            return None
        if isinstance(value, datetime):
            return value.isoformat()
        return value


def parse_descriptors(entries: Iterable[Any], source: str = "<memory>") -> list[FileDescriptor]:
    descriptors: list[FileDescriptor] = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ManifestError(f"{source}: entry {index} is not a mapping")
        try:
            descriptors.append(FileDescriptor.model_validate(entry))
        except ValidationError as exc:
            raise ManifestError(f"{source}: entry {index} is invalid: {exc}") from exc
    return descriptors


def load_manifest(path: Path) -> list[FileDescriptor]:
    """Load descriptors from a manifest file."""

    path = Path(path)
    if not path.exists():
        raise ManifestError(f"Manifest not found: {path}")
    suffix = path.suffix.lower()
    if suffix not in MANIFEST_EXTENSIONS:
        raise ManifestError(f"Unsupported manifest format: {path.suffix}")
    text = path.read_text(encoding="utf-8")
    if suffix == ".csv":
        rows: Iterable[Any] = list(csv.DictReader(text.splitlines()))
    else:
        try:
            payload = json.loads(text) if suffix == ".json" else yaml.safe_load(text)
        except (json.JSONDecodeError, yaml.YAMLError) as exc:
            raise ManifestError(f"Manifest could not be parsed: {path}: {exc}") from exc
        if isinstance(payload, dict):
            payload = payload.get("files")
        if payload is None:
            payload = []
        if not isinstance(payload, list):
            raise ManifestError(f"Manifest must contain a list of files: {path}")
        rows = payload
    return parse_descriptors(rows, source=str(path))


__all__ = ["FileDescriptor", "MANIFEST_EXTENSIONS", "load_manifest", "parse_descriptors"]
