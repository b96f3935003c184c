"""Manifest decoding for YAML and JSON streams.

A manifest file may hold several YAML documents separated by ``---``
or one or more concatenated JSON documents. Content that starts like JSON
but does not parse as JSON (flow-style YAML) is read as YAML. Decoding
is all-or-nothing: a single malformed document fails the whole call.
"""

import json
from typing import Any

import yaml

from gitopsctl.core.errors import DecodeError
from gitopsctl.models.resource import TargetResource

_JSON_START = ("{", "[")
_TIMESTAMP_TAG = "tag:yaml.org,2002:timestamp"


class _ManifestLoader(yaml.SafeLoader):
    """SafeLoader that keeps timestamp-like scalars as plain strings."""


_ManifestLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != _TIMESTAMP_TAG]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def decode_manifests(data: bytes, origin: str | None = None) -> list[TargetResource]:
    """Decode a manifest byte stream into target resources.

    Args:
        data: Raw manifest content.
        origin: Name of the file the content came from, used in messages.

    Returns:
        Target resources in document order. Empty documents are skipped
        and ``*List`` documents are flattened into their items.

    Raises:
        DecodeError: If any document is malformed or lacks apiVersion,
            kind or metadata.name.
    """
    label = origin or "<stream>"
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise DecodeError(f"{label}: content is not valid UTF-8: {e}") from e

    documents: list[Any] | None = None
    if text.lstrip().startswith(_JSON_START):
        documents = _load_json_documents(text)
    if documents is None:
        documents = _load_yaml_documents(text, label)

    resources: list[TargetResource] = []
    for index, document in enumerate(documents):
        for item in _flatten(document, label, index):
            resources.append(_to_target(item, label, index, origin))
    return resources


def _load_json_documents(text: str) -> list[Any] | None:
    """Decode concatenated JSON values, or None if the text is not JSON."""
    decoder = json.JSONDecoder()
    documents: list[Any] = []
    position = 0
    length = len(text)
    while True:
        while position < length and text[position].isspace():
            position += 1
        if position >= length:
            return documents
        try:
            document, position = decoder.raw_decode(text, position)
        except json.JSONDecodeError:
            return None
        documents.append(document)


def _load_yaml_documents(text: str, label: str) -> list[Any]:
    try:
        return list(yaml.load_all(text, Loader=_ManifestLoader))  # noqa: S506
    except yaml.YAMLError as e:
        raise DecodeError(f"{label}: invalid YAML: {e}") from e


def _flatten(document: Any, label: str, index: int) -> list[dict[str, Any]]:
    """Return the resources carried by one document."""
    if document is None:
        return []
    if not isinstance(document, dict):
        raise DecodeError(
            f"{label}: document {index} is a {type(document).__name__}, expected a mapping"
        )
    if not document:
        return []

    kind = document.get("kind")
    items = document.get("items")
    if isinstance(kind, str) and kind.endswith("List") and isinstance(items, list):
        flattened: list[dict[str, Any]] = []
        for item in items:
            flattened.extend(_flatten(item, label, index))
        return flattened
    return [document]


def _to_target(
    document: dict[str, Any], label: str, index: int, origin: str | None
) -> TargetResource:
    for field in ("apiVersion", "kind"):
        value = document.get(field)
        if not isinstance(value, str) or not value:
            raise DecodeError(f"{label}: document {index} is missing '{field}'")

    metadata = document.get("metadata")
    if not isinstance(metadata, dict) or not metadata.get("name"):
        raise DecodeError(
            f"{label}: document {index} ({document['kind']}) is missing 'metadata.name'"
        )
    return TargetResource(body=document, origin=origin)
