"""JSON documents and write models exchanged with clients of the database proxy."""

from __future__ import annotations

import json
import re
from datetime import datetime, timedelta, timezone
from typing import Any

import bson
from bson import json_util
from bson.errors import InvalidDocument, InvalidId
from bson.objectid import ObjectId
from pymongo import DeleteMany, DeleteOne, InsertOne, ReplaceOne, UpdateMany, UpdateOne

from sparallel.errs import err

TYPE_KEY = "|t_"
VALUE_KEY = "|v_"
DATETIME_TYPE = "datetime"
ID_TYPE = "id"

_RFC3339 = re.compile(
    r"([0-9]{4})-([0-9]{2})-([0-9]{2})T([0-9]{2}):([0-9]{2}):([0-9]{2})"
    r"(?:\.([0-9]+))?(Z|[+-][0-9]{2}:[0-9]{2})"
)

_HTML_ESCAPES = str.maketrans(
    {
        "<": "\\u003c",
        ">": "\\u003e",
        "&": "\\u0026",
        "\u2028": "\\u2028",
        "\u2029": "\\u2029",
    }
)

_MODEL_TYPES = (
    "insertOne",
    "updateOne",
    "updateMany",
    "deleteOne",
    "deleteMany",
    "replaceOne",
)

_MISSING = object()


def _parse_rfc3339(text: str) -> datetime | None:
    match = _RFC3339.fullmatch(text)
    if match is None:
        return None
    year, month, day, hour, minute, second = (int(part) for part in match.groups()[:6])
    fraction = (match.group(7) or "")[:6].ljust(6, "0")
    zone = match.group(8)
    if zone == "Z":
        tz = timezone.utc
    else:
        hours, minutes = int(zone[1:3]), int(zone[4:6])
        if hours > 23 or minutes > 59:
            return None
        offset = timedelta(hours=hours, minutes=minutes)
        tz = timezone(offset if zone[0] == "+" else -offset)
    try:
        moment = datetime(year, month, day, hour, minute, second, int(fraction), tzinfo=tz)
    except ValueError:
        return None
    # Stored dates keep millisecond precision.
    moment = moment.replace(microsecond=moment.microsecond // 1000 * 1000)
    return moment.astimezone(timezone.utc)


def process_special_values(data: Any) -> Any:
    """Turn tagged ``{"|t_": ..., "|v_": ...}`` objects into dates and object ids.

    A tagged object whose value cannot be converted is returned unchanged;
    other objects and lists are processed recursively.
    """
    if isinstance(data, dict):
        if len(data) == 2 and data.get(TYPE_KEY) == DATETIME_TYPE:
            value = data.get(VALUE_KEY)
            if isinstance(value, str):
                moment = _parse_rfc3339(value)
                if moment is not None:
                    return moment
            return data

        if len(data) == 2 and data.get(TYPE_KEY) == ID_TYPE:
            value = data.get(VALUE_KEY)
            if isinstance(value, str):
                try:
                    return ObjectId(value)
                except InvalidId:
                    pass
            return data

        return {key: process_special_values(value) for key, value in data.items()}

    if isinstance(data, list):
        return [process_special_values(value) for value in data]

    return data


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON value: {name}")


def _loads(text: str) -> Any:
    # Numbers are decoded as floats, so they are stored as doubles.
    return json.loads(text, parse_int=float, parse_constant=_reject_constant)


def unmarshal_json(data: str) -> Any:
    """Decode a JSON document and convert its tagged special values."""
    return process_special_values(_loads(data))


def serialize_extended_json(document: Any) -> str:
    """Encode a document as canonical MongoDB Extended JSON."""
    try:
        encoded = bson.encode(document)
    except (InvalidDocument, TypeError, ValueError, OverflowError) as exc:
        raise err(ValueError(f"error BSON marshaling: {exc}")) from exc

    try:
        text = json_util.dumps(
            bson.decode(encoded),
            json_options=json_util.CANONICAL_JSON_OPTIONS,
            separators=(",", ":"),
            ensure_ascii=False,
        )
    except (TypeError, ValueError) as exc:
        raise err(ValueError(f"converting error in Extended Json: {exc}")) from exc

    return text.translate(_HTML_ESCAPES)


def _field(obj: dict, name: str) -> Any:
    """The value of ``name`` in ``obj``, matching keys without regard to case."""
    found = _MISSING
    folded = name.casefold()
    for key, value in obj.items():
        if key == name or key.casefold() == folded:
            found = value
    return found


def _optional(obj: dict, name: str) -> Any:
    value = _field(obj, name)
    return None if value is _MISSING else value


def _model_body(kind: str, wrapper: dict) -> dict:
    body = _field(wrapper, "model")
    if body is _MISSING:
        raise ValueError(f"{kind} [unexpected end of JSON input]")
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise ValueError(f"{kind} [model must be a JSON object]")
    return body


def _upsert(kind: str, body: dict) -> bool:
    value = _optional(body, "upsert")
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValueError(f"{kind} [upsert must be a boolean]")
    return value


def _build_model(kind: str, body: dict):
    filter_ = process_special_values(_optional(body, "filter"))

    if kind == "insertOne":
        return InsertOne(process_special_values(_optional(body, "document")))

    if kind in ("deleteOne", "deleteMany"):
        model_class = DeleteOne if kind == "deleteOne" else DeleteMany
        return model_class(filter_)

    upsert = _upsert(kind, body)

    if kind == "replaceOne":
        replacement = process_special_values(_optional(body, "replacement"))
        return ReplaceOne(filter_, replacement, upsert=upsert)

    update = process_special_values(_optional(body, "update"))
    model_class = UpdateOne if kind == "updateOne" else UpdateMany
    return model_class(filter_, update, upsert=upsert)


def unmarshal_models(data: str) -> list:
    """Decode a JSON list of ``{"type": ..., "model": {...}}`` into write models.

    Raises ValueError for malformed JSON, an unknown type or a bad model.
    """
    wrappers = _loads(data)
    if wrappers is None:
        return []
    if not isinstance(wrappers, list):
        raise ValueError("models must be a JSON array")

    models = []
    for wrapper in wrappers:
        if wrapper is None:
            wrapper = {}
        if not isinstance(wrapper, dict):
            raise ValueError("model wrapper must be a JSON object")

        kind = _optional(wrapper, "type")
        if kind is None:
            kind = ""
        if not isinstance(kind, str):
            raise ValueError("model type must be a string")
        if kind not in _MODEL_TYPES:
            raise ValueError(f"unknown type of model: {kind}")

        body = _model_body(kind, wrapper)
        try:
            models.append(_build_model(kind, body))
        except ValueError as exc:
            if str(exc).startswith(f"{kind} ["):
                raise
            raise ValueError(f"{kind} [{exc}]") from exc
        except TypeError as exc:
            raise ValueError(f"{kind} [{exc}]") from exc

    return models