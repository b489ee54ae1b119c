import json
from datetime import datetime, timedelta, timezone

import pytest
from bson.objectid import ObjectId
from pymongo import DeleteMany, DeleteOne, InsertOne, ReplaceOne, UpdateMany, UpdateOne

from sparallel.errs import TracedError
from sparallel.mongo.codec import (
    process_special_values,
    serialize_extended_json,
    unmarshal_json,
    unmarshal_models,
)

HEX_ID = "0123456789abcdef01234567"


def test_datetime_tag_becomes_utc_datetime():
    value = process_special_values({"|t_": "datetime", "|v_": "2024-01-02T03:04:05Z"})
    assert value == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert value.utcoffset() == timedelta(0)


def test_datetime_tag_with_offset_keeps_instant():
    value = process_special_values({"|t_": "datetime", "|v_": "2024-01-02T03:04:05+03:00"})
    assert value == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone(timedelta(hours=3)))


def test_datetime_fraction_is_cut_to_milliseconds():
    value = process_special_values(
        {"|t_": "datetime", "|v_": "2024-01-02T03:04:05.123456789Z"}
    )
    assert value == datetime(2024, 1, 2, 3, 4, 5, 123000, tzinfo=timezone.utc)


@pytest.mark.parametrize("text", ["2024-01-02 03:04:05", "yesterday", "2024-13-02T03:04:05Z"])
def test_invalid_datetime_is_left_unchanged(text):
    tagged = {"|t_": "datetime", "|v_": text}
    assert process_special_values(tagged) == tagged


def test_id_tag_becomes_object_id():
    assert process_special_values({"|t_": "id", "|v_": HEX_ID}) == ObjectId(HEX_ID)


def test_invalid_id_is_left_unchanged():
    tagged = {"|t_": "id", "|v_": "not-an-id"}
    assert process_special_values(tagged) == tagged


def test_nested_values_are_processed():
    data = {
        "|t_": "id",
        "|v_": HEX_ID,
        "items": [{"ref": {"|t_": "id", "|v_": HEX_ID}}, "plain"],
    }
    result = process_special_values(data)
    assert result["|t_"] == "id"
    assert result["items"] == [{"ref": ObjectId(HEX_ID)}, "plain"]


def test_unmarshal_json_decodes_numbers_as_floats():
    document = unmarshal_json('{"a": 1, "b": [2, 3.5]}')
    assert document == {"a": 1.0, "b": [2.0, 3.5]}
    assert isinstance(document["a"], float)


def test_unmarshal_json_converts_tags():
    document = unmarshal_json('{"_id": {"|t_": "id", "|v_": "%s"}}' % HEX_ID)
    assert document == {"_id": ObjectId(HEX_ID)}


@pytest.mark.parametrize("text", ["{", '{"a": NaN}', "[1,]"])
def test_unmarshal_json_rejects_invalid(text):
    with pytest.raises(ValueError):
        unmarshal_json(text)


def test_serialize_object_id_canonical():
    assert serialize_extended_json({"_id": ObjectId(HEX_ID)}) == (
        '{"_id":{"$oid":"%s"}}' % HEX_ID
    )


def test_serialize_double_canonical():
    assert serialize_extended_json({"x": 1.5}) == '{"x":{"$numberDouble":"1.5"}}'


def test_serialize_datetime_uses_date_wrapper():
    text = serialize_extended_json({"d": datetime(2024, 1, 2, tzinfo=timezone.utc)})
    decoded = json.loads(text)
    assert list(decoded["d"]) == ["$date"]
    assert list(decoded["d"]["$date"]) == ["$numberLong"]


def test_serialize_escapes_html_characters():
    text = serialize_extended_json({"s": "<a&b>"})
    assert "<" not in text and ">" not in text and "&" not in text
    assert json.loads(text) == {"s": "<a&b>"}


def test_serialize_keeps_key_order():
    text = serialize_extended_json({"z": "1", "a": "2"})
    assert list(json.loads(text)) == ["z", "a"]


def test_serialize_rejects_unencodable_document():
    with pytest.raises(TracedError, match="error BSON marshaling"):
        serialize_extended_json({"x": object()})


def test_unmarshal_models_all_types():
    data = json.dumps(
        [
            {"type": "insertOne", "model": {"document": {"a": 1}}},
            {"type": "updateOne", "model": {"filter": {"a": 1}, "update": {"$set": {"b": 2}}, "upsert": True}},
            {"type": "updateMany", "model": {"filter": {"a": 1}, "update": {"$set": {"b": 2}}}},
            {"type": "deleteOne", "model": {"filter": {"a": 1}}},
            {"type": "deleteMany", "model": {"filter": {"a": 1}}},
            {"type": "replaceOne", "model": {"filter": {"a": 1}, "replacement": {"c": 3}}},
        ]
    )
    assert unmarshal_models(data) == [
        InsertOne({"a": 1.0}),
        UpdateOne({"a": 1.0}, {"$set": {"b": 2.0}}, upsert=True),
        UpdateMany({"a": 1.0}, {"$set": {"b": 2.0}}),
        DeleteOne({"a": 1.0}),
        DeleteMany({"a": 1.0}),
        ReplaceOne({"a": 1.0}, {"c": 3.0}),
    ]


def test_unmarshal_models_matches_keys_without_case():
    data = '[{"Type": "deleteOne", "Model": {"Filter": {"k": "v"}}}]'
    assert unmarshal_models(data) == [DeleteOne({"k": "v"})]


def test_unmarshal_models_converts_tags():
    data = json.dumps(
        [{"type": "insertOne", "model": {"document": {"at": {"|t_": "datetime", "|v_": "2024-01-02T03:04:05Z"}}}}]
    )
    assert unmarshal_models(data) == [
        InsertOne({"at": datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)})
    ]


def test_unmarshal_models_null_is_empty():
    assert unmarshal_models("null") == []


def test_unmarshal_models_unknown_type():
    with pytest.raises(ValueError, match="unknown type of model: upsertAll"):
        unmarshal_models('[{"type": "upsertAll", "model": {}}]')


def test_unmarshal_models_missing_type_is_unknown():
    with pytest.raises(ValueError, match="unknown type of model: $"):
        unmarshal_models('[{"model": {}}]')


def test_unmarshal_models_bad_model_names_type():
    with pytest.raises(ValueError, match=r"^insertOne \["):
        unmarshal_models('[{"type": "insertOne", "model": 5}]')


def test_unmarshal_models_missing_model():
    with pytest.raises(ValueError, match=r"^deleteOne \["):
        unmarshal_models('[{"type": "deleteOne"}]')


def test_unmarshal_models_bad_upsert():
    with pytest.raises(ValueError, match=r"^updateOne \["):
        unmarshal_models('[{"type": "updateOne", "model": {"filter": {}, "update": {"$set": {"a": 1}}, "upsert": "yes"}}]')


def test_unmarshal_models_empty_update_rejected():
    with pytest.raises(ValueError, match=r"^updateOne \["):
        unmarshal_models('[{"type": "updateOne", "model": {"filter": {}, "update": {}}}]')


@pytest.mark.parametrize("text", ['{"type": "insertOne"}', "[1]", "not json"])
def test_unmarshal_models_rejects_bad_structure(text):
    with pytest.raises(ValueError):
        unmarshal_models(text)