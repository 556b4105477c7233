"""Unit tests for key and record value types."""

import pytest

from diagram_store.domain import (
    BatchItemResult,
    CreateRequest,
    InvalidKeyError,
    KeyRef,
    KeyValue,
    RecordNotFoundError,
)
from diagram_store.domain.errors import OperationNotSupportedError, WriteFailedError
from diagram_store.domain.model import new_identifier, record_key


class TestRecordKey:
    def test_primary_only(self):
        assert record_key({"_id": "1", "name": "x"}, "_id") == ("1",)

    def test_composite_when_secondary_present(self):
        assert record_key({"board": "b", "slot": 2}, "board", "slot") == ("b", 2)

    def test_secondary_field_absent_from_record(self):
        assert record_key({"board": "b"}, "board", "slot") == ("b",)

    def test_missing_primary_raises(self):
        with pytest.raises(InvalidKeyError, match="board"):
            record_key({"slot": 1}, "board", "slot")


class TestKeyValue:
    def test_key_derived_from_record(self):
        entry = KeyValue.from_record({"_id": "1", "name": "Test User"}, "_id")
        assert entry.key == ("1",)
        assert entry.value == {"_id": "1", "name": "Test User"}

    def test_value_is_a_copy(self):
        record = {"_id": "1"}
        entry = KeyValue.from_record(record, "_id")
        record["_id"] = "2"
        assert entry.key == ("1",)
        assert entry.value == {"_id": "1"}

    def test_frozen(self):
        entry = KeyValue.from_record({"_id": "1"}, "_id")
        with pytest.raises(AttributeError):
            entry.key = ("2",)  # type: ignore[misc]

    def test_to_dict(self):
        entry = KeyValue.from_record({"board": "b", "slot": 1}, "board", "slot")
        assert entry.to_dict() == {"key": ["b", 1], "value": {"board": "b", "slot": 1}}


class TestKeyRef:
    def test_primary_only_tuple(self):
        assert KeyRef("a").as_tuple() == ("a",)

    def test_composite_tuple(self):
        assert KeyRef("a", 0).as_tuple() == ("a", 0)


class TestCreateRequest:
    def test_without_keys(self):
        request = CreateRequest(value={"name": "x"})
        assert request.has_key is False

    def test_with_primary_key(self):
        assert CreateRequest(value={}, primary_key="1").has_key is True

    def test_secondary_without_primary_rejected(self):
        with pytest.raises(InvalidKeyError, match="secondary"):
            CreateRequest(value={}, secondary_key="s")


class TestBatchItemResult:
    def test_ok_without_error(self):
        assert BatchItemResult(0, result=KeyValue(("1",), {"_id": "1"})).ok is True

    def test_not_ok_with_error(self):
        assert BatchItemResult(3, error=RecordNotFoundError(("x",))).ok is False


class TestIdentifiers:
    def test_identifiers_are_unique(self):
        identifiers = {new_identifier() for _ in range(1000)}
        assert len(identifiers) == 1000

    def test_identifier_is_hex_string(self):
        identifier = new_identifier()
        assert len(identifier) == 24
        int(identifier, 16)


class TestErrors:
    def test_invalid_key_is_value_error(self):
        assert issubclass(InvalidKeyError, ValueError)

    def test_not_supported_is_not_implemented(self):
        error = OperationNotSupportedError("many_create", "FakeRepository")
        assert isinstance(error, NotImplementedError)
        assert str(error) == "FakeRepository does not support many_create"

    def test_record_not_found_carries_key(self):
        error = RecordNotFoundError(("a", 1))
        assert error.key == ("a", 1)
        assert "('a', 1)" in str(error)

    def test_write_failed_duplicate_flag(self):
        assert WriteFailedError("rejected").duplicate_key is False
        assert WriteFailedError("rejected", duplicate_key=True).duplicate_key is True
