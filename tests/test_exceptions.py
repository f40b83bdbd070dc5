import pytest
from bson.errors import InvalidId
from pymongo.errors import (
    AutoReconnect,
    DuplicateKeyError,
    NetworkTimeout,
    OperationFailure,
    ServerSelectionTimeoutError,
    WriteError,
)

from renderapis.exceptions import (
    STATUS_CODES,
    DuplicateKey,
    ErrorKind,
    NotFound,
    ServiceError,
    StorageUnavailable,
    UnknownError,
    ValidationFailure,
    classify_driver_error,
    error_summary,
)


def test_every_error_kind_has_a_status_code():
    assert set(STATUS_CODES) == set(ErrorKind)
    assert STATUS_CODES[ErrorKind.VALIDATION_FAILURE] == 400
    assert STATUS_CODES[ErrorKind.NOT_FOUND] == 404
    assert STATUS_CODES[ErrorKind.STORAGE_UNAVAILABLE] == 503
    assert STATUS_CODES[ErrorKind.DUPLICATE_KEY] == 400
    assert STATUS_CODES[ErrorKind.UNKNOWN] == 500


@pytest.mark.parametrize(
    "error_class", [ValidationFailure, NotFound, StorageUnavailable, DuplicateKey, UnknownError]
)
def test_each_error_class_maps_to_its_kind(error_class):
    error = error_class()

    assert error.status_code == STATUS_CODES[error_class.kind]
    assert error.message == error_class.default_message


@pytest.mark.parametrize(
    "driver_error, expected",
    [
        (DuplicateKeyError("E11000 duplicate key error", code=11000), DuplicateKey),
        (ServerSelectionTimeoutError("no servers"), StorageUnavailable),
        (NetworkTimeout("timed out"), StorageUnavailable),
        (AutoReconnect("connection reset"), StorageUnavailable),
        (WriteError("Document failed validation", code=121), ValidationFailure),
        (InvalidId("bad id"), ValidationFailure),
        (OperationFailure("not authorized", code=13), UnknownError),
        (RuntimeError("boom"), UnknownError),
    ],
)
def test_classify_driver_error(driver_error, expected):
    error = classify_driver_error(driver_error)

    assert type(error) is expected
    assert error.cause is driver_error


def test_service_errors_pass_through_unchanged():
    original = NotFound()

    assert classify_driver_error(original) is original


def test_error_summary():
    error = classify_driver_error(InvalidId("bad id"))

    assert error_summary(error) == {"kind": "validation_failure", "message": "Invalid ID format", "cause": "InvalidId"}
    assert isinstance(error, ServiceError)
