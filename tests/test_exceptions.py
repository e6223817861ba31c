"""Tests for exception messages and package-wide import compatibility."""

import __future__
import importlib

import pytest

from zipstruct.exceptions import (
    FieldRangeError,
    LocalFileHeaderSignatureError,
    SignatureError,
    ZipStructError,
)

MODULES = [
    "zipstruct",
    "zipstruct.central_directory",
    "zipstruct.entry",
    "zipstruct.exceptions",
    "zipstruct.structures",
    "zipstruct.tracing",
    "zipstruct.utils",
]


@pytest.mark.parametrize("name", MODULES)
def test_annotations_postponed(name):
    # Union annotations such as ``int | None`` must not be evaluated on 3.9
    module = importlib.import_module(name)
    assert module.annotations is __future__.annotations


def test_signature_annotation_is_a_string():
    assert SignatureError.__init__.__annotations__["found"] == "int | None"


class TestMessages:
    """Tests for exception formatting."""

    def test_signature(self):
        error = LocalFileHeaderSignatureError(0x12345678)
        assert isinstance(error, ZipStructError)
        assert isinstance(error, ValueError)
        assert str(error) == "Invalid local file header signature: 0x12345678"

    def test_signature_without_value(self):
        assert str(LocalFileHeaderSignatureError()) == "Invalid local file header signature"

    def test_field_range(self):
        error = FieldRangeError("entry", "compressed_size", 70000, 0xFFFF)
        assert error.field == "compressed_size"
        assert "exceeds ZIP32 limit of 65535" in str(error)
