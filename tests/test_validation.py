"""
Tests for validation module.
"""

import pytest

from src.validation import (
    ValidationError,
    ConfigurationError,
    validate_path_exists,
    validate_file_readable,
    validate_dir_writable,
    validate_country_code,
    validate_protocol,
    validate_positive_int,
)


class TestValidationError:
    """Tests for ValidationError exception."""

    def test_basic_message(self):
        """Error with just a message."""
        err = ValidationError("Something went wrong")
        assert str(err) == "Something went wrong"

    def test_message_with_field(self):
        """Error with field and message."""
        err = ValidationError("is required", field="country")
        assert str(err) == "country: is required"

    def test_message_with_details(self):
        """Error with extra details."""
        err = ValidationError("failed", details={"code": 123})
        assert err.details == {"code": 123}

    def test_configuration_error_is_exception(self):
        with pytest.raises(ConfigurationError):
            raise ConfigurationError("bad")


class TestPathValidation:
    """Tests for path validators."""

    def test_path_exists(self, tmp_path):
        validate_path_exists(tmp_path)

    def test_path_missing(self, tmp_path):
        with pytest.raises(ValidationError, match="does not exist"):
            validate_path_exists(tmp_path / "nope", "Mirrorlist")

    def test_file_readable(self, tmp_path):
        path = tmp_path / "f"
        path.write_text("x")
        validate_file_readable(path)

    def test_file_is_directory(self, tmp_path):
        with pytest.raises(ValidationError, match="not a file"):
            validate_file_readable(tmp_path)

    def test_dir_writable(self, tmp_path):
        validate_dir_writable(tmp_path)

    def test_missing_dir_with_writable_parent(self, tmp_path):
        validate_dir_writable(tmp_path / "a" / "b")

    def test_dir_is_file(self, tmp_path):
        path = tmp_path / "f"
        path.write_text("x")
        with pytest.raises(ValidationError, match="not a directory"):
            validate_dir_writable(path / "sub")


class TestCountryCode:
    """Tests for validate_country_code."""

    def test_upper_cased(self):
        assert validate_country_code("de") == "DE"

    def test_whitespace_stripped(self):
        assert validate_country_code(" gb ") == "GB"

    def test_none_and_blank(self):
        assert validate_country_code(None) is None
        assert validate_country_code("  ") is None

    @pytest.mark.parametrize("value", ["DEU", "D", "1A", "Germany", "D-E"])
    def test_invalid(self, value):
        with pytest.raises(ValidationError) as exc:
            validate_country_code(value)
        assert exc.value.field == "country"


class TestProtocol:
    def test_valid(self):
        assert validate_protocol("HTTPS") == "https"
        assert validate_protocol("rsync") == "rsync"

    def test_invalid(self):
        with pytest.raises(ValidationError) as exc:
            validate_protocol("ftp")
        assert exc.value.details["valid_protocols"] == ["http", "https", "rsync"]

    def test_empty(self):
        with pytest.raises(ValidationError):
            validate_protocol("")


class TestPositiveInt:
    def test_valid(self):
        assert validate_positive_int(3, "workers") == 3

    @pytest.mark.parametrize("value", [0, -1, True, "3"])
    def test_invalid(self, value):
        with pytest.raises(ValidationError):
            validate_positive_int(value, "workers")
