"""Tests for the exception hierarchy."""

from ifyapi.exceptions import (
    BotLifecycleError,
    BuilderValidationError,
    CommandConflictError,
    ConfigurationError,
    ErrorCategory,
    IfyApiError,
    MessageError,
    TransportError,
    UnsupportedPlatformError,
)


class TestDefaults:

    def test_categories(self):
        assert ConfigurationError("x").category == ErrorCategory.INFRASTRUCTURE
        assert BuilderValidationError("x").category == ErrorCategory.PERMANENT
        assert BotLifecycleError("x").is_retryable
        assert TransportError("x").is_retryable
        assert not MessageError("x").is_retryable

    def test_modules(self):
        assert UnsupportedPlatformError("x").module == "lifecycle"
        assert TransportError("x").module == "transport"
        assert MessageError("x", module="custom").module == "custom"

    def test_explicit_category_wins(self):
        err = MessageError("x", category=ErrorCategory.TRANSIENT)
        assert err.is_retryable


class TestAttributes:

    def test_str_is_message_only(self):
        err = BotLifecycleError("token rejected", platform="discord", operation="start", attempt=2)
        assert str(err) == "token rejected"
        assert err.platform == "discord"
        assert err.operation == "start"
        assert err.context == {"attempt": 2}

    def test_transport_error_is_message_error(self):
        err = TransportError("429", platform="telegram", status=429)
        assert isinstance(err, MessageError)
        assert isinstance(err, IfyApiError)
        assert err.status == 429
        assert err.platform == "telegram"

    def test_conflict_fields(self):
        err = CommandConflictError("taken", key="h", existing="help")
        assert (err.key, err.existing) == ("h", "help")

    def test_configuration_error_setting(self):
        err = ConfigurationError("missing", setting_name="platforms.discord.token")
        assert err.setting_name == "platforms.discord.token"

    def test_empty_message_falls_back_to_class_name(self):
        assert str(IfyApiError()) == "IfyApiError"
        assert "BuilderValidationError('bad'" in repr(BuilderValidationError("bad"))
