"""
Unit tests for keyring-backed secrets.
"""

from unittest.mock import patch

from keyring.errors import KeyringError, PasswordDeleteError

from docdetect.utils import secrets

KEYRING_PATCH = "docdetect.utils.secrets.keyring"


class TestSecrets:
    """Tests for API key storage."""

    @patch(KEYRING_PATCH)
    def test_get_api_key(self, mock_keyring):
        mock_keyring.get_password.return_value = "sk-test"

        assert secrets.get_api_key("openai") == "sk-test"
        mock_keyring.get_password.assert_called_once_with("docdetect", "openai_api_key")

    @patch(KEYRING_PATCH)
    def test_get_api_key_backend_failure(self, mock_keyring):
        mock_keyring.get_password.side_effect = KeyringError("locked")

        assert secrets.get_api_key("openai") is None

    @patch(KEYRING_PATCH)
    def test_set_api_key(self, mock_keyring):
        assert secrets.set_api_key("anthropic", "sk-ant") is True
        mock_keyring.set_password.assert_called_once_with(
            "docdetect", "anthropic_api_key", "sk-ant"
        )

    @patch(KEYRING_PATCH)
    def test_set_api_key_failure(self, mock_keyring):
        mock_keyring.set_password.side_effect = KeyringError("read-only")

        assert secrets.set_api_key("anthropic", "sk-ant") is False

    @patch(KEYRING_PATCH)
    def test_delete_api_key(self, mock_keyring):
        assert secrets.delete_api_key("openai") is True

        mock_keyring.delete_password.side_effect = PasswordDeleteError("missing")
        assert secrets.delete_api_key("openai") is False
