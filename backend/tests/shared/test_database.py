"""Tests for shared/database.py."""

from unittest.mock import MagicMock, patch

import pytest

from shared.database import get_supabase_client, is_supabase_configured, reset_client_cache
from shared.exceptions import ConfigurationError


class TestSupabaseClient:
    def setup_method(self):
        """Reset cache before each test."""
        reset_client_cache()

    @patch("shared.database.create_client")
    @patch("shared.database.get_settings")
    def test_get_supabase_client_creates_client(self, mock_settings, mock_create):
        """Should create client with service role key."""
        mock_settings.return_value.supabase_url = "https://test.supabase.co"
        mock_settings.return_value.supabase_service_role_key = "test-key"
        mock_create.return_value = MagicMock()

        client = get_supabase_client()

        mock_create.assert_called_once_with("https://test.supabase.co", "test-key")
        assert client is not None

    @patch("shared.database.create_client")
    @patch("shared.database.get_settings")
    def test_get_supabase_client_caches_client(self, mock_settings, mock_create):
        """Should cache the client and not recreate it."""
        mock_settings.return_value.supabase_url = "https://test.supabase.co"
        mock_settings.return_value.supabase_service_role_key = "test-key"
        mock_create.return_value = MagicMock()

        client1 = get_supabase_client()
        client2 = get_supabase_client()

        mock_create.assert_called_once()
        assert client1 is client2

    @patch("shared.database.get_settings")
    def test_get_supabase_client_raises_without_url(self, mock_settings):
        mock_settings.return_value.supabase_url = ""
        mock_settings.return_value.supabase_service_role_key = "test-key"

        with pytest.raises(ConfigurationError, match="not configured"):
            get_supabase_client()

    @patch("shared.database.get_settings")
    def test_get_supabase_client_raises_without_key(self, mock_settings):
        mock_settings.return_value.supabase_url = "https://test.supabase.co"
        mock_settings.return_value.supabase_service_role_key = ""

        with pytest.raises(ConfigurationError, match="not configured"):
            get_supabase_client()


class TestIsSupabaseConfigured:
    @patch("shared.database.get_settings")
    def test_configured(self, mock_settings):
        mock_settings.return_value.supabase_url = "https://test.supabase.co"
        mock_settings.return_value.supabase_service_role_key = "test-key"
        assert is_supabase_configured() is True

    @patch("shared.database.get_settings")
    def test_not_configured(self, mock_settings):
        mock_settings.return_value.supabase_url = ""
        mock_settings.return_value.supabase_service_role_key = ""
        assert is_supabase_configured() is False


class TestResetClientCache:
    def setup_method(self):
        reset_client_cache()

    @patch("shared.database.create_client")
    @patch("shared.database.get_settings")
    def test_reset_client_cache(self, mock_settings, mock_create):
        """Should reset the cache and allow new client creation."""
        mock_settings.return_value.supabase_url = "https://test.supabase.co"
        mock_settings.return_value.supabase_service_role_key = "test-key"
        mock_create.side_effect = [MagicMock(name="client1"), MagicMock(name="client2")]

        client1 = get_supabase_client()
        reset_client_cache()
        client2 = get_supabase_client()

        assert mock_create.call_count == 2
        assert client1 is not client2
