"""Tests for environment driven configuration."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from media_edge.cache import KeyValueTier, build_kv_tier
from media_edge.settings import GatewaySettings, load_settings_from_env
from media_edge.storage import S3ObjectStore, build_object_store


class TestGatewaySettings:
    def test_default_settings(self, monkeypatch):
        monkeypatch.delenv("MEDIA_EDGE_BUCKET", raising=False)
        monkeypatch.delenv("MEDIA_EDGE_REDIS_URL", raising=False)

        settings = GatewaySettings()

        assert settings.namespace == "celebrity"
        assert settings.kv_prefix == "celebrity:media:"
        assert settings.cache_host == "https://cache.local"
        assert settings.first_chunk_limit == 512 * 1024
        assert settings.max_attempts == 1
        assert settings.edge_max_bytes == settings.kv_memory_max_bytes == 64 * 1024 * 1024
        assert settings.cache_sweep_interval == 60.0
        assert settings.store_configured is False

    def test_load_from_env(self, monkeypatch):
        monkeypatch.setenv("MEDIA_EDGE_BUCKET", "media")
        monkeypatch.setenv("MEDIA_EDGE_S3_ENDPOINT", "http://minio:9000")
        monkeypatch.setenv("AWS_ACCESS_KEY_ID", "key")
        monkeypatch.setenv("MEDIA_EDGE_NAMESPACE", "/stars/")
        monkeypatch.setenv("MEDIA_EDGE_CACHE_HOST", "https://edge.example/")

        settings = load_settings_from_env()

        assert settings.bucket == "media"
        assert settings.endpoint == "http://minio:9000"
        assert settings.access_key == "key"
        assert settings.namespace == "stars"
        assert settings.cache_host == "https://edge.example"
        assert settings.store_configured is True

    def test_empty_namespace_rejected(self):
        with pytest.raises(ValidationError):
            GatewaySettings(MEDIA_EDGE_NAMESPACE="/")

    def test_addressing_style_validated(self):
        with pytest.raises(ValidationError):
            GatewaySettings(MEDIA_EDGE_S3_ADDRESSING_STYLE="sideways")

    def test_cache_budgets_must_be_positive(self):
        with pytest.raises(ValidationError):
            GatewaySettings(MEDIA_EDGE_EDGE_MAX_BYTES=0)
        with pytest.raises(ValidationError):
            GatewaySettings(MEDIA_EDGE_CACHE_SWEEP_INTERVAL=0)


class TestBuilders:
    def test_no_bucket_means_no_store(self):
        assert build_object_store(GatewaySettings(MEDIA_EDGE_BUCKET="")) is None

    def test_store_for_bucket(self):
        store = build_object_store(
            GatewaySettings(MEDIA_EDGE_BUCKET="media", MEDIA_EDGE_S3_ENDPOINT="http://minio:9000")
        )
        assert isinstance(store, S3ObjectStore)
        assert store.bucket == "media"

    def test_kv_disabled(self):
        assert build_kv_tier(GatewaySettings(MEDIA_EDGE_KV_ENABLED=False)) is None

    def test_kv_in_memory_without_redis(self, monkeypatch):
        monkeypatch.delenv("MEDIA_EDGE_REDIS_URL", raising=False)
        assert isinstance(build_kv_tier(GatewaySettings()), KeyValueTier)
