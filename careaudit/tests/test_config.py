"""
Tests for environment configuration and service wiring.
"""

import asyncio
import os
import tempfile

import pytest

from careaudit.config import Settings, build_store
from careaudit.core.clock import ManualClock
from careaudit.log.file_store import FileAuditStore
from careaudit.log.integrity import GENESIS_HASH
from careaudit.log.memory_store import MemoryAuditStore
from careaudit.service import AuditService


def test_defaults():
    settings = Settings.from_env({})

    assert settings.store == "file"
    assert settings.hash_algorithm == "sha256"
    assert settings.append_retries == 3
    assert settings.metrics_enabled is False
    assert settings.redact_keys == ()
    assert settings.s3_use_head is True


def test_values_parsed():
    settings = Settings.from_env(
        {
            "CAREAUDIT_STORE": "S3",
            "CAREAUDIT_S3_BUCKET": "audit-prod",
            "CAREAUDIT_S3_ENDPOINT": "http://minio:9000",
            "CAREAUDIT_HASH_ALGORITHM": "SHA3-256",
            "CAREAUDIT_APPEND_RETRIES": "5",
            "CAREAUDIT_REDACT_KEYS": "dob, nhs_no ,",
            "CAREAUDIT_METRICS_ENABLED": "true",
            "CAREAUDIT_METRICS_PORT": "9100",
            "CAREAUDIT_LOG_FORMAT": "text",
            "CAREAUDIT_S3_USE_HEAD": "off",
        }
    )

    assert settings.store == "s3"
    assert settings.s3_bucket == "audit-prod"
    assert settings.s3_endpoint == "http://minio:9000"
    assert settings.s3_use_head is False
    assert settings.hash_algorithm == "sha3_256"
    assert settings.append_retries == 5
    assert settings.redact_keys == ("dob", "nhs_no")
    assert settings.metrics_enabled is True
    assert settings.metrics_port == 9100
    assert settings.log_format == "text"


@pytest.mark.parametrize(
    "env",
    [
        {"CAREAUDIT_STORE": "postgres"},
        {"CAREAUDIT_HASH_ALGORITHM": "md5"},
        {"CAREAUDIT_APPEND_RETRIES": "0"},
        {"CAREAUDIT_APPEND_RETRIES": "many"},
        {"CAREAUDIT_METRICS_ENABLED": "maybe"},
        {"CAREAUDIT_S3_USE_HEAD": "sometimes"},
        {"CAREAUDIT_LOG_FORMAT": "xml"},
    ],
)
def test_invalid_values_rejected(env):
    with pytest.raises(ValueError):
        Settings.from_env(env)


def test_build_store():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "audit.jsonl")

        assert isinstance(build_store(Settings(store="file", log_path=path)), FileAuditStore)
        assert isinstance(build_store(Settings(store="memory")), MemoryAuditStore)


def test_service_wiring_redacts_configured_keys():
    settings = Settings(store="memory", redact_keys=("dob",))
    service = AuditService.from_settings(settings, clock=ManualClock())

    async def run():
        tip = await service.start()
        entry = await service.writer.append("user_update", details={"dob": "1950-01-01", "token": "t"})
        return tip, entry

    tip, entry = asyncio.run(run())

    assert tip == GENESIS_HASH
    assert entry.details == {"dob": "[REDACTED]", "token": "[REDACTED]"}
    assert service.verifier.hasher is service.writer.hasher
