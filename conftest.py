"""Root conftest: test settings must be in the environment before setu_chat.config imports."""
from __future__ import annotations

import os
from pathlib import Path

TEST_ENV = {
    "POSTGRES_USER": "setu",
    "POSTGRES_PASSWORD": "setu",
    "POSTGRES_DB": "setu_test",
    "JWT_SECRET": "setu-test-secret-at-least-32-bytes-long",
    "JWT_VERIFY_MODE": "hs256",
    "REDIS_CHANNEL_PREFIX": "setu-test",
}


def _read_env_file(path: Path) -> dict[str, str]:
    values: dict[str, str] = {}
    if not path.exists():
        return values
    for line in path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        key, _, value = line.partition("=")
        values[key.strip()] = value.strip()
    return values


# .env.test overrides the built-in defaults; real environment wins over both
for _key, _value in {**TEST_ENV, **_read_env_file(Path(__file__).resolve().parent / ".env.test")}.items():
    os.environ.setdefault(_key, _value)
