# tests/conftest.py
"""Shared test fixtures.

Store fixtures run against fakeredis: pooled connections are fakeredis
connections to one FakeServer per test, so they share data exactly like
separate connections to one real server. `store` is an independent client
on the same server for asserting what became visible.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

import os
from collections.abc import Iterator

import fakeredis
import pytest
import redis
import structlog
from hypothesis import Phase, Verbosity, settings

from cairn.core.codec import FieldCodec
from cairn.core.security.envelope import EnvelopeCipher
from cairn.core.security.keyring import KeyRing
from cairn.core.store.pool import ConnectionPool
from cairn.core.store.transaction import TransactionCoordinator

# Fixed 32-byte master keys so failures reproduce
KEY_V1 = bytes(range(32))
KEY_V2 = bytes(range(32, 64))
KEY_V3 = bytes(range(64, 96))


@pytest.fixture
def key_ring() -> KeyRing:
    return KeyRing({"v1": KEY_V1}, current="v1")


@pytest.fixture
def cipher(key_ring: KeyRing) -> EnvelopeCipher:
    return EnvelopeCipher(key_ring)


@pytest.fixture
def codec(cipher: EnvelopeCipher) -> FieldCodec:
    return FieldCodec(cipher)


@pytest.fixture
def fake_server() -> fakeredis.FakeServer:
    return fakeredis.FakeServer()


@pytest.fixture
def store(fake_server: fakeredis.FakeServer) -> fakeredis.FakeRedis:
    """Independent client for observing committed state."""
    return fakeredis.FakeRedis(server=fake_server, decode_responses=True)


def fake_pool(
    server: fakeredis.FakeServer, *, max_size: int = 4, checkout_timeout: float | None = 0.5
) -> ConnectionPool:
    """ConnectionPool whose connections talk to an in-process FakeServer."""
    return ConnectionPool(
        redis.BlockingConnectionPool(
            connection_class=fakeredis.FakeRedisConnection,
            server=server,
            max_connections=max_size,
            timeout=checkout_timeout,
            decode_responses=True,
        )
    )


@pytest.fixture
def pool(fake_server: fakeredis.FakeServer) -> Iterator[ConnectionPool]:
    pool = fake_pool(fake_server)
    yield pool
    pool.close()


@pytest.fixture
def coordinator(pool: ConnectionPool) -> TransactionCoordinator:
    return TransactionCoordinator(pool)


@pytest.fixture(autouse=True)
def _clear_structlog_context() -> Iterator[None]:
    """Keep bound contextvars from leaking between tests."""
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()


# =============================================================================
# Hypothesis Configuration
# =============================================================================

settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,  # Disable deadline for CI (timing varies)
)

settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))
