"""
Shared pytest fixtures and configuration for all tests.
"""
import os
from datetime import datetime, timedelta, timezone

import pytest

# Hypothesis configuration for property-based testing
from hypothesis import settings, Verbosity, Phase

from backends.memory import InMemoryBackend
from session.foundationdb_store import FoundationDBSessionStore

# Default profile: balanced for local development
settings.register_profile(
    "default",
    max_examples=100,
    verbosity=Verbosity.normal,
    deadline=None,  # Each example runs its own event loop
    print_blob=True,
)

# CI profile: more thorough testing for continuous integration
settings.register_profile(
    "ci",
    max_examples=200,
    verbosity=Verbosity.verbose,
    deadline=None,
    print_blob=True,
    derandomize=True,
)

# Debug profile: minimal examples for quick debugging
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
    print_blob=True,
    phases=[Phase.explicit, Phase.reuse, Phase.generate],  # Skip shrinking for speed
)

# Fast profile: quick smoke tests
settings.register_profile(
    "fast",
    max_examples=20,
    verbosity=Verbosity.normal,
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "default"))


@pytest.fixture
def memory_backend() -> InMemoryBackend:
    """A fresh in-memory backend shared by every store built in a test."""
    return InMemoryBackend()


@pytest.fixture
def store(memory_backend) -> FoundationDBSessionStore:
    """A store on the in-memory backend; connects on first use."""
    return FoundationDBSessionStore(memory_backend, directory="test-sessions")


@pytest.fixture
def sample_session() -> dict:
    """Sample session with a cookie expiring in one hour."""
    expires = datetime.now(timezone.utc) + timedelta(hours=1)
    return {
        "cookie": {
            "originalMaxAge": 3600000,
            "expires": expires.isoformat(),
            "httpOnly": True,
            "path": "/",
        },
        "user_id": "user-001",
        "cart": ["sku-1", "sku-2"],
    }


@pytest.fixture
def expired_session() -> dict:
    """Session whose cookie expired a millisecond ago."""
    expires = datetime.now(timezone.utc) - timedelta(milliseconds=1)
    return {"cookie": {"expires": expires.isoformat()}, "user_id": "user-002"}
