"""
Pytest configuration for stagebot tests.

Shared fakes and event builders live in tests/support.py; this module holds
the fixtures built from them.
"""

import pytest

from stagebot.config import Config
from stagebot.workflow import TokenCodec

from .support import TEST_CONTROL_URL, TEST_GITHUB_URL, FakeTransport


# -----------------------------------------------------------------------------
# Common Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec()


@pytest.fixture
def config() -> Config:
    """Config with two release targets."""
    return Config.model_validate({
        "telegram": {"token": "123:test"},
        "production_control": {"url": TEST_CONTROL_URL},
        "github": {"token": "ghp_test", "owner": "acme", "api_url": TEST_GITHUB_URL},
        "release": {
            "url": "https://wiki.test/release",
            "targets": [
                {"name": "foo"},
                {"name": "bar", "owner": "other", "base_branch": "develop"},
            ],
        },
    })


# -----------------------------------------------------------------------------
# Session Configuration
# -----------------------------------------------------------------------------
def pytest_configure(config):
    """Configure pytest session."""
    config.addinivalue_line(
        "markers", "e2e: end-to-end scenario through the full dispatch pipeline"
    )
