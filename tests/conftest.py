import pytest

from gates.core.config import Settings

from helpers import FakeGitHub, FakeQueue


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        GHAPP_ID="1234",
        GHAPP_PEMCERTIFICATE=None,
        GHAPP_WEBHOOKSECRET=None,
        GATES_MAX_TRIES=10,
        GATES_RATE_LIMIT_DEFAULT_DELAY_SECONDS=30,
    )


@pytest.fixture
def github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def queue() -> FakeQueue:
    return FakeQueue()
