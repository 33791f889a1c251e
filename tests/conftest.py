import pytest


@pytest.fixture
def anyio_backend() -> str:
    # The package is built on stdlib asyncio; run anyio-marked tests on it only.
    return "asyncio"
