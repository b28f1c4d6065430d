from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import pytest

from cmmsync.adapters.cmms import HttpWorkOrderStore
from cmmsync.adapters.http_resilience import ResilientClient
from cmmsync.config import CmmsConfig, ResilienceConfig, RetryPolicy

if TYPE_CHECKING:
    from collections.abc import Callable

type Handler = Callable[[httpx.Request], httpx.Response]

CMMS_TEST_URL = "https://cmms.test"


@pytest.fixture(autouse=True)
def _clean_cmms_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "CMMS_API_URL",
        "CMMS_API_TOKEN",
        "CMMS_STALE_SECONDS",
        "CMMS_POLL_SECONDS",
        "CMMS_SAME_KEY_POLICY",
        "CMMS_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def cmms_config() -> CmmsConfig:
    return CmmsConfig(
        api_url=CMMS_TEST_URL,
        api_token="test-token",
        resilience=ResilienceConfig(
            name="cmms-test",
            base_url=CMMS_TEST_URL,
            retry=RetryPolicy(backoff_factor=0, backoff_jitter=0),
        ),
    )


@pytest.fixture
def make_store(cmms_config: CmmsConfig) -> Callable[[Handler], HttpWorkOrderStore]:
    def factory(handler: Handler) -> HttpWorkOrderStore:
        def client_factory(config: CmmsConfig) -> ResilientClient:
            return ResilientClient(config.resilience, transport=httpx.MockTransport(handler))

        return HttpWorkOrderStore(config=cmms_config, client_factory=client_factory)

    return factory
