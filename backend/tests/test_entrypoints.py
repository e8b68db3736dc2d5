"""Tests that the service and worker entry points load with their retry stacks."""

import importlib

import httpx
import pytest
from tenacity import wait_exponential
from tenacity.wait import wait_base

from photostory.services.asset_fetcher import AssetFetcher
from photostory.worker.channels import HttpJobChannel


@pytest.mark.parametrize(
    "module",
    [
        "photostory.main",
        "photostory.worker_entrypoint",
        "photostory.worker",
        "photostory.worker.channels",
        "photostory.services.asset_fetcher",
        "photostory.client.exporter",
    ],
)
def test_module_imports(module):
    assert importlib.import_module(module) is not None


class TestDefaultRetryWaits:
    @pytest.mark.asyncio
    async def test_channel_backs_off_exponentially(self):
        async with httpx.AsyncClient() as client:
            channel = HttpJobChannel("http://api.internal", "secret", client=client)

            assert isinstance(channel._wait, wait_base)
            assert isinstance(channel._wait, wait_exponential)

    @pytest.mark.asyncio
    async def test_fetcher_backs_off_exponentially(self):
        async with httpx.AsyncClient() as client:
            fetcher = AssetFetcher(client=client)

            assert isinstance(fetcher._wait, wait_base)
            assert isinstance(fetcher._wait, wait_exponential)
