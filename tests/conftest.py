"""Shared fixtures built on the fakes in ``fakes.py``."""

from __future__ import annotations

import pytest
from fakes import FakeBackend, FakeModel, FakeSite

from markdowner.browser import BrowserSessionManager
from markdowner.config import BrowserSettings


@pytest.fixture()
def browser_settings() -> BrowserSettings:
    return BrowserSettings()


@pytest.fixture()
def site() -> FakeSite:
    return FakeSite()


@pytest.fixture()
def backend(site: FakeSite) -> FakeBackend:
    return FakeBackend(site)


@pytest.fixture()
async def sessions(backend: FakeBackend, browser_settings: BrowserSettings):
    """Session manager over the fake backend; not yet started."""
    manager = BrowserSessionManager(backend, browser_settings)
    yield manager
    await manager.close()


@pytest.fixture()
def model() -> FakeModel:
    return FakeModel()
