from unittest import mock

import pytest
from fastapi.testclient import TestClient

from kommo_tools.core.config import settings
from kommo_tools.main import app
from tests.kommo.helpers import CITY_FIELD, NAME_FIELD, SOURCE_FIELD, FakeKommo, FakeKommoClient


@pytest.fixture(autouse=True)
def testing_settings(monkeypatch):
    monkeypatch.setattr(settings, 'testing', True)
    monkeypatch.setattr(settings, 'kommo_base_url', 'https://testaccount.kommo.com')
    monkeypatch.setattr(settings, 'kommo_access_token', 'test-key')


@pytest.fixture(name='fake_kommo')
def fake_kommo_fixture():
    """A Kommo account with one lead and a few lead custom fields"""
    fake = FakeKommo()
    fake.add_lead()
    fake.add_custom_fields('leads', NAME_FIELD, CITY_FIELD, SOURCE_FIELD)
    return fake


@pytest.fixture(name='kommo_client', autouse=True)
def kommo_client_fixture(fake_kommo):
    """Replace the shared httpx client so no test ever talks to Kommo"""
    fake_client = FakeKommoClient(fake_kommo)
    with mock.patch('kommo_tools.kommo.api._client', fake_client):
        yield fake_client


@pytest.fixture(name='client')
def client_fixture():
    """Create a test client"""
    return TestClient(app)
