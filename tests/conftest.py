"""
Shared fixtures: every test gets its own seeded store, provider and app.
"""
import pytest
from fastapi.testclient import TestClient

from main import create_app
from provider import CompositionResourceProvider
from store import VersionedResourceStore


@pytest.fixture
def store():
    """A freshly seeded store holding only Composition/1."""
    return VersionedResourceStore()


@pytest.fixture
def empty_store():
    return VersionedResourceStore(seed=False)


@pytest.fixture
def provider(store):
    return CompositionResourceProvider(store)


@pytest.fixture
def client(provider):
    """TestClient over an app bound to the test's own provider."""
    with TestClient(create_app(provider)) as test_client:
        yield test_client


@pytest.fixture
def composition_body():
    return {
        "resourceType": "Composition",
        "identifier": {"system": "urn:hapitest:mrns", "value": "00003"},
        "title": "Discharge Summary",
        "status": "final"
    }
