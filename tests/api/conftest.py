import pytest
from fastapi.testclient import TestClient

from API_LAYER.app import app


@pytest.fixture(scope="session")
def client():
    # In-memory stores only; STORE_BACKEND defaults to memory
    return TestClient(app)
