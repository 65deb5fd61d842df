import os

import pytest
from fastapi.testclient import TestClient

from fastframe.api.factory import create_app


@pytest.fixture(scope="session", autouse=True)
def _force_test_env():
    # Make runtime behave deterministically in tests
    os.environ.setdefault("FASTFRAME_ENV", "test")


@pytest.fixture()
def app():
    return create_app(env="test")


@pytest.fixture()
def client(app):
    return TestClient(app)


@pytest.fixture()
def make_client():
    """Build a TestClient for an app created with the given options."""

    def _make(options=None, *, env="test", routes=None, **client_kwargs):
        application = create_app(options, env=env)
        if routes is not None:
            routes(application)
        return TestClient(application, **client_kwargs)

    return _make
