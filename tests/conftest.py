"""
Shared fixtures for the API tests.

Provider adapters are replaced by the fakes in `tests.fakes`, so orchestrator
and route tests never touch the network.
"""

import pytest
from fastapi.testclient import TestClient

from main import build_session_store, create_app
from tests.fakes import make_enhancer, make_image_provider, make_text_provider
from utils.settings import Settings


@pytest.fixture
def settings():
    return Settings(openai_api_key="sk-test", history_limit=20, reference_image_limit=5)


@pytest.fixture
def providers():
    return {
        "text_provider": make_text_provider(),
        "prompt_enhancer": make_enhancer(),
        "image_provider": make_image_provider(),
    }


@pytest.fixture
def app(settings, providers):
    """App with fake providers on `app.state`; the lifespan is not run."""
    application = create_app(settings)
    for name, value in providers.items():
        setattr(application.state, name, value)
    application.state.session_store = build_session_store(application, settings)
    return application


@pytest.fixture
def client(app):
    return TestClient(app)
