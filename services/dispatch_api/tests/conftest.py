from unittest.mock import MagicMock

import pytest
from flask import Flask
from flask.testing import FlaskClient

from dispatch_core.dispatcher import Dispatcher

from dispatch_api.app import create_app


@pytest.fixture()
def mock_dispatcher() -> MagicMock:
    return MagicMock(spec=Dispatcher)


@pytest.fixture()
def app(mock_dispatcher: MagicMock) -> Flask:
    app = create_app(mock_dispatcher)
    app.config["TESTING"] = True
    return app


@pytest.fixture()
def client(app: Flask) -> FlaskClient:
    return app.test_client()
