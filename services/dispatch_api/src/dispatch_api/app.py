import logging

from flask import Flask

from dispatch_core.dispatcher import Dispatcher

from dispatch_api.log import setup_logging
from dispatch_api.routes import bp

logger = logging.getLogger(__name__)


def create_app(dispatcher: Dispatcher, log_level: str = "INFO") -> Flask:
    """Flask application factory.

    Args:
        dispatcher: Fully composed dispatcher (real or mock for tests).
        log_level: Root log level.
    """
    setup_logging(log_level)

    app = Flask(__name__)
    app.extensions["dispatcher"] = dispatcher

    app.register_blueprint(bp)

    logger.info("Dispatch API initialized")
    return app
