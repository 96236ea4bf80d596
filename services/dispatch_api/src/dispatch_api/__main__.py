"""Dev entry point: python -m dispatch_api.

Runs a single process with in-memory state and an in-process retry thread.
Channels without vendor credentials use the logging stub adapter.
"""
from dispatch_core.config import DispatchConfig
from dispatch_core.wiring import build_local_dispatcher

from dispatch_api.app import create_app
from dispatch_api.config import ApiConfig


def main() -> None:
    config = ApiConfig()
    dispatcher, scheduler = build_local_dispatcher(DispatchConfig())
    app = create_app(dispatcher, log_level=config.log_level)
    scheduler.start()
    try:
        app.run(host=config.host, port=config.port)
    finally:
        scheduler.stop()


if __name__ == "__main__":
    main()
