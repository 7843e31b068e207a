import logging

import config
from api.routes import create_app

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app()

if __name__ == "__main__":
    if config.SYNC_ENABLED:
        app.extensions["zaanet"].sync_worker.start(interval_minutes=config.SYNC_INTERVAL_MINUTES)
    app.run(host=config.HOST, port=config.PORT)
