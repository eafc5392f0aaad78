# Ingestor as its own process, for when the web API runs elsewhere
import logging

from .db import init_db
from .mqtt_ingestor import start_mqtt, stop_mqtt
from .settings import settings

logging.basicConfig(level=settings.LOG_LEVEL, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')


def main():
    # the web process may not have created the table yet
    init_db()

    client, th = start_mqtt(settings)

    try:
        while th.is_alive():
            th.join(timeout=1)
    except KeyboardInterrupt:
        stop_mqtt(client, th)


if __name__ == "__main__":
    main()
