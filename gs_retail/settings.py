import os
from dataclasses import dataclass

DEFAULT_TOPIC = "gs-retail/sensor/onvif-ej/PeopleCounting/PeopleCountPunctual/&VideoEncoderToken-01-0/line2"


@dataclass(frozen=True)
class Settings:
    # Web
    WEB_HOST: str = os.getenv("WEB_HOST", "0.0.0.0")
    WEB_PORT: int = int(os.getenv("WEB_PORT") or os.getenv("PORT") or "3000")
    STATIC_DIR: str | None = os.getenv("STATIC_DIR") or None
    COUNTS_LIMIT: int = int(os.getenv("COUNTS_LIMIT", "100"))

    # DB
    DB_PATH: str = os.getenv("DB_PATH", "./people_counting.db")
    DB_URL: str = os.getenv("DB_URL") or f"sqlite:///{os.getenv('DB_PATH', './people_counting.db')}"

    # MQTT
    MQTT_HOST: str = os.getenv("MQTT_HOST", "localhost")
    MQTT_PORT: int = int(os.getenv("MQTT_PORT", "9001"))
    MQTT_PROTOCOL: str = os.getenv("MQTT_PROTOCOL", "wss").lower()
    MQTT_PATH: str = os.getenv("MQTT_PATH", "/ws")
    MQTT_USERNAME: str | None = os.getenv("MQTT_USERNAME") or None
    MQTT_PASSWORD: str | None = os.getenv("MQTT_PASSWORD") or None
    MQTT_TOPIC: str = os.getenv("MQTT_TOPIC", DEFAULT_TOPIC)
    MQTT_TLS_VERIFY: bool = os.getenv("MQTT_TLS_VERIFY", "0") == "1"
    INGESTOR_ENABLED: bool = os.getenv("INGESTOR_ENABLED", "1") == "1"

    # Timestamps are stored as wall-clock time in this zone
    LOCAL_TZ: str = os.getenv("LOCAL_TZ", "Europe/Stockholm")

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    @property
    def use_ssl(self) -> bool:
        return self.MQTT_PROTOCOL in ("wss", "mqtts")

    @property
    def use_websockets(self) -> bool:
        return self.MQTT_PROTOCOL in ("ws", "wss")


settings = Settings()
