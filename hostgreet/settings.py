"""Fixed application settings.

All values are constants; nothing is read from the environment or from files.
"""

from pydantic import BaseModel, ConfigDict


class ServerSettings(BaseModel):
    """Listener address and request protection timeouts (seconds)."""

    model_config = ConfigDict(frozen=True)

    host: str = ""
    port: int = 8080
    header_read_timeout: float = 5.0
    write_timeout: float = 10.0
    idle_timeout: float = 60.0
    shutdown_timeout: float = 10.0


class PayloadSettings(BaseModel):
    """Constants used to build the greeting response."""

    model_config = ConfigDict(frozen=True)

    greeting_prefix: str = "Welcome! "
    version: str = "v3.2"
    fallback_hostname: str = "unknown"


class LoggingSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    level: str = "INFO"


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    server: ServerSettings = ServerSettings()
    payload: PayloadSettings = PayloadSettings()
    logging: LoggingSettings = LoggingSettings()


app_settings = Settings()
