from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings.
    Secrets (JWT key, broker credentials, database URL) come from the environment.
    """

    # Basic service configuration
    PROJECT_NAME: str = "CitizenES Service"
    API_V1_STR: str = "/api/v1"
    SERVICE_NAME: str = "citizenes-service"
    VERSION: str = "1.0.0"

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    CORS_ORIGIN: str = "http://localhost:3000"

    # Database
    DATABASE_URL: str = "sqlite:///./citizenes.db"
    # Create missing tables at startup; Alembic owns the schema everywhere else
    AUTO_CREATE_TABLES: bool = False

    # JWT
    JWT_SECRET_KEY: str = "change-me-citizenes-development-secret-key"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7

    # Accounts
    PASSWORD_MIN_LENGTH: int = 6

    # Pagination defaults
    DEFAULT_PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 100

    # Tickets
    TICKET_ID_LENGTH: int = 6
    TICKET_ID_ALPHABET: str = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"

    # In-process fan-out
    SUBSCRIBER_QUEUE_SIZE: int = 100

    # Optional RabbitMQ relay for published events
    EVENT_RELAY_ENABLED: bool = False
    RABBITMQ_HOST: str = "localhost"
    RABBITMQ_PORT: int = 5672
    RABBITMQ_USER: str = "guest"
    RABBITMQ_PASSWORD: str = "guest"
    RABBITMQ_VHOST: str = "/"
    RABBITMQ_EVENTS_EXCHANGE: str = "citizenes.events"
    RABBITMQ_RECONNECT_COOLDOWN: float = 30.0

    class Config:
        env_file = ".env"
        extra = "ignore"  # Ignore extra environment variables


settings = Settings()
