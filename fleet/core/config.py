# fleet/core/config.py

import json
import os
from functools import lru_cache
from typing import Dict, Optional, Tuple

import boto3
from pydantic_settings import BaseSettings, SettingsConfigDict

from fleet.utils.logger import get_logger

logger = get_logger(__name__)


@lru_cache(maxsize=8)
def load_secret(secret_id: Optional[str], region: Optional[str]) -> Dict[str, str]:
    """
    Reads a JSON secret from AWS Secrets Manager, once per (secret, region).
    An unset secret id means "use plain settings" and yields {}.
    """
    if not secret_id or not secret_id.strip():
        return {}

    region = region or os.getenv("AWS_REGION", "eu-west-2")
    client = boto3.client("secretsmanager", region_name=region)
    payload = client.get_secret_value(SecretId=secret_id)["SecretString"]
    logger.info("Fetched secret", secret_id=secret_id, region=region)
    return json.loads(payload)


class Settings(BaseSettings):
    """
    Runtime configuration, read from the environment and an optional .env file.

    Database and Redis credentials may live in Secrets Manager; when
    db_secret_id / redis_secret_id are set, their keys override the plain
    fields below.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", case_sensitive=False)

    environment: str = "local"
    log_level: str = "INFO"
    allowed_cors_urls: str = "*"

    aws_region: Optional[str] = None
    db_secret_id: Optional[str] = None
    redis_secret_id: Optional[str] = None

    # Takes precedence over the db_* fields, e.g. sqlite:// for local runs
    database_url: Optional[str] = None
    db_host: str = "localhost"
    db_port: int = 3306
    db_user: str = "fleet"
    db_password: str = ""
    db_database: str = "fleet"
    # Applied to server databases only; SQLite keeps its own locking
    db_isolation_level: str = "READ COMMITTED"

    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_username: Optional[str] = None
    redis_password: Optional[str] = None

    business_timezone: str = "Europe/London"
    allocation_scope_by_rental: bool = False

    def _credentials(self, secret_id: Optional[str], fields: Dict[str, object]) -> Dict[str, object]:
        """Overlays the secret's upper-cased keys on the given plain values."""
        secret = load_secret(secret_id, self.aws_region)
        return {name: secret.get(name.upper()) or value for name, value in fields.items()}

    def database_parts(self) -> Tuple[str, int, str, str, str]:
        creds = self._credentials(self.db_secret_id, {
            "db_host": self.db_host,
            "db_port": self.db_port,
            "db_user": self.db_user,
            "db_password": self.db_password,
            "db_database": self.db_database,
        })
        return (
            creds["db_host"], int(creds["db_port"]), creds["db_user"],
            creds["db_password"], creds["db_database"],
        )

    @property
    def db_url(self) -> str:
        if self.database_url:
            return self.database_url
        host, port, user, password, database = self.database_parts()
        return f"mysql+pymysql://{user}:{password}@{host}:{port}/{database}"

    @property
    def redis_url(self) -> str:
        creds = self._credentials(self.redis_secret_id, {
            "redis_host": self.redis_host,
            "redis_port": self.redis_port,
            "redis_username": self.redis_username,
            "redis_password": self.redis_password,
        })
        auth = ""
        if creds["redis_password"]:
            auth = f"{creds['redis_username'] or ''}:{creds['redis_password']}@"
        return f"redis://{auth}{creds['redis_host']}:{creds['redis_port']}"

    @property
    def celery_broker(self) -> str:
        return f"{self.redis_url}/1"

    @property
    def celery_backend(self) -> str:
        return f"{self.redis_url}/2"


settings = Settings()
