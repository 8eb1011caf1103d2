import os
from pathlib import Path
from typing import Any

import structlog
from pydantic.fields import FieldInfo
from pydantic_settings import PydanticBaseSettingsSource

logger = structlog.stdlib.get_logger(__name__)

FILE_SUFFIX = "_FILE"


def read_secret_file(path: str) -> str | None:
    """Contents of a mounted secret, or None when it cannot be read."""
    try:
        return Path(path).read_text().strip()
    except OSError as e:
        logger.warning("Could not read secret file", path=path, error=str(e))
        return None


class DockerSecretsSettingsSource(PydanticBaseSettingsSource):
    """
    Resolves `<NAME>_FILE` environment variables to the file's contents.

    With `STRIPE_SECRET_KEY_FILE=/run/secrets/stripe_secret_key` the Stripe
    key is read from the mounted secret instead of the environment, and it
    wins over a plain `STRIPE_SECRET_KEY` variable.
    """

    def get_field_value(
        self, field: FieldInfo, field_name: str
    ) -> tuple[Any, str, bool]:
        path = os.getenv(field_name + FILE_SUFFIX)
        value = read_secret_file(path) if path else None
        return value, field_name, False

    def __call__(self) -> dict[str, Any]:
        values: dict[str, Any] = {}
        for field_name, field in self.settings_cls.model_fields.items():
            value, key, _ = self.get_field_value(field, field_name)
            if value is not None:
                values[key] = value
        return values
