import secrets
import string

import argon2

from brandflow.settings import settings

_completely_irrelevant_salt = (
    b"completely irrelevant salt because the entropy of the api key is high enough"
)

API_KEY_PREPEND = "bf_wh_"


def generate_cryptographic_key(length: int) -> str:
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


def hash_api_key(value: str) -> str:
    """No salt needed because entropy of api keys is high enough"""

    hasher = argon2.PasswordHasher()
    return hasher.hash(value, salt=_completely_irrelevant_salt)


def generate_api_key() -> tuple[str, str]:
    """
    Generate a random webhook API key.

    Returns the plain key (shown to the admin once) and the display prefix.
    """
    random_key = generate_cryptographic_key(settings.API_KEY_LENGTH)
    prefix = f"{API_KEY_PREPEND}{random_key[:3]}"
    api_key = f"{API_KEY_PREPEND}{random_key}"

    return api_key, prefix
