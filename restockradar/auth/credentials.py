import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


@dataclass(frozen=True)
class SmtpCredentials:
    """
    SMTP login kept apart from the YAML configuration.
    """

    username: str
    password: str

    def __repr__(self) -> str:
        return f"SmtpCredentials(username={self.username!r}, password='***')"


def load_smtp_credentials(env_prefix: str = "SMTP_") -> Optional[SmtpCredentials]:
    """
    Loads <prefix>USERNAME and <prefix>PASSWORD from the environment
    (optionally from a .env file in the working directory).

    :param env_prefix: Prefix used for environment variables.
    :return: The credentials, or None when either variable is missing or blank.
    """
    load_dotenv()
    username = (os.getenv(f"{env_prefix}USERNAME") or "").strip()
    password = os.getenv(f"{env_prefix}PASSWORD") or ""
    if not username or not password:
        return None
    return SmtpCredentials(username=username, password=password)
