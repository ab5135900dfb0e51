"""Server record model."""

from dataclasses import dataclass
from typing import Any, Dict, Optional

DEFAULT_SSH_PORT = 22
DEFAULT_SSH_USER = "root"


@dataclass
class ServerRecord:
    """Connection and notification settings for one remote server."""

    name: str
    host: str
    app_path: str
    db_container: str
    db_password: str = ""
    bot_token: str = ""
    chat_id: str = ""
    port: int = DEFAULT_SSH_PORT
    user: str = DEFAULT_SSH_USER
    password: Optional[str] = None
    key_path: Optional[str] = None

    @property
    def auth_method(self) -> Optional[str]:
        """Return ``"key"``, ``"password"`` or None when no credential is stored."""
        if self.key_path:
            return "key"
        if self.password:
            return "password"
        return None

    @property
    def target(self) -> str:
        return f"{self.user}@{self.host}"

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the mapping stored under ``servers.<name>``."""
        auth: Dict[str, str] = {}
        if self.key_path:
            auth["key_path"] = self.key_path
        elif self.password:
            auth["password"] = self.password

        return {
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "auth": auth,
            "app_path": self.app_path,
            "db_container": self.db_container,
            "db_password": self.db_password,
            "telegram": {
                "bot_token": self.bot_token,
                "chat_id": self.chat_id,
            },
        }

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "ServerRecord":
        auth = data.get("auth") or {}
        telegram = data.get("telegram") or {}
        return cls(
            name=name,
            host=str(data["host"]),
            port=int(data.get("port", DEFAULT_SSH_PORT)),
            user=data.get("user") or DEFAULT_SSH_USER,
            password=auth.get("password") or None,
            key_path=auth.get("key_path") or None,
            app_path=data["app_path"],
            db_container=data["db_container"],
            db_password=data.get("db_password") or "",
            bot_token=telegram.get("bot_token") or "",
            chat_id=str(telegram.get("chat_id") or ""),
        )
