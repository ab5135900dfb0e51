"""Configuration file schemas for MRBM."""

SERVER_NAME_PATTERN = r"^(?!\.{1,2}$)[^/\\\s]+$"

SERVER_SCHEMA = {
    "type": "object",
    "properties": {
        "host": {
            "type": "string",
            "description": "IP address or domain of the remote server"
        },
        "port": {
            "type": "integer",
            "minimum": 1,
            "maximum": 65535,
            "default": 22
        },
        "user": {
            "type": "string",
            "minLength": 1,
            "default": "root"
        },
        "auth": {
            "type": "object",
            "description": "Either a password or a private key path, never both",
            "properties": {
                "password": {"type": "string"},
                "key_path": {"type": "string"}
            },
            "maxProperties": 1,
            "additionalProperties": False
        },
        "app_path": {
            "type": "string",
            "description": "Application directory archived on the remote host"
        },
        "db_container": {
            "type": "string",
            "description": "Docker container running MySQL/MariaDB"
        },
        "db_password": {
            "type": "string"
        },
        "telegram": {
            "type": "object",
            "properties": {
                "bot_token": {"type": "string"},
                "chat_id": {"type": ["string", "integer"]}
            },
            "additionalProperties": False
        }
    },
    "required": ["host", "app_path", "db_container"],
    "additionalProperties": False
}

CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "servers": {
            "type": ["object", "null"]
        },
        "last_backup": {
            "type": ["object", "null"],
            "additionalProperties": {
                "type": ["string", "integer"]
            }
        }
    }
}
