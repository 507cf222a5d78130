import os
import json
from typing import Any, Dict, Optional
from typing_extensions import Self

from trackium.position import DeviceIdentity

KEY_DEVICE_ID = "device_id"
KEY_NODE_URL = "minima_node_url"

DEFAULT_NODE_URL = "http://127.0.0.1:9003"
DEFAULT_CONFIG_PATH = os.path.join("~", ".config", "trackium", "config.json")


class ConfigError(Exception):
    pass


def default_config_path() -> str:
    return os.path.expanduser(os.getenv("TRACKIUM_CONFIG", DEFAULT_CONFIG_PATH))


class ConfigStore:
    """
    Durable key-value store backed by a single JSON file.

    Holds the device identity (``device_id`` and ``minima_node_url``) plus
    optional runtime keys such as the GPS device and baud rate. A missing
    file reads as an empty store.
    """

    def __init__(self, path: str, values: Optional[Dict[str, Any]] = None):
        self.path = path
        self.values: Dict[str, Any] = dict(values or {})

    @classmethod
    def load(cls, path: Optional[str] = None) -> Self:
        path = path or default_config_path()

        if not os.path.exists(path):
            return cls(path)

        try:
            with open(path, "r", encoding="utf-8") as f:
                values = json.load(f)
        except Exception as e:
            raise ConfigError(f"Failed to read configuration {path}: {e}")

        if not isinstance(values, dict):
            raise ConfigError(f"Configuration {path} must contain a JSON object")

        return cls(path, values)

    def get(self, key: str, default: Any = None) -> Any:
        value = self.values.get(key)
        return default if value is None else value

    def set(self, key: str, value: Any) -> None:
        self.values[key] = value

    def save(self) -> None:
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)

            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(self.values, f, indent=2, sort_keys=True)
        except OSError as e:
            raise ConfigError(f"Failed to write configuration {self.path}: {e}")

    def load_identity(self) -> DeviceIdentity:
        return DeviceIdentity(
            device_id=str(self.get(KEY_DEVICE_ID, "")).strip(),
            endpoint_base_url=str(self.get(KEY_NODE_URL, DEFAULT_NODE_URL)).strip(),
        )
