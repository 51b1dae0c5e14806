from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict

import yaml

_CONFIG_PATH = Path(__file__).resolve().parent / "config.yaml"

_DEFAULT_DATABASE_URL = "sqlite:///./huddle.db"
_DEFAULT_ROOMS = {
    "default_max_participants": 10,
    "early_join_minutes": 15,
    "waiting_room_default": True,
    "empty_timeout_seconds": 300,
    "departure_timeout_seconds": 30,
    "token_ttl_hours": 24,
}
_DEFAULT_MEDIA = {
    "url": "ws://localhost:7880",
    "api_key": "devkey",
    "api_secret": "secret",
    "use_mock": True,
    "request_timeout_seconds": 10,
    "egress_identity_prefix": "EG_",
}
_DEFAULT_AUTO_RECORDING = {
    "enabled": False,
    "audio_only": True,
    "filepath": "recordings/{time}-{room_name}.mp4",
    "s3": {
        "access_key": "",
        "secret": "",
        "region": "us-east-1",
        "endpoint": "",
        "bucket": "",
        "force_path_style": True,
    },
}
_DEFAULT_WEBHOOKS = {
    "allow_unsigned": False,
    "mock_token": "",
}
_DEFAULT_AUTH = {
    "algorithm": "HS256",
    "issuer": "huddle",
    "access_token_expire_minutes": 60,
}


def load_config() -> Dict[str, Any]:
    """Load the application config from YAML, returning an empty mapping on error."""
    try:
        with _CONFIG_PATH.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
            if isinstance(data, dict):
                return data
            logging.warning(
                "Config file %s is not a mapping; using defaults.", _CONFIG_PATH
            )
            return {}
    except FileNotFoundError:
        logging.warning(
            "Configuration file %s not found; using defaults.", _CONFIG_PATH
        )
        return {}
    except Exception as exc:  # noqa: BLE001
        logging.error("Failed to load configuration from %s: %s", _CONFIG_PATH, exc)
        return {}


def _coerce_positive_int(value: Any, fallback: int) -> int:
    try:
        candidate = int(value)
        return candidate if candidate > 0 else fallback
    except Exception:  # noqa: BLE001
        return fallback


def _coerce_non_negative_int(value: Any, fallback: int) -> int:
    try:
        candidate = int(value)
        return candidate if candidate >= 0 else fallback
    except Exception:  # noqa: BLE001
        return fallback


def _coerce_bool(value: Any, fallback: bool) -> bool:
    if value is None:
        return fallback
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _coerce_str(value: Any, fallback: str) -> str:
    if value is None:
        return fallback
    text = str(value).strip()
    return text or fallback


def _env_or(name: str, value: Any) -> Any:
    env_value = os.getenv(name)
    if env_value is None:
        return value
    return env_value


def get_database_url() -> str:
    """
    Return the SQLAlchemy database URL.

    Priority:
    1) HUDDLE_DATABASE_URL env var
    2) config.yaml database_url
    3) local SQLite file
    """
    env_value = os.getenv("HUDDLE_DATABASE_URL")
    if env_value:
        return env_value
    config = load_config()
    url = config.get("database_url")
    return str(url) if url else _DEFAULT_DATABASE_URL


def get_room_settings() -> Dict[str, Any]:
    """Return room lifecycle settings sourced from config with safe defaults."""
    config = load_config()
    section = config.get("rooms") or {}
    defaults = dict(_DEFAULT_ROOMS)

    default_max = _coerce_positive_int(
        section.get("default_max_participants"), defaults["default_max_participants"]
    )
    if default_max < 2 or default_max > 100:
        default_max = defaults["default_max_participants"]

    return {
        "default_max_participants": default_max,
        "early_join_minutes": _coerce_non_negative_int(
            section.get("early_join_minutes"), defaults["early_join_minutes"]
        ),
        "waiting_room_default": _coerce_bool(
            section.get("waiting_room_default"), defaults["waiting_room_default"]
        ),
        "empty_timeout_seconds": _coerce_positive_int(
            section.get("empty_timeout_seconds"), defaults["empty_timeout_seconds"]
        ),
        "departure_timeout_seconds": _coerce_positive_int(
            section.get("departure_timeout_seconds"),
            defaults["departure_timeout_seconds"],
        ),
        "token_ttl_hours": _coerce_positive_int(
            section.get("token_ttl_hours"), defaults["token_ttl_hours"]
        ),
    }


def get_auto_recording_settings(section: Any = None) -> Dict[str, Any]:
    """Return the room-composite egress settings used when creating rooms."""
    if section is None:
        media_section = load_config().get("media") or {}
        section = media_section.get("auto_recording")
    if not isinstance(section, dict):
        section = {}
    defaults = dict(_DEFAULT_AUTO_RECORDING)
    raw_s3 = section.get("s3") if isinstance(section.get("s3"), dict) else {}
    s3_defaults = dict(defaults["s3"])

    return {
        "enabled": _coerce_bool(section.get("enabled"), defaults["enabled"]),
        "audio_only": _coerce_bool(section.get("audio_only"), defaults["audio_only"]),
        "filepath": _coerce_str(section.get("filepath"), defaults["filepath"]),
        "s3": {
            "access_key": _coerce_str(
                _env_or("HUDDLE_S3_ACCESS_KEY", raw_s3.get("access_key")),
                s3_defaults["access_key"],
            ),
            "secret": _coerce_str(
                _env_or("HUDDLE_S3_SECRET", raw_s3.get("secret")),
                s3_defaults["secret"],
            ),
            "region": _coerce_str(raw_s3.get("region"), s3_defaults["region"]),
            "endpoint": _coerce_str(raw_s3.get("endpoint"), s3_defaults["endpoint"]),
            "bucket": _coerce_str(raw_s3.get("bucket"), s3_defaults["bucket"]),
            "force_path_style": _coerce_bool(
                raw_s3.get("force_path_style"), s3_defaults["force_path_style"]
            ),
        },
    }


def get_media_settings() -> Dict[str, Any]:
    """
    Return media infrastructure (LiveKit) settings.

    LIVEKIT_URL / LIVEKIT_API_KEY / LIVEKIT_API_SECRET and HUDDLE_MEDIA_USE_MOCK
    env vars take priority over the config file.
    """
    config = load_config()
    section = config.get("media") or {}
    defaults = dict(_DEFAULT_MEDIA)

    return {
        "url": _coerce_str(_env_or("LIVEKIT_URL", section.get("url")), defaults["url"]),
        "api_key": _coerce_str(
            _env_or("LIVEKIT_API_KEY", section.get("api_key")), defaults["api_key"]
        ),
        "api_secret": _coerce_str(
            _env_or("LIVEKIT_API_SECRET", section.get("api_secret")),
            defaults["api_secret"],
        ),
        "use_mock": _coerce_bool(
            _env_or("HUDDLE_MEDIA_USE_MOCK", section.get("use_mock")),
            defaults["use_mock"],
        ),
        "request_timeout_seconds": _coerce_positive_int(
            section.get("request_timeout_seconds"),
            defaults["request_timeout_seconds"],
        ),
        "egress_identity_prefix": _coerce_str(
            section.get("egress_identity_prefix"), defaults["egress_identity_prefix"]
        ),
        "auto_recording": get_auto_recording_settings(section.get("auto_recording")),
    }


def get_webhook_settings() -> Dict[str, Any]:
    """Return inbound media webhook settings."""
    config = load_config()
    section = config.get("webhooks") or {}
    defaults = dict(_DEFAULT_WEBHOOKS)
    return {
        "allow_unsigned": _coerce_bool(
            _env_or("HUDDLE_WEBHOOKS_ALLOW_UNSIGNED", section.get("allow_unsigned")),
            defaults["allow_unsigned"],
        ),
        "mock_token": _coerce_str(section.get("mock_token"), defaults["mock_token"]),
    }


def get_auth_settings() -> Dict[str, Any]:
    """Return JWT settings; the signing key comes from HUDDLE_SECRET_KEY when set."""
    config = load_config()
    section = config.get("auth") or {}
    defaults = dict(_DEFAULT_AUTH)
    return {
        "secret_key": _coerce_str(
            _env_or("HUDDLE_SECRET_KEY", section.get("secret_key")), ""
        ),
        "algorithm": _coerce_str(section.get("algorithm"), defaults["algorithm"]),
        "issuer": _coerce_str(section.get("issuer"), defaults["issuer"]),
        "access_token_expire_minutes": _coerce_positive_int(
            section.get("access_token_expire_minutes"),
            defaults["access_token_expire_minutes"],
        ),
    }


_DEFAULT_SQLITE = {
    "journal_mode": "WAL",
    "synchronous": "NORMAL",
    "busy_timeout_ms": 30000,
}
_DEFAULT_POOL = {
    "pool_size": 20,
    "max_overflow": 40,
    "pool_timeout": 15,
    "pool_recycle": 1800,
}


def get_sqlite_settings() -> Dict[str, Any]:
    """SQLite pragmas applied to every connection."""
    section = load_config().get("sqlite") or {}
    settings = {
        "journal_mode": _coerce_str(
            section.get("journal_mode"), _DEFAULT_SQLITE["journal_mode"]
        ).upper(),
        "synchronous": _coerce_str(
            section.get("synchronous"), _DEFAULT_SQLITE["synchronous"]
        ).upper(),
    }
    settings["busy_timeout_ms"] = _coerce_positive_int(
        section.get("busy_timeout_ms"), _DEFAULT_SQLITE["busy_timeout_ms"]
    )
    return settings


def get_pool_settings() -> Dict[str, Any]:
    """Connection pool sizing for server databases (PostgreSQL)."""
    section = load_config().get("database_pool") or {}
    return {
        "pool_size": _coerce_positive_int(
            section.get("pool_size"), _DEFAULT_POOL["pool_size"]
        ),
        "max_overflow": _coerce_non_negative_int(
            section.get("max_overflow"), _DEFAULT_POOL["max_overflow"]
        ),
        "pool_timeout": _coerce_positive_int(
            section.get("pool_timeout_seconds"), _DEFAULT_POOL["pool_timeout"]
        ),
        "pool_recycle": _coerce_positive_int(
            section.get("pool_recycle_seconds"), _DEFAULT_POOL["pool_recycle"]
        ),
    }
