from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

import yaml
from croniter import croniter


@dataclass
class LogRotationSettings:
    max_bytes: int = 10 * 1024 * 1024
    backup_count: int = 5


@dataclass
class GeneralSettings:
    cron: str = "*/5 * * * *"
    log_file: str = "logs/blogstate.log"
    log_level: str = "INFO"
    log_rotation: LogRotationSettings = field(default_factory=LogRotationSettings)


@dataclass
class StorageSettings:
    path: str = "data/local_storage.json"
    max_bytes: Optional[int] = 5 * 1024 * 1024


@dataclass
class CacheSettings:
    posts_ttl: float = 5 * 60
    comments_ttl: float = 5 * 60
    media_files_ttl: float = 10 * 60
    media_categories_ttl: float = 10 * 60


@dataclass
class BackendSettings:
    url: str = ""
    anon_key: str = ""
    bucket: str = "media"
    author_profile_id: int = 1
    timeout: float = 15


@dataclass
class LikeSettings:
    timeout: Optional[float] = 10


@dataclass
class Config:
    general: GeneralSettings
    storage: StorageSettings
    cache: CacheSettings
    backend: BackendSettings
    likes: LikeSettings


class ConfigError(Exception):
    pass


def _load_yaml(path: Path, allow_missing: bool = False) -> Dict:
    if not path.exists():
        if allow_missing:
            return {}
        raise ConfigError(f"Config file not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _optional_number(value, cast):
    if value is None or value == "":
        return None
    return cast(value)


def _parse_log_rotation(raw: Dict) -> LogRotationSettings:
    return LogRotationSettings(
        max_bytes=int(raw.get("max_bytes", LogRotationSettings.max_bytes)),
        backup_count=int(raw.get("backup_count", LogRotationSettings.backup_count)),
    )


def _parse_general(raw: Dict) -> GeneralSettings:
    cron = str(raw.get("cron", GeneralSettings.cron))
    if not croniter.is_valid(cron):
        raise ConfigError(f"Invalid cron expression in general.cron: {cron!r}")
    return GeneralSettings(
        cron=cron,
        log_file=raw.get("log_file", GeneralSettings.log_file),
        log_level=raw.get("log_level", GeneralSettings.log_level),
        log_rotation=_parse_log_rotation(raw.get("log_rotation", {})),
    )


def _parse_storage(raw: Dict) -> StorageSettings:
    max_bytes = raw.get("max_bytes", StorageSettings.max_bytes)
    return StorageSettings(
        path=raw.get("path", StorageSettings.path),
        max_bytes=_optional_number(max_bytes, int),
    )


def _parse_cache(raw: Dict) -> CacheSettings:
    settings = CacheSettings(
        posts_ttl=float(raw.get("posts_ttl", CacheSettings.posts_ttl)),
        comments_ttl=float(raw.get("comments_ttl", CacheSettings.comments_ttl)),
        media_files_ttl=float(raw.get("media_files_ttl", CacheSettings.media_files_ttl)),
        media_categories_ttl=float(raw.get("media_categories_ttl", CacheSettings.media_categories_ttl)),
    )
    for name, value in vars(settings).items():
        if value <= 0:
            raise ConfigError(f"cache.{name} must be positive, got {value}")
    return settings


def _parse_backend(raw: Dict, require_backend: bool = True) -> BackendSettings:
    url = os.getenv("SUPABASE_URL", raw.get("url", ""))
    anon_key = os.getenv("SUPABASE_ANON_KEY", raw.get("anon_key", ""))
    if require_backend and not url:
        raise ConfigError("Backend URL is required. Set SUPABASE_URL or provide backend.url in config.")
    if require_backend and not anon_key:
        raise ConfigError("Backend anon key is required. Set SUPABASE_ANON_KEY or provide backend.anon_key in config.")
    return BackendSettings(
        url=url.rstrip("/"),
        anon_key=anon_key,
        bucket=raw.get("bucket", BackendSettings.bucket),
        author_profile_id=int(raw.get("author_profile_id", BackendSettings.author_profile_id)),
        timeout=float(raw.get("timeout", BackendSettings.timeout)),
    )


def _parse_likes(raw: Dict) -> LikeSettings:
    timeout = _optional_number(raw.get("timeout", LikeSettings.timeout), float)
    if timeout is not None and timeout <= 0:
        raise ConfigError("likes.timeout must be positive or empty")
    return LikeSettings(timeout=timeout)


def parse_config_dict(raw: Dict, require_backend: bool = True) -> Config:
    return Config(
        general=_parse_general(raw.get("general", {})),
        storage=_parse_storage(raw.get("storage", {})),
        cache=_parse_cache(raw.get("cache", {})),
        backend=_parse_backend(raw.get("backend", {}), require_backend=require_backend),
        likes=_parse_likes(raw.get("likes", {})),
    )


def load_config(
    path: str | Path,
    require_backend: bool = True,
    allow_missing: bool = False,
) -> Config:
    raw = _load_yaml(Path(path), allow_missing=allow_missing)
    return parse_config_dict(raw, require_backend=require_backend)


def config_to_dict(config: Config) -> Dict:
    return {
        "general": {
            "cron": config.general.cron,
            "log_file": config.general.log_file,
            "log_level": config.general.log_level,
            "log_rotation": {
                "max_bytes": config.general.log_rotation.max_bytes,
                "backup_count": config.general.log_rotation.backup_count,
            },
        },
        "storage": {"path": config.storage.path, "max_bytes": config.storage.max_bytes},
        "cache": {
            "posts_ttl": config.cache.posts_ttl,
            "comments_ttl": config.cache.comments_ttl,
            "media_files_ttl": config.cache.media_files_ttl,
            "media_categories_ttl": config.cache.media_categories_ttl,
        },
        "backend": {
            "url": config.backend.url,
            "anon_key": config.backend.anon_key,
            "bucket": config.backend.bucket,
            "author_profile_id": config.backend.author_profile_id,
            "timeout": config.backend.timeout,
        },
        "likes": {"timeout": config.likes.timeout},
    }


def save_config_dict(data: Dict, path: str | Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, allow_unicode=True, sort_keys=False)
