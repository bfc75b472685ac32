"""Configuration loading for the news aggregator."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol
from xml.etree import ElementTree as ET

import boto3

from .models import FeedDescriptor
from .registry import DEFAULT_FEEDS

logger = logging.getLogger(__name__)

CREDENTIAL_ENV_VARS = ("NEWS_BLOCK_OPENAI_KEY", "OPENAI_API_KEY")


@dataclass
class CacheConfig:
    ttl_seconds: int = 900
    redis_url: Optional[str] = None
    database: str = "sqlite:///news_block_cache.db"


@dataclass
class RankingConfig:
    model: str = "gpt-3.5-turbo"
    timeout: float = 30.0
    temperature: float = 0.3
    hourly_limit: int = 100
    api_key: Optional[str] = None
    api_key_file: Optional[str] = None
    ssm_parameter: Optional[str] = None
    identity_salt: str = ""


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: Optional[str] = None


@dataclass
class AppConfig:
    feeds: List[FeedDescriptor] = field(default_factory=list)
    feeds_file: Optional[str] = None
    env_file: Optional[str] = None
    fetch_timeout: float = 10.0
    cache: CacheConfig = field(default_factory=CacheConfig)
    ranking: RankingConfig = field(default_factory=RankingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


class ConfigProvider(Protocol):
    """Read-only view of the configuration store used per request."""

    def get_feed_descriptors(self) -> List[FeedDescriptor]:
        """Return the configured feed descriptors in order."""

    def get_ranking_credential(self) -> Optional[str]:
        """Return the ranking service API key, if any."""


def _slug(value: str) -> str:
    return re.sub(r"[^a-z0-9_\-]", "", value.strip().lower())


def _parse_bool(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def sanitize_feeds(feeds: Iterable[FeedDescriptor]) -> List[FeedDescriptor]:
    """Drop unusable descriptors and normalise ids; fall back to defaults when empty."""
    sanitized: List[FeedDescriptor] = []
    for feed in feeds:
        url = (feed.url or "").strip()
        if not url:
            logger.debug("Dropping feed descriptor without URL: %r", feed.id)
            continue
        feed_id = _slug(feed.id or "")
        sanitized.append(
            FeedDescriptor(
                id=feed_id,
                label=(feed.label or "").strip() or feed_id,
                url=url,
                enabled=bool(feed.enabled),
            )
        )

    if not sanitized:
        logger.info("No usable feed descriptors configured; using built-in defaults")
        return list(DEFAULT_FEEDS)
    return sanitized


def _parse_feed_elements(parent: ET.Element) -> List[FeedDescriptor]:
    feeds: List[FeedDescriptor] = []
    for node in parent.findall("feed"):
        url = node.attrib.get("url") or (node.text or "")
        feeds.append(
            FeedDescriptor(
                id=node.attrib.get("id", ""),
                label=node.attrib.get("label", ""),
                url=url.strip(),
                enabled=_parse_bool(node.attrib.get("enabled"), True),
            )
        )
    return feeds


def parse_feeds_config(path: str) -> List[FeedDescriptor]:
    """Parse a feeds XML file and return sanitized descriptors."""
    logger.info("Loading feed configuration from %s", path)
    root = ET.parse(path).getroot()
    if root.tag != "feeds":
        raise ValueError(f"Feeds file {path} must have a <feeds> root element.")

    feeds = sanitize_feeds(_parse_feed_elements(root))
    logger.info("Loaded %d feed descriptors from configuration", len(feeds))
    return feeds


def _resolve_path(base_path: Path, target_path: str) -> str:
    """Resolve a path relative to the base config file if it's not absolute."""
    target = Path(target_path)
    if target.is_absolute():
        return str(target)
    return str((base_path.parent / target).resolve())


def parse_env_config(path: str) -> Dict[str, str]:
    """Parse environment variables from XML."""
    env_vars: Dict[str, str] = {}
    if not path:
        return env_vars

    logger.info("Loading environment configuration from %s", path)
    root = ET.parse(path).getroot()
    for var in root.findall("variable"):
        name = var.attrib.get("name")
        value = var.text
        if name and value:
            env_vars[name] = value.strip()
    return env_vars


def parse_app_config(path: str) -> AppConfig:
    """Parse the main application configuration XML."""
    config_path = Path(path).resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    logger.info("Loading application configuration from %s", config_path)
    root = ET.parse(config_path).getroot()

    # Feeds
    feeds: List[FeedDescriptor] = []
    feeds_file = None
    feeds_node = root.find("feeds")
    if feeds_node is not None:
        if feeds_node.attrib.get("file"):
            feeds_file = _resolve_path(config_path, feeds_node.attrib["file"])
        else:
            feeds = sanitize_feeds(_parse_feed_elements(feeds_node))
    else:
        logger.info("Config has no <feeds> section; using built-in defaults")
        feeds = list(DEFAULT_FEEDS)

    # Env
    env_node = root.find("env")
    env_file = (
        _resolve_path(config_path, env_node.text.strip())
        if env_node is not None and env_node.text
        else None
    )

    fetch_timeout = float(root.findtext("fetch-timeout", "10"))

    # Cache
    cache = CacheConfig()
    cache_node = root.find("cache")
    if cache_node is not None:
        cache.ttl_seconds = int(cache_node.findtext("ttl-seconds", "900"))
        cache.redis_url = cache_node.findtext("redis-url") or None
        cache.database = cache_node.findtext("database") or cache.database

    # Ranking
    ranking = RankingConfig()
    ranking_node = root.find("ranking")
    if ranking_node is not None:
        ranking.model = ranking_node.findtext("model", ranking.model)
        ranking.timeout = float(ranking_node.findtext("timeout", "30"))
        ranking.temperature = float(ranking_node.findtext("temperature", "0.3"))
        ranking.hourly_limit = int(ranking_node.findtext("hourly-limit", "100"))
        ranking.api_key = ranking_node.findtext("api-key") or None
        key_file = ranking_node.findtext("api-key-file")
        if key_file:
            ranking.api_key_file = _resolve_path(config_path, key_file)
        ranking.ssm_parameter = ranking_node.findtext("ssm-parameter") or None
        ranking.identity_salt = ranking_node.findtext("identity-salt", "")

    if ranking.hourly_limit < 1:
        raise ValueError("<hourly-limit> must be positive.")

    # Logging
    logging_config = LoggingConfig()
    log_node = root.find("logging")
    if log_node is not None:
        logging_config.level = log_node.findtext("level", "INFO")
        log_file = log_node.findtext("file")
        if log_file:
            logging_config.file = _resolve_path(config_path, log_file)

    return AppConfig(
        feeds=feeds,
        feeds_file=feeds_file,
        env_file=env_file,
        fetch_timeout=fetch_timeout,
        cache=cache,
        ranking=ranking,
        logging=logging_config,
    )


def _read_ssm_parameter(name: str) -> Optional[str]:
    try:
        ssm = boto3.client("ssm")
        response = ssm.get_parameter(Name=name, WithDecryption=True)
        return response["Parameter"]["Value"]
    except Exception as exc:  # noqa: BLE001 - botocore raises many unrelated types
        logger.warning("Could not read SSM parameter %s: %s", name, exc)
        return None


def load_ranking_credential(config: RankingConfig) -> Optional[str]:
    """Resolve the ranking service API key from env, key file, SSM, then config."""
    for name in CREDENTIAL_ENV_VARS:
        value = os.environ.get(name, "").strip()
        if value:
            logger.debug("Using ranking credential from environment variable %s", name)
            return value

    if config.api_key_file:
        key_path = Path(config.api_key_file)
        if key_path.exists():
            value = key_path.read_text(encoding="utf-8").strip()
            if value:
                logger.debug("Using ranking credential from %s", key_path)
                return value

    if config.ssm_parameter:
        value = (_read_ssm_parameter(config.ssm_parameter) or "").strip()
        if value:
            logger.debug("Using ranking credential from SSM %s", config.ssm_parameter)
            return value

    return (config.api_key or "").strip() or None


class AppConfigProvider:
    """Configuration store backed by a parsed AppConfig."""

    def __init__(self, config: AppConfig) -> None:
        self._config = config
        self._credential: Optional[str] = None
        self._credential_loaded = False

    def get_feed_descriptors(self) -> List[FeedDescriptor]:
        if self._config.feeds_file:
            return parse_feeds_config(self._config.feeds_file)
        return list(self._config.feeds)

    def get_ranking_credential(self) -> Optional[str]:
        if not self._credential_loaded:
            self._credential = load_ranking_credential(self._config.ranking)
            self._credential_loaded = True
        return self._credential
