"""
Configuration Management for Groundwork

Loads configuration from ~/.groundwork/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict

logger = logging.getLogger("groundwork.common.config")


# Default config paths
CONFIG_DIR = Path.home() / ".groundwork"
CONFIG_PATH = CONFIG_DIR / "config.json"

DEFAULT_EMBEDDING_MODEL = "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2"


@dataclass
class EmbeddingConfig:
    """Embedding model configuration"""
    mode: str = "femb"  # fastembed (on-device)
    model: str = DEFAULT_EMBEDDING_MODEL


@dataclass
class LLMConfig:
    """LLM provider configuration shared by every pipeline phase"""
    provider: str = "anthropic"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    google_api_key: str = ""
    google_model: str = "gemini-2.0-flash"
    relevance_model: str = ""  # cheaper model for the relevance filter; "" = main model
    timeout: float = 30.0


@dataclass
class SearchConfig:
    """Retrieval thresholds"""
    db_threshold: float = 0.0  # applied by the index; 0 = no filtering
    logic_threshold: float = 0.35  # post-retrieval relevance cutoff
    topk: int = 10


@dataclass
class SessionConfig:
    """Session cache configuration"""
    ttl_seconds: int = 3600
    purge_interval_seconds: int = 600


@dataclass
class HistoryConfig:
    """Conversation history window"""
    limit: int = 10


@dataclass
class NuanceConfig:
    """A named system prompt selectable with /nuance:<key> or /bypass/nuance:<key>"""
    key: str
    name: str = ""
    system_prompt: str = ""
    model: str = ""  # "" = provider default


@dataclass
class GroundworkConfig:
    """Main Groundwork configuration"""
    llm: LLMConfig = field(default_factory=LLMConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    nuances: Dict[str, NuanceConfig] = field(default_factory=dict)  # key -> nuance
    log_level: str = "WARNING"
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def _parse_llm_config(data: dict) -> LLMConfig:
    """Parse llm section from config dict"""
    llm_data = data.get("llm", {})
    return LLMConfig(
        provider=llm_data.get("provider", "anthropic"),
        anthropic_api_key=llm_data.get("anthropic_api_key", ""),
        anthropic_model=llm_data.get("anthropic_model", "claude-sonnet-4-20250514"),
        openai_api_key=llm_data.get("openai_api_key", ""),
        openai_model=llm_data.get("openai_model", "gpt-4o-mini"),
        google_api_key=llm_data.get("google_api_key", ""),
        google_model=llm_data.get("google_model", "gemini-2.0-flash"),
        relevance_model=llm_data.get("relevance_model", ""),
        timeout=float(llm_data.get("timeout", 30.0)),
    )


def _parse_embedding_config(data: dict) -> EmbeddingConfig:
    """Parse embedding section from config dict"""
    embedding_data = data.get("embedding", {})
    return EmbeddingConfig(
        mode=embedding_data.get("mode", "femb"),
        model=embedding_data.get("model", DEFAULT_EMBEDDING_MODEL),
    )


def _parse_search_config(data: dict) -> SearchConfig:
    """Parse search section from config dict"""
    search_data = data.get("search", {})
    return SearchConfig(
        db_threshold=float(search_data.get("db_threshold", 0.0)),
        logic_threshold=float(search_data.get("logic_threshold", 0.35)),
        topk=int(search_data.get("topk", 10)),
    )


def _parse_session_config(data: dict) -> SessionConfig:
    session_data = data.get("session", {})
    return SessionConfig(
        ttl_seconds=int(session_data.get("ttl_seconds", 3600)),
        purge_interval_seconds=int(session_data.get("purge_interval_seconds", 600)),
    )


def _parse_history_config(data: dict) -> HistoryConfig:
    history_data = data.get("history", {})
    return HistoryConfig(limit=int(history_data.get("limit", 10)))


def _parse_nuances(data: dict) -> Dict[str, NuanceConfig]:
    """Parse nuances section; keys are matched case-insensitively"""
    nuances = {}
    for key, entry in data.get("nuances", {}).items():
        if not isinstance(entry, dict) or not entry.get("system_prompt"):
            logger.warning("Skipping nuance %r without a system_prompt", key)
            continue
        key = key.strip().lower()
        nuances[key] = NuanceConfig(
            key=key,
            name=entry.get("name", key),
            system_prompt=entry["system_prompt"],
            model=entry.get("model", ""),
        )
    return nuances


def load_config() -> GroundworkConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.groundwork/config.json)
    3. Default values
    """
    config = GroundworkConfig()

    # Load from config file if exists
    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.llm = _parse_llm_config(data)
            config.embedding = _parse_embedding_config(data)
            config.search = _parse_search_config(data)
            config.session = _parse_session_config(data)
            config.history = _parse_history_config(data)
            config.nuances = _parse_nuances(data)
            config.log_level = data.get("log_level", "WARNING")
        except (json.JSONDecodeError, IOError, ValueError) as e:
            logger.warning("Failed to load config file: %s", e)

    if os.getenv("EMBEDDING_MODE"):
        config.embedding.mode = os.getenv("EMBEDDING_MODE")
    if os.getenv("EMBEDDING_MODEL"):
        config.embedding.model = os.getenv("EMBEDDING_MODEL")

    if os.getenv("GROUNDWORK_LOGIC_THRESHOLD"):
        config.search.logic_threshold = float(os.getenv("GROUNDWORK_LOGIC_THRESHOLD"))
    if os.getenv("GROUNDWORK_TOPK"):
        config.search.topk = int(os.getenv("GROUNDWORK_TOPK"))
    if os.getenv("GROUNDWORK_SESSION_TTL"):
        config.session.ttl_seconds = int(os.getenv("GROUNDWORK_SESSION_TTL"))
    if os.getenv("GROUNDWORK_LOG_LEVEL"):
        config.log_level = os.getenv("GROUNDWORK_LOG_LEVEL")

    # LLM env var overrides (target config.llm, track env-sourced keys)
    _env_llm_map = {
        "ANTHROPIC_API_KEY": "anthropic_api_key",
        "ANTHROPIC_MODEL": "anthropic_model",
        "OPENAI_API_KEY": "openai_api_key",
        "OPENAI_MODEL": "openai_model",
        "GOOGLE_API_KEY": "google_api_key",
        "GEMINI_API_KEY": "google_api_key",
        "GOOGLE_MODEL": "google_model",
        "GROUNDWORK_LLM_PROVIDER": "provider",
    }
    for env_var, attr in _env_llm_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(config.llm, attr, val)
            config._env_sourced_keys.add(attr)

    return config


def save_config(config: GroundworkConfig) -> None:
    """Save configuration to file.

    API key fields that were sourced from environment variables are written
    as empty strings so that secrets are not persisted to disk.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    _llm_api_key_fields = {
        "anthropic_api_key", "openai_api_key", "google_api_key",
    }
    llm_section = {
        "provider": config.llm.provider,
        "anthropic_api_key": config.llm.anthropic_api_key,
        "anthropic_model": config.llm.anthropic_model,
        "openai_api_key": config.llm.openai_api_key,
        "openai_model": config.llm.openai_model,
        "google_api_key": config.llm.google_api_key,
        "google_model": config.llm.google_model,
        "relevance_model": config.llm.relevance_model,
        "timeout": config.llm.timeout,
    }
    for key in _llm_api_key_fields:
        if key in env_sourced:
            llm_section[key] = ""

    data = {
        "llm": llm_section,
        "embedding": {
            "mode": config.embedding.mode,
            "model": config.embedding.model,
        },
        "search": {
            "db_threshold": config.search.db_threshold,
            "logic_threshold": config.search.logic_threshold,
            "topk": config.search.topk,
        },
        "session": {
            "ttl_seconds": config.session.ttl_seconds,
            "purge_interval_seconds": config.session.purge_interval_seconds,
        },
        "history": {
            "limit": config.history.limit,
        },
        "nuances": {
            key: {"name": n.name, "system_prompt": n.system_prompt, "model": n.model}
            for key, n in config.nuances.items()
        },
        "log_level": config.log_level,
    }

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)
