"""AI Engine package: retrieval and agent orchestration."""

from .config import AgentConfig, ChunkingConfig, RetrievalConfig, Settings, get_settings

__all__ = ["AgentConfig", "ChunkingConfig", "RetrievalConfig", "Settings", "get_settings"]
