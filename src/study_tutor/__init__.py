"""Study tutor package."""

from .config import AgentConfig, ModelConfig, RetrievalConfig

__all__ = ["AgentConfig", "ModelConfig", "RetrievalConfig"]
