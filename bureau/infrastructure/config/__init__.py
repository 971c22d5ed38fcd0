from .settings import (
    AgentSettings,
    BureauConfig,
    LayerConfig,
    MemoryConfig,
    NotifierConfig,
    OrganizationConfig,
    load_config,
)

__all__ = [
    "AgentSettings",
    "BureauConfig",
    "LayerConfig",
    "MemoryConfig",
    "NotifierConfig",
    "OrganizationConfig",
    "load_config",
]
