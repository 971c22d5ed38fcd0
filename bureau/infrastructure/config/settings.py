"""
Configuration models and the YAML loader.

The organization is built once from a ``BureauConfig``; nothing here is
re-read at runtime.
"""

from typing import Dict, List, Optional
from pathlib import Path
import os

import yaml
from pydantic import BaseModel, Field, ValidationError

from bureau.domain.errors import ConfigurationError


class LayerConfig(BaseModel):
    """One layer of the hierarchy"""
    name: str = Field(description="Role name of every agent in the layer")
    count: Optional[int] = Field(None, ge=0, description="Number of agents, defaults to 1")
    attach_to: List[str] = Field(default_factory=list, description="Layers this one serves as a side layer")
    delegation: Optional[str] = Field(None, description="Delegation policy override")

    @property
    def agent_count(self) -> int:
        return 1 if self.count is None else self.count


class OrganizationConfig(BaseModel):
    layers: List[LayerConfig] = Field(default_factory=list)


class SQLiteConfig(BaseModel):
    enabled: bool = True
    path: str = "bureau_memory.db"
    in_memory: bool = False

    @property
    def dsn(self) -> str:
        return ":memory:" if self.in_memory else self.path


class VectorConfig(BaseModel):
    enabled: bool = False
    dimension: int = Field(128, gt=0)


class RetentionConfig(BaseModel):
    """Retention in days per memory type; 0 keeps entries forever"""
    conversation_days: int = Field(30, ge=0)
    task_days: int = Field(90, ge=0)
    knowledge_days: int = Field(0, ge=0)


class MemoryConfig(BaseModel):
    enabled: bool = False
    sqlite: SQLiteConfig = Field(default_factory=SQLiteConfig)
    vector: VectorConfig = Field(default_factory=VectorConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)


class AgentSettings(BaseModel):
    """Per-role generation settings"""
    system_prompt: str = ""
    model: Optional[str] = None
    temperature: float = 0.7
    max_tokens: int = 2000
    capabilities: List[str] = Field(default_factory=list)


class NotifierConfig(BaseModel):
    webhook_url: Optional[str] = None
    notify_on: List[str] = Field(default_factory=lambda: ["task_assigned", "task_completed", "error"])
    timeout: float = 5.0
    retry_count: int = Field(3, ge=1)


class BureauConfig(BaseModel):
    organization: OrganizationConfig = Field(default_factory=OrganizationConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    agents: Dict[str, AgentSettings] = Field(default_factory=dict, description="Settings keyed by role name")
    notifier: NotifierConfig = Field(default_factory=NotifierConfig)
    log_level: str = "INFO"
    log_format: str = "json"

    def settings_for(self, role: str) -> AgentSettings:
        """Settings for a role, falling back to defaults"""
        return self.agents.get(role) or AgentSettings()


def load_config(path: str) -> BureauConfig:
    """Load and validate a YAML configuration file"""

    config_path = Path(path)
    if not config_path.exists():
        raise ConfigurationError(f"config file not found: {path}")

    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"invalid YAML in {path}: {e}") from e

    try:
        config = BureauConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"invalid configuration in {path}: {e}") from e

    log_level = os.getenv("BUREAU_LOG_LEVEL")
    if log_level:
        config.log_level = log_level

    return config
