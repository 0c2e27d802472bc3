"""
Configuration Loader
====================

Loads configuration for the setup flow.

    store:
      document_path: "pairSpaces/{pairing_id}/setup/current"
    flow:
      steps: [blockSchedule, appSelection]
      auto_advance: true
      default_schedule: {start_minutes: 1260, end_minutes: 420}
    logging:
      level: WARNING
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import yaml

from ..orchestration import DEFAULT_DOCUMENT_PATH
from ..protocol.steps import DEFAULT_STEP_SEQUENCE, BlockSchedule, StepCatalog


logger = logging.getLogger(__name__)


@dataclass
class StoreConfig:
    """Where the setup document lives."""
    document_path: str = DEFAULT_DOCUMENT_PATH


@dataclass
class ScheduleConfig:
    """Draft schedule offered before anything is submitted."""
    start_minutes: int = 21 * 60
    end_minutes: int = 7 * 60


@dataclass
class FlowConfig:
    """Negotiation steps and their order."""
    steps: List[str] = field(default_factory=lambda: list(DEFAULT_STEP_SEQUENCE))
    auto_advance: bool = True
    default_schedule: ScheduleConfig = field(default_factory=ScheduleConfig)


@dataclass
class LoggingConfig:
    level: str = "WARNING"


@dataclass
class Config:
    """Complete system configuration."""
    store: StoreConfig
    flow: FlowConfig
    logging: LoggingConfig

    @classmethod
    def default(cls) -> "Config":
        return cls(
            store=StoreConfig(),
            flow=FlowConfig(),
            logging=LoggingConfig(),
        )

    def catalog(self) -> StepCatalog:
        """Step catalog for the configured flow."""
        schedule = self.flow.default_schedule
        try:
            draft = BlockSchedule(start_minutes=schedule.start_minutes, end_minutes=schedule.end_minutes)
        except ValueError as exc:
            raise ValueError(f"Invalid flow.default_schedule: {exc}") from exc
        return StepCatalog(tuple(self.flow.steps), default_schedule=draft)


def load_config(config_path: Optional[str] = None) -> Config:
    """
    Load configuration from YAML file or return defaults.

    Args:
        config_path: Path to YAML config file (optional)

    Returns:
        Config object with all settings

    Raises:
        UnknownStep: flow.steps names a step with no definition
    """
    if config_path is None:
        return Config.default()

    path = Path(config_path)
    if not path.exists():
        logger.warning("%s not found, using defaults", config_path)
        return Config.default()

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    store_data = data.get("store") or {}
    flow_data = data.get("flow") or {}
    schedule_data = flow_data.get("default_schedule") or {}
    logging_data = data.get("logging") or {}

    config = Config(
        store=StoreConfig(
            document_path=store_data.get("document_path", DEFAULT_DOCUMENT_PATH),
        ),
        flow=FlowConfig(
            steps=list(flow_data.get("steps", DEFAULT_STEP_SEQUENCE)),
            auto_advance=bool(flow_data.get("auto_advance", True)),
            default_schedule=ScheduleConfig(
                start_minutes=schedule_data.get("start_minutes", 21 * 60),
                end_minutes=schedule_data.get("end_minutes", 7 * 60),
            ),
        ),
        logging=LoggingConfig(
            level=str(logging_data.get("level", "WARNING")).upper(),
        ),
    )

    # fail fast on unknown steps
    config.catalog()
    if "{pairing_id}" not in config.store.document_path:
        raise ValueError("store.document_path must contain {pairing_id}")
    return config

