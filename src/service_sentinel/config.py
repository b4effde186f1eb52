"""Configuration management for the service sentinel."""

import logging
import os

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class ProbeConfig(BaseModel):
    """Timeouts used by the status probe."""

    http_timeout_seconds: float = Field(default=5.0, description="Abort HTTP probes after this many seconds")
    tcp_timeout_seconds: float = Field(default=3.0, description="Abort TCP connects after this many seconds")


class ControlConfig(BaseModel):
    """Restart controller behaviour."""

    restart_delay_seconds: float = Field(default=2.0, description="Pause between stop and start during restart")
    stop_delay_seconds: float = Field(default=0.5, description="Simulated time taken to stop a service")
    kill_ghost_processes: bool = Field(
        default=False, description="Kill ghost PIDs through the process inspector instead of only flagging them"
    )


class SentinelConfig(BaseModel):
    """Main configuration for the service sentinel."""

    probe: ProbeConfig = Field(default_factory=ProbeConfig, description="Status probe configuration")
    control: ControlConfig = Field(default_factory=ControlConfig, description="Restart controller configuration")
    history_days: int = Field(default=7, description="Days of event log used for health analysis")
    inspector_timeout_seconds: float = Field(default=10.0, description="Upper bound for OS process inspection")
    log_level: str = Field(default="INFO", description="Logging level")

    @classmethod
    def from_env(cls) -> "SentinelConfig":
        """Create configuration from environment variables."""
        probe = ProbeConfig(
            http_timeout_seconds=float(os.getenv("SENTINEL_HTTP_PROBE_TIMEOUT", "5")),
            tcp_timeout_seconds=float(os.getenv("SENTINEL_TCP_PROBE_TIMEOUT", "3")),
        )
        control = ControlConfig(
            restart_delay_seconds=float(os.getenv("SENTINEL_RESTART_DELAY", "2.0")),
            stop_delay_seconds=float(os.getenv("SENTINEL_STOP_DELAY", "0.5")),
            kill_ghost_processes=os.getenv("SENTINEL_KILL_GHOST_PROCESSES", "false").lower() == "true",
        )

        config = cls(
            probe=probe,
            control=control,
            history_days=int(os.getenv("SENTINEL_HISTORY_DAYS", "7")),
            inspector_timeout_seconds=float(os.getenv("SENTINEL_INSPECTOR_TIMEOUT", "10")),
            log_level=os.getenv("SENTINEL_LOG_LEVEL", "INFO"),
        )

        logger.info(
            f"Configuration loaded - history_days: {config.history_days}, "
            f"kill_ghost_processes: {config.control.kill_ghost_processes}"
        )

        return config


# Global configuration instance
config = SentinelConfig.from_env()
