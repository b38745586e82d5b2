"""Configuration system for gputop."""

from dataclasses import asdict, dataclass, field
from pathlib import Path

import tomlkit

from gputop.device import ConfigError

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass
class SamplingConfig:
    """Device sampling configuration."""

    interval: float = 0.1  # Seconds between samples
    device_index: int = 0  # NVML device index


@dataclass
class HistoryConfig:
    """Chart history configuration."""

    capacity: int = 5000  # Samples retained per metric


@dataclass
class UIConfig:
    """Dashboard configuration."""

    refresh_rate: float = 0.05  # Seconds between frame polls


@dataclass
class ChartConfig:
    """Chart interaction configuration.

    ctrl_to_zoom and shift_to_horizontal pick the gesture mapping:
    - ctrl_to_zoom=true: ctrl+scroll zooms, plain scroll pans
    - shift_to_horizontal=false: plain scroll pans horizontally, shift+scroll vertically
    """

    zoom_speed: float = 1.0
    scroll_speed: float = 1.0
    ctrl_to_zoom: bool = True
    shift_to_horizontal: bool = False
    lock_x: bool = False
    lock_y: bool = False


@dataclass
class LoggingConfig:
    """Log file configuration."""

    level: str = "INFO"
    max_bytes: int = 5 * 1024 * 1024  # Max log file size (5MB)
    backup_count: int = 3  # Number of backup log files to keep


_SECTIONS = ("sampling", "history", "ui", "chart", "logging")


@dataclass
class Config:
    """Complete gputop configuration."""

    sampling: SamplingConfig = field(default_factory=SamplingConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    ui: UIConfig = field(default_factory=UIConfig)
    chart: ChartConfig = field(default_factory=ChartConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def config_dir(self) -> Path:
        """Configuration directory."""
        return Path.home() / ".config" / "gputop"

    @property
    def config_path(self) -> Path:
        """Path to config file."""
        return self.config_dir / "config.toml"

    @property
    def state_dir(self) -> Path:
        """State directory for logs."""
        return Path.home() / ".local" / "state" / "gputop"

    @property
    def log_path(self) -> Path:
        return self.state_dir / "gputop.log"

    def validate(self) -> None:
        """Raise ConfigError if any value is out of range."""
        if self.sampling.interval <= 0:
            raise ConfigError(f"sampling.interval must be > 0, got {self.sampling.interval}")
        if self.sampling.device_index < 0:
            raise ConfigError(
                f"sampling.device_index must be >= 0, got {self.sampling.device_index}"
            )
        if self.history.capacity < 1:
            raise ConfigError(f"history.capacity must be >= 1, got {self.history.capacity}")
        if self.ui.refresh_rate <= 0:
            raise ConfigError(f"ui.refresh_rate must be > 0, got {self.ui.refresh_rate}")
        if self.chart.zoom_speed <= 0:
            raise ConfigError(f"chart.zoom_speed must be > 0, got {self.chart.zoom_speed}")
        if self.logging.level.upper() not in LOG_LEVELS:
            raise ConfigError(
                f"Invalid logging.level: {self.logging.level!r}. Must be one of {LOG_LEVELS}"
            )

    def to_document(self) -> tomlkit.TOMLDocument:
        doc = tomlkit.document()
        for name in _SECTIONS:
            table = tomlkit.table()
            for key, value in asdict(getattr(self, name)).items():
                table.add(key, value)
            doc.add(name, table)
            doc.add(tomlkit.nl())
        return doc

    def save(self, path: Path | None = None) -> None:
        """Save config to TOML file."""
        path = path or self.config_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(tomlkit.dumps(self.to_document()))

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Load config from TOML file, returning defaults for missing values."""
        defaults = cls()
        path = path or defaults.config_path
        if not path.exists():
            return defaults

        try:
            with open(path) as f:
                data = tomlkit.load(f)
        except tomlkit.exceptions.TOMLKitError as e:
            raise ConfigError(f"Failed to parse config file {path}: {e}") from e

        try:
            sampling_data = data.get("sampling", {})
            history_data = data.get("history", {})
            ui_data = data.get("ui", {})
            chart_data = data.get("chart", {})
            logging_data = data.get("logging", {})

            s = defaults.sampling
            h = defaults.history
            u = defaults.ui
            c = defaults.chart
            lg = defaults.logging

            config = cls(
                sampling=SamplingConfig(
                    interval=float(sampling_data.get("interval", s.interval)),
                    device_index=int(sampling_data.get("device_index", s.device_index)),
                ),
                history=HistoryConfig(
                    capacity=int(history_data.get("capacity", h.capacity)),
                ),
                ui=UIConfig(
                    refresh_rate=float(ui_data.get("refresh_rate", u.refresh_rate)),
                ),
                chart=ChartConfig(
                    zoom_speed=float(chart_data.get("zoom_speed", c.zoom_speed)),
                    scroll_speed=float(chart_data.get("scroll_speed", c.scroll_speed)),
                    ctrl_to_zoom=bool(chart_data.get("ctrl_to_zoom", c.ctrl_to_zoom)),
                    shift_to_horizontal=bool(
                        chart_data.get("shift_to_horizontal", c.shift_to_horizontal)
                    ),
                    lock_x=bool(chart_data.get("lock_x", c.lock_x)),
                    lock_y=bool(chart_data.get("lock_y", c.lock_y)),
                ),
                logging=LoggingConfig(
                    level=str(logging_data.get("level", lg.level)),
                    max_bytes=int(logging_data.get("max_bytes", lg.max_bytes)),
                    backup_count=int(logging_data.get("backup_count", lg.backup_count)),
                ),
            )
        except (AttributeError, TypeError, ValueError) as e:
            raise ConfigError(f"Invalid value in config file {path}: {e}") from e
        config.validate()
        return config
