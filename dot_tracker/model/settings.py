import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional


SETTINGS_FILENAME = "settings.json"

_log = logging.getLogger(__name__)


@dataclass
class TrackingSettings:
    block_size: int = 31
    pyramid_levels: int = 3
    max_iterations: int = 30
    term_epsilon: float = 0.01
    min_eig_threshold: float = 1e-4
    max_bidirectional_error: float = 3.0

    # Point-tracker style parameter names accepted as overrides.
    ALIASES = {
        "BlockSize": "block_size",
        "NumPyramidLevels": "pyramid_levels",
        "MaxIterations": "max_iterations",
        "MaxBidirectionalError": "max_bidirectional_error",
    }

    def with_overrides(self, params: Optional[Mapping[str, Any]]) -> "TrackingSettings":
        if not params:
            return replace(self)
        names = {f.name: f for f in fields(self)}
        changes: Dict[str, Any] = {}
        for key, value in params.items():
            name = self.ALIASES.get(key, key)
            if name not in names:
                raise ValueError(f"Unrecognized tracker parameter ({key})")
            default = getattr(self, name)
            changes[name] = type(default)(value)
        return replace(self, **changes)


@dataclass
class PlaybackSettings:
    frame_delay_ms: int = 0


@dataclass
class DisplaySettings:
    # Hex overrides keyed by untracked, valid, failed_track or user_invalid.
    status_colors: Dict[str, str] = field(default_factory=dict)
    label_color: str = "#ffffff"
    marker_size: int = 6
    window_width: int = 1024
    window_height: int = 768


@dataclass
class AppSettings:
    tracking: TrackingSettings = field(default_factory=TrackingSettings)
    playback: PlaybackSettings = field(default_factory=PlaybackSettings)
    display: DisplaySettings = field(default_factory=DisplaySettings)


class SettingsManager:
    def __init__(self, path: Path) -> None:
        self.path = path
        self.settings = AppSettings()
        self.load()

    def load(self) -> None:
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text())
        except (json.JSONDecodeError, OSError):
            _log.warning("Ignoring unreadable settings file %s", self.path)
            return
        self.settings = self._from_dict(data)

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self._to_dict(), indent=2))

    def reset(self) -> None:
        self.settings = AppSettings()
        self.save()

    def _to_dict(self) -> Dict:
        return asdict(self.settings)

    def _from_dict(self, data: Dict) -> AppSettings:
        def merge(default_cls, section):
            instance = default_cls()
            if isinstance(section, dict):
                for key, value in section.items():
                    if hasattr(instance, key):
                        setattr(instance, key, value)
            return instance

        settings = AppSettings()
        if not isinstance(data, dict):
            return settings
        if "tracking" in data:
            settings.tracking = merge(TrackingSettings, data["tracking"])
        if "playback" in data:
            settings.playback = merge(PlaybackSettings, data["playback"])
        if "display" in data:
            settings.display = merge(DisplaySettings, data["display"])
        return settings


def get_settings_path(root: Optional[Path] = None) -> Path:
    if root is None:
        base = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
        root = Path(base) / "dot_tracker"
    return root / SETTINGS_FILENAME


def parse_params(pairs: List[str]) -> Dict[str, str]:
    params: Dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Tracker parameter must be KEY=VALUE (got {pair!r})")
        params[key.strip()] = value.strip()
    return params
