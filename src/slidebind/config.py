"""Configuration for slidebind runs.

A run needs four locations and a few generation switches, all read from one
YAML file:

    paths:
      project_root: "."          # other paths are relative to this
      template: "templates/report.pptx"
      data: "data/report.json"
      output: "output/report.pptx"
      assets_dir: "assets"       # optional, for Image() arguments
    settings:
      logging: {level: INFO}
      generation: {hide_mode: remove, normalize_quotes: true, remove_template_slides: true}
"""

import copy
import json
import yaml
import logging
from pathlib import Path
from typing import Dict, Any, Optional

from .backend import HIDE_MODES

DEFAULT_SETTINGS: Dict[str, Any] = {
    'logging': {'level': 'INFO'},
    'generation': {
        'hide_mode': 'remove',
        'normalize_quotes': True,
        'remove_template_slides': True,
    },
}

REQUIRED_INPUTS = ('template', 'data')


def _read_yaml(file_path: Path, what: str) -> Any:
    if not file_path.exists():
        raise FileNotFoundError(f"{what} not found: {file_path}")
    with open(file_path, 'r', encoding='utf-8') as f:
        return yaml.safe_load(f)


def load_data_file(file_path: Path) -> Any:
    """Load the data bound to a template.

    ``.json`` files are read with the json module; everything else is read
    as YAML (which also accepts plain JSON).

    Args:
        file_path: Path to the data file

    Returns:
        Parsed data (mappings, sequences and scalars)

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file cannot be parsed
    """
    file_path = Path(file_path)
    try:
        if file_path.suffix.lower() == '.json':
            if not file_path.exists():
                raise FileNotFoundError(f"Data file not found: {file_path}")
            with open(file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        else:
            data = _read_yaml(file_path, "Data file")
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ValueError(f"Cannot parse data file {file_path}: {e}") from e

    logging.debug(f"Loaded data from: {file_path}")
    return {} if data is None else data


def merge_dicts(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Deep-merge ``overlay`` onto ``base`` without modifying either."""
    merged = dict(base)
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            value = merge_dicts(current, value)
        merged[key] = value
    return merged


class Config:
    """Paths and generation settings for one slidebind run.

    Example:
        config = Config("config.yaml")
        config.set_path("data", "data/q3.yaml")   # CLI override
        config.validate_paths()
    """

    def __init__(self, config_path: str = 'config.yaml'):
        """Load configuration from a YAML file.

        Args:
            config_path: YAML file; relative paths inside it resolve against
                its directory (through ``paths.project_root``)
        """
        self.config_path = Path(config_path)
        raw = _read_yaml(self.config_path, "Configuration file") or {}
        self._load(raw, self.config_path.parent)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any], config_dir: Path) -> "Config":
        """Build a Config from an already-parsed mapping (tests, embedding).

        Args:
            raw: Configuration mapping with ``paths`` and ``settings``
            config_dir: Directory standing in for the config file's location
        """
        config = cls.__new__(cls)
        config.config_path = Path(config_dir) / "config.yaml"
        config._load(raw, Path(config_dir))
        return config

    def _load(self, raw: Dict[str, Any], config_dir: Path):
        paths = dict(raw.get('paths') or {})
        root = paths.get('project_root')
        self.project_root = (config_dir / root).resolve() if root is not None else Path.cwd()

        self._config = merge_dicts({'settings': copy.deepcopy(DEFAULT_SETTINGS)}, raw)
        self._config['paths'] = paths
        self._paths = paths

        if self.hide_mode not in HIDE_MODES:
            raise ValueError(
                f"settings.generation.hide_mode must be one of {HIDE_MODES}, got '{self.hide_mode}'"
            )
        self._setup_logging()
        logging.debug(f"Loaded config from: {self.config_path}")

    def _setup_logging(self):
        level_name = str(self.get('settings.logging.level', 'INFO')).upper()
        logging.basicConfig(
            level=getattr(logging, level_name, logging.INFO),
            format='%(asctime)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    def get(self, key_path: str, default: Any = None) -> Any:
        """Look up a value by dotted key (``settings.generation.hide_mode``).

        Returns ``default`` when any step of the key is absent.
        """
        node: Any = self._config
        for key in key_path.split('.'):
            if not isinstance(node, dict) or key not in node:
                return default
            node = node[key]
        return node

    def set_path(self, key: str, value: Optional[str]):
        """Override a path (CLI flags). ``None`` leaves the configured value."""
        if value is not None:
            self._paths[key] = str(value)

    def get_path(self, key: str) -> Path:
        """Resolve ``paths.<key>`` against the project root.

        Raises:
            ValueError: If the key is not configured
        """
        value = self._paths.get(key)
        if value is None:
            raise ValueError(f"Path '{key}' not found in configuration")
        path = Path(value)
        return path.resolve() if path.is_absolute() else self.project_root / path

    def validate_paths(self, required_paths: tuple = REQUIRED_INPUTS):
        """Check that every required input exists.

        Raises:
            FileNotFoundError: Listing every missing or unconfigured input
        """
        problems = []
        for key in required_paths:
            try:
                path = self.get_path(key)
            except ValueError:
                problems.append(f"{key}: not configured")
                continue
            if not path.exists():
                problems.append(f"{key}: {path}")

        if problems:
            raise FileNotFoundError(
                "Missing input(s):\n" + "\n".join(f"  - {p}" for p in problems)
            )

    @property
    def template_path(self) -> Path:
        """Template deck with ``${...}`` bindings."""
        return self.get_path('template')

    @property
    def data_path(self) -> Path:
        """JSON or YAML data bound to the template."""
        return self.get_path('data')

    @property
    def output_path(self) -> Path:
        """Where the generated deck is written."""
        return self.get_path('output')

    @property
    def assets_dir(self) -> Optional[Path]:
        """Base directory for relative Image() paths (None when not configured)."""
        if not self._paths.get('assets_dir'):
            return None
        return self.get_path('assets_dir')

    @property
    def hide_mode(self) -> str:
        return self.get('settings.generation.hide_mode', 'remove')

    @property
    def normalize_quotes(self) -> bool:
        return bool(self.get('settings.generation.normalize_quotes', True))

    @property
    def remove_template_slides(self) -> bool:
        return bool(self.get('settings.generation.remove_template_slides', True))
