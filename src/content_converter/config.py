"""YAML configuration loading and validation for the converter.

The converter works without any configuration file; ConverterConfig holds
the defaults. A YAML file can override them:

    node_id_attribute: "data-node-id"
    image_width: 500
    image_align: "center"
    rule: "-------"
    widget_macros: ["toc"]
    known_panels: ["info", "note", "warning", "tip", "success", "error"]
    parser: "html.parser"
"""

import logging
import os
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List

import yaml

from .errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConverterConfig:
    """Immutable converter settings.

    Attributes:
        node_id_attribute: Storage attribute carrying the node identifier
        image_width: Display width written on uploaded images
        image_align: Alignment written on uploaded images
        rule: Canonical markdown horizontal rule
        widget_macros: Body-less macros rendered as widget placeholders
        known_panels: Panel colors that map to a dedicated macro on upload
        parser: BeautifulSoup parser name
    """

    node_id_attribute: str = "data-node-id"
    image_width: int = 500
    image_align: str = "center"
    rule: str = "-------"
    widget_macros: List[str] = field(default_factory=lambda: ["toc"])
    known_panels: List[str] = field(
        default_factory=lambda: ["info", "note", "warning", "tip", "success", "error"]
    )
    parser: str = "html.parser"


DEFAULT_CONFIG = ConverterConfig()


class ConfigLoader:
    """Handles converter configuration loading, validation, and saving."""

    ALLOWED_PARSERS = {'html.parser', 'lxml', 'html5lib'}
    ALLOWED_ALIGNS = {'left', 'center', 'right'}

    @classmethod
    def load(cls, config_path: str) -> ConverterConfig:
        """Load and parse configuration from a YAML file.

        Args:
            config_path: Path to the YAML configuration file

        Returns:
            ConverterConfig with file values applied over defaults

        Raises:
            ConfigError: If the file cannot be read or is invalid
        """
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                content = f.read()
        except FileNotFoundError:
            raise ConfigError(f"Configuration file not found at {config_path}")
        except OSError as e:
            raise ConfigError(f"Cannot read {config_path}: {e}")

        if not content.strip():
            return ConverterConfig()

        try:
            config_dict = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML syntax: {str(e)}")

        if config_dict is None:
            return ConverterConfig()

        if not isinstance(config_dict, dict):
            raise ConfigError(
                f"Configuration must be a YAML dictionary, got {type(config_dict).__name__}"
            )

        return cls.from_dict(config_dict)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> ConverterConfig:
        """Validate a configuration dictionary and build a ConverterConfig."""
        known = set(ConverterConfig.__dataclass_fields__)
        unknown = sorted(set(config_dict) - known)
        if unknown:
            raise ConfigError(f"Unknown fields: {', '.join(unknown)}")

        values: Dict[str, Any] = {}

        for name in ('node_id_attribute', 'image_align', 'rule', 'parser'):
            if name in config_dict:
                value = config_dict[name]
                if not isinstance(value, str) or not value.strip():
                    raise ConfigError("must be a non-empty string", name)
                values[name] = value.strip()

        if 'node_id_attribute' in values and not re.match(r'^[A-Za-z][\w:.-]*$', values['node_id_attribute']):
            raise ConfigError("must be a valid attribute name", 'node_id_attribute')

        if 'image_align' in values and values['image_align'] not in cls.ALLOWED_ALIGNS:
            raise ConfigError(
                f"must be one of {', '.join(sorted(cls.ALLOWED_ALIGNS))}", 'image_align'
            )

        if 'parser' in values and values['parser'] not in cls.ALLOWED_PARSERS:
            raise ConfigError(
                f"must be one of {', '.join(sorted(cls.ALLOWED_PARSERS))}", 'parser'
            )

        if 'rule' in values and not re.match(r'^-{3,}$', values['rule']):
            raise ConfigError("must be three or more hyphens", 'rule')

        if 'image_width' in config_dict:
            width = config_dict['image_width']
            if isinstance(width, bool) or not isinstance(width, int) or width <= 0:
                raise ConfigError("must be a positive integer", 'image_width')
            values['image_width'] = width

        for name in ('widget_macros', 'known_panels'):
            if name in config_dict:
                items = config_dict[name]
                if not isinstance(items, list) or not all(isinstance(i, str) and i.strip() for i in items):
                    raise ConfigError("must be a list of non-empty strings", name)
                values[name] = [i.strip().lower() for i in items]

        logger.debug(f"Loaded converter config overrides: {sorted(values)}")
        return ConverterConfig(**values)

    @classmethod
    def save(cls, config_path: str, config: ConverterConfig) -> None:
        """Save configuration to a YAML file.

        Raises:
            ConfigError: If the file cannot be written
        """
        yaml_str = yaml.safe_dump(
            asdict(config),
            default_flow_style=False,
            allow_unicode=True,
            sort_keys=False
        )

        config_dir = os.path.dirname(config_path)
        try:
            if config_dir:
                os.makedirs(config_dir, exist_ok=True)
            with open(config_path, 'w', encoding='utf-8') as f:
                f.write(yaml_str)
        except OSError as e:
            raise ConfigError(f"Cannot write {config_path}: {e}")
