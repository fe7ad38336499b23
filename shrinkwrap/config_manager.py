"""
Configuration Manager for shrinkwrap
Handles loading and managing configuration from YAML files and CLI arguments
"""

import os
import yaml
import logging
from dataclasses import dataclass
from typing import Dict, Any

from .size_model import BYTES_PER_KB, mb_to_bytes

logger = logging.getLogger(__name__)

CONFIG_FILES = ['shrinkwrap.yaml', 'logging.yaml']


class ConfigurationError(Exception):
    """Raised when configuration values cannot drive the optimizer"""


@dataclass(frozen=True)
class RateControlSettings:
    """Snapshot of every knob the rate-control engine reads"""
    target_size_mb: float = 9.8
    max_size_mb: float = 10.0
    overhead_kb: int = 200
    max_retries: int = 3
    video_floor_kbps: int = 500
    audio_floor_kbps: int = 64
    initial_audio_kbps: int = 192
    audio_step_kbps: int = 32
    primary_max_width: int = 1920
    secondary_max_width: int = 1280
    downscale_damping: float = 0.9
    last_resort_quality: int = 28
    split_min_duration: float = 25.0
    min_keyframe_offset: float = 0.5
    preset: str = 'slow'
    normalize_audio: bool = False

    @property
    def target_size_bytes(self) -> float:
        return mb_to_bytes(self.target_size_mb)

    @property
    def max_size_bytes(self) -> float:
        return mb_to_bytes(self.max_size_mb)

    @property
    def overhead_bytes(self) -> int:
        return self.overhead_kb * BYTES_PER_KB


class ConfigManager:
    def __init__(self, config_dir: str = "config"):
        self.config_dir = config_dir
        self.config = {}
        self.loaded_files = {}
        self._load_all_configs()

    def _load_all_configs(self):
        """Load all configuration files, preferring the config dir over packaged defaults"""
        package_dir = os.path.abspath(os.path.dirname(__file__))
        for config_file in CONFIG_FILES:
            candidates = [
                os.path.join(self.config_dir, config_file),
                os.path.join(package_dir, 'config', config_file),
            ]
            for config_path in candidates:
                if not os.path.exists(config_path):
                    continue
                try:
                    with open(config_path, 'r', encoding='utf-8') as file:
                        config_data = yaml.safe_load(file)
                except yaml.YAMLError as e:
                    raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e
                if config_data:
                    self._merge(self.config, config_data)
                self.loaded_files[config_file] = config_path
                logger.debug(f"Loaded config from {config_path}")
                break
            else:
                logger.warning(f"Config file not found in '{self.config_dir}' or packaged defaults: {config_file}")

    @staticmethod
    def _merge(base: Dict[str, Any], override: Dict[str, Any]):
        for key, value in override.items():
            if isinstance(value, dict) and isinstance(base.get(key), dict):
                ConfigManager._merge(base[key], value)
            else:
                base[key] = value

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation
        Example: get('shrinkwrap.bitrate.video_floor_kbps')
        """
        keys = key_path.split('.')
        value = self.config

        try:
            for key in keys:
                value = value[key]
            return value
        except (KeyError, TypeError):
            logger.debug(f"Configuration key '{key_path}' not found, using default: {default}")
            return default

    def update_from_args(self, args_dict: Dict[str, Any]):
        """Update configuration with command line arguments"""
        applied = 0
        for key, value in args_dict.items():
            if value is not None:
                old_value = self.get(key)
                self._set_nested_value(key, value)
                applied += 1
                logger.info(f"Configuration override applied: {key} = {value} (was: {old_value})")

        if applied:
            logger.info(f"Applied {applied} CLI configuration overrides")
        else:
            logger.debug("No CLI configuration overrides to apply")

    def _set_nested_value(self, key_path: str, value: Any):
        """Set nested configuration value using dot notation"""
        keys = key_path.split('.')
        config_section = self.config

        for key in keys[:-1]:
            if not isinstance(config_section.get(key), dict):
                config_section[key] = {}
            config_section = config_section[key]

        config_section[keys[-1]] = value

    def get_rate_control_settings(self) -> RateControlSettings:
        """Build the rate-control snapshot from the merged configuration"""
        defaults = RateControlSettings()
        return RateControlSettings(
            target_size_mb=float(self.get('shrinkwrap.target_size_mb', defaults.target_size_mb)),
            max_size_mb=float(self.get('shrinkwrap.max_size_mb', defaults.max_size_mb)),
            overhead_kb=int(self.get('shrinkwrap.overhead_kb', defaults.overhead_kb)),
            max_retries=int(self.get('shrinkwrap.max_retries', defaults.max_retries)),
            video_floor_kbps=int(self.get('shrinkwrap.bitrate.video_floor_kbps', defaults.video_floor_kbps)),
            audio_floor_kbps=int(self.get('shrinkwrap.bitrate.audio_floor_kbps', defaults.audio_floor_kbps)),
            initial_audio_kbps=int(self.get('shrinkwrap.bitrate.initial_audio_kbps', defaults.initial_audio_kbps)),
            audio_step_kbps=int(self.get('shrinkwrap.bitrate.audio_step_kbps', defaults.audio_step_kbps)),
            primary_max_width=int(self.get('shrinkwrap.resolution.primary_max_width', defaults.primary_max_width)),
            secondary_max_width=int(self.get('shrinkwrap.resolution.secondary_max_width', defaults.secondary_max_width)),
            downscale_damping=float(self.get('shrinkwrap.rescue.downscale_damping', defaults.downscale_damping)),
            last_resort_quality=int(self.get('shrinkwrap.rescue.last_resort_quality', defaults.last_resort_quality)),
            split_min_duration=float(self.get('shrinkwrap.split.min_duration_seconds', defaults.split_min_duration)),
            min_keyframe_offset=float(self.get('shrinkwrap.split.min_keyframe_offset_seconds', defaults.min_keyframe_offset)),
            preset=str(self.get('shrinkwrap.encoder.preset', defaults.preset)),
            normalize_audio=bool(self.get('shrinkwrap.encoder.normalize_audio', defaults.normalize_audio)),
        )

    def get_output_dir(self) -> str:
        return str(self.get('shrinkwrap.output_dir', './optimized'))

    def get_temp_dir(self) -> str:
        temp_dir = self.get('shrinkwrap.temp_dir')
        if temp_dir:
            return str(temp_dir)
        return os.path.join(self.get_output_dir(), '.shrinkwrap_tmp')

    def validate_config(self) -> bool:
        """Validate that the configuration describes a usable rate-control setup"""
        try:
            settings = self.get_rate_control_settings()
        except (TypeError, ValueError) as e:
            logger.error(f"Configuration value has the wrong type: {e}")
            return False

        positive = {
            'target_size_mb': settings.target_size_mb,
            'max_size_mb': settings.max_size_mb,
            'max_retries': settings.max_retries,
            'video_floor_kbps': settings.video_floor_kbps,
            'audio_floor_kbps': settings.audio_floor_kbps,
            'initial_audio_kbps': settings.initial_audio_kbps,
            'audio_step_kbps': settings.audio_step_kbps,
            'primary_max_width': settings.primary_max_width,
            'secondary_max_width': settings.secondary_max_width,
            'split_min_duration': settings.split_min_duration,
        }
        for name, value in positive.items():
            if value <= 0:
                logger.error(f"Invalid {name}: {value} (must be positive)")
                return False

        if settings.overhead_kb < 0:
            logger.error(f"Invalid overhead_kb: {settings.overhead_kb} (must not be negative)")
            return False

        if settings.max_size_mb < settings.target_size_mb:
            logger.error(f"max_size_mb ({settings.max_size_mb}) must be >= target_size_mb ({settings.target_size_mb})")
            return False

        if settings.initial_audio_kbps < settings.audio_floor_kbps:
            logger.error(f"initial_audio_kbps ({settings.initial_audio_kbps}) is below the audio floor "
                         f"({settings.audio_floor_kbps})")
            return False

        if not 0 < settings.downscale_damping <= 1:
            logger.error(f"Invalid downscale_damping: {settings.downscale_damping} (must be in (0, 1])")
            return False

        if settings.secondary_max_width > settings.primary_max_width:
            logger.error(f"secondary_max_width ({settings.secondary_max_width}) must not exceed "
                         f"primary_max_width ({settings.primary_max_width})")
            return False

        if settings.min_keyframe_offset < 0:
            logger.error(f"Invalid min_keyframe_offset: {settings.min_keyframe_offset}")
            return False

        jobs = self.get('shrinkwrap.parallel_jobs', 1)
        if not isinstance(jobs, int) or jobs < 1:
            logger.error(f"Invalid parallel_jobs: {jobs} (must be an integer >= 1)")
            return False

        logger.info("Configuration validation passed")
        return True
