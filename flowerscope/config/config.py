"""
Centralized configuration management for FlowerScope.

Configuration is a YAML file deep-merged over in-code defaults and read with
dot notation. The defaults describe the bundled flower model contract
(224x224x3 input, 10x6 output), the bounded image loader, the generic object
detector, overlay styling and logging.

Author: FlowerScope Team
"""

import os
import yaml
import logging
from pathlib import Path
from typing import Dict, Any, Optional, Union

logger = logging.getLogger(__name__)


class Config:
    """
    Centralized configuration management for FlowerScope.

    Provides:

    - Model asset paths and the fixed tensor contract validated at load time
    - Bounds for memory-bounded image decoding
    - Detection threshold and generic detector settings
    - Overlay styling and logging settings
    """

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        """
        Initialize configuration manager.

        Args:
            config_path: Optional path to custom configuration file.
                        If None, uses default config.yaml in project root.
        """
        self.project_root = Path(__file__).parent.parent.parent
        # Bundled assets ship inside the package
        self.package_root = Path(__file__).parent.parent
        self.config_path = Path(config_path) if config_path else self.project_root / "config.yaml"
        self.config = self._load_config()

        # Set up logging after config is loaded
        self._setup_logging()

    def _load_config(self) -> Dict[str, Any]:
        """
        Load configuration from YAML file over the built-in defaults.

        Returns:
            Dictionary containing all configuration parameters
        """
        default_config = self._get_default_config()

        if self.config_path.exists():
            try:
                with open(self.config_path, 'r', encoding='utf-8') as f:
                    file_config = yaml.safe_load(f) or {}

                # File values override defaults
                merged_config = self._deep_merge(default_config, file_config)
                logger.info(f"Configuration loaded from {self.config_path}")
                return merged_config

            except (OSError, yaml.YAMLError) as e:
                logger.warning(f"Failed to load config from {self.config_path}: {e}")
                logger.info("Using default configuration")

        else:
            # Save default config for reference
            self._save_config(default_config)
            logger.info(f"Created default configuration at {self.config_path}")

        return default_config

    def _get_default_config(self) -> Dict[str, Any]:
        """
        Generate the default configuration.

        Returns:
            Dictionary with default configuration parameters
        """
        return {
            # Project metadata
            'project': {
                'name': 'flowerscope',
                'version': '1.0.0',
                'description': 'Dual-pass flower and object detection for single photos'
            },

            # Source image handling
            'data': {
                'image_extensions': ['.jpg', '.jpeg', '.png', '.bmp', '.gif', '.webp'],
                'max_image_size': [1024, 1024],      # [width, height] decode bound
                'max_source_pixels': 1000000000,     # largest JPEG source accepted
            },

            # Bundled TFLite flower model
            'model': {
                'model_path': str(self.package_root / 'assets' / 'flower_model.tflite'),
                'labels_path': str(self.package_root / 'assets' / 'labels.txt'),
                'input_shape': [1, 224, 224, 3],     # NHWC float32
                'output_shape': [1, 10, 6],          # left, top, right, bottom, score, class_id
                'num_threads': 2
            },

            # Detection decoding
            'detection': {
                'score_threshold': 0.5,              # strict: score must exceed this
            },

            # Generic class-less object detector
            'generic_detector': {
                'enabled': True,
                'architecture': 'ssdlite320_mobilenet_v3_large',
                'weights': 'DEFAULT',
                'weights_path': None,
                'max_objects': 5,
                'score_threshold': 0.5,
                'device': 'cpu'
            },

            # Overlay styling (RGB colours)
            'rendering': {
                'custom_box_color': [255, 0, 0],
                'generic_box_color': [0, 255, 0],
                'text_color': [255, 255, 255],
                'stroke_width': 5,
                'text_size': 40,
                'text_offset': 10
            },

            # Analysis session
            'session': {
                'max_workers': 2
            },

            # Logging configuration
            'logging': {
                'level': 'INFO',
                'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                'date_format': '%Y-%m-%d %H:%M:%S',
                'log_file': None,
                'encoding': 'utf-8'
            },

            # Streamlit UI configuration
            'ui': {
                'title': 'FlowerScope',
                'page_icon': '🌸',
                'layout': 'centered',
                'max_image_display_size': [800, 600]
            }
        }

    def _deep_merge(self, dict1: Dict[str, Any], dict2: Dict[str, Any]) -> Dict[str, Any]:
        """
        Deep merge two dictionaries, with dict2 values taking precedence.

        Args:
            dict1: Base dictionary
            dict2: Override dictionary

        Returns:
            Merged dictionary
        """
        result = dict1.copy()

        for key, value in dict2.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def _save_config(self, config: Dict[str, Any]) -> None:
        """
        Save configuration to YAML file.

        Args:
            config: Configuration dictionary to save
        """
        try:
            os.makedirs(self.config_path.parent, exist_ok=True)

            with open(self.config_path, 'w', encoding='utf-8') as f:
                yaml.dump(
                    config,
                    f,
                    default_flow_style=False,
                    indent=2,
                    sort_keys=False,
                    allow_unicode=True
                )

        except OSError as e:
            logger.error(f"Failed to save configuration: {e}")

    def _setup_logging(self) -> None:
        """Set up logging configuration based on config parameters."""
        log_level = getattr(logging, str(self.get('logging.level', 'INFO')).upper(), logging.INFO)
        log_format = self.get('logging.format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        date_format = self.get('logging.date_format', '%Y-%m-%d %H:%M:%S')

        # Configure root logger
        logging.basicConfig(
            level=log_level,
            format=log_format,
            datefmt=date_format
        )

        log_file = self.get('logging.log_file')
        if log_file:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            root = logging.getLogger()
            if not any(isinstance(h, logging.FileHandler) and Path(h.baseFilename) == log_path.resolve()
                       for h in root.handlers):
                file_handler = logging.FileHandler(log_path, encoding=self.get('logging.encoding', 'utf-8'))
                file_handler.setLevel(log_level)
                file_handler.setFormatter(logging.Formatter(log_format, datefmt=date_format))
                root.addHandler(file_handler)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key: Configuration key in dot notation (e.g., 'model.input_shape')
            default: Default value if key not found

        Returns:
            Configuration value or default

        Examples:
            >>> config = Config()
            >>> threshold = config.get('detection.score_threshold')
            >>> bound = config.get('data.max_image_size', [1024, 1024])
        """
        keys = key.split('.')
        value = self.config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any) -> None:
        """
        Set configuration value using dot notation.

        Args:
            key: Configuration key in dot notation
            value: Value to set
        """
        keys = key.split('.')
        config_ref = self.config

        # Navigate to parent dictionary
        for k in keys[:-1]:
            if k not in config_ref:
                config_ref[k] = {}
            config_ref = config_ref[k]

        config_ref[keys[-1]] = value

    def update(self, updates: Dict[str, Any]) -> None:
        """
        Update multiple configuration values.

        Args:
            updates: Dictionary of key-value pairs to update
        """
        for key, value in updates.items():
            self.set(key, value)

    def save(self) -> None:
        """Save current configuration to file."""
        self._save_config(self.config)
        logger.info(f"Configuration saved to {self.config_path}")

    def validate(self) -> Dict[str, Any]:
        """
        Validate configuration parameters for consistency and correctness.

        Returns:
            Dictionary with validation results
        """
        validation_results = {
            'valid': True,
            'errors': [],
            'warnings': []
        }

        # Asset paths
        for key in ('model.model_path', 'model.labels_path'):
            path = self.get(key)
            if not path or not Path(path).exists():
                validation_results['warnings'].append(f"{key} does not exist: {path}")

        # Tensor contract
        input_shape = self.get('model.input_shape', [])
        if len(input_shape) != 4 or input_shape[0] != 1 or input_shape[3] != 3:
            validation_results['errors'].append(
                f"model.input_shape must be [1, height, width, 3], got {input_shape}"
            )
            validation_results['valid'] = False

        output_shape = self.get('model.output_shape', [])
        if len(output_shape) != 3 or output_shape[0] != 1 or output_shape[2] != 6:
            validation_results['errors'].append(
                f"model.output_shape must be [1, max_detections, 6], got {output_shape}"
            )
            validation_results['valid'] = False

        # Image bound
        max_size = self.get('data.max_image_size', [])
        if len(max_size) != 2 or min(max_size) < 1:
            validation_results['errors'].append(f"data.max_image_size must be two positive ints, got {max_size}")
            validation_results['valid'] = False

        # Thresholds
        for key in ('detection.score_threshold', 'generic_detector.score_threshold'):
            threshold = self.get(key, 0.5)
            if not 0.0 <= threshold <= 1.0:
                validation_results['errors'].append(f"{key} must be between 0.0 and 1.0")
                validation_results['valid'] = False

        if self.get('session.max_workers', 2) < 2:
            validation_results['warnings'].append(
                "session.max_workers < 2 runs the two detection passes sequentially"
            )

        return validation_results

    def get_asset_paths(self) -> Dict[str, Path]:
        """
        Get model asset paths as Path objects.

        Returns:
            Dictionary mapping asset names to Path objects
        """
        return {
            'model': Path(self.get('model.model_path')),
            'labels': Path(self.get('model.labels_path'))
        }

    def __str__(self) -> str:
        """String representation of configuration."""
        return f"Config(project={self.get('project.name')}, version={self.get('project.version')})"

    def __repr__(self) -> str:
        """Detailed string representation."""
        return f"Config(config_path='{self.config_path}', loaded={self.config_path.exists()})"
