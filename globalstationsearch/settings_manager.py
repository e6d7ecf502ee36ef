"""
Simple Settings Manager for Global Station Search
Handles persistent storage of application settings in a JSON file
"""

import copy
import os
import json
import logging
from pathlib import Path
from typing import Dict, Any, Optional, Tuple

logger = logging.getLogger(__name__)

import dotenv
dotenv.load_dotenv()

DEFAULT_CHANNELS_URL = "https://api.getchannels.com"

DEFAULT_SETTINGS = {
    'channels_dvr': {
        'url': DEFAULT_CHANNELS_URL,
        'enrichment_url': ''
    },
    'database': {
        'data_dir': '/data'
    },
    'search': {
        'filter_by_resolution': False,
        'enabled_resolutions': ['SDTV', 'HDTV', 'UHDTV'],
        'filter_by_country': False,
        'enabled_countries': [],
        'results_per_page': 10
    },
    'markets': []
}


class SettingsManager:
    """
    Manages application settings in a JSON file.
    Security via file permissions (600 - owner read/write only).
    """

    def __init__(self, settings_path: str = None):
        """
        Initialize the settings manager.

        Args:
            settings_path: Path to settings file (default: /data/settings.json)
        """
        self.settings_path = settings_path or os.environ.get(
            'SETTINGS_PATH',
            '/data/settings.json'
        )

    def _ensure_settings_dir(self):
        """Ensure the settings directory exists"""
        settings_dir = os.path.dirname(self.settings_path)
        if settings_dir:
            Path(settings_dir).mkdir(parents=True, exist_ok=True)

    def load_settings(self) -> Dict[str, Any]:
        """
        Load settings. Values in the settings file win over environment
        variables, which win over the defaults.

        Returns:
            Dictionary of settings
        """
        settings = self._deep_merge(copy.deepcopy(DEFAULT_SETTINGS), self._load_from_env())
        return self._deep_merge(settings, self._read_file())

    def _read_file(self) -> Dict[str, Any]:
        """Settings stored in the file only, {} if missing or unreadable"""
        if not os.path.exists(self.settings_path):
            return {}
        try:
            with open(self.settings_path, 'r') as f:
                settings = json.load(f)
            logger.debug(f"Settings loaded from {self.settings_path}")
            return settings if isinstance(settings, dict) else {}
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading settings: {e}")
            return {}

    def save_settings(self, settings: Dict[str, Any]) -> bool:
        """
        Save settings to file with restrictive permissions.

        Args:
            settings: Dictionary of settings to save

        Returns:
            True if successful, False otherwise
        """
        try:
            self._ensure_settings_dir()
            tmp_path = f"{self.settings_path}.tmp"
            with open(tmp_path, 'w') as f:
                json.dump(settings, f, indent=2)

            # Set restrictive permissions (owner read/write only)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.settings_path)

            logger.debug(f"Settings saved to {self.settings_path}")
            return True
        except OSError as e:
            logger.error(f"Error saving settings: {e}")
            return False

    def update_settings(self, updates: Dict[str, Any]) -> bool:
        """
        Update specific settings without overwriting everything.

        Args:
            updates: Dictionary of settings to update (supports nested updates)

        Returns:
            True if successful, False otherwise
        """
        current_settings = self._read_file()

        # Deep merge the updates
        merged_settings = self._deep_merge(current_settings, updates)

        return self.save_settings(merged_settings)

    def _deep_merge(self, base: Dict, updates: Dict) -> Dict:
        """Deep merge two dictionaries"""
        result = base.copy()
        for key, value in updates.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    def _load_from_env(self) -> Dict[str, Any]:
        """
        Load settings from environment variables as fallback.
        """
        settings = {}

        # Channels DVR settings
        if os.environ.get('CHANNELS_URL') or os.environ.get('ENRICHMENT_URL'):
            settings['channels_dvr'] = {
                'url': os.environ.get('CHANNELS_URL', DEFAULT_CHANNELS_URL),
                'enrichment_url': os.environ.get('ENRICHMENT_URL', '')
            }

        # Database settings
        if os.environ.get('DATA_DIR'):
            settings['database'] = {
                'data_dir': os.environ.get('DATA_DIR')
            }

        return settings

    def get_setting(self, path: str, default: Any = None) -> Any:
        """
        Get a specific setting by path (e.g., 'channels_dvr.url')

        Args:
            path: Dot-separated path to setting
            default: Default value if not found

        Returns:
            Setting value or default
        """
        settings = self.load_settings()
        keys = path.split('.')

        current = settings
        for key in keys:
            if isinstance(current, dict) and key in current:
                current = current[key]
            else:
                return default

        return current

    # Combined cache freshness token

    def load_combined_cache_state(self) -> Tuple[int, int, int]:
        """Saved (combined, base, user) timestamps, zeros if never saved"""
        state = self.get_setting('combined_cache', {}) or {}
        try:
            return (int(state.get('combined_time', 0)),
                    int(state.get('base_time', 0)),
                    int(state.get('user_time', 0)))
        except (TypeError, ValueError):
            return (0, 0, 0)

    def save_combined_cache_state(self, combined_time: int, base_time: int, user_time: int) -> bool:
        return self.update_settings({'combined_cache': {
            'combined_time': combined_time,
            'base_time': base_time,
            'user_time': user_time
        }})

    def clear_combined_cache_state(self) -> bool:
        settings = self._read_file()
        if 'combined_cache' not in settings:
            return True
        del settings['combined_cache']
        return self.save_settings(settings)

    def get_data_dir(self) -> Path:
        return Path(self.get_setting('database.data_dir') or DEFAULT_SETTINGS['database']['data_dir'])


# Global settings manager instance
_settings_manager = None


def get_settings_manager() -> SettingsManager:
    """Get the global settings manager instance"""
    global _settings_manager
    if _settings_manager is None:
        _settings_manager = SettingsManager()
    return _settings_manager
