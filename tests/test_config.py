"""
Tests for the configuration module.
"""
import os
import sys
import pytest
from unittest.mock import patch
import yaml

# Add the project root to the Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from config_guardian.config import Config
from config_guardian.core import ConfigError, InputError

ENV_KEYS = [
    'GUARDIAN_STORE_DIR', 'GUARDIAN_WORKERS', 'GUARDIAN_EXCLUDE', 'GUARDIAN_SYMLINK_POLICY',
    'GUARDIAN_DEBOUNCE', 'GUARDIAN_POLL_INTERVAL', 'GUARDIAN_RETRY_INTERVAL',
    'GUARDIAN_MAX_FAILURES', 'LOG_LEVEL', 'GUARDIAN_EVENT_LOG', 'LOG_FORMAT', 'GUARDIAN_CONFIG',
]


@pytest.fixture(autouse=True)
def clean_env():
    """Run every test without guardian settings from the surrounding environment."""
    env = {key: value for key, value in os.environ.items() if key not in ENV_KEYS}
    with patch.dict(os.environ, env, clear=True):
        yield


class TestConfig:
    """Tests for the Config class."""

    def test_default_config(self, tmp_path):
        """Test that default config is loaded when no file exists."""
        config = Config(config_path=str(tmp_path / 'missing.yaml'))

        assert config.get('builder.workers') == 4
        assert config.get('builder.exclude_patterns') == []
        assert config.get('builder.symlink_policy') == 'within_root'
        assert config.get('monitor.debounce_seconds') == 1.0
        assert config.get('monitor.max_consecutive_failures') == 5
        assert config.get('logging.level') == 'INFO'
        assert config.get('logging.file') == 'drift.log'
        assert config.get('store.directory').endswith(os.path.join('.config_guardian', 'baselines'))

    def test_load_from_env(self, tmp_path):
        """Test loading configuration from environment variables."""
        env_vars = {
            'GUARDIAN_STORE_DIR': str(tmp_path / 'store'),
            'GUARDIAN_WORKERS': '2',
            'GUARDIAN_EXCLUDE': '*.bak, .git/** ,',
            'GUARDIAN_DEBOUNCE': '0.25',
            'LOG_LEVEL': 'DEBUG',
        }

        with patch.dict(os.environ, env_vars):
            config = Config(config_path=str(tmp_path / 'missing.yaml'))

        assert config.get('store.directory') == str(tmp_path / 'store')
        assert config.get('builder.workers') == 2
        assert config.get('builder.exclude_patterns') == ['*.bak', '.git/**']
        assert config.get('monitor.debounce_seconds') == 0.25
        assert config.get('logging.level') == 'DEBUG'

    def test_load_from_yaml(self, tmp_path):
        """Test that a YAML file overrides defaults section by section."""
        config_data = {
            'builder': {'workers': 8, 'exclude_patterns': ['*.swp']},
            'monitor': {'debounce_seconds': 2.5},
        }
        config_file = tmp_path / 'guardian.yaml'
        with open(config_file, 'w') as f:
            yaml.dump(config_data, f)

        config = Config(config_path=str(config_file))

        assert config.get('builder.workers') == 8
        assert config.get('builder.exclude_patterns') == ['*.swp']
        assert config.get('monitor.debounce_seconds') == 2.5
        # Untouched keys in a merged section keep their defaults
        assert config.get('monitor.poll_interval') == 0.5
        assert config.path == str(config_file)

    def test_config_path_from_env(self, tmp_path):
        """Test that GUARDIAN_CONFIG selects the file when none is passed."""
        config_file = tmp_path / 'from_env.yaml'
        config_file.write_text('logging:\n  file: /var/log/guardian.log\n')

        with patch.dict(os.environ, {'GUARDIAN_CONFIG': str(config_file)}):
            config = Config()

        assert config.get('logging.file') == '/var/log/guardian.log'

    def test_empty_yaml_file(self, tmp_path):
        """Test that an empty file leaves the defaults in place."""
        config_file = tmp_path / 'empty.yaml'
        config_file.write_text('')

        assert Config(config_path=str(config_file)).get('builder.workers') == 4

    def test_invalid_yaml_file(self, tmp_path):
        """Test behavior with invalid YAML file."""
        config_file = tmp_path / 'invalid.yaml'
        config_file.write_text('invalid: yaml: file')

        with pytest.raises(yaml.YAMLError):
            Config(config_path=str(config_file))

    def test_yaml_must_be_mapping(self, tmp_path):
        """Test that a top-level list is rejected."""
        config_file = tmp_path / 'list.yaml'
        config_file.write_text('- a\n- b\n')

        with pytest.raises(ConfigError):
            Config(config_path=str(config_file))

    @pytest.mark.parametrize('content', [
        'builder:\n  workers: 0\n',
        'builder:\n  symlink_policy: sometimes\n',
        'monitor:\n  debounce_seconds: -1\n',
        'monitor:\n  poll_interval: 0\n',
        'monitor:\n  max_consecutive_failures: 0\n',
        "builder:\n  workers: 'many'\n",
        "monitor:\n  debounce_seconds: [1, 2]\n",
        'monitor: 5\n',
    ])
    def test_invalid_values(self, tmp_path, content):
        """Test that unusable values are rejected at load time."""
        config_file = tmp_path / 'bad.yaml'
        config_file.write_text(content)

        with pytest.raises(ConfigError) as excinfo:
            Config(config_path=str(config_file))

        assert isinstance(excinfo.value, InputError)

    def test_numeric_strings_are_converted(self, tmp_path):
        """Test that quoted numbers in YAML are accepted as numbers."""
        config_file = tmp_path / 'quoted.yaml'
        config_file.write_text("builder:\n  workers: '4'\nmonitor:\n  debounce_seconds: '0.5'\n")

        config = Config(config_path=str(config_file))

        assert config.get('builder.workers') == 4
        assert config.get('monitor.debounce_seconds') == 0.5

    def test_invalid_env_number(self, tmp_path):
        """Test that a non-numeric environment value is a ConfigError."""
        with patch.dict(os.environ, {'GUARDIAN_WORKERS': 'many'}):
            with pytest.raises(ConfigError):
                Config(config_path=str(tmp_path / 'missing.yaml'))

    def test_accessors(self, tmp_path):
        """Test dot notation, bracket access, membership and sections."""
        config = Config(config_path=str(tmp_path / 'missing.yaml'))

        assert config['builder.workers'] == 4
        assert 'monitor.debounce_seconds' in config
        assert 'monitor.nothing' not in config
        assert config.get('nothing.here', 'fallback') == 'fallback'

        section = config.section('monitor')
        section['debounce_seconds'] = 99
        assert config.get('monitor.debounce_seconds') == 1.0
