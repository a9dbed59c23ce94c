#!/usr/bin/env python3
"""
Unit tests for configuration loading, merging and validation.

Run with:
    python3 -m pytest rating_overlay/test_config.py -v
"""

import tempfile
import unittest
from pathlib import Path

import yaml

from rating_overlay.config import (
    Config,
    config_from_dict,
    format_duration,
    load_config,
    parse_duration,
    resolve_max_threads,
    validate_config,
    write_sample_config,
)
from rating_overlay.errors import ConfigError

BASE_CONFIG = {
    'plex': {
        'enabled': True,
        'url': 'http://plex:32400',
        'token': 'secret',
        'libraries': [
            {
                'name': 'Movies',
                'enabled': True,
                'refresh': True,
                'path': '/media/movies',
                'filters': {'years': [2020, 2021], 'added_at': 'last_7_days'},
                'overlay': {'type': 'bar', 'height': 0.1, 'transparency': 0.5},
            },
        ],
    },
    'performance': {'max_threads': 2, 'library_processing_timeout': '1h'},
    'http_client': {'timeout': '15s', 'max_retries': 2},
    'logger': {'log_level': 'info'},
    'processor': {'library_processor': {'default_timeout': '10m'}},
}


def _write(path: Path, data) -> None:
    with path.open('w') as f:
        yaml.safe_dump(data, f)


class TestDurations(unittest.TestCase):
    """Tests for parse_duration and format_duration"""

    def test_numbers_are_seconds(self):
        """Plain numbers are taken as seconds"""
        self.assertEqual(parse_duration(30), 30.0)
        self.assertEqual(parse_duration('2.5'), 2.5)

    def test_unit_strings(self):
        """Unit suffixes combine"""
        self.assertEqual(parse_duration('600s'), 600.0)
        self.assertEqual(parse_duration('10m'), 600.0)
        self.assertEqual(parse_duration('1h30m'), 5400.0)
        self.assertEqual(parse_duration('250ms'), 0.25)

    def test_empty_is_zero(self):
        """Missing durations parse as 0"""
        self.assertEqual(parse_duration(''), 0.0)
        self.assertEqual(parse_duration(None), 0.0)

    def test_invalid_duration(self):
        """Garbage raises ConfigError"""
        with self.assertRaises(ConfigError):
            parse_duration('ten minutes')

    def test_format_duration(self):
        """Durations render the way config files write them"""
        self.assertEqual(format_duration(600), '10m0s')
        self.assertEqual(format_duration(3600), '1h0m0s')
        self.assertEqual(format_duration(45), '45s')


class TestConfigFromDict(unittest.TestCase):
    """Tests for building the config dataclasses"""

    def test_defaults(self):
        """An empty mapping yields the documented defaults"""
        config = config_from_dict({})
        self.assertEqual(config.performance.max_threads, 1)
        self.assertEqual(config.performance.library_processing_timeout, 600.0)
        self.assertEqual(config.http_client.timeout, 30.0)
        self.assertEqual(config.http_client.max_retries, 3)
        self.assertEqual(config.processor.item_processor.rating_builder.timeout, 30.0)
        self.assertEqual(config.processor.library_processor.default_timeout, 600.0)
        self.assertEqual(config.tmdb.language, 'en-US')
        self.assertEqual(config.tmdb.region, 'US')

    def test_libraries_and_filters(self):
        """Library entries are parsed with filters and overlay"""
        config = config_from_dict(BASE_CONFIG)
        lib = config.plex.libraries[0]
        self.assertEqual(lib.name, 'Movies')
        self.assertEqual(lib.filters.years, ['2020', '2021'])
        self.assertEqual(lib.filters.added_at, 'last_7_days')
        self.assertEqual(lib.overlay.type, 'bar')
        self.assertEqual(config.performance.library_processing_timeout, 3600.0)
        self.assertEqual(config.processor.library_processor.default_timeout, 600.0)

    def test_enabled_libraries(self):
        """Only enabled libraries are returned"""
        data = {'plex': {'libraries': [{'name': 'A', 'enabled': True}, {'name': 'B', 'enabled': False}]}}
        config = config_from_dict(data)
        self.assertEqual([lib.name for lib in config.enabled_libraries()], ['A'])


class TestValidation(unittest.TestCase):
    """Tests for validate_config"""

    def test_valid_config(self):
        """The base fixture validates"""
        validate_config(config_from_dict(BASE_CONFIG))

    def test_plex_url_required(self):
        """Enabled plex needs a url"""
        config = config_from_dict({'plex': {'enabled': True, 'token': 't'}})
        with self.assertRaisesRegex(ConfigError, 'plex.url is required'):
            validate_config(config)

    def test_tmdb_key_required(self):
        """Enabled tmdb needs an api key"""
        config = config_from_dict({'tmdb': {'enabled': True}})
        with self.assertRaisesRegex(ConfigError, 'tmdb.api_key is required'):
            validate_config(config)

    def test_overlay_height_range(self):
        """Overlay height must be a fraction"""
        config = config_from_dict(BASE_CONFIG)
        config.plex.libraries[0].overlay.height = 1.5
        with self.assertRaisesRegex(ConfigError, r'overlay.height must be in \(0, 1\)'):
            validate_config(config)

    def test_unknown_overlay_type(self):
        """Only frame and bar overlays exist"""
        config = config_from_dict(BASE_CONFIG)
        config.plex.libraries[0].overlay.type = 'ribbon'
        with self.assertRaisesRegex(ConfigError, 'overlay.type must be one of frame, bar'):
            validate_config(config)

    def test_disabled_library_not_validated(self):
        """Overlay settings of disabled libraries are ignored"""
        config = config_from_dict(BASE_CONFIG)
        config.plex.libraries[0].enabled = False
        config.plex.libraries[0].overlay.type = 'ribbon'
        validate_config(config)


class TestLoadConfig(unittest.TestCase):
    """Tests for load_config with base and environment files"""

    def test_missing_base_config(self):
        """A missing config.yaml is a ConfigError"""
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(ConfigError):
                load_config(Path(tmp), 'DEV')

    def test_env_overlay_merges(self):
        """Non-empty env values override, empty ones keep the base"""
        with tempfile.TemporaryDirectory() as tmp:
            config_dir = Path(tmp)
            _write(config_dir / 'config.yaml', BASE_CONFIG)
            _write(config_dir / 'config.env.dev.yaml', {
                'performance': {'max_threads': 4},
                'http_client': {'max_retries': 0},
                'plex': {'token': 'dev-token'},
            })
            config = load_config(config_dir, 'DEV')

        self.assertEqual(config.performance.max_threads, 4)
        self.assertEqual(config.performance.library_processing_timeout, 3600.0)
        self.assertEqual(config.http_client.max_retries, 2)
        self.assertEqual(config.plex.token, 'dev-token')
        self.assertEqual(config.plex.url, 'http://plex:32400')
        self.assertEqual(len(config.plex.libraries), 1)

    def test_env_libraries_replace_base(self):
        """A non-empty libraries list in the env file replaces the base list"""
        with tempfile.TemporaryDirectory() as tmp:
            config_dir = Path(tmp)
            _write(config_dir / 'config.yaml', BASE_CONFIG)
            _write(config_dir / 'config.env.dev.yaml', {'plex': {'libraries': [{'name': 'Kids'}]}})
            config = load_config(config_dir, 'DEV')
        self.assertEqual([lib.name for lib in config.plex.libraries], ['Kids'])

    def test_debug_forbidden_in_prod(self):
        """PROD rejects debug logging"""
        data = dict(BASE_CONFIG, logger={'log_level': 'debug'})
        with tempfile.TemporaryDirectory() as tmp:
            config_dir = Path(tmp)
            _write(config_dir / 'config.yaml', data)
            with self.assertRaisesRegex(ConfigError, 'debug logging is not allowed in production'):
                load_config(config_dir, 'PROD')
            load_config(config_dir, 'DEV')


class TestResolveMaxThreads(unittest.TestCase):
    """Tests for resolve_max_threads"""

    def test_auto(self):
        """Zero uses all cores but one"""
        self.assertEqual(resolve_max_threads(0, cpu_count=8), 7)

    def test_capped(self):
        """Configured values are capped at cores minus one"""
        self.assertEqual(resolve_max_threads(16, cpu_count=8), 7)
        self.assertEqual(resolve_max_threads(2, cpu_count=8), 2)

    def test_never_below_one(self):
        """A single-core host still gets one worker"""
        self.assertEqual(resolve_max_threads(0, cpu_count=1), 1)


class TestSampleConfig(unittest.TestCase):
    """Tests for write_sample_config"""

    def test_writes_loadable_yaml(self):
        """The sample is valid YAML with every top-level section"""
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / 'config.yaml'
            self.assertTrue(write_sample_config(path))
            text = path.read_text()
            data = yaml.safe_load(text)
        self.assertIn('Media Rating Overlay configuration', text)
        for key in ('plex', 'tmdb', 'performance', 'http_client', 'logger', 'processor'):
            self.assertIn(key, data)
        self.assertIsInstance(config_from_dict(data), Config)

    def test_does_not_overwrite(self):
        """An existing file is left alone"""
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / 'config.yaml'
            path.write_text('keep: me\n')
            self.assertFalse(write_sample_config(path))
            self.assertEqual(path.read_text(), 'keep: me\n')


if __name__ == '__main__':
    unittest.main()
