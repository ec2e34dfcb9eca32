"""Unit tests for session settings and the CLI settings builder."""

import argparse
import unittest
import sys
from dataclasses import replace
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import config
from core.errors import InvalidConfig
from core.penalty import PenaltyBand
from core.settings import SessionSettings
from main import build_settings


def cli_args(**overrides) -> argparse.Namespace:
    values = dict(min=None, max=None, unit=None, backend=None, escalating=False,
                  unbounded=False, attention_checks=False, grace=None, silent=True, seed=None)
    values.update(overrides)
    return argparse.Namespace(**values)


class TestSessionSettings(unittest.TestCase):
    """Test cases for SessionSettings.validate()."""

    def test_defaults_are_valid(self):
        SessionSettings().validate()

    def test_from_config(self):
        settings = SessionSettings.from_config()
        self.assertEqual(settings.duration_unit, config.DURATION_UNIT)
        self.assertEqual(settings.grace_seconds, config.GRACE_SECONDS)
        self.assertTrue(settings.penalty_bands)

    def test_unit_seconds(self):
        self.assertEqual(SessionSettings(duration_unit="minutes").unit_seconds, 60)
        self.assertEqual(SessionSettings(duration_unit="seconds").unit_seconds, 1)

    def test_invalid_values(self):
        base = SessionSettings()
        bad = [
            dict(duration_unit="hours"),
            dict(backend="radar"),
            dict(penalty_bands=[]),
            dict(penalty_bands=[PenaltyBand(20, 10)]),
            dict(grace_seconds=-1),
            dict(praise_delay_range=(0.0, 5.0)),
            dict(attention_delay_range=(10.0, 5.0)),
            dict(attention_checks_enabled=True, backend="motion"),
            dict(attention_checks_enabled=True, backend="keypoint", attention_timeout_seconds=0),
            dict(bound_seconds=0),
            dict(negative_phrases=[]),
        ]
        for overrides in bad:
            with self.subTest(overrides=overrides):
                with self.assertRaises(InvalidConfig):
                    replace(base, **overrides).validate()

    def test_invalid_config_is_value_error(self):
        with self.assertRaises(ValueError):
            SessionSettings(duration_unit="hours").validate()


class TestBuildSettings(unittest.TestCase):
    """Test cases for command-line overrides."""

    def test_no_overrides(self):
        settings = build_settings(cli_args())
        self.assertEqual(settings.bounded, config.BOUNDED_SESSION)

    def test_overrides(self):
        settings = build_settings(cli_args(unit="seconds", backend="keypoint", escalating=True,
                                           unbounded=True, attention_checks=True, grace=0))
        self.assertEqual(settings.duration_unit, "seconds")
        self.assertEqual(settings.backend, "keypoint")
        self.assertEqual(len(settings.penalty_bands), len(config.PENALTY_BANDS_ESCALATING))
        self.assertFalse(settings.bounded)
        self.assertTrue(settings.attention_checks_enabled)
        self.assertEqual(settings.grace_seconds, 0)

    def test_attention_checks_need_keypoint(self):
        with self.assertRaises(InvalidConfig):
            build_settings(cli_args(backend="motion", attention_checks=True))


if __name__ == '__main__':
    unittest.main()
