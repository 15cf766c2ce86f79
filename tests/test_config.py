#!/usr/bin/env python3
"""
Tests for environment driven settings
"""

import importlib

import pytest

from purescan import config


@pytest.fixture
def env(monkeypatch):
    yield monkeypatch
    monkeypatch.undo()
    importlib.reload(config)


class TestConfig:

    def test_settings_read_from_environment(self, env):
        env.setenv('LOG_LEVEL', 'DEBUG')
        env.setenv('MAX_FAILED_READS', '7')
        env.setenv('CAMERA_INDICES', '2, 3')

        reloaded = importlib.reload(config).Config

        assert reloaded.LOG_LEVEL == 'DEBUG'
        assert reloaded.MAX_FAILED_READS == 7
        assert reloaded.CAMERA_INDICES == [2, 3]

    def test_defaults(self, env):
        for name in ('LOG_LEVEL', 'MAX_FAILED_READS', 'STABILITY_WINDOW', 'STABILITY_THRESHOLD'):
            env.delenv(name, raising=False)

        reloaded = importlib.reload(config).Config

        assert reloaded.LOG_LEVEL == 'INFO'
        assert reloaded.MAX_FAILED_READS == 30
        assert (reloaded.STABILITY_WINDOW, reloaded.STABILITY_THRESHOLD) == (6, 3)
