"""CLI wiring of the auto-sync scheduler."""
import dataclasses
from argparse import Namespace

from availability_sync_cli import build_scheduler
from tests.conftest import FEED_ID, PROPERTY_ID


def auto_sync_args(**overrides):
    values = dict(property_id=PROPERTY_ID, interval=None, iterations=None, user_id=None, enable=False)
    values.update(overrides)
    return Namespace(**values)


def test_scheduler_follows_config_enabled_flag(sync_config):
    disabled = dataclasses.replace(sync_config, auto_sync_enabled=False)
    enabled = dataclasses.replace(sync_config, auto_sync_enabled=True, auto_sync_interval_seconds=900)

    assert build_scheduler(object(), FEED_ID, auto_sync_args(), disabled).enabled is False

    scheduler = build_scheduler(object(), FEED_ID, auto_sync_args(), enabled)
    assert scheduler.enabled is True
    assert scheduler.interval_seconds == 900


def test_command_line_overrides_config(sync_config):
    disabled = dataclasses.replace(sync_config, auto_sync_enabled=False)

    scheduler = build_scheduler(
        object(), FEED_ID, auto_sync_args(enable=True, interval=60, iterations=2, user_id='user-9'), disabled
    )

    assert scheduler.enabled is True
    assert scheduler.interval_seconds == 60
    assert scheduler.max_iterations == 2
    assert scheduler.user_id == 'user-9'
