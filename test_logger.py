"""
Tests for the shared pipeline logging setup.
"""

import logging

import pytest

from config import Config
from logger import Logger, format_fields, get_logger


@pytest.fixture(autouse=True)
def restore_level():
    yield
    Logger.set_level(Config.LOG_LEVEL)


def test_loggers_are_cached_and_share_one_handler():
    first = get_logger('intelligence.test_a')
    second = get_logger('intelligence.test_b')

    assert get_logger('intelligence.test_a') is first
    assert Logger.handler() in first.handlers
    assert Logger.handler() in second.handlers


def test_set_level_reaches_existing_and_later_loggers():
    existing = get_logger('intelligence.test_existing')

    Logger.set_level('debug')
    later = get_logger('intelligence.test_later')

    assert existing.level == logging.DEBUG
    assert later.level == logging.DEBUG


def test_unknown_level_falls_back_to_info():
    Logger.set_level('chatty')

    assert Logger.level() == logging.INFO


def test_format_fields():
    line = format_fields(query_id='q1', confidence=0.87654, tokens=400, reason=None)

    assert line == 'query_id=q1 confidence=0.877 tokens=400'


def test_format_fields_shortens_long_values():
    line = format_fields(query='x' * 100)

    assert line == 'query=' + 'x' * 60 + '...'
