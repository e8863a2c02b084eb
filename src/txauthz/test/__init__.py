"""
Tests for txauthz.

eliot messages end up in trial's log.  Set ``HYPOTHESIS_PROFILE`` to
``ci`` to run more examples.
"""
import os

from eliot.twisted import redirectLogsForTrial
from hypothesis import HealthCheck, settings


redirectLogsForTrial()

# Examples sign requests and generate keys, which is slow.
settings.register_profile(
    'dev', max_examples=10, deadline=None)
settings.register_profile(
    'ci', max_examples=50, deadline=None,
    suppress_health_check=[HealthCheck.too_slow])
settings.load_profile(os.environ.get('HYPOTHESIS_PROFILE', 'dev'))
