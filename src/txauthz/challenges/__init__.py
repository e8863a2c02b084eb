"""
Challenge types.

Importing this package registers every type we know; anything else the CA
offers is represented by the generic `Challenge`.
"""
from ._base import (
    Challenge, KeyAuthorizationChallenge, challenge_class,
    challenge_from_json, register_challenge)
from ._dns import DNS01Challenge
from ._http import HTTP01Challenge
from ._oob import OOB01Challenge
from ._tls import TLSSNI02Challenge


__all__ = [
    'Challenge', 'KeyAuthorizationChallenge', 'DNS01Challenge',
    'HTTP01Challenge', 'OOB01Challenge', 'TLSSNI02Challenge',
    'challenge_class', 'challenge_from_json', 'register_challenge']
