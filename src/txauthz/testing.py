"""
Utilities for testing with txauthz.
"""
import attr
from zope.interface import implementer

from txauthz.interfaces import IResponder


@implementer(IResponder)
@attr.s
class NullResponder(object):
    """
    A responder that does absolutely nothing.
    """
    challenge_type = attr.ib()

    def start_responding(self, server_name, challenge):
        pass

    def stop_responding(self, server_name, challenge):
        pass


@implementer(IResponder)
@attr.s
class RecordingResponder(object):
    """
    A responder that remembers what it is currently responding for.

    ``challenges`` holds ``(server_name, challenge, proof)`` tuples, where
    ``proof`` is what the challenge prepared.
    """
    challenges = attr.ib()
    challenge_type = attr.ib()

    def start_responding(self, server_name, challenge):
        self.challenges.add((server_name, challenge, challenge.prepare()))

    def stop_responding(self, server_name, challenge):
        self.challenges.discard(
            (server_name, challenge, challenge.prepare()))


__all__ = ['NullResponder', 'RecordingResponder']
