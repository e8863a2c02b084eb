# -*- coding: utf-8 -*-
"""
Interface definitions for txauthz.
"""
from zope.interface import Attribute, Interface


class IChallenge(Interface):
    """
    One proof mechanism offered by the CA for an authorization.
    """
    typ = Attribute(
        """
        The challenge type, for example ``u'http-01'``.
        """)

    status = Attribute(
        """
        The last known status: ``pending``, ``processing``, ``valid`` or
        ``invalid``.
        """)

    token = Attribute(
        """
        The CA-issued token, if the challenge has one.
        """)

    def prepare():
        """
        Compute the proof payload for this challenge.

        This is a pure function of the account key and the token; it never
        touches the network.

        :return: The type-specific proof, or ``None`` for challenge types that
            have no proof we know how to compute.
        """

    def trigger(timeout=None):
        """
        Tell the CA the challenge is ready to be validated.

        :rtype: ``Deferred``
        :return: A deferred firing with the challenge, which does not wait for
            the validation itself.
        """

    def update(timeout=None):
        """
        Refresh the challenge from the CA.

        :rtype: ``Deferred``
        """


class IResponder(Interface):
    """
    Configuration for an ACME challenge responder.

    The actual responder may exist somewhere else, this interface is merely for
    an object that knows how to configure it.
    """
    challenge_type = Attribute(
        """
        The type of challenge this responder is able to respond for.

        Must correspond to one of the challenge types offered by the CA; for
        example, ``u'http-01'``.
        """)

    def start_responding(server_name, challenge):
        """
        Start responding for a particular challenge.

        :param str server_name: The server name for which the challenge is
            being completed.
        :param challenge: The `IChallenge` to fulfill; call its ``prepare``
            method for the proof.

        :rtype: ``Deferred``
        :return: A deferred firing when the challenge is ready to be verified.
        """

    def stop_responding(server_name, challenge):
        """
        Stop responding for a particular challenge.

        May be a noop if a particular responder does not need or implement
        explicit cleanup; implementations should not rely on this method always
        being called.

        :param str server_name: The server name for which the challenge is
            being completed.
        :param challenge: The `IChallenge` that was being fulfilled.
        """


__all__ = ['IChallenge', 'IResponder']
