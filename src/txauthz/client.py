"""
Completing authorizations with challenge responders.
"""
import attr
from eliot.twisted import inline_callbacks
from twisted.internet import defer

from txauthz.errors import ACMEError
from txauthz.logging import LOG_ACME_ANSWER_CHALLENGES
from txauthz.poller import Poller


@attr.s(auto_exc=True)
class NoSupportedCombination(ACMEError):
    """
    No combination offered by an authorization can be completed with the
    available responders.
    """
    authorization = attr.ib()
    challenge_types = attr.ib(default=())


def _find_supported_combination(authorization, responders):
    """
    Find a challenge combination that the responders can satisfy, pairing each
    challenge with its responder.

    :param ~txauthz.authorization.Authorization authorization: The
        authorization to examine.

    :type responders: List[`~txauthz.interfaces.IResponder`]
    :param responders: The possible responders to use.

    :raises NoSupportedCombination: When a suitable challenge combination is
        not found.

    :rtype: List[Tuple[`~txauthz.interfaces.IResponder`,
            `~txauthz.interfaces.IChallenge`]]
    """
    by_type = {}
    for responder in responders:
        by_type.setdefault(responder.challenge_type, responder)
    combination = authorization.find_combination(*by_type)
    if combination is None:
        raise NoSupportedCombination(
            authorization, challenge_types=tuple(by_type))
    return [(by_type[challenge.typ], challenge) for challenge in combination]


@inline_callbacks
def answer_challenges(authorization, responders, clock, timeout=300.0,
                      poller=None):
    """
    Complete an authorization using responders.

    Picks the first combination the responders can satisfy, starts a responder
    for each of its challenges, triggers them and waits for the authorization
    to reach a terminal status for a maximum of ``timeout`` seconds.  The
    responders are stopped again whatever happens.

                      pending --------------------+
                         |                        |
       Challenge failure |                        |
              or         |                        |
             Error       |  Challenge valid       |
               +---------+---------+              |
               |                   |              |
               V                   V              |
            invalid              valid            |
                                   |              |
                    +--------------+--------------+
                    |              |              |
             Server |       Client |   Time after |
             revoke |   deactivate |    "expires" |
                    V              V              V
                 revoked      deactivated      expired

    :param ~txauthz.authorization.Authorization authorization:
        The authorization to answer the challenges for; it should be fresh.

    :type responders: List[`~txauthz.interfaces.IResponder`]
    :param responders: A list of responders that can be used to complete the
        challenges with.
    :param clock: The ``IReactorTime`` implementation to use; usually the
        reactor, when not testing.
    :param float timeout: Maximum time to poll in seconds, before giving up.
    :param ~txauthz.poller.Poller poller: The poller to use; by default one
        with the default delays on ``clock``.

    :raises NoSupportedCombination: If no combination can be completed.
    :raises txauthz.errors.PollingTimeout: If the authorization did not reach
        a terminal status in time.

    :return: A deferred firing with the authorization once it is terminal;
        check its ``status`` to tell success from failure.
    """
    if poller is None:
        poller = Poller(clock)
    server_name = authorization.identifier
    pairs = _find_supported_combination(authorization, responders)
    started = []
    with LOG_ACME_ANSWER_CHALLENGES(
            identifier=server_name,
            challenge_types=[challenge.typ for _, challenge in pairs]
            ) as action:
        try:
            for responder, challenge in pairs:
                yield defer.maybeDeferred(
                    responder.start_responding, server_name, challenge)
                started.append((responder, challenge))
            for _, challenge in pairs:
                yield challenge.trigger()
            status = yield poller.poll_until_terminal(
                authorization, timeout=timeout)
            action.add_success_fields(status=status)
        finally:
            for responder, challenge in started:
                yield defer.maybeDeferred(
                    responder.stop_responding, server_name, challenge)
    defer.returnValue(authorization)


__all__ = ['answer_challenges', 'NoSupportedCombination']
