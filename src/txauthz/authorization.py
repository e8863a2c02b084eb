"""
Authorizations: proof of control over one identifier, and the choice of
challenges that provides it.
"""
import attr
from eliot.twisted import DeferredContext
from twisted.web import http

from txauthz.challenges import challenge_from_json
from txauthz.errors import ProtocolError
from txauthz.logging import LOG_ACME_CREATE_AUTHORIZATION
from txauthz.messages import (
    AuthorizationBody, NewAuthorization, UpdateAuthorization,
    fqdn_identifier)
from txauthz.resource import (
    Resource, STATUS_DEACTIVATED, STATUS_EXPIRED, STATUS_INVALID,
    STATUS_REVOKED, STATUS_VALID)
from txauthz.transport import expect_code
from txauthz.util import tap


def _is_index(value, size):
    return (
        isinstance(value, int) and not isinstance(value, bool)
        and 0 <= value < size)


@attr.s(eq=False)
class Authorization(Resource):
    """
    An authorization for one identifier.

    :ivar str identifier: The identifier value, eg. the domain name.
    :ivar str identifier_type: The identifier type, eg. ``u'dns'``.
    :ivar expires: When the authorization expires, if the CA said.
    :ivar challenges: The challenges offered, in CA order.
    :ivar combinations: The sets of challenges the CA accepts as sufficient,
        in CA order; each is a tuple of challenges.
    """
    resource_type = u'authz'
    body_class = AuthorizationBody
    terminal_statuses = frozenset([
        STATUS_VALID, STATUS_INVALID, STATUS_REVOKED, STATUS_DEACTIVATED,
        STATUS_EXPIRED])
    deactivation_class = UpdateAuthorization

    identifier = attr.ib(default=None, init=False)
    identifier_type = attr.ib(default=None, init=False, repr=False)
    expires = attr.ib(default=None, init=False, repr=False)
    challenges = attr.ib(default=(), init=False, repr=False)
    combinations = attr.ib(default=(), init=False, repr=False)

    @classmethod
    def create(cls, session, domain, timeout=None):
        """
        Ask the CA for a new authorization for a domain name.

        :param session: The `~txauthz.session.Session` of a registered
            account.
        :param str domain: The domain name to authorize.

        :return: ``Deferred`` firing with the `Authorization`.
        """
        action = LOG_ACME_CREATE_AUTHORIZATION(identifier=domain)
        with action.context():
            message = NewAuthorization(identifier=fqdn_identifier(domain))
            return (
                DeferredContext(
                    session.client.post(
                        session.resource_uri(u'new-authz'), message, session,
                        timeout=timeout))
                .addCallback(cls._cb_created, session)
                .addCallback(
                    tap(lambda authz: action.add_success_fields(
                        location=authz.location, status=authz.status)))
                .addActionFinish())

    @classmethod
    def _cb_created(cls, response, session):
        expect_code(response, {http.CREATED})
        if response.location is None:
            raise ProtocolError(
                'Authorization created without a Location', url=response.url)
        authz = cls(session=session, location=response.location)
        return authz._cb_update(response)

    def _decode(self, body):
        challenges = tuple(
            challenge_from_json(self.session, jobj)
            for jobj in body.challenges)
        previous = {
            challenge.location: challenge
            for challenge in self.challenges
            if challenge.location is not None}
        for challenge in challenges:
            old = previous.get(challenge.location)
            if old is not None:
                old._check_regression(challenge.status)

        if body.combinations is None:
            combinations = tuple((challenge,) for challenge in challenges)
        else:
            combinations = []
            for combination in body.combinations:
                if len(combination) == 0 or not all(
                        _is_index(index, len(challenges))
                        for index in combination):
                    raise ProtocolError(
                        'Invalid combination {!r} for {} challenges'.format(
                            combination, len(challenges)),
                        url=self.location)
                combinations.append(
                    tuple(challenges[index] for index in combination))
            combinations = tuple(combinations)

        identifier = body.identifier
        return dict(
            identifier=None if identifier is None else identifier.value,
            identifier_type=None if identifier is None else identifier.typ,
            expires=body.expires,
            challenges=challenges,
            combinations=combinations)

    def find_challenge(self, typ):
        """
        Find the offered challenge of a type, whether or not it is part of
        any combination.

        :param str typ: The challenge type, eg. ``u'dns-01'``.

        :return: The challenge, or ``None``.
        """
        for challenge in self.challenges:
            if challenge.typ == typ:
                return challenge
        return None

    def find_combination(self, *types):
        """
        Find the challenges to complete, given the types we can complete.

        The combinations are tried in the order the CA listed them, and the
        first one made up only of the given types wins.  A combination is
        never satisfied partially.

        :param str types: The challenge types we are able to complete.

        :return: The challenges of the combination, in the combination's
            order, or ``None``.
        """
        available = set(types)
        for combination in self.combinations:
            if set(challenge.typ for challenge in combination) <= available:
                return list(combination)
        return None


__all__ = ['Authorization']
