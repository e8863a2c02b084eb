"""
Resources the CA keeps state for: registrations, authorizations and
challenges.

A resource is a local snapshot of the CA's view, bound to a `Session` and
identified by its location.  It only changes when explicitly refreshed, and
every refresh replaces the snapshot as a whole.
"""
import attr
from eliot.twisted import DeferredContext
from josepy.errors import DeserializationError
from twisted.web import http

from txauthz.errors import ProtocolError, StatusRegression
from txauthz.logging import LOG_RESOURCE_DEACTIVATE, LOG_RESOURCE_UPDATE
from txauthz.util import tap

STATUS_UNKNOWN = u'unknown'
STATUS_PENDING = u'pending'
STATUS_PROCESSING = u'processing'
STATUS_VALID = u'valid'
STATUS_INVALID = u'invalid'
STATUS_REVOKED = u'revoked'
STATUS_DEACTIVATED = u'deactivated'
STATUS_EXPIRED = u'expired'


@attr.s(eq=False)
class Resource(object):
    """
    Base class for CA-side resources.

    Subclasses provide ``body_class`` (the `josepy.JSONObjectWithFields` to
    decode with), ``terminal_statuses`` and `_decode`.

    :ivar session: The `~txauthz.session.Session` the resource is bound to.
    :ivar str location: The URL of the resource.
    :ivar str status: The last status, or ``None`` before the first fetch.
    :ivar body: The decoded body of the last snapshot.
    :ivar dict json: The raw JSON of the last snapshot.
    :ivar fetched_at: When the last snapshot was fetched.
    :ivar retry_after: Seconds the CA asked us to wait before asking again.
    """
    resource_type = None
    body_class = None
    terminal_statuses = frozenset()
    deactivation_class = None

    session = attr.ib(repr=False)
    location = attr.ib()
    status = attr.ib(default=None)
    body = attr.ib(default=None, init=False, repr=False)
    json = attr.ib(default=None, init=False, repr=False)
    fetched_at = attr.ib(default=None, init=False, repr=False)
    retry_after = attr.ib(default=None, init=False, repr=False)
    _observed_status = attr.ib(default=None, init=False, repr=False)

    @classmethod
    def fetch(cls, session, location, timeout=None):
        """
        Bind a resource to its location and fetch its current state.

        :return: ``Deferred`` firing with the resource.
        """
        return cls(session=session, location=location).update(timeout=timeout)

    def update(self, timeout=None):
        """
        Refresh the snapshot from the CA.

        If the CA reports the resource in a non-terminal status after it was
        seen in a terminal one, the previous snapshot is kept and
        `~txauthz.errors.StatusRegression` is raised.

        :return: ``Deferred`` firing with the resource itself.
        """
        action = LOG_RESOURCE_UPDATE(
            resource_type=self.resource_type, location=self.location)
        with action.context():
            return (
                DeferredContext(self._fetch(timeout))
                .addCallback(self._cb_update)
                .addCallback(
                    tap(lambda resource: action.add_success_fields(
                        status=resource.status)))
                .addActionFinish())

    def _fetch(self, timeout):
        return self.session.client.get(
            self.location, session=self.session, timeout=timeout)

    def _cb_update(self, response):
        if response.json is None and response.code == http.ACCEPTED:
            # Not ready yet; all we learn is when to ask again.
            self.retry_after = response.retry_after
            return self
        self.unmarshal(response.json)
        self._record_response(response)
        return self

    def _record_response(self, response):
        self.retry_after = response.retry_after
        self.fetched_at = self.session.clock.seconds()

    def unmarshal(self, jobj):
        """
        Replace the snapshot with a JSON document received from the CA.

        :param dict jobj: The resource as the CA described it.

        :raises txauthz.errors.ProtocolError: If the document is malformed;
            the snapshot is left untouched.
        """
        if not isinstance(jobj, dict):
            raise ProtocolError(
                'Expected a JSON object, got {!r}'.format(jobj),
                url=self.location)
        try:
            body = self.body_class.from_json(jobj)
        except DeserializationError as error:
            raise ProtocolError(str(error), url=self.location)
        self._check_regression(body.status)
        derived = self._decode(body)
        for name, value in derived.items():
            setattr(self, name, value)
        self.body = body
        self.json = jobj
        self.status = body.status
        self._observed_status = body.status
        return self

    def _decode(self, body):
        """
        Compute the fields derived from a new body.

        Must not modify the resource; raise
        `~txauthz.errors.ProtocolError` on malformed content.

        :rtype: dict
        """
        return {}

    def _regressed(self, previous, current):
        return (
            previous in self.terminal_statuses
            and current not in self.terminal_statuses)

    def _check_regression(self, status):
        previous = self._observed_status
        if previous is not None and self._regressed(previous, status):
            raise StatusRegression(
                '{} went from {} back to {}'.format(
                    self.resource_type, previous, status),
                url=self.location,
                previous=previous,
                current=status)

    @property
    def terminal(self):
        """
        Whether the last snapshot is in a terminal status.
        """
        return self.status in self.terminal_statuses

    def deactivate(self, timeout=None):
        """
        Ask the CA to deactivate the resource.

        The status is set to ``deactivated`` once the CA accepts; that status
        is not taken as observed, so a later `update` may still report
        something else.

        :return: ``Deferred`` firing with the resource itself.
        """
        if self.deactivation_class is None:
            raise NotImplementedError(
                '{} cannot be deactivated'.format(self.resource_type))
        action = LOG_RESOURCE_DEACTIVATE(
            resource_type=self.resource_type, location=self.location)
        with action.context():
            return (
                DeferredContext(
                    self.session.client.post(
                        self.location,
                        self.deactivation_class(status=STATUS_DEACTIVATED),
                        self.session,
                        timeout=timeout))
                .addCallback(self._cb_deactivated)
                .addActionFinish())

    def _cb_deactivated(self, response):
        self.status = STATUS_DEACTIVATED
        return self


__all__ = [
    'Resource', 'STATUS_UNKNOWN', 'STATUS_PENDING', 'STATUS_PROCESSING',
    'STATUS_VALID', 'STATUS_INVALID', 'STATUS_REVOKED', 'STATUS_DEACTIVATED',
    'STATUS_EXPIRED']
