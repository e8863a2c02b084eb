"""
Driving a resource to a terminal status.
"""
import attr
from eliot.twisted import inline_callbacks
from twisted.internet import defer
from twisted.internet.task import deferLater

from txauthz.errors import DeadlineExceeded, PollingTimeout
from txauthz.logging import LOG_POLL, LOG_POLL_WAIT


@attr.s
class Poller(object):
    """
    Refreshes a resource until it reaches a terminal status.

    Between attempts it waits for as long as the CA asked with
    ``Retry-After``, or else for an exponentially growing delay starting at
    ``initial_delay`` and capped at ``max_delay``.  A wait that would run
    into the deadline is shortened so that a final attempt still gets
    ``min_attempt_time`` seconds.

    :ivar clock: ``IReactorTime`` provider used for waiting and deadlines.
    """
    clock = attr.ib()
    initial_delay = attr.ib(default=0.5)
    max_delay = attr.ib(default=30.0)
    min_attempt_time = attr.ib(default=1.0)

    def _timed_out(self, resource, timeout):
        return PollingTimeout(
            url=resource.location, timeout=timeout, resource=resource,
            status=resource.status)

    @inline_callbacks
    def poll_until_terminal(self, resource, terminal_statuses=None,
                            timeout=300.0):
        """
        Poll a resource.

        Reaching a terminal status is success, whatever the status is; only
        running out of time is an error.

        :param resource: The `~txauthz.resource.Resource` to refresh.
        :param terminal_statuses: The statuses to stop at; the resource's own
            terminal statuses by default.
        :param float timeout: Seconds before giving up.

        :raises txauthz.errors.PollingTimeout: If no terminal status was seen
            in time; the resource keeps its last snapshot.

        :return: ``Deferred`` firing with the terminal status.
        """
        if terminal_statuses is None:
            terminal_statuses = resource.terminal_statuses
        deadline = self.clock.seconds() + timeout
        delay = self.initial_delay
        attempts = 0
        with LOG_POLL(location=resource.location,
                      timeout=float(timeout)) as action:
            while True:
                remaining = deadline - self.clock.seconds()
                if remaining <= 0:
                    raise self._timed_out(resource, timeout)
                try:
                    yield resource.update(timeout=remaining)
                except DeadlineExceeded:
                    raise self._timed_out(resource, timeout)
                attempts += 1
                if resource.status in terminal_statuses:
                    action.add_success_fields(
                        status=resource.status, attempts=attempts)
                    break

                wait = resource.retry_after
                if wait is None:
                    wait = delay
                    delay = min(delay * 2, self.max_delay)
                remaining = deadline - self.clock.seconds()
                if remaining > self.min_attempt_time:
                    wait = min(wait, remaining - self.min_attempt_time)
                else:
                    # No room for another attempt.
                    wait = max(remaining, 0)
                with LOG_POLL_WAIT(status=resource.status, delay=float(wait)):
                    yield deferLater(self.clock, wait, lambda: None)
        defer.returnValue(resource.status)


__all__ = ['Poller']
