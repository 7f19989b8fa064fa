"""
Script timers.

Timers are reactor timer records whose callback runs as the context that created them.
Reactor handles are reused once reclaimed, so every timer also gets a soft id from a
counter that is never reset: a cancel request only applies if both the handle and the
soft id match a live timer.
"""
import logging

from raild.context import ContextManager
from raild.reactor import Reactor, EventType, EventRecord

logger = logging.getLogger(__name__)


class Timer:
    """
    The value handed to scripts for a created timer.
    """
    __slots__ = ('soft_id', 'handle', 'ctx', 'callback', 'interval')

    def __init__(self, soft_id, handle, ctx, callback, interval=0):
        self.soft_id = soft_id
        self.handle = handle
        self.ctx = ctx
        self.callback = callback
        self.interval = interval

    def __repr__(self):
        return "Timer(soft_id=%s, handle=%s, ctx=%s, interval=%s)" % \
               (self.soft_id, self.handle, self.ctx, self.interval)


class TimerService:
    """
    Creates and cancels timers on behalf of contexts, and cancels every timer owned by a
    context when it is deallocated.
    """

    def __init__(self, reactor: Reactor, contexts: ContextManager):
        self.reactor = reactor
        self.contexts = contexts
        self._timers = {}       # handle -> Timer
        self._soft_id = 0
        reactor.bind(EventType.SCRIPT_TIMER, self._fire)
        reactor.expired.add(self._expired)
        contexts.add_teardown(self._teardown)

    def __len__(self):
        return len(self._timers)

    def timers(self):
        return tuple(self._timers.values())

    def create(self, initial, interval, callback, ctx=None) -> Timer:
        """
        Schedules callback after `initial` milliseconds and then every `interval`
        milliseconds; an interval of 0 fires only once.
        :param ctx: the owning context, the active context when not given.
        """
        if ctx is None:
            ctx = self.contexts.current
        handle = self.reactor.schedule(initial, interval, EventType.SCRIPT_TIMER)
        self._soft_id += 1
        timer = Timer(self._soft_id, handle, ctx, callback, interval)
        self._timers[handle] = timer
        logger.debug("created %s", timer)
        return timer

    def is_live(self, timer) -> bool:
        return isinstance(timer, Timer) and self._timers.get(timer.handle) is timer

    def cancel(self, timer):
        """
        Cancels the timer. Cancelling a timer that already fired (one-shot), was already
        cancelled or whose handle now belongs to another timer does nothing.
        """
        if not isinstance(timer, Timer):
            return
        current = self._timers.get(timer.handle)
        if current is None or current.soft_id != timer.soft_id:
            return
        self._cancel(current)

    def _cancel(self, timer):
        del self._timers[timer.handle]
        self.reactor.unregister(timer.handle)
        logger.debug("cancelled %s", timer)

    def _fire(self, record: EventRecord):
        timer = self._timers.get(record.handle)
        if timer is None:
            return
        try:
            self.contexts.switch(timer.ctx)
        except Exception as e:
            logger.error("cannot run %s: %s", timer, e)
            return
        try:
            timer.callback()
        except Exception:
            logger.exception("error in timer callback %s", timer)
        finally:
            self.contexts.restore()

    def _expired(self, handle):
        """ drops the bookkeeping of a one-shot timer collected by the reactor """
        timer = self._timers.pop(handle, None)
        if timer is not None:
            logger.debug("expired %s", timer)

    def _teardown(self, ctx):
        for timer in [t for t in self._timers.values() if t.ctx == ctx]:
            self._cancel(timer)
