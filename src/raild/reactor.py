"""
The single-threaded dispatch loop.

Descriptors and timers are registered as EventRecords held in a slot arena; the slot index
is the record's handle and also the id of the context allocated for it. Records removed
while a batch is being dispatched are only marked for purging and are reclaimed once the
batch is done, so a handle in the current batch never refers to a freed or reused slot.
"""
import heapq
import logging
import selectors
import time
from enum import Enum

from raild.context import ContextManager, ContextClass
from raild.errors import RaildError
from raild.support.events import EventSource

logger = logging.getLogger(__name__)

# default time to wait for events before looping, in milliseconds
WAIT_TIMEOUT = 1000

# maximum number of records returned by one wait()
MAX_EVENTS = 64


class ReactorError(RaildError):
    """ Invalid use of the reactor, such as registering a descriptor twice. """


class EventType(Enum):
    UART = 'UART'
    UART_TIMER = 'UART_TIMER'
    API_SERVER = 'API_SERVER'
    API_CLIENT = 'API_CLIENT'
    SCRIPT_TIMER = 'SCRIPT_TIMER'


def context_class_for(event_type: EventType) -> ContextClass:
    """
    >>> context_class_for(EventType.API_CLIENT)
    <ContextClass.API_CLIENT: 'API_CLIENT'>
    >>> context_class_for(EventType.SCRIPT_TIMER)
    <ContextClass.TIMER: 'TIMER'>
    >>> context_class_for(EventType.UART)
    <ContextClass.UNKNOWN: 'UNKNOWN'>
    """
    if event_type is EventType.API_CLIENT:
        return ContextClass.API_CLIENT
    if event_type in (EventType.UART_TIMER, EventType.SCRIPT_TIMER):
        return ContextClass.TIMER
    return ContextClass.UNKNOWN


class EventRecord:
    """
    A registered descriptor or timer.
    :param handle: the arena slot of this record
    :param fd: the watched descriptor (None for timers)
    :param type: the EventType, which selects the dispatch handler
    :param payload: an opaque value owned by whoever registered the record
    """

    def __init__(self, handle, fd, type, timer=False, payload=None):
        self.handle = handle
        self.fd = fd
        self.type = type
        self.timer = timer
        self.payload = payload
        self.purge = False
        self.fileno = None
        self.deadline = None
        self.interval = 0
        self.armed = None

    def __repr__(self):
        return "EventRecord(handle=%s, type=%s, timer=%s, purge=%s)" % \
               (self.handle, self.type.value, self.timer, self.purge)


class Reactor:
    """
    Waits for readable descriptors and due timers, and dispatches them to the handler bound
    to their type. The only blocking call in the daemon is the select in wait().

    One-shot timers are unregistered after dispatch, and their handle is then published to
    the `expired` event source.
    """

    def __init__(self, contexts: ContextManager, selector=None, clock=time.monotonic):
        self.contexts = contexts
        self.selector = selector if selector is not None else selectors.DefaultSelector()
        self.clock = clock
        self.expired = EventSource()
        self._slots = [None]            # slot 0 is never used, handle 0 is the internal context
        self._free = []
        self._fds = {}
        self._timers = []               # heap of (deadline, sequence, handle)
        self._sequence = 0
        self._handlers = {}
        self._running = False

    def bind(self, type: EventType, handler):
        """ sets the callable invoked with the EventRecord when a record of the given type is ready. """
        self._handlers[type] = handler

    def record(self, handle) -> EventRecord:
        record = self._slots[handle] if 0 < handle < len(self._slots) else None
        if record is None:
            raise ReactorError("no event record for handle %s" % handle)
        return record

    def records(self):
        """ the live (not purged) records """
        return tuple(r for r in self._slots if r is not None and not r.purge)

    def _allocate(self, fd, type, timer, payload):
        if self._free:
            handle = self._free.pop()
        else:
            handle = len(self._slots)
            self._slots.append(None)
        record = EventRecord(handle, fd, type, timer, payload)
        self._slots[handle] = record
        self.contexts.allocate(handle, context_class_for(type))
        return record

    def register(self, fd, type: EventType, payload=None):
        """
        Starts watching fd for read readiness.
        :param fd: a file descriptor or an object with a fileno() method
        :return: the handle of the new record
        """
        key = fd if isinstance(fd, int) else fd.fileno()
        if key in self._fds:
            raise ReactorError("descriptor %s is already registered" % key)
        record = self._allocate(fd, type, False, payload)
        try:
            self.selector.register(fd, selectors.EVENT_READ, record)
        except Exception:
            self.contexts.deallocate(record.handle)
            self._slots[record.handle] = None
            self._free.append(record.handle)
            raise
        record.fileno = key
        self._fds[key] = record
        logger.debug("registered %s", record)
        return record.handle

    def schedule(self, initial, interval, type: EventType, payload=None):
        """
        Registers a timer firing after `initial` milliseconds and then every `interval`
        milliseconds. An interval of 0 makes a one-shot timer.
        :return: the handle of the timer record
        """
        for delay in (initial, interval):
            if isinstance(delay, bool) or not isinstance(delay, int):
                raise ReactorError("timer delays must be integer milliseconds, got %r" % (delay,))
        if initial < 1:
            initial = 1
        if interval < 0:
            raise ReactorError("timer interval must not be negative: %s" % interval)
        record = self._allocate(None, type, True, payload)
        record.interval = interval
        self._arm(record, self.clock() + initial / 1000.0)
        logger.debug("scheduled %s in %sms every %sms", record, initial, interval)
        return record.handle

    def _arm(self, record, deadline):
        self._sequence += 1
        record.deadline = deadline
        record.armed = self._sequence
        heapq.heappush(self._timers, (deadline, self._sequence, record.handle))

    def unregister(self, handle):
        """
        Deallocates the record's context and stops watching it. The record itself stays in
        its slot, marked for purging, until reclaim() is called.
        """
        record = self.record(handle)
        if record.purge:
            return
        record.purge = True
        if record.timer:
            record.deadline = None
        else:
            self._fds.pop(record.fileno, None)
            try:
                self.selector.unregister(record.fd)
            except (KeyError, ValueError) as e:
                logger.debug("descriptor for %s already gone: %s", record, e)
        self.contexts.deallocate(handle)
        logger.debug("unregistered %s", record)

    def reclaim(self):
        """ frees the slots of every record marked for purging. """
        for handle, record in enumerate(self._slots):
            if record is not None and record.purge:
                self._slots[handle] = None
                self._free.append(handle)

    def _next_deadline(self):
        timers = self._timers
        while timers:
            deadline, sequence, handle = timers[0]
            record = self._slots[handle]
            if record is not None and record.timer and record.deadline is not None and record.armed == sequence:
                return deadline
            heapq.heappop(timers)       # stale entry: cancelled, purged or re-armed
        return None

    def _due_timers(self, now, limit):
        due = []
        while len(due) < limit:
            deadline = self._next_deadline()
            if deadline is None or deadline > now:
                break
            _, _, handle = heapq.heappop(self._timers)
            record = self._slots[handle]
            if record.interval:
                period = record.interval / 1000.0
                following = deadline + period
                if following <= now:
                    # a late timer is re-armed from now instead of firing repeatedly to catch up
                    following = now + period
                self._arm(record, following)
            else:
                record.deadline = None
            due.append(record)
        return due

    def wait(self, timeout=WAIT_TIMEOUT):
        """
        Blocks until at least one descriptor is readable, a timer is due or the timeout
        (in milliseconds) elapses.
        :return: a list of at most MAX_EVENTS ready records
        """
        seconds = timeout / 1000.0 if timeout is not None else None
        deadline = self._next_deadline()
        if deadline is not None:
            until = max(0.0, deadline - self.clock())
            seconds = until if seconds is None else min(seconds, until)
        ready = [key.data for key, mask in self.selector.select(seconds)][:MAX_EVENTS]
        ready.extend(self._due_timers(self.clock(), MAX_EVENTS - len(ready)))
        return ready

    def dispatch(self, batch):
        for record in batch:
            if record.purge:
                continue
            handler = self._handlers.get(record.type)
            if handler is None:
                logger.warning("no handler bound for %s", record)
            else:
                handler(record)
            if record.timer and not record.interval and not record.purge:
                self.unregister(record.handle)
                self.expired.fire(record.handle)

    def run_once(self, timeout=WAIT_TIMEOUT):
        batch = self.wait(timeout)
        try:
            self.dispatch(batch)
        finally:
            self.reclaim()
        return batch

    def run(self, timeout=WAIT_TIMEOUT):
        """ runs the dispatch loop until stop() is called. """
        self._running = True
        logger.info("event loop started")
        while self._running:
            self.run_once(timeout)
        logger.info("event loop stopped")

    def stop(self):
        self._running = False

    def close(self):
        self.selector.close()
