"""
Context-scoped publish/subscribe.

Handlers remember the context that was active when they were registered and always run
as that context. When a context is deallocated its handlers are dropped, or, if they
were registered as persistent, handed over to the internal context.
"""
import logging
from collections import OrderedDict

from raild.context import ContextManager, INTERNAL_CONTEXT

logger = logging.getLogger(__name__)


class Handler:
    __slots__ = ('ctx', 'fn', 'persistent', 'once')

    def __init__(self, ctx, fn, persistent=False, once=False):
        self.ctx = ctx
        self.fn = fn
        self.persistent = persistent
        self.once = once

    def __repr__(self):
        return "Handler(ctx=%s, fn=%r, persistent=%s, once=%s)" % (self.ctx, self.fn, self.persistent, self.once)


class EventEmitter:
    """
    Dispatches named events to handlers, in registration order.

    A failing handler is logged and the remaining handlers still run. The emitter holds a
    teardown hook with the context manager only while it has handlers. close() drops every
    handler.
    """

    def __init__(self, contexts: ContextManager, name=None):
        self.contexts = contexts
        self.name = name
        self._events = OrderedDict()

    def close(self):
        self.contexts.remove_teardown(self._teardown)
        self._events.clear()

    def handlers(self, event):
        return tuple(self._events.get(event, ()))

    def events(self):
        return tuple(event for event, handlers in self._events.items() if handlers)

    def on(self, event, fn, persistent=False):
        """
        Registers fn for the event, owned by the active context.
        :param persistent: when True, the handler survives deallocation of its context
            and continues under the internal context.
        """
        return self._add(event, fn, persistent, False)

    def once(self, event, fn, persistent=False):
        """ as on(), but the handler is removed after it has run once. """
        return self._add(event, fn, persistent, True)

    def _add(self, event, fn, persistent, once):
        if not callable(fn):
            raise TypeError("event handler must be callable, got %s" % type(fn).__name__)
        handler = Handler(self.contexts.current, fn, bool(persistent), once)
        self._events.setdefault(event, []).append(handler)
        self.contexts.add_teardown(self._teardown)
        return fn

    def off(self, event, fn=None):
        """
        Removes fn from the handlers of the event, or every handler registered for the event
        by the active context when fn is None.
        """
        handlers = self._events.get(event)
        if not handlers:
            return
        if fn is not None:
            handlers[:] = [h for h in handlers if h.fn != fn]
        else:
            ctx = self.contexts.current
            handlers[:] = [h for h in handlers if h.ctx != ctx]
        self._release_if_idle()

    def emit(self, event, *args):
        """
        Calls the handlers for the event with args. Handlers registered or removed while
        the event is being emitted take effect from the next emit. A once handler is removed
        before it runs.
        """
        handlers = self._events.get(event)
        if not handlers:
            return
        for handler in tuple(handlers):
            if handler.once and not self._discard(event, handler):
                continue
            self._invoke(event, handler, args)

    def _invoke(self, event, handler, args):
        try:
            self.contexts.switch(handler.ctx)
        except Exception as e:
            logger.error("cannot dispatch %s to context %s: %s", event, handler.ctx, e)
            return
        try:
            handler.fn(*args)
        except Exception:
            logger.exception("error while dispatching event %s", event)
        finally:
            self.contexts.restore()

    def _discard(self, event, handler):
        """ removes the handler, returning False when it was already gone """
        handlers = self._events.get(event)
        if handlers is None:
            return False
        for i, h in enumerate(handlers):
            if h is handler:
                del handlers[i]
                self._release_if_idle()
                return True
        return False

    def _release_if_idle(self):
        if not any(self._events.values()):
            self.contexts.remove_teardown(self._teardown)

    def _teardown(self, ctx):
        for handlers in self._events.values():
            kept = []
            for handler in handlers:
                if handler.ctx == ctx:
                    if not handler.persistent:
                        continue
                    handler.ctx = INTERNAL_CONTEXT
                kept.append(handler)
            handlers[:] = kept
        self._release_if_idle()
