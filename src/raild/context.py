"""
Isolation contexts.

Every descriptor or timer registered with the reactor owns a context, and there is one
internal context (id 0) for the daemon itself. Script callbacks always execute "as" a
context: handlers and timers created while it is active belong to it, are torn down
with it, and output written while it is active is routed according to its class.
"""
import logging
from contextlib import contextmanager
from enum import Enum

from raild.errors import ScriptError

logger = logging.getLogger(__name__)

INTERNAL_CONTEXT = 0


class ContextError(ScriptError):
    """ Misuse of the context manager: duplicate allocation, unknown context, forbidden switch. """


class ContextClass(Enum):
    API_CLIENT = 'API_CLIENT'
    INTERNAL = 'INTERNAL'
    TIMER = 'TIMER'
    UNKNOWN = 'UNKNOWN'


# only these classes may become the active context
SWITCHABLE_CLASSES = frozenset((ContextClass.API_CLIENT, ContextClass.INTERNAL))


class ContextManager:
    """
    Allocates contexts and maintains the active context stack.

    Teardown hooks are callables taking a context id. They run on deallocation, before the
    id is released, so that timers and handlers owned by the context can be cleaned up.
    """

    def __init__(self):
        self._classes = {}
        self._stack = []
        self._current = INTERNAL_CONTEXT
        self._teardown = []

    @property
    def current(self):
        """ the id of the active context """
        return self._current

    @property
    def depth(self):
        """ the number of contexts saved by switch() and not yet restored """
        return len(self._stack)

    def is_allocated(self, ctx):
        return ctx in self._classes

    def class_of(self, ctx) -> ContextClass:
        return self._classes.get(ctx, ContextClass.UNKNOWN)

    def current_class(self) -> ContextClass:
        return self.class_of(self._current)

    def add_teardown(self, hook):
        if hook not in self._teardown:
            self._teardown.append(hook)

    def remove_teardown(self, hook):
        if hook in self._teardown:
            self._teardown.remove(hook)

    def teardown_hooks(self):
        return tuple(self._teardown)

    def allocate(self, ctx, cls: ContextClass):
        if ctx in self._classes:
            raise ContextError("attempt to allocate an already allocated context: %s %s" % (ctx, cls.value))
        self._classes[ctx] = cls
        logger.debug("allocated context %s (%s)", ctx, cls.value)

    def deallocate(self, ctx):
        if ctx not in self._classes:
            raise ContextError("attempt to deallocate a context that is not allocated: %s" % ctx)
        for hook in tuple(self._teardown):
            hook(ctx)
        del self._classes[ctx]
        logger.debug("deallocated context %s", ctx)

    def switch(self, ctx):
        """
        Makes ctx the active context, saving the current one.
        Only API client and internal contexts can be switched to. On refusal the stack is unchanged.
        """
        if self.class_of(ctx) not in SWITCHABLE_CLASSES:
            raise ContextError("attempt to switch to a forbidden context type: %s (%s)" %
                               (ctx, self.class_of(ctx).value))
        self._stack.append(self._current)
        self._current = ctx

    def restore(self):
        if not self._stack:
            raise ContextError("attempt to restore the previous context despite an empty context stack")
        self._current = self._stack.pop()

    @contextmanager
    def running_as(self, ctx):
        """ runs the enclosed block as ctx, restoring the previous context afterwards. """
        self.switch(ctx)
        try:
            yield ctx
        finally:
            self.restore()

