"""
Native functions exposed to scripts.

Values arriving from script code are not trusted: every entry point checks the type and
range of its arguments and raises ScriptError before touching any native state.
"""
import logging
import math
from numbers import Real

from raild.context import ContextManager
from raild.emitter import EventEmitter
from raild.errors import ScriptError
from raild.hub import SENSOR_COUNT, SWITCH_COUNT
from raild.timers import TimerService, Timer
from raild.uart.protocol import HubProtocol

logger = logging.getLogger(__name__)

EXIT_CODE = 2


def check_id(value, upper, kind):
    """
    Validates a 1-based id.
    >>> check_id(3, 8, 'switch')
    3
    >>> check_id(9, 8, 'switch')
    Traceback (most recent call last):
    ...
    raild.errors.ScriptError: out of bounds switch id: 9
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ScriptError("%s id must be an integer, got %s" % (kind, type(value).__name__))
    if value < 1 or value > upper:
        raise ScriptError("out of bounds %s id: %s" % (kind, value))
    return value


def check_delay(value, name):
    """
    Validates a delay and truncates it to whole milliseconds.
    >>> check_delay(12.7, "interval")
    12
    >>> check_delay(float("inf"), "interval")
    Traceback (most recent call last):
    ...
    raild.errors.ScriptError: interval must be a finite number: inf
    """
    if isinstance(value, bool) or not isinstance(value, Real):
        raise ScriptError("%s must be a number, got %s" % (name, type(value).__name__))
    if not math.isfinite(value):
        raise ScriptError("%s must be a finite number: %s" % (name, value))
    if value < 0:
        raise ScriptError("%s must not be negative: %s" % (name, value))
    return int(value)


class ScriptApi:
    """
    The bridge between scripts and the daemon. Hub notifications from the protocol are
    re-emitted on the `events` emitter, which is the one scripts reach through on/once/off/emit.
    """

    def __init__(self, protocol: HubProtocol, timers: TimerService, contexts: ContextManager):
        self.protocol = protocol
        self.timers = timers
        self.contexts = contexts
        self.events = EventEmitter(contexts, name='hub')
        protocol.events.add(self.events.emit)

    def close(self):
        self.protocol.events.remove(self.events.emit)
        self.events.close()

    @property
    def hub(self):
        return self.protocol.hub

    def hub_ready(self):
        return self.hub.ready

    def is_powered(self):
        return self.hub.powered

    def get_switch(self, switch_id):
        return self.hub.switch(check_id(switch_id, SWITCH_COUNT, 'switch'))

    def set_switch(self, switch_id, state):
        """
        Asks the hub to change a switch. The cached state is only updated once the hub
        reports the new switch bank.
        """
        check_id(switch_id, SWITCH_COUNT, 'switch')
        self.protocol.set_switch(switch_id - 1, bool(state))

    def get_sensor(self, sensor_id):
        return self.hub.sensor(check_id(sensor_id, SENSOR_COUNT, 'sensor'))

    def set_power(self, state):
        self.protocol.set_power(bool(state))

    def create_timer(self, initial, interval, fn) -> Timer:
        initial = check_delay(initial, 'initial delay')
        interval = check_delay(interval, 'interval')
        if not callable(fn):
            raise ScriptError("timer callback must be callable, got %s" % type(fn).__name__)
        return self.timers.create(initial, interval, fn)

    def cancel_timer(self, timer):
        self.timers.cancel(timer)

    def new_emitter(self):
        return EventEmitter(self.contexts)

    def exit(self, code=EXIT_CODE):
        if isinstance(code, bool) or not isinstance(code, int):
            raise ScriptError("exit code must be an integer, got %s" % type(code).__name__)
        logger.warning("script terminated the daemon with status %s", code)
        raise SystemExit(code)

    def on(self, event, fn, persistent=False):
        return self._handler(self.events.on, event, fn, persistent)

    def once(self, event, fn, persistent=False):
        return self._handler(self.events.once, event, fn, persistent)

    def _handler(self, register, event, fn, persistent):
        try:
            return register(event, fn, persistent)
        except TypeError as e:
            raise ScriptError(str(e)) from e

    def off(self, event, fn=None):
        self.events.off(event, fn)

    def emit(self, event, *args):
        self.events.emit(event, *args)

    def natives(self):
        """
        :return: the script-visible names mapped to their implementation
        """
        return {
            'hub_ready': self.hub_ready,
            'is_powered': self.is_powered,
            'get_switch': self.get_switch,
            'set_switch': self.set_switch,
            'get_sensor': self.get_sensor,
            'set_power': self.set_power,
            'create_timer': self.create_timer,
            'cancel_timer': self.cancel_timer,
            'exit': self.exit,
            'on': self.on,
            'once': self.once,
            'off': self.off,
            'emit': self.emit,
            'EventEmitter': self.new_emitter,
            'ScriptError': ScriptError,
        }
