"""
The hub protocol engine.

Bytes from the hub are fed through a small state machine. Opcodes carrying a payload move
the machine to a state awaiting that single byte; every other opcode is handled at once, so
the machine is back in DISPATCH at most two bytes after any opcode.

Semantic notifications are fired on `events` as (name, *args):

- ("Ready",) when the hub reports it is operational
- ("Disconnect",) when the hub missed two keepalive periods
- ("SensorChanged", id, state) for every sensor bit that changed, id in 1..24
- ("SwitchChanged", id, state) for every switch bit that changed, id in 1..8
- ("Power", state) when power is switched on or off
"""
import logging
from enum import Enum

from raild.errors import FatalError
from raild.hub import HubState, HubField, SENSOR_BANKS, changed_bits, sensor_id
from raild.reactor import Reactor, EventType
from raild.support.events import EventSource
from raild.uart.conduit import Conduit
from raild.uart.opcodes import Opcode, opcode_name

logger = logging.getLogger(__name__)

READ_SIZE = 256
KEEPALIVE_INTERVAL = 500

READY = "Ready"
DISCONNECT = "Disconnect"
SENSOR_CHANGED = "SensorChanged"
SWITCH_CHANGED = "SwitchChanged"
POWER = "Power"


class ProtocolState(Enum):
    DISPATCH = 'DISPATCH'
    AWAIT_SENSORS1 = 'AWAIT_SENSORS1'
    AWAIT_SENSORS2 = 'AWAIT_SENSORS2'
    AWAIT_SENSORS3 = 'AWAIT_SENSORS3'
    AWAIT_SWITCHES = 'AWAIT_SWITCHES'


# the state entered for each opcode that announces a payload byte
PAYLOAD_STATES = {
    Opcode.SENSORS_1: ProtocolState.AWAIT_SENSORS1,
    Opcode.SENSORS_2: ProtocolState.AWAIT_SENSORS2,
    Opcode.SENSORS_3: ProtocolState.AWAIT_SENSORS3,
    Opcode.SWITCHES: ProtocolState.AWAIT_SWITCHES,
}

# the hub field that receives the payload in each awaiting state
PAYLOAD_FIELDS = {
    ProtocolState.AWAIT_SENSORS1: HubField.SENSORS1,
    ProtocolState.AWAIT_SENSORS2: HubField.SENSORS2,
    ProtocolState.AWAIT_SENSORS3: HubField.SENSORS3,
    ProtocolState.AWAIT_SWITCHES: HubField.SWITCHES,
}


class HubProtocol:
    """
    Keeps the HubState in step with the hub over a conduit and recovers the link.

    The keepalive watchdog ticks every `keepalive_interval` milliseconds. A ready hub is
    flagged on the first tick without a KEEP_ALIVE and declared gone on the second. While
    the hub is not ready, every tick asks it to reset so that it says HELLO again.
    """

    def __init__(self, conduit: Conduit, hub: HubState = None):
        self.conduit = conduit
        self.hub = hub if hub is not None else HubState()
        self.state = ProtocolState.DISPATCH
        self.keep_alive_missing = False
        self.events = EventSource()
        self.handle = None
        self.timer = None

    def attach(self, reactor: Reactor, keepalive_interval=KEEPALIVE_INTERVAL):
        """
        Registers the conduit and the keepalive watchdog with the reactor and resets the hub.
        """
        reactor.bind(EventType.UART, self.handle_readable)
        reactor.bind(EventType.UART_TIMER, self.handle_timer)
        self.handle = reactor.register(self.conduit, EventType.UART, self)
        self.timer = reactor.schedule(keepalive_interval, keepalive_interval, EventType.UART_TIMER, self)
        self.reset()

    def _put(self, *data):
        self.conduit.output.write(bytes(data))
        flush = getattr(self.conduit.output, 'flush', None)
        if flush is not None:
            flush()

    # outbound commands

    def reset(self):
        """ reinitialises the parser and asks the hub to reset """
        self.state = ProtocolState.DISPATCH
        self._put(Opcode.RESET)

    def set_switch(self, index, on):
        """
        :param index: the 0-based switch index
        """
        self._put(Opcode.SET_SWITCH_ON if on else Opcode.SET_SWITCH_OFF, index)

    def set_switches(self, mask):
        self._put(Opcode.SET_SWITCHES, mask & 0xFF)

    def set_power(self, on):
        on = bool(on)
        self._put(Opcode.POWER_ON if on else Opcode.POWER_OFF)
        if self.hub.powered != on:
            self.hub.powered = on
            self.events.fire(POWER, on)

    def request_state(self):
        """ asks the hub to send every bank """
        self._put(Opcode.GET_SENSORS_1, Opcode.GET_SENSORS_2, Opcode.GET_SENSORS_3, Opcode.GET_SWITCHES)

    # inbound

    def handle_readable(self, record=None):
        """ reads whatever the conduit has available and processes it """
        try:
            data = self.conduit.input.read(READ_SIZE)
        except BlockingIOError:
            return
        except OSError as e:
            raise FatalError("error reading from the UART: %s" % e) from e
        if data:
            self.process(data)

    def process(self, data):
        for c in data:
            state = self.state
            if state is ProtocolState.DISPATCH:
                self._dispatch(c)
            elif state in PAYLOAD_FIELDS:
                self.state = ProtocolState.DISPATCH
                self._apply(PAYLOAD_FIELDS[state], c)
            else:
                raise FatalError("input processor is in an unknown state: %r" % (state,))

    def _dispatch(self, c):
        logger.debug("received %s", opcode_name(c))
        if c == Opcode.HELLO:
            self.hub.ready = False
            self._put(Opcode.SET_SWITCHES, self.hub.switches)
        elif c == Opcode.READY:
            self.hub.ready = True
            self.events.fire(READY)
        elif c in PAYLOAD_STATES:
            self.state = PAYLOAD_STATES[c]
        elif c == Opcode.KEEP_ALIVE:
            self.keep_alive_missing = False
            self._put(Opcode.KEEP_ALIVE)
        else:
            logger.warning("unknown opcode from the hub: 0x%02x", c)

    def _apply(self, field: HubField, value):
        previous = self.hub.set(field, value)
        for bit, on in changed_bits(previous, value):
            if field is HubField.SWITCHES:
                self.events.fire(SWITCH_CHANGED, bit + 1, on)
            else:
                self.events.fire(SENSOR_CHANGED, sensor_id(field, bit), on)

    def handle_timer(self, record=None):
        """ the keepalive watchdog """
        if self.hub.ready:
            if not self.keep_alive_missing:
                self.keep_alive_missing = True
            else:
                logger.warning("hub gone!")
                self.hub.ready = False
                self.events.fire(DISCONNECT)
        else:
            self.reset()


__all__ = ['HubProtocol', 'ProtocolState', 'SENSOR_BANKS',
           'READY', 'DISCONNECT', 'SENSOR_CHANGED', 'SWITCH_CHANGED', 'POWER']
