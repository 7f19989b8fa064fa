"""
Cached mirror of the hub's state: three 8-bit sensor banks, the 8-bit switch bank,
readiness and power. Only the UART protocol writes to it.
"""
from enum import Enum

SENSOR_COUNT = 24
SWITCH_COUNT = 8
BANK_SIZE = 8


class HubField(Enum):
    SENSORS1 = 'sensors1'
    SENSORS2 = 'sensors2'
    SENSORS3 = 'sensors3'
    SWITCHES = 'switches'


SENSOR_BANKS = (HubField.SENSORS1, HubField.SENSORS2, HubField.SENSORS3)


def changed_bits(old, new):
    """
    Lists the bits that differ between two bank values as (index, state) pairs, lowest bit first.
    >>> changed_bits(0x00, 0x0F)
    [(0, True), (1, True), (2, True), (3, True)]
    >>> changed_bits(0x81, 0x01)
    [(7, False)]
    >>> changed_bits(0x55, 0x55)
    []
    """
    diff = old ^ new
    return [(bit, bool(new & (1 << bit))) for bit in range(BANK_SIZE) if diff & (1 << bit)]


def sensor_location(sensor_id):
    """
    Maps a 1-based sensor id to its bank and bit.
    >>> sensor_location(1)
    (<HubField.SENSORS1: 'sensors1'>, 0)
    >>> sensor_location(9)
    (<HubField.SENSORS2: 'sensors2'>, 0)
    >>> sensor_location(24)
    (<HubField.SENSORS3: 'sensors3'>, 7)
    """
    index = sensor_id - 1
    return SENSOR_BANKS[index // BANK_SIZE], index % BANK_SIZE


def sensor_id(field: HubField, bit):
    """
    The 1-based sensor id of a bit in a sensor bank.
    >>> sensor_id(HubField.SENSORS2, 3)
    12
    """
    return SENSOR_BANKS.index(field) * BANK_SIZE + bit + 1


class HubState:
    """
    The last fully received value of every bank, plus readiness and power.
    Ids passed to the accessors are 1-based and must already be validated.
    """

    def __init__(self):
        self._banks = {field: 0 for field in HubField}
        self.ready = False
        self.powered = False

    def get(self, field: HubField) -> int:
        return self._banks[field]

    def set(self, field: HubField, value) -> int:
        """
        stores a bank value.
        :return: the previous value
        """
        previous = self._banks[field]
        self._banks[field] = value & 0xFF
        return previous

    @property
    def switches(self):
        return self._banks[HubField.SWITCHES]

    def switch(self, switch_id) -> bool:
        return bool(self._banks[HubField.SWITCHES] & (1 << (switch_id - 1)))

    def sensor(self, sensor_id) -> bool:
        field, bit = sensor_location(sensor_id)
        return bool(self._banks[field] & (1 << bit))

    def snapshot(self):
        """ a plain dict of the cached state """
        state = {field.value: value for field, value in self._banks.items()}
        state.update(ready=self.ready, powered=self.powered)
        return state
