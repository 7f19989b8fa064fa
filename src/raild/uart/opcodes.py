"""
One-byte opcodes exchanged with the hub. Payloads are fixed length and follow the opcode
directly; there is no length field.
"""
from enum import IntEnum


class Opcode(IntEnum):
    # hub -> daemon
    HELLO = 0x01
    READY = 0x02
    SENSORS_1 = 0x10        # + 1 byte bank value
    SENSORS_2 = 0x11        # + 1 byte bank value
    SENSORS_3 = 0x12        # + 1 byte bank value
    SWITCHES = 0x13         # + 1 byte bank value

    # both directions
    KEEP_ALIVE = 0x03

    # daemon -> hub
    GET_SENSORS_1 = 0x20
    GET_SENSORS_2 = 0x21
    GET_SENSORS_3 = 0x22
    GET_SWITCHES = 0x23
    SET_SWITCHES = 0x30     # + 1 byte bank value
    SET_SWITCH_ON = 0x31    # + 1 byte 0-based switch index
    SET_SWITCH_OFF = 0x32   # + 1 byte 0-based switch index
    POWER_ON = 0x40
    POWER_OFF = 0x41
    RESET = 0xFF


def opcode_name(value):
    """
    >>> opcode_name(0x02)
    'READY'
    >>> opcode_name(0x99)
    '0x99'
    """
    try:
        return Opcode(value).name
    except ValueError:
        return '0x%02x' % value
