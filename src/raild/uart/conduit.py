"""
Transport to the hub over a serial port.
"""
import logging
from abc import abstractmethod
from io import IOBase

import serial
from serial.tools import list_ports

from raild.errors import FatalError

logger = logging.getLogger(__name__)

DEFAULT_PORT = '/dev/ttyAMA0'
DEFAULT_BAUDRATE = 115200


class Conduit:
    """
    A conduit allows two-way communication. It provides a file-like input endpoint and a
    file-like output endpoint.
    """

    @property
    @abstractmethod
    def target(self):
        raise NotImplementedError

    @property
    @abstractmethod
    def input(self) -> IOBase:
        """ the stream read for incoming bytes """
        raise NotImplementedError

    @property
    @abstractmethod
    def output(self) -> IOBase:
        """ the stream written with outgoing bytes """
        raise NotImplementedError

    @property
    @abstractmethod
    def open(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    def close(self):
        raise NotImplementedError

    def fileno(self):
        """ the descriptor the reactor watches for incoming data """
        return self.input.fileno()


class DefaultConduit(Conduit):
    """ provides the conduit streams from specific read/write file-like objects (which may be the same value) """

    def __init__(self, read=None, write=None):
        self._read = read
        self._write = write if write is not None else read
        self._open = True

    @property
    def target(self):
        return self._read

    def close(self):
        self._open = False
        self._write.close()
        if self._read is not self._write:
            self._read.close()

    @property
    def open(self):
        return self._open

    @property
    def input(self) -> IOBase:
        return self._read

    @property
    def output(self) -> IOBase:
        return self._write


class SerialConduit(Conduit):
    """
    A conduit over a non-blocking serial port.
    """

    def __init__(self, ser: serial.Serial):
        self.ser = ser

    @property
    def target(self):
        return self.ser

    @property
    def input(self):
        return self.ser

    @property
    def output(self):
        return self.ser

    @property
    def open(self) -> bool:
        return self.ser.is_open

    def fileno(self):
        return self.ser.fileno()

    def close(self):
        self.ser.close()


def serial_port_info():
    """
    :return: a tuple of the serial ports present on this machine
    """
    return tuple(list_ports.comports())


def detect_port(port):
    """
    Resolves the configured port name. "auto" picks the first serial port found;
    any other value is returned unchanged.
    """
    if port == "auto":
        ports = serial_port_info()
        if not ports:
            raise FatalError("no serial port found to connect to the hub")
        logger.info("detected serial ports: %s", ", ".join(p.device for p in ports))
        return ports[0].device
    return port


def open_serial(port=DEFAULT_PORT, baudrate=DEFAULT_BAUDRATE) -> SerialConduit:
    """
    Opens the serial device in non-blocking mode, 8N1, and discards any pending input.
    Failing to open the device is fatal.
    """
    device = detect_port(port)
    logger.info("opening UART %s at %s baud", device, baudrate)
    try:
        ser = serial.Serial(device, baudrate=baudrate, bytesize=serial.EIGHTBITS,
                            parity=serial.PARITY_NONE, stopbits=serial.STOPBITS_ONE, timeout=0)
        ser.reset_input_buffer()
    except (serial.SerialException, ValueError) as e:
        raise FatalError("unable to open UART %s, ensure it is not in use by another application: %s" %
                         (device, e)) from e
    return SerialConduit(ser)
