"""
The line-oriented TCP API.

Every accepted connection is registered with the reactor as an API client, which allocates
a context for it. Each newline-terminated line received is evaluated as script code while
running as that context, so anything the line prints, and any handler or timer it creates,
belongs to the connection. Closing the connection deallocates the context.
"""
import logging
import socket

from raild.context import ContextManager
from raild.errors import FatalError
from raild.reactor import Reactor, EventType, EventRecord
from raild.scripting.host import ScriptHost

logger = logging.getLogger(__name__)

DEFAULT_HOST = '0.0.0.0'
DEFAULT_PORT = 7777
RECV_SIZE = 4096
MAX_LINE = 4096
BACKLOG = 8


class ClientConnection:
    """ a connected API client """

    def __init__(self, sock: socket.socket, address):
        self.sock = sock
        self.address = address
        self.handle = None
        self.buffer = bytearray()
        self.closing = False

    def __repr__(self):
        return "ClientConnection(%s, handle=%s)" % (self.address, self.handle)

    def write(self, text):
        if self.closing:
            return
        try:
            self.sock.sendall(text.encode('utf-8'))
        except OSError as e:
            logger.warning("unable to write to %s: %s", self, e)
            self.closing = True

    def lines(self, data):
        """
        Adds received data to the buffer.
        :return: the complete lines now available, without their line ending
        """
        self.buffer.extend(data)
        *complete, rest = self.buffer.split(b"\n")
        self.buffer = bytearray(rest)
        return [line.rstrip(b"\r").decode('utf-8', errors='replace') for line in complete]


class ApiServer:
    """
    Accepts API clients on a TCP port and evaluates their lines with the script host.
    """

    def __init__(self, reactor: Reactor, contexts: ContextManager, host: ScriptHost,
                 address=(DEFAULT_HOST, DEFAULT_PORT)):
        self.reactor = reactor
        self.contexts = contexts
        self.host = host
        self.address = address
        self.sock = None
        self.handle = None
        self.clients = {}

    def start(self):
        """ listens on the configured address. Failing to do so is fatal. """
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(self.address)
            sock.listen(BACKLOG)
            sock.setblocking(False)
        except OSError as e:
            sock.close()
            raise FatalError("unable to listen on %s:%s: %s" % (self.address[0], self.address[1], e)) from e
        self.sock = sock
        self.address = sock.getsockname()
        self.reactor.bind(EventType.API_SERVER, self.handle_accept)
        self.reactor.bind(EventType.API_CLIENT, self.handle_readable)
        self.handle = self.reactor.register(sock, EventType.API_SERVER, self)
        logger.info("API server listening on %s:%s", *self.address)

    def handle_accept(self, record: EventRecord = None):
        try:
            conn, address = self.sock.accept()
        except BlockingIOError:
            return
        except OSError as e:
            logger.warning("error accepting API client: %s", e)
            return
        conn.setblocking(False)
        client = ClientConnection(conn, address)
        client.handle = self.reactor.register(conn, EventType.API_CLIENT, client)
        self.clients[client.handle] = client
        self.host.bind_output(client.handle, client.write)
        logger.info("API client connected: %s", client)

    def handle_readable(self, record: EventRecord):
        client = record.payload
        try:
            data = client.sock.recv(RECV_SIZE)
        except BlockingIOError:
            return
        except OSError as e:
            logger.info("API client %s failed: %s", client, e)
            data = b""
        if not data:
            self.disconnect(client)
            return
        lines = client.lines(data)
        if len(client.buffer) > MAX_LINE:
            logger.warning("line too long from %s, dropped", client)
            client.buffer.clear()
            lines.append(None)
        with self.contexts.running_as(client.handle):
            for line in lines:
                if line is None:
                    client.write("error: line too long\r\n")
                else:
                    self.host.evaluate_line(line)
                if client.closing:
                    break
        if client.closing:
            self.disconnect(client)

    def disconnect(self, client: ClientConnection):
        """ deallocates the client's context and closes its socket """
        if self.clients.pop(client.handle, None) is None:
            return
        client.closing = True
        self.reactor.unregister(client.handle)
        client.sock.close()
        logger.info("API client disconnected: %s", client)

    def close(self):
        for client in list(self.clients.values()):
            self.disconnect(client)
        if self.sock is not None:
            self.reactor.unregister(self.handle)
            self.sock.close()
            self.sock = None
