import socket
import unittest
from unittest.mock import Mock

import timeout_decorator
from hamcrest import assert_that, is_, calling, raises, has_length, empty

from raild.context import ContextClass
from raild.emitter import EventEmitter
from raild.errors import FatalError
from raild.reactor import Reactor
from raild.reactor_test import new_contexts
from raild.scripting.host import ScriptHost
from raild.server import ApiServer, ClientConnection


class ClientConnectionTest(unittest.TestCase):

    def test_lines_are_split_and_buffered(self):
        sut = ClientConnection(Mock(), ('127.0.0.1', 1))
        assert_that(sut.lines(b"one\r\ntw"), is_(["one"]))
        assert_that(sut.lines(b"o\nthree\n"), is_(["two", "three"]))
        assert_that(sut.buffer, is_(bytearray()))

    def test_write_failure_marks_closing(self):
        sock = Mock()
        sock.sendall.side_effect = BrokenPipeError()
        sut = ClientConnection(sock, ('127.0.0.1', 1))
        sut.write("x")
        sut.write("y")
        assert_that(sut.closing, is_(True))
        assert_that(sock.sendall.call_count, is_(1))


class ApiServerTest(unittest.TestCase):

    def setUp(self):
        self.contexts = new_contexts()
        self.reactor = Reactor(self.contexts)
        self.emitter = EventEmitter(self.contexts)
        self.host = ScriptHost(self.contexts, {'on': self.emitter.on, 'answer': lambda: 42})
        self.host.bootstrap()
        self.sut = ApiServer(self.reactor, self.contexts, self.host, ('127.0.0.1', 0))
        self.sut.start()
        self.peer = socket.create_connection(self.sut.address)
        self.peer.settimeout(5)

    def tearDown(self):
        self.peer.close()
        self.sut.close()
        self.reactor.close()

    def pump(self, until):
        while not until():
            self.reactor.run_once(100)

    def accept(self):
        self.pump(lambda: self.sut.clients)
        return next(iter(self.sut.clients.values()))

    def receive(self, expected):
        data = b""
        while len(data) < len(expected):
            self.reactor.run_once(100)
            try:
                self.peer.setblocking(False)
                data += self.peer.recv(1024)
            except BlockingIOError:
                pass
            finally:
                self.peer.setblocking(True)
        return data

    @timeout_decorator.timeout(5)
    def test_client_gets_its_own_context(self):
        client = self.accept()
        assert_that(self.contexts.class_of(client.handle), is_(ContextClass.API_CLIENT))

    @timeout_decorator.timeout(5)
    def test_lines_are_evaluated_and_answered(self):
        self.accept()
        self.peer.sendall(b"answer()\nprint('hi', 2)\n")
        assert_that(self.receive(b"42\r\nhi\t2\r\n"), is_(b"42\r\nhi\t2\r\n"))

    @timeout_decorator.timeout(5)
    def test_errors_are_answered(self):
        self.accept()
        self.peer.sendall(b"undefined_name\n")
        expected = b"error: name 'undefined_name' is not defined\r\n"
        assert_that(self.receive(expected), is_(expected))

    @timeout_decorator.timeout(5)
    def test_disconnect_tears_down_context(self):
        client = self.accept()
        self.peer.sendall(b"on('Ready', lambda: print('ready'))\n")
        self.pump(lambda: self.emitter.handlers('Ready'))
        assert_that(self.emitter.handlers('Ready')[0].ctx, is_(client.handle))

        self.peer.close()
        self.pump(lambda: not self.sut.clients)
        assert_that(self.contexts.is_allocated(client.handle), is_(False))
        assert_that(self.emitter.handlers('Ready'), is_(empty()))

    @timeout_decorator.timeout(5)
    def test_persistent_handler_survives_disconnect(self):
        client = self.accept()
        self.peer.sendall(b"on('Ready', lambda: None, True)\n")
        self.pump(lambda: self.emitter.handlers('Ready'))
        self.peer.close()
        self.pump(lambda: not self.sut.clients)
        handlers = self.emitter.handlers('Ready')
        assert_that(handlers, has_length(1))
        assert_that(handlers[0].ctx, is_(0))
        assert_that(client.sock.fileno(), is_(-1))

    def test_listen_failure_is_fatal(self):
        other = ApiServer(self.reactor, self.contexts, self.host, self.sut.address)
        assert_that(calling(other.start), raises(FatalError, "unable to listen"))


if __name__ == '__main__':  # pragma no cover
    unittest.main()
