"""
Wires the daemon together: one context manager, one reactor, the hub protocol, the script
host and the API server, all driven by the reactor's dispatch loop.
"""
import logging

from raild.config.config import Settings
from raild.context import ContextManager, ContextClass, INTERNAL_CONTEXT
from raild.discovery import ServiceAdvertiser
from raild.reactor import Reactor
from raild.scripting.api import ScriptApi
from raild.scripting.host import ScriptHost
from raild.server import ApiServer
from raild.timers import TimerService
from raild.uart.conduit import Conduit, open_serial
from raild.uart.protocol import HubProtocol

logger = logging.getLogger(__name__)


class Daemon:
    """
    :param conduit: the transport to the hub. When not given, the configured serial port is opened.
    """

    def __init__(self, settings: Settings, conduit: Conduit = None, selector=None):
        self.settings = settings
        self.contexts = ContextManager()
        self.contexts.allocate(INTERNAL_CONTEXT, ContextClass.INTERNAL)
        self.reactor = Reactor(self.contexts, selector)
        self.timers = TimerService(self.reactor, self.contexts)
        if conduit is None:
            conduit = open_serial(settings.serial_port, settings.baudrate)
        self.protocol = HubProtocol(conduit)
        self.api = ScriptApi(self.protocol, self.timers, self.contexts)
        self.host = ScriptHost(self.contexts, self.api.natives())
        self.server = ApiServer(self.reactor, self.contexts, self.host,
                                (settings.api_host, settings.api_port))
        self.advertiser = None

    def start(self):
        """
        Bootstraps scripting and runs the user script, so that its handlers are in place
        before the hub is reset, then starts serving clients.
        """
        self.host.bootstrap()
        if self.settings.script:
            self.host.load_script(self.settings.script)
        self.protocol.attach(self.reactor, self.settings.keepalive_interval)
        self.server.start()
        if self.settings.advertise:
            self.advertiser = ServiceAdvertiser(self.server.address[1], self.settings.api_host,
                                                self.settings.service_type)
            self.advertiser.start()

    def run(self):
        self.start()
        try:
            self.reactor.run(self.settings.wait_timeout)
        finally:
            self.close()

    def stop(self):
        self.reactor.stop()

    def close(self):
        if self.advertiser is not None:
            self.advertiser.stop()
            self.advertiser = None
        self.server.close()
        self.api.close()
        self.host.close()
        self.reactor.close()
        self.protocol.conduit.close()
        logger.info("daemon stopped")
