"""
Advertises the API server with zeroconf so that clients on the local network can find it.
Zeroconf runs its own threads; nothing here touches the daemon state.
"""
import logging
import socket

from zeroconf import Zeroconf, ServiceInfo

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_TYPE = 'raild'


def qualify_service_type(service_subtype):
    """
    >>> qualify_service_type("raild")
    '_raild._tcp.local.'
    """
    return "_" + service_subtype + "._tcp.local."


def advertised_address(host):
    """
    The address to publish for a listening host. A wildcard host is replaced by the
    address of this machine.
    >>> advertised_address('192.168.1.7')
    '192.168.1.7'
    """
    if not host or host == '0.0.0.0':
        return socket.gethostbyname(socket.gethostname())
    return host


class ServiceAdvertiser:
    """
    Registers a TCP service of the given subtype for as long as the advertiser is started.
    :param service_subtype: the application-specific service name, without a leading underscore
    :param zeroconf_factory: creates the Zeroconf instance when started
    """

    def __init__(self, port, host=None, service_subtype=DEFAULT_SERVICE_TYPE, name=None,
                 zeroconf_factory=Zeroconf):
        self.port = port
        self.host = host
        self.service_type = qualify_service_type(service_subtype)
        self.name = name or socket.gethostname().split('.')[0]
        self._zeroconf_factory = zeroconf_factory
        self.zeroconf = None
        self.info = None

    def service_info(self) -> ServiceInfo:
        address = advertised_address(self.host)
        return ServiceInfo(self.service_type,
                           "%s.%s" % (self.name, self.service_type),
                           addresses=[socket.inet_aton(address)],
                           port=self.port,
                           properties={'path': '/'},
                           server="%s.local." % self.name)

    def start(self):
        """
        Registers the service. Failure is logged, the daemon works without being advertised.
        :return: True when the service was registered
        """
        try:
            info = self.service_info()
            zeroconf = self._zeroconf_factory()
        except OSError as e:
            logger.warning("unable to advertise %s: %s", self.service_type, e)
            return False
        try:
            zeroconf.register_service(info)
        except Exception as e:
            logger.warning("unable to advertise %s: %s", self.service_type, e)
            zeroconf.close()
            return False
        self.zeroconf, self.info = zeroconf, info
        logger.info("advertising %s on port %s", info.name, self.port)
        return True

    def stop(self):
        if self.zeroconf is None:
            return
        try:
            self.zeroconf.unregister_service(self.info)
        finally:
            self.zeroconf.close()
            self.zeroconf = self.info = None
