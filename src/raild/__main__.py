"""
Command line entry point: python -m raild [options]
"""
import argparse
import logging
import sys

from raild import __version__
from raild.config.config import load_settings
from raild.daemon import Daemon
from raild.errors import FatalError

logger = logging.getLogger('raild')

LOG_FORMAT = '%(asctime)s %(levelname)-7s %(name)s: %(message)s'


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog='raild', description='Model railway hub daemon.')
    parser.add_argument('script', nargs='?', help='the control script to load at start-up')
    parser.add_argument('-c', '--config', help='an additional configuration file')
    parser.add_argument('-p', '--serial-port', help='the serial device of the hub, or "auto"')
    parser.add_argument('--api-port', type=int, help='the TCP port of the API server')
    parser.add_argument('--advertise', action='store_true', default=None,
                        help='advertise the API server with zeroconf')
    parser.add_argument('-l', '--log-level', default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    parser.add_argument('--version', action='version', version='%(prog)s ' + __version__)
    return parser.parse_args(argv)


def apply_args(settings, args):
    """ command line options override the configuration files """
    if args.script:
        settings.script = args.script
    if args.serial_port:
        settings.serial_port = args.serial_port
    if args.api_port is not None:
        settings.api_port = args.api_port
    if args.advertise:
        settings.advertise = True
    return settings


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format=LOG_FORMAT)
    try:
        settings = apply_args(load_settings(args.config), args)
        daemon = Daemon(settings)
        daemon.run()
    except FatalError as e:
        logger.critical("%s", e)
        return 1
    except KeyboardInterrupt:
        logger.info("interrupted")
    return 0


if __name__ == '__main__':
    sys.exit(main())
