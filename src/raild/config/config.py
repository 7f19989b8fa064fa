import logging
import os
import platform

from configobj import ConfigObj, ConfigObjError, Section, flatten_errors
from validate import Validator

from raild.errors import FatalError

logger = logging.getLogger(__name__)

# The default extension for configuration files
config_extension = '.cfg'

# The name of the daemon configuration and its section
CONFIG_NAME = 'raild'
SECTION = 'daemon'


def config_flavor(name, flavor=None):
    """
    >>> config_flavor('raild', 'schema')
    'raild.schema'
    >>> config_flavor('raild')
    'raild'
    """
    return name if not flavor else name + '.' + flavor


def config_filename(name, directory=None):
    """
    Determines the location of a config file in the given directory.
    """
    return os.path.join(directory or config_directory(), name + config_extension)


def config_directory():
    """ the directory holding the packaged configuration files """
    return os.path.dirname(os.path.abspath(__file__))


def load_config_file_base(file, must_exist=True):
    """
    Loads a configuration file
    :param file:        The configuration file to load
    :param must_exist:  when True, the file must exist or an exception is thrown.
    :return: The ConfigObj instance for the file.
    """
    try:
        return ConfigObj(file, interpolation='Template', file_error=must_exist) \
            if must_exist or os.path.exists(file) else ConfigObj()
    except ConfigObjError as e:
        raise type(e)(str(e) + ' at ' + file)


def config_flavor_file(name, directory, subpart=None) -> ConfigObj:
    """
    Loads a specialization of a config file. The configuration file is expected to be named
    after the base, followed by a period and then the specialization, if the specialization is given,
    otherwise just the base name. A missing file gives an empty configuration.
    """
    file = config_filename(config_flavor(name, subpart), directory)
    return load_config_file_base(file, False)


def map_os_name(name):
    """
    >>> map_os_name('Windows')
    'windows'
    >>> map_os_name("Darwin")
    'osx'
    """
    name = name.lower()
    if name == 'darwin':
        name = 'osx'
    return name


def os_name():
    return map_os_name(platform.system())


def user_config_file(name):
    return os.path.expanduser('~/' + name + config_extension)


def load_config(name=CONFIG_NAME, directory=None, extra=None):
    """
    Loads all the configuration files that relate to the given name.
    Configurations are merged in this order, later ones overriding earlier ones:
    - the default specialization
    - the platform specialization
    - the user override (~/<name>.cfg)
    - the base configuration
    - the extra file, when given (it must exist)
    The result is validated against the "schema" specialization, which also fills in defaults.
    :param directory: the location of the configuration files, the packaged ones by default
    """
    directory = directory or config_directory()
    config = ConfigObj()
    config.merge(config_flavor_file(name, directory, 'default'))
    config.merge(config_flavor_file(name, directory, os_name()))
    config.merge(load_config_file_base(user_config_file(name), must_exist=False))
    config.merge(config_flavor_file(name, directory))
    if extra:
        config.merge(load_config_file_base(extra))

    config.configspec = config_flavor_file(name, directory, 'schema')
    result = config.validate(Validator())
    if result is not True:
        failures = []
        for section_list, key, error in flatten_errors(config, result):
            where = '.'.join(section_list + ([key] if key is not None else []))
            failures.append("%s (%s)" % (where, error or 'missing'))
        raise ConfigObjError("the config file %s failed validation: %s" % (name, ', '.join(failures)))
    return config


def fetch_conf_path(conf: Section, path):
    """
    Retrieves the named configuration section
    :param conf:        The root configuration
    :param path:        An iterable that lists the names of the config to resolve
    :return: The configuration section identified by the path, or None
    """
    for p in path:
        conf = conf.get(p, None)
        if conf is None:
            return
    return conf


def apply_conf(conf: Section, target):
    """
    Applies the attributes contained in a configuration object to a target object.
    It does this by iterating over the items in the configuration and setting any attributes with the same name.
    """
    for k, v in conf.items():
        if hasattr(target, k):
            setattr(target, k, v)
        else:
            logger.warning("ignoring unknown configuration key %s", k)


class Settings:
    """
    The daemon settings. The attribute defaults match raild.schema.cfg.
    """

    def __init__(self, **kwargs):
        self.serial_port = 'auto'
        self.baudrate = 115200
        self.keepalive_interval = 500
        self.wait_timeout = 1000
        self.api_host = '0.0.0.0'
        self.api_port = 7777
        self.script = ''
        self.advertise = False
        self.service_type = 'raild'
        for k, v in kwargs.items():
            if not hasattr(self, k):
                raise TypeError("unknown setting %s" % k)
            setattr(self, k, v)

    def __repr__(self):
        return "Settings(%s)" % ', '.join("%s=%r" % item for item in sorted(vars(self).items()))


def load_settings(extra=None, directory=None, name=CONFIG_NAME) -> Settings:
    """
    Loads and validates the configuration files and applies the daemon section to a new Settings.
    Unreadable or invalid configuration is fatal.
    :param extra: an additional configuration file, such as one given on the command line
    """
    try:
        conf = load_config(name, directory, extra)
    except (ConfigObjError, IOError) as e:
        raise FatalError("unable to load the configuration: %s" % e) from e
    settings = Settings()
    section = fetch_conf_path(conf, [SECTION])
    if section:
        apply_conf(section, settings)
    logger.debug("loaded %s", settings)
    return settings
