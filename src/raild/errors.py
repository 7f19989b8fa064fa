class RaildError(Exception):
    """ Base class for errors raised by the daemon. """


class FatalError(RaildError):
    """ An unrecoverable condition. The daemon logs it and exits. """


class ScriptError(RaildError):
    """
    An error visible to script code, such as an out of range argument passed to the API.
    Native state is left untouched when this is raised.
    """
