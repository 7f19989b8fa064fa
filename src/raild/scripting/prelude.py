"""
Support library run in the sandbox before any user script.

The host injects its raw output and loader functions as _rd_write and _rd_load; they are
captured here and removed from the namespace so that scripts only see the wrappers.
"""


def _install(write, load_file):

    def print(*args):
        """ writes the arguments separated by tabs, as a line """
        write("\t".join(str(a) for a in args) + "\r\n")

    def send(*args):
        """ writes the arguments as they are, without separators or line ending """
        write("".join(str(a) for a in args))

    def load(path):
        """ runs another script file, printing the error when it fails """
        return load_file(str(path))

    return print, send, load


print, send, load = _install(_rd_write, _rd_load)

del _install, _rd_write, _rd_load
