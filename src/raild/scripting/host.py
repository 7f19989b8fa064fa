"""
The scripting host owns the single sandbox namespace that every script runs in.

Scripts are Python source executed with a restricted set of builtins: there is no import
machinery and no access to files, processes or the interpreter itself. Everything a
script can do with the daemon goes through the names installed by the host, the native
API and the support library (prelude.py) that is run before any user script.
"""
import builtins
import logging
import pkgutil

from raild.context import ContextManager, ContextClass
from raild.errors import FatalError

logger = logging.getLogger(__name__)

# script output that is not routed to a client
script_logger = logging.getLogger('raild.script')

PRELUDE = 'prelude.py'

SAFE_BUILTINS = (
    '__build_class__', 'abs', 'all', 'any', 'bool', 'bytes', 'callable', 'chr', 'dict',
    'divmod', 'enumerate', 'filter', 'float', 'format', 'frozenset', 'hasattr', 'hash',
    'hex', 'int', 'isinstance', 'issubclass', 'iter', 'len', 'list', 'map', 'max', 'min',
    'next', 'object', 'oct', 'ord', 'pow', 'property', 'range', 'repr', 'reversed',
    'round', 'set', 'slice', 'sorted', 'staticmethod', 'classmethod', 'str', 'sum',
    'super', 'tuple', 'type', 'zip', 'True', 'False', 'None',
    'Exception', 'ArithmeticError', 'AssertionError', 'AttributeError', 'IndexError',
    'KeyError', 'LookupError', 'NameError', 'RuntimeError', 'StopIteration',
    'TypeError', 'ValueError', 'ZeroDivisionError', 'NotImplementedError',
)


def safe_builtins():
    return {name: getattr(builtins, name) for name in SAFE_BUILTINS}


class ScriptHost:
    """
    Runs script code in the sandbox and routes its output.

    Output written while an API client context is active goes to the writer bound to that
    context (the client's socket); anything else is logged on the 'raild.script' logger.
    """

    def __init__(self, contexts: ContextManager, natives=None):
        self.contexts = contexts
        self.globals = {'__builtins__': safe_builtins(), '__name__': 'script'}
        self.globals.update(natives or {})
        self._writers = {}
        contexts.add_teardown(self.unbind_output)

    def close(self):
        self.contexts.remove_teardown(self.unbind_output)
        self._writers.clear()

    def bind_output(self, ctx, writer):
        """
        :param writer: a callable receiving the text written by scripts running as ctx
        """
        self._writers[ctx] = writer

    def unbind_output(self, ctx):
        self._writers.pop(ctx, None)

    def write(self, text):
        ctx = self.contexts.current
        writer = self._writers.get(ctx)
        if writer is not None and self.contexts.class_of(ctx) is ContextClass.API_CLIENT:
            writer(text)
        else:
            script_logger.info("%s", text.rstrip("\r\n"))

    def bootstrap(self):
        """
        Runs the support library. Scripts cannot work without it, so any failure is fatal.
        """
        self.globals['_rd_write'] = self.write
        self.globals['_rd_load'] = self.load_script
        try:
            source = pkgutil.get_data(__package__, PRELUDE)
            self.execute(source, PRELUDE)
        except Exception as e:
            raise FatalError("unable to bootstrap the scripting environment: %s" % e) from e
        logger.info("scripting environment ready")

    def execute(self, source, name='<script>'):
        """
        Compiles and runs a chunk of source in the sandbox. Errors propagate to the caller.
        """
        code = compile(source, name, 'exec')
        exec(code, self.globals)

    def load_script(self, path):
        """
        Loads and runs a script file. Failures are reported, never raised.
        :return: True when the script ran to completion
        """
        logger.info("loading script %s", path)
        try:
            with open(path, 'rb') as f:
                source = f.read()
            self.execute(source, path)
        except Exception as e:
            logger.error("error loading script %s: %s", path, e)
            self.write("error loading %s: %s\r\n" % (path, e))
            return False
        return True

    def evaluate_line(self, line):
        """
        Evaluates one line received from a client. The repr of an expression's value is
        written back unless it is None; statements are executed. Errors are written back
        as "error: <message>".
        """
        line = line.strip()
        if not line:
            return
        try:
            try:
                code = compile(line, '<client>', 'eval')
            except SyntaxError:
                code = compile(line, '<client>', 'exec')
            result = eval(code, self.globals)
        except Exception as e:
            self.write("error: %s\r\n" % e)
            return
        if result is not None:
            self.write("%r\r\n" % (result,))
