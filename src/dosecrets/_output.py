import sys


def redact(value, length=4):
    """Shorten a secret to a preview suitable for debug traces."""
    if value is None:
        return "<none>"
    return "{}...".format(value[:length])


class Output(object):
    """Manage the output of various parts of dosecrets to achieve
    consistency wrt to formatting and display.

    Messages marked with `debug=True` are diagnostic traces. They are only
    emitted if debugging is enabled and always go to standard error.
    """

    enable_debug = False

    def __init__(self, backend):
        self.backend = backend

    def line(self, message, debug=False, **format):
        if debug and not self.enable_debug:
            return
        self.backend.line(message, err=debug, **format)

    def annotate(self, message, debug=False, **format):
        if debug and not self.enable_debug:
            return
        if debug:
            message = "DEBUG: " + message
        self.line(message, debug=debug, **format)

    def tabular(self, key, value, separator=": ", debug=False, **kw):
        if debug and not self.enable_debug:
            return
        message = key.rjust(10) + separator + value
        self.annotate(message, debug=debug, **kw)

    def section(self, title, **format):
        _format = {"bold": True}
        _format.update(format)
        self.backend.sep("-", title, **_format)

    def success(self, message):
        self.line("✅ " + message, green=True)

    def error(self, message):
        self.backend.line("❌ Error: {}".format(message), err=True, red=True)


class TerminalBackend(object):

    def __init__(self):
        import py.io

        self._tw = py.io.TerminalWriter(sys.stdout)
        self._tw_err = py.io.TerminalWriter(sys.stderr)

    def _writer(self, err):
        return self._tw_err if err else self._tw

    def line(self, message, err=False, **format):
        self._writer(err).line(message, **format)

    def sep(self, sep, title, **format):
        self._tw.line()
        self._tw.sep(sep, title, **format)


class TestBackend(object):
    """Collect output in a string for inspection in tests."""

    def __init__(self):
        self.output = ""
        self.errors = ""

    def line(self, message, err=False, **format):
        if err:
            self.errors += message + "\n"
        else:
            self.output += message + "\n"

    def sep(self, sep, title, **format):
        self.output += "{} {} {}\n".format(sep * 3, title, sep * 3)


class NullBackend(object):

    def line(self, message, err=False, **format):
        pass

    def sep(self, sep, title, **format):
        pass


output = Output(NullBackend())
