import os.path
from typing import List

from ._output import output

with open(os.path.dirname(__file__) + "/version.txt") as f:
    __version__ = f.read().strip()


class NotFound(LookupError):
    """A key is not present in a store document.

    This is not an error condition: it tells the caller that nothing has
    been configured yet.

    """


class ReportingException(Exception):
    """Exceptions that support user-readable reporting."""

    def __str__(self):
        raise NotImplementedError()

    def report(self):
        raise NotImplementedError()


class CipherError(ReportingException):
    """Encrypting or decrypting a value failed."""

    command: str
    exitcode: str
    output: str

    @classmethod
    def from_context(cls, command, exitcode, output):
        self = cls()
        self.command = " ".join(command)
        self.exitcode = str(exitcode)
        if isinstance(output, bytes):
            output = output.decode("utf-8", errors="replace")
        self.output = output.strip()
        return self

    @classmethod
    def malformed(cls, key, reason):
        self = cls()
        self.command = "(none)"
        self.exitcode = "-"
        self.output = "Value for `{}` {}".format(key, reason)
        return self

    def __str__(self):
        return (
            f"Exitcode {self.exitcode} while calling: "
            f"{self.command}\n{self.output}"
        )

    def report(self):
        output.error("Error while encrypting or decrypting a secret")
        output.tabular("command", self.command, red=True)
        output.tabular("exit code", self.exitcode)
        output.tabular("message", self.output, separator=":\n")


class PartialWriteError(ReportingException):
    """A multi-location field was only written to some of its locations."""

    field: str
    written: List[str]
    failed: str
    error: str

    @classmethod
    def from_context(cls, field, written, failed, error):
        self = cls()
        self.field = field
        self.written = written
        self.failed = failed
        self.error = f"{error.__class__.__name__}: {error}"
        return self

    def __str__(self):
        return (
            f"{self.field} was written to {', '.join(self.written)} "
            f"but writing {self.failed} failed: {self.error}"
        )

    def report(self):
        output.error(
            f"{self.field} is in an inconsistent state. "
            "Re-run the setup to store it again."
        )
        output.tabular("written", ", ".join(self.written), red=True)
        output.tabular("failed", self.failed, red=True)
        output.tabular("message", self.error)


class KeyFileNotFound(ReportingException):
    """An SSH key file given by the user does not exist or is unreadable."""

    path: str
    reason: str

    @classmethod
    def from_context(cls, path, reason="not found"):
        self = cls()
        self.path = str(path)
        self.reason = reason
        return self

    def __str__(self):
        return f"Key file {self.path}: {self.reason}"

    def report(self):
        output.error("One or both key files not found. Please check the paths.")
        output.tabular("file", self.path, red=True)
        output.tabular("reason", self.reason)


class InvalidKeyFile(ReportingException):
    """An SSH key file exists but does not contain a usable key."""

    path: str
    kind: str

    @classmethod
    def from_context(cls, path, kind):
        self = cls()
        self.path = str(path)
        self.kind = kind
        return self

    def __str__(self):
        return f"{self.path} does not contain an SSH {self.kind} key"

    def report(self):
        output.error(str(self))


class KeyGenerationFailed(ReportingException):
    """There was an error calling ssh-keygen."""

    command: str
    exitcode: str
    output: str

    @classmethod
    def from_context(cls, command, exitcode, output):
        self = cls()
        self.command = " ".join(command)
        self.exitcode = str(exitcode)
        if isinstance(output, bytes):
            output = output.decode("utf-8", errors="replace")
        self.output = output
        return self

    def __str__(self):
        return (
            f"Exitcode {self.exitcode} while calling: "
            f"{self.command}\n{self.output}"
        )

    def report(self):
        output.error("Error while generating the key pair")
        output.tabular("command", self.command, red=True)
        output.tabular("exit code", self.exitcode)
        output.tabular("message", self.output, separator=":\n")


class PrereqMissing(ReportingException):
    """A required external tool is not installed."""

    tool: str

    @classmethod
    def from_context(cls, tool):
        self = cls()
        self.tool = tool
        return self

    def __str__(self):
        return (
            f"{self.tool} is required but not installed. "
            "Please install it to continue."
        )

    def report(self):
        output.error(str(self))


class DocumentCorrupt(ReportingException):
    """A store document could not be parsed."""

    path: str
    error: str

    @classmethod
    def from_context(cls, path, error):
        self = cls()
        self.path = str(path)
        self.error = str(error)
        return self

    def __str__(self):
        return f"Cannot parse {self.path}: {self.error}"

    def report(self):
        output.error(f"Cannot parse {self.path}. Not touching anything.")
        output.tabular("message", self.error, separator=":\n")
