"""Obtain the SSH key pair used to access provisioned droplets."""

import os
import pathlib
import subprocess
from typing import Callable, NamedTuple, Optional

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization

from dosecrets import (
    InvalidKeyFile,
    KeyFileNotFound,
    KeyGenerationFailed,
    output,
)
from dosecrets._output import redact
from dosecrets.utils import find_tool


class KeyPair(NamedTuple):
    private: str
    public: str


def _read(path: pathlib.Path) -> str:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return f.read()
    except FileNotFoundError:
        raise KeyFileNotFound.from_context(path)
    except IsADirectoryError:
        raise KeyFileNotFound.from_context(path, "is a directory")
    except (OSError, UnicodeDecodeError) as e:
        raise KeyFileNotFound.from_context(path, str(e))


def check_private_key(path, content: str):
    data = content.encode("utf-8")
    try:
        serialization.load_ssh_private_key(data, None)
    except TypeError:
        # Protected by a passphrase. Still a key.
        pass
    except (ValueError, UnsupportedAlgorithm):
        try:
            serialization.load_pem_private_key(data, None)
        except TypeError:
            pass
        except (ValueError, UnsupportedAlgorithm):
            raise InvalidKeyFile.from_context(path, "private")


def check_public_key(path, content: str):
    try:
        serialization.load_ssh_public_key(content.strip().encode("utf-8"))
    except (ValueError, UnsupportedAlgorithm):
        raise InvalidKeyFile.from_context(path, "public")


class KeySource(object):

    BINARY_CANDIDATES = ["ssh-keygen"]

    @classmethod
    def ssh_keygen(cls):
        # ssh-keygen has no --version.
        return find_tool("ssh-keygen", cls.BINARY_CANDIDATES, args=None)

    def check(self):
        self.ssh_keygen()

    def from_files(self, private_path, public_path) -> KeyPair:
        private_path = pathlib.Path(private_path).expanduser()
        public_path = pathlib.Path(public_path).expanduser()
        output.annotate(
            "Reading key pair from {} and {}".format(private_path, public_path),
            debug=True,
        )
        # Both files must be readable before either is checked.
        private = _read(private_path)
        public = _read(public_path)
        check_private_key(private_path, private)
        check_public_key(public_path, public)
        output.annotate(
            "Read private key starting with: {}".format(redact(private)),
            debug=True,
        )
        output.annotate(
            "Read public key starting with: {}".format(redact(public)),
            debug=True,
        )
        return KeyPair(private, public)

    def generate(
        self, dest, confirm_overwrite: Callable[[pathlib.Path], bool]
    ) -> Optional[KeyPair]:
        """Generate a new ed25519 key pair at `dest` and `dest`.pub.

        Returns None without touching anything if `dest` exists and
        `confirm_overwrite` declines.

        """
        ssh_keygen = self.ssh_keygen()
        dest = pathlib.Path(dest).expanduser()
        public = pathlib.Path(str(dest) + ".pub")
        args = [ssh_keygen, "-t", "ed25519", "-f", str(dest), "-N", "", "-q"]
        if dest.is_dir():
            raise KeyGenerationFailed.from_context(
                args, "-", "{} is a directory".format(dest)
            )
        overwrite = dest.exists()
        if overwrite and not confirm_overwrite(dest):
            output.annotate(
                "Not overwriting existing key {}".format(dest), debug=True
            )
            return None
        output.annotate("Running `{}`".format(" ".join(args)), debug=True)
        try:
            if overwrite:
                dest.unlink()
                if public.exists():
                    public.unlink()
            if not dest.parent.exists():
                dest.parent.mkdir(parents=True, mode=0o700)
            subprocess.run(
                args,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                check=True,
            )
            os.chmod(str(dest), 0o600)
        except subprocess.CalledProcessError as e:
            raise KeyGenerationFailed.from_context(
                e.cmd, e.returncode, e.stderr
            )
        except OSError as e:
            raise KeyGenerationFailed.from_context(args, "-", str(e))
        return self.from_files(dest, public)
