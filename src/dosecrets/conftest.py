import base64
import binascii
import os

import pytest

import dosecrets.utils
from dosecrets import CipherError
from dosecrets.cipher import ARMOR_PREFIX, Cipher
from dosecrets.config import Settings
from dosecrets.store import ArmoredValue


class FakeCipher(Cipher):
    """Reversible stand-in for ansible-vault that records its calls."""

    HEADER = "$ANSIBLE_VAULT;1.1;AES256"

    def __init__(self):
        self.encrypted = []
        self.decrypted = []

    def encrypt(self, plaintext, key_hint):
        self.encrypted.append(key_hint)
        payload = base64.b16encode(plaintext.encode("utf-8")).decode("ascii")
        payload = payload.lower()
        lines = [payload[i : i + 80] for i in range(0, len(payload), 80)]
        return ArmoredValue("\n".join([self.HEADER] + lines))

    def decrypt(self, armored, key_hint=""):
        self.decrypted.append(key_hint)
        header, _, body = armored.strip().partition("\n")
        if not header.startswith(ARMOR_PREFIX):
            raise CipherError.malformed(key_hint, "is not an ansible-vault block")
        try:
            data = base64.b16decode("".join(body.split()).upper())
        except (binascii.Error, ValueError):
            raise CipherError.malformed(key_hint, "could not be decrypted")
        return data.decode("utf-8")


@pytest.fixture(autouse=True)
def ensure_workingdir():
    working_dir = os.getcwd()
    yield
    os.chdir(working_dir)


@pytest.fixture(autouse=True)
def output(monkeypatch):
    from dosecrets import output
    from dosecrets._output import TestBackend

    backend = TestBackend()
    monkeypatch.setattr(output, "backend", backend)
    monkeypatch.setattr(output, "enable_debug", False)
    return output


@pytest.fixture(autouse=True)
def reset_tool_cache():
    dosecrets.utils._tools.clear()
    yield
    dosecrets.utils._tools.clear()


@pytest.fixture
def cipher():
    return FakeCipher()


@pytest.fixture
def settings(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return Settings(str(tmp_path))
