import pathlib
import subprocess
from typing import List

from dosecrets import CipherError, output
from dosecrets._output import redact
from dosecrets.store import ArmoredValue
from dosecrets.utils import find_tool

ARMOR_PREFIX = "$ANSIBLE_VAULT;"


class Cipher(object):
    """Turns plaintext into armored values and back."""

    def check(self):
        """Raise PrereqMissing if the cipher can not be used."""

    def encrypt(self, plaintext: str, key_hint: str) -> ArmoredValue:
        raise NotImplementedError("encrypt() not implemented")

    def decrypt(self, armored: ArmoredValue, key_hint: str = "") -> str:
        raise NotImplementedError("decrypt() not implemented")


class AnsibleVaultCipher(Cipher):
    """Encrypt values with `ansible-vault`.

    Plaintext and ciphertext are passed on stdin and read from stdout, so
    secrets never show up in the process list and are never staged on disk.

    """

    BINARY_CANDIDATES = ["ansible-vault"]

    def __init__(self, password_file: pathlib.Path, vault_id: str = "default"):
        self.password_file = pathlib.Path(password_file)
        self.vault_id = vault_id

    @classmethod
    def ansible_vault(cls):
        return find_tool("ansible-vault", cls.BINARY_CANDIDATES)

    def check(self):
        self.ansible_vault()

    def _run(self, args: List[str], data: str) -> str:
        output.annotate("Running `{}`".format(" ".join(args)), debug=True)
        try:
            p = subprocess.run(
                args,
                input=data.encode("utf-8"),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                check=True,
            )
        except subprocess.CalledProcessError as e:
            raise CipherError.from_context(e.cmd, e.returncode, e.stderr)
        except OSError as e:
            raise CipherError.from_context(args, "-", str(e))
        return p.stdout.decode("utf-8")

    def encrypt(self, plaintext: str, key_hint: str) -> ArmoredValue:
        output.annotate(
            "Encrypting value for `{}` starting with: {}".format(
                key_hint, redact(plaintext)
            ),
            debug=True,
        )
        args = [
            self.ansible_vault(),
            "encrypt",
            "--vault-password-file",
            str(self.password_file),
            "--encrypt-vault-id",
            self.vault_id,
            "--output",
            "-",
        ]
        armored = self._run(args, plaintext).strip()
        if not armored.startswith(ARMOR_PREFIX):
            raise CipherError.from_context(
                args, 0, "unexpected output from ansible-vault"
            )
        output.annotate(
            "Encryption complete for `{}`, encrypted content starts with: "
            "{}".format(key_hint, redact(armored, 10)),
            debug=True,
        )
        return ArmoredValue(armored)

    def decrypt(self, armored: ArmoredValue, key_hint: str = "") -> str:
        if not armored.strip().startswith(ARMOR_PREFIX):
            raise CipherError.malformed(key_hint, "is not an ansible-vault block")
        args = [
            self.ansible_vault(),
            "decrypt",
            "--vault-password-file",
            str(self.password_file),
            "--output",
            "-",
        ]
        plaintext = self._run(args, armored.strip() + "\n")
        output.annotate(
            "Decryption complete for `{}`, value starting with: {}".format(
                key_hint, redact(plaintext)
            ),
            debug=True,
        )
        return plaintext
