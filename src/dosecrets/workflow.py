"""Interactive setup of the secrets used by the DigitalOcean playbook.

The workflow is safe to run repeatedly: every step looks at the current
state first and only changes something after the user asked for it.

"""

import configparser
import enum
import getpass
import os
import stat
from typing import Dict, Optional

from configupdater import ConfigUpdater

from dosecrets import (
    InvalidKeyFile,
    KeyFileNotFound,
    KeyGenerationFailed,
    output,
)
from dosecrets.cipher import AnsibleVaultCipher, Cipher
from dosecrets.config import Settings
from dosecrets.fields import (
    CredentialField,
    FieldState,
    clear_fields,
    set_fields,
)
from dosecrets.keys import KeySource
from dosecrets.store import Document
from dosecrets.utils import write_private
from dosecrets.validate import TokenValidator, Validity


class FieldAction(enum.Enum):
    UPDATE = "update"
    REMOVE = "remove"
    SKIP = "skip"


class KeyProvision(enum.Enum):
    FILES = "files"
    GENERATE = "generate"
    CANCEL = "cancel"


TOKEN_MENU = {
    FieldAction.UPDATE: "Update token",
    FieldAction.REMOVE: "Remove token",
    FieldAction.SKIP: "Skip",
}

KEY_MENU = {
    FieldAction.UPDATE: "Add/Update key",
    FieldAction.REMOVE: "Remove key",
    FieldAction.SKIP: "Skip",
}

PROVISION_MENU = {
    KeyProvision.FILES: "Provide path to existing key files",
    KeyProvision.GENERATE: "Generate a new key pair",
    KeyProvision.CANCEL: "Cancel",
}


class SetupWorkflow(object):

    def __init__(
        self,
        settings: Settings,
        cipher: Optional[Cipher] = None,
        validator: Optional[TokenValidator] = None,
        key_source: Optional[KeySource] = None,
    ):
        self.settings = settings
        if cipher is None:
            cipher = AnsibleVaultCipher(
                settings.path("vault_password_file"), settings.vault_id
            )
        if validator is None:
            validator = TokenValidator(
                settings.account_url, settings.api_timeout
            )
        self.cipher = cipher
        self.validator = validator
        self.key_source = key_source or KeySource()

        self.vault = Document(settings.path("vault_file"))
        self.inventory = Document(settings.path("inventory_file"))
        self.token = CredentialField(
            "DigitalOcean token",
            [
                (self.vault, settings.vault_token_key),
                (self.inventory, settings.inventory_token_key),
            ],
            settings.placeholder_token,
            cipher,
        )
        self.private_key = CredentialField(
            "SSH private key",
            [(self.vault, settings.vault_private_key_key)],
            settings.placeholder_private_key,
            cipher,
        )
        self.public_key = CredentialField(
            "SSH public key",
            [(self.vault, settings.vault_public_key_key)],
            settings.placeholder_public_key,
            cipher,
        )

    # User interaction. Tests replace these.

    def _input(self, prompt: str) -> str:
        return input(prompt).strip()

    def _getpass(self, prompt: str) -> str:
        return getpass.getpass(prompt)

    def select(self, prompt: str, menu: Dict[enum.Enum, str]) -> enum.Enum:
        """Let the user pick one of the menu's options by number."""
        options = list(menu)
        for i, option in enumerate(options, 1):
            output.line("{}) {}".format(i, menu[option]))
        while True:
            answer = self._input(prompt)
            if answer.isdigit() and 1 <= int(answer) <= len(options):
                choice = options[int(answer) - 1]
                output.annotate("Selected {}".format(choice), debug=True)
                return choice
            output.line(
                "Please enter a number between 1 and {}.".format(len(options))
            )

    def confirm_overwrite(self, path) -> bool:
        answer = self._input(
            "⚠️  File '{}' already exists. Overwrite? (y/N): ".format(path)
        )
        return answer.lower() == "y"

    # Steps

    def run(self):
        output.line("===============================================")
        output.line("  Ansible Project Secrets Setup Utility")
        output.line("===============================================")
        self.check_requirements()
        self.setup_vault_password_file()
        self.manage_token()
        self.manage_ssh_keys()
        output.line("")
        output.line(
            "🎉 Setup complete! You can run this again anytime to manage "
            "your secrets."
        )
        output.annotate("Main execution complete", debug=True)

    def check_requirements(self):
        """Fail before changing anything if a tool is missing or a store
        document can not be edited."""
        output.annotate("Checking required commands", debug=True)
        self.cipher.check()
        self.key_source.check()
        documents = (self.vault, self.inventory)
        for document in documents:
            document.check()
        for document in documents:
            document.path.parent.mkdir(parents=True, exist_ok=True)
        output.annotate("Prerequisite check complete", debug=True)

    def setup_vault_password_file(self):
        output.section("STEP 1: Ansible Vault Password")
        name = self.settings.vault_password_file
        path = self.settings.path("vault_password_file")
        if not path.exists():
            output.line("Vault password file ({}) not found.".format(name))
            output.line("Let's create one.")
            while True:
                password = self._getpass(
                    "Enter a new password for Ansible Vault: "
                )
                confirmation = self._getpass(
                    "Re-enter the password to confirm: "
                )
                if password and password == confirmation:
                    break
                output.line(
                    "Passwords did not match or were empty. Please try again."
                )
            write_private(path, password)
            output.success("Vault password saved to {}".format(name))
        else:
            if stat.S_IMODE(path.stat().st_mode) & 0o077:
                output.annotate(
                    "Restricting permissions of {} to 0600".format(name),
                    debug=True,
                )
                os.chmod(str(path), 0o600)
            output.success(
                "Vault password file ({}) already exists.".format(name)
            )

        while not self.vault_password_file_configured():
            output.line(
                "ℹ️  Please update your {} ([defaults] section) to "
                "contain:".format(self.settings.ansible_cfg)
            )
            output.line("vault_password_file = {}".format(name))
            self._input(
                "Press Enter once you've updated the file to continue, "
                "or Ctrl+C to abort."
            )
        output.success(
            "Vault password file is referenced in {}.".format(
                self.settings.ansible_cfg
            )
        )

    def vault_password_file_configured(self) -> bool:
        path = self.settings.path("ansible_cfg")
        if not path.exists():
            return False
        config = ConfigUpdater()
        try:
            config.read(str(path))
        except configparser.Error as e:
            output.line(
                "Could not parse {}: {}".format(self.settings.ansible_cfg, e)
            )
            return False
        if not config.has_option("defaults", "vault_password_file"):
            return False
        configured = config.get("defaults", "vault_password_file").value
        if configured != self.settings.vault_password_file:
            output.annotate(
                "{} refers to `{}`, this setup writes `{}`".format(
                    self.settings.ansible_cfg,
                    configured,
                    self.settings.vault_password_file,
                ),
                debug=True,
            )
        return True

    def manage_token(self):
        output.section("STEP 2: DigitalOcean API Token")
        status = self.token.status()
        if status.state is not FieldState.PRESENT:
            if status.state is FieldState.PLACEHOLDER:
                output.line("The DigitalOcean API token was removed earlier.")
            else:
                output.line("No DigitalOcean API token found in the vault.")
            self.update_token()
            return
        output.line("An existing DigitalOcean API token was found in the vault.")
        action = self.select("Your choice: ", TOKEN_MENU)
        if action is FieldAction.UPDATE:
            self.update_token()
        elif action is FieldAction.REMOVE:
            self.remove_token()
        else:
            output.line("Skipping DigitalOcean token management.")

    def update_token(self):
        while True:
            token = self._input("Enter your DigitalOcean API token: ")
            if not token:
                output.line("Token cannot be empty.")
                continue
            output.line("Validating token with DigitalOcean API...")
            result = self.validator.validate(token)
            if result is Validity.VALID:
                output.line("Token is valid.")
                break
            if result is Validity.INVALID:
                output.line(
                    "The token was rejected by DigitalOcean ({}). Please "
                    "check your token and try again.".format(
                        self.validator.last_error
                    )
                )
            else:
                output.line(
                    "Could not reach the DigitalOcean API ({}). Please check "
                    "your network connection and try again.".format(
                        self.validator.last_error
                    )
                )
        self.token.set(token)
        output.success("DigitalOcean token has been securely stored.")

    def remove_token(self):
        self.token.clear()
        output.success(
            "DigitalOcean token has been removed and replaced with a "
            "placeholder."
        )

    def manage_ssh_keys(self):
        output.section("STEP 3: SSH Key Pair")
        status = self.private_key.status()
        if status.state is not FieldState.PRESENT:
            output.line("No SSH key found in the vault.")
            self.update_ssh_keys()
            return
        output.line("An existing SSH key was found in the vault.")
        action = self.select("Your choice: ", KEY_MENU)
        if action is FieldAction.UPDATE:
            self.update_ssh_keys()
        elif action is FieldAction.REMOVE:
            self.remove_ssh_keys()
        else:
            output.line("Skipping SSH key management.")

    def update_ssh_keys(self):
        handlers = {
            KeyProvision.FILES: self.add_existing_key_pair,
            KeyProvision.GENERATE: self.generate_key_pair,
        }
        while True:
            choice = self.select(
                "How would you like to provide the SSH key? ", PROVISION_MENU
            )
            if choice is KeyProvision.CANCEL:
                output.line("SSH key setup cancelled.")
                return
            if handlers[choice]():
                return

    def store_key_pair(self, pair):
        set_fields(
            [(self.private_key, pair.private), (self.public_key, pair.public)]
        )

    def add_existing_key_pair(self) -> bool:
        private_path = self._input(
            "Enter the full path to your PRIVATE SSH key file "
            "(e.g., ~/.ssh/id_ed25519): "
        )
        public_path = self._input(
            "Enter the full path to your PUBLIC SSH key file "
            "(e.g., ~/.ssh/id_ed25519.pub): "
        )
        if not private_path or not public_path:
            output.line("Both paths are required.")
            return False
        try:
            pair = self.key_source.from_files(private_path, public_path)
        except (KeyFileNotFound, InvalidKeyFile) as e:
            e.report()
            return False
        self.store_key_pair(pair)
        output.success(
            "SSH key pair from files has been securely stored in the vault."
        )
        return True

    def generate_key_pair(self) -> bool:
        default = self.settings.default_key_path
        output.line("A new ED25519 key pair will be generated.")
        path = self._input(
            "Enter file path to save new key (default: {}): ".format(default)
        )
        path = os.path.expanduser(path or default)
        try:
            pair = self.key_source.generate(path, self.confirm_overwrite)
        except (KeyGenerationFailed, KeyFileNotFound, InvalidKeyFile) as e:
            e.report()
            return False
        if pair is None:
            output.line("Generation cancelled.")
            return False
        self.store_key_pair(pair)
        output.success(
            "New SSH key pair generated and securely stored in the vault."
        )
        output.line("🔑 Private key: {}".format(path))
        output.line("🔑 Public key:  {}.pub".format(path))
        return True

    def remove_ssh_keys(self):
        clear_fields([self.private_key, self.public_key])
        output.success(
            "SSH keys have been removed and replaced with placeholders."
        )
