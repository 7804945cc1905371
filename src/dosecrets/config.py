"""File layout and tunables shared with the Ansible playbook."""

import os
import pathlib
from typing import Mapping, Optional

TRUE_VALUES = ("1", "true", "yes", "on")


class Settings(object):
    """Locations, key names and placeholders used by the setup.

    The paths are relative to the base directory, which is the project
    checkout containing ``ansible.cfg``.
    """

    vault_file = "inventory/group_vars/all/vault.yml"
    inventory_file = "inventory/digitalocean.yml"
    ansible_cfg = "ansible.cfg"
    vault_password_file = ".vault_pass.txt"

    vault_token_key = "do_api_token"
    inventory_token_key = "oauth_token"
    vault_private_key_key = "ssh_private_key"
    vault_public_key_key = "ssh_public_key"

    placeholder_token = "Place DigitalOcean token here"
    placeholder_private_key = "Place SSH private key here"
    placeholder_public_key = "Place SSH public key here"

    vault_id = "default"

    account_url = "https://api.digitalocean.com/v2/account"
    api_timeout = 5.0

    default_key_path = "~/.ssh/ansible_do_key"

    debug = False

    def __init__(self, basedir: Optional[str] = None, **overrides):
        self.basedir = pathlib.Path(basedir or os.getcwd())
        for key, value in overrides.items():
            if not hasattr(type(self), key):
                raise TypeError(f"Unknown setting `{key}`")
            setattr(self, key, value)

    @classmethod
    def from_environ(cls, environ: Optional[Mapping[str, str]] = None):
        if environ is None:
            environ = os.environ
        overrides = {}
        debug = environ.get("DOSECRETS_DEBUG", environ.get("DEBUG", ""))
        overrides["debug"] = debug.strip().lower() in TRUE_VALUES
        timeout = environ.get("DOSECRETS_API_TIMEOUT")
        if timeout:
            try:
                overrides["api_timeout"] = float(timeout)
            except ValueError:
                raise ValueError(
                    f"DOSECRETS_API_TIMEOUT must be a number, got `{timeout}`"
                )
        return cls(environ.get("DOSECRETS_BASEDIR"), **overrides)

    def path(self, name: str) -> pathlib.Path:
        return self.basedir / getattr(self, name)
