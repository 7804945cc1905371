import pytest

from dosecrets import CipherError, PartialWriteError
from dosecrets.fields import (
    CredentialField,
    FieldState,
    clear_fields,
    set_fields,
)
from dosecrets.store import (
    ArmoredValue,
    Document,
    Entry,
    PlainValue,
    split_entries,
)

PLACEHOLDER = "Place DigitalOcean token here"


def keys_of(doc):
    return [
        c.key
        for c in split_entries(doc.path.read_text())
        if isinstance(c, Entry)
    ]


class BrokenDocument(Document):

    def upsert(self, key, value):
        raise OSError("read-only file system")


class BrokenCipher(object):

    def encrypt(self, plaintext, key_hint):
        raise CipherError.from_context(
            ["ansible-vault", "encrypt"], 1, b"ERROR! no vault secrets"
        )


@pytest.fixture
def vault(tmp_path):
    return Document(tmp_path / "vault.yml")


@pytest.fixture
def inventory(tmp_path):
    return Document(tmp_path / "digitalocean.yml")


@pytest.fixture
def token(vault, inventory, cipher):
    return CredentialField(
        "DigitalOcean token",
        [(vault, "do_api_token"), (inventory, "oauth_token")],
        PLACEHOLDER,
        cipher,
    )


def test_field_needs_a_location(cipher):
    with pytest.raises(ValueError):
        CredentialField("token", [], PLACEHOLDER, cipher)


def test_missing_key_is_absent(token):
    assert token.status().state is FieldState.ABSENT
    assert token.status().value is None


def test_empty_value_is_absent(token, vault):
    vault.path.write_text("do_api_token:\n")
    assert token.status().state is FieldState.ABSENT


def test_set_encrypts_once_and_writes_all_locations(
    token, vault, inventory, cipher
):
    token.set("abc123")
    assert cipher.encrypted == ["do_api_token"]
    stored = vault.read("do_api_token")
    mirrored = inventory.read("oauth_token")
    assert isinstance(stored, ArmoredValue)
    assert stored == mirrored
    assert cipher.decrypt(mirrored) == "abc123"
    assert "abc123" not in vault.path.read_text()
    assert vault.path.read_text().startswith("do_api_token: !vault |\n")
    assert inventory.path.read_text().startswith("oauth_token: !vault |\n")


def test_present_value_is_decrypted(token):
    token.set("abc123")
    status = token.status()
    assert status.state is FieldState.PRESENT
    assert status.value == "abc123"


def test_set_updates_in_place(token, vault):
    vault.path.write_text("first: 1\ndo_api_token: old\nlast: 2\n")
    token.set("abc123")
    assert keys_of(vault) == ["first", "do_api_token", "last"]
    token.set("def456")
    assert token.status().value == "def456"


def test_clear_writes_placeholder_without_decrypting(
    token, vault, inventory, cipher
):
    token.set("abc123")
    token.clear()
    assert cipher.decrypted == []
    assert vault.read("do_api_token") == PLACEHOLDER
    assert isinstance(vault.read("do_api_token"), PlainValue)
    assert inventory.read("oauth_token") == PLACEHOLDER
    assert token.status().state is FieldState.PLACEHOLDER
    assert cipher.decrypted == []


def test_cleared_field_can_be_set_again(token):
    token.clear()
    token.set("abc123")
    assert token.status() == (FieldState.PRESENT, "abc123")


def test_corrupt_value_raises_instead_of_looking_absent(token, vault):
    vault.path.write_text(
        "do_api_token: !vault |\n"
        "  $ANSIBLE_VAULT;1.1;AES256\n"
        "  this-is-not-what-we-wrote\n"
    )
    with pytest.raises(CipherError):
        token.status()


def test_unencrypted_secret_is_reported(token, vault):
    vault.path.write_text("do_api_token: abc123\n")
    with pytest.raises(CipherError) as e:
        token.status()
    assert "abc123" not in str(e.value)
    assert "stored unencrypted" in str(e.value)


def test_failure_on_second_location_is_reported(vault, tmp_path, cipher):
    field = CredentialField(
        "DigitalOcean token",
        [
            (vault, "do_api_token"),
            (BrokenDocument(tmp_path / "digitalocean.yml"), "oauth_token"),
        ],
        PLACEHOLDER,
        cipher,
    )
    with pytest.raises(PartialWriteError) as e:
        field.set("abc123")
    assert e.value.written == ["{}:do_api_token".format(vault.path)]
    assert e.value.failed.endswith("digitalocean.yml:oauth_token")
    assert "abc123" not in str(e.value)


def test_failure_on_first_location_propagates_unchanged(
    tmp_path, inventory, cipher
):
    field = CredentialField(
        "DigitalOcean token",
        [
            (BrokenDocument(tmp_path / "vault.yml"), "do_api_token"),
            (inventory, "oauth_token"),
        ],
        PLACEHOLDER,
        cipher,
    )
    with pytest.raises(OSError):
        field.clear()
    assert not inventory.path.exists()


def test_cipher_failure_writes_nothing(vault):
    field = CredentialField(
        "DigitalOcean token", [(vault, "do_api_token")], PLACEHOLDER,
        BrokenCipher(),
    )
    with pytest.raises(CipherError):
        field.set("abc123")
    assert not vault.path.exists()


def test_set_fields_encrypts_everything_before_writing(vault, cipher):
    private = CredentialField(
        "SSH private key",
        [(vault, "ssh_private_key")],
        "Place SSH private key here",
        cipher,
    )
    public = CredentialField(
        "SSH public key",
        [(vault, "ssh_public_key")],
        "Place SSH public key here",
        BrokenCipher(),
    )
    with pytest.raises(CipherError):
        set_fields([(private, "PRIVATE"), (public, "PUBLIC")])
    assert not vault.path.exists()

    public.cipher = cipher
    set_fields([(private, "PRIVATE"), (public, "PUBLIC")])
    assert private.status().value == "PRIVATE"
    assert public.status().value == "PUBLIC"
    assert keys_of(vault) == ["ssh_private_key", "ssh_public_key"]


def test_set_fields_reports_partial_writes(vault, tmp_path, cipher):
    private = CredentialField(
        "SSH private key",
        [(vault, "ssh_private_key")],
        "Place SSH private key here",
        cipher,
    )
    public = CredentialField(
        "SSH public key",
        [(BrokenDocument(tmp_path / "other.yml"), "ssh_public_key")],
        "Place SSH public key here",
        cipher,
    )
    with pytest.raises(PartialWriteError) as e:
        set_fields([(private, "PRIVATE"), (public, "PUBLIC")])
    assert e.value.written == ["SSH private key"]


def test_clear_fields(vault, cipher):
    fields = [
        CredentialField(
            "SSH private key",
            [(vault, "ssh_private_key")],
            "Place SSH private key here",
            cipher,
        ),
        CredentialField(
            "SSH public key",
            [(vault, "ssh_public_key")],
            "Place SSH public key here",
            cipher,
        ),
    ]
    clear_fields(fields)
    assert vault.path.read_text() == (
        "ssh_private_key: Place SSH private key here\n"
        "ssh_public_key: Place SSH public key here\n"
    )
    assert [f.status().state for f in fields] == [FieldState.PLACEHOLDER] * 2
