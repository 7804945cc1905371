import enum
from typing import List, NamedTuple, Optional, Sequence, Tuple

from dosecrets import CipherError, NotFound, PartialWriteError, output
from dosecrets.cipher import Cipher
from dosecrets.store import ArmoredValue, Document, PlainValue


class FieldState(enum.Enum):
    ABSENT = "absent"
    PLACEHOLDER = "placeholder"
    PRESENT = "present"


class FieldStatus(NamedTuple):
    state: FieldState
    value: Optional[str] = None


Location = Tuple[Document, str]


class CredentialField(object):
    """A secret that is stored in one or more document locations.

    The first location is authoritative when reading the current state.
    All locations are written whenever the secret changes.

    """

    def __init__(
        self,
        name: str,
        locations: Sequence[Location],
        placeholder: str,
        cipher: Cipher,
    ):
        if not locations:
            raise ValueError("A field needs at least one location.")
        self.name = name
        self.locations = list(locations)
        self.placeholder = placeholder
        self.cipher = cipher

    def __repr__(self):
        return "<CredentialField {}>".format(self.name)

    @property
    def primary(self) -> Location:
        return self.locations[0]

    def status(self) -> FieldStatus:
        document, key = self.primary
        try:
            value = document.read(key)
        except NotFound:
            return FieldStatus(FieldState.ABSENT)
        if isinstance(value, ArmoredValue):
            # Decryption errors propagate.
            return FieldStatus(
                FieldState.PRESENT, self.cipher.decrypt(value, key)
            )
        if not value.strip():
            return FieldStatus(FieldState.ABSENT)
        if value == self.placeholder:
            return FieldStatus(FieldState.PLACEHOLDER)
        raise CipherError.malformed(
            key, "in {} is stored unencrypted".format(document)
        )

    def encrypt(self, value: str) -> ArmoredValue:
        _, key = self.primary
        return self.cipher.encrypt(value, key)

    def write(self, value):
        """Write an already prepared value to all locations."""
        written: List[str] = []
        for document, key in self.locations:
            try:
                document.upsert(key, value)
            except Exception as e:
                if not written:
                    raise
                raise PartialWriteError.from_context(
                    self.name, written, "{}:{}".format(document, key), e
                ) from e
            written.append("{}:{}".format(document, key))
        output.annotate(
            "Stored {} in {}".format(self.name, ", ".join(written)), debug=True
        )

    def set(self, value: str):
        self.write(self.encrypt(value))

    def clear(self):
        self.write(PlainValue(self.placeholder))


def set_fields(pairs: Sequence[Tuple[CredentialField, str]]):
    """Set several fields, encrypting all values before writing any."""
    prepared = [(field, field.encrypt(value)) for field, value in pairs]
    done: List[CredentialField] = []
    for field, armored in prepared:
        try:
            field.write(armored)
        except PartialWriteError:
            raise
        except Exception as e:
            if not done:
                raise
            document, key = field.primary
            raise PartialWriteError.from_context(
                ", ".join(f.name for f in done + [field]),
                [f.name for f in done],
                "{}:{}".format(document, key),
                e,
            ) from e
        done.append(field)


def clear_fields(fields: Sequence[CredentialField]):
    for field in fields:
        field.clear()
