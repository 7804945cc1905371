"""Line preserving editor for YAML documents holding vault values.

Ansible reads these documents, so they must stay valid YAML. Humans edit
them as well, so updating a single key must not reformat anything else:
the document is split into top-level entries on the line level and only the
lines of the updated entry are replaced. PyYAML is used to check that the
document is well formed and to read values.

"""

import collections.abc
import pathlib
import re
from typing import List, Tuple, Union

import yaml

from dosecrets import DocumentCorrupt, NotFound, output
from dosecrets._output import redact
from dosecrets.utils import staged_file

VAULT_TAG = "!vault"
MERGE_TAG = "tag:yaml.org,2002:merge"
INDENT = "  "

KEY_NAME = re.compile(r"[A-Za-z0-9_][A-Za-z0-9_.\-]*")
KEY_LINE = re.compile(r"^(?P<key>[A-Za-z0-9_][A-Za-z0-9_.\-]*):(?:\s.*)?$")


class PlainValue(str):
    """A value stored as-is."""


class ArmoredValue(str):
    """An encrypted value, stored as a tagged block."""


class VaultLoader(yaml.SafeLoader):
    """Safe loader that keeps `!vault` values as `ArmoredValue`.

    Repeated keys in a mapping are an error instead of silently replacing
    the earlier value.

    """

    def construct_mapping(self, node, deep=False):
        if isinstance(node, yaml.MappingNode):
            seen = set()
            for key_node, _ in node.value:
                if key_node.tag == MERGE_TAG:
                    continue
                key = self.construct_object(key_node, deep=deep)
                if not isinstance(key, collections.abc.Hashable):
                    continue
                if key in seen:
                    raise yaml.constructor.ConstructorError(
                        "while constructing a mapping",
                        node.start_mark,
                        "found duplicate key {!r}".format(key),
                        key_node.start_mark,
                    )
                seen.add(key)
        return super().construct_mapping(node, deep=deep)


def _construct_vault(loader, node):
    return ArmoredValue(loader.construct_scalar(node).strip())


VaultLoader.add_constructor(VAULT_TAG, _construct_vault)


class Entry(object):
    """A top-level key with all lines that belong to it."""

    def __init__(self, key, lines):
        self.key = key
        self.lines = lines

    def __repr__(self):
        return "<Entry {} ({} lines)>".format(self.key, len(self.lines))


Chunk = Union[Entry, str]


def _is_pending(line: str) -> bool:
    return not line.strip() or line.startswith("#")


def _is_continuation(line: str) -> bool:
    if line[:1] in (" ", "\t"):
        return True
    # Block sequences may start at column 0 below their key.
    return line[:1] == "-" and line[1:2] in (" ", "\t", "\r", "\n", "")


def split_entries(text: str) -> List[Chunk]:
    """Split a document into entries and unrelated lines.

    An entry starts at a non-indented `key:` line. Indented lines and
    sequence items at column 0 belong to the preceding entry, as do blank
    lines and comments if more of the entry's lines follow. Document
    markers end the entry and are kept as-is.

    """
    chunks: List[Chunk] = []
    current = None
    pending: List[str] = []
    for line in text.splitlines(keepends=True):
        if _is_pending(line):
            pending.append(line)
            continue
        if current is not None and _is_continuation(line):
            current.lines.extend(pending)
            current.lines.append(line)
            pending = []
            continue
        chunks.extend(pending)
        pending = []
        m = KEY_LINE.match(line.rstrip("\r\n"))
        if m:
            current = Entry(m.group("key"), [line])
            chunks.append(current)
        else:
            current = None
            chunks.append(line)
    chunks.extend(pending)
    return chunks


def _join(chunks: List[Chunk]) -> str:
    return "".join(
        "".join(c.lines) if isinstance(c, Entry) else c for c in chunks
    )


def _append_position(chunks: List[Chunk]) -> int:
    """New entries go to the end, but before a trailing `...` marker."""
    for i in range(len(chunks) - 1, -1, -1):
        chunk = chunks[i]
        if isinstance(chunk, Entry):
            break
        if chunk.strip() == "...":
            return i
    return len(chunks)


def render_entry(key: str, value: Union[PlainValue, ArmoredValue]) -> List[str]:
    if isinstance(value, ArmoredValue):
        lines = ["{}: {} |\n".format(key, VAULT_TAG)]
        lines.extend(
            INDENT + line.strip() + "\n" for line in value.strip().splitlines()
        )
        return lines
    return [
        yaml.safe_dump(
            {key: str(value)},
            default_flow_style=False,
            allow_unicode=True,
            width=float("inf"),
        )
    ]


class Document(object):
    """A YAML document on disk, edited one top-level key at a time."""

    def __init__(self, path):
        self.path = pathlib.Path(path)

    def __str__(self):
        return str(self.path)

    def __repr__(self):
        return "<Document {}>".format(self.path)

    def _read_text(self) -> str:
        try:
            return self.path.read_bytes().decode("utf-8")
        except FileNotFoundError:
            return ""
        except (OSError, UnicodeDecodeError) as e:
            raise DocumentCorrupt.from_context(self.path, e)

    def _parse(self, text: str) -> Tuple[dict, List[Chunk]]:
        chunks = split_entries(text)
        try:
            data = yaml.load(text, Loader=VaultLoader)
        except yaml.YAMLError as e:
            raise DocumentCorrupt.from_context(self.path, e)
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise DocumentCorrupt.from_context(
                self.path, "top level is not a mapping"
            )
        return data, chunks

    def check(self):
        """Raise DocumentCorrupt if the document can not be edited safely."""
        self._parse(self._read_text())

    def read(self, key: str) -> Union[PlainValue, ArmoredValue]:
        """Return the stored value for `key` without decrypting it."""
        data, _ = self._parse(self._read_text())
        if key not in data:
            output.annotate(
                "Key `{}` not found in {}".format(key, self.path), debug=True
            )
            raise NotFound(key)
        value = data[key]
        if isinstance(value, ArmoredValue):
            output.annotate(
                "Value for `{}` in {} is encrypted".format(key, self.path),
                debug=True,
            )
            return value
        if isinstance(value, (dict, list)):
            raise DocumentCorrupt.from_context(
                self.path, "value of `{}` is not a scalar".format(key)
            )
        value = PlainValue("" if value is None else str(value))
        output.annotate(
            "Value for `{}` in {} is plain: {}".format(
                key, self.path, redact(value)
            ),
            debug=True,
        )
        return value

    def upsert(self, key: str, value: Union[PlainValue, ArmoredValue]):
        """Store `value` under `key`, replacing an existing entry in place
        or appending a new one."""
        if not isinstance(value, (PlainValue, ArmoredValue)):
            raise TypeError(
                "Expected PlainValue or ArmoredValue, got {}".format(
                    type(value).__name__
                )
            )
        if not KEY_NAME.fullmatch(key):
            raise ValueError("Invalid key `{}`".format(key))
        text = self._read_text()
        data, chunks = self._parse(text)
        new_lines = render_entry(key, value)

        replaced = False
        for chunk in chunks:
            if isinstance(chunk, Entry) and chunk.key == key:
                chunk.lines = new_lines
                replaced = True
        if replaced:
            content = _join(chunks)
        elif key in data:
            # Quoted or otherwise spelled keys can not be replaced on the
            # line level.
            raise DocumentCorrupt.from_context(
                self.path,
                "`{}` is not written as a plain top-level key".format(key),
            )
        else:
            position = _append_position(chunks)
            head = _join(chunks[:position])
            if head and not head.endswith("\n"):
                head += "\n"
            content = head + "".join(new_lines) + _join(chunks[position:])

        # Never write something we could not read back.
        self._parse(content)

        output.annotate(
            "{} `{}` in {}".format(
                "Replacing" if replaced else "Appending", key, self.path
            ),
            debug=True,
        )
        with staged_file(self.path) as f:
            f.write(content)
