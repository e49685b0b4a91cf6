"""Comma-separated codec for ledger files.

Line 1 of a ledger is its schema (column names). Every following line is one
record. A field wrapped in double quotes may contain commas, quotes and
newlines; a literal quote inside a quoted field is written as two quotes.
Fields are only quoted when they need it.

Reading is lenient: text after a closing quote is kept as part of the field
(``"Asha" Sharma`` reads as ``Asha Sharma``) and a stray quote inside a bare
field is literal. The only hard failure is a quoted field still open at the
end of the data.
"""

from typing import Iterable, Iterator, Mapping

from .errors import MalformedRow

Schema = list[str]
Record = dict[str, str]

# Tokenizer states
_START_FIELD = 0
_IN_FIELD = 1
_IN_QUOTED = 2
_QUOTE_IN_QUOTED = 3


def _iter_rows(text: str) -> Iterator[list[str]]:
    """Split ``text`` into rows of fields, skipping blank lines.

    Raises:
        MalformedRow: With the line where the unterminated quoted field opens
    """
    row: list[str] = []
    field: list[str] = []
    state = _START_FIELD
    touched = False
    line = 1
    quote_line = 1
    i, n = 0, len(text)

    while i < n:
        ch = text[i]
        i += 1

        if ch in "\r\n":
            if ch == "\r" and i < n and text[i] == "\n":
                i += 1
                ch = "\r\n"
            if state == _IN_QUOTED:
                field.append(ch)
            else:
                if touched:
                    row.append("".join(field))
                    yield row
                row, field, touched = [], [], False
                state = _START_FIELD
            line += 1
            continue

        touched = True
        if state == _IN_QUOTED:
            if ch == '"':
                state = _QUOTE_IN_QUOTED
            else:
                field.append(ch)
        elif ch == ",":
            row.append("".join(field))
            field = []
            state = _START_FIELD
        elif ch == '"' and state == _START_FIELD:
            state = _IN_QUOTED
            quote_line = line
        elif ch == '"' and state == _QUOTE_IN_QUOTED:
            field.append('"')
            state = _IN_QUOTED
        else:
            field.append(ch)
            state = _IN_FIELD

    if state == _IN_QUOTED:
        raise MalformedRow("Unterminated quoted field", line=quote_line)
    if touched:
        row.append("".join(field))
        yield row


def _normalize(schema: Schema, fields: list[str]) -> Record:
    """Map raw fields onto the schema, padding short rows and dropping extras."""
    padded = fields + [""] * (len(schema) - len(fields))
    return {column: padded[i] for i, column in enumerate(schema)}


def parse_all(data: bytes | str) -> tuple[Schema, list[Record]]:
    """Decode a whole ledger file into its schema and records.

    Blank lines are skipped. Raises MalformedRow when a quoted field is not
    terminated; short or long rows are tolerated. Header names are kept
    verbatim.
    """
    text = data.decode("utf-8-sig") if isinstance(data, bytes) else data.removeprefix("\ufeff")

    schema: Schema = []
    records: list[Record] = []
    for fields in _iter_rows(text):
        if not schema:
            schema = fields
            continue
        records.append(_normalize(schema, fields))

    return schema, records


def encode_field(value: str) -> str:
    if any(ch in value for ch in (",", '"', "\n", "\r")):
        return '"' + value.replace('"', '""') + '"'
    return value


def _text(value: object) -> str:
    return "" if value is None else str(value)


def encode_row(schema: Schema, record: Mapping[str, object]) -> str:
    """Encode one record as a single ledger line (with trailing newline)."""
    values = [_text(record.get(column)) for column in schema]
    if values == [""]:
        # A bare empty line would be read back as a blank line and skipped.
        return '""\n'
    return ",".join(encode_field(value) for value in values) + "\n"


def serialize_all(schema: Schema, records: Iterable[Mapping[str, object]]) -> bytes:
    """Encode a schema header plus every record, in schema column order."""
    # The header goes through encode_row so a lone empty column name survives too.
    lines = [encode_row(schema, dict(zip(schema, schema)))]
    lines.extend(encode_row(schema, record) for record in records)
    return "".join(lines).encode("utf-8")
