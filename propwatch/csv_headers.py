import csv
import io
from typing import List

from propwatch.errors import ParseError

DELIMITERS = ",;\t|"
SNIFF_LINES = 20
ENCODINGS = ("utf-8-sig", "cp1252")


def _decode(content: bytes) -> str:
    if b"\x00" in content[:4096]:
        raise ParseError("File looks binary, expected CSV text")
    for encoding in ENCODINGS:
        try:
            return content.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise ParseError("Could not decode file as text")


def _dialect(sample: str):
    try:
        return csv.Sniffer().sniff(sample, delimiters=DELIMITERS)
    except csv.Error:
        # single-column files give the sniffer nothing to go on
        return csv.excel


def read_headers(content: bytes) -> List[str]:
    """Return the header row of a delimited file, in file order.

    Header names are returned exactly as written so the mapping sent to the
    server refers to real columns. Only the first row is parsed here; the
    rest of the file is left to the server.
    """
    if not content or not content.strip():
        raise ParseError("File is empty")
    text = _decode(content)
    sample = "\n".join(text.splitlines()[:SNIFF_LINES])
    reader = csv.reader(io.StringIO(sample), _dialect(sample))
    try:
        row = next(reader, None)
    except csv.Error as e:
        raise ParseError(f"Could not parse CSV headers: {e}") from e

    headers = list(row or [])
    if not any(h.strip() for h in headers):
        raise ParseError("Could not parse CSV headers")
    return headers
