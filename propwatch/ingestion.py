"""Listing ingestion: file -> header mapping -> upload.

The wizard is an explicit state machine. ``transition`` is pure: it takes the
current state and an event and returns the next state, or raises
``InvalidTransition``. ``IngestionPipeline`` owns one state value and performs
the side effects (parsing, network calls) around those transitions.

    Idle -> HasFile -> Mapping -> Submitting -> Succeeded
                          ^            |
                          +------------+  (submission failed)
"""

import logging
import os
import threading
from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Tuple, Union

from propwatch.column_mapping import FIELD_KEYS, auto_map, missing_fields
from propwatch.csv_headers import read_headers
from propwatch.errors import InvalidTransition, RemoteError, ValidationError
from propwatch.models import ImportResult, UploadStats

logger = logging.getLogger(__name__)

GENERIC_UPLOAD_FAILURE = "Failed to upload file"


@dataclass(frozen=True)
class SourceFile:
    filename: str
    content: bytes = field(repr=False)

    @classmethod
    def from_path(cls, path: str) -> "SourceFile":
        with open(path, "rb") as f:
            return cls(os.path.basename(path), f.read())


# --- states -----------------------------------------------------------------

@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class HasFile:
    file: SourceFile


@dataclass(frozen=True)
class Mapping:
    file: SourceFile
    headers: Tuple[str, ...]
    mapping: Tuple[Tuple[str, Optional[str]], ...]
    error: Optional[str] = None

    def mapping_dict(self) -> Dict[str, Optional[str]]:
        return dict(self.mapping)


@dataclass(frozen=True)
class Submitting:
    file: SourceFile
    headers: Tuple[str, ...]
    mapping: Tuple[Tuple[str, Optional[str]], ...]


@dataclass(frozen=True)
class Succeeded:
    file: SourceFile
    stats: UploadStats


State = Union[Idle, HasFile, Mapping, Submitting, Succeeded]


# --- events -----------------------------------------------------------------

@dataclass(frozen=True)
class FileSelected:
    file: SourceFile


@dataclass(frozen=True)
class HeadersParsed:
    headers: Tuple[str, ...]


@dataclass(frozen=True)
class MappingChanged:
    key: str
    header: Optional[str]


@dataclass(frozen=True)
class SubmitStarted:
    pass


@dataclass(frozen=True)
class SubmitSucceeded:
    stats: UploadStats


@dataclass(frozen=True)
class SubmitFailed:
    message: str


@dataclass(frozen=True)
class ResetRequested:
    pass


Event = Union[FileSelected, HeadersParsed, MappingChanged, SubmitStarted, SubmitSucceeded, SubmitFailed, ResetRequested]


def _freeze(mapping: Dict[str, Optional[str]]) -> Tuple[Tuple[str, Optional[str]], ...]:
    return tuple((key, mapping.get(key)) for key in FIELD_KEYS)


def transition(state: State, event: Event) -> State:
    if isinstance(event, ResetRequested):
        return Idle()

    if isinstance(event, FileSelected) and isinstance(state, (Idle, HasFile)):
        return HasFile(event.file)

    if isinstance(event, HeadersParsed) and isinstance(state, HasFile):
        # auto-mapping runs exactly once per file, here
        return Mapping(state.file, tuple(event.headers), _freeze(auto_map(event.headers)))

    if isinstance(event, MappingChanged) and isinstance(state, Mapping):
        if event.key not in FIELD_KEYS:
            raise ValidationError(f"Unknown field: {event.key}")
        mapping = state.mapping_dict()
        mapping[event.key] = event.header or None
        return replace(state, mapping=_freeze(mapping), error=None)

    if isinstance(event, SubmitStarted) and isinstance(state, Mapping):
        missing = missing_fields(state.mapping_dict())
        if missing:
            raise ValidationError(f"Please map all required fields: {', '.join(missing)}", missing)
        return Submitting(state.file, state.headers, state.mapping)

    if isinstance(event, SubmitSucceeded) and isinstance(state, Submitting):
        return Succeeded(state.file, event.stats)

    if isinstance(event, SubmitFailed) and isinstance(state, Submitting):
        return Mapping(state.file, state.headers, state.mapping, error=event.message)

    raise InvalidTransition(f"{type(event).__name__} is not allowed in state {type(state).__name__}")


class IngestionPipeline:
    """Drives one listing upload from file selection to ingestion statistics."""

    def __init__(self, client):
        self.client = client
        self._lock = threading.Lock()
        self._state: State = Idle()

    @property
    def state(self) -> State:
        return self._state

    def _apply(self, event: Event) -> State:
        with self._lock:
            self._state = transition(self._state, event)
            return self._state

    def accept_file(self, file: SourceFile) -> Mapping:
        """Parse the header row and propose a column mapping.

        Raises ParseError, leaving the state untouched, when no header row can
        be read.
        """
        with self._lock:
            if not isinstance(self._state, (Idle, HasFile)):
                raise InvalidTransition(f"Cannot accept a file in state {type(self._state).__name__}")
            headers = read_headers(file.content)
            self._state = transition(self._state, FileSelected(file))
            self._state = transition(self._state, HeadersParsed(tuple(headers)))
            logger.info("Read %d columns from %s", len(headers), file.filename)
            return self._state

    def set_mapping(self, key: str, header: Optional[str]) -> Mapping:
        return self._apply(MappingChanged(key, header))

    def submit(self) -> Succeeded:
        """Upload the file with its mapping.

        On failure the pipeline returns to Mapping with file and mapping intact
        and the error is re-raised for the caller to display.
        """
        with self._lock:
            submitting = transition(self._state, SubmitStarted())
            self._state = submitting

        mapping = {key: header for key, header in submitting.mapping}
        try:
            stats = self.client.upload_listings(submitting.file.filename, submitting.file.content, mapping)
        except Exception as e:
            message = e.detail if isinstance(e, RemoteError) and e.detail else GENERIC_UPLOAD_FAILURE
            logger.warning("Upload of %s failed: %s", submitting.file.filename, e)
            self._finish(submitting, SubmitFailed(message))
            raise

        logger.info(
            "Uploaded %s: %d records processed, %d skipped",
            submitting.file.filename,
            stats.records_processed,
            stats.records_skipped,
        )
        return self._finish(submitting, SubmitSucceeded(stats))

    def _finish(self, submitting: Submitting, event: Event) -> State:
        with self._lock:
            if self._state is not submitting:
                # reset while the upload was in flight
                logger.info("Pipeline was reset during upload, discarding result")
                return self._state
            self._state = transition(self._state, event)
            return self._state

    def reset(self) -> Idle:
        return self._apply(ResetRequested())

    def run_fraud_scan(self):
        """Ask the service to scan the ingested listings for fraud matches."""
        if not isinstance(self._state, Succeeded):
            raise InvalidTransition("Fraud scan is only available after a successful upload")
        trigger_fraud_scan(self.client)


def trigger_fraud_scan(client):
    client.trigger_fraud_scan()
    logger.info("Fraud scan completed")


def import_from_alto(client) -> ImportResult:
    """Pull listings from the property-management integration.

    Per-record errors do not fail the import; each one is reported.
    """
    result = client.import_from_alto()
    logger.info("Imported %d listings from Alto", result.imported)
    for message in result.errors:
        logger.warning("Alto import: %s", message)
    return result
