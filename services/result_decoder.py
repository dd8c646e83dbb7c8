"""
Decoder for the generator's question/answer CSV result files
"""
import csv
import io
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional
from urllib.parse import urlparse, unquote

import requests
from urllib3.exceptions import HTTPError as Urllib3HTTPError

from config import settings
from utils.exceptions import DecodeError, create_malformed_row_error

logger = logging.getLogger(__name__)

READ_ERRORS = (OSError, UnicodeDecodeError, requests.exceptions.RequestException, Urllib3HTTPError)


@dataclass(frozen=True)
class QuestionRecord:
    """One decoded row: a question and its correct answer"""
    question: str
    answer: str


class ResultDecoder:
    """
    Reads a comma-delimited result stream into QuestionRecords.

    The first row is a header and is always discarded. Every later row must
    have at least two fields (question, answer); extra columns are ignored.
    A row with fewer fields, a blank line included, fails the whole decode.
    """

    def __init__(self, timeout: Optional[float] = None, session: Optional[requests.Session] = None):
        self.timeout = timeout if timeout is not None else settings.result_stream_timeout_seconds
        self.session = session

    def decode(self, stream_pointer: str) -> List[QuestionRecord]:
        """Decode the whole stream and return its records in row order"""
        with self.open(stream_pointer) as records:
            return list(records)

    @contextmanager
    def open(self, stream_pointer: str) -> Iterator[Iterator[QuestionRecord]]:
        """
        Open the stream and yield a lazy iterator over its records

        The underlying stream is released when the block exits, whether or
        not the records were fully consumed.

        Raises:
            DecodeError: If the stream cannot be opened or read, or a row is malformed
        """
        with self._open_text(stream_pointer) as text:
            yield self._iter_records(stream_pointer, text)

    def _iter_records(self, stream_pointer: str, text: Iterator[str]) -> Iterator[QuestionRecord]:
        reader = csv.reader(_guard_read_errors(stream_pointer, text))
        count = 0

        try:
            header = next(reader, None)
            if header is None:
                logger.info(f"Result stream is empty: {stream_pointer}")
                return

            for row in reader:
                if len(row) < 2:
                    raise create_malformed_row_error(stream_pointer, reader.line_num, len(row))
                count += 1
                yield QuestionRecord(question=row[0], answer=row[1])
        except csv.Error as e:
            raise DecodeError(
                message=f"Invalid CSV in result stream: {e}",
                stream_pointer=stream_pointer,
                line_number=reader.line_num,
                original_exception=e
            )

        logger.info(f"Decoded {count} records from {stream_pointer}")

    @contextmanager
    def _open_text(self, stream_pointer: str) -> Iterator[Iterator[str]]:
        if not stream_pointer:
            raise DecodeError(message="Result stream pointer is empty")

        scheme = urlparse(stream_pointer).scheme.lower()
        if scheme in ("http", "https"):
            with self._open_http(stream_pointer) as text:
                yield text
        else:
            with self._open_file(stream_pointer) as text:
                yield text

    @contextmanager
    def _open_http(self, stream_pointer: str) -> Iterator[Iterator[str]]:
        http = self.session or requests
        try:
            response = http.get(stream_pointer, stream=True, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"Result stream unreachable: {e}")
            raise DecodeError(
                message=f"Result stream unreachable: {e}",
                stream_pointer=stream_pointer,
                original_exception=e
            )

        with response:
            if not response.ok:
                logger.error(f"Result stream returned HTTP {response.status_code}")
                raise DecodeError(
                    message=f"Result stream returned HTTP {response.status_code}",
                    stream_pointer=stream_pointer
                )
            # Let urllib3 undo any Content-Encoding before the bytes reach the text layer
            response.raw.decode_content = True
            with io.TextIOWrapper(response.raw, encoding="utf-8-sig", newline="") as text:
                yield text

    @contextmanager
    def _open_file(self, stream_pointer: str) -> Iterator[Iterator[str]]:
        parsed = urlparse(stream_pointer)
        path = Path(unquote(parsed.path)) if parsed.scheme == "file" else Path(stream_pointer)
        try:
            handle = path.open("r", encoding="utf-8-sig", newline="")
        except OSError as e:
            logger.error(f"Result file unreadable: {e}")
            raise DecodeError(
                message=f"Result file unreadable: {e}",
                stream_pointer=stream_pointer,
                original_exception=e
            )

        with handle:
            yield handle


def _guard_read_errors(stream_pointer: str, lines: Iterator[str]) -> Iterator[str]:
    """Re-raise failures while reading the stream as DecodeError"""
    try:
        yield from lines
    except READ_ERRORS as e:
        logger.error(f"Failed reading result stream: {e}")
        raise DecodeError(
            message=f"Failed reading result stream: {e}",
            stream_pointer=stream_pointer,
            original_exception=e
        )
