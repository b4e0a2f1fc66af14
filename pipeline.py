"""
Compression and decompression pipelines.

A pipeline runs its stages in a fixed order and reports what it is doing
through optional callbacks:

    on_status(message)          milestone text, one terminal message per run
    on_progress(fraction)       0.0 - 1.0, restarts at 0.0 with each stage
    on_complete(result, codes)  success
    on_finish(error)            failure

Exactly one of on_complete / on_finish is called per run. Errors never
escape run(); they are kept on `pipeline.error` and run() returns None.
"""

from enum import Enum
import logging
import os
import threading

import settings
from bits import BitWriter
from container import read_container, write_container
from errors import (HzError, InternalInvariantViolation, ReadError,
                    UndecodableBitstream, WriteError)
from huffman import build_codes, build_tree, count_frequencies, invert_codes, read_chunks

logger = logging.getLogger(__name__)


class CompressionState(Enum):
    IDLE = "idle"
    COUNTING_FREQUENCIES = "counting frequencies"
    BUILDING_TREE = "building tree"
    ENCODING = "encoding"
    SERIALIZING = "serializing"
    DONE = "done"
    FAILED = "failed"


class DecompressionState(Enum):
    IDLE = "idle"
    PARSING_HEADER = "parsing header"
    DECODING_PAYLOAD = "decoding payload"
    DONE = "done"
    FAILED = "failed"


class _Pipeline:
    States = None
    success_message = None

    def __init__(self, source, sink=None, on_status=None, on_progress=None,
                 on_complete=None, on_finish=None, chunk_size=None):
        self.source = source
        self.sink = sink
        self.on_status = on_status
        self.on_progress = on_progress
        self.on_complete = on_complete
        self.on_finish = on_finish
        self.chunk_size = chunk_size or settings.CHUNK_SIZE

        self.state = self.States.IDLE
        self.codes = {}
        self.result = None
        self.error = None
        self._stage_progress = 0.0

    def run(self):
        if self.state is not self.States.IDLE:
            raise RuntimeError(f"pipeline already ran (state: {self.state.value})")
        try:
            result = self._run()
        except HzError as e:
            self._fail(e)
            return None
        except Exception as e:
            logger.exception("unexpected failure in %s", type(self).__name__)
            err = InternalInvariantViolation(f"unexpected error: {e}")
            err.__cause__ = e
            self._fail(err)
            return None

        self.result = result
        self._enter(self.States.DONE)
        self._report_terminal(self.success_message, self.on_complete, result, self.codes)
        return result

    def start(self):
        """Run the pipeline on a background thread and return the thread."""
        t = threading.Thread(target=self.run, name=type(self).__name__, daemon=True)
        t.start()
        return t

    def _run(self):
        raise NotImplementedError

    def _enter(self, state, message=None):
        logger.debug("%s: %s -> %s", type(self).__name__, self.state.value, state.value)
        self.state = state
        self._stage_progress = 0.0
        if message:
            self._status(message)

    def _status(self, message):
        if self.on_status:
            self.on_status(message)

    def _progress(self, fraction):
        fraction = max(self._stage_progress, min(max(fraction, 0.0), 1.0))
        self._stage_progress = fraction
        if self.on_progress:
            self.on_progress(fraction)

    def _fail(self, error):
        logger.warning("%s failed in state %r: %s", type(self).__name__, self.state.value, error)
        self.error = error
        self.state = self.States.FAILED
        self._report_terminal(f"Error: {error}", self.on_finish, error)

    def _report_terminal(self, message, hook, *args):
        # Host callbacks must not keep the terminal hook from firing
        try:
            self._status(message)
        except Exception:
            logger.exception("on_status raised on terminal status %r", message)
        finally:
            if hook:
                try:
                    hook(*args)
                except Exception:
                    logger.exception("terminal hook %s raised", getattr(hook, "__name__", hook))

    def _open_source(self):
        if isinstance(self.source, (str, bytes, os.PathLike)):
            try:
                return open(self.source, "rb"), True
            except OSError as e:
                raise ReadError(f"cannot open {os.fsdecode(self.source)}: {e}") from e
        return self.source, False

    def _write_sink(self, data):
        if self.sink is None:
            return
        if isinstance(self.sink, (str, bytes, os.PathLike)):
            try:
                with open(self.sink, "wb") as f:
                    f.write(data)
            except OSError as e:
                try:
                    os.remove(self.sink)
                except OSError:
                    logger.debug("no partial output to remove at %s", os.fsdecode(self.sink))
                raise WriteError(f"cannot write {os.fsdecode(self.sink)}: {e}") from e
            return
        try:
            self.sink.write(data)
            flush = getattr(self.sink, "flush", None)
            if flush:
                flush()
        except (OSError, ValueError) as e:
            raise WriteError(f"cannot write output: {e}") from e


class CompressionPipeline(_Pipeline):
    """
    Huffman-compress a seekable binary source into a container.

    `source` and `sink` may be paths or file objects. The source is scanned
    twice (counting, then encoding). The sink is only written once the whole
    container has been built.
    """

    States = CompressionState
    success_message = "Compression complete."

    def __init__(self, source, sink=None, total=None, legacy=False, **kwargs):
        super().__init__(source, sink, **kwargs)
        self.total = total
        self.legacy = legacy

    def _run(self):
        f, owned = self._open_source()
        try:
            start, total = self._measure(f)

            self._enter(CompressionState.COUNTING_FREQUENCIES, "Calculating frequencies...")
            freq = count_frequencies(f, total, self.chunk_size, self._progress)
            self._status(f"Counted {sum(freq.values())} bytes, {len(freq)} distinct.")

            self._enter(CompressionState.BUILDING_TREE, "Building Huffman tree...")
            self._progress(0.0)
            root = build_tree(freq)
            del freq
            self.codes = build_codes(root)
            invert_codes(self.codes)
            self._progress(1.0)

            self._enter(CompressionState.ENCODING, "Encoding file...")
            writer = self._encode(f, start, total)
        finally:
            if owned:
                f.close()

        self._enter(CompressionState.SERIALIZING, "Writing container...")
        self._progress(0.0)
        data = write_container(self.codes, writer.getvalue(), writer.bit_count, legacy=self.legacy)
        self._write_sink(data)
        self._progress(1.0)
        return data

    def _measure(self, f):
        try:
            if not f.seekable():
                raise ReadError("source must be seekable to be scanned twice")
            start = f.tell()
            total = self.total
            if total is None:
                total = f.seek(0, os.SEEK_END) - start
                f.seek(start)
        except ValueError as e:
            raise ReadError(f"source is not readable: {e}") from e
        except OSError as e:
            raise ReadError(f"cannot seek source: {e}") from e
        return start, total

    def _encode(self, f, start, total):
        try:
            f.seek(start)
        except (OSError, ValueError) as e:
            raise ReadError(f"cannot rewind source: {e}") from e

        codes = self.codes
        writer = BitWriter()
        done = 0
        self._progress(0.0)
        for chunk in read_chunks(f, self.chunk_size):
            try:
                writer.write("".join(codes[b] for b in chunk))
            except KeyError as e:
                # the source changed between the two scans
                raise ReadError(f"byte {e.args[0]} was not seen while counting") from e
            done += len(chunk)
            if total:
                self._progress(done / total)
        self._progress(1.0)
        self._status(f"Encoded {done} bytes into {writer.bit_count} bits.")
        return writer


class DecompressionPipeline(_Pipeline):
    """
    Decode a container back into the original bytes.

    The whole container is buffered, then the payload is walked bit by bit.
    The sink is only written once decoding has finished.
    """

    States = DecompressionState
    success_message = "Decompression complete."

    def __init__(self, source, sink=None, legacy=False, progress_step=None, **kwargs):
        super().__init__(source, sink, **kwargs)
        self.legacy = legacy
        self.progress_step = progress_step or settings.PROGRESS_STEP_BITS

    def _run(self):
        self._enter(DecompressionState.PARSING_HEADER, "Reading header...")
        self._progress(0.0)
        f, owned = self._open_source()
        try:
            data = b"".join(read_chunks(f, self.chunk_size))
        finally:
            if owned:
                f.close()
        rev, bits = read_container(data, legacy=self.legacy)
        self.codes = invert_codes(rev)
        self._progress(1.0)
        self._status(f"Found {len(rev)} symbols and {len(bits)} payload bits.")

        self._enter(DecompressionState.DECODING_PAYLOAD, "Decoding payload...")
        out = self._decode(rev, bits)
        self._write_sink(out)
        return out

    def _decode(self, rev, bits):
        total = len(bits)
        max_len = max(map(len, rev), default=0)
        step = self.progress_step
        out = bytearray()
        cur = ""

        self._progress(0.0)
        for n, bit in enumerate(bits, 1):
            cur += bit
            if cur in rev:
                out.append(rev[cur])
                cur = ""
            elif len(cur) >= max_len:
                raise UndecodableBitstream(f"bits {n - len(cur)}-{n - 1} match no code")
            if n % step == 0:
                self._progress(n / total)

        if cur:
            if self.legacy and len(cur) < 8:
                logger.debug("ignoring %d trailing padding bits", len(cur))
            else:
                raise UndecodableBitstream(f"payload ends inside a code ({len(cur)} bits left over)")
        self._progress(1.0)
        return bytes(out)
