"""Consumer/processor/producer scaffolding shared by pipeline commands."""
from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from typing import Any, Dict, Generic, List, Optional, Protocol, TypeVar

from .cli_errors import ExitCode

LOG = logging.getLogger(__name__)

PayloadT = TypeVar("PayloadT")
ResultT = TypeVar("ResultT")
RequestT = TypeVar("RequestT")
T = TypeVar("T")
R = TypeVar("R")


@dataclass
class ResultEnvelope(Generic[ResultT]):
    status: str
    payload: Optional[ResultT] = None
    diagnostics: Optional[dict[str, Any]] = None

    def ok(self) -> bool:
        return self.status.lower() == "success"

    def unwrap(self) -> ResultT:
        """Return payload or raise ValueError. Use after ok() check."""
        if self.payload is None:
            msg = (self.diagnostics or {}).get("message", "No payload")
            raise ValueError(msg)
        return self.payload

    def exit_code(self) -> int:
        if self.ok():
            return int(ExitCode.SUCCESS)
        return int((self.diagnostics or {}).get("code", ExitCode.ERROR))


class Consumer(Protocol[PayloadT]):
    def consume(self) -> PayloadT:
        ...


class Processor(Protocol[PayloadT, ResultT]):
    def process(self, payload: PayloadT) -> ResultT:
        ...


class Producer(Protocol[ResultT]):
    def produce(self, result: ResultT) -> None:
        ...


class RequestConsumer(Generic[RequestT], Consumer[RequestT]):
    """Generic consumer that hands back the request it was built with.

    Example usage:
        request = BuildRequest(...)
        payload = RequestConsumer(request).consume()  # Returns the request
    """

    def __init__(self, request: RequestT) -> None:
        self._request = request

    def consume(self) -> RequestT:  # pragma: no cover - trivial
        return self._request


class BaseProducer:
    """Base class for pipeline producers with common error handling.

    Subclasses override _produce_success() to report successful results;
    failed envelopes are reported on stderr here.
    """

    def produce(self, result: ResultEnvelope) -> None:
        """Template method: handle errors, delegate success to subclass."""
        if self.print_error(result):
            return
        if result.payload is not None:
            self._produce_success(result.payload, result.diagnostics)

    def _produce_success(self, payload: Any, diagnostics: Optional[Dict[str, Any]]) -> None:
        """Override in subclass to handle successful result output."""
        raise NotImplementedError("Subclass must implement _produce_success")

    @staticmethod
    def print_error(result: ResultEnvelope) -> bool:
        """Print error message if result failed. Returns True if the result failed."""
        if result.ok():
            return False
        msg = (result.diagnostics or {}).get("message")
        if msg:
            print(f"Error: {msg}", file=sys.stderr)
        return True

    @staticmethod
    def print_logs(logs: List[str]) -> None:
        """Print a list of report lines."""
        for line in logs:
            print(line)


class SafeProcessor(Generic[T, R]):
    """Base processor that turns raised errors into error envelopes.

    Subclasses override _process_safe(); an exception carrying a ``code``
    attribute (CLIError and the pipeline errors do) keeps that exit code.
    """

    def process(self, payload: T) -> ResultEnvelope[R]:
        """Wrap _process_safe with error handling."""
        try:
            result = self._process_safe(payload)
            return ResultEnvelope(status="success", payload=result)
        except Exception as e:
            LOG.debug("%s failed", type(self).__name__, exc_info=True)
            code = int(getattr(e, "code", ExitCode.ERROR))
            return ResultEnvelope(status="error", diagnostics={"message": str(e), "code": code})

    def _process_safe(self, payload: T) -> R:
        """Override to implement processing logic without error handling boilerplate."""
        raise NotImplementedError("Subclass must implement _process_safe")


def run_pipeline(request: Any, processor: Processor[Any, ResultEnvelope], producer: Producer[ResultEnvelope]) -> int:
    """Execute a pipeline and return CLI exit code.

    1. Process the request
    2. Produce output
    3. Return the envelope's exit code
    """
    envelope = processor.process(RequestConsumer(request).consume())
    producer.produce(envelope)
    return envelope.exit_code()
