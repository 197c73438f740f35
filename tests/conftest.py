import asyncio
import atexit
import faulthandler
import os
import sys
import tempfile
import threading
import time
from typing import Dict, List, Optional, Tuple

import pytest

# Keep test runs out of the user's ~/.docdetect/logs
os.environ.setdefault("DOCDETECT_LOG_DIR", tempfile.mkdtemp(prefix="docdetect-logs-"))

from docdetect.core.models import AttachmentMetadata, EmailContext  # noqa: E402
from docdetect.core.rate_limiter import reset_concurrency_limiter  # noqa: E402
from docdetect.providers.factory import ProviderFactory  # noqa: E402
from docdetect.utils.config import reset_config_cache  # noqa: E402

KB = 1024

# Filler long enough to pass the insufficient-text check
FILLER = (
    "Experienced engineer with eight years of backend development, "
    "distributed systems and team leadership. Education: BSc Computer Science."
)


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _start_watchdog(timeout_seconds: int) -> Optional[threading.Timer]:
    if timeout_seconds <= 0:
        return None

    def _kill() -> None:
        faulthandler.dump_traceback(file=sys.stderr, all_threads=True)
        # Hard exit: guarantees CI can't hang forever.
        os._exit(2)

    timer = threading.Timer(timeout_seconds, _kill)
    timer.daemon = True
    timer.start()
    return timer


def pytest_sessionstart(session) -> None:  # noqa: ANN001
    faulthandler.enable(all_threads=True)

    # Absolute upper bound for the whole test run (default 10 minutes).
    watchdog_seconds = _env_int("PYTEST_WATCHDOG_TIMEOUT_SECONDS", 10 * 60)
    timer = _start_watchdog(watchdog_seconds)
    if timer is not None:
        atexit.register(timer.cancel)


@pytest.fixture(autouse=True)
def _reset_globals():
    """Process-wide singletons must not leak between tests."""
    reset_concurrency_limiter()
    reset_config_cache()
    ProviderFactory.clear_cache()
    yield
    reset_concurrency_limiter()
    reset_config_cache()
    ProviderFactory.clear_cache()


def make_attachment(
    filename: str,
    mime_type: str = "application/pdf",
    size_bytes: int = 250 * KB,
    attachment_id: Optional[str] = None,
) -> AttachmentMetadata:
    return AttachmentMetadata(
        id=attachment_id or filename,
        filename=filename,
        mime_type=mime_type,
        size_bytes=size_bytes,
    )


@pytest.fixture
def attachment_factory():
    return make_attachment


@pytest.fixture
def applicant_email():
    """Jane applying from a personal address."""
    return EmailContext(
        sender_address="jane.doe@gmail.com",
        subject="Applying for Senior Engineer role",
        attachment_count=1,
    )


@pytest.fixture
def corporate_email():
    """Neutral corporate email: subject and sender give the base points only."""
    return EmailContext(sender_address="hr@acme.com", subject="Documents", attachment_count=3)


def document_text(marker: str) -> str:
    """Extracted text carrying a marker the scripted model can route on."""
    return f"[{marker}] {FILLER}"


class TextLoader:
    """Content loader returning already-extracted text keyed by attachment id."""

    def __init__(self, texts: Optional[Dict[str, str]] = None, failing: Tuple[str, ...] = ()):
        self.texts = texts or {}
        self.failing = set(failing)
        self.loaded: List[str] = []

    async def load(self, attachment: AttachmentMetadata) -> str:
        self.loaded.append(attachment.id)
        if attachment.id in self.failing:
            raise IOError(f"mail server refused {attachment.id}")
        return self.texts.get(attachment.id, document_text(attachment.id))


class ScriptedModel:
    """
    Async fake model. Finds the "[marker]" of the document in the prompt and
    answers with the scripted (delay, reply) for it; a reply that is an
    exception instance is raised instead.
    """

    DEFAULT_REPLY = '{"isMatch": true, "confidence": 0.9, "reason": "looks like a CV"}'

    def __init__(self, script: Optional[Dict[str, Tuple[float, object]]] = None):
        self.script = script or {}
        self.calls: List[str] = []
        self.completed: List[str] = []
        self.in_flight = 0
        self.peak_in_flight = 0

    def _marker(self, prompt: str) -> str:
        for marker in self.script:
            if f"[{marker}]" in prompt:
                return marker
        return ""

    async def complete(self, prompt: str, settings) -> str:
        marker = self._marker(prompt)
        self.calls.append(marker)
        delay, reply = self.script.get(marker, (0.0, self.DEFAULT_REPLY))

        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            await asyncio.sleep(delay)
        finally:
            self.in_flight -= 1

        if isinstance(reply, BaseException):
            raise reply
        self.completed.append(marker)
        return reply


@pytest.fixture
def text_loader():
    return TextLoader()


@pytest.fixture
def scripted_model():
    return ScriptedModel()


def timed(coro):
    """Run a coroutine to completion and return (result, elapsed_seconds)."""
    start = time.monotonic()
    result = asyncio.run(coro)
    return result, time.monotonic() - start
