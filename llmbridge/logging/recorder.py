"""On-disk request logs.

Every chat request gets one ``.log`` file under ``logs/requests`` holding the
inbound request, the routing decision, the upstream exchange and the final
outcome. The first failure of a request additionally gets a short ``.err``
file under ``logs/errors`` so problems can be scanned without opening the
full logs. Files are written when the request is finalized; inside an event
loop the write happens on a worker thread.
"""

import asyncio
import json
import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

logger = logging.getLogger("llmbridge")

LOG_ROOT = Path(
    os.getenv("LLMBRIDGE_LOG_DIR")
    or Path(__file__).resolve().parent.parent.parent / "logs"
)
REQUEST_LOG_DIR = LOG_ROOT / "requests"
ERROR_LOG_DIR = LOG_ROOT / "errors"

_SENSITIVE_HEADERS = frozenset({"authorization", "proxy-authorization", "x-api-key"})
_MASK = "****"

_disk_logging_enabled = True
_pending_writes: set[asyncio.Task] = set()


def set_disk_logging_enabled(enabled: bool) -> None:
    global _disk_logging_enabled
    _disk_logging_enabled = bool(enabled)


def is_disk_logging_enabled() -> bool:
    return _disk_logging_enabled


def _submit_write(write: Callable[[], None]) -> None:
    """Run ``write`` now, or on a thread when an event loop is running."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        write()
        return
    task = loop.create_task(asyncio.to_thread(write))
    _pending_writes.add(task)
    task.add_done_callback(_pending_writes.discard)


async def wait_for_pending_logs() -> None:
    """Wait for background log writes; called on shutdown."""
    if not _pending_writes:
        return
    pending = list(_pending_writes)
    logger.info("Flushing %d pending log files", len(pending))
    results = await asyncio.gather(*pending, return_exceptions=True)
    for result in results:
        if isinstance(result, Exception):
            logger.warning("Failed to write log file: %s", result)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _timestamp(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _file_stem(moment: datetime, token: str, model_name: str) -> str:
    slug = "".join(ch if ch.isalnum() or ch in "-_" else "-" for ch in model_name.strip())
    slug = slug.strip("-")[:48] or "unknown"
    return f"{moment.strftime('%Y%m%d_%H%M%S')}-{token}_{slug}"


def _write_atomically(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    staging = path.with_name(path.name + ".tmp")
    staging.write_bytes(data)
    os.replace(staging, path)


def mask_header_value(name: str, value: str) -> str:
    """Hide credentials and cookie values, keeping enough to tell them apart."""
    lowered = name.lower()
    if lowered in _SENSITIVE_HEADERS:
        scheme, _, token = value.partition(" ")
        if token and scheme.lower() == "bearer":
            return f"{scheme} {token[:3]}{_MASK}"
        return value[:3] + _MASK if len(value) > 3 else _MASK
    if lowered == "cookie":
        names = (part.split("=", 1)[0].strip() for part in value.split(";"))
        return "; ".join(f"{cookie}={_MASK}" for cookie in names if cookie)
    return value


def mask_headers(headers: Mapping[str, str]) -> dict[str, str]:
    return {str(name): mask_header_value(str(name), str(value)) for name, value in headers.items()}


def render_payload(data: bytes) -> str:
    """Decode a request or stream payload for the log, pretty-printing JSON."""
    if not data:
        return ""
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        return f"<{len(data)} bytes of binary data>\n"
    stripped = text.strip()
    if stripped[:1] in ("{", "["):
        try:
            text = json.dumps(json.loads(stripped), ensure_ascii=False, indent=2)
        except json.JSONDecodeError:
            pass
    return text if text.endswith("\n") else text + "\n"


def log_error_event(
    model_name: str,
    error_type: str,
    error_message: str,
    provider_id: Optional[str] = None,
    http_status: Optional[int] = None,
    request_path: Optional[str] = None,
    request_log_path: Optional[Path] = None,
    extra_context: Optional[dict[str, Any]] = None,
) -> None:
    """Write a one-screen ``.err`` summary of a failed request."""
    if not _disk_logging_enabled:
        return

    moment = _now()
    fields: dict[str, Any] = {
        "timestamp": _timestamp(moment),
        "model": model_name or "unknown",
        "error_type": error_type,
        "error_message": error_message,
        "provider": provider_id,
        "http_status": http_status,
        "request_path": request_path,
        "full_log": request_log_path.name if request_log_path else None,
    }
    fields.update(extra_context or {})
    content = "".join(f"{key}={value}\n" for key, value in fields.items() if value is not None)
    path = ERROR_LOG_DIR / (_file_stem(moment, uuid.uuid4().hex[:4], model_name or "") + ".err")
    _submit_write(lambda: _write_atomically(path, content.encode("utf-8")))


def classify_error(message: str) -> str:
    lowered = message.lower()
    if "timeout" in lowered or "timed out" in lowered:
        return "timeout"
    if "disconnect" in lowered or "cancelled" in lowered:
        return "client_disconnect"
    if "api error" in lowered:
        return "upstream_error"
    return "unknown"


class RequestLogRecorder:
    """Collects the log of one chat request and writes it when finalized.

    ``model_name`` and ``session_id`` may be updated after construction, once
    the request has been admitted; both are read when the file is written.
    Recording after :meth:`finalize` is a no-op.
    """

    def __init__(
        self,
        model_name: str,
        path: str,
        session_id: Optional[str] = None,
        enabled: bool = True,
    ) -> None:
        self.model_name = model_name or "unknown"
        self.request_path = path
        self.session_id = session_id
        self.enabled = bool(enabled)
        self._started = _now()
        self._token = uuid.uuid4().hex[:4]
        self._entries: list[str] = []
        self._chunk_count = 0
        self._provider_id: Optional[str] = None
        self._upstream_status: Optional[int] = None
        self._error_reported = False
        self._finalized = False

    @property
    def log_path(self) -> Path:
        return REQUEST_LOG_DIR / (_file_stem(self._started, self._token, self.model_name) + ".log")

    @property
    def finalized(self) -> bool:
        return self._finalized

    @property
    def recording(self) -> bool:
        """False once finalized, or when nothing would ever reach disk."""
        return not self._finalized and self.enabled and _disk_logging_enabled

    def _add(self, text: str) -> None:
        if self.recording:
            self._entries.append(text)

    def record_request(self, method: str, headers: Mapping[str, str], body: bytes) -> None:
        if not self.recording:
            return
        self._add(
            "=== REQUEST ===\n"
            f"method={method}\n"
            f"headers={json.dumps(mask_headers(headers), sort_keys=True)}\n"
            f"body_len={len(body)}\n" + render_payload(body)
        )

    def record_route(self, strategy: str) -> None:
        self._add(f"route={strategy}\n")

    def record_upstream_attempt(self, provider_id: str, url: str) -> None:
        if self._finalized:
            return
        self._provider_id = provider_id
        self._add(f"=== UPSTREAM ===\nprovider={provider_id}\nurl={url}\n")

    def record_stream_headers(self, status: int, headers: Mapping[str, str]) -> None:
        if self._finalized:
            return
        self._upstream_status = status
        masked = json.dumps(mask_headers(headers), sort_keys=True)
        self._add(f"status={status}\nresponse_headers={masked}\n")

    def record_stream_chunk(self, chunk: bytes) -> None:
        if not self.recording:
            return
        self._chunk_count += 1
        self._add(f"--- chunk {self._chunk_count} ({len(chunk)} bytes) ---\n" + render_payload(chunk))

    def record_malformed_line(self, line: str) -> None:
        self._add(f"SKIPPED LINE: {line}\n")

    def record_error(self, message: str, error_type: Optional[str] = None) -> None:
        if self._finalized:
            return
        self._add(f"ERROR: {message}\n")
        if self._error_reported:
            return
        self._error_reported = True
        log_error_event(
            model_name=self.model_name,
            error_type=error_type or classify_error(message),
            error_message=message,
            provider_id=self._provider_id,
            http_status=self._upstream_status,
            request_path=self.request_path,
            request_log_path=self.log_path,
        )

    def finalize(self, outcome: str) -> None:
        if self._finalized:
            return
        if not self.recording:
            self._finalized = True
            self._entries.clear()
            return
        self._add(f"=== FINAL STATUS: {outcome} at {_timestamp(_now())} ===\n")
        self._finalized = True
        path = self.log_path
        data = self._render().encode("utf-8")
        _submit_write(lambda: _write_atomically(path, data))

    def _render(self) -> str:
        header = [
            f"log_start={_timestamp(self._started)}",
            f"model={self.model_name}",
            f"path={self.request_path}",
        ]
        if self.session_id:
            header.append(f"session_id={self.session_id}")
        return "\n".join(header) + "\n" + "".join(self._entries)
