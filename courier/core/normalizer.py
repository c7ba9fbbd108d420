"""Normalization of heterogeneous error inputs.

Converts exceptions, strings, structured payloads and arbitrary values
into the canonical NormalizedError, and bounds the open "extra" mapping
to JSON-compatible values of limited depth.
"""

import re
import traceback
import uuid
from collections.abc import Callable, Mapping
from datetime import date, datetime, timezone
from typing import Any

from .fingerprint import Fingerprinter
from .models import ErrorLevel, NormalizedError, StackFrame

DEPTH_LIMIT_MARKER = "[max depth exceeded]"
_LEVELS_BY_NAME = {level.value: level for level in ErrorLevel}

# Python traceback: File "app.py", line 10, in handler
_PYTHON_FRAME = re.compile(r'^\s*File "(?P<file>.+?)", line (?P<line>\d+)(?:, in (?P<func>.+))?$')
# V8: at handler (app.js:10:5)
_V8_FRAME = re.compile(r"^\s*at\s+(?P<func>.+?)\s+\((?P<file>.+?):(?P<line>\d+):(?P<col>\d+)\)$")
# V8 anonymous: at app.js:10:5
_V8_ANON_FRAME = re.compile(r"^\s*at\s+(?P<file>.+?):(?P<line>\d+):(?P<col>\d+)$")
# Firefox / Safari: handler@app.js:10:5
_GECKO_FRAME = re.compile(r"^(?P<func>.*?)@(?P<file>.+?):(?P<line>\d+)(?::(?P<col>\d+))?$")


def parse_stack(stack: str) -> tuple[StackFrame, ...]:
    """Parse a textual stack trace into frames, innermost first.

    Understands Python tracebacks as well as V8 and Gecko/WebKit
    JavaScript formats. Unrecognized lines are ignored.
    """
    frames: list[StackFrame] = []
    python_style = False

    for line in stack.splitlines():
        if not line.strip():
            continue

        match = _PYTHON_FRAME.match(line)
        if match:
            python_style = True
            frames.append(
                StackFrame(
                    function=match.group("func"),
                    filename=match.group("file"),
                    lineno=int(match.group("line")),
                )
            )
            continue

        match = _V8_FRAME.match(line) or _V8_ANON_FRAME.match(line)
        if match:
            groups = match.groupdict()
            frames.append(
                StackFrame(
                    function=groups.get("func"),
                    filename=groups["file"],
                    lineno=int(groups["line"]),
                    colno=int(groups["col"]),
                )
            )
            continue

        match = _GECKO_FRAME.match(line.strip())
        if match:
            col = match.group("col")
            frames.append(
                StackFrame(
                    function=match.group("func") or None,
                    filename=match.group("file"),
                    lineno=int(match.group("line")),
                    colno=int(col) if col else None,
                )
            )

    # Python prints the outermost call first
    if python_style:
        frames.reverse()
    return tuple(frames)


def frames_from_exception(exc: BaseException) -> tuple[StackFrame, ...]:
    """Extract frames from an exception's traceback, innermost first."""
    if exc.__traceback__ is None:
        return ()
    summary = traceback.extract_tb(exc.__traceback__)
    return tuple(
        StackFrame(function=entry.name, filename=entry.filename, lineno=entry.lineno)
        for entry in reversed(summary)
    )


def sanitize_extra(value: Any, max_depth: int, _depth: int = 0) -> Any:
    """Coerce a value into JSON-compatible data bounded to max_depth levels.

    Containers nested deeper than max_depth are replaced by a marker
    string; values JSON cannot represent are replaced by their repr().
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (Mapping, list, tuple, set, frozenset)):
        if _depth >= max_depth:
            return DEPTH_LIMIT_MARKER
        if isinstance(value, Mapping):
            return {
                str(k): sanitize_extra(v, max_depth, _depth + 1)
                for k, v in value.items()
            }
        return [sanitize_extra(v, max_depth, _depth + 1) for v in value]
    return repr(value)


class ErrorNormalizer:
    """Builds NormalizedError records from raw inputs."""

    def __init__(
        self,
        max_extra_depth: int = 5,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.max_extra_depth = max_extra_depth
        self.clock = clock

    def normalize(
        self,
        raw: Any,
        level: ErrorLevel = ErrorLevel.ERROR,
        source: str = "manual",
    ) -> NormalizedError:
        """Convert raw error input into a NormalizedError.

        Supported inputs:
        - exceptions (kind = class name, frames from the traceback)
        - strings (kind = "StringError")
        - mappings (message/error/reason, name/type/code, stack/stack_trace)
        - anything else (kind = "UnknownError", message = str(value))
        """
        extra: dict[str, Any] = {}
        handled = True

        if isinstance(raw, BaseException):
            message = str(raw) or raw.__class__.__name__
            kind = raw.__class__.__name__
            frames = frames_from_exception(raw)
        elif isinstance(raw, str):
            message = raw
            kind = "StringError"
            frames = ()
        elif isinstance(raw, Mapping):
            message, kind, frames, extra, level, handled = self._from_mapping(raw, level)
        else:
            message = str(raw)
            kind = "UnknownError"
            frames = ()

        tags = {"fingerprint": Fingerprinter.fingerprint(kind, message, frames)}

        return NormalizedError(
            id=str(uuid.uuid4()),
            message=message or "Unknown error",
            kind=kind,
            stack_frames=frames,
            timestamp=self.clock(),
            tags=tags,
            extra=self.bound_extra(extra),
            level=level,
            handled=handled,
            source=source,
        )

    def bound_extra(self, extra: Mapping[str, Any]) -> dict[str, Any]:
        """Validate custom data into a depth-bounded JSON-compatible mapping."""
        return {
            str(k): sanitize_extra(v, self.max_extra_depth, 1)
            for k, v in extra.items()
        }

    @staticmethod
    def _from_mapping(
        raw: Mapping[str, Any], level: ErrorLevel
    ) -> tuple[str, str, tuple[StackFrame, ...], dict[str, Any], ErrorLevel, bool]:
        message = raw.get("message") or raw.get("error") or raw.get("reason")
        if not message:
            message = repr(dict(raw))
        kind = raw.get("name") or raw.get("type") or raw.get("kind") or raw.get("code")
        kind = str(kind) if kind else "ObjectError"

        stack = raw.get("stack") or raw.get("stack_trace") or raw.get("stacktrace")
        frames = parse_stack(stack) if isinstance(stack, str) else ()

        extra: dict[str, Any] = {}
        if raw.get("code") is not None:
            extra["code"] = raw["code"]
        status = raw.get("status_code") or raw.get("statusCode") or raw.get("status")
        if status is not None:
            extra["status_code"] = status
        if isinstance(raw.get("extra"), Mapping):
            extra.update(raw["extra"])

        raw_level = raw.get("level")
        if raw_level:
            level = _LEVELS_BY_NAME.get(str(raw_level).lower(), level)

        handled = bool(raw.get("handled", True))
        return str(message), kind, frames, extra, level, handled
