"""JSON codec for persisted records.

Each of the four persisted records lives under its own fixed,
versioned key. Bumping a version means older blobs are ignored
rather than misread.
"""

import json
from datetime import datetime
from typing import Any

from .models import (
    Breadcrumb,
    ErrorLevel,
    ExportedData,
    Metrics,
    NormalizedError,
    QueueItem,
    StackFrame,
    UserContext,
)

QUEUE_KEY = "courier.queue.v1"
USER_CONTEXT_KEY = "courier.user_context.v1"
SETTINGS_KEY = "courier.settings.v1"
METRICS_KEY = "courier.metrics.v1"

EXPORT_FORMAT_VERSION = 1


def _dumps(data: Any) -> str:
    return json.dumps(data, separators=(",", ":"), sort_keys=True, default=str)


def user_to_dict(user: UserContext) -> dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "username": user.username,
        "attributes": dict(user.attributes),
    }


def user_from_dict(data: dict[str, Any]) -> UserContext:
    return UserContext(
        id=data.get("id"),
        email=data.get("email"),
        username=data.get("username"),
        attributes=data.get("attributes") or {},
    )


def breadcrumb_to_dict(breadcrumb: Breadcrumb) -> dict[str, Any]:
    return {
        "message": breadcrumb.message,
        "timestamp": breadcrumb.timestamp.isoformat(),
        "category": breadcrumb.category,
        "level": breadcrumb.level.value,
        "data": dict(breadcrumb.data),
    }


def breadcrumb_from_dict(data: dict[str, Any]) -> Breadcrumb:
    return Breadcrumb(
        message=data["message"],
        timestamp=datetime.fromisoformat(data["timestamp"]),
        category=data.get("category"),
        level=ErrorLevel(data.get("level", ErrorLevel.INFO.value)),
        data=data.get("data") or {},
    )


def error_to_dict(error: NormalizedError) -> dict[str, Any]:
    """Convert a NormalizedError to a JSON-compatible dict."""
    return {
        "id": error.id,
        "message": error.message,
        "kind": error.kind,
        "stack_frames": [
            {
                "function": frame.function,
                "filename": frame.filename,
                "lineno": frame.lineno,
                "colno": frame.colno,
            }
            for frame in error.stack_frames
        ],
        "timestamp": error.timestamp.isoformat(),
        "tags": dict(error.tags),
        "extra": dict(error.extra),
        "breadcrumbs": [breadcrumb_to_dict(b) for b in error.breadcrumbs],
        "user": user_to_dict(error.user) if error.user is not None else None,
        "level": error.level.value,
        "handled": error.handled,
        "source": error.source,
    }


def error_from_dict(data: dict[str, Any]) -> NormalizedError:
    """Rebuild a NormalizedError from error_to_dict() output.

    Raises:
        KeyError, ValueError: If required fields are missing or invalid.
    """
    return NormalizedError(
        id=data["id"],
        message=data["message"],
        kind=data["kind"],
        stack_frames=tuple(
            StackFrame(
                function=frame.get("function"),
                filename=frame.get("filename"),
                lineno=frame.get("lineno"),
                colno=frame.get("colno"),
            )
            for frame in data.get("stack_frames", [])
        ),
        timestamp=datetime.fromisoformat(data["timestamp"]),
        tags=data.get("tags") or {},
        extra=data.get("extra") or {},
        breadcrumbs=tuple(breadcrumb_from_dict(b) for b in data.get("breadcrumbs", [])),
        user=user_from_dict(data["user"]) if data.get("user") else None,
        level=ErrorLevel(data.get("level", ErrorLevel.ERROR.value)),
        handled=data.get("handled", True),
        source=data.get("source", "manual"),
    )


def encode_error(error: NormalizedError) -> str:
    return _dumps(error_to_dict(error))


def item_to_dict(item: QueueItem) -> dict[str, Any]:
    return {
        "id": item.id,
        "error": error_to_dict(item.error),
        "provider": item.provider,
        "retry_count": item.retry_count,
        "timestamp": item.timestamp.isoformat(),
    }


def item_from_dict(data: dict[str, Any]) -> QueueItem:
    return QueueItem(
        id=data["id"],
        error=error_from_dict(data["error"]),
        provider=data["provider"],
        retry_count=int(data["retry_count"]),
        timestamp=datetime.fromisoformat(data["timestamp"]),
    )


def encode_queue(items: list[QueueItem]) -> str:
    return _dumps([item_to_dict(item) for item in items])


def decode_queue(blob: str) -> list[QueueItem]:
    """Decode a queue blob.

    Raises:
        ValueError: If the blob is not a valid encoded queue.
    """
    try:
        raw = json.loads(blob)
        if not isinstance(raw, list):
            raise ValueError(f"expected a list, got {type(raw).__name__}")
        return [item_from_dict(entry) for entry in raw]
    except (json.JSONDecodeError, KeyError, TypeError) as e:
        raise ValueError(f"Invalid queue blob: {e}") from e


def metrics_to_dict(metrics: Metrics) -> dict[str, int]:
    return {
        "total_errors": metrics.total_errors,
        "successful_errors": metrics.successful_errors,
        "failed_errors": metrics.failed_errors,
        "dropped_errors": metrics.dropped_errors,
    }


def metrics_from_dict(data: dict[str, Any]) -> Metrics:
    return Metrics(
        total_errors=int(data.get("total_errors", 0)),
        successful_errors=int(data.get("successful_errors", 0)),
        failed_errors=int(data.get("failed_errors", 0)),
        dropped_errors=int(data.get("dropped_errors", 0)),
    )


def encode_metrics(metrics: Metrics) -> str:
    return _dumps(metrics_to_dict(metrics))


def decode_metrics(blob: str) -> Metrics:
    try:
        data = json.loads(blob)
        if not isinstance(data, dict):
            raise ValueError(f"expected an object, got {type(data).__name__}")
        return metrics_from_dict(data)
    except (json.JSONDecodeError, TypeError) as e:
        raise ValueError(f"Invalid metrics blob: {e}") from e


def encode_mapping(data: dict[str, Any]) -> str:
    return _dumps(data)


def decode_mapping(blob: str) -> dict[str, Any]:
    try:
        data = json.loads(blob)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid mapping blob: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"expected an object, got {type(data).__name__}")
    return data


def encode_export(data: ExportedData) -> str:
    """Encode exported records as a human-readable JSON document."""
    return json.dumps(
        {
            "version": EXPORT_FORMAT_VERSION,
            "queue": [item_to_dict(item) for item in data.queue],
            "user_context": data.user_context,
            "settings": data.settings,
            "metrics": metrics_to_dict(data.metrics),
        },
        indent=2,
        sort_keys=True,
        default=str,
    )


def decode_export(document: str) -> ExportedData:
    """Decode a document produced by encode_export().

    Raises:
        ValueError: If the document is malformed or has another version.
    """
    try:
        raw = json.loads(document)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid export document: {e}") from e
    if not isinstance(raw, dict):
        raise ValueError("Export document must be a JSON object")
    version = raw.get("version")
    if version != EXPORT_FORMAT_VERSION:
        raise ValueError(f"Unsupported export version: {version}")
    try:
        return ExportedData(
            queue=tuple(item_from_dict(entry) for entry in raw.get("queue", [])),
            user_context=raw.get("user_context"),
            settings=raw.get("settings") or {},
            metrics=metrics_from_dict(raw.get("metrics") or {}),
        )
    except (KeyError, TypeError) as e:
        raise ValueError(f"Invalid export document: {e}") from e
