"""Fingerprinting logic for grouping captured errors.

Produces a stable hash per class of error so that backends can group
occurrences; attached to each record as the "fingerprint" tag.
"""

import hashlib
import re

from .models import StackFrame


class Fingerprinter:
    """Produces stable fingerprints from error components.

    No external dependencies; pure function over domain objects.
    All methods are static as the class carries no state.
    """

    @staticmethod
    def fingerprint(
        kind: str, message: str, frames: tuple[StackFrame, ...] | list[StackFrame]
    ) -> str:
        """Create a stable hash that identifies this class of error.

        Same bug, different occurrence → same fingerprint.

        Combines:
        - Error kind
        - Templatized message
        - Top stack frame (file name + function, no line number)
        """
        components = [kind, Fingerprinter.templatize_message(message)]
        if frames:
            top = frames[0]
            filename = (top.filename or "").replace("\\", "/").rsplit("/", 1)[-1]
            components.append(f"{filename}::{top.function or '?'}")

        fingerprint_input = "|".join(components)
        return hashlib.sha256(fingerprint_input.encode()).hexdigest()[:32]

    @staticmethod
    def templatize_message(message: str) -> str:
        """Replace variable parts (URLs, IDs, numbers) with placeholders.

        Examples:
        'GET https://api.example.com/users/42 failed'
        → 'GET * failed'

        'User ID 12345 not found'
        → 'User ID * not found'
        """
        # Replace URLs
        message = re.sub(r"https?://\S+", "*", message)
        # Replace UUIDs
        message = re.sub(
            r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}",
            "*",
            message,
            flags=re.IGNORECASE,
        )
        # Replace hex identifiers and hashes
        message = re.sub(r"\b[0-9a-f]{8,}\b", "*", message, flags=re.IGNORECASE)
        # Replace numbers
        message = re.sub(r"\b\d+\b", "*", message)

        return message[:200]
