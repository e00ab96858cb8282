"""Process-wide double metaphone encoder.

The encoder is loaded lazily, exactly once per process. The hosting process
calls ``ensure_phonetic_ready()`` before the first resolution (the resolver
does this itself); concurrent first callers block on the same lock and see
the same outcome. A failed load is remembered and re-raised to every later
caller; there is no retry until ``reset_phonetic_encoder()`` is called.

Callers that only *query* codes (``primary_code``) never trigger a load and
never raise: they get ``None`` until the encoder is ready.
"""

from __future__ import annotations

import importlib
import logging
import threading
from collections.abc import Callable

logger = logging.getLogger(__name__)

DoubleMetaphoneFn = Callable[[str], tuple[str, str]]
"""Returns (primary, secondary) phonetic codes for a string."""

_encoder: DoubleMetaphoneFn | None = None
_load_error: BaseException | None = None
_load_lock = threading.Lock()


def _load_double_metaphone() -> DoubleMetaphoneFn:
    module = importlib.import_module("metaphone")
    return module.doublemetaphone


def ensure_phonetic_ready() -> None:
    """Load the double metaphone encoder if it is not loaded yet.

    Raises:
        Whatever the import raised, for the first caller and all later ones.
    """
    global _encoder, _load_error

    if _encoder is not None:
        return

    with _load_lock:
        if _encoder is not None:
            return
        if _load_error is not None:
            raise _load_error
        try:
            _encoder = _load_double_metaphone()
        except Exception as exc:
            _load_error = exc
            logger.error("Failed to load double metaphone encoder: %s", exc)
            raise
        logger.debug("Double metaphone encoder loaded")


def is_phonetic_ready() -> bool:
    """True once an encoder is available."""
    return _encoder is not None


def set_phonetic_encoder(encoder: DoubleMetaphoneFn) -> None:
    """Install an encoder explicitly, bypassing the lazy import."""
    global _encoder, _load_error

    with _load_lock:
        _encoder = encoder
        _load_error = None


def reset_phonetic_encoder() -> None:
    """Forget the loaded encoder and any remembered load failure."""
    global _encoder, _load_error

    with _load_lock:
        _encoder = None
        _load_error = None


def primary_code(value: str) -> str | None:
    """Primary double metaphone code of ``value``, or None if not loaded."""
    encoder = _encoder
    if encoder is None:
        return None
    return encoder(value)[0]
