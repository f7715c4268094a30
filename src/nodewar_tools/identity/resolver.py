"""
Identity resolution: nickname -> character class and family name.

An :class:`IdentityResolver` is built per processing run. It owns its cache,
its throttle settings and its retry policy, and wraps a fallible ``lookup``
callable (normally :meth:`AdventureLookupClient.lookup`).
"""

import logging
import random
import re
import threading
import time
import unicodedata
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import requests

from nodewar_tools.exceptions import LookupFailed, LookupNotFound
from nodewar_tools.models import Identity

logger = logging.getLogger(__name__)

NOT_FOUND_CLASS = "Classe não encontrada"
NOT_FOUND_FAMILY = "Família não encontrada"
DEFAULT_NOT_FOUND_MARKERS = (NOT_FOUND_CLASS, NOT_FOUND_FAMILY, "não encontrad", "not found")

PLACEHOLDER_CLASSES = ["Warrior", "Mage", "Archer", "Priest", "Rogue", "Paladin", "Sorcerer", "Berserker"]
PLACEHOLDER_FAMILIES = ["Família1", "Família2", "Família3", "Família4", "Família5"]

# Lookup errors worth retrying
RETRYABLE_ERRORS = (requests.RequestException, OSError, ValueError)

Lookup = Callable[[str], Identity]


def sanitize_nickname(nickname: str) -> str:
    """
    Normalize a nickname before lookup.

    NFKC-normalizes, drops everything except letters, digits, underscore,
    hyphen and space, and collapses runs of whitespace.
    """
    text = unicodedata.normalize('NFKC', nickname or '')
    text = re.sub(r'[^\w\- ]', '', text)
    return re.sub(r'\s+', ' ', text).strip()


def _string_hash(text: str) -> int:
    """Signed 32-bit ``h * 31 + c`` string hash."""
    value = 0
    for char in text:
        value = ((value << 5) - value + ord(char)) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return value


def placeholder_identity(nickname: str) -> Identity:
    """
    Deterministic stand-in identity for a nickname whose lookup failed.

    The result is always tagged ``placeholder=True`` so it can never be
    mistaken for a real answer.
    """
    value = _string_hash(nickname)
    return Identity(
        classe=PLACEHOLDER_CLASSES[abs(value) % len(PLACEHOLDER_CLASSES)],
        familia=PLACEHOLDER_FAMILIES[abs(value >> 8) % len(PLACEHOLDER_FAMILIES)],
        found=False,
        placeholder=True,
    )


class IdentityResolver:
    """
    Cached, throttled, retrying resolver around an identity ``lookup``.

    * Cache-first: a sanitized nickname is looked up at most once per
      resolver, concurrent requests for the same nickname share one lookup.
    * Retries: ``retries`` extra attempts after the first one. Every failed
      or not-found attempt except the last sleeps
      ``throttle_ms * 2**attempt + uniform(0, jitter_ms)`` milliseconds.
    * A not-found answer is data (``Identity.found is False``); only hard
      errors that outlast every retry raise :class:`LookupFailed`.
    """

    def __init__(self, lookup: Lookup, retries: int = 2, throttle_ms: int = 300,
                 batch_size: int = 10, jitter_ms: int = 150,
                 not_found_markers: Sequence[str] = DEFAULT_NOT_FOUND_MARKERS,
                 sleep: Callable[[float], None] = time.sleep,
                 rng: Optional[random.Random] = None) -> None:
        self._lookup = lookup
        self.retries = max(0, int(retries))
        self.throttle_ms = max(0, int(throttle_ms))
        self.batch_size = max(1, int(batch_size))
        self.jitter_ms = max(0, int(jitter_ms))
        self.not_found_markers = tuple(m.lower() for m in not_found_markers if m)
        self._sleep = sleep
        self._rng = rng or random.Random()

        self._cache: Dict[str, Identity] = {}
        self._in_flight: Dict[str, Future] = {}
        self._lock = threading.Lock()
        self.lookup_calls = 0

    @classmethod
    def from_config(cls, lookup: Lookup, config: Optional[Dict[str, Any]] = None,
                    slow_mode: bool = False, **overrides) -> "IdentityResolver":
        """
        Build a resolver from the ``identity`` section of a configuration.

        Slow mode trades throughput for fewer rate-limit hits: one lookup per
        window, a longer pause between windows and more retries.
        """
        section = (config or {}).get('identity', {}) or {}
        if slow_mode:
            settings = {
                'retries': section.get('slow_retries', 5),
                'throttle_ms': section.get('slow_throttle_ms', 1000),
                'batch_size': section.get('slow_batch_size', 1),
            }
        else:
            settings = {
                'retries': section.get('retries', 2),
                'throttle_ms': section.get('throttle_ms', 300),
                'batch_size': section.get('batch_size', 10),
            }
        settings['jitter_ms'] = section.get('jitter_ms', 150)
        if section.get('not_found_markers'):
            settings['not_found_markers'] = section['not_found_markers']
        settings.update(overrides)
        return cls(lookup, **settings)

    @property
    def attempts(self) -> int:
        return self.retries + 1

    def cached(self, nickname: str) -> Optional[Identity]:
        with self._lock:
            return self._cache.get(sanitize_nickname(nickname))

    def backoff_seconds(self, attempt: int) -> float:
        jitter = self._rng.uniform(0, self.jitter_ms) if self.jitter_ms else 0.0
        return (self.throttle_ms * (2 ** attempt) + jitter) / 1000.0

    def is_not_found(self, identity: Identity) -> bool:
        if not identity.classe or not identity.familia:
            return True
        text = f"{identity.classe} {identity.familia}".lower()
        return any(marker in text for marker in self.not_found_markers)

    def _normalize(self, raw: Identity) -> Identity:
        classe = (raw.classe or '').strip()
        familia = (raw.familia or '').strip()
        candidate = Identity(classe=classe, familia=familia)
        if self.is_not_found(candidate):
            return Identity(classe=classe or NOT_FOUND_CLASS, familia=familia or NOT_FOUND_FAMILY, found=False)
        return candidate

    def _resolve_uncached(self, key: str) -> Identity:
        last_error = None
        result = None

        for attempt in range(self.attempts):
            try:
                with self._lock:
                    self.lookup_calls += 1
                raw = self._lookup(key)
            except RETRYABLE_ERRORS as e:
                last_error = e
                result = None
                logger.warning(f"Lookup for '{key}' failed (attempt {attempt + 1}/{self.attempts}): {e}")
            except Exception as e:
                logger.error(f"Lookup for '{key}' raised {type(e).__name__}: {e}")
                raise LookupFailed(key, attempt + 1, e) from e
            else:
                result = self._normalize(raw)
                if result.found:
                    return result
                logger.debug(f"No character found for '{key}' (attempt {attempt + 1}/{self.attempts})")

            if attempt < self.attempts - 1:
                self._sleep(self.backoff_seconds(attempt))

        if result is not None:
            return result
        logger.error(f"Lookup for '{key}' exhausted {self.attempts} attempt(s)")
        raise LookupFailed(key, self.attempts, last_error)

    def resolve(self, nickname: str) -> Identity:
        """
        Resolve one nickname.

        Raises:
            LookupFailed: The lookup raised on every attempt, or raised an
                error that is not worth retrying.
        """
        key = sanitize_nickname(nickname)
        if not key:
            return Identity(classe=NOT_FOUND_CLASS, familia=NOT_FOUND_FAMILY, found=False)

        with self._lock:
            if key in self._cache:
                return self._cache[key]
            future = self._in_flight.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._in_flight[key] = future

        if not owner:
            return future.result()

        try:
            identity = self._resolve_uncached(key)
        except BaseException as e:
            with self._lock:
                self._in_flight.pop(key, None)
            future.set_exception(e)
            raise

        with self._lock:
            self._cache[key] = identity
            self._in_flight.pop(key, None)
        future.set_result(identity)
        return identity

    def require(self, nickname: str) -> Identity:
        """Resolve a nickname that must exist; raises :class:`LookupNotFound` otherwise."""
        identity = self.resolve(nickname)
        if not identity.found:
            raise LookupNotFound(nickname)
        return identity

    def resolve_batch(self, nicknames: Iterable[str],
                      on_failure: Optional[Callable[[str, LookupFailed], Identity]] = None) -> Dict[str, Identity]:
        """
        Resolve many nicknames in fixed-size concurrent windows.

        All lookups of a window run at the same time; the resolver pauses
        ``throttle_ms`` between windows. A nickname whose lookup fails is
        handed to ``on_failure`` for a substitute identity; without a
        handler the first failure is raised once its window has finished.

        Returns:
            Dictionary of original nickname -> identity.
        """
        unique: List[str] = list(dict.fromkeys(n for n in nicknames if n))
        total = len(unique)
        results: Dict[str, Identity] = {}
        if not total:
            return results

        windows = [unique[i:i + self.batch_size] for i in range(0, total, self.batch_size)]
        logger.info(f"Resolving {total} nickname(s) in {len(windows)} window(s) of up to {self.batch_size}")

        done = 0
        with ThreadPoolExecutor(max_workers=self.batch_size) as executor:
            for index, window in enumerate(windows):
                futures = {nick: executor.submit(self.resolve, nick) for nick in window}
                first_error = None
                for nick, future in futures.items():
                    try:
                        identity = future.result()
                    except LookupFailed as e:
                        if on_failure is None:
                            first_error = first_error or e
                            continue
                        identity = on_failure(nick, e)
                    results[nick] = identity
                    done += 1
                    logger.info(f"[{done * 100 // total}%] {done}/{total}: {nick} -> {identity.classe}")

                if first_error is not None:
                    raise first_error
                if index < len(windows) - 1 and self.throttle_ms:
                    self._sleep(self.throttle_ms / 1000.0)

        return results
