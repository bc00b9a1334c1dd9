from __future__ import annotations

import heapq
import json
import logging
import time
import zlib
from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Callable, Iterator, Protocol

import redis

from otpgateway.core.errors import NotExistError, StoreUnavailableError, TooManyAttemptsError
from otpgateway.models.otp import OTP

_LOG = logging.getLogger("otpgateway.otp_store")

EVENT_CHECK = "check"
EVENT_CLOSE = "close"


class OTPStore(Protocol):
    def set(self, namespace: str, id: str, otp: OTP) -> OTP:
        """Writes the record, resets ``closed`` and counts the write as attempt 1.

        ``otp.ttl`` becomes the absolute expiry of the key. A locked record is
        left as it is and TooManyAttemptsError is raised instead.
        """
        ...

    def check(self, namespace: str, id: str, increment: bool) -> OTP:
        """Reads the record. ``increment`` consumes one attempt atomically."""
        ...

    def set_address(self, namespace: str, id: str, address: str) -> bool:
        """Sets ``to`` only on an open, unaddressed record. Returns whether it was written."""
        ...

    def close(self, namespace: str, id: str) -> None:
        ...

    def delete(self, namespace: str, id: str) -> None:
        ...

    def ping(self) -> None:
        ...


def make_event(event_type: str, namespace: str, id: str, data: Any) -> dict[str, Any]:
    return {"type": event_type, "namespace": namespace, "id": id, "data": data}


def _to_int(raw: Any) -> int:
    try:
        return int(raw or 0)
    except (TypeError, ValueError):
        return 0


def _to_bool(raw: Any) -> bool:
    return str(raw or "").strip().lower() in {"1", "true"}


def _record_fields(otp: OTP) -> dict[str, Any]:
    return {
        "otp": otp.otp,
        "to": otp.to,
        "channel_description": otp.channel_description,
        "address_description": otp.address_description,
        "extra": otp.extra or "{}",
        "provider": otp.provider,
        "closed": "0",
        "max_attempts": int(otp.max_attempts),
        # Reset here and incremented in the same unit, so a fresh write reads 1.
        "attempts": 0,
    }


def _record_from_fields(namespace: str, id: str, data: dict[str, Any], ttl: float) -> OTP:
    return OTP(
        namespace=namespace,
        id=id,
        otp=str(data.get("otp") or ""),
        to=str(data.get("to") or ""),
        channel_description=str(data.get("channel_description") or ""),
        address_description=str(data.get("address_description") or ""),
        extra=str(data.get("extra") or "{}"),
        provider=str(data.get("provider") or ""),
        max_attempts=_to_int(data.get("max_attempts")),
        attempts=_to_int(data.get("attempts")),
        closed=_to_bool(data.get("closed")),
        ttl=ttl,
    )


def _is_locked(attempts: Any, max_attempts: Any) -> bool:
    limit = _to_int(max_attempts)
    return limit > 0 and _to_int(attempts) >= limit


def _ttl_from_pttl(pttl: Any) -> float:
    value = _to_int(pttl)
    if value < 0:
        return 0.0
    return value / 1000.0


class RedisOTPStore:
    """OTP store backed by one Redis hash per record, keyed ``prefix:namespace:id``."""

    def __init__(self, client: redis.Redis, *, key_prefix: str = "OTP", publish_key: str = ""):
        self.client = client
        self.key_prefix = key_prefix or "OTP"
        self.publish_key = publish_key

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        timeout: float = 2.0,
        key_prefix: str = "OTP",
        publish_key: str = "",
    ) -> "RedisOTPStore":
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )
        return cls(client, key_prefix=key_prefix, publish_key=publish_key)

    def _key(self, namespace: str, id: str) -> str:
        return f"{self.key_prefix}:{namespace}:{id}"

    @contextmanager
    def _errors(self, action: str) -> Iterator[None]:
        try:
            yield
        except redis.RedisError as exc:
            _LOG.error("redis %s failed: %s", action, exc)
            raise StoreUnavailableError(f"Error talking to store: {exc}") from exc

    def ping(self) -> None:
        with self._errors("ping"):
            self.client.ping()

    def set(self, namespace: str, id: str, otp: OTP) -> OTP:
        key = self._key(namespace, id)
        ttl_ms = max(int(otp.ttl * 1000), 1)
        fields = _record_fields(otp)

        def _tx(pipe: redis.client.Pipeline) -> None:
            attempts, max_attempts = pipe.hmget(key, "attempts", "max_attempts")
            if _is_locked(attempts, max_attempts):
                raise TooManyAttemptsError(
                    ttl=_ttl_from_pttl(pipe.pttl(key)),
                    attempts=_to_int(attempts),
                    max_attempts=_to_int(max_attempts),
                )
            pipe.multi()
            pipe.hset(key, mapping=fields)
            pipe.hincrby(key, "attempts", 1)
            pipe.pexpire(key, ttl_ms)

        with self._errors("set"):
            results = self.client.transaction(_tx, key)

        return OTP(
            namespace=namespace,
            id=id,
            otp=otp.otp,
            to=otp.to,
            channel_description=otp.channel_description,
            address_description=otp.address_description,
            extra=fields["extra"],
            provider=otp.provider,
            max_attempts=int(otp.max_attempts),
            attempts=_to_int(results[1]),
            closed=False,
            ttl=ttl_ms / 1000.0,
        )

    def check(self, namespace: str, id: str, increment: bool) -> OTP:
        key = self._key(namespace, id)
        if not increment:
            with self._errors("check"):
                pipe = self.client.pipeline(transaction=True)
                pipe.hgetall(key)
                pipe.pttl(key)
                data, pttl = pipe.execute()
            if not data or not data.get("otp"):
                raise NotExistError()
            return _record_from_fields(namespace, id, data, _ttl_from_pttl(pttl))

        snapshot: dict[str, Any] = {}

        def _tx(pipe: redis.client.Pipeline) -> None:
            # Reading under WATCH keeps HINCRBY from resurrecting an expired key.
            data = pipe.hgetall(key)
            if not data or not data.get("otp"):
                raise NotExistError()
            snapshot.update(data)
            pipe.multi()
            pipe.hincrby(key, "attempts", 1)
            pipe.pttl(key)

        with self._errors("check"):
            attempts, pttl = self.client.transaction(_tx, key)

        snapshot["attempts"] = attempts
        out = _record_from_fields(namespace, id, snapshot, _ttl_from_pttl(pttl))
        if self.publish_key:
            self._publish(make_event(EVENT_CHECK, namespace, id, out.to_dict()))
        return out

    def _update_existing(self, key: str, fields: dict[str, Any]) -> None:
        def _tx(pipe: redis.client.Pipeline) -> None:
            if not pipe.hexists(key, "otp"):
                raise NotExistError()
            pipe.multi()
            pipe.hset(key, mapping=fields)

        self.client.transaction(_tx, key)

    def set_address(self, namespace: str, id: str, address: str) -> bool:
        key = self._key(namespace, id)
        written: list[bool] = []

        def _tx(pipe: redis.client.Pipeline) -> None:
            # Runs again on a WATCH conflict, so the outcome is reset each time.
            written.clear()
            otp, to, closed = pipe.hmget(key, "otp", "to", "closed")
            if not otp:
                raise NotExistError()
            if to or _to_bool(closed):
                return
            pipe.multi()
            pipe.hset(key, mapping={"to": address})
            written.append(True)

        with self._errors("set_address"):
            self.client.transaction(_tx, key)
        return bool(written)

    def close(self, namespace: str, id: str) -> None:
        with self._errors("close"):
            self._update_existing(self._key(namespace, id), {"closed": "1"})
        if self.publish_key:
            try:
                self._publish(make_event(EVENT_CLOSE, namespace, id, None))
            except StoreUnavailableError:
                _LOG.warning("close event for %s/%s was not published", namespace, id)

    def delete(self, namespace: str, id: str) -> None:
        with self._errors("delete"):
            self.client.delete(self._key(namespace, id))

    def _publish(self, event: dict[str, Any]) -> None:
        with self._errors("publish"):
            self.client.publish(self.publish_key, json.dumps(event, ensure_ascii=False))


@dataclass
class _MemoryEntry:
    fields: dict[str, Any] = field(default_factory=dict)
    expires_at: float = 0.0


class InMemoryOTPStore:
    """Single-process store. Keys are serialized through a fixed set of lock stripes.

    Expiry is lazy on access; ``set`` also drops entries whose deadline has
    passed, tracked in a heap so records that are never read again go away.
    """

    _STRIPES = 64

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        on_event: Callable[[dict[str, Any]], None] | None = None,
    ):
        self._clock = clock
        self._on_event = on_event
        self._data: dict[tuple[str, str], _MemoryEntry] = {}
        self._locks = [Lock() for _ in range(self._STRIPES)]
        self._expiries: list[tuple[float, str, str]] = []
        self._expiries_lock = Lock()

    def _lock(self, key: tuple[str, str]) -> Lock:
        return self._locks[zlib.crc32(f"{key[0]}:{key[1]}".encode("utf-8")) % self._STRIPES]

    def _live(self, key: tuple[str, str]) -> _MemoryEntry | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            self._data.pop(key, None)
            return None
        return entry

    def _ttl(self, entry: _MemoryEntry) -> float:
        return max(0.0, entry.expires_at - self._clock())

    def __len__(self) -> int:
        return len(self._data)

    def _sweep(self) -> None:
        now = self._clock()
        due: list[tuple[float, str, str]] = []
        with self._expiries_lock:
            while self._expiries and self._expiries[0][0] <= now:
                due.append(heapq.heappop(self._expiries))
        for _, namespace, id in due:
            key = (namespace, id)
            with self._lock(key):
                # A re-set key carries a later deadline and survives this.
                self._live(key)

    def ping(self) -> None:
        return None

    def set(self, namespace: str, id: str, otp: OTP) -> OTP:
        self._sweep()
        key = (namespace, id)
        ttl = max(float(otp.ttl), 0.001)
        with self._lock(key):
            current = self._live(key)
            if current is not None and _is_locked(current.fields.get("attempts"), current.fields.get("max_attempts")):
                raise TooManyAttemptsError(
                    ttl=self._ttl(current),
                    attempts=_to_int(current.fields.get("attempts")),
                    max_attempts=_to_int(current.fields.get("max_attempts")),
                )
            fields = _record_fields(otp)
            fields["attempts"] = 1
            expires_at = self._clock() + ttl
            self._data[key] = _MemoryEntry(fields=fields, expires_at=expires_at)
            with self._expiries_lock:
                heapq.heappush(self._expiries, (expires_at, namespace, id))
            return _record_from_fields(namespace, id, dict(fields), ttl)

    def check(self, namespace: str, id: str, increment: bool) -> OTP:
        key = (namespace, id)
        with self._lock(key):
            entry = self._live(key)
            if entry is None:
                raise NotExistError()
            if increment:
                entry.fields["attempts"] = _to_int(entry.fields.get("attempts")) + 1
            out = _record_from_fields(namespace, id, dict(entry.fields), self._ttl(entry))
        if increment and self._on_event is not None:
            self._on_event(make_event(EVENT_CHECK, namespace, id, out.to_dict()))
        return out

    def _update_existing(self, namespace: str, id: str, fields: dict[str, Any]) -> None:
        key = (namespace, id)
        with self._lock(key):
            entry = self._live(key)
            if entry is None:
                raise NotExistError()
            entry.fields.update(fields)

    def set_address(self, namespace: str, id: str, address: str) -> bool:
        key = (namespace, id)
        with self._lock(key):
            entry = self._live(key)
            if entry is None:
                raise NotExistError()
            if entry.fields.get("to") or _to_bool(entry.fields.get("closed")):
                return False
            entry.fields["to"] = address
            return True

    def close(self, namespace: str, id: str) -> None:
        self._update_existing(namespace, id, {"closed": "1"})
        if self._on_event is not None:
            try:
                self._on_event(make_event(EVENT_CLOSE, namespace, id, None))
            except Exception:
                _LOG.warning("close event for %s/%s was not delivered", namespace, id, exc_info=True)

    def delete(self, namespace: str, id: str) -> None:
        key = (namespace, id)
        with self._lock(key):
            self._data.pop(key, None)


def build_store(settings: Any) -> OTPStore:
    backend = str(getattr(settings, "STORE_BACKEND", "redis") or "redis").strip().lower()
    if backend == "memory":
        _LOG.warning("using the in-memory OTP store; records are not shared between processes")
        return InMemoryOTPStore()
    if backend != "redis":
        raise ValueError(f"unknown STORE_BACKEND: {backend}")
    return RedisOTPStore.from_url(
        settings.REDIS_URL,
        timeout=float(settings.STORE_TIMEOUT_SECONDS),
        key_prefix=settings.REDIS_KEY_PREFIX,
        publish_key=settings.REDIS_PUBLISH_KEY,
    )
