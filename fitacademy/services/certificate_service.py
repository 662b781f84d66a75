# services/certificate_service.py
"""
Certificate polling after a course reaches 100%.

Certificates are generated asynchronously upstream, so the first fetches
usually 404. CertificatePoller owns the retry schedule; CertificateTracker
runs one poll per (viewer, course) as an asyncio task, guarded in Redis so a
session only ever enters the pending state once.
"""
import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from redis.asyncio import Redis

from fitacademy.clients.backend import BackendClient, BackendError, BackendUnavailable
from fitacademy.services.cache_keys import certificate_guard_key, certificate_state_key

logger = logging.getLogger(__name__)

IDLE = {"status": "idle", "certificate": None, "attempts": 0}
# seconds allowed past the retry schedule for upstream latency
STALE_GRACE = 60


def normalize_certificate(data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Map an upstream certificate payload, or None when it carries no certificate."""
    if isinstance(data.get("certificate"), dict):
        cert = data["certificate"]
    elif "certificate" not in data and (data.get("verificationCode") or data.get("verification_code")):
        cert = data
    else:
        return None
    if not cert:
        return None
    return {
        "user_name": cert.get("userName") or cert.get("user_name"),
        "course_title": cert.get("courseTitle") or cert.get("course_title"),
        "issued_at": cert.get("issuedAt") or cert.get("issued_at"),
        "verification_code": cert.get("verificationCode") or cert.get("verification_code"),
        "certificate_url": cert.get("certificateUrl") or cert.get("certificate_url"),
    }


class CertificatePoller:
    def __init__(self, backend: BackendClient, *, initial_delay: float = 2.0,
                 retry_delays: Sequence[float] = (3.0, 6.0), max_attempts: int = 3,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self.backend = backend
        self.initial_delay = initial_delay
        self.retry_delays = list(retry_delays) or [0.0]
        self.max_attempts = max_attempts
        self._sleep = sleep

    def delay_before(self, attempt: int) -> float:
        if attempt == 1:
            return self.initial_delay
        idx = min(attempt - 2, len(self.retry_delays) - 1)
        return self.retry_delays[idx]

    def window(self) -> float:
        return sum(self.delay_before(n) for n in range(1, self.max_attempts + 1))

    async def poll(self, token: str, course_id: str) -> Tuple[Optional[Dict[str, Any]], int]:
        """Return (certificate, attempts). A None certificate means none was found."""
        for attempt in range(1, self.max_attempts + 1):
            await self._sleep(self.delay_before(attempt))
            try:
                data = await self.backend.get_certificate(course_id, token)
            except BackendError as e:
                if e.is_not_found:
                    logger.info(f"Certificate for course {course_id} not ready (attempt {attempt}/{self.max_attempts})")
                    continue
                logger.error(f"Certificate fetch for course {course_id} aborted: {str(e)}")
                return None, attempt
            except BackendUnavailable as e:
                logger.error(f"Certificate fetch for course {course_id} aborted: {str(e)}")
                return None, attempt
            certificate = normalize_certificate(data)
            if certificate is None:
                # success without a body counts as not generated yet
                logger.info(f"Certificate for course {course_id} empty (attempt {attempt}/{self.max_attempts})")
                continue
            return certificate, attempt

        logger.warning(f"Certificate for course {course_id} still missing after {self.max_attempts} attempts")
        return None, self.max_attempts


class CertificateTracker:
    def __init__(self, r: Redis, poller: CertificatePoller, *, session_ttl: int = 60 * 60 * 24):
        self.r = r
        self.poller = poller
        self.session_ttl = session_ttl
        self._tasks: Dict[Tuple[str, str], asyncio.Task] = {}

    async def _write_state(self, user_id: str, course_id: str, state: Dict[str, Any]) -> None:
        await self.r.set(certificate_state_key(user_id, course_id), json.dumps(state), ex=self.session_ttl)

    async def _read_state(self, user_id: str, course_id: str) -> Dict[str, Any]:
        raw = await self.r.get(certificate_state_key(user_id, course_id))
        if not raw:
            return dict(IDLE)
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return dict(IDLE)

    async def status(self, user_id: str, course_id: str) -> Dict[str, Any]:
        state = await self._read_state(user_id, course_id)
        state.pop("started_at", None)
        return state

    async def start(self, user_id: str, token: str, course_id: str) -> Dict[str, Any]:
        """Begin polling unless this session already has."""
        key = (user_id, course_id)
        guard = certificate_guard_key(user_id, course_id)
        acquired = await self.r.set(guard, "1", nx=True, ex=self.session_ttl)
        if not acquired:
            current = await self._read_state(user_id, course_id)
            if current["status"] != "pending" or key in self._tasks or not self._is_stale(current):
                current.pop("started_at", None)
                return current
            logger.warning(f"Stale certificate poll for user {user_id}, course {course_id}, restarting")
            await self.r.set(guard, "1", ex=self.session_ttl)

        state = {"status": "pending", "certificate": None, "attempts": 0}
        await self._write_state(user_id, course_id, dict(state, started_at=time.time()))
        task = asyncio.create_task(self._run(user_id, token, course_id))
        self._tasks[key] = task
        task.add_done_callback(lambda t, k=key: self._forget(k, t))
        logger.info(f"Certificate polling started for user {user_id}, course {course_id}")
        return state

    def _is_stale(self, state: Dict[str, Any]) -> bool:
        # a pending poll owned by a live worker finishes within its schedule
        started_at = state.get("started_at")
        if not isinstance(started_at, (int, float)):
            return True
        return time.time() - started_at > self.poller.window() + STALE_GRACE

    def _forget(self, key: Tuple[str, str], task: asyncio.Task) -> None:
        if self._tasks.get(key) is task:
            self._tasks.pop(key, None)

    async def _run(self, user_id: str, token: str, course_id: str) -> None:
        try:
            certificate, attempts = await self.poller.poll(token, course_id)
        except asyncio.CancelledError:
            logger.info(f"Certificate polling cancelled for user {user_id}, course {course_id}")
            # a later visit may poll again
            await self.r.delete(certificate_guard_key(user_id, course_id), certificate_state_key(user_id, course_id))
            raise
        except Exception as e:
            logger.exception(f"Certificate polling failed for user {user_id}, course {course_id}: {str(e)}")
            await self._write_state(user_id, course_id, {"status": "unavailable", "certificate": None, "attempts": 0})
            return
        status = "shown" if certificate else "unavailable"
        await self._write_state(user_id, course_id, {"status": status, "certificate": certificate, "attempts": attempts})

    async def wait(self, user_id: str, course_id: str) -> Dict[str, Any]:
        task = self._tasks.get((user_id, course_id))
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        return await self.status(user_id, course_id)

    async def cancel(self, user_id: str, course_id: str) -> bool:
        task = self._tasks.pop((user_id, course_id), None)
        cancelled = False
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            cancelled = True
        # releasing the guard lets a later visit poll again
        await self.r.delete(certificate_guard_key(user_id, course_id), certificate_state_key(user_id, course_id))
        return cancelled

    def active(self) -> List[Tuple[str, str]]:
        return [k for k, t in self._tasks.items() if not t.done()]

    async def shutdown(self) -> None:
        tasks = [t for t in self._tasks.values() if not t.done()]
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
