"""
Classification Queue

Asynchronous, rate-limited batching in front of the classification service.

The regex classifier has already recorded a result by the time a message
reaches this queue; the service result arrives later (or never) and is
reconciled through each job's callback. Every failure mode degrades to a
None result so the deterministic classification stands.

Batching is debounce-with-cap: a batch is dispatched when the collection
window elapses or the batch fills, whichever comes first. At most one batch
is in flight, and consecutive service calls start at least
rate_limit_delay_s apart.
"""

import asyncio
import inspect
import logging
import math
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence, Set

from ..common.llm_client import LLMClient, LLMResponse, LLMTransportError
from ..common.llm_utils import parse_llm_json_array, parse_retry_after
from ..common.schemas import AIClassification, Intent, Priority, QuestionType

logger = logging.getLogger("chatwatch.monitor.queue")

MIN_TEXT_LENGTH = 3
MIN_RESCHEDULE_DELAY_S = 0.2
MAX_RESPONSE_TOKENS = 1024

# Status codes worth retrying with backoff
THROTTLED = 429
OVERLOADED = (529, 503)


CLASSIFIER_POLICY = """You classify chat messages for a business team that manages partner groups. Respond ONLY with a JSON array, one object per message in the order given. No markdown, no explanation.

For each message, return an object with:
- "intent": one of "question", "answer", "request", "status_update", "approval", "fyi", "greeting", "reaction", "other"
- "question_type": (only if intent is "question") one of "yes_no", "info_seeking", "action_request", "opinion", "status_check", "scheduling", "approval", "general"
- "priority": "low", "normal", "high", or "urgent"
- "confidence": 0.0-1.0, how confident you are
- "is_actionable": boolean, does this need someone to do something?
- "summary": 3-6 word summary of what the message is about

An "approval" message grants, rejects or conditions a request or offer. Say "rejected" or "condition" in its summary when it does not simply approve.

Context: these are work messages in group chats. The team needs to know what requires action and what is informational."""


@dataclass
class ClassificationJob:
    """
    One message awaiting service classification.

    id is supplied by the caller and correlates the result with the record
    that was already persisted. context is carried untouched to the callback.
    The callback (sync or async) receives the job and the result, which is
    None when the service gave no usable answer. future resolves with the
    same result once the callback has run.
    """
    id: str
    text: str
    sender: str = "Unknown"
    chat_name: str = "Unknown"
    is_group_chat: bool = True
    prior: Any = None
    context: Dict[str, Any] = field(default_factory=dict)
    callback: Optional[Callable[["ClassificationJob", Optional[AIClassification]], Any]] = None
    future: Optional[asyncio.Future] = field(default=None, repr=False)


def _enum_or(enum_cls, value: Any, default):
    if isinstance(value, str):
        value = value.strip().lower()
    try:
        return enum_cls(value)
    except ValueError:
        return default


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def normalize_classification(item: Any) -> Optional[AIClassification]:
    """
    Map one raw service object to an AIClassification.

    Unknown enum values fall back to safe defaults; a missing or
    non-numeric confidence becomes 0.5 and anything else is clamped to [0, 1].
    """
    if not isinstance(item, dict):
        return None

    try:
        confidence = float(item.get("confidence", 0.5))
    except (TypeError, ValueError):
        confidence = 0.5
    if math.isnan(confidence):
        confidence = 0.5

    return AIClassification(
        intent=_enum_or(Intent, item.get("intent"), Intent.OTHER),
        question_type=_enum_or(QuestionType, item.get("question_type"), None),
        priority=_enum_or(Priority, item.get("priority"), Priority.NORMAL),
        confidence=min(1.0, max(0.0, confidence)),
        is_actionable=_as_bool(item.get("is_actionable", False)),
        summary=str(item.get("summary") or ""),
    )


def build_prompt(jobs: Sequence[ClassificationJob]) -> str:
    """User prompt listing the batch, numbered from 1"""
    lines = []
    for i, job in enumerate(jobs, start=1):
        where = "group" if job.is_group_chat else "DM"
        lines.append(f'[{i}] "{job.text[:500]}" (from {job.sender} in {where} "{job.chat_name}")')
    return f"Classify these {len(jobs)} message(s):\n\n" + "\n".join(lines)


class ClassificationQueue:
    """
    Batches jobs for the classification service.

    Usage:
        queue = ClassificationQueue(client)
        future = queue.enqueue(ClassificationJob(id="q_1", text="Is it done?"))
        result = await future  # AIClassification or None

    enqueue must be called from a running event loop. Direct calls
    (classify_batch, classify_one) skip the buffer but share the rate
    limit, retry policy and normalization.
    """

    def __init__(
        self,
        client: Optional[LLMClient],
        *,
        enabled: bool = True,
        batch_size: int = 10,
        batch_window_s: float = 3.0,
        rate_limit_delay_s: float = 13.0,
        max_retries: int = 3,
        retry_base_delay_s: float = 15.0,
        request_timeout_s: float = 30.0,
    ):
        self._client = client
        self.enabled = bool(enabled and client is not None and client.is_available)
        self.batch_size = max(1, batch_size)
        self.batch_window_s = batch_window_s
        self.rate_limit_delay_s = rate_limit_delay_s
        self.max_retries = max_retries
        self.retry_base_delay_s = retry_base_delay_s
        self.request_timeout_s = request_timeout_s

        self._pending: Deque[ClassificationJob] = deque()
        self._timer: Optional[asyncio.TimerHandle] = None
        self._next_batch: Optional[asyncio.TimerHandle] = None
        self._processing = False
        self._closed = False
        self._tasks: Set[asyncio.Task] = set()
        self._call_lock = asyncio.Lock()
        self._last_request: Optional[float] = None

        self.stats = {"classified": 0, "errors": 0, "api_calls": 0}

        if self.enabled:
            logger.info(
                "Classification queue ready (model: %s, 1 request every %.1fs)",
                self.model, self.rate_limit_delay_s,
            )
        else:
            logger.info("Classification service unavailable, running in regex-only mode")

    @classmethod
    def from_config(cls, queue_config, client: Optional[LLMClient]) -> "ClassificationQueue":
        return cls(
            client,
            enabled=queue_config.enabled,
            batch_size=queue_config.batch_size,
            batch_window_s=queue_config.batch_window_ms / 1000,
            rate_limit_delay_s=queue_config.rate_limit_delay_ms / 1000,
            max_retries=queue_config.max_retries,
            retry_base_delay_s=queue_config.retry_base_delay_ms / 1000,
            request_timeout_s=queue_config.request_timeout_s,
        )

    @property
    def model(self) -> str:
        return getattr(self._client, "model", "") or ""

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # =========================================================================
    # Queued path
    # =========================================================================

    def enqueue(self, job: ClassificationJob) -> Optional[asyncio.Future]:
        """
        Buffer a job for the next batch.

        Returns:
            Future resolving to the job's result, or None if the job was
            not queued (service disabled, text too short)
        """
        if not self.enabled or self._closed:
            return None
        if not job.text or len(job.text.strip()) < MIN_TEXT_LENGTH:
            return None

        loop = asyncio.get_running_loop()
        job.future = loop.create_future()
        self._pending.append(job)

        if len(self._pending) >= self.batch_size:
            self._cancel_timer()
            self._dispatch()
        elif self._timer is None:
            self._timer = loop.call_later(self.batch_window_s, self._on_window_elapsed)

        return job.future

    def _on_window_elapsed(self) -> None:
        self._timer = None
        self._dispatch()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_next_batch_due(self) -> None:
        self._next_batch = None
        self._dispatch()

    def _dispatch(self) -> None:
        """Start a batch unless one is already in flight"""
        if self._next_batch is not None:
            self._next_batch.cancel()
            self._next_batch = None
        if self._processing or not self._pending:
            return

        self._processing = True
        task = asyncio.get_running_loop().create_task(self._process_batch())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _process_batch(self) -> None:
        batch = [self._pending.popleft() for _ in range(min(self.batch_size, len(self._pending)))]

        try:
            try:
                results = await self._call_service(batch)
            except Exception as e:
                logger.error("Batch error: %s", e)
                self.stats["errors"] += 1
                results = [None] * len(batch)

            for job, result in zip(batch, results):
                await self._deliver(job, result)
        finally:
            self._processing = False
            if self._pending and not self._closed:
                self._schedule_next_batch()

    def _schedule_next_batch(self) -> None:
        if self._next_batch is not None:
            return
        wait = MIN_RESCHEDULE_DELAY_S
        if self._last_request is not None:
            elapsed = time.monotonic() - self._last_request
            wait = max(MIN_RESCHEDULE_DELAY_S, self.rate_limit_delay_s - elapsed)
        self._next_batch = asyncio.get_running_loop().call_later(wait, self._on_next_batch_due)

    async def _deliver(self, job: ClassificationJob, result: Optional[AIClassification]) -> None:
        if result is not None:
            self.stats["classified"] += 1

        if job.callback is not None:
            try:
                outcome = job.callback(job, result)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.error("Callback error for job %s: %s", job.id, e)

        if job.future is not None and not job.future.done():
            job.future.set_result(result)

    async def close(self) -> None:
        """
        Stop batching: cancel timers, wait for an in-flight batch, then
        deliver None to every job still waiting.
        """
        self._closed = True
        self._cancel_timer()
        if self._next_batch is not None:
            self._next_batch.cancel()
            self._next_batch = None
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        if self._pending:
            logger.info("Queue closed with %d unclassified job(s)", len(self._pending))
        while self._pending:
            await self._deliver(self._pending.popleft(), None)

    # =========================================================================
    # Direct path
    # =========================================================================

    async def classify_batch(self, jobs: Sequence[ClassificationJob]) -> List[Optional[AIClassification]]:
        """
        Classify jobs immediately, in chunks of batch_size.

        Callbacks and futures on the jobs are not used. The result list has
        the same length and order as jobs.
        """
        if not self.enabled:
            return [None] * len(jobs)

        results: List[Optional[AIClassification]] = []
        for start in range(0, len(jobs), self.batch_size):
            chunk = list(jobs[start:start + self.batch_size])
            chunk_results = await self._call_service(chunk)
            results.extend(chunk_results)
            self.stats["classified"] += sum(1 for r in chunk_results if r is not None)
        return results

    async def classify_one(
        self,
        text: str,
        sender: str = "Unknown",
        chat_name: str = "Unknown",
        is_group_chat: bool = True,
    ) -> Optional[AIClassification]:
        """Classify a single message immediately"""
        job = ClassificationJob(
            id="direct",
            text=text,
            sender=sender,
            chat_name=chat_name,
            is_group_chat=is_group_chat,
        )
        results = await self.classify_batch([job])
        return results[0] if results else None

    # =========================================================================
    # Service calls
    # =========================================================================

    async def _wait_for_rate_limit(self) -> None:
        """Sleep until rate_limit_delay_s has passed since the last call started"""
        if self._last_request is None:
            return
        while True:
            wait = self.rate_limit_delay_s - (time.monotonic() - self._last_request)
            if wait <= 0:
                return
            await asyncio.sleep(wait)

    def _backoff(self, attempt: int) -> float:
        return self.retry_base_delay_s * (2 ** attempt)

    def _retry_delay(self, response: LLMResponse, attempt: int) -> Optional[float]:
        """Backoff for a retryable status, None for anything else"""
        if response.status_code == THROTTLED:
            suggested = response.retry_after or parse_retry_after(response.text)
            return suggested if suggested else self._backoff(attempt)
        if response.status_code in OVERLOADED:
            return self._backoff(attempt)
        return None

    async def _call_service(self, jobs: Sequence[ClassificationJob]) -> List[Optional[AIClassification]]:
        """
        One batch call with rate limiting and retry.

        Never raises: every failure returns a list of None of len(jobs).
        """
        if not jobs:
            return []

        degraded: List[Optional[AIClassification]] = [None] * len(jobs)
        prompt = build_prompt(jobs)

        async with self._call_lock:
            self.stats["api_calls"] += 1

            for attempt in range(self.max_retries + 1):
                await self._wait_for_rate_limit()
                self._last_request = time.monotonic()

                try:
                    response = await asyncio.wait_for(
                        self._client.generate(
                            prompt,
                            system=CLASSIFIER_POLICY,
                            max_tokens=MAX_RESPONSE_TOKENS,
                            timeout=self.request_timeout_s,
                        ),
                        timeout=self.request_timeout_s,
                    )
                except (LLMTransportError, asyncio.TimeoutError) as e:
                    reason = f"request failed ({str(e) or 'timed out'})"
                    delay = self._backoff(attempt)
                except Exception as e:
                    logger.error("Classification request error: %s", e)
                    self.stats["errors"] += 1
                    return degraded
                else:
                    if response.ok:
                        return self._parse_results(response.text, len(jobs))

                    delay = self._retry_delay(response, attempt)
                    if delay is None:
                        logger.error(
                            "Classification service returned HTTP %d: %s",
                            response.status_code, response.text[:200],
                        )
                        self.stats["errors"] += 1
                        return degraded
                    reason = f"HTTP {response.status_code}"

                if attempt < self.max_retries:
                    logger.warning(
                        "Classification %s. Retry %d/%d in %.1fs",
                        reason, attempt + 1, self.max_retries, delay,
                    )
                    await asyncio.sleep(delay)

            logger.error("Classification retries exhausted, %d message(s) left unclassified", len(jobs))
            self.stats["errors"] += 1
            return degraded

    def _parse_results(self, text: str, expected: int) -> List[Optional[AIClassification]]:
        data = parse_llm_json_array(text)
        if data is None or len(data) != expected:
            logger.error(
                "Malformed classification response (expected %d results): %s",
                expected, (text or "")[:200],
            )
            self.stats["errors"] += 1
            return [None] * expected
        return [normalize_classification(item) for item in data]

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self.stats,
            "enabled": self.enabled,
            "model": self.model,
            "queue_length": len(self._pending),
        }
