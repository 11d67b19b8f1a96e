"""FastAPI wrapper for the namekey matching engine."""

from __future__ import annotations

import asyncio
import importlib.metadata
import json
import logging
import multiprocessing as mp
import os
import threading
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal, cast

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from apps.api.runner_process import RunnerRequest, RunnerResponse, run_operation_worker
from core.mappings.models import NameMappingEntry, RuleSet
from core.mappings.ruleset_loader import load_ruleset, parse_ruleset_yaml
from core.utils.errors import RuleSetError

app = FastAPI(title="namekey API", version="0.1.0")
logger = logging.getLogger("namekey.api")

SlotModeInput = Literal["all", "first"]

_DEFAULT_MAX_INPUT_CHARS = 10_000
_DEFAULT_MAX_MAPPINGS = 5_000
_DEFAULT_MAX_RULES = 1_000
_DEFAULT_TIMEOUT_SECONDS = 10.0
_DEFAULT_MAX_CONCURRENCY = 4
_DEFAULT_QUEUE_TIMEOUT_SECONDS = 0.0
_REQUEST_ID_HEADER = "X-Namekey-Request-Id"


@dataclass
class _ConcurrencyLimiter:
    max_concurrency: int
    queue_timeout_seconds: float
    semaphore: threading.BoundedSemaphore


class ApiRequestError(Exception):
    def __init__(
        self,
        *,
        status_code: int,
        error_code: str,
        message: str,
        detail: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.message = message
        self.detail = detail or {}


class OperationTimeoutError(TimeoutError):
    """Raised when a worker process exceeds the request timeout."""

    def __init__(self, *, timeout_seconds: float, terminated: bool) -> None:
        super().__init__("request timed out")
        self.detail: dict[str, Any] = {
            "timeout_seconds": timeout_seconds,
            "terminated": terminated,
        }


class ParseRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    key: str


class MatchRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    key: str
    input: str
    name_mappings: list[NameMappingEntry] = Field(default_factory=list)
    value: str | None = None
    slot_mode: SlotModeInput = "all"


class ExpandRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    value: str
    names: list[str] = Field(default_factory=list)


class ResolveRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    inputs: list[str] = Field(min_length=1)
    ruleset: RuleSet | None = None
    ruleset_yaml: str | None = None
    slot_mode: SlotModeInput | None = None


_limiter_lock = threading.Lock()
_limiter_cache: _ConcurrencyLimiter | None = None


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Ensure every response has a request id header."""

    request_id = uuid.uuid4().hex
    request.state.request_id = request_id
    try:
        response = await call_next(request)
    except Exception:  # noqa: BLE001
        _log_event(
            logging.ERROR,
            "error",
            request_id,
            error_code="INTERNAL_ERROR",
            status_code=500,
            failure_stage="middleware",
        )
        response = _error_response(
            status_code=500,
            error_code="INTERNAL_ERROR",
            message="internal server error",
            request_id=request_id,
            detail={"path": request.url.path},
        )
    response.headers.setdefault(_REQUEST_ID_HEADER, request_id)
    return response


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    """Liveness endpoint."""

    return {"status": "ok"}


@app.get("/v1/meta")
async def meta_v1(request: Request) -> JSONResponse:
    """Grammar, limits, and version metadata for clients."""

    request_id = _request_id_from_request(request)
    payload = {
        "key_grammar": {
            "name_slots": ["<p>", "<p,>"],
            "regex": "/body/flags",
            "regex_flags": ["d", "g", "i", "m", "s", "u", "v", "y"],
        },
        "value_placeholders": ["<p>"],
        "slot_modes": ["all", "first"],
        "limits": {
            "max_input_chars": _max_input_chars(),
            "max_mappings": _max_mappings(),
            "max_rules": _max_rules(),
            "timeout_seconds": _timeout_seconds(),
            "max_concurrency": _max_concurrency(),
            "queue_timeout_seconds": _queue_timeout_seconds(),
        },
        "default_ruleset_configured": _default_ruleset_path() is not None,
        "version": app.version,
        "package_version": _package_version(),
    }
    return JSONResponse(status_code=200, headers={_REQUEST_ID_HEADER: request_id}, content=payload)


@app.post("/v1/parse", response_model=None)
async def parse_v1(request: Request) -> JSONResponse:
    """Split a key into segments."""

    def prepare(body: ParseRequest) -> dict[str, Any]:
        _check_text_limit("key", body.key)
        return {"key": body.key}

    return await _run_endpoint(request, "parse", ParseRequest, prepare)


@app.post("/v1/match", response_model=None)
async def match_v1(request: Request) -> JSONResponse:
    """Match one input against a key, optionally expanding a value template."""

    def prepare(body: MatchRequest) -> dict[str, Any]:
        _check_text_limit("key", body.key)
        _check_text_limit("input", body.input)
        if body.value is not None:
            _check_text_limit("value", body.value)
        _check_mapping_limit(len(body.name_mappings))
        return body.model_dump(mode="json")

    return await _run_endpoint(request, "match", MatchRequest, prepare)


@app.post("/v1/expand", response_model=None)
async def expand_v1(request: Request) -> JSONResponse:
    """Expand a value template with names."""

    def prepare(body: ExpandRequest) -> dict[str, Any]:
        _check_text_limit("value", body.value)
        return body.model_dump(mode="json")

    return await _run_endpoint(request, "expand", ExpandRequest, prepare)


@app.post("/v1/resolve", response_model=None)
async def resolve_v1(request: Request) -> JSONResponse:
    """Resolve inputs through an ordered rule set."""

    def prepare(body: ResolveRequest) -> dict[str, Any]:
        for index, item in enumerate(body.inputs):
            _check_text_limit(f"inputs[{index}]", item)
        ruleset = _ruleset_for_request(body)
        _check_ruleset_limits(ruleset)
        return {
            "inputs": body.inputs,
            "ruleset": ruleset.model_dump(mode="json"),
            "slot_mode": body.slot_mode,
        }

    return await _run_endpoint(request, "resolve", ResolveRequest, prepare)


async def _run_endpoint(
    request: Request,
    operation: str,
    model: type[BaseModel],
    prepare: Callable[[Any], dict[str, Any]],
) -> JSONResponse:
    request_started = time.perf_counter()
    request_id = _request_id_from_request(request)
    failure_stage = "validate_request"
    limiter: _ConcurrencyLimiter | None = None
    slot_acquired = False

    try:
        body = await _load_body(request, model)
        worker_payload = prepare(body)

        failure_stage = "acquire_slot"
        limiter = _get_concurrency_limiter()
        slot_acquired, queue_wait_ms = await _try_acquire_concurrency_slot(limiter)
        if not slot_acquired:
            raise ApiRequestError(
                status_code=429,
                error_code="TOO_MANY_REQUESTS",
                message="server busy",
                detail={
                    "max_concurrency": limiter.max_concurrency,
                    "queue_timeout_seconds": limiter.queue_timeout_seconds,
                },
            )

        timeout_seconds = _timeout_seconds()
        _log_event(
            logging.INFO,
            "start",
            request_id,
            operation=operation,
            timeout_seconds=timeout_seconds,
            queue_wait_ms=queue_wait_ms,
        )

        failure_stage = operation
        worker_started = time.perf_counter()
        payload = await _run_operation_with_timeout(
            RunnerRequest(operation=operation, payload=worker_payload),
            timeout_seconds=timeout_seconds,
        )

        _log_event(
            logging.INFO,
            "done",
            request_id,
            operation=operation,
            outcome=_outcome_label(payload),
            http_status=200,
            timing={
                "queue_wait_ms": queue_wait_ms,
                "worker_ms": _elapsed_ms(worker_started),
                "total_ms": _elapsed_ms(request_started),
            },
        )
        return JSONResponse(
            status_code=200,
            headers={_REQUEST_ID_HEADER: request_id},
            content=payload,
        )
    except ApiRequestError as exc:
        _log_event(
            logging.ERROR,
            "error",
            request_id,
            operation=operation,
            outcome="rejected",
            error_code=exc.error_code,
            status_code=exc.status_code,
            failure_stage=failure_stage,
            timing={"total_ms": _elapsed_ms(request_started)},
        )
        return _error_response(
            status_code=exc.status_code,
            error_code=exc.error_code,
            message=exc.message,
            request_id=request_id,
            detail=exc.detail,
        )
    except OperationTimeoutError as exc:
        _log_event(
            logging.ERROR,
            "error",
            request_id,
            operation=operation,
            outcome="timeout",
            error_code="REQUEST_TIMEOUT",
            status_code=408,
            failure_stage=failure_stage,
            timing={"total_ms": _elapsed_ms(request_started)},
        )
        return _error_response(
            status_code=408,
            error_code="REQUEST_TIMEOUT",
            message="request timed out",
            request_id=request_id,
            detail=exc.detail,
        )
    except Exception as exc:  # noqa: BLE001
        _log_event(
            logging.ERROR,
            "error",
            request_id,
            operation=operation,
            outcome="error",
            error_code="INTERNAL_ERROR",
            status_code=500,
            failure_stage=failure_stage,
        )
        return _error_response(
            status_code=500,
            error_code="INTERNAL_ERROR",
            message="internal server error",
            request_id=request_id,
            detail={"error": str(exc), "total_ms": _elapsed_ms(request_started)},
        )
    finally:
        if slot_acquired and limiter is not None:
            limiter.semaphore.release()


async def _run_operation_with_timeout(
    request: RunnerRequest, *, timeout_seconds: float
) -> dict[str, Any]:
    """Execute one operation in a subprocess and enforce a hard timeout."""

    start_method = os.getenv("NAMEKEY_MP_START", "spawn")
    ctx = cast(Any, mp.get_context(start_method))
    recv_conn, send_conn = ctx.Pipe(duplex=False)
    process = ctx.Process(
        target=run_operation_worker,
        args=(request, send_conn),
        name="namekey-api-runner",
        daemon=True,
    )

    try:
        process.start()
    finally:
        send_conn.close()

    deadline = time.monotonic() + timeout_seconds
    response_payload: RunnerResponse | None = None

    try:
        while True:
            if recv_conn.poll(0.0):
                response_payload = cast(RunnerResponse, recv_conn.recv())
                break
            if not process.is_alive():
                break
            if time.monotonic() >= deadline:
                terminated = _terminate_process(process)
                raise OperationTimeoutError(
                    timeout_seconds=timeout_seconds, terminated=terminated
                )
            await asyncio.sleep(0.01)

        if response_payload is None and recv_conn.poll(0.0):
            response_payload = cast(RunnerResponse, recv_conn.recv())

        process.join(timeout=0.5)
        if process.is_alive():
            _terminate_process(process)
            raise RuntimeError("Runner subprocess did not exit cleanly")

        if response_payload is None:
            raise RuntimeError("Runner subprocess exited without a response payload")

        if not response_payload.ok or response_payload.result is None:
            raise RuntimeError(
                "Runner subprocess failed: "
                f"{response_payload.error_type}: {response_payload.error_message}"
            )
        return response_payload.result
    finally:
        try:
            recv_conn.close()
        finally:
            if process.is_alive():
                _terminate_process(process)


def _terminate_process(process: mp.Process) -> bool:
    """Terminate/kill subprocess and wait for exit."""

    if not process.is_alive():
        return True

    process.terminate()
    process.join(timeout=0.5)
    if process.is_alive():
        process.kill()
        process.join(timeout=0.5)

    return not process.is_alive()


async def _load_body(request: Request, model: type[BaseModel]) -> Any:
    raw_bytes = await request.body()
    try:
        raw = json.loads(raw_bytes or b"null")
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ApiRequestError(
            status_code=400,
            error_code="INVALID_JSON",
            message="request body must be valid UTF-8 JSON",
            detail={"error": str(exc)},
        ) from exc

    if not isinstance(raw, dict):
        raise ApiRequestError(
            status_code=400,
            error_code="INVALID_JSON",
            message="request body must be a JSON object",
        )

    try:
        return model.model_validate(raw)
    except ValidationError as exc:
        raise ApiRequestError(
            status_code=400,
            error_code="INVALID_REQUEST",
            message="request schema validation failed",
            detail={"errors": json.loads(exc.json(include_url=False))},
        ) from exc


def _ruleset_for_request(body: ResolveRequest) -> RuleSet:
    if body.ruleset is not None and body.ruleset_yaml is not None:
        raise ApiRequestError(
            status_code=400,
            error_code="INVALID_ARGUMENT_CONFLICT",
            message="ruleset and ruleset_yaml cannot be used together",
            detail={"fields": ["ruleset", "ruleset_yaml"]},
        )

    if body.ruleset is not None:
        return body.ruleset

    try:
        if body.ruleset_yaml is not None:
            _check_text_limit("ruleset_yaml", body.ruleset_yaml, scale=100)
            return parse_ruleset_yaml(body.ruleset_yaml)

        default_path = _default_ruleset_path()
        if default_path is not None:
            return load_ruleset(default_path)
    except RuleSetError as exc:
        raise ApiRequestError(
            status_code=400,
            error_code="INVALID_ARGUMENT",
            message="invalid rule set",
            detail={"field": "ruleset_yaml", "error": str(exc)},
        ) from exc

    raise ApiRequestError(
        status_code=400,
        error_code="INVALID_ARGUMENT",
        message="a rule set is required",
        detail={"fields": ["ruleset", "ruleset_yaml"]},
    )


def _check_ruleset_limits(ruleset: RuleSet) -> None:
    _check_mapping_limit(len(ruleset.name_mappings))

    limit = _max_rules()
    if len(ruleset.rules) > limit:
        raise ApiRequestError(
            status_code=413,
            error_code="PAYLOAD_TOO_LARGE",
            message="too many rules",
            detail={"field": "rules", "max_rules": limit, "actual": len(ruleset.rules)},
        )

    for index, rule in enumerate(ruleset.rules):
        _check_text_limit(f"rules[{index}].key", rule.key)
        _check_text_limit(f"rules[{index}].value", rule.value)


def _check_text_limit(field_name: str, text: str, *, scale: int = 1) -> None:
    limit = _max_input_chars() * scale
    if len(text) > limit:
        raise ApiRequestError(
            status_code=413,
            error_code="PAYLOAD_TOO_LARGE",
            message=f"{field_name} is too long",
            detail={"field": field_name, "max_chars": limit, "actual_chars": len(text)},
        )


def _check_mapping_limit(count: int) -> None:
    limit = _max_mappings()
    if count > limit:
        raise ApiRequestError(
            status_code=413,
            error_code="PAYLOAD_TOO_LARGE",
            message="too many name mappings",
            detail={"field": "name_mappings", "max_mappings": limit, "actual": count},
        )


def _outcome_label(payload: dict[str, Any]) -> str:
    if "matched" in payload:
        return "matched" if payload["matched"] else "no_match"
    summary = payload.get("summary")
    if isinstance(summary, dict):
        return "matched" if summary.get("matched_count") else "no_match"
    return "ok"


def _request_id_from_request(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if isinstance(request_id, str) and request_id:
        return request_id
    generated = uuid.uuid4().hex
    request.state.request_id = generated
    return generated


def _max_input_chars() -> int:
    raw = os.getenv("NAMEKEY_MAX_INPUT_CHARS")
    if raw is None:
        return _DEFAULT_MAX_INPUT_CHARS
    try:
        parsed = int(raw)
    except ValueError:
        return _DEFAULT_MAX_INPUT_CHARS
    return parsed if parsed > 0 else _DEFAULT_MAX_INPUT_CHARS


def _max_mappings() -> int:
    raw = os.getenv("NAMEKEY_MAX_MAPPINGS")
    if raw is None:
        return _DEFAULT_MAX_MAPPINGS
    try:
        parsed = int(raw)
    except ValueError:
        return _DEFAULT_MAX_MAPPINGS
    return parsed if parsed > 0 else _DEFAULT_MAX_MAPPINGS


def _max_rules() -> int:
    raw = os.getenv("NAMEKEY_MAX_RULES")
    if raw is None:
        return _DEFAULT_MAX_RULES
    try:
        parsed = int(raw)
    except ValueError:
        return _DEFAULT_MAX_RULES
    return parsed if parsed > 0 else _DEFAULT_MAX_RULES


def _timeout_seconds() -> float:
    raw = os.getenv("NAMEKEY_REQUEST_TIMEOUT_SECONDS")
    if raw is None:
        return _DEFAULT_TIMEOUT_SECONDS
    try:
        parsed = float(raw)
    except ValueError:
        return _DEFAULT_TIMEOUT_SECONDS
    return parsed if parsed > 0 else _DEFAULT_TIMEOUT_SECONDS


def _max_concurrency() -> int:
    raw = os.getenv("NAMEKEY_MAX_CONCURRENCY")
    if raw is None:
        return _DEFAULT_MAX_CONCURRENCY
    try:
        parsed = int(raw)
    except ValueError:
        return _DEFAULT_MAX_CONCURRENCY
    return parsed if parsed > 0 else _DEFAULT_MAX_CONCURRENCY


def _queue_timeout_seconds() -> float:
    raw = os.getenv("NAMEKEY_QUEUE_TIMEOUT_SECONDS")
    if raw is None:
        return _DEFAULT_QUEUE_TIMEOUT_SECONDS
    try:
        parsed = float(raw)
    except ValueError:
        return _DEFAULT_QUEUE_TIMEOUT_SECONDS
    return parsed if parsed >= 0 else _DEFAULT_QUEUE_TIMEOUT_SECONDS


def _get_concurrency_limiter() -> _ConcurrencyLimiter:
    global _limiter_cache

    max_concurrency = _max_concurrency()
    queue_timeout = _queue_timeout_seconds()

    with _limiter_lock:
        if (
            _limiter_cache is None
            or _limiter_cache.max_concurrency != max_concurrency
            or _limiter_cache.queue_timeout_seconds != queue_timeout
        ):
            _limiter_cache = _ConcurrencyLimiter(
                max_concurrency=max_concurrency,
                queue_timeout_seconds=queue_timeout,
                semaphore=threading.BoundedSemaphore(value=max_concurrency),
            )
        return _limiter_cache


async def _try_acquire_concurrency_slot(limiter: _ConcurrencyLimiter) -> tuple[bool, int]:
    waited_started = time.perf_counter()
    timeout_seconds = limiter.queue_timeout_seconds

    if timeout_seconds == 0:
        acquired_now = limiter.semaphore.acquire(blocking=False)
        return acquired_now, _elapsed_ms(waited_started)

    deadline = time.monotonic() + timeout_seconds
    while time.monotonic() < deadline:
        if limiter.semaphore.acquire(blocking=False):
            return True, _elapsed_ms(waited_started)
        await asyncio.sleep(0.01)

    return False, _elapsed_ms(waited_started)


def _default_ruleset_path() -> Path | None:
    raw = os.getenv("NAMEKEY_RULESET_PATH", "").strip()
    return Path(raw).expanduser() if raw else None


def _package_version() -> str:
    try:
        return importlib.metadata.version("namekey")
    except importlib.metadata.PackageNotFoundError:
        return "unknown"


def _error_response(
    *,
    status_code: int,
    error_code: str,
    message: str,
    request_id: str,
    detail: dict[str, Any] | None = None,
) -> JSONResponse:
    payload_detail = dict(detail or {})
    payload_detail["request_id"] = request_id

    return JSONResponse(
        status_code=status_code,
        headers={_REQUEST_ID_HEADER: request_id},
        content={
            "error_code": error_code,
            "message": message,
            "detail": payload_detail,
        },
    )


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def _dump_json(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"), sort_keys=True)


def _log_event(level: int, event: str, request_id: str, **fields: Any) -> None:
    payload = {
        "event": event,
        "request_id": request_id,
        **fields,
    }
    logger.log(level, _dump_json(payload))
