"""
Redis-backed job store for pipeline initialization jobs.

The API process and the Celery worker share this store, so the API can
report a job's state while the worker runs it. Without a reachable Redis
the store keeps jobs in process memory (tests, local runs).
"""

import json
from datetime import datetime, timezone
from uuid import UUID

from src.core.config import settings
from src.core.logging import get_logger
from src.schemas.jobs import JobStatus, JobType

logger = get_logger(__name__)

JOB_PREFIX = "sapqa:job:"
JOB_INDEX_KEY = "sapqa:jobs"
JOB_TTL_SECONDS = 86400
MAX_INDEXED_JOBS = 1000

_memory_store: dict[str, dict] = {}
_memory_index: list[str] = []

_redis_client = None
_redis_available: bool | None = None


def _get_redis():
    """Lazily connect to Redis; None once it has proven unreachable."""
    global _redis_client, _redis_available

    if _redis_available is False:
        return None

    if _redis_client is not None:
        return _redis_client

    try:
        import redis
        _redis_client = redis.Redis.from_url(
            settings.redis_dsn,
            decode_responses=True,
            socket_connect_timeout=2,
        )
        _redis_client.ping()
        _redis_available = True
        logger.info("Job store: using Redis", url=settings.redis_dsn)
        return _redis_client
    except Exception as e:
        _redis_available = False
        logger.warning("Job store: Redis unavailable, using in-memory fallback", error=str(e))
        return None


def _serialize_job(job: dict) -> str:
    serializable = {}
    for k, v in job.items():
        if isinstance(v, UUID):
            serializable[k] = str(v)
        elif isinstance(v, datetime):
            serializable[k] = v.isoformat()
        elif isinstance(v, (JobStatus, JobType)):
            serializable[k] = v.value
        else:
            serializable[k] = v
    return json.dumps(serializable)


def _deserialize_job(data: str) -> dict:
    job = json.loads(data)

    if job.get("id"):
        job["id"] = UUID(job["id"])
    if job.get("status"):
        job["status"] = JobStatus(job["status"])
    if job.get("job_type"):
        job["job_type"] = JobType(job["job_type"])
    for ts_field in ("created_at", "started_at", "completed_at"):
        if job.get(ts_field):
            job[ts_field] = datetime.fromisoformat(job[ts_field])

    return job


def _save(job: dict) -> None:
    r = _get_redis()
    if r:
        r.set(f"{JOB_PREFIX}{job['id']}", _serialize_job(job), ex=JOB_TTL_SECONDS)
    else:
        _memory_store[str(job["id"])] = job


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_job(job_type: JobType) -> dict:
    """Create a pending job record."""
    from uuid6 import uuid7

    job_id = uuid7()
    job = {
        "id": job_id,
        "job_type": job_type,
        "status": JobStatus.PENDING,
        "progress": 0.0,
        "error_message": None,
        "result": None,
        "created_at": utcnow(),
        "started_at": None,
        "completed_at": None,
    }

    r = _get_redis()
    if r:
        _save(job)
        r.lpush(JOB_INDEX_KEY, str(job_id))
        r.ltrim(JOB_INDEX_KEY, 0, MAX_INDEXED_JOBS - 1)
    else:
        _memory_store[str(job_id)] = job
        _memory_index.insert(0, str(job_id))

    return job


def update_job(job_id: UUID, **updates) -> dict | None:
    job = get_job(job_id)
    if not job:
        return None

    job.update(updates)
    _save(job)
    return job


def get_job(job_id: UUID) -> dict | None:
    r = _get_redis()
    if r:
        data = r.get(f"{JOB_PREFIX}{job_id}")
        return _deserialize_job(data) if data else None
    return _memory_store.get(str(job_id))


def list_jobs(
    status_filter: JobStatus | None = None,
    offset: int = 0,
    limit: int = 20,
) -> tuple[list[dict], int]:
    """Jobs newest first, optionally filtered by status. Returns (page, total)."""
    r = _get_redis()

    if r:
        jobs = []
        for jid in r.lrange(JOB_INDEX_KEY, 0, -1):
            data = r.get(f"{JOB_PREFIX}{jid}")
            if data:
                jobs.append(_deserialize_job(data))
    else:
        jobs = [_memory_store[jid] for jid in _memory_index if jid in _memory_store]

    if status_filter:
        jobs = [j for j in jobs if j["status"] == status_filter]

    jobs.sort(key=lambda j: j["created_at"], reverse=True)
    return jobs[offset: offset + limit], len(jobs)
