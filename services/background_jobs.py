"""In-process background job execution and periodic tasks."""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
import logging
import threading
import uuid

logger = logging.getLogger(__name__)

_executor = ThreadPoolExecutor(max_workers=2)
_jobs = {}
_periodic = {}
_lock = threading.Lock()


def configure(max_workers: int) -> None:
    global _executor
    if max_workers < 1:
        max_workers = 1
    _executor = ThreadPoolExecutor(max_workers=max_workers)


def submit(label: str, fn, *args, **kwargs) -> str:
    job_id = uuid.uuid4().hex
    with _lock:
        _jobs[job_id] = {
            'id': job_id,
            'label': label,
            'status': 'queued',
            'submitted_at': datetime.utcnow(),
            'finished_at': None,
            'result': None,
            'error': None,
        }

    future = _executor.submit(fn, *args, **kwargs)

    def _done_callback(done_future):
        with _lock:
            job = _jobs.get(job_id)
            if not job:
                return
            try:
                job['result'] = done_future.result()
                job['status'] = 'completed'
            except Exception as exc:
                logger.error('Background job %s (%s) failed', label, job_id, exc_info=True)
                job['status'] = 'failed'
                job['error'] = str(exc)
            job['finished_at'] = datetime.utcnow()

    with _lock:
        if _jobs[job_id]['status'] == 'queued':
            _jobs[job_id]['status'] = 'running'
        _jobs[job_id]['future'] = future

    future.add_done_callback(_done_callback)
    return job_id


def get(job_id: str) -> dict | None:
    with _lock:
        job = _jobs.get(job_id)
        if not job:
            return None
        return {
            'id': job['id'],
            'label': job['label'],
            'status': job['status'],
            'submitted_at': job['submitted_at'],
            'finished_at': job['finished_at'],
            'result': job['result'],
            'error': job['error'],
        }


def schedule_every(label: str, interval_seconds: int, fn, *args, **kwargs) -> bool:
    """
    Run ``fn`` on a daemon thread every ``interval_seconds``.

    A label already scheduled is left alone; a non-positive interval disables
    the task. Exceptions from ``fn`` are logged and the schedule continues.
    """
    if interval_seconds <= 0:
        return False
    with _lock:
        if label in _periodic:
            return False
        stop = threading.Event()

        def _loop():
            while not stop.wait(interval_seconds):
                try:
                    fn(*args, **kwargs)
                except Exception:
                    logger.exception('Periodic task %s failed', label)

        thread = threading.Thread(target=_loop, name=f'periodic-{label}', daemon=True)
        _periodic[label] = (thread, stop)
    thread.start()
    logger.info('Scheduled %s every %d seconds', label, interval_seconds)
    return True


def cancel(label: str) -> bool:
    with _lock:
        entry = _periodic.pop(label, None)
    if entry is None:
        return False
    entry[1].set()
    return True


def scheduled() -> list[str]:
    with _lock:
        return sorted(_periodic)
