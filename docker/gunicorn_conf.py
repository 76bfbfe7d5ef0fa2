# Gunicorn configuration for Vault Guardian
# Only one worker may poll for due backups

import os
import logging

logger = logging.getLogger('gunicorn.error')

def post_worker_init(worker):
    """
    Called after a worker is initialized.

    The first worker (worker.age == 0) owns the backup scheduler. Other
    workers serve the status and settings API only, so two processes never
    build the same archive.

    Args:
        worker: Gunicorn worker instance (uses 'age' attribute: 0, 1, 2, ...)
    """
    is_owner = worker.age == 0
    os.environ['SCHEDULER_WORKER'] = 'true' if is_owner else 'false'

    if is_owner:
        logger.info(f"Worker PID {worker.pid}: owns the backup scheduler")
    else:
        logger.info(f"Worker PID {worker.pid} (age={worker.age}): API only, backup scheduler disabled")
