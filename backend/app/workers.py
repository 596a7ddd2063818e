from celery import Celery
from .config import settings

GENERATION_QUEUE = "generation"
MAINTENANCE_QUEUE = "maintenance"

def _route_task(name, args, kwargs, options, task=None):
    """
    Route tasks to dedicated queues.

    Generation is network-bound on the model call and is kept apart from the
    periodic maintenance sweep so a backlog of plans never delays the sweep.
    """
    if name == "app.tasks.generate_plan_task":
        return {"queue": GENERATION_QUEUE}

    if name == "app.tasks.sweep_stale_plans_task":
        return {"queue": MAINTENANCE_QUEUE}

    return None

celery_app = Celery(
    "bizplan",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["app.tasks"]
)

celery_app.conf.update(
    task_track_started=True,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    broker_transport_options={"visibility_timeout": 3600},
    task_routes=(_route_task,),
    beat_schedule={
        "sweep-stale-plans": {
            "task": "app.tasks.sweep_stale_plans_task",
            "schedule": float(settings.JOB_SWEEP_INTERVAL_SECONDS),
        },
    },
)
