from fastapi import Request

from api.absentees.absentees_scheduler import AbsenteeScheduler
from api.absentees.absentees_service import AbsenteeSweep
from api.notifications.notifications_service import NotificationDispatcher


# Long-lived collaborators are built once in the app lifespan and hung off
# app.state; routes reach them through these dependencies.

def get_dispatcher(request: Request) -> NotificationDispatcher:
    return request.app.state.dispatcher


def get_sweep(request: Request) -> AbsenteeSweep:
    return request.app.state.sweep


def get_scheduler(request: Request) -> AbsenteeScheduler:
    return request.app.state.scheduler
