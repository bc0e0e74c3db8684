"""
FastAPI Dependencies

Components are built once in the application lifespan and kept on
app.state; these accessors hand them to the routers and can be swapped
with app.dependency_overrides in tests.
"""

from fastapi import Request

from src.jobs.base import IJobQueue
from src.services.intake import IntakeController


def get_job_queue(request: Request) -> IJobQueue:
    return request.app.state.job_queue


def get_intake_controller(request: Request) -> IntakeController:
    return request.app.state.intake
