"""
Sticker Job Queue

Two interchangeable implementations behind IJobQueue:
1. Distributed - Celery on a Redis broker, shared across processes
2. Embedded - in-process thread, non-durable fallback
"""
