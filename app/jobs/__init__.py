# Jobs Package - Scheduled background tasks
from .queue_scheduler import QueueScheduler, start_scheduler, stop_scheduler

__all__ = ["QueueScheduler", "start_scheduler", "stop_scheduler"]
