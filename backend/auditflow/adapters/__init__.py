from auditflow.adapters.scheduler import ReminderScheduler, ScheduleKey
from auditflow.adapters.notifier import NotificationPublisher

__all__ = ["ReminderScheduler", "ScheduleKey", "NotificationPublisher"]
