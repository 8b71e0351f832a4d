import asyncio
import logging

logger = logging.getLogger(__name__)


class NotificationService:
    """Simulated email delivery; deliberately slow, never awaited by requests."""

    def __init__(self, delay_seconds: float = 2.0):
        self.delay_seconds = delay_seconds

    async def send_email(self, to: str, subject: str, body: str) -> None:
        logger.info(f"Sending email to {to}: {subject}")
        await asyncio.sleep(self.delay_seconds)
        logger.info(f"Email sent to {to}")

    async def notify_assignment(self, recipient: str, task_title: str) -> None:
        await self.send_email(
            recipient,
            "You have been assigned a new task",
            f"You have been assigned to task: {task_title}",
        )
