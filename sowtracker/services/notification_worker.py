"""Background worker for notification processing

Runs the cron processors in a separate thread for deployments that have
no external scheduler.
"""
import threading
import logging
from pymongo.errors import PyMongoError
from requests import RequestException

logger = logging.getLogger(__name__)


class NotificationWorker:
    """Background worker that checks events and delivers due notifications"""

    def __init__(self, app, interval=300):
        """
        Initialize the background worker.

        Args:
            app (Flask): Flask application instance
            interval (int): Processing interval in seconds (default: 300)
        """
        self.app = app
        self.interval = interval
        self.thread = None
        self.running = False
        self._stop_event = threading.Event()

    def start(self):
        """Start the background worker thread"""
        if self.running:
            logger.warning("Worker is already running")
            return

        self.running = True
        self._stop_event.clear()
        self.thread = threading.Thread(target=self._run, daemon=True)
        self.thread.start()
        logger.info(f"Notification worker started (interval: {self.interval}s)")

    def stop(self):
        """Stop the background worker thread"""
        self.running = False
        self._stop_event.set()
        if self.thread:
            self.thread.join(timeout=5)
            logger.info("Notification worker stopped")

    def run_once(self):
        """Run one check-and-deliver cycle, returning both result dicts"""
        from sowtracker.services.notification_cron import check_event_notifications, process_due_notifications

        with self.app.app_context():
            events = check_event_notifications()
            delivered = process_due_notifications()
        if delivered['processed'] or any(v for k, v in events.items() if k != 'errors'):
            logger.info(
                f"Notification cycle - Scheduled: {sum(v for k, v in events.items() if k != 'errors')}, "
                f"Processed: {delivered['processed']}, Push sent: {delivered['pushSent']}, "
                f"Push failed: {delivered['pushFailed']}"
            )
        return events, delivered

    def _run(self):
        """Main worker loop"""
        while self.running:
            try:
                self.run_once()
            except (PyMongoError, RequestException) as e:
                logger.error(f"Error in notification worker: {str(e)}")

            # Sleep before next cycle
            self._stop_event.wait(self.interval)


def init_notification_worker(app, interval=300):
    """
    Initialize and start the background worker.

    Args:
        app (Flask): Flask application instance
        interval (int): Processing interval in seconds

    Returns:
        NotificationWorker: Worker instance
    """
    worker = NotificationWorker(app, interval=interval)
    worker.start()
    return worker
