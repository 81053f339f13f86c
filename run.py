"""
Sow Tracker API Server

Usage:
    python run.py

Set RUN_NOTIFICATION_WORKER=1 to process reminders in-process when no
external scheduler calls /api/cron/*.
"""
import logging
import os
import sys
from config import Config
from sowtracker import create_app
from sowtracker.services.notification_worker import init_notification_worker

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ],
    force=True
)

app = create_app()

if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))

    if os.environ.get('RUN_NOTIFICATION_WORKER', '').lower() in ('1', 'true', 'yes'):
        init_notification_worker(app, interval=Config.NOTIFICATION_WORKER_INTERVAL)

    print("=" * 60)
    print("Sow Tracker API Server")
    print("=" * 60)
    print(f"Starting on http://0.0.0.0:{port}")
    print(f"Database: {Config.MONGODB_DB}")
    print()
    print("API Endpoints:")
    print("  /api/auth/*             - Signup, login, profile")
    print("  /api/organizations/*    - Farms, members, herd records")
    print("  /api/notifications/*    - In-app and push notifications")
    print("  /api/cron/*             - Scheduled reminder processing")
    print("=" * 60)

    app.run(debug=os.environ.get('FLASK_DEBUG') == '1', host='0.0.0.0', port=port)
