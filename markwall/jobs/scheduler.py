import os

from apscheduler.schedulers.background import BackgroundScheduler

from markwall.services.promotion_jobs import run_transient_image_sweep


scheduler = BackgroundScheduler()


def start_scheduler(app):
    if not app.config.get("SCHEDULER_ENABLED", True):
        return
    if os.environ.get("WERKZEUG_RUN_MAIN") == "false":
        return

    interval_minutes = app.config["PROMOTION_SWEEP_INTERVAL_MINUTES"]
    if not scheduler.get_jobs():
        scheduler.add_job(
            run_transient_image_sweep,
            "interval",
            minutes=interval_minutes,
            kwargs={"app": app},
            id="transient_image_sweep",
            replace_existing=True,
        )
        scheduler.start()
