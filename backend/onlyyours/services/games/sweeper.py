"""Periodic expiry sweep.

Expiry is enforced lazily on every session read/mutation; this sweep only
tidies up sessions nobody touches again so dashboards stay accurate.
"""

import time

from onlyyours import socketio
from .engine import expire_stale_sessions

_sweep_started = set()


def run_expiry_sweep(app) -> int:
    with app.app_context():
        expired = expire_stale_sessions()
        if expired:
            app.logger.info(f"[sweep] expired={expired}")
        return expired


def start_expiry_sweep(app) -> None:
    """Start the background sweep once per app when an interval is configured.

    - No-ops in TESTING mode
    - No-ops when EXPIRY_SWEEP_INTERVAL_SEC is 0
    """
    interval = int(app.config.get('EXPIRY_SWEEP_INTERVAL_SEC', 0))
    if app.config.get('TESTING') or interval <= 0 or id(app) in _sweep_started:
        return
    _sweep_started.add(id(app))

    def _worker():
        while True:
            time.sleep(interval)
            try:
                run_expiry_sweep(app)
            except Exception:
                app.logger.exception("[sweep-failed]")

    app.logger.info(f"[sweep-start] interval={interval}s")
    socketio.start_background_task(_worker)
