from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Optional

from flask import Flask, abort, jsonify, redirect, render_template_string, request, session, url_for
from werkzeug.security import check_password_hash

from prayerwidgets.widgets import WidgetController


LOGIN_TEMPLATE = """
<!doctype html>
<title>Prayer Widgets Login</title>
<h1>Login</h1>
<form method="post">
  <label>Username <input name="username" /></label><br />
  <label>Password <input name="password" type="password" /></label><br />
  <button type="submit">Login</button>
</form>
{% if error %}<p style="color:red">{{ error }}</p>{% endif %}
"""


DASHBOARD_TEMPLATE = """
<!doctype html>
<title>Prayer Widgets</title>
<h1>Prayer Widgets</h1>
<p>{{ status.snapshot.countdownText }}</p>
<table>
{% for name in ["fajr", "dhuhr", "asr", "maghrib", "isha"] %}
  <tr><td>{{ name|capitalize }}</td><td>{{ status.snapshot[name] }}</td></tr>
{% endfor %}
</table>

<h2>Surfaces</h2>
<ul>
{% for key, ids in status.instances.items() %}
  <li>{{ key }}: {{ ids|length }} instance(s)</li>
{% endfor %}
</ul>

<h2>Pending timers</h2>
<ul>
{% for job_id in status.pending_timers %}
  <li>{{ job_id }}</li>
{% else %}
  <li>No timers armed.</li>
{% endfor %}
</ul>
<p>Countdown chain: {{ "running" if status.countdown_running else "stopped" }}</p>
<form method="post" action="{{ url_for('configuration_changed') }}">
  <button type="submit">Refresh now</button>
</form>
"""


def _login_required(handler):
    def wrapper(*args, **kwargs):
        if "user" not in session:
            return redirect(url_for("login"))
        return handler(*args, **kwargs)

    wrapper.__name__ = handler.__name__
    return wrapper


@dataclass
class ControlPanelServer:
    username: str
    password_hash: str
    controller: WidgetController
    secret_key: str
    host: str = "127.0.0.1"
    port: int = 8080

    def __post_init__(self) -> None:
        self._logger = logging.getLogger(self.__class__.__name__)
        self._app = self._create_app()

    @property
    def app(self) -> Flask:
        return self._app

    def _create_app(self) -> Flask:
        app = Flask(__name__)
        app.secret_key = self.secret_key

        @app.route("/login", methods=["GET", "POST"])
        def login():
            error: Optional[str] = None
            if request.method == "POST":
                username = request.form.get("username", "")
                password = request.form.get("password", "")
                if username == self.username and check_password_hash(
                    self.password_hash, password
                ):
                    session["user"] = username
                    self._logger.info("Control panel login success for %s", username)
                    return redirect(url_for("dashboard"))
                self._logger.warning("Control panel login failed for %s", username)
                error = "Invalid credentials"
            return render_template_string(LOGIN_TEMPLATE, error=error)

        @app.route("/")
        @_login_required
        def dashboard():
            return render_template_string(
                DASHBOARD_TEMPLATE, status=self.controller.status()
            )

        @app.route("/status")
        @_login_required
        def status():
            return jsonify(self.controller.status())

        @app.post("/surfaces/<key>/instances/<int:instance_id>")
        @_login_required
        def add_instance(key: str, instance_id: int):
            try:
                self.controller.on_instance_added(key, instance_id)
            except KeyError:
                abort(404)
            return jsonify({"surface": key, "instance": instance_id, "live": True})

        @app.post("/surfaces/<key>/instances/<int:instance_id>/remove")
        @_login_required
        def remove_instance(key: str, instance_id: int):
            try:
                self.controller.on_instance_removed(key, instance_id)
            except KeyError:
                abort(404)
            return jsonify({"surface": key, "instance": instance_id, "live": False})

        @app.post("/configuration-changed")
        @_login_required
        def configuration_changed():
            self.controller.on_configuration_changed()
            return redirect(url_for("dashboard"))

        return app
