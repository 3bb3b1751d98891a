import logging
import os
from datetime import date
from uuid import uuid4

from flask import Blueprint, Flask, abort, current_app, jsonify, request, session

from mortgage_calc.aggregator import compare_schedules, portfolio_snapshot, summarize_schedule
from mortgage_calc.cache import ScheduleCache
from mortgage_calc.serialization import (
    Portfolio,
    comparison_to_dict,
    extra_payment_from_dict,
    portfolio_from_dict,
    rate_change_from_dict,
    result_to_dict,
    snapshot_to_dict,
    with_simulation,
)
from mortgage_calc.utils import parse_date
from mortgage_calc_web.portfolio_store import PortfolioStore, create_store

logger = logging.getLogger(__name__)

api = Blueprint("api", __name__, url_prefix="/api")


def _ensure_user_token() -> str:
    token = session.get("user_token")
    if not token:
        token = uuid4().hex
        session["user_token"] = token
        session.modified = True
    return token


def _store() -> PortfolioStore:
    return current_app.extensions["portfolio_store"]


def _cache() -> ScheduleCache:
    return current_app.extensions["schedule_cache"]


def _request_json() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValueError("Request body must be a JSON object")
    return data


def _run_schedule(portfolio: Portfolio):
    return _cache().get(
        portfolio.plans,
        portfolio.extra_payments,
        portfolio.rate_changes,
        portfolio.grace_periods,
        portfolio.currency,
        portfolio.cpi,
    )


def _schedule_response(portfolio: Portfolio):
    result = _run_schedule(portfolio)
    if result.errors:
        logger.info("Schedule computed with %d excluded plan issue(s)", len(result.errors))
    return jsonify(result_to_dict(result, summarize_schedule(result.rows)))


def _load_saved(portfolio_id: str) -> Portfolio:
    saved = _store().get_portfolio(_ensure_user_token(), portfolio_id)
    if saved is None:
        abort(404)
    return portfolio_from_dict(saved["portfolio"])


@api.errorhandler(ValueError)
def handle_value_error(exc: ValueError):
    return jsonify({"error": str(exc)}), 400


@api.post("/schedule")
def schedule():
    return _schedule_response(portfolio_from_dict(_request_json()))


@api.post("/compare")
def compare():
    """What-if comparison: the portfolio as is versus with simulated changes."""
    data = _request_json()
    current = portfolio_from_dict(data.get("portfolio"))
    scenario = with_simulation(
        current,
        [extra_payment_from_dict(e) for e in data.get("extra_payments") or []],
        [rate_change_from_dict(c) for c in data.get("rate_changes") or []],
    )
    if scenario == current:
        raise ValueError("Nothing to simulate; add extra_payments or rate_changes")
    comparison = compare_schedules(_run_schedule(current).rows, _run_schedule(scenario).rows)
    return jsonify(comparison_to_dict(comparison))


@api.get("/portfolios")
def list_portfolios():
    return jsonify(_store().list_portfolios(_ensure_user_token()))


@api.post("/portfolios")
def save_portfolio():
    data = _request_json()
    raw = data.get("portfolio")
    # validate before storing
    portfolio_from_dict(raw)
    name = str(data.get("name") or "").strip() or "Portfolio"
    portfolio_id = _store().save_portfolio(_ensure_user_token(), name, raw)
    return jsonify({"id": portfolio_id, "name": name}), 201


@api.delete("/portfolios")
def delete_portfolios():
    removed = _store().delete_all(_ensure_user_token())
    logger.info("Removed %d saved portfolio(s)", removed)
    return "", 204


@api.get("/portfolios/<portfolio_id>")
def get_portfolio(portfolio_id: str):
    saved = _store().get_portfolio(_ensure_user_token(), portfolio_id)
    if saved is None:
        abort(404)
    return jsonify(saved)


@api.put("/portfolios/<portfolio_id>")
def update_portfolio(portfolio_id: str):
    data = _request_json()
    raw = data.get("portfolio")
    if raw is not None:
        portfolio_from_dict(raw)
    name = str(data.get("name") or "").strip() or None
    if not _store().update_portfolio(_ensure_user_token(), portfolio_id, name, raw):
        abort(404)
    return jsonify(_store().get_portfolio(_ensure_user_token(), portfolio_id))


@api.delete("/portfolios/<portfolio_id>")
def delete_portfolio(portfolio_id: str):
    if not _store().delete_portfolio(_ensure_user_token(), portfolio_id):
        abort(404)
    return "", 204


@api.get("/portfolios/<portfolio_id>/schedule")
def saved_schedule(portfolio_id: str):
    return _schedule_response(_load_saved(portfolio_id))


@api.get("/portfolios/<portfolio_id>/snapshot")
def saved_snapshot(portfolio_id: str):
    raw = request.args.get("as_of")
    as_of = parse_date(raw) if raw else date.today()
    result = _run_schedule(_load_saved(portfolio_id))
    return jsonify(snapshot_to_dict(portfolio_snapshot(result.rows, as_of)))


def create_app(config=None) -> Flask:
    """Build the web app.

    Settings come from the environment (``FLASK_SECRET_KEY``,
    ``PORTFOLIO_DATABASE_URL``, ``PORTFOLIO_MAX_PER_USER``, ``LOG_LEVEL``) and
    may be overridden with ``config``.
    """
    app = Flask(__name__)
    app.config.update(
        SECRET_KEY=os.environ.get("FLASK_SECRET_KEY", "dev-secret-key"),
        PORTFOLIO_DATABASE_URL=os.environ.get("PORTFOLIO_DATABASE_URL"),
        PORTFOLIO_MAX_PER_USER=int(os.environ.get("PORTFOLIO_MAX_PER_USER", "10")),
        LOG_LEVEL=os.environ.get("LOG_LEVEL", "INFO"),
    )
    if config:
        app.config.update(config)

    logging.basicConfig(level=str(app.config["LOG_LEVEL"]).upper())
    app.extensions["portfolio_store"] = create_store(
        app.config["PORTFOLIO_DATABASE_URL"],
        max_per_user=app.config["PORTFOLIO_MAX_PER_USER"],
    )
    app.extensions["schedule_cache"] = ScheduleCache()
    app.register_blueprint(api)
    return app


if __name__ == "__main__":
    print("Starting mortgage schedule API...")
    create_app().run(host="0.0.0.0", port=8710, debug=True)
