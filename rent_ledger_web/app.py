import logging
import os
from datetime import date
from typing import Callable, Optional

from flask import Flask, current_app, jsonify, request

from rent_ledger.data_models import Loan, NewRentPeriod, VpiReading
from rent_ledger.engine import compute_schedule
from rent_ledger.indexation import adjust
from rent_ledger.ledger import RentLedger, RentPeriodRepository
from rent_ledger.main import (
    DATABASE_URL_ENV,
    adjustment_to_dict,
    current_rent_to_dict,
    period_to_dict,
    schedule_to_dict,
)
from rent_ledger.store import create_store_from_env
from rent_ledger.timing import compute_delivery_timing, compute_earliest_effective_date
from rent_ledger.utils import coerce_date, coerce_month, to_decimal

logger = logging.getLogger(__name__)


def _ledger() -> RentLedger:
    return current_app.extensions["rent_ledger"]


def _payload() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValueError("Request body must be a JSON object")
    return data


def _required(data: dict, key: str):
    value = data.get(key)
    if value is None or value == "":
        raise ValueError(f"Missing field: {key}")
    return value


def _optional_decimal(data: dict, key: str):
    value = data.get(key)
    return to_decimal(value) if value not in (None, "") else None


def _optional_flag(data: dict, key: str) -> bool:
    value = data.get(key, False)
    if not isinstance(value, bool):
        raise ValueError(f"Field {key} must be true or false")
    return value


def _loan_from_payload(data: dict) -> Loan:
    return Loan(
        remaining_balance=to_decimal(_required(data, "remaining_balance")),
        interest_rate=to_decimal(_required(data, "interest_rate")),
        monthly_payment=to_decimal(_required(data, "monthly_payment")),
        start_date=coerce_date(data.get("start_date")),
        end_date=coerce_date(data.get("end_date")),
        fixed_interest_end_date=coerce_date(data.get("fixed_interest_end_date")),
        id=data.get("id"),
        lender_name=data.get("lender_name"),
    )


def create_app(
    repository: Optional[RentPeriodRepository] = None, today: Optional[Callable[[], date]] = None
) -> Flask:
    """Build the JSON API around a rent period repository.

    Without an explicit repository the SQLAlchemy store configured by
    ``RENT_LEDGER_DATABASE_URL`` is used.
    """
    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))
    app = Flask(__name__)
    if repository is None:
        repository = create_store_from_env(os.environ.get(DATABASE_URL_ENV))
    app.extensions["rent_ledger"] = RentLedger(repository, today=today)

    @app.errorhandler(LookupError)
    def not_found(exc):
        return jsonify({"error": str(exc)}), 404

    @app.errorhandler(ValueError)
    def bad_request(exc):
        logger.info("Rejected request to %s: %s", request.path, exc)
        return jsonify({"error": str(exc)}), 400

    @app.get("/contracts/<contract_id>/rent")
    def current_rent(contract_id):
        rent = _ledger().get_current_rent(contract_id, coerce_date(request.args.get("as_of")))
        if rent is None:
            raise LookupError(f"Rental contract {contract_id} not found or no rent in force")
        return jsonify(current_rent_to_dict(rent))

    @app.get("/contracts/<contract_id>/periods")
    def rent_periods(contract_id):
        return jsonify([period_to_dict(p) for p in _ledger().get_rent_periods(contract_id)])

    @app.get("/contracts/<contract_id>/periods/planned")
    def planned_periods(contract_id):
        return jsonify([period_to_dict(p) for p in _ledger().get_planned_periods(contract_id)])

    @app.post("/contracts/<contract_id>/periods")
    def create_period(contract_id):
        data = _payload()
        period = _ledger().create_rent_period(
            NewRentPeriod(
                contract_id=contract_id,
                effective_date=coerce_date(_required(data, "effective_date")),
                cold_rent=to_decimal(_required(data, "cold_rent")),
                utilities=to_decimal(data.get("utilities") or 0),
                reason=data.get("reason", "manual"),
                status=data.get("status", "active"),
                notes=data.get("notes") or "",
                vpi_old_month=coerce_month(data.get("vpi_old_month")),
                vpi_old_value=_optional_decimal(data, "vpi_old_value"),
                vpi_new_month=coerce_month(data.get("vpi_new_month")),
                vpi_new_value=_optional_decimal(data, "vpi_new_value"),
                user_id=data.get("user_id"),
                sync_to_contract=_optional_flag(data, "sync_to_contract"),
            )
        )
        return jsonify(period_to_dict(period)), 201

    @app.delete("/periods/<period_id>")
    def delete_planned(period_id):
        deleted = _ledger().delete_planned_period(period_id)
        return jsonify({"deleted": deleted}), (200 if deleted else 409)

    @app.get("/contracts/<contract_id>/vpi")
    def latest_vpi(contract_id):
        reading = _ledger().get_latest_vpi_values(contract_id)
        if reading is None:
            return jsonify({"vpi_old_month": None, "vpi_old_value": None})
        return jsonify(
            {
                "vpi_old_month": reading.month.strftime("%Y-%m") if reading.month else None,
                "vpi_old_value": str(reading.value),
            }
        )

    @app.post("/contracts/<contract_id>/index-increase")
    def index_increase(contract_id):
        data = _payload()
        increase = _ledger().record_index_increase(
            contract_id,
            vpi_old=VpiReading(
                month=coerce_month(_required(data, "vpi_old_month")),
                value=to_decimal(_required(data, "vpi_old_value")),
            ),
            vpi_new=VpiReading(
                month=coerce_month(_required(data, "vpi_new_month")),
                value=to_decimal(_required(data, "vpi_new_value")),
            ),
            effective_date=coerce_date(data.get("effective_date")),
            possible_since=coerce_date(data.get("possible_since")),
            user_id=data.get("user_id"),
        )
        return (
            jsonify(
                {
                    "period": period_to_dict(increase.period),
                    "adjustment": adjustment_to_dict(increase.adjustment),
                    "synced_to_contract": increase.synced_to_contract,
                }
            ),
            201,
        )

    @app.post("/index-rent/compute")
    def index_rent_compute():
        data = _payload()
        adjustment = adjust(
            to_decimal(_required(data, "current_rent")),
            to_decimal(_required(data, "vpi_old")),
            to_decimal(_required(data, "vpi_new")),
            coerce_month(data.get("old_month")),
            coerce_month(data.get("new_month")),
        )
        return jsonify(adjustment_to_dict(adjustment))

    @app.get("/index-rent/effective-date")
    def effective_date():
        earliest = compute_earliest_effective_date(
            coerce_date(request.args.get("possible_since")),
            coerce_date(request.args.get("last_change_date")),
            today=coerce_date(request.args.get("today")),
        )
        return jsonify({"earliest_effective_date": earliest.isoformat()})

    @app.get("/index-rent/timing")
    def delivery_timing():
        timing = compute_delivery_timing(
            request.args.get("possible_since"), today=coerce_date(request.args.get("today"))
        )
        if timing is None:
            return jsonify({"timing": None})
        return jsonify(
            {
                "timing": {
                    "timing_status": timing.timing_status,
                    "next_earliest_effective_from": timing.next_earliest_effective_from.isoformat(),
                    "service_window_start": timing.service_window_start.isoformat(),
                    "service_window_end": timing.service_window_end.isoformat(),
                    "next_effective_if_send_today": timing.next_effective_if_send_today.isoformat(),
                }
            }
        )

    @app.post("/loans/schedule")
    def loan_schedule():
        data = _payload()
        result = compute_schedule(_loan_from_payload(data), today=coerce_date(data.get("today")))
        payload = schedule_to_dict(result)
        payload["chart"] = schedule_to_dict(result, chart=True)["schedule"]
        return jsonify(payload)

    return app


if __name__ == "__main__":
    print("Starting rent ledger API...")
    create_app().run(host="0.0.0.0", port=8710, debug=True)
