# Overview: Shared JSON response helpers for the API blueprints.

from __future__ import annotations

from flask import jsonify

from ..services.errors import ShopLedgerError
from ..services.results import ServiceResult


# Failed results map to HTTP statuses by error code; anything unlisted is a 400
STATUS_BY_CODE = {
    "NOT_FOUND": 404,
    "CONFLICT": 409,
    "CONCURRENCY_CONFLICT": 409,
    "INTERNAL_ERROR": 500,
}


def status_for(code: str | None) -> int:
    return STATUS_BY_CODE.get(code, 400)


def result_response(result: ServiceResult, success_status: int = 200):
    if result.success:
        return jsonify(result.to_dict()), success_status
    return jsonify(result.to_dict()), status_for(result.error_code)


def ok(data, status: int = 200):
    return result_response(ServiceResult.ok(data), status)


def error_response(exc: ShopLedgerError):
    return result_response(ServiceResult.fail(exc))


def internal_error():
    return result_response(ServiceResult.internal_error())
