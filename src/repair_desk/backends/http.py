"""Remote backend: the same operations over the repair shop's REST API."""

import logging
from typing import Optional

import httpx

from repair_desk.backends.base import RepairBackend
from repair_desk.config import Config
from repair_desk.core.actors import Actor
from repair_desk.database.models import (
    Client,
    CostEstimate,
    EstimateActionLine,
    EstimatePartLine,
    Invoice,
    PartOrder,
    RepairOrder,
    SparePart,
    WorkLog,
)
from repair_desk.database.repository import _row_to
from repair_desk.errors import (
    ERRORS_BY_CODE,
    InsufficientStock,
    InvalidTransition,
    NotFound,
    PermissionDenied,
    RepairDeskError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Fallback when the response body carries no recognised error code
_ERRORS_BY_STATUS = {
    400: ValidationError,
    403: PermissionDenied,
    404: NotFound,
    409: InvalidTransition,
}


def _estimate_from_json(data: dict) -> CostEstimate:
    estimate = _row_to(CostEstimate, {
        k: v for k, v in data.items() if k not in ("parts", "actions")
    })
    estimate.parts = [
        _row_to(EstimatePartLine, _snake(p)) for p in data.get("parts", [])
    ]
    estimate.actions = [
        _row_to(EstimateActionLine, _snake(a)) for a in data.get("actions", [])
    ]
    return estimate


def error_from_response(response: httpx.Response) -> RepairDeskError:
    """Rebuild the domain error a failed call reported."""
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    body = _snake(body)
    code = body.get("error", "")
    message = body.get("message") or response.text or response.reason_phrase

    if code == InsufficientStock.code:
        return InsufficientStock(
            body.get("part_id"), body.get("requested"), body.get("on_hand")
        )
    cls = ERRORS_BY_CODE.get(code) or _ERRORS_BY_STATUS.get(
        response.status_code, RepairDeskError
    )
    return cls(message)


class HttpBackend(RepairBackend):
    """Talks to the shop server with httpx.

    The acting identity travels in ``X-Actor-Id`` / ``X-Actor-Role``
    headers; the server repeats every permission check. A timed-out call
    may still have been applied, so callers re-read before retrying.
    """

    def __init__(self, base_url: Optional[str] = None,
                 timeout: Optional[float] = None,
                 transport: Optional[httpx.BaseTransport] = None):
        self.base_url = (base_url or Config.API_BASE_URL).rstrip("/")
        self.client = httpx.Client(
            base_url=self.base_url,
            timeout=httpx.Timeout(
                float(timeout or Config.API_TIMEOUT), connect=5.0
            ),
            transport=transport,
            headers={"Accept": "application/json"},
        )

    def close(self):
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _request(self, method: str, path: str, actor: Actor,
                 json=None, params=None, raw: bool = False):
        headers = {
            "X-Actor-Id": str(actor.id),
            "X-Actor-Role": actor.role,
        }
        try:
            response = self.client.request(
                method, path, json=json, params=params, headers=headers
            )
        except httpx.RequestError as e:
            logger.error(f"Request error calling {method} {path}: {e}")
            raise
        if response.is_error:
            logger.warning(
                f"{method} {path} failed: HTTP {response.status_code}"
            )
            raise error_from_response(response)
        if raw:
            return response.content
        if not response.content:
            return None
        return response.json()

    # ── Intake ──────────────────────────────────────────────────

    def create_client(self, actor, first_name, last_name, phone, email=""):
        data = self._request("POST", "/api/office/createClient", actor, json={
            "firstName": first_name, "lastName": last_name,
            "phone": phone, "email": email,
        })
        return _row_to(Client, _snake(data))

    def create_order(self, actor, client_id, device_description,
                     problem_description):
        data = self._request("POST", "/api/order/createOrder", actor, json={
            "clientId": client_id,
            "deviceDescription": device_description,
            "problemDescription": problem_description,
        })
        return _row_to(RepairOrder, _snake(data))

    # ── Lifecycle ───────────────────────────────────────────────

    def assign_technician(self, actor, order_id, technician_id):
        data = self._request(
            "PUT", f"/api/manager/{order_id}/assign/{technician_id}", actor
        )
        return self._order_or_refetch(actor, order_id, data)

    def start_diagnosis(self, actor, order_id):
        data = self._request(
            "PATCH", f"/api/tech/{order_id}/startDiagnosing", actor
        )
        return self._order_or_refetch(actor, order_id, data)

    def mark_unrepairable(self, actor, order_id, reason=""):
        data = self._request(
            "PUT", f"/api/tech/{order_id}/unrepairable", actor,
            json={"reason": reason},
        )
        return self._order_or_refetch(actor, order_id, data)

    def resume_repair(self, actor, order_id):
        data = self._request("PUT", f"/api/tech/{order_id}/resume", actor)
        return self._order_or_refetch(actor, order_id, data)

    def update_diagnosis_notes(self, actor, order_id, notes):
        data = self._request(
            "PUT", f"/api/tech/{order_id}/notes", actor, json={"notes": notes}
        )
        return self._order_or_refetch(actor, order_id, data)

    def update_manager_notes(self, actor, order_id, notes):
        data = self._request(
            "PUT", f"/api/manager/{order_id}/notes", actor,
            json={"notes": notes},
        )
        return self._order_or_refetch(actor, order_id, data)

    def consume_part(self, actor, order_id, part_id, quantity):
        data = self._request(
            "POST", f"/api/tech/{order_id}/consume", actor, json={
                "partId": part_id, "quantity": quantity,
            },
        )
        return _estimate_from_json(_snake(data))

    def start_work(self, actor, order_id):
        data = self._request("POST", f"/api/tech/{order_id}/work/start", actor)
        return _row_to(WorkLog, _snake(data))

    def stop_work(self, actor, order_id):
        data = self._request("POST", f"/api/tech/{order_id}/work/stop", actor)
        return _row_to(WorkLog, _snake(data))

    def finish_repair(self, actor, order_id):
        data = self._request("PUT", f"/api/tech/finish/{order_id}", actor)
        data = _snake(data or {})
        warnings = data.pop("warnings", [])
        order = self._order_or_refetch(actor, order_id, data.get("order"))
        return order, list(warnings)

    def _order_or_refetch(self, actor, order_id, data) -> RepairOrder:
        if data:
            return _row_to(RepairOrder, _snake(data))
        return self.get_order(actor, order_id)

    # ── Estimates ───────────────────────────────────────────────

    def create_estimate(self, actor, order_id, parts=(), action_ids=(),
                        message=""):
        data = self._request(
            "POST", f"/api/tech/{order_id}/generateCostEst", actor, json={
                "parts": [
                    {"partId": pid, "quantity": qty} for pid, qty in parts
                ],
                "actionIds": list(action_ids),
                "message": message,
            },
        )
        return _estimate_from_json(_snake(data))

    def decide_estimate(self, actor, order_id, approved):
        verb = "accept" if approved else "reject"
        if actor.is_client:
            path = f"/api/client/{verb}/{order_id}"
        else:
            path = f"/api/office/{verb}EstimateForClient/{order_id}"
        data = self._request("PUT", path, actor)
        if data:
            return _estimate_from_json(_snake(data))
        return self.get_estimate(actor, order_id)

    def get_estimate(self, actor, order_id):
        data = self._request(
            "GET", f"/api/order/{order_id}/costEstimate", actor
        )
        return _estimate_from_json(_snake(data)) if data else None

    # ── Inventory & procurement ─────────────────────────────────

    def withdraw(self, actor, part_id, quantity):
        data = self._request("POST", "/api/warehouse/withdraw", actor, json={
            "partId": part_id, "quantity": quantity,
        })
        return _row_to(SparePart, _snake(data))

    def receive(self, actor, part_id, quantity):
        data = self._request("POST", "/api/warehouse/receive", actor, json={
            "partId": part_id, "quantity": quantity,
        })
        return _row_to(SparePart, _snake(data))

    def shortage(self, actor, order_id):
        data = self._request(
            "GET", f"/api/warehouse/shortage/{order_id}", actor
        )
        return [_snake(row) for row in data or []]

    def all_shortages(self, actor):
        data = self._request("GET", "/api/warehouse/shortage", actor)
        return [_snake(row) for row in data or []]

    def request_parts(self, actor, order_id, part_id, quantity):
        data = self._request(
            "POST", "/api/warehouse/order/createOrder", actor, json={
                "partId": part_id, "quantity": quantity,
                "repairOrderId": order_id,
            },
        )
        return _row_to(PartOrder, _snake(data))

    def create_part_order(self, actor, part_id, quantity):
        data = self._request(
            "POST", "/api/warehouse/order/createOrder", actor, json={
                "partId": part_id, "quantity": quantity,
            },
        )
        return _row_to(PartOrder, _snake(data))

    def mark_in_delivery(self, actor, po_id, estimated_delivery=None):
        body = {"estimatedDelivery": estimated_delivery} \
            if estimated_delivery else None
        data = self._request(
            "PUT", f"/api/warehouse/order/{po_id}/inDelivery", actor,
            json=body,
        )
        return _row_to(PartOrder, _snake(data))

    def cancel_part_order(self, actor, po_id):
        data = self._request(
            "PUT", f"/api/warehouse/order/{po_id}/cancel", actor
        )
        return _row_to(PartOrder, _snake(data))

    def receive_part_order(self, actor, po_id):
        data = self._request(
            "POST", f"/api/warehouse/order/{po_id}/receive", actor
        )
        if data:
            return _row_to(PartOrder, _snake(data))
        return next(
            po for po in self.list_part_orders(actor) if po.id == po_id
        )

    def accept_delivery(self, actor, items):
        rows = self._request(
            "POST", "/api/warehouse/delivery", actor, json={
                "items": [
                    {"partId": pid, "quantity": qty} for pid, qty in items
                ],
            },
        )
        return [_row_to(SparePart, _snake(r)) for r in rows or []]

    # ── Settlement ──────────────────────────────────────────────

    def settle(self, actor, order_id, payment_method):
        data = self._request(
            "POST", "/api/office/order/createSaleDocument", actor, json={
                "orderId": order_id, "paymentMethod": payment_method,
            },
        )
        return _row_to(Invoice, _snake(data))

    def get_invoice(self, actor, order_id):
        data = self._request(
            "GET", f"/api/order/{order_id}/saleDocument", actor
        )
        return _row_to(Invoice, _snake(data)) if data else None

    def render_invoice(self, actor, order_id):
        return self._request(
            "GET", f"/api/order/{order_id}/saleDocument/pdf", actor,
            raw=True,
        )

    # ── Reads ───────────────────────────────────────────────────

    def get_order(self, actor, order_id):
        path = (f"/api/client/getOrder/{order_id}" if actor.is_client
                else f"/api/order/{order_id}")
        return _row_to(RepairOrder, _snake(self._request("GET", path, actor)))

    def list_orders(self, actor):
        rows = self._request("GET", "/api/order/getAll", actor)
        return [_row_to(RepairOrder, _snake(r)) for r in rows or []]

    def list_orders_by_client(self, actor, client_id):
        rows = self._request(
            "GET", "/api/order/getAll", actor, params={"clientId": client_id}
        )
        return [_row_to(RepairOrder, _snake(r)) for r in rows or []]

    def list_orders_by_technician(self, actor, technician_id):
        rows = self._request(
            "GET", "/api/order/getAll", actor,
            params={"technicianId": technician_id},
        )
        return [_row_to(RepairOrder, _snake(r)) for r in rows or []]

    def list_parts(self, actor):
        rows = self._request("GET", "/api/warehouse/getAllParts", actor)
        return [_row_to(SparePart, _snake(r)) for r in rows or []]

    def list_part_orders(self, actor):
        rows = self._request("GET", "/api/warehouse/order/getAllOrders", actor)
        return [_row_to(PartOrder, _snake(r)) for r in rows or []]


def _snake(data):
    """Convert camelCase keys of a JSON object to snake_case (one level)."""
    if not isinstance(data, dict):
        return data
    out = {}
    for key, value in data.items():
        chars = []
        for ch in key:
            if ch.isupper():
                chars.append("_")
                chars.append(ch.lower())
            else:
                chars.append(ch)
        out["".join(chars)] = value
    return out
