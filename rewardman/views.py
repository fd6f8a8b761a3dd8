"""
Rewardman JSON endpoints.

The identity provider in front of these views authenticates the user and
forwards the id in the USER_ID_HEADER header; rewardman trusts it.

Every redeem response, success or failure, carries a fresh read of the
user's balance and of the reward so clients display authoritative values
instead of computing them locally.
"""

from __future__ import annotations

import hmac
import json
import logging

from django.http import JsonResponse
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from rewardman.conf import rewardman_settings
from rewardman.exceptions import RewardmanError
from rewardman.models import LedgerEntry, Partner, RewardDefinition, Voucher
from rewardman.models.redemption_request import REQUEST_ID_MAX_LENGTH
from rewardman.services import RedemptionEngine

logger = logging.getLogger(__name__)


ERROR_STATUS = {
    "NOT_FOUND": 404,
    "INVALID_AMOUNT": 400,
    "INVALID_REASON": 400,
    "INSUFFICIENT_BALANCE": 422,
    "OUT_OF_STOCK": 422,
    "EXPIRED": 422,
    "CONFLICT": 409,
    "INVALID_TRANSITION": 409,
    "TRANSIENT": 503,
}


# =============================================================================
# Serialization
# =============================================================================


def _iso(value):
    return value.isoformat() if value else None


def serialize_partner(partner: Partner) -> dict:
    return {
        "code": partner.code,
        "name": partner.name,
        "category": partner.category,
        "address": partner.address,
        "latitude": float(partner.latitude) if partner.latitude is not None else None,
        "longitude": float(partner.longitude) if partner.longitude is not None else None,
    }


def serialize_reward(reward: RewardDefinition) -> dict:
    return {
        "code": reward.code,
        "name": reward.name,
        "description": reward.description,
        "image_url": reward.image_url,
        "points_cost": reward.points_cost,
        "stock": reward.stock,
        "discount": reward.discount_label,
        "partner": serialize_partner(reward.partner),
        "valid_from": _iso(reward.valid_from),
        "valid_until": _iso(reward.valid_until),
    }


def serialize_voucher(voucher: Voucher) -> dict:
    return {
        "id": str(voucher.id),
        "code": voucher.code,
        "qr_payload": voucher.qr_payload,
        "state": voucher.state,
        "reward_code": voucher.reward.code,
        "reward_name": voucher.reward.name,
        "points_spent": voucher.points_spent,
        "issued_at": _iso(voucher.issued_at),
        "expires_at": _iso(voucher.expires_at),
    }


def serialize_entry(entry: LedgerEntry) -> dict:
    return {
        "delta": entry.delta,
        "reason": entry.reason,
        "balance_after": entry.balance_after,
        "description": entry.description,
        "reference": entry.reference,
        "related_voucher_id": str(entry.related_voucher_id) if entry.related_voucher_id else None,
        "created_at": _iso(entry.created_at),
    }


def error_response(exc: RewardmanError, **extra) -> JsonResponse:
    return JsonResponse(
        {"error": exc.as_dict(), **extra},
        status=ERROR_STATUS.get(exc.code, 400),
    )


# =============================================================================
# Base view
# =============================================================================


@method_decorator(csrf_exempt, name="dispatch")
class RewardmanView(View):
    """Base JSON view: builds the engine and maps RewardmanError to HTTP."""

    engine_class = RedemptionEngine
    requires_user = True

    def dispatch(self, request, *args, **kwargs):
        self.engine = self.get_engine()
        self.user_id = request.headers.get(rewardman_settings.USER_ID_HEADER, "").strip()
        if self.requires_user and not self.user_id:
            return JsonResponse({"error": {"code": "UNAUTHENTICATED"}}, status=401)

        try:
            return super().dispatch(request, *args, **kwargs)
        except RewardmanError as exc:
            return error_response(exc)
        except Exception:
            logger.exception("Rewardman view %s failed", type(self).__name__)
            return JsonResponse({"error": {"code": "INTERNAL"}}, status=500)

    def get_engine(self) -> RedemptionEngine:
        return self.engine_class.default()

    def parse_json(self, request) -> dict:
        if not request.body:
            return {}
        try:
            data = json.loads(request.body)
        except (json.JSONDecodeError, ValueError):
            raise ValueError("Invalid JSON")
        if not isinstance(data, dict):
            raise ValueError("Expected a JSON object")
        return data


class TokenProtectedView(RewardmanView):
    """
    View guarded by a shared secret header instead of a user id.

    An empty configured token disables the endpoint.
    """

    requires_user = False
    token_header = ""
    token_setting = ""

    def dispatch(self, request, *args, **kwargs):
        expected = getattr(rewardman_settings, self.token_setting)
        if not expected:
            return JsonResponse({"error": {"code": "DISABLED"}}, status=403)

        provided = request.headers.get(self.token_header, "")
        if not hmac.compare_digest(provided.encode(), expected.encode()):
            logger.warning("Rewardman %s: invalid %s", type(self).__name__, self.token_header)
            return JsonResponse({"error": {"code": "UNAUTHORIZED"}}, status=401)

        return super().dispatch(request, *args, **kwargs)


# =============================================================================
# Points
# =============================================================================


class BalanceView(RewardmanView):
    def get(self, request):
        return JsonResponse(
            {"user_id": self.user_id, "balance": self.engine.balance(self.user_id)}
        )


class LedgerView(RewardmanView):
    def get(self, request):
        try:
            limit = int(request.GET.get("limit", rewardman_settings.HISTORY_LIMIT))
        except ValueError:
            return JsonResponse({"error": {"code": "INVALID_LIMIT"}}, status=400)

        entries = self.engine.ledger.history(self.user_id, limit=max(1, min(limit, 500)))
        return JsonResponse(
            {
                "user_id": self.user_id,
                "balance": self.engine.balance(self.user_id),
                "entries": [serialize_entry(e) for e in entries],
            }
        )


# =============================================================================
# Catalog
# =============================================================================


class RewardListView(RewardmanView):
    requires_user = False

    def get(self, request):
        rewards = self.engine.catalog.list_rewards(
            available_only=request.GET.get("available") in ("1", "true"),
            partner_code=request.GET.get("partner") or None,
        )
        return JsonResponse({"rewards": [serialize_reward(r) for r in rewards]})


class RewardDetailView(RewardmanView):
    requires_user = False

    def get(self, request, code):
        reward = self.engine.catalog.get_reward(code)
        eligibility = self.engine.catalog.evaluate(reward)
        return JsonResponse(
            {
                "reward": serialize_reward(reward),
                "eligible": eligibility.eligible,
                "reason": eligibility.reason,
            }
        )


class PartnerListView(RewardmanView):
    requires_user = False

    def get(self, request):
        partners = self.engine.catalog.list_partners()
        return JsonResponse({"partners": [serialize_partner(p) for p in partners]})


# =============================================================================
# Redemption
# =============================================================================


class RedeemView(RewardmanView):
    """
    POST rewards/<code>/redeem/

    Idempotency key from the JSON body ("request_id") or the
    Idempotency-Key header.
    """

    def post(self, request, code):
        try:
            data = self.parse_json(request)
        except ValueError as exc:
            return JsonResponse({"error": {"code": "INVALID_REQUEST", "message": str(exc)}}, status=400)

        request_id = str(data.get("request_id") or request.headers.get("Idempotency-Key", "")).strip()
        if not request_id:
            return JsonResponse(
                {"error": {"code": "INVALID_REQUEST", "message": "request_id is required"}},
                status=400,
            )
        if len(request_id) > REQUEST_ID_MAX_LENGTH:
            return JsonResponse(
                {
                    "error": {
                        "code": "INVALID_REQUEST",
                        "message": f"request_id must be at most {REQUEST_ID_MAX_LENGTH} characters",
                    }
                },
                status=400,
            )

        try:
            voucher = self.engine.redeem(self.user_id, code, request_id=request_id)
        except RewardmanError as exc:
            return error_response(exc, **self._reconcile(code))

        return JsonResponse(
            {"voucher": serialize_voucher(voucher), **self._reconcile(code)},
            status=201,
        )

    def _reconcile(self, code: str) -> dict:
        """Authoritative balance and reward state after the attempt."""
        try:
            reward = serialize_reward(self.engine.catalog.get_reward(code))
        except RewardmanError:
            reward = None
        return {"balance": self.engine.balance(self.user_id), "reward": reward}


# =============================================================================
# Vouchers
# =============================================================================


class VoucherListView(RewardmanView):
    def get(self, request):
        vouchers = self.engine.vouchers.list_for_user(
            self.user_id, state=request.GET.get("state") or None
        )
        return JsonResponse({"vouchers": [serialize_voucher(v) for v in vouchers]})


class VoucherDetailView(RewardmanView):
    def get(self, request, voucher_id):
        voucher = self.engine.vouchers.get(voucher_id)
        if voucher.user_id != self.user_id:
            raise RewardmanError("NOT_FOUND", voucher_id=str(voucher_id))
        return JsonResponse({"voucher": serialize_voucher(voucher)})


class VoucherPresentView(RewardmanView):
    def post(self, request, voucher_id):
        voucher = self.engine.vouchers.present(voucher_id, user_id=self.user_id)
        return JsonResponse({"voucher": serialize_voucher(voucher)})


class VoucherConsumeView(TokenProtectedView):
    """Partner-facing confirmation (presented -> consumed)."""

    token_header = "X-Partner-Token"
    token_setting = "PARTNER_TOKEN"

    def post(self, request, voucher_id):
        voucher = self.engine.vouchers.consume(voucher_id)
        return JsonResponse({"voucher": serialize_voucher(voucher)})


class VoucherCancelView(TokenProtectedView):
    """Administrative cancellation with refund and stock restore."""

    token_header = "X-Admin-Token"
    token_setting = "ADMIN_TOKEN"

    def post(self, request, voucher_id):
        voucher = self.engine.cancel_voucher(voucher_id)
        return JsonResponse(
            {
                "voucher": serialize_voucher(voucher),
                "balance": self.engine.balance(voucher.user_id),
            }
        )
