"""
Royalty payments and revenue claims.

An IP asset claims its own accrued revenue: the claimer passed to the
ledger is always the asset id, never the caller's wallet. Payments only
check that the amount is positive; bounding it by an outstanding balance
is up to the caller.
"""

import structlog
from decimal import Decimal
from typing import Optional, Sequence, Union

from ip_provenance import config
from ip_provenance.core.errors import PersistenceWarning, ValidationError
from ip_provenance.core.ledger import LedgerClient, require_wallet
from ip_provenance.core.utils import explorer_tx_url, from_wei, is_blank, parse_decimal, to_wei
from ip_provenance.models.asset import SigningContext
from ip_provenance.models.licensing import ClaimableRevenue, ClaimResult, RoyaltyDirection, RoyaltyFlow

logger = structlog.get_logger()

__all__ = ["RoyaltyService", "validate_payment_amount"]

Amount = Union[str, int, float, Decimal]


def validate_payment_amount(amount: Amount) -> Decimal:
    value = parse_decimal(amount)
    if value is None:
        raise ValidationError(f"Amount must be a number, got {amount!r}", field="amount")
    if value <= 0:
        raise ValidationError("Amount must be greater than 0", field="amount")
    return value


class RoyaltyService:
    """Single-shot royalty calls; nothing here retries."""

    def __init__(self, ledger: LedgerClient, index=None, currency: Optional[str] = None):
        self.ledger = ledger
        self.index = index
        self.currency = currency or config.WIP_TOKEN_ADDRESS

    def get_claimable(self, ip_id: str, signing: Optional[SigningContext]) -> ClaimableRevenue:
        self._require_id(ip_id, "ip_id")
        signing = require_wallet(signing)

        amount_wei = self.ledger.claimable_revenue(signing, ip_id, claimer=ip_id, token=self.currency)
        logger.info("Claimable revenue fetched", ip_id=ip_id, amount_wei=amount_wei)
        return ClaimableRevenue(
            ip_id=ip_id,
            claimer=ip_id,
            currency=self.currency,
            amount_wei=amount_wei,
            amount=from_wei(amount_wei),
        )

    def claim_all(self, ip_id: str, signing: Optional[SigningContext]) -> ClaimResult:
        """Claim everything the asset has accrued in the royalty currency."""
        self._require_id(ip_id, "ip_id")
        signing = require_wallet(signing)

        logger.info("Claiming all revenue", ip_id=ip_id)
        claimed = self.ledger.claim_all_revenue(
            signing,
            ancestor_ip_id=ip_id,
            claimer=ip_id,
            currency_tokens=[self.currency],
        )
        return self._claim_result(ip_id, claimed)

    def claim_from_derivatives(self, ancestor_ip_id: str, child_ip_ids: Sequence[str],
                               signing: Optional[SigningContext]) -> ClaimResult:
        """Claim revenue owed to an ancestor through its derivatives' royalty vaults."""
        self._require_id(ancestor_ip_id, "ancestor_ip_id")
        children = [c for c in child_ip_ids if not is_blank(c)]
        if not children:
            raise ValidationError("At least one child IP asset id is required", field="child_ip_ids")
        signing = require_wallet(signing)

        logger.info("Claiming revenue from derivatives", ip_id=ancestor_ip_id, children=len(children))
        claimed = self.ledger.claim_all_revenue(
            signing,
            ancestor_ip_id=ancestor_ip_id,
            claimer=ancestor_ip_id,
            currency_tokens=[self.currency],
            child_ip_ids=children,
            royalty_policies=[config.ROYALTY_POLICY_LAP_ADDRESS] * len(children),
        )
        return self._claim_result(ancestor_ip_id, claimed, children)

    def pay(self, payer_ip_id: str, receiver_ip_id: str, amount: Amount,
            signing: Optional[SigningContext]) -> RoyaltyFlow:
        """Pay royalties from a derivative asset to its parent."""
        self._require_id(payer_ip_id, "payer_ip_id")
        return self._pay(payer_ip_id, receiver_ip_id, amount, signing, RoyaltyDirection.DERIVATIVE_TO_PARENT)

    def tip(self, receiver_ip_id: str, amount: Amount, signing: Optional[SigningContext]) -> RoyaltyFlow:
        """Direct support payment to any asset, paid by no asset in particular."""
        return self._pay(config.ZERO_ADDRESS, receiver_ip_id, amount, signing, RoyaltyDirection.DIRECT_SUPPORT)

    def _pay(self, payer_ip_id: str, receiver_ip_id: str, amount: Amount,
             signing: Optional[SigningContext], direction: RoyaltyDirection) -> RoyaltyFlow:
        value = validate_payment_amount(amount)
        self._require_id(receiver_ip_id, "receiver_ip_id")
        amount_wei = to_wei(value)
        if amount_wei <= 0:
            raise ValidationError("Amount is smaller than the currency's base unit", field="amount")
        signing = require_wallet(signing)

        logger.info("Paying royalty",
                    payer_ip_id=payer_ip_id, receiver_ip_id=receiver_ip_id,
                    amount=str(value), direction=direction.value)

        paid = self.ledger.pay_royalty_on_behalf(
            signing,
            receiver_ip_id=receiver_ip_id,
            payer_ip_id=payer_ip_id,
            token=self.currency,
            amount=amount_wei,
        )

        flow = RoyaltyFlow(
            payer_ip_id=payer_ip_id,
            receiver_ip_id=receiver_ip_id,
            amount=value,
            amount_wei=amount_wei,
            currency=self.currency,
            tx_hash=paid["tx_hash"],
            direction=direction,
            explorer_tx_url=explorer_tx_url(paid["tx_hash"]),
        )
        logger.info("Royalty paid", receiver_ip_id=receiver_ip_id, tx_hash=flow.tx_hash)

        if self.index is not None:
            try:
                self.index.save_royalty_payment({
                    "payer_ip_id": payer_ip_id,
                    "receiver_ip_id": receiver_ip_id,
                    "amount": value,
                    "currency": self.currency,
                    "transaction_hash": flow.tx_hash,
                    "direction": direction.value,
                    "paid_at": flow.paid_at,
                })
            except PersistenceWarning as e:
                logger.warning("Royalty payment not recorded", receiver_ip_id=receiver_ip_id, warning=str(e))
                flow.warnings.append(str(e))

        return flow

    @staticmethod
    def _require_id(value: Optional[str], field: str) -> None:
        if is_blank(value):
            raise ValidationError(f"{field} is required", field=field)

    @staticmethod
    def _claim_result(ip_id: str, claimed, children: Sequence[str] = ()) -> ClaimResult:
        result = ClaimResult(
            ip_id=ip_id,
            claimer=ip_id,
            tx_hashes=claimed.get("tx_hashes") or [],
            claimed_tokens=claimed.get("claimed_tokens") or [],
            child_ip_ids=list(children),
        )
        result.explorer_tx_urls = [explorer_tx_url(h) for h in result.tx_hashes]
        logger.info("Revenue claimed", ip_id=ip_id, tx_hashes=result.tx_hashes)
        return result
