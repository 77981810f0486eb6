import structlog
from decimal import Decimal
from typing import Optional, Union

from ip_provenance.core.errors import InvalidAmountError, PersistenceWarning, ValidationError
from ip_provenance.core.ledger import LedgerClient, require_wallet
from ip_provenance.core.utils import explorer_tx_url, is_blank, parse_decimal
from ip_provenance.models.asset import SigningContext
from ip_provenance.models.licensing import MintResult

logger = structlog.get_logger()

__all__ = ["LicensingService", "total_cost", "validate_mint_amount"]


def validate_mint_amount(amount) -> int:
    """Return amount if it is a whole number >= 1, else raise InvalidAmountError."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmountError(f"License amount must be a whole number, got {amount!r}")
    if amount < 1:
        raise InvalidAmountError(f"License amount must be at least 1, got {amount}")
    return amount


def total_cost(amount: int, unit_fee: Union[str, int, float, Decimal]) -> Decimal:
    """Exact amount x unit fee, for display. The ledger computes the real charge."""
    fee = parse_decimal(unit_fee)
    if fee is None or fee < 0:
        raise ValidationError(f"Invalid unit minting fee: {unit_fee!r}", field="unit_fee")
    return fee * validate_mint_amount(amount)


class LicensingService:
    """
    Mints license tokens against a registered IP asset.

    Mints are not idempotent: every call mints new tokens, so a call whose
    outcome is unknown must not be retried without checking ledger state.
    """

    def __init__(self, ledger: LedgerClient, index=None):
        self.ledger = ledger
        self.index = index

    def mint(self, ip_id: str, license_terms_id: str, amount: int, signing: Optional[SigningContext],
             receiver: Optional[str] = None, unit_fee: Optional[Union[str, Decimal]] = None,
             sensor_data_id: Optional[int] = None,
             revenue_share: Optional[float] = None) -> MintResult:
        validate_mint_amount(amount)
        if is_blank(ip_id):
            raise ValidationError("IP asset id is required", field="ip_id")
        if license_terms_id is None or is_blank(str(license_terms_id)):
            raise ValidationError("License terms id is required", field="license_terms_id")
        signing = require_wallet(signing)

        receiver = signing.address if is_blank(receiver) else receiver.strip()
        fee = total_cost(amount, unit_fee) if unit_fee is not None else None

        logger.info("Minting license tokens",
                    ip_id=ip_id, license_terms_id=str(license_terms_id), amount=amount, receiver=receiver)

        minted = self.ledger.mint_license_tokens(signing, ip_id, str(license_terms_id), amount, receiver)

        result = MintResult(
            ip_id=ip_id,
            license_terms_id=str(license_terms_id),
            amount=amount,
            receiver=receiver,
            tx_hash=minted["tx_hash"],
            license_token_ids=minted.get("license_token_ids") or [],
            explorer_tx_url=explorer_tx_url(minted["tx_hash"]),
            total_fee=fee,
        )
        logger.info("License tokens minted",
                    ip_id=ip_id, tx_hash=result.tx_hash, token_ids=result.license_token_ids)

        if self.index is not None:
            try:
                self.index.save_license_minting({
                    "sensor_data_id": sensor_data_id,
                    "license_token_ids": result.license_token_ids,
                    "amount": amount,
                    "ip_asset_id": ip_id,
                    "license_terms_id": result.license_terms_id,
                    "transaction_hash": result.tx_hash,
                    "story_explorer_tx_url": result.explorer_tx_url,
                    "minter_address": signing.address,
                    "receiver_address": receiver,
                    "minting_fee_paid": str(fee) if fee is not None else None,
                    "unit_minting_fee": str(unit_fee) if unit_fee is not None else None,
                    "revenue_share_percentage": revenue_share,
                })
            except PersistenceWarning as e:
                logger.warning("License minting not recorded", ip_id=ip_id, warning=str(e))
                result.warnings.append(str(e))

        return result
