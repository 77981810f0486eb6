import structlog
from typing import Any, Dict, List, Optional, Sequence

import requests
from requests.adapters import HTTPAdapter

from ip_provenance import config
from ip_provenance.core.errors import LedgerError, WalletNotConnectedError
from ip_provenance.core.hashing import is_digest
from ip_provenance.models.asset import CoreMetadata, SigningContext

logger = structlog.get_logger()

__all__ = ["LedgerClient", "decode_core_metadata", "require_wallet", "CORE_METADATA_FIELDS"]

# Positional layout of the getCoreMetadata tuple
CORE_METADATA_FIELDS = (
    "nft_token_uri",
    "nft_metadata_hash",
    "metadata_uri",
    "metadata_hash",
    "registration_date",
    "owner",
)

_CAMEL_FIELDS = {
    "nftTokenURI": "nft_token_uri",
    "nftMetadataHash": "nft_metadata_hash",
    "metadataURI": "metadata_uri",
    "metadataHash": "metadata_hash",
    "registrationDate": "registration_date",
    "owner": "owner",
}


def require_wallet(signing: Optional[SigningContext]) -> SigningContext:
    """Return the signing context or raise when no wallet is connected."""
    if signing is None or not signing.connected:
        raise WalletNotConnectedError()
    return signing


def decode_core_metadata(raw: Any) -> CoreMetadata:
    """
    Decode the core metadata tuple returned by the ledger.

    Accepts the positional 6-tuple or a named mapping. Fails closed with
    LedgerError on arity mismatch or malformed hashes rather than assigning
    fields by guesswork.
    """
    if isinstance(raw, dict):
        named = {_CAMEL_FIELDS.get(k, k): v for k, v in raw.items()}
        missing = [f for f in CORE_METADATA_FIELDS if f not in named]
        if missing:
            raise LedgerError(f"Core metadata missing fields: {', '.join(missing)}")
        values = [named[f] for f in CORE_METADATA_FIELDS]
    elif isinstance(raw, (list, tuple)):
        if len(raw) != len(CORE_METADATA_FIELDS):
            raise LedgerError(
                f"Core metadata arity mismatch: expected {len(CORE_METADATA_FIELDS)} fields, got {len(raw)}"
            )
        values = list(raw)
    else:
        raise LedgerError(f"Unexpected core metadata payload type: {type(raw).__name__}")

    decoded = dict(zip(CORE_METADATA_FIELDS, values))

    for field in ("nft_metadata_hash", "metadata_hash"):
        if not is_digest(decoded[field]):
            raise LedgerError(f"Core metadata field {field} is not a 32-byte hash")

    try:
        decoded["registration_date"] = int(decoded["registration_date"] or 0)
    except (TypeError, ValueError):
        raise LedgerError("Core metadata registration date is not an integer")

    for field in ("nft_token_uri", "metadata_uri", "owner"):
        if not isinstance(decoded[field], str):
            raise LedgerError(f"Core metadata field {field} is not a string")

    return CoreMetadata(**decoded)


class LedgerClient:
    """
    Client for the ledger gateway.

    Every state-changing call takes an explicit SigningContext; the client
    never reads wallet state from anywhere else. Calls are single-shot: no
    retries, and a non-2xx reply surfaces as LedgerError carrying the
    ledger's own message.
    """

    def __init__(self, api_url: Optional[str] = None, api_key: Optional[str] = None,
                 session: Optional[requests.Session] = None):
        self.api_url = (api_url or config.LEDGER_API_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else config.LEDGER_API_KEY
        self.session = session or self._initialize_session()
        logger.info("Ledger client initialized", api_url=self.api_url)

    def _initialize_session(self) -> requests.Session:
        session = requests.Session()
        adapter = HTTPAdapter(max_retries=0)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def _headers(self, signing: Optional[SigningContext] = None) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        if signing is not None:
            headers["X-Signer-Address"] = signing.address
            headers["X-Chain-Id"] = signing.chain_id
        return headers

    def _request(self, method: str, path: str, signing: Optional[SigningContext] = None,
                 payload: Optional[Dict[str, Any]] = None,
                 params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.api_url}/{path.lstrip('/')}"
        try:
            response = self.session.request(
                method,
                url,
                json=payload,
                params=params,
                headers=self._headers(signing),
                timeout=config.HTTP_TIMEOUT,
            )
        except requests.exceptions.RequestException as e:
            logger.error("Ledger gateway unreachable", path=path, error=str(e))
            raise LedgerError(str(e))

        if not 200 <= response.status_code < 300:
            message = self._error_message(response)
            logger.error("Ledger call rejected", path=path, status_code=response.status_code, error=message)
            raise LedgerError(message)

        try:
            return response.json()
        except ValueError:
            raise LedgerError(f"Ledger returned a non-JSON response for {path}")

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or f"HTTP {response.status_code}"
        if isinstance(body, dict):
            for key in ("error", "message", "reason"):
                if body.get(key):
                    return str(body[key])
        return response.text or f"HTTP {response.status_code}"

    def register_ip_asset(self, signing: SigningContext, spg_nft_contract: str,
                          license_terms: List[Dict[str, Any]],
                          ip_metadata: Dict[str, str]) -> Dict[str, Any]:
        """Mint an NFT and register it as an IP asset with license terms attached."""
        require_wallet(signing)
        result = self._request("POST", "ip-assets", signing, {
            "nft": {"type": "mint", "spgNftContract": spg_nft_contract},
            "licenseTermsData": [{"terms": terms} for terms in license_terms],
            "ipMetadata": ip_metadata,
        })
        _require_fields(result, "ip-assets", "ipId", "txHash")
        return {
            "ip_id": result.get("ipId"),
            "tx_hash": result.get("txHash"),
            "token_id": _str_or_none(result.get("tokenId")),
            "license_terms_ids": [str(i) for i in result.get("licenseTermsIds") or []],
        }

    def register_derivative_ip_asset(self, signing: SigningContext, spg_nft_contract: str,
                                     parent_ip_ids: Sequence[str], license_terms_ids: Sequence[str],
                                     ip_metadata: Dict[str, str], max_minting_fee: int = 0,
                                     max_revenue_share: float = 100, max_rts: int = config.DEFAULT_MAX_RTS,
                                     royalty_shares: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
        """Mint an NFT and register it as a derivative of the given parents."""
        require_wallet(signing)
        payload = {
            "nft": {"type": "mint", "spgNftContract": spg_nft_contract},
            "derivData": {
                "parentIpIds": list(parent_ip_ids),
                "licenseTermsIds": [str(i) for i in license_terms_ids],
                "maxMintingFee": str(max_minting_fee),
                "maxRevenueShare": max_revenue_share,
                "maxRts": max_rts,
            },
            "ipMetadata": ip_metadata,
        }
        if royalty_shares:
            payload["royaltyShares"] = royalty_shares
        result = self._request("POST", "ip-assets/derivatives", signing, payload)
        _require_fields(result, "ip-assets/derivatives", "ipId", "txHash")
        return {
            "ip_id": result.get("ipId"),
            "tx_hash": result.get("txHash"),
            "token_id": _str_or_none(result.get("tokenId")),
        }

    def mint_license_tokens(self, signing: SigningContext, licensor_ip_id: str, license_terms_id: str,
                            amount: int, receiver: str) -> Dict[str, Any]:
        require_wallet(signing)
        result = self._request("POST", "licenses/mint", signing, {
            "licensorIpId": licensor_ip_id,
            "licenseTermsId": str(license_terms_id),
            "amount": amount,
            "receiver": receiver,
        })
        _require_fields(result, "licenses/mint", "txHash")
        return {
            "tx_hash": result.get("txHash"),
            "license_token_ids": [str(i) for i in result.get("licenseTokenIds") or []],
        }

    def pay_royalty_on_behalf(self, signing: SigningContext, receiver_ip_id: str, payer_ip_id: str,
                              token: str, amount: int) -> Dict[str, Any]:
        require_wallet(signing)
        result = self._request("POST", "royalty/pay", signing, {
            "receiverIpId": receiver_ip_id,
            "payerIpId": payer_ip_id,
            "token": token,
            "amount": str(amount),
        })
        _require_fields(result, "royalty/pay", "txHash")
        return {"tx_hash": result.get("txHash")}

    def claimable_revenue(self, signing: SigningContext, ip_id: str, claimer: str, token: str) -> int:
        require_wallet(signing)
        result = self._request("GET", "royalty/claimable", signing, params={
            "ipId": ip_id,
            "claimer": claimer,
            "token": token,
        })
        raw = result.get("amount") if isinstance(result, dict) else result
        try:
            return int(raw)
        except (TypeError, ValueError):
            raise LedgerError(f"Ledger returned a non-integer claimable amount: {raw!r}")

    def claim_all_revenue(self, signing: SigningContext, ancestor_ip_id: str, claimer: str,
                          currency_tokens: Sequence[str], child_ip_ids: Sequence[str] = (),
                          royalty_policies: Sequence[str] = ()) -> Dict[str, Any]:
        require_wallet(signing)
        result = self._request("POST", "royalty/claim-all", signing, {
            "ancestorIpId": ancestor_ip_id,
            "claimer": claimer,
            "currencyTokens": list(currency_tokens),
            "childIpIds": list(child_ip_ids),
            "royaltyPolicies": list(royalty_policies),
        })
        return {
            "tx_hashes": list(result.get("txHashes") or []),
            "claimed_tokens": [str(t) for t in result.get("claimedTokens") or []],
        }

    def get_core_metadata(self, ip_id: str) -> CoreMetadata:
        """Read-only call; no signing context needed."""
        result = self._request("GET", f"core-metadata/{ip_id}")
        return decode_core_metadata(result.get("result") if isinstance(result, dict) and "result" in result else result)

    def get_json_string(self, ip_id: str) -> str:
        result = self._request("GET", f"core-metadata/{ip_id}/json")
        value = result.get("result") if isinstance(result, dict) else result
        if not isinstance(value, str):
            raise LedgerError("Ledger returned a non-string JSON attribute bag")
        return value

    def is_supported(self, ip_id: str) -> bool:
        result = self._request("GET", f"core-metadata/{ip_id}/supported")
        value = result.get("result") if isinstance(result, dict) else result
        return bool(value)


def _str_or_none(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _require_fields(result: Any, path: str, *keys: str) -> None:
    # A 2xx reply without these means the transaction outcome is unknown
    if not isinstance(result, dict):
        raise LedgerError(f"Ledger reply for {path} is not an object")
    missing = [key for key in keys if not result.get(key)]
    if missing:
        raise LedgerError(f"Ledger reply for {path} is missing {', '.join(missing)}")
