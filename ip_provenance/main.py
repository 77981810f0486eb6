import os
import structlog
import time
from typing import List, Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Depends, Header, status, Query
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
import uvicorn

# Load environment variables
from dotenv import load_dotenv
load_dotenv()

from ip_provenance import __version__, config
from ip_provenance.core.errors import (
    FetchError, LedgerError, ProvenanceError, StorageUploadError, ValidationError, WalletNotConnectedError,
)
from ip_provenance.core.storage import StorageClient
from ip_provenance.core.ledger import LedgerClient
from ip_provenance.core.database import OffChainIndex, check_database_connection, get_database_stats
from ip_provenance.core.utils import format_registration_date
from ip_provenance.models.asset import ExportFormat, RegistrationResult, SigningContext
from ip_provenance.models.api import (
    BatchMetadataRequest, ClaimDerivativesRequest, DerivativeRegistrationRequest, ErrorResponse,
    HealthResponse, MintLicenseRequest, OriginalRegistrationRequest, PayRoyaltyRequest, TipRequest,
)
from ip_provenance.services.registration import RegistrationOrchestrator
from ip_provenance.services.licensing import LicensingService
from ip_provenance.services.royalty import RoyaltyService
from ip_provenance.services.provenance import ProvenanceReader
from ip_provenance.services.export import render_export

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="ISO"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

# Global clients, built at startup
storage_client = None
ledger_client = None
offchain_index = None

# Status codes for errors reported inside a RegistrationResult
ERROR_STATUS = {
    "ValidationError": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "InvalidAmountError": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "WalletNotConnectedError": status.HTTP_401_UNAUTHORIZED,
    "StorageUploadError": status.HTTP_502_BAD_GATEWAY,
    "FetchError": status.HTTP_502_BAD_GATEWAY,
    "LedgerError": status.HTTP_502_BAD_GATEWAY,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    global storage_client, ledger_client, offchain_index

    # Startup
    logger.info("Starting IP Provenance API")
    try:
        storage_client = StorageClient()
        ledger_client = LedgerClient()
        offchain_index = OffChainIndex()

        # Test database connection
        if check_database_connection():
            logger.info("Off-chain index connection verified")
        else:
            logger.warning("Off-chain index connection check failed, records will not be persisted")

    except Exception as e:
        logger.error("Failed to initialize application", error=str(e))
        raise

    yield

    # Shutdown
    logger.info("Shutting down IP Provenance API")


# Create FastAPI application
app = FastAPI(
    title="IP Provenance API",
    description="IP registration, licensing and royalty orchestration for sensor datasets",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    responses={
        422: {"model": ErrorResponse, "description": "Validation Error"},
        500: {"model": ErrorResponse, "description": "Internal Server Error"},
    }
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Dependencies

def get_signing_context(
    x_wallet_address: Optional[str] = Header(None, description="Connected wallet address"),
    x_chain_id: Optional[str] = Header(None, description="Target network"),
) -> SigningContext:
    """Signing context of the current request. Never taken from process state."""
    return SigningContext(address=x_wallet_address, chain_id=x_chain_id or "aeneid")


def get_orchestrator() -> RegistrationOrchestrator:
    return RegistrationOrchestrator(storage_client, ledger_client, index=offchain_index)


def get_licensing_service() -> LicensingService:
    return LicensingService(ledger_client, index=offchain_index)


def get_royalty_service() -> RoyaltyService:
    return RoyaltyService(ledger_client, index=offchain_index)


def get_provenance_reader() -> ProvenanceReader:
    return ProvenanceReader(ledger_client)


def get_index():
    return offchain_index


def registration_response(result: RegistrationResult):
    if result.success:
        return result
    return JSONResponse(
        status_code=ERROR_STATUS.get(result.error_type, status.HTTP_500_INTERNAL_SERVER_ERROR),
        content=jsonable_encoder(result),
    )


# Endpoints

@app.get("/", response_model=dict)
async def root():
    """Root endpoint with API information."""
    return {
        "name": "IP Provenance API",
        "version": __version__,
        "description": "IP registration, licensing and royalty orchestration for sensor datasets",
        "docs_url": "/docs",
        "health_url": "/health",
        "protocol_explorer": config.PROTOCOL_EXPLORER_URL,
    }


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint with component status."""
    try:
        db_healthy = await run_in_threadpool(check_database_connection)
        db_stats = await run_in_threadpool(get_database_stats) if db_healthy else {}
        storage_health = (await run_in_threadpool(storage_client.health_check)
                          if storage_client else {"error": "not_initialized"})

        components = {
            "database": "healthy" if db_healthy else "unhealthy",
            "storage": "healthy" if storage_health.get("available") else "unhealthy",
            "ledger": "configured" if ledger_client else "not_initialized",
        }
        overall_status = "healthy" if db_healthy and storage_health.get("available") else "degraded"

        return HealthResponse(
            status=overall_status,
            version=__version__,
            components={
                **components,
                "database_stats": db_stats,
                "storage_health": storage_health,
                "timestamp": time.time(),
            }
        )
    except Exception as e:
        logger.error("Health check failed", error=str(e))
        return HealthResponse(
            status="unhealthy",
            version=__version__,
            components={"error": str(e)}
        )


@app.post("/ip-assets", response_model=RegistrationResult)
async def register_ip_asset(
    request: OriginalRegistrationRequest,
    signing: SigningContext = Depends(get_signing_context),
    orchestrator: RegistrationOrchestrator = Depends(get_orchestrator),
):
    """Register a sensor dataset as an original IP asset with commercial-remix terms."""
    result = await run_in_threadpool(
        orchestrator.register_original,
        request.source,
        request.creator_name,
        request.creator_address or signing.address,
        signing,
        license_terms=request.license_terms,
        location=request.location,
        sensor_data_id=request.sensor_data_id,
    )
    return registration_response(result)


@app.post("/ip-assets/derivatives", response_model=RegistrationResult)
async def register_derivative_ip_asset(
    request: DerivativeRegistrationRequest,
    signing: SigningContext = Depends(get_signing_context),
    orchestrator: RegistrationOrchestrator = Depends(get_orchestrator),
):
    """Register a derivative of a licensed parent IP asset."""
    result = await run_in_threadpool(
        orchestrator.register_derivative,
        request.source,
        request.creator_name,
        request.creator_address or signing.address,
        signing,
        parent_ip_id=request.parent_ip_id,
        parent_license_terms_id=request.parent_license_terms_id,
        sensor_data_id=request.sensor_data_id,
        royalty_recipient=request.royalty_recipient,
        royalty_percentage=request.royalty_percentage,
        bounds=request.bounds,
        location=request.location,
    )
    return registration_response(result)


@app.post("/licenses/mint")
async def mint_license(
    request: MintLicenseRequest,
    signing: SigningContext = Depends(get_signing_context),
    licensing: LicensingService = Depends(get_licensing_service),
):
    """Mint license tokens. Not idempotent: every call mints new tokens."""
    return await run_in_threadpool(
        licensing.mint,
        request.ip_id,
        request.license_terms_id,
        request.amount,
        signing,
        receiver=request.receiver,
        unit_fee=request.unit_fee,
        sensor_data_id=request.sensor_data_id,
        revenue_share=request.revenue_share,
    )


@app.get("/licenses", response_model=List[dict])
async def get_licenses(
    receiver: str = Query(..., description="Receiver wallet address"),
    index=Depends(get_index),
):
    """License minting records for a receiver address."""
    if index is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Off-chain index not available")
    try:
        return await run_in_threadpool(index.get_licenses_by_receiver, receiver)
    except Exception as e:
        logger.error("Failed to get licenses", receiver=receiver, error=str(e))
        raise HTTPException(status_code=500, detail=f"Failed to get licenses: {str(e)}")


@app.get("/ip-assets/{ip_id}/claimable")
async def get_claimable_revenue(
    ip_id: str,
    signing: SigningContext = Depends(get_signing_context),
    royalty: RoyaltyService = Depends(get_royalty_service),
):
    """Revenue the asset can claim in the royalty currency."""
    return await run_in_threadpool(royalty.get_claimable, ip_id, signing)


@app.post("/ip-assets/{ip_id}/claim")
async def claim_revenue(
    ip_id: str,
    signing: SigningContext = Depends(get_signing_context),
    royalty: RoyaltyService = Depends(get_royalty_service),
):
    return await run_in_threadpool(royalty.claim_all, ip_id, signing)


@app.post("/ip-assets/{ip_id}/claim-derivatives")
async def claim_revenue_from_derivatives(
    ip_id: str,
    request: ClaimDerivativesRequest,
    signing: SigningContext = Depends(get_signing_context),
    royalty: RoyaltyService = Depends(get_royalty_service),
):
    return await run_in_threadpool(royalty.claim_from_derivatives, ip_id, request.child_ip_ids, signing)


@app.post("/royalties/pay")
async def pay_royalty(
    request: PayRoyaltyRequest,
    signing: SigningContext = Depends(get_signing_context),
    royalty: RoyaltyService = Depends(get_royalty_service),
):
    """Pay royalties from a derivative asset to its parent."""
    return await run_in_threadpool(
        royalty.pay, request.payer_ip_id, request.receiver_ip_id, request.amount, signing
    )


@app.post("/royalties/tip")
async def tip_ip_asset(
    request: TipRequest,
    signing: SigningContext = Depends(get_signing_context),
    royalty: RoyaltyService = Depends(get_royalty_service),
):
    """Direct support payment to an IP asset."""
    return await run_in_threadpool(royalty.tip, request.receiver_ip_id, request.amount, signing)


@app.get("/ip-assets/{ip_id}/metadata", response_model=dict)
async def get_core_metadata(ip_id: str, reader: ProvenanceReader = Depends(get_provenance_reader)):
    """On-chain core metadata. An unreadable asset is reported as unavailable, not as an error."""
    try:
        core = await run_in_threadpool(reader.read_core, ip_id)
    except ProvenanceError as e:
        logger.warning("Core metadata unavailable", ip_id=ip_id, error=str(e))
        return {
            "ip_id": ip_id,
            "available": False,
            "core_metadata": None,
            "registration_date_formatted": format_registration_date(None),
            "error": str(e),
        }
    return {
        "ip_id": ip_id,
        "available": True,
        "core_metadata": jsonable_encoder(core),
        "registration_date_formatted": format_registration_date(core.registration_date),
        "error": None,
    }


@app.get("/ip-assets/{ip_id}/metadata/enriched")
async def get_enriched_metadata(ip_id: str, reader: ProvenanceReader = Depends(get_provenance_reader)):
    return await run_in_threadpool(reader.read_enriched, ip_id)


def _export_context(index, ip_id: str, sensor_data_id: Optional[int],
                    license_receiver: Optional[str]):
    """Index rows for the export; an unreachable index just leaves them out."""
    license_record = sensor_record = None
    if index is None:
        return license_record, sensor_record
    try:
        if sensor_data_id is not None:
            rows = index.get_sensor_records([sensor_data_id])
            sensor_record = rows[0] if rows else None
        if license_receiver:
            license_record = next(
                (row for row in index.get_licenses_by_receiver(license_receiver)
                 if str(row.get("ip_asset_id", "")).lower() == ip_id.lower()),
                None,
            )
    except Exception as e:
        logger.warning("Export context unavailable", ip_id=ip_id, error=str(e))
    return license_record, sensor_record


@app.get("/ip-assets/{ip_id}/export")
async def export_ip_asset(
    ip_id: str,
    export_format: ExportFormat = Query(ExportFormat.JSON, alias="format"),
    sensor_data_id: Optional[int] = Query(None, description="Sensor data record to include as dataset context"),
    license_receiver: Optional[str] = Query(None, description="Include the license minted to this address"),
    reader: ProvenanceReader = Depends(get_provenance_reader),
    index=Depends(get_index),
):
    """Download everything known about an IP asset as JSON, Markdown or plain text."""
    license_record, sensor_record = await run_in_threadpool(
        _export_context, index, ip_id, sensor_data_id, license_receiver)
    data = await run_in_threadpool(reader.read_complete, ip_id, license_record, sensor_record)
    content, filename, media_type = render_export(data, export_format)
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/ip-assets/{ip_id}/verify", response_model=dict)
async def verify_ip_asset(ip_id: str, reader: ProvenanceReader = Depends(get_provenance_reader)):
    """Recompute the content hashes of both metadata documents and compare with the ledger."""
    report = await run_in_threadpool(reader.verify_integrity, ip_id)
    return {**jsonable_encoder(report), "verified": report.verified}


@app.post("/ip-assets/metadata/batch", response_model=dict)
async def batch_metadata(request: BatchMetadataRequest, reader: ProvenanceReader = Depends(get_provenance_reader)):
    """Read metadata for several assets concurrently; one failure does not abort the batch."""
    if request.enriched:
        results = await run_in_threadpool(reader.batch_get_enriched_metadata, request.ip_ids)
    else:
        results = await run_in_threadpool(reader.batch_get_core_metadata, request.ip_ids)
    return {"results": jsonable_encoder(results)}


# Error mapping

def error_response(status_code: int, error: str, exc: ProvenanceError, **details) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": str(exc), "details": details or None},
    )


@app.exception_handler(ValidationError)
async def validation_exception_handler(request, exc: ValidationError):
    logger.info("Request rejected", url=str(request.url), error=str(exc), field=exc.field)
    return error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, "validation_error", exc, field=exc.field)


@app.exception_handler(WalletNotConnectedError)
async def wallet_exception_handler(request, exc: WalletNotConnectedError):
    return error_response(status.HTTP_401_UNAUTHORIZED, "wallet_not_connected", exc)


@app.exception_handler(StorageUploadError)
async def storage_exception_handler(request, exc: StorageUploadError):
    logger.error("Storage upload failed", url=str(request.url), error=str(exc))
    return error_response(status.HTTP_502_BAD_GATEWAY, "storage_upload_error", exc,
                          upstream_status=exc.status_code)


@app.exception_handler(FetchError)
async def fetch_exception_handler(request, exc: FetchError):
    logger.error("Remote fetch failed", url=str(request.url), error=str(exc))
    return error_response(status.HTTP_502_BAD_GATEWAY, "fetch_error", exc,
                          resource=exc.url, upstream_status=exc.status_code)


@app.exception_handler(LedgerError)
async def ledger_exception_handler(request, exc: LedgerError):
    logger.error("Ledger call failed", url=str(request.url), error=str(exc))
    return error_response(status.HTTP_502_BAD_GATEWAY, "ledger_error", exc)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    logger.error("Unhandled exception",
                 url=str(request.url), method=request.method, error=str(exc), exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "internal_server_error", "message": "An unexpected error occurred"}
    )


if __name__ == "__main__":
    uvicorn.run(
        "ip_provenance.main:app",
        host=os.getenv("API_HOST", "0.0.0.0"),
        port=int(os.getenv("API_PORT", 8000)),
        reload=os.getenv("DEBUG", "false").lower() == "true",
        log_config=None,  # We handle logging with structlog
    )
