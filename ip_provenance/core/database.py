import structlog
from typing import List, Any, Dict, Optional, Sequence
from contextlib import contextmanager
from datetime import datetime

import psycopg2
from psycopg2 import extras
from psycopg2.pool import SimpleConnectionPool

from ip_provenance import config
from ip_provenance.core.errors import PersistenceWarning

logger = structlog.get_logger()

# Connection pool configuration
MIN_CONNECTIONS = 1
MAX_CONNECTIONS = 10

# Global connection pool
_connection_pool = None


def initialize_connection_pool():
    """Initialize the off-chain index connection pool."""
    global _connection_pool
    if _connection_pool is None:
        try:
            _connection_pool = SimpleConnectionPool(
                MIN_CONNECTIONS,
                MAX_CONNECTIONS,
                config.DB_DSN
            )
            logger.info("Index connection pool initialized",
                        min_connections=MIN_CONNECTIONS,
                        max_connections=MAX_CONNECTIONS)
        except Exception as e:
            logger.error("Failed to initialize index connection pool", error=str(e))
            raise


@contextmanager
def get_db_connection():
    """Context manager for database connections with automatic cleanup."""
    if _connection_pool is None:
        initialize_connection_pool()

    conn = None
    try:
        conn = _connection_pool.getconn()
        yield conn
    except Exception as e:
        if conn:
            conn.rollback()
        logger.error("Database operation failed", error=str(e))
        raise
    finally:
        if conn:
            _connection_pool.putconn(conn)


# Registration records
def save_ip_registration(sensor_data_id: int, registration: Dict[str, Any]) -> None:
    """Attach an original IP registration to its sensor data row."""
    sql = """
    UPDATE sensor_data
    SET creator_address = %s,
        ip_asset_id = %s,
        story_explorer_url = %s,
        transaction_hash = %s,
        license_terms_ids = %s,
        metadata_url = %s,
        revenue_share = %s,
        minting_fee = %s,
        registered_at = %s,
        updated_at = %s
    WHERE id = %s
    """
    now = datetime.utcnow()
    try:
        with get_db_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, (
                    registration.get("creator_address"),
                    registration["ip_asset_id"],
                    registration.get("story_explorer_url"),
                    registration.get("transaction_hash"),
                    extras.Json(registration.get("license_terms_ids") or []),
                    registration.get("metadata_url"),
                    registration.get("revenue_share"),
                    registration.get("minting_fee"),
                    now, now,
                    sensor_data_id,
                ))
                if cur.rowcount == 0:
                    raise LookupError(f"No sensor data record with id {sensor_data_id}")
                conn.commit()

        logger.info("IP registration saved",
                    sensor_data_id=sensor_data_id, ip_asset_id=registration["ip_asset_id"])

    except Exception as e:
        logger.error("Failed to save IP registration",
                     sensor_data_id=sensor_data_id, error=str(e))
        raise


def save_derivative_registration(record: Dict[str, Any]) -> Optional[int]:
    """Insert a derivative IP registration row and return its id."""
    columns = [
        "sensor_data_id", "derivative_ip_id", "parent_ip_id", "license_terms_id",
        "creator_name", "creator_address", "royalty_recipient", "royalty_percentage",
        "transaction_hash", "story_explorer_url", "metadata_url", "nft_metadata_url",
        "knowledge_file_url", "knowledge_file_hash", "nft_token_id", "nft_contract_address",
        "image_url", "image_hash",
    ]
    sql = f"""
    INSERT INTO derivative_ip_assets ({', '.join(columns)}, registered_at)
    VALUES ({', '.join(['%s'] * len(columns))}, %s)
    RETURNING id
    """
    try:
        with get_db_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, [record.get(c) for c in columns] + [datetime.utcnow()])
                row = cur.fetchone()
                conn.commit()

        record_id = row[0] if row else None
        logger.info("Derivative IP registration saved",
                    sensor_data_id=record.get("sensor_data_id"),
                    derivative_ip_id=record.get("derivative_ip_id"),
                    record_id=record_id)
        return record_id

    except Exception as e:
        logger.error("Failed to save derivative IP registration",
                     sensor_data_id=record.get("sensor_data_id"), error=str(e))
        raise


# License and royalty records
def save_license_minting(record: Dict[str, Any]) -> None:
    """Insert a license minting row."""
    sql = """
    INSERT INTO licenses (
        sensor_data_id, license_token_ids, amount, ip_asset_id, license_terms_id,
        transaction_hash, story_explorer_tx_url, minter_address, receiver_address,
        minting_fee_paid, unit_minting_fee, revenue_share_percentage, minted_at
    )
    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
    """
    try:
        with get_db_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, (
                    record.get("sensor_data_id"),
                    extras.Json(record.get("license_token_ids") or []),
                    record["amount"],
                    record["ip_asset_id"],
                    record["license_terms_id"],
                    record["transaction_hash"],
                    record.get("story_explorer_tx_url"),
                    record.get("minter_address"),
                    record.get("receiver_address"),
                    record.get("minting_fee_paid"),
                    record.get("unit_minting_fee"),
                    record.get("revenue_share_percentage"),
                    datetime.utcnow(),
                ))
                conn.commit()

        logger.info("License minting saved",
                    ip_asset_id=record["ip_asset_id"], amount=record["amount"])

    except Exception as e:
        logger.error("Failed to save license minting",
                     ip_asset_id=record.get("ip_asset_id"), error=str(e))
        raise


def save_royalty_payment(record: Dict[str, Any]) -> None:
    """Insert a royalty payment row."""
    sql = """
    INSERT INTO royalty_payments (
        payer_ip_id, receiver_ip_id, amount, currency, transaction_hash, direction, paid_at
    )
    VALUES (%s, %s, %s, %s, %s, %s, %s)
    """
    try:
        with get_db_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, (
                    record["payer_ip_id"],
                    record["receiver_ip_id"],
                    str(record["amount"]),
                    record.get("currency"),
                    record["transaction_hash"],
                    record["direction"],
                    record.get("paid_at") or datetime.utcnow(),
                ))
                conn.commit()

        logger.info("Royalty payment saved",
                    receiver_ip_id=record["receiver_ip_id"], direction=record["direction"])

    except Exception as e:
        logger.error("Failed to save royalty payment",
                     receiver_ip_id=record.get("receiver_ip_id"), error=str(e))
        raise


# Presentation-layer reads
def get_licenses_by_receiver(address: str) -> List[Dict]:
    """Get license minting rows for a receiver address, newest first."""
    sql = """
    SELECT id, sensor_data_id, license_token_ids, amount, ip_asset_id, license_terms_id,
           transaction_hash, story_explorer_tx_url, receiver_address, minting_fee_paid, minted_at
    FROM licenses
    WHERE LOWER(receiver_address) = LOWER(%s)
    ORDER BY minted_at DESC
    """
    try:
        with get_db_connection() as conn:
            with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                cur.execute(sql, (address,))
                results = cur.fetchall()

        return [dict(row) for row in results]

    except Exception as e:
        logger.error("Failed to get licenses", receiver=address, error=str(e))
        raise


def get_sensor_records(ids: Sequence[int]) -> List[Dict]:
    """Get sensor data rows by id."""
    if not ids:
        return []
    sql = """
    SELECT id, type, title, data, location, timestamp, sensor_health, source,
           creator_address, ip_asset_id, story_explorer_url, transaction_hash,
           image_hash, metadata_url, revenue_share, minting_fee
    FROM sensor_data
    WHERE id = ANY(%s)
    """
    try:
        with get_db_connection() as conn:
            with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                cur.execute(sql, (list(ids),))
                results = cur.fetchall()

        return [dict(row) for row in results]

    except Exception as e:
        logger.error("Failed to get sensor records", ids=list(ids), error=str(e))
        raise


# Database utility functions
def check_database_connection() -> bool:
    """Check if the index database connection is working."""
    try:
        with get_db_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
                cur.fetchone()
        logger.info("Index database connection check successful")
        return True
    except Exception as e:
        logger.error("Index database connection check failed", error=str(e))
        return False


def get_database_stats() -> Dict:
    """Row counts of the index tables."""
    stats = {}
    try:
        with get_db_connection() as conn:
            with conn.cursor() as cur:
                for table in ("sensor_data", "derivative_ip_assets", "licenses", "royalty_payments"):
                    cur.execute(f"SELECT COUNT(*) FROM {table}")
                    stats[f"{table}_count"] = cur.fetchone()[0]
        return stats
    except Exception as e:
        logger.error("Failed to get database stats", error=str(e))
        return {"error": str(e)}


class OffChainIndex:
    """
    Off-chain index as seen by the services.

    Writes only happen after a successful on-chain action, so any failure
    here is reported as PersistenceWarning for the caller to log.
    """

    def save_ip_registration(self, sensor_data_id: int, registration: Dict[str, Any]) -> None:
        try:
            save_ip_registration(sensor_data_id, registration)
        except Exception as e:
            raise PersistenceWarning(f"IP registration not saved to index: {e}")

    def save_derivative_registration(self, record: Dict[str, Any]) -> Optional[int]:
        try:
            return save_derivative_registration(record)
        except Exception as e:
            raise PersistenceWarning(f"Derivative registration not saved to index: {e}")

    def save_license_minting(self, record: Dict[str, Any]) -> None:
        try:
            save_license_minting(record)
        except Exception as e:
            raise PersistenceWarning(f"License minting not saved to index: {e}")

    def save_royalty_payment(self, record: Dict[str, Any]) -> None:
        try:
            save_royalty_payment(record)
        except Exception as e:
            raise PersistenceWarning(f"Royalty payment not saved to index: {e}")

    def get_licenses_by_receiver(self, address: str) -> List[Dict]:
        return get_licenses_by_receiver(address)

    def get_sensor_records(self, ids: Sequence[int]) -> List[Dict]:
        return get_sensor_records(ids)
