"""
Configuration module for claimledger.

Settings come from environment variables, read once at import. Build a
LedgerSettings snapshot with LedgerSettings.from_env() to re-read them.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

# ============================================================
# Environment Configuration
# ============================================================

ENV = os.getenv("CLAIMLEDGER_ENV", "dev")  # dev|stage|prod

# Principal the ledger acts as when granting itself access
LEDGER_ADDRESS = os.getenv("CLAIMLEDGER_ADDRESS", "claim-ledger")

# Confidential protocol the ledger's handles and proofs are bound to
PROTOCOL_ID = int(os.getenv("CLAIMLEDGER_PROTOCOL_ID", "1"))

# Empty means in-memory claim storage
DB_PATH = os.getenv("CLAIMLEDGER_DB_PATH", "")

# Plaintext backend ciphertext width
CIPHERTEXT_BITS = int(os.getenv("CIPHERTEXT_BITS", "64"))

# Backend throttling (token bucket)
BACKEND_OPS_PER_SECOND = float(os.getenv("BACKEND_OPS_PER_SECOND", "200"))
BACKEND_BURST = int(os.getenv("BACKEND_BURST", "16"))

# Empty means generate an ephemeral input-verifier key
INPUT_VERIFIER_KEY_PATH = os.getenv("INPUT_VERIFIER_KEY_PATH", "")

LOG_LEVEL = os.getenv("CLAIMLEDGER_LOG_LEVEL", "INFO")


@dataclass(frozen=True)
class LedgerSettings:
    """Snapshot of the settings used to assemble a ledger."""
    env: str = ENV
    ledger_address: str = LEDGER_ADDRESS
    protocol_id: int = PROTOCOL_ID
    db_path: str = DB_PATH
    ciphertext_bits: int = CIPHERTEXT_BITS
    backend_ops_per_second: float = BACKEND_OPS_PER_SECOND
    backend_burst: int = BACKEND_BURST
    input_verifier_key_path: str = INPUT_VERIFIER_KEY_PATH
    log_level: str = LOG_LEVEL

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "LedgerSettings":
        env = os.environ if environ is None else environ
        return cls(
            env=env.get("CLAIMLEDGER_ENV", "dev"),
            ledger_address=env.get("CLAIMLEDGER_ADDRESS", "claim-ledger"),
            protocol_id=int(env.get("CLAIMLEDGER_PROTOCOL_ID", "1")),
            db_path=env.get("CLAIMLEDGER_DB_PATH", ""),
            ciphertext_bits=int(env.get("CIPHERTEXT_BITS", "64")),
            backend_ops_per_second=float(env.get("BACKEND_OPS_PER_SECOND", "200")),
            backend_burst=int(env.get("BACKEND_BURST", "16")),
            input_verifier_key_path=env.get("INPUT_VERIFIER_KEY_PATH", ""),
            log_level=env.get("CLAIMLEDGER_LOG_LEVEL", "INFO"),
        )


# ============================================================
# Validation
# ============================================================

def is_production(settings: Optional[LedgerSettings] = None) -> bool:
    """Check if running in production mode."""
    return (settings or LedgerSettings()).env == "prod"


def is_debug(environ: Optional[Dict[str, str]] = None) -> bool:
    """Check if debug mode is enabled."""
    env = os.environ if environ is None else environ
    return env.get("CLAIMLEDGER_DEBUG", "").lower() in ("1", "true", "yes")


def default_log_level(settings: Optional[LedgerSettings] = None,
                      environ: Optional[Dict[str, str]] = None) -> str:
    """CLAIMLEDGER_DEBUG forces DEBUG; otherwise CLAIMLEDGER_LOG_LEVEL."""
    if is_debug(environ):
        return "DEBUG"
    return (settings or LedgerSettings.from_env(environ)).log_level.upper()


def validate_config(settings: Optional[LedgerSettings] = None) -> Dict[str, bool]:
    """
    Check settings that can be wrong before anything runs.
    Returns dict of check name -> ok.

    Production requires a persistent input-verifier key.
    """
    s = settings or LedgerSettings()
    checks = {
        "ciphertext_bits": s.ciphertext_bits >= 32,
        "backend_rate": s.backend_ops_per_second > 0,
        "backend_burst": s.backend_burst >= 1,
        "ledger_address": bool(s.ledger_address),
        "log_level": s.log_level.upper() in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"),
    }
    if s.input_verifier_key_path:
        checks["input_verifier_key"] = Path(s.input_verifier_key_path).exists()
    elif is_production(s):
        checks["input_verifier_key"] = False
    if s.db_path:
        checks["db_dir"] = Path(s.db_path).resolve().parent.exists()
    return checks
