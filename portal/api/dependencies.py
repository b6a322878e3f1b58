"""
Service providers for route handlers.

Every service is built on the session factory from get_session_factory, so
overriding that one dependency points the whole API at another database.
"""

from fastapi import Depends
from sqlalchemy.orm import sessionmaker

from portal.core.auth import PasswordVerifier
from portal.db.postgres import get_session_factory
from portal.services.asset_cleaner import ExternalAssetCleaner, get_asset_cleaner
from portal.services.audit_logger import AuditLogger
from portal.services.eligibility import EligibilityResolver
from portal.services.range_registry import RangeRegistry
from portal.services.reset_executor import ResetExecutor
from portal.services.reset_preview import ResetPreviewCalculator


def get_audit_logger(session_factory: sessionmaker = Depends(get_session_factory)) -> AuditLogger:
    return AuditLogger(session_factory)


def get_range_registry(
    session_factory: sessionmaker = Depends(get_session_factory),
    audit: AuditLogger = Depends(get_audit_logger),
) -> RangeRegistry:
    return RangeRegistry(session_factory, audit)


def get_eligibility_resolver(registry: RangeRegistry = Depends(get_range_registry)) -> EligibilityResolver:
    return EligibilityResolver(registry)


def get_preview_calculator(session_factory: sessionmaker = Depends(get_session_factory)) -> ResetPreviewCalculator:
    return ResetPreviewCalculator(session_factory)


def get_password_verifier(session_factory: sessionmaker = Depends(get_session_factory)) -> PasswordVerifier:
    return PasswordVerifier(session_factory)


def get_reset_executor(
    session_factory: sessionmaker = Depends(get_session_factory),
    audit: AuditLogger = Depends(get_audit_logger),
    cleaner: ExternalAssetCleaner = Depends(get_asset_cleaner),
) -> ResetExecutor:
    return ResetExecutor(session_factory, audit, cleaner)
