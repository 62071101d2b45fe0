"""Dependency injection singletons for Procurement-Core."""

from procurement_core.analytics.service import AnalyticsService
from procurement_core.audit.service import AuditRecorder
from procurement_core.cache.service import CacheService
from procurement_core.common.config import get_settings
from procurement_core.common.database import DatabaseManager
from procurement_core.contracts.service import ContractService
from procurement_core.documents.service import DocumentService
from procurement_core.lifecycle.events import EventBus
from procurement_core.notifications.service import NotificationDispatcher
from procurement_core.payments.service import PaymentService
from procurement_core.permissions.evaluator import PermissionEvaluator
from procurement_core.permissions.service import PermissionService
from procurement_core.registration.service import RegistrationGateway
from procurement_core.settings.service import SystemSettingService
from procurement_core.suppliers.categories import CategoryService
from procurement_core.suppliers.service import SupplierService
from procurement_core.users.service import UserService

_db: DatabaseManager | None = None
_cache: CacheService | None = None
_events: EventBus | None = None
_evaluator: PermissionEvaluator | None = None
_audit: AuditRecorder | None = None
_notifier: NotificationDispatcher | None = None
_suppliers: SupplierService | None = None
_categories: CategoryService | None = None
_contracts: ContractService | None = None
_payments: PaymentService | None = None
_documents: DocumentService | None = None
_users: UserService | None = None
_permissions: PermissionService | None = None
_registration: RegistrationGateway | None = None
_system_settings: SystemSettingService | None = None
_analytics: AnalyticsService | None = None


def get_db() -> DatabaseManager:
    global _db
    if _db is None:
        _db = DatabaseManager(get_settings())
    return _db


def get_cache_service() -> CacheService:
    global _cache
    if _cache is None:
        _cache = CacheService(get_settings())
    return _cache


def get_event_bus() -> EventBus:
    global _events
    if _events is None:
        _events = EventBus()
    return _events


def get_permission_evaluator() -> PermissionEvaluator:
    global _evaluator
    if _evaluator is None:
        _evaluator = PermissionEvaluator(get_cache_service())
    return _evaluator


def get_audit_recorder() -> AuditRecorder:
    global _audit
    if _audit is None:
        _audit = AuditRecorder(get_permission_evaluator())
    return _audit


def get_notification_dispatcher() -> NotificationDispatcher:
    global _notifier
    if _notifier is None:
        _notifier = NotificationDispatcher()
    return _notifier


def _lifecycle_collaborators() -> tuple:
    return (
        get_settings(),
        get_permission_evaluator(),
        get_audit_recorder(),
        get_notification_dispatcher(),
        get_cache_service(),
        get_event_bus(),
    )


def get_supplier_service() -> SupplierService:
    global _suppliers
    if _suppliers is None:
        _suppliers = SupplierService(*_lifecycle_collaborators())
    return _suppliers


def get_category_service() -> CategoryService:
    global _categories
    if _categories is None:
        _categories = CategoryService(get_audit_recorder(), get_cache_service())
    return _categories


def get_contract_service() -> ContractService:
    global _contracts
    if _contracts is None:
        _contracts = ContractService(
            *_lifecycle_collaborators(), system_settings=get_system_setting_service(),
        )
    return _contracts


def get_payment_service() -> PaymentService:
    global _payments
    if _payments is None:
        _payments = PaymentService(*_lifecycle_collaborators())
    return _payments


def get_document_service() -> DocumentService:
    global _documents
    if _documents is None:
        _documents = DocumentService(
            get_audit_recorder(), get_notification_dispatcher(), get_cache_service(),
        )
    return _documents


def get_user_service() -> UserService:
    global _users
    if _users is None:
        _users = UserService(get_audit_recorder(), get_cache_service())
    return _users


def get_permission_service() -> PermissionService:
    global _permissions
    if _permissions is None:
        _permissions = PermissionService(
            get_permission_evaluator(), get_audit_recorder(), get_cache_service(),
        )
    return _permissions


def get_system_setting_service() -> SystemSettingService:
    global _system_settings
    if _system_settings is None:
        _system_settings = SystemSettingService(
            get_settings(), get_permission_evaluator(), get_audit_recorder(),
            get_cache_service(), get_event_bus(),
        )
    return _system_settings


def get_analytics_service() -> AnalyticsService:
    global _analytics
    if _analytics is None:
        _analytics = AnalyticsService(get_settings(), get_permission_evaluator(), get_cache_service())
    return _analytics


def get_registration_gateway() -> RegistrationGateway:
    global _registration
    if _registration is None:
        _registration = RegistrationGateway(get_supplier_service())
    return _registration


def reset_singletons() -> None:
    """Reset all singletons (for testing)."""
    global _db, _cache, _events, _evaluator, _audit, _notifier
    global _suppliers, _categories, _contracts, _payments, _documents
    global _users, _permissions, _registration, _system_settings, _analytics
    _db = None
    _cache = None
    _events = None
    _evaluator = None
    _audit = None
    _notifier = None
    _suppliers = None
    _categories = None
    _contracts = None
    _payments = None
    _documents = None
    _users = None
    _permissions = None
    _registration = None
    _system_settings = None
    _analytics = None
