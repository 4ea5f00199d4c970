"""Payment and subscription lifecycle for company plans."""

from .catalog import (
    PLAN_CATALOG,
    PlanDefinition,
    compute_subscription_dates,
    get_plan,
    list_plans,
    resolve_plan_id,
)
from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    NotFoundError,
    PaymentError,
    ServiceError,
    ValidationError,
)
from .models import (
    ActivationEvent,
    ActivationOutcome,
    ActivationReceipt,
    ActivationSource,
    Company,
    CompanySubscription,
    GatewayOrder,
    HistoryStatus,
    InvoiceDocument,
    LedgerAppendResult,
    OrderResult,
    PlanId,
    SubscriptionHistoryEntry,
    SubscriptionSnapshot,
)
from .service import CompanyRepository, SubscriptionLifecycleService, SubscriptionNotifier
from .signatures import SignatureVerifier

__all__ = [
    "PLAN_CATALOG",
    "ActivationEvent",
    "ActivationOutcome",
    "ActivationReceipt",
    "ActivationSource",
    "AuthenticationError",
    "Company",
    "CompanyRepository",
    "CompanySubscription",
    "ConfigurationError",
    "GatewayOrder",
    "HistoryStatus",
    "InvoiceDocument",
    "LedgerAppendResult",
    "NotFoundError",
    "OrderResult",
    "PaymentError",
    "PlanDefinition",
    "PlanId",
    "ServiceError",
    "SignatureVerifier",
    "SubscriptionHistoryEntry",
    "SubscriptionLifecycleService",
    "SubscriptionNotifier",
    "SubscriptionSnapshot",
    "ValidationError",
    "compute_subscription_dates",
    "get_plan",
    "list_plans",
    "resolve_plan_id",
]
