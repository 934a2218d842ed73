from __future__ import annotations

from enum import Enum


class NotificationType(str, Enum):
    CAPITAL_CALL_NOTICE = "capital_call_notice"
    DISTRIBUTION_NOTICE = "distribution_notice"
    QUARTERLY_REPORT = "quarterly_report"
    K1_TAX_FORM = "k1_tax_form"
    DOCUMENT_UPLOAD = "document_upload"
    GENERAL_ANNOUNCEMENT = "general_announcement"
    URGENT_CAPITAL_CALL = "urgent_capital_call"
    PAYMENT_CONFIRMATION = "payment_confirmation"
    SECURITY_ALERT = "security_alert"
    INVESTOR_ACTIVITY = "investor_activity"
    SYSTEM_UPDATE = "system_update"
    MFA_ENABLED = "mfa_enabled"
    MFA_DISABLED = "mfa_disabled"
    PROFILE_UPDATED = "profile_updated"
    STRIPE_ONBOARDING = "stripe_onboarding"
    STRIPE_PAYOUT = "stripe_payout"
    APPROVAL_REQUIRED = "approval_required"
    APPROVAL_COMPLETED = "approval_completed"
    NEW_INVESTMENT = "new_investment"
    INVESTMENT_UPDATE = "investment_update"


class NotificationChannel(str, Enum):
    EMAIL = "email"
    SMS = "sms"
    PORTAL = "portal"


class NotificationStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"
    CANCELLED = "cancelled"


class NotificationPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class AttemptOutcome(str, Enum):
    SENT = "sent"
    RETRYING = "retrying"
    FAILED = "failed"


class NotificationFrequency(str, Enum):
    IMMEDIATE = "immediate"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class ContactMethod(str, Enum):
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"
    PHONE = "phone"


class ReportDeliveryFormat(str, Enum):
    PDF = "pdf"
    EXCEL = "excel"
    BOTH = "both"
