"""
NotifyHub Services

Business logic services for NotifyHub.
"""
from .engine_service import EngineService
from .audit_service import AuditGate, AuditConfigCache, normalize_action
from .channel_validator import ChannelValidator, ChannelValidationResult
from .trigger_service import TriggerService, AutopilotDecision
from .ledger_service import LedgerService, LedgerEvent, apply_event, can_transition
from .notification_service import NotificationService
from .autopilot_service import AutopilotService, AutopilotResult
from .read_receipt_service import ReadReceiptReconciler, ReconcileResult
from .scheduler_service import SchedulerService

__all__ = [
    'EngineService',
    'AuditGate',
    'AuditConfigCache',
    'normalize_action',
    'ChannelValidator',
    'ChannelValidationResult',
    'TriggerService',
    'AutopilotDecision',
    'LedgerService',
    'LedgerEvent',
    'apply_event',
    'can_transition',
    'NotificationService',
    'AutopilotService',
    'AutopilotResult',
    'ReadReceiptReconciler',
    'ReconcileResult',
    'SchedulerService',
]
