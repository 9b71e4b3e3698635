"""
Engine Service

Main composite service that manages all storages and services.
Singleton pattern - one instance per process.
"""
import logging
from typing import Optional

from ..config import Config
from ..storage.audit_storage import AuditStorage
from ..storage.messenger_settings_storage import MessengerSettingsStorage
from ..storage.trigger_storage import TriggerStorage
from ..storage.agent_settings_storage import AgentSettingsStorage
from ..storage.notification_log_storage import NotificationLogStorage
from ..storage.recipient_storage import RecipientStorage
from .audit_service import AuditConfigCache, AuditGate
from .channel_validator import ChannelValidator
from .trigger_service import TriggerService
from .ledger_service import LedgerService
from .notification_service import NotificationService
from .autopilot_service import AutopilotService
from .read_receipt_service import ReadReceiptReconciler
from .scheduler_service import SchedulerService

logger = logging.getLogger("notifyhub.services.engine")

# Singleton instance
_engine_service: Optional["EngineService"] = None


class EngineService:
    """
    Composite engine service.

    Manages:
    - All storage connections (PostgreSQL)
    - Business logic services
    - Background scheduler
    - Graceful shutdown
    """

    def __init__(self):
        """Initialize engine service with all storages"""
        self.postgres_dsn = Config.get_postgres_dsn()

        # Initialize storages
        self.audit_storage = AuditStorage(self.postgres_dsn)
        self.messenger_settings_storage = MessengerSettingsStorage(self.postgres_dsn)
        self.trigger_storage = TriggerStorage(self.postgres_dsn)
        self.agent_settings_storage = AgentSettingsStorage(self.postgres_dsn)
        self.notification_log_storage = NotificationLogStorage(self.postgres_dsn)
        self.recipient_storage = RecipientStorage(self.postgres_dsn)

        # Audit gate (owns its config cache)
        self.audit_gate = AuditGate(
            self.audit_storage,
            AuditConfigCache(self.audit_storage, ttl=Config.AUDIT_CACHE_TTL),
        )

        # Channels, triggers, ledger
        self.channel_validator = ChannelValidator(self.messenger_settings_storage)
        self.trigger_service = TriggerService(
            self.trigger_storage,
            self.agent_settings_storage,
            window_minutes=Config.AUTOPILOT_WINDOW_MINUTES,
        )
        self.ledger_service = LedgerService(self.notification_log_storage)

        # Delivery
        self.notification_service = NotificationService(
            ledger=self.ledger_service,
            settings_storage=self.messenger_settings_storage,
            recipient_storage=self.recipient_storage,
        )
        self.autopilot_service = AutopilotService(
            trigger_service=self.trigger_service,
            trigger_storage=self.trigger_storage,
            recipient_storage=self.recipient_storage,
            log_storage=self.notification_log_storage,
            channel_validator=self.channel_validator,
            notification_service=self.notification_service,
        )
        self.read_receipt_reconciler = ReadReceiptReconciler(
            settings_storage=self.messenger_settings_storage,
            ledger=self.ledger_service,
            peer_timeout=Config.TELEGRAM_TIMEOUT,
        )

        # Initialize scheduler (started in initialize(), stopped in close())
        from .. import jobs
        self.scheduler_service = SchedulerService(
            autopilot_job=jobs.run_autopilot_pass,
            read_receipt_job=jobs.run_read_receipt_reconciliation,
            autopilot_interval=Config.AUTOPILOT_POLL_INTERVAL,
            read_receipt_interval=Config.READ_RECEIPT_POLL_INTERVAL,
            enabled=Config.SCHEDULER_ENABLED,
        )

        self._initialized = False
        logger.info("EngineService created")

    def _storages(self):
        return [
            self.audit_storage,
            self.messenger_settings_storage,
            self.trigger_storage,
            self.agent_settings_storage,
            self.notification_log_storage,
            self.recipient_storage,
        ]

    async def initialize(self):
        """Initialize all storages and start the scheduler"""
        if self._initialized:
            logger.info("EngineService already initialized")
            return

        logger.info("Initializing EngineService...")

        for storage in self._storages():
            await storage.init()

        # Start background scheduler
        await self.scheduler_service.start()

        self._initialized = True
        logger.info("EngineService initialized successfully")

    async def close(self):
        """Close all connections"""
        logger.info("Closing EngineService...")

        await self.scheduler_service.stop()
        await self.notification_service.close()
        for storage in self._storages():
            await storage.close()

        self._initialized = False
        logger.info("EngineService closed")

    @property
    def is_initialized(self) -> bool:
        """Check if service is initialized"""
        return self._initialized

    @classmethod
    def get_instance(cls) -> "EngineService":
        """Get singleton instance"""
        return get_engine_service()


def get_engine_service() -> EngineService:
    """Get or create engine service singleton"""
    global _engine_service
    if _engine_service is None:
        _engine_service = EngineService()
    return _engine_service


async def init_engine_service() -> EngineService:
    """Initialize and return engine service"""
    service = get_engine_service()
    await service.initialize()
    return service
