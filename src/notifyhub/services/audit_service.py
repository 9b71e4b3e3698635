"""
Audit Service

Decides whether an action must be written to the access log and whether
a failed write blocks the action.

Rule evaluation, in order:
1. Blacklisted user - never logged
2. Role of the user (default 'agent')
3. Raw action normalized to a rule-matrix column
4. Rule for (role, action) - missing rule means "log"

The rule matrix and blacklist are read through AuditConfigCache, a short
TTL snapshot owned by the gate.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple
from uuid import UUID

from ..config import Config
from ..errors import AuthorizationError, PersistenceError
from ..models.audit import AccessLogEntry, AuditAction, AuditBlacklistEntry, AuditRule
from ..storage.audit_storage import AuditStorage

logger = logging.getLogger("notifyhub.services.audit")

# Raw action -> rule-matrix column
ACTION_CATEGORY_MAP: Dict[str, AuditAction] = {
    "login": AuditAction.LOGIN,
    "login_failed": AuditAction.LOGIN,
    "logout": AuditAction.LOGIN,
    "create": AuditAction.CREATE,
    "import": AuditAction.CREATE,
    "update": AuditAction.UPDATE,
    "settings_change": AuditAction.UPDATE,
    "delete": AuditAction.DELETE,
    "cleanup": AuditAction.DELETE,
    "view_contact": AuditAction.VIEW_CONTACT,
    "view_contact_phone": AuditAction.VIEW_CONTACT,
    "view_contact_email": AuditAction.VIEW_CONTACT,
    "open_card": AuditAction.VIEW_CONTACT,
    "access_denied": AuditAction.VIEW_CONTACT,
    "print": AuditAction.PRINT,
    "screenshot_attempt": AuditAction.SCREENSHOT_LOGGING,
    "context_menu_open": AuditAction.SCREENSHOT_LOGGING,
    "suspicious_tab_switch": AuditAction.TAB_SWITCH_LOGGING,
    "suspicious_copy": AuditAction.TAB_SWITCH_LOGGING,
}

# Unmapped actions fall into the most sensitive column
FALLBACK_ACTION = AuditAction.VIEW_CONTACT

PRESET_ROLES = ("admin", "agent")
CRITICAL_ACTIONS = frozenset({AuditAction.UPDATE, AuditAction.DELETE})
PRESETS = ("all", "critical")


def normalize_action(action: str) -> AuditAction:
    """Map a raw action string to its rule-matrix column"""
    normalized = ACTION_CATEGORY_MAP.get(action)
    if normalized is None:
        logger.warning(f"Unknown audit action '{action}', treating as '{FALLBACK_ACTION.value}'")
        return FALLBACK_ACTION
    return normalized


@dataclass(frozen=True)
class AuditConfigSnapshot:
    """Rule matrix and blacklist as read at fetched_at"""
    rules: Dict[Tuple[str, str], bool] = field(default_factory=dict)
    blacklist: FrozenSet[UUID] = frozenset()
    fetched_at: float = 0.0

    def is_blacklisted(self, user_id: UUID) -> bool:
        return user_id in self.blacklist

    def rule_for(self, role: str, action: AuditAction) -> Optional[bool]:
        """Rule switch, or None when no rule exists"""
        return self.rules.get((role, action.value))


class AuditConfigCache:
    """
    TTL cache of the audit configuration.

    Serves the same snapshot until it is older than ttl seconds.
    A failed refresh returns an empty snapshot that is not cached,
    so every action is logged until the store is reachable again.
    """

    def __init__(
        self,
        audit_storage: AuditStorage,
        ttl: float = Config.AUDIT_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.audit_storage = audit_storage
        self.ttl = ttl
        self._clock = clock
        self._snapshot: Optional[AuditConfigSnapshot] = None

    async def get(self) -> AuditConfigSnapshot:
        now = self._clock()
        if self._snapshot is not None and now - self._snapshot.fetched_at < self.ttl:
            return self._snapshot

        try:
            rules = await self.audit_storage.list_rules()
            blacklist = await self.audit_storage.list_blacklist()
        except PersistenceError as e:
            logger.warning(f"Audit config fetch failed, logging everything: {e}")
            return AuditConfigSnapshot(fetched_at=now)

        self._snapshot = AuditConfigSnapshot(
            rules={(r.target_role, r.action_type): r.is_enabled for r in rules},
            blacklist=frozenset(entry.target_user_id for entry in blacklist),
            fetched_at=now,
        )
        logger.debug(f"Audit config refreshed ({len(rules)} rules, {len(blacklist)} blacklisted)")
        return self._snapshot

    def invalidate(self):
        """Drop the snapshot; next get() refetches"""
        self._snapshot = None

    @property
    def is_cached(self) -> bool:
        return self._snapshot is not None


class AuditGate:
    """Access log gate and rule matrix administration"""

    def __init__(self, audit_storage: AuditStorage, cache: Optional[AuditConfigCache] = None):
        self.audit_storage = audit_storage
        self.cache = cache or AuditConfigCache(audit_storage)

    # ==================== Evaluation ====================

    async def should_log(self, user_id: UUID, action: str) -> bool:
        """Whether an action by this user must be logged"""
        snapshot = await self.cache.get()
        if snapshot.is_blacklisted(user_id):
            return False

        role = await self.audit_storage.get_user_role(user_id)
        rule = snapshot.rule_for(role, normalize_action(action))
        if rule is None:
            return True
        return rule

    async def log_best_effort(self, entry: AccessLogEntry) -> bool:
        """
        Write entry if the rules require it.

        Failures are logged and swallowed. Returns True only when a row
        was written.
        """
        if entry.user_id is None:
            return False
        try:
            if not await self.should_log(entry.user_id, entry.action):
                return False
            await self.audit_storage.insert_access_log(entry)
            return True
        except Exception as e:
            logger.warning(f"Access log write failed for '{entry.action}' (user {entry.user_id}): {e}")
            return False

    async def log_or_block(self, entry: AccessLogEntry) -> bool:
        """
        Security-sensitive logging.

        Returns True when the action may proceed: either logging is not
        required, or the entry was written. Any failure returns False.
        """
        if entry.user_id is None:
            return False
        try:
            if not await self.should_log(entry.user_id, entry.action):
                return True
            await self.audit_storage.insert_access_log(entry)
            return True
        except Exception as e:
            logger.error(f"Blocking '{entry.action}' for user {entry.user_id}: access log write failed: {e}")
            return False

    async def require_logged(self, entry: AccessLogEntry):
        """log_or_block that raises AuthorizationError when blocked"""
        if not await self.log_or_block(entry):
            raise AuthorizationError(f"Action '{entry.action}' blocked: access log could not be written")

    def invalidate_cache(self):
        self.cache.invalidate()

    # ==================== Administration ====================

    async def list_rules(self) -> List[AuditRule]:
        return await self.audit_storage.list_rules()

    async def set_rule(self, role: str, action: str, enabled: bool) -> AuditRule:
        """Upsert the switch for (role, action)"""
        action_type = AuditAction(action).value
        rule = await self.audit_storage.upsert_rule(role, action_type, enabled)
        self.invalidate_cache()
        logger.info(f"Audit rule {role}/{action_type} set to {enabled}")
        return rule

    async def apply_preset(self, preset: str) -> List[AuditRule]:
        """
        Overwrite the matrix for the built-in roles.

        'all' logs every action, 'critical' only update and delete.
        """
        if preset not in PRESETS:
            raise ValueError(f"Unknown audit preset '{preset}'")

        rules = []
        for role in PRESET_ROLES:
            for action in AuditAction:
                enabled = preset == "all" or action in CRITICAL_ACTIONS
                rules.append(await self.audit_storage.upsert_rule(role, action.value, enabled))

        self.invalidate_cache()
        logger.info(f"Audit preset '{preset}' applied ({len(rules)} rules)")
        return rules

    async def list_blacklist(self) -> List[AuditBlacklistEntry]:
        return await self.audit_storage.list_blacklist()

    async def add_to_blacklist(self, user_id: UUID) -> AuditBlacklistEntry:
        entry = await self.audit_storage.add_to_blacklist(user_id)
        self.invalidate_cache()
        logger.info(f"User {user_id} added to audit blacklist")
        return entry

    async def remove_from_blacklist(self, user_id: UUID) -> bool:
        removed = await self.audit_storage.remove_from_blacklist(user_id)
        self.invalidate_cache()
        if removed:
            logger.info(f"User {user_id} removed from audit blacklist")
        return removed

    async def list_access_logs(self, **filters) -> List[AccessLogEntry]:
        return await self.audit_storage.list_access_logs(**filters)
