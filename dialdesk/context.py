"""
DialDesk Context Assembly.

Merges persisted user settings, per-request overrides and session secrets
into the RequestContext (profile fields shown to agents) and SharedSecrets
(values threaded to tools but never persisted or echoed to the client).

Precedence for every field: explicit per-request override > persisted
settings > empty.
"""

import logging
import re
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional

from .constants import MAX_CONTEXT_VALUE_LENGTH
from .protocols import IssueStore

logger = logging.getLogger(__name__)


_INJECTION_PATTERNS = [
    re.compile(r"ignore previous instructions", re.IGNORECASE),
    re.compile(r"system prompt", re.IGNORECASE),
    re.compile(r"act as", re.IGNORECASE),
]


def sanitize_context_value(value: Optional[str]) -> str:
    """Make a user-supplied profile value safe to interpolate into a prompt."""
    if not value:
        return ""
    text = re.sub(r"[\r\n]+", " ", str(value))
    for pattern in _INJECTION_PATTERNS:
        text = pattern.sub("[filtered]", text)
    return text.strip()[:MAX_CONTEXT_VALUE_LENGTH]


def _pick(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data and data[key] not in (None, ""):
            return data[key]
    return None


def _flag(value: Any) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


@dataclass
class UserSettings:
    """Profile fields a user saved in their settings."""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    timezone: Optional[str] = None
    birthdate: Optional[str] = None
    voice_id: Optional[str] = None
    test_mode_enabled: Optional[bool] = None
    test_mode_number: Optional[str] = None

    @property
    def full_name(self) -> Optional[str]:
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts) if parts else None

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def merged_over(self, base: Optional["UserSettings"]) -> "UserSettings":
        """Return a copy where fields unset on self fall back to base."""
        if base is None:
            return UserSettings(**self.to_dict())
        merged = {}
        for f in fields(self):
            value = getattr(self, f.name)
            merged[f.name] = value if value not in (None, "") else getattr(base, f.name)
        return UserSettings(**merged)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "UserSettings":
        """Accepts both snake_case and the camelCase keys web clients send."""
        if not data:
            return cls()
        return cls(
            first_name=_pick(data, "first_name", "firstName"),
            last_name=_pick(data, "last_name", "lastName"),
            phone=_pick(data, "phone"),
            email=_pick(data, "email"),
            address=_pick(data, "address"),
            timezone=_pick(data, "timezone"),
            birthdate=_pick(data, "birthdate"),
            voice_id=_pick(data, "voice_id", "voiceId", "selectedVoice"),
            test_mode_enabled=_flag(_pick(data, "test_mode_enabled", "testModeEnabled")),
            test_mode_number=_pick(data, "test_mode_number", "testModeNumber"),
        )


@dataclass
class RequestContext:
    """Free-form profile fields used to enrich prompts and call payloads."""
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    timezone: Optional[str] = None
    address: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def present_fields(self) -> Dict[str, str]:
        return {k: v for k, v in self.to_dict().items() if v}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "RequestContext":
        data = data or {}
        values = {}
        for f in fields(cls):
            value = data.get(f.name)
            values[f.name] = value if isinstance(value, str) and value.strip() else None
        return cls(**values)


@dataclass
class SharedSecrets:
    """Session-bound sensitive values. Lifetime is one orchestration run."""
    issue_id: Optional[str] = None
    auth_token: Optional[str] = field(default=None, repr=False)
    settings: Optional[UserSettings] = None


@dataclass
class AssembledContext:
    """Everything the Orchestrator needs to start a run."""
    request_context: RequestContext
    secrets: SharedSecrets
    prior_agent: Optional[str] = None
    user_id: Optional[str] = None

    @property
    def issue_id(self) -> Optional[str]:
        return self.secrets.issue_id


class ContextAssembler:
    """
    Builds an AssembledContext for one request.

    Store reads (settings and the issue's current agent) are best-effort:
    a failure is logged and the run starts as if nothing was stored.
    """

    def __init__(self, store: Optional[IssueStore] = None):
        self._store = store

    async def assemble(
        self,
        issue_id: Optional[str] = None,
        user_id: Optional[str] = None,
        request_context: Optional[Dict[str, Any]] = None,
        secret_overrides: Optional[Dict[str, Any]] = None,
    ) -> AssembledContext:
        secret_overrides = secret_overrides or {}

        persisted = await self._load_settings(user_id)
        override_settings = secret_overrides.get("settings")
        if override_settings:
            if not isinstance(override_settings, UserSettings):
                override_settings = UserSettings.from_dict(override_settings)
            settings = override_settings.merged_over(persisted)
        else:
            settings = persisted

        overrides = RequestContext.from_dict(request_context)
        derived = self._context_from_settings(settings)
        merged = RequestContext(**{
            key: getattr(overrides, key) or getattr(derived, key)
            for key in overrides.to_dict()
        })

        secrets = SharedSecrets(
            issue_id=issue_id or _pick(secret_overrides, "issue_id", "issueId"),
            auth_token=_pick(secret_overrides, "auth_token", "authToken"),
            settings=settings,
        )

        prior_agent = await self._load_current_agent(secrets.issue_id)
        return AssembledContext(
            request_context=merged,
            secrets=secrets,
            prior_agent=prior_agent,
            user_id=user_id,
        )

    @staticmethod
    def _context_from_settings(settings: Optional[UserSettings]) -> RequestContext:
        if settings is None:
            return RequestContext()
        return RequestContext(
            name=settings.full_name,
            email=settings.email,
            phone=settings.phone,
            timezone=settings.timezone,
            address=settings.address,
        )

    async def _load_settings(self, user_id: Optional[str]) -> Optional[UserSettings]:
        if self._store is None or not user_id:
            return None
        try:
            return await self._store.get_settings(user_id)
        except Exception as e:
            logger.warning(f"[Context] settings fetch failed for user {user_id}: {e}")
            return None

    async def _load_current_agent(self, issue_id: Optional[str]) -> Optional[str]:
        if self._store is None or not issue_id:
            return None
        try:
            return await self._store.get_current_agent(issue_id)
        except Exception as e:
            logger.warning(
                f"[Context] current-agent fetch failed for issue {issue_id}: {e}; "
                f"starting at router"
            )
            return None
