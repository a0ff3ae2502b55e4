"""
Inbound message filtering and auto-reply rules.
"""

import re
from dataclasses import dataclass, field
from typing import Any

IGNORED_JID_SUFFIXES = ("@newsletter", "@broadcast")
STATUS_JID = "status@broadcast"


def is_ignorable_jid(jid: str | None) -> bool:
    """Broadcast, newsletter and status pseudo-recipients never reach webhooks."""
    if not jid:
        return True
    return jid == STATUS_JID or jid.endswith(IGNORED_JID_SUFFIXES)


def should_forward(message: dict[str, Any]) -> bool:
    """Whether an inbound message is a real chat message from someone else."""
    key = message.get("key") or {}
    if key.get("fromMe"):
        return False
    return not is_ignorable_jid(key.get("remoteJid"))


def extract_text(message: dict[str, Any]) -> str:
    """Plain text of a message, looking through extended and ephemeral wrappers."""
    content = message.get("message") or {}
    ephemeral = (content.get("ephemeralMessage") or {}).get("message") or {}
    return (
        content.get("conversation")
        or (content.get("extendedTextMessage") or {}).get("text")
        or (ephemeral.get("extendedTextMessage") or {}).get("text")
        or ""
    )


@dataclass
class AutoReplyRule:
    """Reply with ``reply`` when the stripped text fully matches ``pattern``."""

    pattern: str
    reply: str
    quoted: bool = True

    def __post_init__(self):
        self._regex = re.compile(self.pattern, re.IGNORECASE)

    def matches(self, text: str) -> bool:
        return bool(self._regex.fullmatch(text.strip()))


@dataclass
class AutoReplyResponder:
    """
    Picks the automatic reply for an inbound message, if any.

    The first matching rule wins. Disabled responders never reply.
    """

    enabled: bool = False
    rules: list[AutoReplyRule] = field(default_factory=list)

    @classmethod
    def from_settings(cls, enabled: bool, ping_pong: bool) -> "AutoReplyResponder":
        rules = [AutoReplyRule(pattern="ping", reply="pong")] if ping_pong else []
        return cls(enabled=enabled, rules=rules)

    def reply_for(self, message: dict[str, Any]) -> AutoReplyRule | None:
        if not self.enabled or not self.rules:
            return None
        text = extract_text(message)
        if not text:
            return None
        for rule in self.rules:
            if rule.matches(text):
                return rule
        return None
