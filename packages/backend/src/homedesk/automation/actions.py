"""Action handlers — what a rule does once it fires.

Learn: Action types are a registration table, not an if/elif chain.
Adding a new action is one decorated coroutine:

    @registry.register("create_task")
    async def create_task(ctx: ActionContext) -> dict: ...

There is no SMS/email provider integration. Handlers decide what would
be sent and to whom, log it, and return that decision; the engine puts
the result into the AUTOMATION_TRIGGERED frame so the dashboard can show
it live.

Params support {{placeholder}} templates resolved against the event
context with dotted paths, e.g. "{{contact.phone}}" or "{{jobId}}".
Placeholders that don't resolve are left as-is.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import structlog

from homedesk.automation.models import Action, AutomationRule

logger = structlog.get_logger()

_TEMPLATE_VAR_RE = re.compile(r"{{\s*([a-zA-Z0-9_.]+)\s*}}")
_MISSING = object()


class UnknownActionError(Exception):
    """Raised when no handler is registered for an action type."""
    pass


# ─── Templating ──────────────────────────────────────────


def resolve_path(data: Mapping[str, Any], path: str) -> Any:
    """Walk a dotted path through nested mappings. Returns _MISSING if absent."""
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return _MISSING
        current = current[part]
    return current


def render_template(template: str, data: Mapping[str, Any]) -> str:
    def _substitute(match: re.Match) -> str:
        value = resolve_path(data, match.group(1))
        if value is _MISSING or value is None:
            return match.group(0)
        return str(value)

    return _TEMPLATE_VAR_RE.sub(_substitute, template)


def render_params(params: Any, data: Mapping[str, Any]) -> Any:
    """Render every string inside a params structure."""
    if isinstance(params, str):
        return render_template(params, data)
    if isinstance(params, Mapping):
        return {key: render_params(value, data) for key, value in params.items()}
    if isinstance(params, list):
        return [render_params(value, data) for value in params]
    return params


def unresolved_placeholders(params: Any) -> list[str]:
    """Placeholders still present after rendering (missing context data)."""
    if isinstance(params, str):
        return _TEMPLATE_VAR_RE.findall(params)
    if isinstance(params, Mapping):
        return [name for value in params.values() for name in unresolved_placeholders(value)]
    if isinstance(params, list):
        return [name for value in params for name in unresolved_placeholders(value)]
    return []


# ─── Registry ────────────────────────────────────────────


@dataclass(frozen=True)
class ActionContext:
    """Everything a handler may need. ``params`` is already rendered."""

    tenant_id: int
    rule: AutomationRule
    action: Action
    params: dict[str, Any]
    context: dict[str, Any]


ActionHandler = Callable[[ActionContext], Awaitable[dict[str, Any]]]


class ActionRegistry:
    """Maps action type → handler coroutine."""

    def __init__(self):
        self._handlers: dict[str, ActionHandler] = {}

    def register(self, action_type: str, handler: Optional[ActionHandler] = None):
        """Register a handler. Usable directly or as a decorator."""
        if handler is not None:
            self._handlers[action_type] = handler
            return handler

        def decorator(fn: ActionHandler) -> ActionHandler:
            self._handlers[action_type] = fn
            return fn

        return decorator

    def get(self, action_type: str) -> ActionHandler:
        try:
            return self._handlers[action_type]
        except KeyError:
            raise UnknownActionError(f"No handler for action type '{action_type}'") from None

    def types(self) -> list[str]:
        return sorted(self._handlers)


# ─── Built-in handlers ───────────────────────────────────


async def send_sms(ctx: ActionContext) -> dict[str, Any]:
    to = ctx.params.get("to")
    message = ctx.params.get("message", "")
    logger.info(
        "automation.sms_queued",
        business_id=ctx.tenant_id,
        automation_id=ctx.rule.id,
        to=to,
        message=message,
    )
    return {"channel": "sms", "to": to, "message": message}


async def send_email(ctx: ActionContext) -> dict[str, Any]:
    to = ctx.params.get("to")
    subject = ctx.params.get("subject", "")
    body = ctx.params.get("body", ctx.params.get("message", ""))
    logger.info(
        "automation.email_queued",
        business_id=ctx.tenant_id,
        automation_id=ctx.rule.id,
        to=to,
        subject=subject,
    )
    return {"channel": "email", "to": to, "subject": subject, "body": body}


async def notify_staff(ctx: ActionContext) -> dict[str, Any]:
    """In-app notification. The AUTOMATION_TRIGGERED frame is the delivery."""
    message = ctx.params.get("message", ctx.rule.name)
    logger.info(
        "automation.staff_notified",
        business_id=ctx.tenant_id,
        automation_id=ctx.rule.id,
        message=message,
    )
    return {"channel": "dashboard", "message": message}


def default_registry() -> ActionRegistry:
    """Registry with every built-in action type."""
    registry = ActionRegistry()
    registry.register("send_sms", send_sms)
    registry.register("send_email", send_email)
    registry.register("notify_staff", notify_staff)
    return registry
