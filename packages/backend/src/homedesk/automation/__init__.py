"""Automation rules — trigger → conditions → actions.

Learn: A rule belongs to one business and names a trigger (job_completed,
new_customer, ...), a flat condition map, and an ordered action list.
When a service commits a change it records a DomainEvent; the engine
loads that business's rules, keeps the active ones whose trigger and
conditions match, runs their actions in order, and broadcasts an
AUTOMATION_TRIGGERED frame per dispatched action.

Pieces:
- models.py     — rule/action value objects the engine works on
- conditions.py — pluggable condition matcher (strict equality today)
- actions.py    — action handler registry + {{placeholder}} rendering
- engine.py     — evaluation loop, rule-fetch timeout, per-business ordering
"""
