"""HomeDesk CLI — manage automations and poke jobs from a terminal.

Usage:
    homedesk automations -b 1                       # List a business's rules
    homedesk create-automation -b 1 "Thank you SMS" \\
        --trigger job_completed \\
        --action '{"type": "send_sms", "params": {"to": "{{contact.phone}}"}}'
    homedesk toggle 7                               # Pause / resume a rule
    homedesk complete-job 42                        # Mark a job completed
    homedesk stats -b 1                             # Dashboard counters
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
from typing import Optional

import click
import httpx

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8000"


def _api_url() -> str:
    return os.environ.get("HOMEDESK_API_URL", DEFAULT_API_URL).rstrip("/")


def _client() -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the HomeDesk backend."""
    return httpx.AsyncClient(base_url=_api_url(), timeout=30.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from a synchronous Click handler.

    Inside an existing event loop (CliRunner under pytest-asyncio) the
    coroutine is offloaded to a worker thread with its own loop.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _business_id_from_ctx(business_id: Optional[int]) -> int:
    """Resolve business_id from flag or HOMEDESK_BUSINESS_ID env var."""
    bid = business_id or os.environ.get("HOMEDESK_BUSINESS_ID")
    if not bid:
        click.secho(
            "Error: --business-id required (or set HOMEDESK_BUSINESS_ID env var)",
            fg="red",
            err=True,
        )
        sys.exit(1)
    return int(bid)


def _fail(response: httpx.Response) -> None:
    try:
        detail = response.json().get("detail", response.text)
    except ValueError:
        detail = response.text
    click.secho(f"Error {response.status_code}: {detail}", fg="red", err=True)
    sys.exit(1)


def _print_table(rows: list[dict], columns: list[tuple[str, str, int]]):
    """Print a simple ASCII table.

    columns: list of (header, dict_key, width)
    """
    header = "  ".join(h.ljust(w) for h, _, w in columns)
    click.secho(header, bold=True)
    click.echo("-" * len(header))
    for row in rows:
        line = "  ".join(str(row.get(k, "-"))[:w].ljust(w) for _, k, w in columns)
        click.echo(line)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version="0.1.0", prog_name="homedesk")
def main():
    """HomeDesk — automations and realtime events for home-service businesses."""


# ---------------------------------------------------------------------------
# homedesk automations
# ---------------------------------------------------------------------------


@main.command()
@click.option("--business-id", "-b", type=int, help="Business id (or set HOMEDESK_BUSINESS_ID)")
def automations(business_id: Optional[int]):
    """List a business's automation rules."""
    _run(_automations_impl(business_id))


async def _automations_impl(business_id: Optional[int]):
    bid = _business_id_from_ctx(business_id)

    async with _client() as c:
        r = await c.get(f"/api/v1/businesses/{bid}/automations")
        if r.status_code != 200:
            _fail(r)
        rules = r.json()

    if not rules:
        click.echo("No automations.")
        return

    for rule in rules:
        rule["state"] = "active" if rule["is_active"] else "paused"
        rule["action_types"] = ",".join(a["type"] for a in rule["actions"])
    _print_table(rules, [
        ("ID", "id", 5),
        ("NAME", "name", 30),
        ("TRIGGER", "trigger", 22),
        ("STATE", "state", 7),
        ("ACTIONS", "action_types", 30),
    ])


# ---------------------------------------------------------------------------
# homedesk create-automation
# ---------------------------------------------------------------------------


@main.command("create-automation")
@click.argument("name")
@click.option("--business-id", "-b", type=int, help="Business id (or set HOMEDESK_BUSINESS_ID)")
@click.option("--trigger", required=True, help="job_completed, new_customer, new_message, ...")
@click.option("--condition", "conditions", multiple=True, help='key=JSON, e.g. status="completed"')
@click.option("--action", "actions", multiple=True, required=True, help="Action as JSON")
@click.option("--inactive", is_flag=True, help="Create the rule paused")
def create_automation(name: str, business_id: Optional[int], trigger: str,
                      conditions: tuple[str, ...], actions: tuple[str, ...], inactive: bool):
    """Create an automation rule named NAME."""
    try:
        parsed_conditions = _parse_conditions(conditions)
        parsed_actions = [json.loads(a) for a in actions]
    except ValueError as e:
        raise click.BadParameter(str(e))
    _run(_create_automation_impl(
        name, business_id, trigger, parsed_conditions, parsed_actions, not inactive,
    ))


def _parse_conditions(pairs: tuple[str, ...]) -> dict:
    """Parse key=value pairs. Values are JSON; bare words fall back to strings."""
    conditions = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Condition must look like key=value, got '{pair}'")
        try:
            conditions[key] = json.loads(raw)
        except json.JSONDecodeError:
            conditions[key] = raw
    return conditions


async def _create_automation_impl(name: str, business_id: Optional[int], trigger: str,
                                  conditions: dict, actions: list, is_active: bool):
    bid = _business_id_from_ctx(business_id)

    async with _client() as c:
        r = await c.post(f"/api/v1/businesses/{bid}/automations", json={
            "name": name,
            "trigger": trigger,
            "conditions": conditions,
            "actions": actions,
            "is_active": is_active,
        })
        if r.status_code != 201:
            _fail(r)
        rule = r.json()

    click.secho(f"Automation #{rule['id']} created ({rule['trigger']})", fg="green")


# ---------------------------------------------------------------------------
# homedesk toggle
# ---------------------------------------------------------------------------


@main.command()
@click.argument("automation_id", type=int)
def toggle(automation_id: int):
    """Pause an active rule, or resume a paused one."""
    _run(_toggle_impl(automation_id))


async def _toggle_impl(automation_id: int):
    async with _client() as c:
        r = await c.get(f"/api/v1/automations/{automation_id}")
        if r.status_code != 200:
            _fail(r)
        current = r.json()

        r = await c.put(f"/api/v1/automations/{automation_id}", json={
            "is_active": not current["is_active"],
        })
        if r.status_code != 200:
            _fail(r)
        rule = r.json()

    state = "active" if rule["is_active"] else "paused"
    click.secho(f"Automation #{automation_id} is now {state}", fg="green" if rule["is_active"] else "yellow")


# ---------------------------------------------------------------------------
# homedesk complete-job
# ---------------------------------------------------------------------------


@main.command("complete-job")
@click.argument("job_id", type=int)
@click.option("--notes", help="Completion notes")
def complete_job(job_id: int, notes: Optional[str]):
    """Mark a job completed (fires the business's job_completed rules)."""
    _run(_complete_job_impl(job_id, notes))


async def _complete_job_impl(job_id: int, notes: Optional[str]):
    body: dict = {"status": "completed"}
    if notes:
        body["notes"] = notes

    async with _client() as c:
        r = await c.put(f"/api/v1/jobs/{job_id}", json=body)
        if r.status_code != 200:
            _fail(r)
        job = r.json()

    click.secho(f"Job #{job['id']} completed: {job['title']}", fg="green")


# ---------------------------------------------------------------------------
# homedesk stats
# ---------------------------------------------------------------------------


@main.command()
@click.option("--business-id", "-b", type=int, help="Business id (or set HOMEDESK_BUSINESS_ID)")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
def stats(business_id: Optional[int], as_json: bool):
    """Show the dashboard counters for a business."""
    _run(_stats_impl(business_id, as_json))


async def _stats_impl(business_id: Optional[int], as_json: bool):
    bid = _business_id_from_ctx(business_id)

    async with _client() as c:
        r = await c.get(f"/api/v1/businesses/{bid}/stats")
        if r.status_code != 200:
            _fail(r)
        data = r.json()

    if as_json:
        click.echo(json.dumps(data, indent=2))
        return

    click.secho(f"Business #{bid}", bold=True)
    click.echo(f"  Active customers:  {data['activeCustomers']}")
    click.echo(f"  Scheduled jobs:    {data['scheduledJobs']}")
    click.echo(f"  New messages:      {data['newMessages']}")
    click.echo(f"  Average review:    {data['avgReview']:.1f}")


if __name__ == "__main__":
    main()
