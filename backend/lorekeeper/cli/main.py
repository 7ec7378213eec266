"""CLI entrypoint for Lorekeeper."""

from __future__ import annotations

import json
import os
import time
from typing import Optional

import requests
import typer

app = typer.Typer(name="lore", help="Lorekeeper command-line interface")
sources_app = typer.Typer(name="sources", help="Manage data sources")
app.add_typer(sources_app, name="sources")

DEFAULT_HOST = "http://127.0.0.1:5173"
DEFAULT_INSTANCE = "default"
TERMINAL_JOB_STATES = {"completed", "failed", "cancelled"}


def _resolve_host(override: Optional[str]) -> str:
    if override:
        return override.rstrip("/")
    env_host = os.environ.get("LORE_HOST")
    if env_host:
        return env_host.rstrip("/")
    return DEFAULT_HOST


def _resolve_instance(override: Optional[str]) -> str:
    return override or os.environ.get("LORE_INSTANCE") or DEFAULT_INSTANCE


def _request(method: str, path: str, host: Optional[str] = None, **kwargs) -> requests.Response:
    base = _resolve_host(host)
    url = f"{base}{path}"
    resp = requests.request(method, url, timeout=60, **kwargs)
    if not resp.ok:
        try:
            detail = resp.json()
        except ValueError:
            detail = resp.text
        typer.echo(f"Request failed ({resp.status_code}): {detail}", err=True)
        raise typer.Exit(code=1)
    return resp


def _echo_json(payload: object) -> None:
    typer.echo(json.dumps(payload, indent=2))


@sources_app.command("list")
def list_sources(
    instance: Optional[str] = typer.Option(None, "--instance", help="Instance identifier"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """List data sources of an instance."""
    resp = _request("GET", "/sources", host=host, params={"instance_id": _resolve_instance(instance)})
    _echo_json(resp.json())


@sources_app.command("add")
def add_source(
    name: str = typer.Argument(..., help="Display name"),
    source_type: str = typer.Argument(
        ..., help="code_repo, wiki_space, workspace_db or chat_channels"
    ),
    config: str = typer.Option("{}", "--config", help="Connector configuration as a JSON object"),
    instance: Optional[str] = typer.Option(None, "--instance", help="Instance identifier"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Register a data source."""
    try:
        parsed = json.loads(config)
    except ValueError as exc:
        raise typer.BadParameter(f"--config is not valid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise typer.BadParameter("--config must be a JSON object")
    payload = {
        "instance_id": _resolve_instance(instance),
        "name": name,
        "type": source_type,
        "config": parsed,
    }
    resp = _request("POST", "/sources", host=host, json=payload)
    _echo_json(resp.json())


@sources_app.command("remove")
def remove_source(
    source_id: str = typer.Argument(..., help="Data source identifier"),
    cascade: bool = typer.Option(False, "--cascade", help="Also delete the source's documents"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Remove a data source."""
    _request("DELETE", f"/sources/{source_id}", host=host, params={"cascade": str(cascade).lower()})
    _echo_json({"status": "ok"})


@app.command()
def sync(
    source_id: str = typer.Argument(..., help="Data source identifier"),
    wait: bool = typer.Option(False, "--wait", help="Poll until the job finishes"),
    interval: float = typer.Option(2.0, "--interval", help="Seconds between polls with --wait"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Start a background sync of a data source."""
    job = _request("POST", f"/sources/{source_id}/sync", host=host).json()
    while wait and job["status"] not in TERMINAL_JOB_STATES:
        time.sleep(interval)
        job = _request("GET", f"/jobs/{job['id']}", host=host).json()
    _echo_json(job)
    if job["status"] == "failed":
        raise typer.Exit(code=1)


@app.command()
def job(
    job_id: str = typer.Argument(..., help="Sync job identifier"),
    cancel: bool = typer.Option(False, "--cancel", help="Cancel the job"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Show (or cancel) a sync job."""
    if cancel:
        resp = _request("POST", f"/jobs/{job_id}/cancel", host=host)
    else:
        resp = _request("GET", f"/jobs/{job_id}", host=host)
    _echo_json(resp.json())


@app.command()
def ask(
    question: str = typer.Argument(..., help="Question to answer"),
    instance: Optional[str] = typer.Option(None, "--instance", help="Instance identifier"),
    raw: bool = typer.Option(False, "--json", help="Print the full answer payload"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Ask a question against the indexed documents."""
    payload = {"instance_id": _resolve_instance(instance), "question": question, "source": "cli"}
    answer = _request("POST", "/ask", host=host, json=payload).json()
    if raw:
        _echo_json(answer)
        return
    typer.echo(answer["content"])
    for index, citation in enumerate(answer["citations"], start=1):
        location = citation["url"] or citation["document_id"]
        typer.echo(f"[{index}] {citation['title']} ({citation['relevance']:.2f}) {location}")


if __name__ == "__main__":
    app()
