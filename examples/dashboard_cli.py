from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Any, Optional, TypeVar

import typer

from scholardash.app import DashboardService

app = typer.Typer()

T = TypeVar("T")


def _parse_fields(pairs: list[str]) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    for pair in pairs:
        if "=" not in pair:
            raise typer.BadParameter(f"expected key=value, got '{pair}'")
        key, raw = pair.split("=", 1)
        try:
            fields[key] = json.loads(raw)
        except json.JSONDecodeError:
            fields[key] = raw
    return fields


def _run(action: Callable[[DashboardService], T]) -> T:
    async def main() -> T:
        async with DashboardService({"provider": "file"}) as service:
            return action(service)

    return asyncio.run(main())


def _print(data: Any) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2))


@app.command()
def health() -> None:
    _print(_run(lambda service: service.health(include_counts=True)))


@app.command("list")
def list_records(
    collection: str,
    order_by: Optional[str] = typer.Option(None, "--order-by", help="createdAt, -createdAt, updatedAt, -updatedAt"),
    limit: Optional[int] = typer.Option(None, "--limit"),
) -> None:
    _print(_run(lambda service: service.collection(collection).query(order_by=order_by, limit=limit)))


@app.command()
def add(collection: str, fields: Optional[list[str]] = typer.Argument(None, help="key=value pairs")) -> None:
    values = _parse_fields(fields or [])
    _print(_run(lambda service: service.collection(collection).add(values)))


@app.command()
def update(collection: str, record_id: str, fields: Optional[list[str]] = typer.Argument(None, help="key=value pairs")) -> None:
    values = _parse_fields(fields or [])
    record = _run(lambda service: service.collection(collection).update(record_id, values))
    if record is None:
        raise typer.Exit(code=1)
    _print(record)


@app.command()
def delete(collection: str, record_id: str) -> None:
    removed = _run(lambda service: service.collection(collection).delete(record_id))
    _print({"deleted": removed, "id": record_id})


if __name__ == "__main__":
    app()
