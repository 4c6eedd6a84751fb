"""
Seed script for the ledger service.

Generates deterministic pseudo-random accounts and transfers and writes them
through LedgerService, so every row passes the same validation as an HTTP
request. Writes are issued concurrently to exercise the client pool.
"""

from __future__ import annotations

import asyncio
import random
import sys
import time
from typing import List

import typer

from psqlledger.config import get_settings
from psqlledger.domain.models import AccountParams, TransactionParams
from psqlledger.infrastructure.db_factory import open_client_pool
from psqlledger.ledger import LedgerService

app = typer.Typer(help="Seed the ledger with synthetic accounts and transfers.")

_NAMES = ["alice", "bob", "carol", "dave", "erin", "frank", "grace", "heidi"]
_DOMAINS = ["example.com", "mail.test", "bank.dev"]


def _generate_accounts(count: int, seed: int) -> List[AccountParams]:
    rng = random.Random(seed)
    accounts: List[AccountParams] = []
    for i in range(count):
        username = f"{rng.choice(_NAMES)}{i}"
        email = f"{username}@{rng.choice(_DOMAINS)}" if rng.random() < 0.8 else ""
        accounts.append(AccountParams(username=username, email=email))
    return accounts


def _generate_transfers(account_ids: List[int], count: int, seed: int) -> List[TransactionParams]:
    if len(account_ids) < 2:
        return []
    rng = random.Random(seed)
    transfers: List[TransactionParams] = []
    for _ in range(count):
        from_account, to_account = rng.sample(account_ids, 2)
        transfers.append(
            TransactionParams(
                from_account=from_account,
                to_account=to_account,
                amount=rng.randint(1, 10_000),
            )
        )
    return transfers


async def _seed(ledger: LedgerService, accounts: int, transfers: int, seed: int) -> tuple[int, int]:
    created = await asyncio.gather(
        *(ledger.create_account(params) for params in _generate_accounts(accounts, seed))
    )
    ids = [account.id for account in created]
    recorded = await asyncio.gather(
        *(ledger.create_transaction(params) for params in _generate_transfers(ids, transfers, seed))
    )
    return len(created), len(recorded)


async def _run(accounts: int, transfers: int, seed: int) -> tuple[int, int]:
    pool = await open_client_pool(get_settings())
    try:
        return await _seed(LedgerService(pool), accounts, transfers, seed)
    finally:
        await pool.close()


@app.command()
def main(
    accounts: int = typer.Option(
        100,
        "--accounts",
        "-a",
        help="Number of accounts to create.",
    ),
    transfers: int = typer.Option(
        1_000,
        "--transfers",
        "-t",
        help="Number of transfers to record between the new accounts.",
    ),
    seed: int = typer.Option(
        42,
        "--seed",
        help="Deterministic RNG seed.",
    ),
) -> None:
    """
    Create synthetic accounts and transfers in the configured backend.
    """
    start = time.perf_counter()
    typer.echo(f"Seeding {accounts:,} accounts and {transfers:,} transfers (seed={seed})")
    created, recorded = asyncio.run(_run(accounts, transfers, seed))
    duration = time.perf_counter() - start
    typer.echo(
        f"Created {created:,} accounts and {recorded:,} transfers in {duration:.2f}s "
        f"({(created + recorded) / duration:,.0f} writes/s)."
    )


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
