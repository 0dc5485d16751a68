import logging
from typing import Optional

import typer

from launchpad_indexer.sources.curve_pipeline.config.settings import TokenFilter
from launchpad_indexer.sources.curve_pipeline.ingestion import runner

log = logging.getLogger(__name__)

app = typer.Typer(help="Index launchpad tokens from the CLI")


@app.command("run")
def run(
    token_id: Optional[int] = typer.Option(None, help="Only this token"),
    token_id_from: Optional[int] = typer.Option(None, help="Lowest token id (inclusive)"),
    token_id_to: Optional[int] = typer.Option(None, help="Highest token id (inclusive)"),
    chain_id: Optional[int] = typer.Option(None, help="Only tokens on this chain"),
    graduated_only: bool = typer.Option(False, "--graduated-only", help="Only graduated tokens"),
    ungraduated_only: bool = typer.Option(False, "--ungraduated-only", help="Only tokens still on the curve"),
):
    """
    One full pipeline run. Options left unset fall back to the
    TOKEN_ID / TOKEN_ID_FROM / ... environment variables.
    """
    if graduated_only and ungraduated_only:
        raise typer.BadParameter("--graduated-only and --ungraduated-only are mutually exclusive")

    env = TokenFilter.from_env()
    token_filter = TokenFilter(
        token_id=token_id if token_id is not None else env.token_id,
        token_id_from=token_id_from if token_id_from is not None else env.token_id_from,
        token_id_to=token_id_to if token_id_to is not None else env.token_id_to,
        chain_id=chain_id if chain_id is not None else env.chain_id,
        graduated_only=graduated_only or env.graduated_only,
        ungraduated_only=ungraduated_only or env.ungraduated_only,
    )
    result = runner.run_pipeline(token_filter)
    typer.echo(result)


@app.command("sync-token")
def sync_token(token_id: int = typer.Argument(..., help="tokens.id to sync now")):
    """Scan, rebuild and aggregate a single token."""
    try:
        result = runner.sync_token(token_id)
    except Exception:
        log.error(f"[cli] sync of token {token_id} failed", exc_info=True)
        raise typer.Exit(code=1)
    typer.echo(result)


@app.command("rebuild-balances")
def rebuild_balances(token_id: int = typer.Argument(..., help="tokens.id to replay")):
    """Replay the ledger into token_balances without touching the chain."""
    try:
        holders = runner.rebuild_balances(token_id)
    except Exception:
        log.error(f"[cli] balance rebuild for token {token_id} failed", exc_info=True)
        raise typer.Exit(code=1)
    typer.echo(f"token {token_id}: {holders} holders")


def main():
    app()


if __name__ == "__main__":
    main()
