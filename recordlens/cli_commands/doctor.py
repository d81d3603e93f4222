"""
"Doctor" command: consolidated health, config, and diagnostics.

Runs a series of checks and prints a concise report:
 - Config summary and required keys
 - Encryption key usability (a local seal/decode round trip)
 - Backend API health (if a token is configured)
"""

from __future__ import annotations

import click

from recordlens.core.config import configuration_status, get_settings, print_configuration_summary
from recordlens.core.exceptions import RecordLensError
from recordlens.crypto.envelope import EnvelopeDecoder, seal
from recordlens.data.api_client import create_backend_client

_SELF_TEST_VALUE = {"login_time": "2025-10-25T14:07:45.867Z"}


@click.command()
def doctor():
    """Run RecordLens diagnostics and print a summary report."""
    click.echo("RecordLens Doctor")
    click.echo("=" * 40)

    print_configuration_summary()

    cfg = get_settings()

    status = configuration_status()
    click.echo("\nConfiguration Status:")
    click.echo(f"  Overall: {status.get('overall', 'unknown')}")
    for k in ("encryption_key", "api_token", "display_timezone"):
        v = status.get(k)
        if v is not None:
            click.echo(f"  {k}: {v}")

    # Encryption key self-test
    try:
        decoder = EnvelopeDecoder(cfg.crypto.encryption_key)
        hex_ok = decoder.decode(seal(_SELF_TEST_VALUE, cfg.crypto.encryption_key)) == _SELF_TEST_VALUE
        b64_ok = (
            decoder.decode(seal(_SELF_TEST_VALUE, cfg.crypto.encryption_key, encoding="base64"))
            == _SELF_TEST_VALUE
        )
        if hex_ok and b64_ok:
            click.echo("\n✓ Envelope round trip (hex and base64)")
        else:
            click.echo("\n✗ Envelope round trip returned unexpected data")
    except RecordLensError as e:
        click.echo(f"\n✗ Envelope self-test failed: {e.message}")

    # Backend health
    if cfg.api.token:
        try:
            with create_backend_client(cfg.api) as client:
                h = client.health_check()
                breaker = client.breaker.status()
            if h.get("status") == "healthy":
                click.echo(f"✓ Backend healthy ({cfg.api.base_url})")
            else:
                click.echo(f"✗ Backend unhealthy: {h.get('error', 'unknown')}")
            click.echo(f"  breaker {breaker['name']}: {breaker['state']} ({breaker['failures']} failures)")
        except Exception as e:
            click.echo(f"✗ Backend client init failed: {e}")
    else:
        click.echo("- Backend token not configured")

    click.echo("\nDone.")
