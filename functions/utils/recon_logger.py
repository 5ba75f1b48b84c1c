"""Reconciliation and acid-test logger for Gracemark.

Prints highly visible banners for reconciliation runs and acid-test
verdicts so they stand out in emulator log streams, and mirrors every
banner as a structlog event.
"""

from datetime import datetime, timezone
from typing import Iterable, Optional

import structlog

logger = structlog.get_logger()

BANNER_WIDTH = 80
RUN_BANNER_CHAR = "█"
PHASE_BANNER_CHAR = "─"
ACID_BANNER_CHAR = "═"
FAIL_BANNER_CHAR = "!"


def _create_banner(char: str, text: str, width: int = BANNER_WIDTH) -> str:
    """Create a centered banner with given character."""
    text_with_spaces = f" {text} "
    padding = (width - len(text_with_spaces)) // 2
    return char * padding + text_with_spaces + char * (width - padding - len(text_with_spaces))


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _print_block(char: str, title: str, rows: Iterable[str]) -> None:
    print("\n")
    print(char * BANNER_WIDTH)
    print(_create_banner(char, title))
    print(char * BANNER_WIDTH)
    for row in rows:
        print(f"║ {row}")
    print(char * BANNER_WIDTH)
    print("\n")


def log_reconciliation_start(providers: Iterable[str], policy: str, currency: str) -> None:
    """Log the start of a reconciliation run."""
    provider_list = list(providers)
    _print_block(RUN_BANNER_CHAR, "GRACEMARK RECONCILIATION STARTED", [
        f"Timestamp : {_timestamp()}",
        f"Providers : {', '.join(provider_list) if provider_list else 'None'}",
        f"Policy    : {policy}",
        f"Currency  : {currency}",
    ])
    logger.info(
        "reconciliation_start_logged",
        providers=provider_list,
        policy=policy,
        currency=currency
    )


def log_reconciliation_phase(phase: str, detail: str = "") -> None:
    """Log a completed reconciliation phase."""
    print(_create_banner(PHASE_BANNER_CHAR, f"✓ {phase.upper()} {detail}".strip()))
    logger.info("reconciliation_phase_logged", phase=phase, detail=detail)


def log_final_choice(provider: str, price: float, currency: str, baseline: Optional[float]) -> None:
    """Log the recommended provider."""
    delta = ""
    if baseline:
        delta = f"{(price - baseline) / baseline * 100:+.2f}% vs baseline"
    _print_block(RUN_BANNER_CHAR, "✓ RECONCILIATION COMPLETE", [
        f"Provider : {provider}",
        f"Price    : {currency} {price:,.2f}",
        f"Baseline : {f'{currency} {baseline:,.2f}' if baseline else 'n/a'} {delta}".rstrip(),
    ])
    logger.info(
        "final_choice_logged",
        provider=provider,
        price=price,
        currency=currency,
        baseline=baseline
    )


def log_reconciliation_failed(phase: str, reason: str) -> None:
    """Log a reconciliation run that ended without a winner."""
    _print_block(FAIL_BANNER_CHAR, "✗ RECONCILIATION FAILED", [
        f"Timestamp : {_timestamp()}",
        f"Phase     : {phase}",
        f"Reason    : {reason}",
    ])
    logger.warning("reconciliation_failed_logged", phase=phase, reason=reason)


def log_acid_test_result(
    provider: str,
    status: str,
    profit: float,
    currency: str,
    profit_usd: Optional[float],
    errors: Iterable[str] = ()
) -> None:
    """Log an acid-test verdict."""
    error_list = list(errors)
    marks = {"pass": "✓", "warning": "⚠", "fail": "✗"}
    rows = [
        f"Provider   : {provider}",
        f"Profit     : {currency} {profit:,.2f}",
        f"Profit USD : {f'{profit_usd:,.2f}' if profit_usd is not None else 'unavailable'}",
    ]
    rows.extend(f"Error      : {error}" for error in error_list)
    _print_block(ACID_BANNER_CHAR, f"{marks.get(status, '?')} ACID TEST {status.upper()}", rows)

    log = logger.warning if status != "pass" else logger.info
    log(
        "acid_test_result_logged",
        provider=provider,
        status=status,
        profit=profit,
        profit_usd=profit_usd,
        error_count=len(error_list)
    )
